"""Core data models for strategy round-trip checks."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urldefrag, urlparse

from .errors import HashLineError

HASH_MARKER = "dummy#"
EMPTY_VALIDATION_ERRORS = "[]"
ROUND_TRIP_OK = "Ok"

ROLE_GENERATOR = "generator"
ROLE_APPLICATION = "application"

_URL_SCHEMES = {"http", "https", "file"}


@dataclass(frozen=True, slots=True)
class Deployment:
    """A browser-addressable build of the application under test."""

    tag: str
    address: str
    role: str = ROLE_GENERATOR

    @classmethod
    def from_location(cls, tag: str, location: str | Path, role: str = ROLE_GENERATOR) -> "Deployment":
        """Build a deployment from a URL or a local path (turned into a file URI)."""

        text = str(location).strip()
        if _is_url(text):
            return cls(tag=tag, address=text, role=role)
        return cls(tag=tag, address=Path(text).resolve().as_uri(), role=role)

    def url_with_hash(self, strategy_hash: str) -> str:
        base, _ = urldefrag(self.address)
        return f"{base}#{strategy_hash}"


@dataclass(slots=True)
class RenderedStrategy:
    text: str
    seed: Optional[str] = None

    def extract_hash(self) -> str:
        """Return the URL hash embedded in the single ``dummy#`` line."""

        lines = [line for line in self.text.splitlines() if HASH_MARKER in line]
        if not lines:
            raise HashLineError("Generated strategy didn't contain url hash comment", self.text)
        if len(lines) > 1:
            raise HashLineError(
                f"Generated strategy contains {len(lines)} url hash comments, expected one",
                self.text,
            )
        line = lines[0]
        return line[line.index(HASH_MARKER) + len(HASH_MARKER):]


@dataclass(slots=True)
class HealthSignals:
    validation_errors: str
    round_trip_result: str

    @property
    def has_validation_errors(self) -> bool:
        return self.validation_errors != EMPTY_VALIDATION_ERRORS

    @property
    def round_trip_ok(self) -> bool:
        return self.round_trip_result == ROUND_TRIP_OK


@dataclass(slots=True)
class RestorationOutcome:
    notification: str
    issue_url: Optional[str] = None
    status: Optional[str] = None

    def failed(self, failure_prefix: str) -> bool:
        # A structured status attribute wins over the localized message.
        if self.status:
            return self.status.strip().lower() == "failure"
        return self.notification.startswith(failure_prefix)


@dataclass(slots=True)
class ConsoleEntry:
    level: int
    message: str
    source: Optional[str] = None

    def describe(self) -> str:
        text = f"[{logging.getLevelName(self.level)}] {self.message}"
        if self.source:
            text = f"{text} ({self.source})"
        return text

    def to_dict(self) -> Dict[str, object]:
        return {
            "level": logging.getLevelName(self.level),
            "message": self.message,
            "source": self.source,
        }


@dataclass(slots=True)
class IssueReport:
    url: str
    title: str
    body: str

    def to_dict(self) -> Dict[str, str]:
        return {"url": self.url, "title": self.title, "body": self.body}


@dataclass(slots=True)
class GenerationReport:
    deployment: str
    iterations: int
    hash_lengths: List[int] = field(default_factory=list)
    console_entries: List[ConsoleEntry] = field(default_factory=list)

    @property
    def mean_hash_length(self) -> float:
        if not self.hash_lengths:
            return 0.0
        return sum(self.hash_lengths) / len(self.hash_lengths)

    def to_dict(self) -> Dict[str, object]:
        return {
            "deployment": self.deployment,
            "iterations": self.iterations,
            "mean_hash_length": round(self.mean_hash_length, 2),
            "min_hash_length": min(self.hash_lengths, default=0),
            "max_hash_length": max(self.hash_lengths, default=0),
            "console_entries": [entry.to_dict() for entry in self.console_entries],
        }


@dataclass(slots=True)
class CompatibilityReport:
    deployment: str
    iterations: int
    restored: int = 0
    hash_lengths: List[int] = field(default_factory=list)
    failure: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.failure is None and self.restored == self.iterations

    def to_dict(self) -> Dict[str, object]:
        return {
            "deployment": self.deployment,
            "iterations": self.iterations,
            "restored": self.restored,
            "max_hash_length": max(self.hash_lengths, default=0),
            "passed": self.passed,
            "failure": self.failure,
        }


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    if parsed.scheme not in _URL_SCHEMES:
        return False
    return bool(parsed.netloc) or parsed.scheme == "file"


__all__ = [
    "HASH_MARKER",
    "EMPTY_VALIDATION_ERRORS",
    "ROUND_TRIP_OK",
    "ROLE_GENERATOR",
    "ROLE_APPLICATION",
    "Deployment",
    "RenderedStrategy",
    "HealthSignals",
    "RestorationOutcome",
    "ConsoleEntry",
    "IssueReport",
    "GenerationReport",
    "CompatibilityReport",
]
