"""Failure taxonomy shared by the probes."""
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .models import ConsoleEntry, IssueReport


class ProbeError(AssertionError):
    """Base class for every terminal probe failure."""


class ConfigError(Exception):
    """Raised when probe configuration fails validation."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("Configuration validation failed")
        self.errors = errors

    def __str__(self) -> str:  # pragma: no cover - debug convenience
        return f"ConfigError(errors={self.errors!r})"


class StructuralError(ProbeError):
    """An element or line the application must expose is missing."""


class ElementNotFoundError(StructuralError):
    def __init__(self, selector: str, detail: str | None = None) -> None:
        message = f"Element {selector!r} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.selector = selector


class NavigationError(StructuralError):
    def __init__(self, url: str, detail: str) -> None:
        super().__init__(f"Navigation to {url} failed: {detail}")
        self.url = url


class HashLineError(StructuralError):
    """Rendered strategy does not contain exactly one URL hash line."""

    def __init__(self, message: str, strategy_text: str) -> None:
        super().__init__(f"{message}\n{strategy_text}")
        self.strategy_text = strategy_text


class StrategyParseError(ProbeError):
    """The external verifier rejected a rendered strategy."""

    def __init__(
        self,
        message: str,
        strategy_text: str,
        *,
        seed: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.strategy_text = strategy_text
        self.seed = seed
        self.detail = detail

    def with_context(self, message: str, *, seed: Optional[str] = None) -> "StrategyParseError":
        """Return a copy carrying the probe's diagnostic header."""

        lines = [message, self.strategy_text]
        if self.detail:
            lines.extend(["Verifier output:", self.detail])
        return StrategyParseError(
            "\n".join(lines),
            self.strategy_text,
            seed=seed if seed is not None else self.seed,
            detail=self.detail,
        )


class IssueReportError(ProbeError):
    """The issue-report link does not honour the issue tracker contract."""

    def __init__(self, url: str, problems: Sequence[str]) -> None:
        super().__init__(f"Invalid issue report URL {url!r}: {'; '.join(problems)}")
        self.url = url
        self.problems = list(problems)


class RestorationFailedError(ProbeError):
    def __init__(
        self,
        deployment: str,
        strategy_hash: str,
        notification: str,
        issue_report: "IssueReport",
    ) -> None:
        super().__init__(
            f"Restoring strategy harvested from {deployment} failed: {notification}\n"
            f"{issue_report.body}"
        )
        self.deployment = deployment
        self.strategy_hash = strategy_hash
        self.notification = notification
        self.issue_report = issue_report


class ConsistencyError(ProbeError):
    """Validation errors reported or JSON round-trip mismatch."""

    def __init__(self, message: str, strategy_text: str, *, seed: Optional[str] = None) -> None:
        super().__init__(f"{message}\n{strategy_text}")
        self.strategy_text = strategy_text
        self.seed = seed


class StatisticalDriftError(ProbeError):
    def __init__(self, mean: float, expected: float, tolerance: float) -> None:
        super().__init__(
            f"Average length of URL encoded strategy {mean:.1f} is not within "
            f"{tolerance:g} of {expected:g}"
        )
        self.mean = mean
        self.expected = expected
        self.tolerance = tolerance


class ConsoleNoiseError(ProbeError):
    def __init__(self, entries: Sequence["ConsoleEntry"]) -> None:
        summary = "\n".join(entry.describe() for entry in entries)
        super().__init__(f"Browser console log must not contain errors or warnings:\n{summary}")
        self.entries = list(entries)


__all__ = [
    "ProbeError",
    "ConfigError",
    "StructuralError",
    "ElementNotFoundError",
    "NavigationError",
    "HashLineError",
    "StrategyParseError",
    "IssueReportError",
    "RestorationFailedError",
    "ConsistencyError",
    "StatisticalDriftError",
    "ConsoleNoiseError",
]
