"""Adapters for the external strategy grammar verifier."""
from __future__ import annotations

import logging
import subprocess
from typing import Sequence

import requests

from .config import VerifierConfig
from .errors import ConfigError, StrategyParseError

logger = logging.getLogger(__name__)


class StrategyVerifier:
    """Accepts rendered strategy text or raises :class:`StrategyParseError`."""

    def verify(self, strategy_text: str) -> None:  # pragma: no cover - interface only
        raise NotImplementedError


class CommandStrategyVerifier(StrategyVerifier):
    """Runs a verifier command with the strategy text on stdin.

    Exit code zero means the strategy parsed; anything else is a grammar
    failure whose output is attached to the raised error.
    """

    def __init__(self, command: Sequence[str], *, timeout_seconds: float = 30.0) -> None:
        if not command:
            raise ValueError("command must not be empty")
        self.command = list(command)
        self.timeout_seconds = timeout_seconds

    def verify(self, strategy_text: str) -> None:
        try:
            completed = subprocess.run(
                self.command,
                input=strategy_text,
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=self.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise StrategyParseError(
                f"Verifier timed out after {self.timeout_seconds:g}s",
                strategy_text,
                detail=str(exc),
            ) from exc
        if completed.returncode != 0:
            output = "\n".join(part for part in (completed.stdout, completed.stderr) if part).strip()
            logger.debug("Verifier exited with %s", completed.returncode)
            raise StrategyParseError(
                f"Verifier exited with code {completed.returncode}",
                strategy_text,
                detail=output or None,
            )


class HttpStrategyVerifier(StrategyVerifier):
    """Posts the strategy text to a verifier service."""

    def __init__(self, url: str, *, timeout_seconds: float = 30.0, session: requests.Session | None = None) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def verify(self, strategy_text: str) -> None:
        try:
            response = self.session.post(
                self.url,
                data=strategy_text.encode("utf-8"),
                headers={"Content-Type": "text/plain; charset=utf-8"},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise StrategyParseError(
                f"Verifier service {self.url} unreachable", strategy_text, detail=str(exc)
            ) from exc
        if not response.ok:
            raise StrategyParseError(
                f"Verifier service rejected strategy ({response.status_code})",
                strategy_text,
                detail=response.text or None,
            )
        try:
            payload = response.json()
        except ValueError:
            return
        if isinstance(payload, dict) and payload.get("valid") is False:
            raise StrategyParseError(
                "Verifier service reported invalid strategy",
                strategy_text,
                detail=str(payload.get("error") or "") or None,
            )


def build_verifier(config: VerifierConfig) -> StrategyVerifier:
    """Construct the verifier configured by ``NSS_VERIFIER_COMMAND`` or ``NSS_VERIFIER_URL``."""

    if config.command:
        return CommandStrategyVerifier(config.command, timeout_seconds=config.timeout_seconds)
    if config.url:
        return HttpStrategyVerifier(config.url, timeout_seconds=config.timeout_seconds)
    raise ConfigError(
        {"verifier": "set NSS_VERIFIER_COMMAND or NSS_VERIFIER_URL to reach the strategy parser"}
    )


__all__ = [
    "StrategyVerifier",
    "CommandStrategyVerifier",
    "HttpStrategyVerifier",
    "build_verifier",
]
