"""Environment-driven configuration for the probes."""
from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional
from urllib.parse import urlparse

from .errors import ConfigError
from .models import ROLE_APPLICATION, ROLE_GENERATOR, Deployment

CURRENT_TAG = "current"
APPLICATION_TAG = "app"

DEFAULT_CURRENT_BUILD = "target/testApp.html"
DEFAULT_APPLICATION_URL = "http://127.0.0.1:3000/index.html"
DEFAULT_LEGACY_DEPLOYMENTS = (
    "v1=https://janhrcek.cz/nss-strategy-compat/v1/,"
    "v2=https://janhrcek.cz/nss-strategy-compat/v2/"
)
DEFAULT_FAILURE_PREFIX = "Pokus o načtení strategie z URL se nezdařil"
DEFAULT_ISSUE_TRACKER_HOST = "github.com"
DEFAULT_ISSUE_TRACKER_PATH = "/RoboZonky/natural-strategy-setup/issues/new"

_SUPPORTED_BROWSERS = ("chromium", "firefox", "webkit")
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(slots=True)
class Selectors:
    """Stable element selectors the application exposes."""

    next_strategy: str = "#nextSeedButton"
    rendered_strategy: str = "#renderedStrategy"
    validation_errors: str = "#validationErrors"
    round_trip_result: str = "#encodingDecodingResult"
    generation_seed: str = "#seed"
    notification: str = "[role=alert]"
    error_reporting_link: str = "[role=alert] a"
    status_attribute: str = "data-status"

    @classmethod
    def for_application(cls) -> "Selectors":
        # The NSS application renders the restored strategy in its only textarea.
        return cls(rendered_strategy="textarea")


@dataclass(slots=True)
class SessionConfig:
    browser: str = field(default_factory=lambda: os.getenv("NSS_BROWSER", "chromium"))
    headless: bool = True
    timeout_ms: int = 30000
    selectors: Selectors = field(default_factory=Selectors)

    def for_application(self) -> "SessionConfig":
        return replace(self, selectors=Selectors.for_application())


@dataclass(slots=True)
class VerifierConfig:
    command: List[str] = field(default_factory=lambda: shlex.split(os.getenv("NSS_VERIFIER_COMMAND", "")))
    url: Optional[str] = field(default_factory=lambda: os.getenv("NSS_VERIFIER_URL") or None)
    timeout_seconds: float = 30.0


@dataclass(slots=True)
class ProbeConfig:
    current_build: Deployment
    application: Deployment
    legacy: Dict[str, Deployment] = field(default_factory=dict)
    session: SessionConfig = field(default_factory=SessionConfig)
    verifier: VerifierConfig = field(default_factory=VerifierConfig)
    generation_count: int = 1000
    compat_iterations: int = 200
    expected_hash_length: float = 2000.0
    hash_length_tolerance: float = 100.0
    failure_prefix: str = DEFAULT_FAILURE_PREFIX
    issue_tracker_host: str = field(
        default_factory=lambda: os.getenv("NSS_ISSUE_TRACKER_HOST") or DEFAULT_ISSUE_TRACKER_HOST
    )
    issue_tracker_path: str = field(
        default_factory=lambda: os.getenv("NSS_ISSUE_TRACKER_PATH") or DEFAULT_ISSUE_TRACKER_PATH
    )
    storage_root: Path = Path("artifacts/runs")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ProbeConfig":
        env = os.environ if environ is None else environ
        errors: Dict[str, str] = {}

        current_build = Deployment.from_location(
            CURRENT_TAG, env.get("NSS_CURRENT_BUILD") or DEFAULT_CURRENT_BUILD, ROLE_GENERATOR
        )

        app_url = env.get("NSS_APP_URL") or DEFAULT_APPLICATION_URL
        if not _is_http_url(app_url):
            errors["NSS_APP_URL"] = "must be an http(s) URL"
        application = Deployment.from_location(APPLICATION_TAG, app_url, ROLE_APPLICATION)

        legacy = _parse_legacy(env.get("NSS_LEGACY_DEPLOYMENTS", DEFAULT_LEGACY_DEPLOYMENTS), errors)

        browser = (env.get("NSS_BROWSER") or "chromium").strip().lower()
        if browser not in _SUPPORTED_BROWSERS:
            errors["NSS_BROWSER"] = f"must be one of {', '.join(_SUPPORTED_BROWSERS)}"
        headless = _parse_flag(env.get("NSS_HEADLESS"), True, "NSS_HEADLESS", errors)
        timeout_ms = _parse_number(env.get("NSS_TIMEOUT_MS"), 30000, "NSS_TIMEOUT_MS", errors, int)

        command_raw = env.get("NSS_VERIFIER_COMMAND") or ""
        try:
            command = shlex.split(command_raw)
        except ValueError as exc:
            errors["NSS_VERIFIER_COMMAND"] = f"cannot be split: {exc}"
            command = []
        verifier_url = env.get("NSS_VERIFIER_URL") or None
        if verifier_url and not _is_http_url(verifier_url):
            errors["NSS_VERIFIER_URL"] = "must be an http(s) URL"
        verifier_timeout = _parse_number(
            env.get("NSS_VERIFIER_TIMEOUT_SECONDS"), 30.0, "NSS_VERIFIER_TIMEOUT_SECONDS", errors, float
        )

        generation_count = _parse_number(env.get("NSS_GENERATION_COUNT"), 1000, "NSS_GENERATION_COUNT", errors, int)
        compat_iterations = _parse_number(env.get("NSS_COMPAT_ITERATIONS"), 200, "NSS_COMPAT_ITERATIONS", errors, int)
        expected = _parse_number(
            env.get("NSS_EXPECTED_HASH_LENGTH"), 2000.0, "NSS_EXPECTED_HASH_LENGTH", errors, float
        )
        tolerance = _parse_number(
            env.get("NSS_HASH_LENGTH_TOLERANCE"), 100.0, "NSS_HASH_LENGTH_TOLERANCE", errors, float
        )

        config = cls(
            current_build=current_build,
            application=application,
            legacy=legacy,
            session=SessionConfig(browser=browser, headless=headless, timeout_ms=timeout_ms),
            verifier=VerifierConfig(command=command, url=verifier_url, timeout_seconds=verifier_timeout),
            generation_count=generation_count,
            compat_iterations=compat_iterations,
            expected_hash_length=expected,
            hash_length_tolerance=tolerance,
            failure_prefix=env.get("NSS_FAILURE_PREFIX") or DEFAULT_FAILURE_PREFIX,
            issue_tracker_host=(env.get("NSS_ISSUE_TRACKER_HOST") or DEFAULT_ISSUE_TRACKER_HOST).strip().lower(),
            issue_tracker_path=env.get("NSS_ISSUE_TRACKER_PATH") or DEFAULT_ISSUE_TRACKER_PATH,
            storage_root=Path(env.get("NSS_STORAGE_ROOT") or "artifacts/runs"),
        )
        errors.update(config.validate())
        if errors:
            raise ConfigError(errors)
        return config

    def validate(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if self.generation_count <= 0:
            errors["generation_count"] = "must be > 0"
        if self.compat_iterations <= 0:
            errors["compat_iterations"] = "must be > 0"
        if self.expected_hash_length <= 0:
            errors["expected_hash_length"] = "must be > 0"
        if self.hash_length_tolerance < 0:
            errors["hash_length_tolerance"] = "must be >= 0"
        if self.session.timeout_ms <= 0:
            errors["timeout_ms"] = "must be > 0"
        if not self.failure_prefix.strip():
            errors["failure_prefix"] = "must not be empty"
        if not self.issue_tracker_host or "/" in self.issue_tracker_host:
            errors["issue_tracker_host"] = "must be a bare host name"
        if not self.issue_tracker_path.startswith("/"):
            errors["issue_tracker_path"] = "must start with '/'"
        return errors

    def deployment(self, tag: str) -> Deployment:
        deployments = self.deployments()
        try:
            return deployments[tag]
        except KeyError:
            raise ConfigError({"deployment": f"unknown deployment tag {tag!r}"}) from None

    def deployments(self) -> Dict[str, Deployment]:
        resolved = {CURRENT_TAG: self.current_build, APPLICATION_TAG: self.application}
        resolved.update(self.legacy)
        return resolved


def _parse_legacy(raw: str, errors: Dict[str, str]) -> Dict[str, Deployment]:
    legacy: Dict[str, Deployment] = {}
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        tag, sep, url = chunk.partition("=")
        tag = tag.strip()
        url = url.strip()
        key = f"NSS_LEGACY_DEPLOYMENTS.{tag or '?'}"
        if not sep or not tag or not url:
            errors[key] = "entries must look like tag=url"
            continue
        if tag in (CURRENT_TAG, APPLICATION_TAG):
            errors[key] = "tag is reserved"
            continue
        if tag in legacy:
            errors[key] = "tag listed more than once"
            continue
        if not _is_http_url(url):
            errors[key] = "must be an http(s) URL"
            continue
        legacy[tag] = Deployment.from_location(tag, url, ROLE_GENERATOR)
    return legacy


def _parse_flag(value: Optional[str], default: bool, name: str, errors: Dict[str, str]) -> bool:
    if value is None or not value.strip():
        return default
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    errors[name] = "must be a boolean flag"
    return default


def _parse_number(value, default, name: str, errors: Dict[str, str], kind):
    if value is None or not str(value).strip():
        return default
    try:
        return kind(value)
    except (TypeError, ValueError):
        errors[name] = f"must be a {kind.__name__}"
        return default


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


__all__ = [
    "CURRENT_TAG",
    "APPLICATION_TAG",
    "DEFAULT_FAILURE_PREFIX",
    "DEFAULT_ISSUE_TRACKER_HOST",
    "DEFAULT_ISSUE_TRACKER_PATH",
    "Selectors",
    "SessionConfig",
    "VerifierConfig",
    "ProbeConfig",
]
