import json
from pathlib import Path
from urllib.parse import quote, urlencode

import pytest

from nsscompat.compat_probe import CompatibilityProbe, ProbeState
from nsscompat.config import DEFAULT_FAILURE_PREFIX, ProbeConfig
from nsscompat.errors import IssueReportError, RestorationFailedError, StrategyParseError
from nsscompat.models import ROLE_APPLICATION, Deployment, RenderedStrategy, RestorationOutcome
from nsscompat.observability import RunObservability

V1 = Deployment("v1", "https://janhrcek.cz/nss-strategy-compat/v1/")
V2 = Deployment("v2", "https://janhrcek.cz/nss-strategy-compat/v2/")
SUCCESS = "Strategie byla úspěšně načtena z URL"
ISSUE_BASE = "https://github.com/RoboZonky/natural-strategy-setup/issues/new"


def _issue_url(body: str, base: str = ISSUE_BASE) -> str:
    params = urlencode({"title": "Nepodařilo se načíst strategii z URL", "body": body}, quote_via=quote)
    return f"{base}?{params}"


class FakeLegacySession:
    def __init__(self, hashes, per_deployment: dict | None = None) -> None:
        self.hashes = list(hashes)
        self.per_deployment = per_deployment or {}
        self.index = 0
        self.opened: list[str] = []

    def open(self, deployment, strategy_hash=None) -> None:
        self.opened.append(deployment.tag)
        if deployment.tag in self.per_deployment:
            self.hashes = list(self.per_deployment[deployment.tag])
            self.index = 0

    def read_rendered_strategy(self, *, with_seed: bool = True) -> RenderedStrategy:
        strategy_hash = self.hashes[self.index % len(self.hashes)]
        return RenderedStrategy(text=f"- Obecná nastavení\n# dummy#{strategy_hash}\n")

    def trigger_next_strategy(self) -> None:
        self.index += 1


class FakeApplicationSession:
    def __init__(self, failures: dict | None = None, restored_text: str = "- Obecná nastavení\n") -> None:
        self.failures = failures or {}
        self.restored_text = restored_text
        self.opened: list[tuple[str, str | None]] = []

    def open(self, deployment, strategy_hash=None) -> None:
        self.opened.append((deployment.tag, strategy_hash))

    def read_restoration_outcome(self, failure_prefix: str) -> RestorationOutcome:
        strategy_hash = self.opened[-1][1]
        if strategy_hash in self.failures:
            return RestorationOutcome(
                notification=f"{failure_prefix}. Prosím nahlaste chybu.",
                issue_url=self.failures[strategy_hash],
            )
        return RestorationOutcome(notification=SUCCESS)

    def read_error_reporting_url(self) -> str:
        return self.failures[self.opened[-1][1]]

    def read_rendered_strategy_text(self) -> str:
        return self.restored_text


class StubVerifier:
    def __init__(self) -> None:
        self.verified: list[str] = []

    def verify(self, strategy_text: str) -> None:
        self.verified.append(strategy_text)
        if "INVALID" in strategy_text:
            raise StrategyParseError("no viable alternative", strategy_text)


def _config(**overrides) -> ProbeConfig:
    values = dict(
        current_build=Deployment("current", "file:///build/testApp.html"),
        application=Deployment("app", "http://127.0.0.1:3000/index.html", ROLE_APPLICATION),
        legacy={"v1": V1, "v2": V2},
        compat_iterations=3,
    )
    values.update(overrides)
    return ProbeConfig(**values)


def test_harvested_hashes_are_restored_in_order() -> None:
    legacy = FakeLegacySession(["h1", "h2", "h3"])
    current = FakeApplicationSession()
    verifier = StubVerifier()
    progress: list[tuple[int, int]] = []

    probe = CompatibilityProbe(
        legacy, current, verifier, _config(), progress=lambda done, total: progress.append((done, total))
    )
    report = probe.run(V1)

    assert legacy.opened == ["v1"]
    assert current.opened == [("app", "h1"), ("app", "h2"), ("app", "h3")]
    assert legacy.index == 3
    assert report.restored == 3
    assert report.passed
    assert len(verifier.verified) == 3
    assert progress[-1] == (3, 3)
    assert probe.state is ProbeState.VERIFY_SUCCESS


def test_restoration_failure_stops_with_decoded_issue_body() -> None:
    body = "Strategie z URL:\nh2\nChyba: Problem with the given value"
    legacy = FakeLegacySession(["h1", "h2", "h3"])
    current = FakeApplicationSession(failures={"h2": _issue_url(body)})
    probe = CompatibilityProbe(legacy, current, StubVerifier(), _config())

    with pytest.raises(RestorationFailedError) as excinfo:
        probe.run(V1)

    assert excinfo.value.issue_report.body == body
    assert excinfo.value.strategy_hash == "h2"
    assert excinfo.value.deployment == "v1"
    assert DEFAULT_FAILURE_PREFIX in excinfo.value.notification
    assert len(current.opened) == 2
    assert probe.state is ProbeState.REPORT_FAILURE


def test_issue_link_must_target_tracker() -> None:
    legacy = FakeLegacySession(["h1"])
    current = FakeApplicationSession(
        failures={"h1": _issue_url("body", base="http://example.test/issues/new")}
    )
    probe = CompatibilityProbe(legacy, current, StubVerifier(), _config())

    with pytest.raises(IssueReportError):
        probe.run(V1)


def test_unparseable_restored_strategy_is_fatal() -> None:
    legacy = FakeLegacySession(["h1", "h2"])
    current = FakeApplicationSession(restored_text="INVALID restored strategy")
    probe = CompatibilityProbe(legacy, current, StubVerifier(), _config())

    with pytest.raises(StrategyParseError) as excinfo:
        probe.run(V1)
    assert "restored from v1" in str(excinfo.value)
    assert "INVALID restored strategy" in str(excinfo.value)
    assert len(current.opened) == 1


def test_malformed_hash_produces_issue_report() -> None:
    body = "Strategie z URL:\n%%%garbage\nChyba: Invalid base64"
    current = FakeApplicationSession(failures={"%%%garbage": _issue_url(body)})
    probe = CompatibilityProbe(FakeLegacySession(["unused"]), current, StubVerifier(), _config())

    with pytest.raises(RestorationFailedError) as excinfo:
        probe.restore("%%%garbage")

    report = excinfo.value.issue_report
    assert report.url.startswith("https://github.com/")
    assert report.body.strip()


def test_run_all_keeps_going_after_a_failed_deployment() -> None:
    legacy = FakeLegacySession([], per_deployment={"v1": ["bad"], "v2": ["h2"]})
    current = FakeApplicationSession(failures={"bad": _issue_url("diagnostics")})
    probe = CompatibilityProbe(legacy, current, StubVerifier(), _config())

    reports = probe.run_all([V1, V2], iterations=1)

    assert not reports["v1"].passed
    assert "diagnostics" in (reports["v1"].failure or "")
    assert reports["v2"].passed
    assert legacy.opened == ["v1", "v2"]


def test_run_all_fail_fast_raises() -> None:
    legacy = FakeLegacySession(["bad"])
    current = FakeApplicationSession(failures={"bad": _issue_url("diagnostics")})
    probe = CompatibilityProbe(legacy, current, StubVerifier(), _config())

    with pytest.raises(RestorationFailedError):
        probe.run_all([V1, V2], iterations=1, fail_fast=True)
    assert legacy.opened == ["v1"]


def test_telemetry_records_completion(tmp_path: Path) -> None:
    telemetry = RunObservability(tmp_path)
    probe = CompatibilityProbe(
        FakeLegacySession(["h1"]),
        FakeApplicationSession(),
        StubVerifier(),
        _config(),
        telemetry=telemetry,
        run_id="RUN-COMPAT-TEST",
    )

    probe.run(V2, iterations=2)

    metrics_path = tmp_path / "RUN-COMPAT-TEST" / "observability" / "metrics.json"
    metrics = json.loads(metrics_path.read_text(encoding="utf-8"))
    assert metrics["probes"]["compatibility:v2"]["status"] == "Completed"
    assert metrics["probes"]["compatibility:v2"]["restored"] == 2


def test_failed_deployment_report_keeps_partial_progress() -> None:
    legacy = FakeLegacySession([], per_deployment={"v1": ["h1", "h22", "bad"], "v2": ["h2"]})
    current = FakeApplicationSession(failures={"bad": _issue_url("diagnostics")})
    probe = CompatibilityProbe(legacy, current, StubVerifier(), _config())

    reports = probe.run_all([V1, V2], iterations=3)

    failed = reports["v1"].to_dict()
    assert failed["restored"] == 2
    assert failed["max_hash_length"] == 3
    assert failed["passed"] is False
    assert "diagnostics" in failed["failure"]
    assert reports["v2"].restored == 3
