"""Backward compatibility probe: legacy strategy hashes restored on the current build."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Iterable, Optional

from .config import ProbeConfig
from .errors import ProbeError, RestorationFailedError, StrategyParseError
from .issue_report import parse_issue_report
from .models import CompatibilityReport, Deployment, RestorationOutcome
from .progress import NoOpProgress, ProgressObserver
from .session import DriverSession
from .telemetry import NoOpTelemetry, TelemetrySink, emit_safely
from .verifier import StrategyVerifier

logger = logging.getLogger(__name__)


class ProbeState(str, Enum):
    OPEN_LEGACY = "open_legacy"
    HARVEST_HASH = "harvest_hash"
    RESTORE_ON_CURRENT = "restore_on_current"
    VERIFY_SUCCESS = "verify_success"
    REPORT_FAILURE = "report_failure"


class CompatibilityProbe:
    """Restores strategies harvested from legacy deployments on the current app.

    ``legacy_session`` drives an older generator build and
    ``current_session`` drives the current application. A restoration
    failure or a strategy the verifier rejects ends the deployment's run.
    """

    probe_name = "compatibility"

    def __init__(
        self,
        legacy_session: DriverSession,
        current_session: DriverSession,
        verifier: StrategyVerifier,
        config: ProbeConfig,
        *,
        progress: ProgressObserver | None = None,
        telemetry: TelemetrySink | None = None,
        run_id: Optional[str] = None,
    ) -> None:
        self.legacy_session = legacy_session
        self.current_session = current_session
        self.verifier = verifier
        self.config = config
        self.progress = progress or NoOpProgress()
        self.telemetry = telemetry or NoOpTelemetry()
        self.run_id = run_id
        self.state: Optional[ProbeState] = None

    def run(
        self,
        legacy: Deployment,
        iterations: int | None = None,
        *,
        report: CompatibilityReport | None = None,
    ) -> CompatibilityReport:
        """Restore ``iterations`` strategies harvested from ``legacy``.

        Counts land on ``report`` as they happen, including on failure.
        """

        total = iterations if iterations is not None else self.config.compat_iterations
        if total <= 0:
            raise ValueError("iterations must be > 0")

        if report is None:
            report = CompatibilityReport(deployment=legacy.tag, iterations=total)
        self._emit("probe.started", legacy, {"iterations": total})
        iteration = 0
        try:
            self._enter(ProbeState.OPEN_LEGACY, legacy.tag)
            self.legacy_session.open(legacy)
            for iteration in range(1, total + 1):
                self._enter(ProbeState.HARVEST_HASH, legacy.tag)
                harvested = self.legacy_session.read_rendered_strategy(with_seed=False)
                strategy_hash = harvested.extract_hash()
                report.hash_lengths.append(len(strategy_hash))

                self.restore(strategy_hash, source=legacy.tag)
                self._enter(ProbeState.VERIFY_SUCCESS, legacy.tag)
                self._verify_restored(legacy)
                report.restored += 1

                self.progress(iteration, total)
                self.legacy_session.trigger_next_strategy()
        except ProbeError as exc:
            report.failure = str(exc)
            self._emit(
                "probe.failed",
                legacy,
                {"failure": exc.__class__.__name__, "iteration": iteration, "error": str(exc)},
            )
            raise

        logger.info("Restored %s strategies harvested from %s", report.restored, legacy.tag)
        self._emit("probe.completed", legacy, {"iterations": total, "restored": report.restored})
        return report

    def run_all(
        self,
        deployments: Iterable[Deployment],
        iterations: int | None = None,
        *,
        fail_fast: bool = False,
    ) -> Dict[str, CompatibilityReport]:
        """Run every legacy deployment; a failure only ends its own deployment unless ``fail_fast``."""

        total = iterations if iterations is not None else self.config.compat_iterations
        reports: Dict[str, CompatibilityReport] = {}
        for legacy in deployments:
            report = reports[legacy.tag] = CompatibilityReport(deployment=legacy.tag, iterations=total)
            try:
                self.run(legacy, total, report=report)
            except ProbeError as exc:
                logger.error(
                    "Compatibility check for %s failed after %s restored strategies: %s",
                    legacy.tag,
                    report.restored,
                    exc,
                )
                if fail_fast:
                    raise
        return reports

    def restore(self, strategy_hash: str, *, source: str = "adhoc") -> RestorationOutcome:
        """Open the current application at ``strategy_hash`` and read the outcome."""

        self._enter(ProbeState.RESTORE_ON_CURRENT, source)
        self.current_session.open(self.config.application, strategy_hash)
        outcome = self.current_session.read_restoration_outcome(self.config.failure_prefix)
        if not outcome.failed(self.config.failure_prefix):
            return outcome

        self._enter(ProbeState.REPORT_FAILURE, source)
        if not outcome.issue_url:
            outcome.issue_url = self.current_session.read_error_reporting_url()
        issue_report = parse_issue_report(
            outcome.issue_url,
            host=self.config.issue_tracker_host,
            path=self.config.issue_tracker_path,
        )
        logger.error("Restoring strategy from %s failed. Issue report body:\n%s", source, issue_report.body)
        raise RestorationFailedError(source, strategy_hash, outcome.notification, issue_report)

    def _verify_restored(self, legacy: Deployment) -> None:
        restored = self.current_session.read_rendered_strategy_text()
        try:
            self.verifier.verify(restored)
        except StrategyParseError as exc:
            header = f"---------- Strategy restored from {legacy.tag} URL can no longer be parsed ----------"
            raise exc.with_context(header) from exc

    def _enter(self, state: ProbeState, deployment: str) -> None:
        self.state = state
        logger.debug("%s: %s", deployment, state.value)

    def _emit(self, event: str, deployment: Deployment, extra: Dict[str, object]) -> None:
        if not self.run_id:
            return
        payload: Dict[str, object] = {
            "run_id": self.run_id,
            "probe": self.probe_name,
            "deployment": deployment.tag,
        }
        payload.update(extra)
        emit_safely(self.telemetry, event, payload)


__all__ = ["CompatibilityProbe", "ProbeState"]
