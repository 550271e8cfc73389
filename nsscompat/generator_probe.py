"""Randomized strategy generation probe against the current build."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .config import ProbeConfig
from .errors import ConsistencyError, ConsoleNoiseError, ProbeError, StatisticalDriftError, StrategyParseError
from .models import ConsoleEntry, Deployment, GenerationReport, RenderedStrategy
from .progress import NoOpProgress, ProgressObserver
from .session import DriverSession
from .telemetry import NoOpTelemetry, TelemetrySink, emit_safely
from .verifier import StrategyVerifier

logger = logging.getLogger(__name__)


class StrategyGeneratorProbe:
    """Generates N random strategies and checks each one for soundness.

    Every iteration clicks "next strategy", records the URL hash length and
    hands the rendered text to the verifier. The health signals the page
    reports (validation errors, JSON round trip) must be clean. After the loop
    the mean hash length must stay inside the configured band and the browser
    console must be free of warnings.
    """

    probe_name = "generation"

    def __init__(
        self,
        session: DriverSession,
        verifier: StrategyVerifier,
        config: ProbeConfig,
        *,
        progress: ProgressObserver | None = None,
        telemetry: TelemetrySink | None = None,
        run_id: Optional[str] = None,
    ) -> None:
        self.session = session
        self.verifier = verifier
        self.config = config
        self.progress = progress or NoOpProgress()
        self.telemetry = telemetry or NoOpTelemetry()
        self.run_id = run_id

    def run(self, deployment: Deployment | None = None, iterations: int | None = None) -> GenerationReport:
        deployment = deployment or self.config.current_build
        total = iterations if iterations is not None else self.config.generation_count
        if total <= 0:
            raise ValueError("iterations must be > 0")

        report = GenerationReport(deployment=deployment.tag, iterations=total)
        self._emit("probe.started", deployment, {"iterations": total})
        iteration = 0
        try:
            self.session.open(deployment)
            for iteration in range(1, total + 1):
                self.session.trigger_next_strategy()
                strategy = self.session.read_rendered_strategy()
                report.hash_lengths.append(len(strategy.extract_hash()))
                self._verify(strategy)
                self._check_health(strategy)
                self.progress(iteration, total)
            self._check_mean_hash_length(report)
            report.console_entries = self._check_console()
        except ProbeError as exc:
            self._emit("probe.failed", deployment, _failure_payload(exc, iteration))
            raise

        logger.info(
            "Generated %s strategies on %s, mean hash length %.1f",
            total,
            deployment.tag,
            report.mean_hash_length,
        )
        self._emit(
            "probe.completed",
            deployment,
            {"iterations": total, "mean_hash_length": round(report.mean_hash_length, 2)},
        )
        return report

    def _verify(self, strategy: RenderedStrategy) -> None:
        try:
            self.verifier.verify(strategy.text)
        except StrategyParseError as exc:
            header = f"---------- Strategy with seed {strategy.seed} could not be parsed  ----------"
            raise exc.with_context(header, seed=strategy.seed) from exc

    def _check_health(self, strategy: RenderedStrategy) -> None:
        signals = self.session.read_health_signals()
        if signals.has_validation_errors:
            raise ConsistencyError(
                f"Strategy with seed {strategy.seed} must not have validation errors, got {signals.validation_errors}",
                strategy.text,
                seed=strategy.seed,
            )
        if not signals.round_trip_ok:
            raise ConsistencyError(
                f"After JSON encode/decode roundtrip the strategy with seed {strategy.seed} must be the same, "
                f"got {signals.round_trip_result!r}",
                strategy.text,
                seed=strategy.seed,
            )

    def _check_mean_hash_length(self, report: GenerationReport) -> None:
        mean = report.mean_hash_length
        expected = self.config.expected_hash_length
        tolerance = self.config.hash_length_tolerance
        if abs(mean - expected) > tolerance:
            raise StatisticalDriftError(mean, expected, tolerance)

    def _check_console(self) -> List[ConsoleEntry]:
        entries = list(self.session.read_console_log_entries(logging.WARNING))
        if entries:
            for entry in entries:
                logger.warning("Browser console: %s", entry.describe())
            raise ConsoleNoiseError(entries)
        return entries

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


def _failure_payload(exc: ProbeError, iteration: int) -> Dict[str, object]:
    payload: Dict[str, object] = {
        "failure": exc.__class__.__name__,
        "iteration": iteration,
        "error": str(exc),
    }
    seed = getattr(exc, "seed", None)
    if seed:
        payload["seed"] = seed
    return payload


__all__ = ["StrategyGeneratorProbe"]
