"""Telemetry sink interface used by the probes."""
from __future__ import annotations

import logging
from typing import Dict

logger = logging.getLogger(__name__)


class TelemetrySink:
    """Consumes structured probe events."""

    def emit(self, event: str, payload: Dict[str, object]) -> None:  # pragma: no cover - interface only
        raise NotImplementedError


class NoOpTelemetry(TelemetrySink):
    """Sink used when a probe runs without a run id or storage."""

    def emit(self, event: str, payload: Dict[str, object]) -> None:  # pragma: no cover - intentionally empty
        return


def emit_safely(sink: TelemetrySink, event: str, payload: Dict[str, object]) -> None:
    """Forward an event, logging instead of raising when the sink fails."""

    try:
        sink.emit(event, payload)
    except Exception:  # pragma: no cover - telemetry best effort
        logger.exception("telemetry emit failed: %s", event)


__all__ = ["TelemetrySink", "NoOpTelemetry", "emit_safely"]
