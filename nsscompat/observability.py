"""JSONL event log and metrics summary for probe runs."""
from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from .telemetry import TelemetrySink

logger = logging.getLogger(__name__)


def new_run_id(kind: str) -> str:
    return f"RUN-{kind.upper()}-{uuid.uuid4().hex[:8].upper()}"


class RunObservability(TelemetrySink):
    """Appends probe events to ``<run>/observability/logs.jsonl`` and keeps ``metrics.json``."""

    def __init__(self, storage_root: Path | str = "artifacts/runs") -> None:
        self.storage_root = Path(storage_root)
        self._metrics_cache: Dict[str, Dict[str, Any]] = {}

    # ------------------------------------------------------------------ public
    def emit(self, event: str, payload: Dict[str, object]) -> None:
        run_id = payload.get("run_id")
        if not isinstance(run_id, str) or not run_id:
            logger.debug("Telemetry event %s missing run_id; dropping", event)
            return

        entry = dict(payload)
        entry.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        entry["event"] = event
        self._append_log(run_id, entry)

        metrics = self._metrics_cache.setdefault(run_id, {"run_id": run_id, "probes": {}})
        self._update_metrics(metrics, entry)
        self._persist_metrics(run_id, metrics)

    def write_report(self, run_id: str, name: str, report: Dict[str, object]) -> Path:
        path = self.run_dir(run_id) / "reports" / f"{name}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(report, indent=2, ensure_ascii=False), encoding="utf-8")
        return path

    def run_dir(self, run_id: str) -> Path:
        return self.storage_root / run_id

    # ---------------------------------------------------------------- internal
    def _append_log(self, run_id: str, entry: Dict[str, object]) -> None:
        logs_path = self._logs_path(run_id)
        logs_path.parent.mkdir(parents=True, exist_ok=True)
        with logs_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, ensure_ascii=False) + "\n")

    def _update_metrics(self, metrics: Dict[str, Any], entry: Dict[str, object]) -> None:
        event = str(entry.get("event", ""))
        key = f"{entry.get('probe', 'unknown')}:{entry.get('deployment', 'unknown')}"
        probe = metrics["probes"].setdefault(key, {})
        if event == "probe.started":
            probe["status"] = "Running"
            probe["started_at"] = entry.get("timestamp")
            probe["iterations"] = entry.get("iterations")
        elif event == "probe.completed":
            probe["status"] = "Completed"
            probe["completed_at"] = entry.get("timestamp")
            if "mean_hash_length" in entry:
                probe["mean_hash_length"] = entry.get("mean_hash_length")
            if "restored" in entry:
                probe["restored"] = entry.get("restored")
        elif event == "probe.failed":
            probe["status"] = "Failed"
            probe["failure"] = entry.get("failure")
            probe["iteration"] = entry.get("iteration")
            probe["error"] = entry.get("error")

    def _persist_metrics(self, run_id: str, metrics: Dict[str, Any]) -> None:
        metrics_path = self._logs_path(run_id).parent / "metrics.json"
        metrics_path.write_text(json.dumps(metrics, indent=2), encoding="utf-8")

    def _logs_path(self, run_id: str) -> Path:
        return self.run_dir(run_id) / "observability" / "logs.jsonl"


__all__ = ["RunObservability", "new_run_id"]
