import json
from pathlib import Path

from nsscompat.observability import RunObservability, new_run_id
from nsscompat.telemetry import NoOpTelemetry, TelemetrySink, emit_safely


def test_new_run_id_is_tagged_by_kind() -> None:
    run_id = new_run_id("compat")
    assert run_id.startswith("RUN-COMPAT-")
    assert len(run_id.rsplit("-", 1)[1]) == 8
    assert new_run_id("compat") != run_id


def test_events_are_appended_and_summarised(tmp_path: Path) -> None:
    telemetry = RunObservability(tmp_path)
    base = {"run_id": "RUN-GENERATE-1", "probe": "generation", "deployment": "current"}

    telemetry.emit("probe.started", {**base, "iterations": 10})
    telemetry.emit("probe.completed", {**base, "iterations": 10, "mean_hash_length": 2003.5})

    observability_dir = tmp_path / "RUN-GENERATE-1" / "observability"
    lines = (observability_dir / "logs.jsonl").read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["event"] for line in lines] == ["probe.started", "probe.completed"]
    assert all("timestamp" in json.loads(line) for line in lines)

    metrics = json.loads((observability_dir / "metrics.json").read_text(encoding="utf-8"))
    probe = metrics["probes"]["generation:current"]
    assert probe["status"] == "Completed"
    assert probe["iterations"] == 10
    assert probe["mean_hash_length"] == 2003.5


def test_events_without_run_id_are_dropped(tmp_path: Path) -> None:
    telemetry = RunObservability(tmp_path)
    telemetry.emit("probe.started", {"probe": "generation"})
    assert list(tmp_path.iterdir()) == []


def test_write_report(tmp_path: Path) -> None:
    telemetry = RunObservability(tmp_path)
    path = telemetry.write_report("RUN-COMPAT-2", "compatibility", {"v1": {"passed": True}})
    assert path == tmp_path / "RUN-COMPAT-2" / "reports" / "compatibility.json"
    assert json.loads(path.read_text(encoding="utf-8")) == {"v1": {"passed": True}}


def test_emit_safely_swallows_sink_errors() -> None:
    class BrokenSink(TelemetrySink):
        def emit(self, event, payload):
            raise RuntimeError("disk full")

    emit_safely(BrokenSink(), "probe.started", {"run_id": "RUN-X"})


def test_noop_sink_accepts_events(tmp_path: Path) -> None:
    sink = NoOpTelemetry()
    assert isinstance(sink, TelemetrySink)
    emit_safely(sink, "probe.started", {"run_id": "RUN-X"})
    assert list(tmp_path.iterdir()) == []
