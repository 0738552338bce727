from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

import taskrun
from taskrun.src.core.config import RuntimeConfig
from taskrun.src.core.memory import AuditLog
from taskrun.src.core.telemetry import InMemorySink, JsonLinesSink, Telemetry
from taskrun.src.governance.gatekeeper import AutoApproveGatekeeper, ConsoleGatekeeper, Gatekeeper
from taskrun.src.runtime import build_orchestrator, build_telemetry


def test_console_gatekeeper_accepts_anything_but_no() -> None:
    answers = iter(["\n", "yes\n", "N\n", " n \n"])
    gate = ConsoleGatekeeper(input_fn=lambda: next(answers), stream=io.StringIO())
    assert [gate.review("echo", "hi") for _ in range(4)] == [True, True, False, False]


def test_console_gatekeeper_treats_end_of_input_as_confirmation() -> None:
    def closed() -> str:
        raise EOFError

    gate = ConsoleGatekeeper(input_fn=closed, stream=io.StringIO())
    assert gate.review("run_command", "ls") is True


def test_blocked_capabilities_are_never_run() -> None:
    assert Gatekeeper(blocked={"run_command"}).review("run_command", "rm -rf /") is False
    assert ConsoleGatekeeper(blocked={"run_command"}, stream=io.StringIO()).review("run_command", "ls") is False
    assert AutoApproveGatekeeper().review("run_command", "ls") is True


def test_audit_log_is_append_only_and_renders(telemetry: Telemetry, sink: InMemorySink) -> None:
    audit = AuditLog(telemetry=telemetry)
    audit.append("planning", "first")
    audit.log("reflect", "old")
    audit.append("reflect", "new")

    snapshot = audit.read_all()
    snapshot.clear()
    assert len(audit) == 3
    assert audit.latest("reflect").content == "new"
    assert audit.latest("missing") is None
    assert audit.dump() == "[planning] first\n[reflect] old\n[reflect] new"
    assert sink.names() == ["audit.append"] * 3


def test_json_lines_sink_appends_events(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "events.jsonl"
    telemetry = Telemetry(sinks=[JsonLinesSink(path)], context={"run": "r1"})
    telemetry.emit("one", value=1)
    telemetry.emit("two", path=tmp_path)

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["event"] for line in lines] == ["one", "two"]
    assert all(line["run"] == "r1" for line in lines)
    assert lines[1]["path"] == str(tmp_path)


def test_build_telemetry_without_sinks_is_disabled(tmp_path: Path) -> None:
    assert build_telemetry(None) is None
    assert build_telemetry(tmp_path / "t.jsonl") is not None


def test_runtime_config_validation() -> None:
    config = RuntimeConfig()
    assert config.model == "qwen3:8b"
    assert config.backend_url == "http://localhost:11434/api/generate"
    assert config.max_replans == 1
    with pytest.raises(ValueError):
        RuntimeConfig(max_replans=-1)
    with pytest.raises(ValueError):
        RuntimeConfig(request_timeout=0)


def test_build_orchestrator_wires_configuration(scripted_llm) -> None:
    llm = scripted_llm()
    orchestrator = build_orchestrator(
        RuntimeConfig(static_plan=True, auto_confirm=True, max_replans=3, use_goal_analysis=True),
        llm=llm,
    )
    assert orchestrator.planner is None
    assert isinstance(orchestrator.gatekeeper, AutoApproveGatekeeper)
    assert orchestrator.max_replans == 3
    assert "analyze_goal" in orchestrator.registry
    assert orchestrator.registry.get("llm") is llm

    interactive = build_orchestrator(RuntimeConfig(), llm=scripted_llm())
    assert isinstance(interactive.gatekeeper, ConsoleGatekeeper)
    assert interactive.planner is not None


def test_package_exports_are_lazy() -> None:
    from taskrun.src.core.orchestrator import Orchestrator

    assert taskrun.Orchestrator is Orchestrator
    assert "build_orchestrator" in dir(taskrun)
    with pytest.raises(AttributeError):
        getattr(taskrun, "NotAThing")
