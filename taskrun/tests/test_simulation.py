from __future__ import annotations

from taskrun.src.core.simulation import simulate_plan
from taskrun.src.core.tools import CapabilityRegistry
from taskrun.src.core.tools.echo import Echo
from taskrun.src.core.types import Info, Plan, ToolCall


def test_simulation_reports_known_and_unknown_capabilities() -> None:
    registry = CapabilityRegistry([Echo()])
    plan = Plan.of(Info("start"), ToolCall("echo", "hi"), ToolCall("build_docs", "x"))

    result = simulate_plan(plan, registry)

    assert result.predicted_outcome == "Plan contains 3 step(s) and will attempt 1 tool call(s)."
    assert result.warnings[0].startswith("will invoke capability 'echo': Echoes the input back")
    assert result.warnings[1] == "capability 'build_docs' not registered"


def test_simulation_is_repeatable() -> None:
    registry = CapabilityRegistry([Echo()])
    plan = Plan.of(ToolCall("echo", "hi"))
    assert simulate_plan(plan, registry) == simulate_plan(plan, registry)
