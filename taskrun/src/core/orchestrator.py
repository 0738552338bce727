"""Drive a goal through plan, simulate, execute, evaluate and replan."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .executor import ConfirmationGate, ExecutionEngine
from .memory import AuditLog
from .planner import Planner, default_plan
from .replanner import Replanner
from .simulation import simulate_plan
from .telemetry import Telemetry, emit, scope
from .tools import CapabilityRegistry
from .types import ExecutionResult, Feedback, Outcome, Plan, SimulationResult, TaskState

REFLECT = "reflect"
ERROR_ANALYSIS = "error_analysis"


class LoopState(str, Enum):
    PLANNING = "planning"
    SIMULATING = "simulating"
    EXECUTING = "executing"
    EVALUATING = "evaluating"
    REPLANNING = "replanning"
    DONE = "done"


@dataclass
class RunReport:
    """Everything one call to :meth:`Orchestrator.run` produced, in order."""

    goal: str
    plans: List[Plan] = field(default_factory=list)
    simulations: List[SimulationResult] = field(default_factory=list)
    results: List[ExecutionResult] = field(default_factory=list)
    feedbacks: List[Feedback] = field(default_factory=list)
    states: List[LoopState] = field(default_factory=list)
    reflections: List[str] = field(default_factory=list)

    @property
    def final_result(self) -> Optional[ExecutionResult]:
        return self.results[-1] if self.results else None

    @property
    def succeeded(self) -> bool:
        final = self.final_result
        return bool(final and final.success)

    @property
    def replans(self) -> int:
        return max(len(self.plans) - 1, 0)


@dataclass
class Orchestrator:
    registry: CapabilityRegistry
    audit: AuditLog = field(default_factory=AuditLog)
    planner: Planner | None = None
    replanner: Replanner | None = None
    gatekeeper: ConfirmationGate | None = None
    telemetry: Telemetry | None = None
    max_replans: int = 1
    reflect_after_run: bool = True

    _engine: ExecutionEngine = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._engine = ExecutionEngine(
            registry=self.registry,
            audit=self.audit,
            gatekeeper=self.gatekeeper,
            telemetry=self.telemetry,
        )

    def _enter(self, report: RunReport, state: LoopState) -> None:
        report.states.append(state)
        emit(self.telemetry, "orchestrator.state", state=state.value)

    def _plan(self, goal: str) -> Plan:
        if self.planner is None:
            self.audit.append("planning", "Using static hardcoded plan")
            return default_plan(goal)
        self.audit.append("planning", "Using dynamic LLM planner")
        return self.planner.generate_plan(self.audit, goal)

    def _execute(self, report: RunReport, plan: Plan) -> ExecutionResult:
        report.plans.append(plan)
        self._enter(report, LoopState.SIMULATING)
        report.simulations.append(simulate_plan(plan, self.registry))
        self._enter(report, LoopState.EXECUTING)
        result = self._engine.execute(plan)
        report.results.append(result)
        self._enter(report, LoopState.EVALUATING)
        feedback = Feedback.from_result(result)
        report.feedbacks.append(feedback)
        emit(self.telemetry, "orchestrator.feedback", score=feedback.score, success=result.success)
        self._reflect(report)
        return result

    def _reflect(self, report: RunReport) -> None:
        if not self.reflect_after_run:
            return
        reflector = self.registry.get(REFLECT)
        if reflector is None:
            return
        try:
            outcome = reflector.execute(self.audit.dump())
        except Exception as exc:  # reflection never ends a run
            outcome = Outcome.fail(f"{type(exc).__name__}: {exc}")
        if outcome.success and outcome.output:
            self.audit.append(REFLECT, outcome.output)
            report.reflections.append(outcome.output)
        else:
            emit(self.telemetry, "orchestrator.reflection_failed", error=outcome.error)

    def recovery_context(self) -> Optional[str]:
        """Most recent error analysis, else most recent reflection."""

        for label in (ERROR_ANALYSIS, REFLECT):
            entry = self.audit.latest(label)
            if entry is not None:
                return entry.content
        return None

    def run(self, goal: str) -> RunReport:
        with scope(self.telemetry, run_id=uuid.uuid4().hex[:12], goal=goal):
            return self._run(goal)

    def _run(self, goal: str) -> RunReport:
        report = RunReport(goal=goal)
        task = TaskState(goal=goal, current_state="Planning")
        emit(self.telemetry, "orchestrator.run_started", goal=goal)

        self._enter(report, LoopState.PLANNING)
        result = self._execute(report, self._plan(goal))

        cycles = 0
        while not result.success and cycles < self.max_replans and self.replanner is not None:
            context = self.recovery_context()
            if context is None:
                break
            self._enter(report, LoopState.REPLANNING)
            followup = self.replanner.generate_followup_plan(self.audit, goal, context)
            cycles += 1
            if followup is None:
                break
            result = self._execute(report, followup)

        task.set_output(result.output or "")
        self._enter(report, LoopState.DONE)
        emit(
            self.telemetry,
            "orchestrator.run_finished",
            success=result.success,
            replans=report.replans,
            summary=task.summary(),
        )
        return report


__all__ = ["LoopState", "Orchestrator", "RunReport"]
