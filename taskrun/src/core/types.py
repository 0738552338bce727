"""Shared type definitions for the taskrun runtime."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Info:
    """Informational note carried through a plan without side effects."""

    message: str


@dataclass(frozen=True)
class ToolCall:
    """Instruction to invoke a registered capability with a text input."""

    name: str
    input: str = ""


PlanStep = Union[Info, ToolCall]


@dataclass(frozen=True)
class Plan:
    """Ordered, immutable sequence of plan steps."""

    steps: Tuple[PlanStep, ...] = ()

    def __post_init__(self) -> None:
        # Accept any iterable of steps but store an immutable tuple.
        object.__setattr__(self, "steps", tuple(self.steps))

    @classmethod
    def of(cls, *steps: PlanStep) -> "Plan":
        return cls(steps=steps)

    @classmethod
    def degenerate(cls, message: str) -> "Plan":
        """Return the single ``Info`` plan used whenever acquisition fails."""

        return cls(steps=(Info(message),))

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[PlanStep]:
        return iter(self.steps)

    def iter_tool_calls(self) -> Iterator[ToolCall]:
        for step in self.steps:
            if isinstance(step, ToolCall):
                yield step

    def is_empty(self) -> bool:
        return not self.steps

    def to_document(self) -> Dict[str, Any]:
        """Render the plan in its JSON wire shape."""

        steps: List[Dict[str, Any]] = []
        for step in self.steps:
            if isinstance(step, Info):
                steps.append({"type": "info", "message": step.message})
            else:
                steps.append({"type": "tool", "name": step.name, "input": step.input})
        return {"plan": steps}


@dataclass
class SimulationResult:
    """Dry-run prediction for a plan."""

    predicted_outcome: str
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Outcome:
    """Result of a single capability invocation."""

    success: bool
    output: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, output: str) -> "Outcome":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str) -> "Outcome":
        return cls(success=False, error=error)


@dataclass
class ExecutionResult:
    """Aggregate result of one execution pass over a plan.

    ``success`` is true iff no *critical* failure happened; non-critical
    failures still appear in ``errors``.  ``skipped`` lists the capabilities
    the operator declined at the confirmation gate.
    """

    success: bool
    output: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Feedback:
    """Coarse 0-100 rating derived from an execution result."""

    score: int
    notes: str

    @classmethod
    def from_result(cls, result: ExecutionResult) -> "Feedback":
        if result.success:
            return cls(score=90, notes="Dynamic tool execution complete.")
        return cls(score=30, notes="Execution finished with critical failures.")


@dataclass(frozen=True)
class AuditEntry:
    """A single ``(label, content)`` record of the audit log."""

    label: str
    content: str

    def render(self) -> str:
        return f"[{self.label}] {self.content}"


@dataclass
class TaskState:
    """Goal bookkeeping for a run."""

    goal: str
    current_state: str = "Not started"
    output: Optional[str] = None

    def set_output(self, result: str) -> None:
        self.output = result
        self.current_state = "Completed"

    def is_complete(self) -> bool:
        return self.output is not None

    def summary(self) -> str:
        return f"Goal: {self.goal}\nStatus: {self.current_state}"


__all__ = [
    "AuditEntry",
    "ExecutionResult",
    "Feedback",
    "Info",
    "Outcome",
    "Plan",
    "PlanStep",
    "SimulationResult",
    "TaskState",
    "ToolCall",
]
