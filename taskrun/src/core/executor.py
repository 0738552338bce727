"""Sequential plan interpreter.

The engine walks a :class:`~taskrun.src.core.types.Plan` step by step,
resolving ``$output[<capability>]`` references against earlier outputs of the
same pass, asking the gatekeeper before each capability call, and classifying
failures as critical or not.  State lives in an :class:`_ExecutionPass` that is
discarded once the pass is complete.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Protocol

from .memory import AuditLog
from .telemetry import Telemetry, emit
from .tools import CapabilityRegistry
from .types import ExecutionResult, Info, Outcome, Plan, ToolCall
from .validation import OUTPUT_REFERENCE

NON_CRITICAL_CAPABILITIES: FrozenSet[str] = frozenset({"reflect", "analyze_error"})
ERROR_ANALYZER = "analyze_error"


class ConfirmationGate(Protocol):
    def review(self, tool: str, input: str) -> bool:
        ...


def is_critical(name: str) -> bool:
    """Failures of every capability except reflection and error analysis are critical."""

    return name not in NON_CRITICAL_CAPABILITIES


def resolve_references(text: str, outputs: Dict[str, str]) -> str:
    def replace(match) -> str:
        key = match.group(1).strip()
        if key in outputs:
            return outputs[key]
        return f"(missing output for '{key}')"

    return OUTPUT_REFERENCE.sub(replace, text)


@dataclass
class _ExecutionPass:
    buffer: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)
    critical: int = 0

    def result(self) -> ExecutionResult:
        return ExecutionResult(
            success=self.critical == 0,
            output="".join(self.buffer).strip(),
            errors=list(self.errors),
            skipped=list(self.skipped),
        )


@dataclass
class ExecutionEngine:
    registry: CapabilityRegistry
    audit: AuditLog
    gatekeeper: Optional[ConfirmationGate] = None
    telemetry: Telemetry | None = None

    def execute(self, plan: Plan) -> ExecutionResult:
        state = _ExecutionPass()
        emit(self.telemetry, "executor.started", steps=len(plan))
        for index, step in enumerate(plan):
            if isinstance(step, Info):
                state.buffer.append(f"[INFO] {step.message}\n")
                self.audit.append("info", step.message)
                continue
            self._run_tool(index, step, state)
        result = state.result()
        emit(
            self.telemetry,
            "executor.finished",
            success=result.success,
            errors=len(result.errors),
            skipped=len(result.skipped),
        )
        return result

    def _run_tool(self, index: int, call: ToolCall, state: _ExecutionPass) -> None:
        resolved = resolve_references(call.input, state.outputs)
        if self.gatekeeper is not None and not self.gatekeeper.review(call.name, resolved):
            state.skipped.append(call.name)
            emit(self.telemetry, "executor.step_skipped", index=index, tool=call.name)
            return

        capability = self.registry.get(call.name)
        if capability is None:
            message = f"capability not found: {call.name}"
            state.errors.append(message)
            state.critical += 1
            self.audit.append("execution_error", message)
            emit(self.telemetry, "executor.step_failed", index=index, tool=call.name, critical=True, error=message)
            return

        emit(self.telemetry, "executor.step_started", index=index, tool=call.name)
        try:
            outcome = capability.execute(resolved)
        except Exception as exc:  # capability bugs surface as failed outcomes
            outcome = Outcome.fail(f"{type(exc).__name__}: {exc}")

        if outcome.success:
            if outcome.output is not None:
                state.outputs[call.name] = outcome.output
                state.buffer.append(outcome.output + "\n")
            self.audit.append(f"tool: {call.name}", f"[input] {resolved}\n[output] {outcome.output or ''}")
            emit(self.telemetry, "executor.step_completed", index=index, tool=call.name)
            return

        error = outcome.error or "Unknown error"
        critical = is_critical(call.name)
        state.errors.append(error)
        self.audit.append("execution_error", f"Tool '{call.name}' failed: {error}")
        emit(self.telemetry, "executor.step_failed", index=index, tool=call.name, critical=critical, error=error)
        if critical:
            state.critical += 1
            self._analyze_failure(error)

    def _analyze_failure(self, error: str) -> None:
        analyzer = self.registry.get(ERROR_ANALYZER)
        if analyzer is None:
            return
        try:
            analysis = analyzer.execute(error)
        except Exception as exc:  # analysis is best effort
            analysis = Outcome.fail(f"{type(exc).__name__}: {exc}")
        if analysis.success and analysis.output:
            self.audit.append("error_analysis", analysis.output)
            emit(self.telemetry, "executor.error_analysed", chars=len(analysis.output))
        else:
            emit(self.telemetry, "executor.error_analysis_failed", error=analysis.error)


__all__ = [
    "ConfirmationGate",
    "ExecutionEngine",
    "NON_CRITICAL_CAPABILITIES",
    "is_critical",
    "resolve_references",
]
