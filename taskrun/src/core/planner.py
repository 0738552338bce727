"""Plan acquisition: prompt the backend and turn its answer into a Plan.

:func:`acquire_plan` is the pipeline shared by :class:`Planner` and the
replanner.  It never raises; every stage leaves a trace in the audit log under
the caller's label and any failure collapses into a degenerate single-step
plan so the orchestrator always has something executable.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import List, Optional

from .extraction import PlanExtractionError, clean_output, convert_steps, extract_document
from .memory import AuditLog
from .telemetry import Telemetry, emit
from .tools import Capability, CapabilityRegistry
from .tools.goal_analyzer import GoalAnalysisError, GoalAnalyzer
from .types import Info, Plan, ToolCall
from .validation import PlanValidationError, validate_plan

PLANNING_FAILED = "Planning failed."
PARSE_FAILED = "Plan acquisition failed: could not parse model output."

PLAN_FORMAT_RULES = """Respond with ONLY a JSON object of this exact shape:
{"plan": [
  {"type": "tool", "name": "<capability>", "input": "<text input>"},
  {"type": "info", "message": "<note for the operator>"}
]}

Rules:
- Valid step types are "tool" and "info" only. Never use conditional types such as "if", "when" or "check".
- A tool step names one of the available capabilities in "name"; never put a capability name in "type".
- Every tool step needs an "input" string (git_status takes no input).
- Use concrete values; never leave placeholders such as <file> in an input.
- To pass an earlier tool's output into a later step write $output[<capability>], e.g. "$output[run_command]".
- Steps run strictly in order; there are no branches or loops."""


@dataclass
class AcquisitionResult:
    """What :func:`acquire_plan` produced and whether it had to give up."""

    plan: Plan
    warnings: List[PlanValidationError] = field(default_factory=list)
    failed: bool = False


def render_capabilities(registry: CapabilityRegistry) -> str:
    return "\n".join(
        f"- {spec.name}: {spec.description} (input: {spec.input_hint})" for spec in registry.specs()
    )


def _log_warning(audit: AuditLog, label: str, warning: PlanValidationError) -> None:
    _, example = warning.hint()
    text = f"Validation warning: {warning.describe()}"
    if example is not None:
        text += f"\nExample: {json.dumps(example)}"
    audit.log(label, text)


def acquire_plan(
    llm: Capability,
    prompt: str,
    registry: CapabilityRegistry,
    audit: AuditLog,
    *,
    label: str,
    failure_message: str = PLANNING_FAILED,
    telemetry: Telemetry | None = None,
) -> AcquisitionResult:
    """Run prompt → backend → extraction → validation → conversion."""

    emit(telemetry, "planner.requested", label=label, prompt_chars=len(prompt))
    try:
        outcome = llm.execute(prompt)
    except Exception as exc:  # backend boundary: any failure becomes a degenerate plan
        error: Optional[str] = f"{type(exc).__name__}: {exc}"
        raw = ""
    else:
        error = None if outcome.success else (outcome.error or "Unknown error")
        raw = outcome.output or ""
    if error is not None:
        audit.log(label, f"Planning failed: {error}")
        emit(telemetry, "planner.backend_failed", label=label, error=error)
        return AcquisitionResult(plan=Plan.degenerate(failure_message), failed=True)

    audit.log(label, f"Raw model output:\n{raw}")
    cleaned = clean_output(raw)
    audit.log(label, f"Cleaned output:\n{cleaned}")

    try:
        document = extract_document(raw, registry.names())
    except PlanExtractionError as exc:
        audit.log(label, f"Plan extraction failed: {exc}\n[raw]\n{raw}\n[cleaned]\n{cleaned}")
        emit(telemetry, "planner.extraction_failed", label=label, error=str(exc))
        return AcquisitionResult(plan=Plan.degenerate(PARSE_FAILED), failed=True)
    audit.log(label, f"Extracted plan document:\n{document.text}")

    warnings = document.duplicate_key_warnings() + validate_plan(document.data, registry.names())
    for warning in warnings:
        _log_warning(audit, label, warning)

    report = convert_steps(document.steps)
    for index, reason in report.dropped:
        audit.log(label, f"Dropped step {index}: {reason}")

    emit(
        telemetry,
        "planner.plan_acquired",
        label=label,
        steps=len(report.plan),
        warnings=len(warnings),
        dropped=len(report.dropped),
    )
    return AcquisitionResult(plan=report.plan, warnings=warnings)


def default_plan(goal: str) -> Plan:
    """Fixed plan used when no backend-driven planner is configured."""

    return Plan.of(
        Info(f"Understand goal: {goal}"),
        ToolCall("git_status", ""),
        ToolCall("reflect", "Summarize changes"),
        ToolCall("echo", "Task complete."),
        Info("Generate output"),
    )


@dataclass
class Planner:
    """Backend-driven planner producing an initial plan for a goal."""

    llm: Capability
    registry: CapabilityRegistry
    telemetry: Telemetry | None = None
    goal_analyzer: GoalAnalyzer | None = None
    label: str = "planning"

    def _guidance(self, audit: AuditLog, goal: str, memory: str) -> str:
        if self.goal_analyzer is None:
            return ""
        try:
            analysis = self.goal_analyzer.analyze(goal, memory, is_replanning=False)
        except GoalAnalysisError as exc:
            audit.log(self.label, f"Goal analysis failed: {exc}")
            return ""
        audit.log(self.label, f"Goal analysis: {analysis.goal_type} ({analysis.context_type})")
        return analysis.render_guidance()

    def build_prompt(self, goal: str, memory: str, guidance: str = "") -> str:
        sections = [
            "You are an agentic planner. Create the list of steps that reaches the goal below.",
            f"Goal:\n{goal}",
            f"Based on prior memory:\n{memory or '(empty)'}",
            f"Available capabilities:\n{render_capabilities(self.registry)}",
        ]
        if guidance:
            sections.append(f"Guidance for this goal:\n{guidance}")
        sections.append(PLAN_FORMAT_RULES)
        return "\n\n".join(sections) + "\n"

    def generate_plan(self, audit: AuditLog, goal: str) -> Plan:
        memory = audit.dump()
        prompt = self.build_prompt(goal, memory, self._guidance(audit, goal, memory))
        result = acquire_plan(
            self.llm,
            prompt,
            self.registry,
            audit,
            label=self.label,
            telemetry=self.telemetry,
        )
        return result.plan


__all__ = [
    "AcquisitionResult",
    "PARSE_FAILED",
    "PLANNING_FAILED",
    "PLAN_FORMAT_RULES",
    "Planner",
    "acquire_plan",
    "default_plan",
    "render_capabilities",
]
