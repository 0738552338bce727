from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .memory import AuditLog
from .planner import PLAN_FORMAT_RULES, acquire_plan, render_capabilities
from .telemetry import Telemetry, emit
from .tools import Capability, CapabilityRegistry
from .types import Plan

REPLANNING_FAILED = "Replanning failed."

RECOVERY_RULES = """Recovery rules:
- Only include steps that continue or improve on the previous plan.
- If the reflection contains a JSON object with a "fix_commands" list, add one run_command step per fix command, in order, then retry the operation that originally failed.
- If the reflection says the goal was achieved, return exactly {"plan": [{"type": "info", "message": "Goal achieved"}]}.
- If nothing remains to be done, return an empty plan: {"plan": []}."""


@dataclass
class Replanner:
    """Produce a corrective follow-up plan after a failed execution."""

    llm: Capability
    registry: CapabilityRegistry
    telemetry: Telemetry | None = None
    label: str = "replanner"

    def build_prompt(self, goal: str, reflection: str, memory: str) -> str:
        sections = [
            "You are an autonomous agent replanner. Generate a follow-up plan in strict JSON.",
            f'The original goal: "{goal}"',
            f"The reflection:\n{reflection}",
            f"Memory:\n{memory or '(empty)'}",
            f"Available capabilities:\n{render_capabilities(self.registry)}",
            RECOVERY_RULES,
            PLAN_FORMAT_RULES,
        ]
        return "\n\n".join(sections) + "\n"

    def generate_followup_plan(self, audit: AuditLog, goal: str, reflection: str) -> Optional[Plan]:
        """Return the follow-up plan, or ``None`` when no further action is needed."""

        prompt = self.build_prompt(goal, reflection, audit.dump())
        result = acquire_plan(
            self.llm,
            prompt,
            self.registry,
            audit,
            label=self.label,
            failure_message=REPLANNING_FAILED,
            telemetry=self.telemetry,
        )
        if not result.failed and result.plan.is_empty():
            audit.log(self.label, "No further action required.")
            emit(self.telemetry, "replanner.no_action")
            return None
        return result.plan


__all__ = ["RECOVERY_RULES", "REPLANNING_FAILED", "Replanner"]
