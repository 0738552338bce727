from __future__ import annotations

from . import Capability, CapabilitySpec
from ..types import Outcome

REFLECTION_TEMPLATE = """You are a reflection module embedded in an autonomous agent runtime.

Given the following memory log, produce a structured reflection that summarizes what the agent tried to do, what happened, what failed (if anything), and what could be improved next time.

---

# Reflection Summary

## Memory Log
{memory}

## What was the agent trying to do?
-

## What steps did the agent take?
-

## What worked well?
-

## What failed or could be improved?
-

## Suggested improvements:
-
"""


class Reflector:
    """Summarise an audit dump into a markdown reflection using the LLM."""

    name = "reflect"
    description = "Analyzes a memory log and generates a reflection summary using LLM."

    def __init__(self, llm: Capability) -> None:
        self.llm = llm

    def execute(self, input: str) -> Outcome:
        result = self.llm.execute(REFLECTION_TEMPLATE.format(memory=input))
        if not result.success:
            return Outcome.fail("LLM failed to generate reflection.")
        return Outcome.ok(result.output or "(no output)")

    def spec(self) -> CapabilitySpec:
        return CapabilitySpec(
            name=self.name,
            description=self.description,
            input_hint="Pass memory log and goal as plain text.",
            tags=("introspection", "reflection", "llm"),
        )


__all__ = ["REFLECTION_TEMPLATE", "Reflector"]
