"""Meta-planning capability that tailors planner guidance to a goal.

The analyzer asks the model to classify the goal, suggest a capability
sequence, and produce worked example plans plus goal-specific rules.  The
planner embeds the result in its prompt; a failed analysis is never fatal.
"""

from __future__ import annotations

import json
from typing import List

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import Capability, CapabilitySpec
from ..extraction import REASONING_DELIMITER
from ..types import Outcome

CONTEXT_INITIAL = "initial_planning"
CONTEXT_ERROR_RECOVERY = "error_recovery"
CONTEXT_CONTINUATION = "continuation"

_ERROR_MARKERS = ("error_analysis", "execution_error", "Command failed")


class GoalAnalysisError(RuntimeError):
    """Raised when the model's goal analysis cannot be obtained or parsed."""


class PlanExample(BaseModel):
    """A worked example plan, serialised as a JSON string."""

    description: str
    json_plan: str


class GoalAnalysis(BaseModel):
    """Structured guidance returned by the goal analyzer."""

    model_config = ConfigDict(extra="ignore")

    goal_type: str
    context_type: str
    tool_sequence: List[str] = Field(default_factory=list)
    examples: List[PlanExample] = Field(default_factory=list)
    output_format: str = ""
    critical_rules: List[str] = Field(default_factory=list)

    def render_guidance(self) -> str:
        lines = [f"Goal type: {self.goal_type} ({self.context_type})"]
        if self.tool_sequence:
            lines.append("Suggested capability sequence: " + " -> ".join(self.tool_sequence))
        if self.critical_rules:
            lines.append("Rules for this goal:")
            lines.extend(f"- {rule}" for rule in self.critical_rules)
        if self.examples:
            lines.append("Example plans:")
            for example in self.examples:
                lines.append(f"- {example.description}: {example.json_plan}")
        if self.output_format:
            lines.append(f"Output format: {self.output_format}")
        return "\n".join(lines)


ANALYSIS_TEMPLATE = """You are a meta-planning agent that analyzes goals and generates appropriate planning patterns.

GOAL: {goal}
CONTEXT_TYPE: {context_type}
MEMORY_LOG:
{memory}

TASK: Analyze this goal and context to generate:
1. Goal type (git_operations, file_management, error_recovery, api_calls, etc.)
2. Appropriate tool sequence for this goal type (simple string array)
3. 2-3 concrete examples in JSON format
4. Custom output format instructions
5. Context-specific critical rules

AVAILABLE_TOOLS: {tools}

OUTPUT ONLY this JSON structure:
{{
  "goal_type": "descriptive_goal_type",
  "context_type": "{context_type}",
  "tool_sequence": ["run_command", "reflect", "run_command"],
  "examples": [
    {{
      "description": "Example description",
      "json_plan": "{{\\"plan\\": [{{\\"type\\": \\"tool\\", \\"name\\": \\"run_command\\", \\"input\\": \\"git status\\"}}, {{\\"type\\": \\"info\\", \\"message\\": \\"Goal completed\\"}}]}}"
    }}
  ],
  "output_format": "Specific instructions for JSON output format",
  "critical_rules": ["Rule 1", "Rule 2", "Rule 3"]
}}

Format requirements for json_plan examples:
- Only "tool" (with "name" and "input") and "info" (with "message") step types are valid.
- Never write {{"type": "run_command"}}; write {{"type": "tool", "name": "run_command"}}.
- Never use conditional step types such as "if", "then", "else", "when", "test" or "check".
- Plans are linear sequences and must be valid JSON strings with escaped quotes.

For error_recovery context: extract the fix commands from the error_analysis entry in the memory log, run each fix command, then retry the original failed operation.
"""


def classify_context(memory_log: str, is_replanning: bool) -> str:
    if not is_replanning:
        return CONTEXT_INITIAL
    if any(marker in memory_log for marker in _ERROR_MARKERS):
        return CONTEXT_ERROR_RECOVERY
    return CONTEXT_CONTINUATION


def parse_analysis(response: str) -> GoalAnalysis:
    """Parse the first ``{`` to last ``}`` span after any reasoning preamble."""

    text = response.rpartition(REASONING_DELIMITER)[2] if REASONING_DELIMITER in response else response
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        raise GoalAnalysisError(f"No JSON found in response: {response}")
    payload = text[start : end + 1]
    try:
        return GoalAnalysis.model_validate_json(payload)
    except ValidationError as exc:
        raise GoalAnalysisError(f"Failed to parse goal analysis JSON: {exc} | JSON: {payload}") from exc


class GoalAnalyzer:
    name = "analyze_goal"
    description = (
        "Analyzes goals and generates appropriate planning patterns, examples, and output formats dynamically."
    )

    def __init__(self, llm: Capability, tools: List[str] | None = None) -> None:
        self.llm = llm
        self.tools = list(tools or ["run_command", "reflect", "analyze_error"])

    def analyze(self, goal: str, memory_log: str, is_replanning: bool = False) -> GoalAnalysis:
        context_type = classify_context(memory_log, is_replanning)
        prompt = ANALYSIS_TEMPLATE.format(
            goal=goal,
            context_type=context_type,
            memory=memory_log,
            tools=json.dumps(self.tools),
        )
        try:
            result = self.llm.execute(prompt)
        except Exception as exc:
            raise GoalAnalysisError(f"LLM execution failed: {type(exc).__name__}: {exc}") from exc
        if not result.success:
            raise GoalAnalysisError(f"LLM execution failed: {result.error}")
        return parse_analysis(result.output or "")

    def execute(self, input: str) -> Outcome:
        # goal|memory_log|is_replanning; the memory log may itself contain '|'.
        goal, sep, rest = input.partition("|")
        memory_log, sep2, flag = rest.rpartition("|")
        if not sep or not sep2:
            return Outcome.fail("Input must be: goal|memory_log|is_replanning")
        try:
            analysis = self.analyze(goal, memory_log, flag.strip() == "true")
        except GoalAnalysisError as exc:
            return Outcome.fail(str(exc))
        return Outcome.ok(analysis.model_dump_json(indent=2))

    def spec(self) -> CapabilitySpec:
        return CapabilitySpec(
            name=self.name,
            description=self.description,
            input_hint="goal|memory_log|is_replanning (e.g., 'commit changes|[memory]|false')",
            tags=("meta", "planning", "analysis"),
        )


__all__ = [
    "CONTEXT_CONTINUATION",
    "CONTEXT_ERROR_RECOVERY",
    "CONTEXT_INITIAL",
    "GoalAnalysis",
    "GoalAnalysisError",
    "GoalAnalyzer",
    "PlanExample",
    "classify_context",
    "parse_analysis",
]
