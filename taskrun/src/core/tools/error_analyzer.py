from __future__ import annotations

from . import Capability, CapabilitySpec
from ..types import Outcome

ANALYSIS_TEMPLATE = """You are an expert system administrator and developer. Analyze this command failure and suggest the exact commands needed to fix it AND complete the original goal.

ERROR OUTPUT:
{error}

Your fix_commands must include BOTH:
1. Commands to fix the immediate problem
2. Commands to retry/complete the original operation

For example:
- If git commit fails due to formatting -> ["cargo fmt", "git commit -m 'Fix formatting and commit changes'"]
- If npm install fails -> ["npm cache clean --force", "npm install"]
- If permission denied -> ["chmod +x script.sh", "./script.sh"]

Respond with ONLY a JSON object in this format:
{{
  "analysis": "Brief explanation of what went wrong",
  "fix_commands": ["fix_command", "retry_original_command"],
  "explanation": "Why these commands will fix the issue AND complete the goal"
}}

Be specific and actionable. Always include the retry/completion step after the fix.
"""


class ErrorAnalyzer:
    """Ask the LLM for structured fix suggestions for a failed step.

    The response is passed through verbatim; the replanner reads its
    ``fix_commands`` list from the audit log.
    """

    name = "analyze_error"
    description = "Analyzes command failures and suggests specific fixes"

    def __init__(self, llm: Capability) -> None:
        self.llm = llm

    def execute(self, input: str) -> Outcome:
        result = self.llm.execute(ANALYSIS_TEMPLATE.format(error=input))
        if not result.success:
            return Outcome.fail("Failed to analyze error with LLM")
        if not result.output:
            return Outcome.fail("No output from error analysis")
        if "fix_commands" not in result.output:
            return Outcome.fail("LLM did not provide structured fix suggestions")
        return Outcome.ok(result.output)

    def spec(self) -> CapabilitySpec:
        return CapabilitySpec(
            name=self.name,
            description=self.description,
            input_hint="Error message or command output to analyze",
            tags=("error", "analysis", "fix"),
        )


__all__ = ["ANALYSIS_TEMPLATE", "ErrorAnalyzer"]
