from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Iterable, List

import pytest

# Ensure the project root is importable when running tests from a checkout
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from taskrun.src.core.memory import AuditLog  # noqa: E402
from taskrun.src.core.telemetry import InMemorySink, Telemetry  # noqa: E402
from taskrun.src.core.types import Outcome  # noqa: E402


class ScriptedLLM:
    """Stand-in for the ``llm`` capability replaying canned responses."""

    name = "llm"
    description = "Scripted language model"

    def __init__(self, responses: Iterable[Outcome | str]) -> None:
        self.responses: List[Outcome] = [
            Outcome.ok(item) if isinstance(item, str) else item for item in responses
        ]
        self.prompts: List[str] = []

    def execute(self, input: str) -> Outcome:
        self.prompts.append(input)
        if not self.responses:
            return Outcome.fail("no scripted response left")
        return self.responses.pop(0)


@pytest.fixture
def scripted_llm() -> Callable[..., ScriptedLLM]:
    def factory(*responses: Outcome | str) -> ScriptedLLM:
        return ScriptedLLM(responses)

    return factory


@pytest.fixture
def sink() -> InMemorySink:
    return InMemorySink()


@pytest.fixture
def telemetry(sink: InMemorySink) -> Telemetry:
    return Telemetry(sinks=[sink])


@pytest.fixture
def audit() -> AuditLog:
    return AuditLog()
