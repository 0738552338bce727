from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path

import pytest
import requests

from taskrun.src.core.tools import CapabilityError, CapabilityRegistry, CapabilitySpec, describe_capability
from taskrun.src.core.tools import llm as llm_module
from taskrun.src.core.tools.echo import Echo
from taskrun.src.core.tools.error_analyzer import ErrorAnalyzer
from taskrun.src.core.tools.git_status import GitStatus
from taskrun.src.core.tools.goal_analyzer import (
    GoalAnalysisError,
    GoalAnalyzer,
    classify_context,
    parse_analysis,
)
from taskrun.src.core.tools.llm import OllamaBackend
from taskrun.src.core.tools.reflector import Reflector
from taskrun.src.core.tools.shell import RunCommand
from taskrun.src.core.types import Outcome


class _FakeResponse:
    def __init__(self, payload=None, *, status_error: Exception | None = None, json_error: bool = False) -> None:
        self.payload = payload
        self.status_error = status_error
        self.json_error = json_error

    def raise_for_status(self) -> None:
        if self.status_error is not None:
            raise self.status_error

    def json(self):
        if self.json_error:
            raise ValueError("Expecting value")
        return self.payload


def test_run_command_captures_output_and_ignores_exit_status() -> None:
    tool = RunCommand()
    assert tool.execute("echo hello") == Outcome.ok("hello")
    failing = tool.execute("echo oops 1>&2; exit 3")
    assert failing.success is True
    assert failing.output == "oops"


def test_run_command_reports_spawn_errors(tmp_path: Path) -> None:
    outcome = RunCommand(shell=str(tmp_path / "missing-shell")).execute("true")
    assert outcome.success is False
    assert outcome.error.startswith("Command execution failed:")


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_git_status_in_repository_and_outside(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LC_ALL", "C")
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    repo = tmp_path / "repo"
    repo.mkdir()
    subprocess.run(["git", "init", "-q"], cwd=repo, check=True)

    inside = GitStatus(cwd=str(repo)).execute("")
    assert inside.success is True
    assert "nothing to commit" in inside.output

    outside_dir = tmp_path / "plain"
    outside_dir.mkdir()
    outside = GitStatus(cwd=str(outside_dir)).execute("")
    assert outside.success is False
    assert outside.error.startswith("Git error:")


def test_echo_prefixes_input() -> None:
    assert Echo().execute("hi") == Outcome.ok("Echoed: hi")


def test_llm_posts_generate_request(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json, timeout))
        return _FakeResponse({"response": "  the answer \n"})

    monkeypatch.setattr(llm_module.requests, "post", fake_post)
    backend = OllamaBackend("tiny", endpoint="http://example.test/api/generate", timeout_s=5)

    assert backend.execute("question") == Outcome.ok("the answer")
    assert calls == [
        ("http://example.test/api/generate", {"model": "tiny", "prompt": "question", "stream": False}, 5)
    ]


@pytest.mark.parametrize(
    "response, expected",
    [
        (_FakeResponse({"done": True}), "LLM response missing 'response' field"),
        (_FakeResponse(json_error=True), "Failed to parse JSON: Expecting value"),
        (
            _FakeResponse(status_error=requests.exceptions.HTTPError("500 Server Error")),
            "Request failed: 500 Server Error",
        ),
    ],
)
def test_llm_failures_become_failed_outcomes(monkeypatch: pytest.MonkeyPatch, response, expected) -> None:
    monkeypatch.setattr(llm_module.requests, "post", lambda *args, **kwargs: response)
    assert OllamaBackend().execute("prompt") == Outcome.fail(expected)


def test_llm_connection_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(*args, **kwargs):
        raise requests.exceptions.ConnectionError("connection refused")

    monkeypatch.setattr(llm_module.requests, "post", refuse)
    outcome = OllamaBackend().execute("prompt")
    assert outcome.error == "Request failed: connection refused"


def test_reflector_wraps_memory_in_prompt(scripted_llm) -> None:
    llm = scripted_llm("## Summary\nIt worked.", Outcome.fail("down"))
    reflector = Reflector(llm)

    assert reflector.execute("[info] start") == Outcome.ok("## Summary\nIt worked.")
    assert "[info] start" in llm.prompts[0]
    assert reflector.execute("x") == Outcome.fail("LLM failed to generate reflection.")


def test_error_analyzer_requires_fix_commands(scripted_llm) -> None:
    good = json.dumps({"analysis": "a", "fix_commands": ["ls"], "explanation": "e"})
    analyzer = ErrorAnalyzer(scripted_llm(good, "just retry", "", Outcome.fail("down")))

    assert analyzer.execute("boom") == Outcome.ok(good)
    assert analyzer.execute("boom") == Outcome.fail("LLM did not provide structured fix suggestions")
    assert analyzer.execute("boom") == Outcome.fail("No output from error analysis")
    assert analyzer.execute("boom") == Outcome.fail("Failed to analyze error with LLM")


def test_goal_analysis_context_classification() -> None:
    assert classify_context("[execution_error] boom", is_replanning=False) == "initial_planning"
    assert classify_context("[execution_error] boom", is_replanning=True) == "error_recovery"
    assert classify_context("Command failed: x", is_replanning=True) == "error_recovery"
    assert classify_context("[info] fine", is_replanning=True) == "continuation"


def test_goal_analysis_parsing() -> None:
    payload = {
        "goal_type": "git_operations",
        "context_type": "continuation",
        "tool_sequence": ["run_command"],
        "examples": [{"description": "status", "json_plan": "{\"plan\": []}"}],
        "output_format": "json",
        "critical_rules": ["no conditionals"],
    }
    analysis = parse_analysis("<think>{ignored}</think>Here you go: " + json.dumps(payload) + " thanks")
    assert analysis.goal_type == "git_operations"
    assert analysis.examples[0].description == "status"
    assert "no conditionals" in analysis.render_guidance()

    with pytest.raises(GoalAnalysisError):
        parse_analysis("nothing here")
    with pytest.raises(GoalAnalysisError):
        parse_analysis('{"goal_type": 1}')


def test_goal_analyzer_capability_input_format(scripted_llm) -> None:
    payload = {"goal_type": "files", "context_type": "error_recovery"}
    llm = scripted_llm(json.dumps(payload))
    analyzer = GoalAnalyzer(llm)

    assert analyzer.execute("only goal") == Outcome.fail("Input must be: goal|memory_log|is_replanning")
    outcome = analyzer.execute("fix build|[error_analysis] a|b|true")
    assert outcome.success is True
    assert json.loads(outcome.output)["goal_type"] == "files"
    assert "CONTEXT_TYPE: error_recovery" in llm.prompts[0]
    assert "[error_analysis] a|b" in llm.prompts[0]


def test_registry_rejects_duplicates_and_describes_capabilities() -> None:
    registry = CapabilityRegistry([Echo()])
    with pytest.raises(CapabilityError):
        registry.register(Echo())
    registry.register(Echo(), overwrite=True)
    assert "echo" in registry
    assert len(registry) == 1

    class Bare:
        """Does a thing."""

        name = "bare"

        def execute(self, input: str) -> Outcome:
            return Outcome.ok(input)

    spec = describe_capability(Bare())
    assert spec == CapabilitySpec(name="bare", description="Does a thing.", input_hint="Plain text input.", tags=("generic",))
    assert registry.spec_for("missing") is None
    assert [spec.name for spec in registry.register(Bare()).specs()] == ["echo", "bare"]


def test_registry_rejects_nameless_capability() -> None:
    class Nameless:
        def execute(self, input: str) -> Outcome:
            return Outcome.ok(input)

    with pytest.raises(CapabilityError):
        CapabilityRegistry().register(Nameless())
