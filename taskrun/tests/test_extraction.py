from __future__ import annotations

import json

import pytest

from taskrun.src.core.extraction import (
    PlanExtractionError,
    clean_output,
    convert_steps,
    extract_document,
    repair_document,
    strip_comments,
)
from taskrun.src.core.types import Info, Plan, ToolCall
from taskrun.src.core.validation import DuplicateKey

KNOWN = ["run_command", "git_status", "echo", "reflect"]


def test_reasoning_preamble_and_fences_are_removed() -> None:
    raw = (
        '<think>maybe {"plan": []}</think>\n'
        "## Plan\n"
        "```json\n"
        '{"plan": [{"type": "tool", "name": "echo", "input": "hi"}]}\n'
        "```\n"
        "---\n"
    )
    assert clean_output(raw) == '{"plan": [{"type": "tool", "name": "echo", "input": "hi"}]}'
    document = extract_document(raw, KNOWN)
    assert document.steps == [{"type": "tool", "name": "echo", "input": "hi"}]


def test_capability_used_as_type_is_rewritten() -> None:
    document = extract_document('{"plan": [{"type": "run_command", "input": "ls"}]}', KNOWN)
    assert document.steps == [{"type": "tool", "name": "run_command", "input": "ls"}]


def test_duplicate_keys_are_recorded() -> None:
    document = extract_document('{"plan": [{"type": "git_status", "name": "git_status"}]}', KNOWN)
    assert document.duplicate_keys == [(0, "name")]
    assert document.duplicate_key_warnings() == [DuplicateKey("name", step_index=0)]
    assert document.steps == [{"type": "tool", "name": "git_status"}]


def test_comments_and_trailing_commas_are_repaired() -> None:
    raw = """{"plan": [
      {"type": "info", "message": "keep // this and # that"}, // trailing comment
      /* block */ {"type": "tool", "name": "echo", "input": "x"},
    ]}"""
    document = extract_document(raw, KNOWN)
    assert document.steps == [
        {"type": "info", "message": "keep // this and # that"},
        {"type": "tool", "name": "echo", "input": "x"},
    ]


def test_disallowed_step_types_become_info() -> None:
    repaired = repair_document('{"plan": [{"type": "If", "message": "maybe"}]}', KNOWN)
    assert '"type": "info"' in repaired
    document = extract_document('{"plan": [{"type": "conditional", "message": "maybe"}]}', KNOWN)
    assert document.steps == [{"type": "info", "message": "maybe"}]


def test_greedy_match_used_when_lazy_candidate_is_truncated() -> None:
    raw = '{"plan": [{"type": "info", "message": "close ]} early"}, {"type": "info", "message": "b"}]}'
    document = extract_document(raw, KNOWN)
    assert [step["message"] for step in document.steps] == ["close ]} early", "b"]


def test_bare_array_is_wrapped() -> None:
    document = extract_document('Steps: [{"type": "info", "message": "hi"}]', KNOWN)
    assert document.data == {"plan": [{"type": "info", "message": "hi"}]}


def test_unparseable_output_raises() -> None:
    with pytest.raises(PlanExtractionError):
        extract_document("I cannot help with that.", KNOWN)
    with pytest.raises(PlanExtractionError):
        extract_document('{"plan": [ "unterminated }', KNOWN)


def test_strip_comments_respects_strings() -> None:
    assert strip_comments('a "b // c" // d') == 'a "b // c" '
    assert strip_comments('x /* y */ "z \\" # q" # w') == 'x  "z \\" # q" '


def test_convert_steps_drops_elements_that_do_not_fit() -> None:
    report = convert_steps(
        [
            {"type": "tool", "name": "echo"},
            {"type": "info"},
            {"type": "weird"},
            "string step",
            {"type": "info", "message": "ok", "extra": 1},
        ]
    )
    assert report.plan == Plan.of(ToolCall("echo", ""), Info("ok"))
    assert [index for index, _ in report.dropped] == [1, 2, 3]


def test_wire_document_decodes_to_the_same_plan() -> None:
    plan = Plan.of(
        Info("Inspect the # of files"),
        ToolCall("run_command", "ls -la | grep '.py' // list sources"),
        ToolCall("echo", 'said "$output[run_command]"'),
        Info("multi\nline, with trailing comma,"),
        ToolCall("git_status", ""),
        ToolCall("reflect", "Summarize {changes}"),
    )

    document = extract_document(json.dumps(plan.to_document()), KNOWN)

    assert document.duplicate_keys == []
    report = convert_steps(document.steps)
    assert report.dropped == []
    assert report.plan == plan
