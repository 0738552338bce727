"""Structural and referential checks for untrusted plan documents.

The validator works on the loosely-typed document decoded from model output,
before any typed conversion happens.  It never raises: every problem becomes a
:class:`PlanValidationError` value carrying a human-readable hint and, where it
helps, a corrected example fragment.  The results are diagnostics only; the
planner logs them and carries on with whatever converts cleanly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

OUTPUT_REFERENCE = re.compile(r"\$output\[([^\]\[]*)\]")
_OPEN_REFERENCE = "$output["

ZERO_ARGUMENT_CAPABILITIES = frozenset({"git_status"})
STEP_KEYS = frozenset({"type", "name", "input", "message"})

Hint = Tuple[str, Optional[Dict[str, Any]]]


@dataclass(frozen=True)
class PlanValidationError:
    """Base class of the closed set of plan validation warnings."""

    step_index: Optional[int] = field(default=None, kw_only=True)

    kind = "PlanValidationError"

    def hint(self) -> Hint:  # pragma: no cover - overridden by every kind
        return ("Invalid plan step.", None)

    def describe(self) -> str:
        message, _ = self.hint()
        where = f"step {self.step_index}: " if self.step_index is not None else ""
        return f"{where}{self.kind}: {message}"


@dataclass(frozen=True)
class UnknownStepType(PlanValidationError):
    value: str
    kind = "UnknownStepType"

    def hint(self) -> Hint:
        return (
            f"Unknown step type {self.value!r}. Only 'tool' or 'info' are valid.",
            {"type": "tool", "name": "example_tool", "input": "..."},
        )


@dataclass(frozen=True)
class DuplicateKey(PlanValidationError):
    key: str
    kind = "DuplicateKey"

    def hint(self) -> Hint:
        return (f"Duplicate key {self.key!r} in step. Only one of each key is allowed.", None)


@dataclass(frozen=True)
class MissingField(PlanValidationError):
    field_name: str
    kind = "MissingField"

    def hint(self) -> Hint:
        return (f"Missing required field {self.field_name!r}.", {self.field_name: "<required>"})


@dataclass(frozen=True)
class InvalidCapability(PlanValidationError):
    name: str
    kind = "InvalidCapability"

    def hint(self) -> Hint:
        return (
            f"Unknown capability {self.name!r}. Make sure it's registered.",
            {"name": self.name, "input": "..."},
        )


@dataclass(frozen=True)
class InvalidOutputReference(PlanValidationError):
    reference: str
    kind = "InvalidOutputReference"

    def hint(self) -> Hint:
        return (
            f"Reference to output of {self.reference!r}, which no earlier step produces.",
            {"reference": f"$output[{self.reference}]"},
        )


@dataclass(frozen=True)
class CapabilityInputMismatch(PlanValidationError):
    capability: str
    reason: str
    kind = "CapabilityInputMismatch"

    def hint(self) -> Hint:
        return (
            f"Capability input is invalid or unsafe: {self.reason}",
            {"tool": self.capability, "reason": self.reason},
        )


@dataclass(frozen=True)
class PatternError(PlanValidationError):
    description: str
    kind = "PatternError"

    def hint(self) -> Hint:
        return ("Malformed output reference pattern.", {"error": self.description})


@dataclass(frozen=True)
class StyleWarning(PlanValidationError):
    message: str
    kind = "StyleWarning"

    def hint(self) -> Hint:
        return (self.message, None)


def _steps_of(document: Any) -> Tuple[Optional[Sequence[Any]], List[PlanValidationError]]:
    if isinstance(document, Mapping):
        if "plan" not in document:
            return None, [MissingField("plan")]
        steps = document.get("plan")
    else:
        steps = document
    if isinstance(steps, (str, bytes)) or not isinstance(steps, Sequence):
        return None, [StyleWarning("Field 'plan' must be a list of steps.")]
    return steps, []


def _check_references(
    text: str,
    produced: Set[str],
    index: int,
) -> List[PlanValidationError]:
    errors: List[PlanValidationError] = []
    for match in OUTPUT_REFERENCE.finditer(text):
        key = match.group(1).strip()
        if not key:
            errors.append(PatternError("empty key in $output[] reference", step_index=index))
        elif key not in produced:
            errors.append(InvalidOutputReference(key, step_index=index))
    if text.count(_OPEN_REFERENCE) > len(OUTPUT_REFERENCE.findall(text)):
        errors.append(PatternError(f"unterminated $output[ reference in {text!r}", step_index=index))
    return errors


def _validate_tool_step(
    step: Mapping[str, Any],
    index: int,
    known: Collection[str],
    zero_arg: Collection[str],
    produced: Set[str],
) -> List[PlanValidationError]:
    errors: List[PlanValidationError] = []
    name = step.get("name")
    if not isinstance(name, str):
        return [MissingField("name", step_index=index)]

    if name not in known:
        errors.append(InvalidCapability(name, step_index=index))

    if "input" not in step:
        if name not in zero_arg:
            errors.append(MissingField("input", step_index=index))
    else:
        value = step["input"]
        if not isinstance(value, str):
            errors.append(
                CapabilityInputMismatch(name, "Field 'input' must be a string", step_index=index)
            )
        else:
            if "<" in value and ">" in value:
                errors.append(
                    CapabilityInputMismatch(
                        name,
                        "Input contains placeholder like <file>",
                        step_index=index,
                    )
                )
            errors.extend(_check_references(value, produced, index))

    produced.add(name)
    return errors


def validate_plan(
    document: Any,
    known_capabilities: Iterable[str],
    *,
    zero_arg_capabilities: Iterable[str] = ZERO_ARGUMENT_CAPABILITIES,
) -> List[PlanValidationError]:
    """Return every warning found in ``document``.

    ``document`` is either the decoded ``{"plan": [...]}`` mapping or the step
    list itself.
    """

    known = frozenset(known_capabilities)
    zero_arg = frozenset(zero_arg_capabilities)
    steps, errors = _steps_of(document)
    if steps is None:
        return errors
    if not steps:
        return [StyleWarning("Plan contains no steps.")]

    produced: Set[str] = set()
    for index, step in enumerate(steps):
        if not isinstance(step, Mapping):
            errors.append(
                CapabilityInputMismatch("<unknown>", "Each step must be a JSON object", step_index=index)
            )
            continue
        if "type" not in step:
            errors.append(MissingField("type", step_index=index))
            continue
        step_type = step["type"]
        if not isinstance(step_type, str):
            errors.append(
                CapabilityInputMismatch("<unknown>", "Field 'type' must be a string", step_index=index)
            )
            continue

        extra = sorted(str(key) for key in step.keys() if key not in STEP_KEYS)
        if extra:
            errors.append(
                StyleWarning(f"Unexpected keys ignored: {', '.join(extra)}", step_index=index)
            )

        if step_type == "tool":
            errors.extend(_validate_tool_step(step, index, known, zero_arg, produced))
        elif step_type == "info":
            if "message" not in step:
                errors.append(MissingField("message", step_index=index))
        else:
            errors.append(UnknownStepType(step_type, step_index=index))
    return errors


__all__ = [
    "CapabilityInputMismatch",
    "DuplicateKey",
    "InvalidCapability",
    "InvalidOutputReference",
    "MissingField",
    "OUTPUT_REFERENCE",
    "PatternError",
    "PlanValidationError",
    "StyleWarning",
    "UnknownStepType",
    "ZERO_ARGUMENT_CAPABILITIES",
    "validate_plan",
]
