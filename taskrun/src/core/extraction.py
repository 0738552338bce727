"""Turn free-form model output into a plan document and then into a Plan.

Model output is treated as an untrusted document.  The pipeline here is:
drop any reasoning preamble, strip markdown noise, locate the ``{"plan": [...]}``
object, rewrite the common format mistakes, decode it, check its shape against
a JSON schema and only then convert the individual steps into typed
:class:`~taskrun.src.core.types.PlanStep` values.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Sequence, Tuple, Union

from jsonschema import Draft202012Validator
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .types import Info, Plan, PlanStep, ToolCall
from .validation import DuplicateKey, PlanValidationError


class PlanExtractionError(RuntimeError):
    """Raised when no plan document can be recovered from model output."""


REASONING_DELIMITER = "</think>"

DISALLOWED_STEP_TYPES = (
    "conditional",
    "if",
    "then",
    "else",
    "when",
    "test",
    "check",
    "loop",
    "branch",
    "while",
    "for",
)

PLAN_DOCUMENT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["plan"],
    "properties": {
        "plan": {
            "type": "array",
            "items": {"type": "object"},
        }
    },
}

_SCHEMA_VALIDATOR = Draft202012Validator(PLAN_DOCUMENT_SCHEMA)

_FENCE = re.compile(r"^\s*(```|~~~)")
_HEADING = re.compile(r"^\s*#{1,6}(\s|$)")
_DIVIDER = re.compile(r"^\s*([-*=_])\1{2,}\s*$")
_PLAN_LAZY = re.compile(r'\{\s*"plan"\s*:\s*\[[\s\S]*?\]\s*\}')
_PLAN_GREEDY = re.compile(r'\{\s*"plan"\s*:\s*\[[\s\S]*\]\s*\}')
_BARE_ARRAY = re.compile(r"\[\s*\{[\s\S]*\}\s*\]")
_TRAILING_COMMA = re.compile(r",(\s*[\]}])")


class ToolStepModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["tool"]
    name: str
    input: Optional[str] = None


class InfoStepModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["info"]
    message: str


_STEP_ADAPTER: TypeAdapter[Union[ToolStepModel, InfoStepModel]] = TypeAdapter(
    Annotated[Union[ToolStepModel, InfoStepModel], Field(discriminator="type")]
)


@dataclass
class ExtractedDocument:
    """A decoded plan document plus what was learnt while decoding it."""

    data: Dict[str, Any]
    text: str
    duplicate_keys: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def steps(self) -> List[Any]:
        return list(self.data.get("plan") or [])

    def duplicate_key_warnings(self) -> List[PlanValidationError]:
        return [DuplicateKey(key, step_index=index) for index, key in self.duplicate_keys]


@dataclass
class ConversionReport:
    plan: Plan
    dropped: List[Tuple[int, str]] = field(default_factory=list)


def strip_reasoning(raw: str) -> str:
    """Keep only the text after the last reasoning delimiter, if any."""

    if REASONING_DELIMITER in raw:
        return raw.rpartition(REASONING_DELIMITER)[2]
    return raw


def clean_output(raw: str) -> str:
    """Remove fences, headings, dividers and blank lines."""

    lines: List[str] = []
    for line in strip_reasoning(raw).splitlines():
        if not line.strip():
            continue
        if _FENCE.match(line) or _HEADING.match(line) or _DIVIDER.match(line):
            continue
        lines.append(line.rstrip())
    return "\n".join(lines)


def strip_comments(text: str) -> str:
    """Drop ``//``, ``/* */`` and ``#`` comments that sit outside strings."""

    out: List[str] = []
    i = 0
    in_string = False
    length = len(text)
    while i < length:
        char = text[i]
        if in_string:
            out.append(char)
            if char == "\\" and i + 1 < length:
                out.append(text[i + 1])
                i += 2
                continue
            if char == '"':
                in_string = False
            i += 1
            continue
        if char == '"':
            in_string = True
            out.append(char)
            i += 1
            continue
        if text.startswith("//", i) or char == "#":
            end = text.find("\n", i)
            i = length if end == -1 else end
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = length if end == -1 else end + 2
            continue
        out.append(char)
        i += 1
    return "".join(out)


def repair_document(text: str, known_capabilities: Iterable[str]) -> str:
    """Rewrite the format mistakes models make most often."""

    repaired = strip_comments(text)
    for name in sorted(set(known_capabilities), key=len, reverse=True):
        if name in {"tool", "info"}:
            continue
        repaired = re.sub(
            r'"type"\s*:\s*"' + re.escape(name) + r'"',
            f'"type": "tool", "name": "{name}"',
            repaired,
        )
    disallowed = "|".join(re.escape(token) for token in DISALLOWED_STEP_TYPES)
    repaired = re.sub(
        r'"type"\s*:\s*"(?:' + disallowed + r')"',
        '"type": "info"',
        repaired,
        flags=re.IGNORECASE,
    )
    return _TRAILING_COMMA.sub(r"\1", repaired)


def candidate_documents(cleaned: str) -> List[str]:
    """Return plan-shaped substrings of ``cleaned`` in order of preference."""

    candidates: List[str] = []
    for pattern in (_PLAN_LAZY, _PLAN_GREEDY):
        match = pattern.search(cleaned)
        if match and match.group(0) not in candidates:
            candidates.append(match.group(0))
    if not candidates:
        bare = _BARE_ARRAY.search(cleaned)
        if bare:
            candidates.append('{"plan": ' + bare.group(0) + "}")
    return candidates


def decode_document(text: str) -> Tuple[Dict[str, Any], List[Tuple[int, str]]]:
    """Decode ``text`` recording duplicate keys per step."""

    def hook(pairs: Sequence[Tuple[str, Any]]) -> Dict[str, Any]:
        seen: Dict[str, Any] = {}
        duplicated: List[str] = []
        for key, value in pairs:
            if key in seen:
                duplicated.append(key)
            seen[key] = value
        if duplicated:
            seen["__step_duplicates__"] = duplicated
        return seen

    data = json.loads(text, object_pairs_hook=hook)
    if not isinstance(data, dict):
        raise PlanExtractionError("plan document is not a JSON object")
    data.pop("__step_duplicates__", None)
    duplicates: List[Tuple[int, str]] = []
    for index, step in enumerate(data.get("plan") or []):
        if isinstance(step, dict):
            duplicates.extend((index, key) for key in step.pop("__step_duplicates__", []))
    return data, duplicates


def check_shape(data: Any) -> None:
    errors = sorted(_SCHEMA_VALIDATOR.iter_errors(data), key=lambda err: list(err.path))
    if errors:
        first = errors[0]
        location = "/".join(str(part) for part in first.path) or "<root>"
        raise PlanExtractionError(f"plan document failed schema validation at {location}: {first.message}")


def extract_document(raw: str, known_capabilities: Iterable[str]) -> ExtractedDocument:
    """Recover the plan document from ``raw`` model output.

    Raises :class:`PlanExtractionError` when nothing plan-shaped can be
    decoded.
    """

    known = list(known_capabilities)
    cleaned = clean_output(raw)
    candidates = candidate_documents(cleaned)
    if not candidates:
        raise PlanExtractionError('no {"plan": [...]} object found in model output')

    last_error: Optional[Exception] = None
    for candidate in candidates:
        repaired = repair_document(candidate, known)
        try:
            data, duplicates = decode_document(repaired)
            check_shape(data)
        except (json.JSONDecodeError, PlanExtractionError) as exc:
            last_error = exc
            continue
        return ExtractedDocument(data=data, text=repaired, duplicate_keys=duplicates)
    raise PlanExtractionError(f"could not decode plan document: {last_error}")


def convert_steps(steps: Sequence[Any]) -> ConversionReport:
    """Convert loosely-typed step mappings into a :class:`Plan`.

    Elements that do not fit either step shape are dropped and reported.
    """

    converted: List[PlanStep] = []
    dropped: List[Tuple[int, str]] = []
    for index, raw_step in enumerate(steps):
        try:
            model = _STEP_ADAPTER.validate_python(raw_step)
        except ValidationError as exc:
            reasons = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or '<step>'}: {error['msg']}"
                for error in exc.errors()
            )
            dropped.append((index, reasons))
            continue
        if isinstance(model, ToolStepModel):
            converted.append(ToolCall(name=model.name, input=model.input or ""))
        else:
            converted.append(Info(message=model.message))
    return ConversionReport(plan=Plan(steps=converted), dropped=dropped)


__all__ = [
    "ConversionReport",
    "DISALLOWED_STEP_TYPES",
    "ExtractedDocument",
    "InfoStepModel",
    "PLAN_DOCUMENT_SCHEMA",
    "PlanExtractionError",
    "REASONING_DELIMITER",
    "ToolStepModel",
    "candidate_documents",
    "check_shape",
    "clean_output",
    "convert_steps",
    "decode_document",
    "extract_document",
    "repair_document",
    "strip_comments",
    "strip_reasoning",
]
