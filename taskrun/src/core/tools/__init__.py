from __future__ import annotations

from dataclasses import dataclass, field, replace
from threading import Lock
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from ..types import Outcome


class CapabilityError(RuntimeError):
    """Raised when the capability registry is misused."""


@runtime_checkable
class Capability(Protocol):
    """A named unit the execution engine can invoke with a text input."""

    name: str
    description: str

    def execute(self, input: str) -> Outcome:  # pragma: no cover - interface
        ...


@dataclass(frozen=True)
class CapabilitySpec:
    """Planning-time description of a capability."""

    name: str
    description: str
    input_hint: str = ""
    tags: Sequence[str] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_hint": self.input_hint,
            "tags": list(self.tags),
        }


def _normalise_spec(spec: CapabilitySpec) -> CapabilitySpec:
    return replace(
        spec,
        name=str(spec.name),
        description=str(spec.description).strip() or str(spec.name),
        input_hint=str(spec.input_hint or "").strip() or "Plain text input.",
        tags=tuple(str(tag) for tag in spec.tags or ()),
    )


def describe_capability(capability: Any, *, override_name: str | None = None) -> CapabilitySpec:
    """Return a :class:`CapabilitySpec` for ``capability``.

    Capabilities may implement ``spec()``.  If absent, a generic specification
    is synthesised from the ``name`` and ``description`` attributes (falling
    back to the class name and docstring).
    """

    if hasattr(capability, "spec"):
        spec = capability.spec()
        if not isinstance(spec, CapabilitySpec):
            raise TypeError("capability.spec() must return a CapabilitySpec instance")
    else:
        name = getattr(capability, "name", capability.__class__.__name__)
        description = getattr(capability, "description", None) or (
            getattr(capability, "__doc__", "") or str(name)
        )
        spec = CapabilitySpec(
            name=str(name),
            description=str(description).strip(),
            input_hint="Plain text input.",
            tags=("generic",),
        )

    spec = _normalise_spec(spec)
    if override_name:
        spec = replace(spec, name=str(override_name))
    return spec


class CapabilityRegistry:
    """Name-keyed mapping of capabilities.

    Registration happens up front; afterwards the registry is only read, which
    keeps it safe to share between threads.
    """

    def __init__(self, capabilities: Iterable[Capability] | None = None) -> None:
        self._capabilities: Dict[str, Capability] = {}
        self._lock = Lock()
        for capability in capabilities or ():
            self.register(capability)

    def register(self, capability: Capability, *, name: str | None = None, overwrite: bool = False) -> "CapabilityRegistry":
        key = str(name or getattr(capability, "name", "") or "").strip()
        if not key:
            raise CapabilityError("capability must expose a non-empty name")
        if not callable(getattr(capability, "execute", None)):
            raise CapabilityError(f"capability {key!r} does not implement execute()")
        with self._lock:
            if key in self._capabilities and not overwrite:
                raise CapabilityError(f"capability {key!r} is already registered")
            self._capabilities[key] = capability
        return self

    def get(self, name: str) -> Optional[Capability]:
        return self._capabilities.get(name)

    def names(self) -> List[str]:
        return list(self._capabilities)

    def specs(self) -> List[CapabilitySpec]:
        return [describe_capability(cap, override_name=name) for name, cap in self._capabilities.items()]

    def spec_for(self, name: str) -> Optional[CapabilitySpec]:
        capability = self.get(name)
        if capability is None:
            return None
        return describe_capability(capability, override_name=name)

    def as_mapping(self) -> Mapping[str, Capability]:
        return dict(self._capabilities)

    def __contains__(self, name: object) -> bool:
        return name in self._capabilities

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._capabilities)


__all__ = [
    "Capability",
    "CapabilityError",
    "CapabilityRegistry",
    "CapabilitySpec",
    "describe_capability",
]
