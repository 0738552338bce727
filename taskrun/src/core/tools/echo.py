from __future__ import annotations

from . import CapabilitySpec
from ..types import Outcome


class Echo:
    """Echo the input back with a prefix."""

    name = "echo"
    description = "Echoes the input back with a prefix"

    def execute(self, input: str) -> Outcome:
        return Outcome.ok(f"Echoed: {input}")

    def spec(self) -> CapabilitySpec:
        return CapabilitySpec(
            name=self.name,
            description=self.description,
            input_hint="Any text; returned with an 'Echoed:' prefix.",
            tags=("debug", "echo"),
        )


__all__ = ["Echo"]
