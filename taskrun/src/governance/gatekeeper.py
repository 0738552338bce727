from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Callable, Collection, TextIO


def confirmation_prompt(tool: str, input: str) -> str:
    return f"Execute {tool}: `{input}`? (Y/n): "


@dataclass(slots=True)
class Gatekeeper:
    """Base confirmation gate consulted before every capability invocation.

    ``review`` returns ``True`` to run the step and ``False`` to skip it.  The
    base gate approves everything except the capabilities listed in
    ``blocked``, which are always skipped.
    """

    blocked: Collection[str] = field(default_factory=frozenset)

    def review(self, tool: str, input: str) -> bool:
        return tool not in self.blocked


@dataclass(slots=True)
class AutoApproveGatekeeper(Gatekeeper):
    """Gate used for unattended runs (``--yes``)."""


@dataclass(slots=True)
class ConsoleGatekeeper(Gatekeeper):
    """Ask the operator on the console before each step.

    Any answer other than ``n``/``N`` confirms, including an empty line and
    end of input.
    """

    input_fn: Callable[[], str] | None = None
    stream: TextIO | None = None

    def _read(self) -> str:
        if self.input_fn is not None:
            return self.input_fn()
        return sys.stdin.readline()

    def review(self, tool: str, input: str) -> bool:
        if tool in self.blocked:
            return False
        out = self.stream or sys.stdout
        out.write(confirmation_prompt(tool, input))
        out.flush()
        try:
            answer = self._read()
        except EOFError:
            return True
        return answer.strip() not in {"n", "N"}


__all__ = ["AutoApproveGatekeeper", "ConsoleGatekeeper", "Gatekeeper", "confirmation_prompt"]
