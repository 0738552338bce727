"""Convenience exports for the taskrun package.

Attributes are proxied lazily from ``taskrun.src.runtime`` so importing
:mod:`taskrun` stays free of side effects such as importing ``requests``.
"""

from __future__ import annotations

import importlib
from typing import Any

# ``taskrun.src`` is a namespace package; import it up front so submodule
# imports resolve regardless of which module callers import first.
importlib.import_module("taskrun.src")

__all__ = (
    "AuditLog",
    "CapabilityRegistry",
    "LoopState",
    "Orchestrator",
    "Planner",
    "Replanner",
    "RunReport",
    "RuntimeConfig",
    "build_orchestrator",
    "build_registry",
)


def __getattr__(name: str) -> Any:
    if name in __all__:
        from taskrun.src import runtime as _api

        return getattr(_api, name)
    raise AttributeError(name)


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(__all__))
