"""Structured events for the taskrun runtime.

Components do not print diagnostics. They emit named events through a
:class:`Telemetry` dispatcher shared by the planner, engine and audit log.
Fields bound with :meth:`Telemetry.scoped` (the orchestrator binds ``run_id``
and ``goal``) are stamped onto every event emitted inside the scope.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterator, List, Protocol, Sequence


class TelemetrySink(Protocol):
    def write(self, event: Dict[str, Any]) -> None:
        ...


@dataclass
class Telemetry:
    """Stamp events with the bound context and hand them to every sink."""

    sinks: Sequence[TelemetrySink] = field(default_factory=tuple)
    context: Dict[str, Any] = field(default_factory=dict)

    def emit(self, event: str, **payload: Any) -> None:
        if not self.sinks:
            return
        record: Dict[str, Any] = {"event": event, "time": datetime.now(timezone.utc).isoformat()}
        record.update(self.context)
        record.update(payload)
        for sink in self.sinks:
            try:
                sink.write(dict(record))
            except Exception:  # pragma: no cover - a broken sink must not end a run
                continue

    @contextmanager
    def scoped(self, **fields: Any) -> Iterator["Telemetry"]:
        """Bind ``fields`` to every event emitted until the block exits."""

        previous = dict(self.context)
        self.context.update(fields)
        try:
            yield self
        finally:
            self.context = previous


@dataclass
class InMemorySink:
    events: List[Dict[str, Any]] = field(default_factory=list)

    def write(self, event: Dict[str, Any]) -> None:
        self.events.append(event)

    def names(self) -> List[str]:
        return [str(event.get("event")) for event in self.events]


@dataclass
class JsonLinesSink:
    """Append one JSON object per event to ``path``."""

    path: Path
    _lock: Lock = field(default_factory=Lock, init=False, repr=False)

    def write(self, event: Dict[str, Any]) -> None:
        line = json.dumps(event, sort_keys=True, default=str)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")


def emit(telemetry: Telemetry | None, event: str, **payload: Any) -> None:
    """Emit ``event`` when a dispatcher is configured."""

    if telemetry is not None:
        telemetry.emit(event, **payload)


@contextmanager
def scope(telemetry: Telemetry | None, **fields: Any) -> Iterator[None]:
    if telemetry is None:
        yield
        return
    with telemetry.scoped(**fields):
        yield


__all__ = ["InMemorySink", "JsonLinesSink", "Telemetry", "TelemetrySink", "emit", "scope"]
