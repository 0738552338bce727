"""Append-only audit log shared by the planner, engine and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Iterable, List, Optional

from .telemetry import Telemetry
from .types import AuditEntry


@dataclass
class AuditLog:
    """Ordered ``(label, content)`` trail of everything a run did.

    Entries are never removed or rewritten.  The log has a single owner at a
    time (the orchestrator and whatever it calls synchronously); the lock only
    keeps appends atomic should a future dispatcher share it.
    """

    telemetry: Telemetry | None = None
    _entries: List[AuditEntry] = field(default_factory=list, init=False)
    _lock: Lock = field(default_factory=Lock, init=False, repr=False)

    def append(self, label: str, content: str) -> AuditEntry:
        entry = AuditEntry(label=str(label), content=str(content))
        with self._lock:
            self._entries.append(entry)
        if self.telemetry is not None:
            self.telemetry.emit("audit.append", label=entry.label, size=len(entry.content))
        return entry

    # ``log`` reads better at call sites that record debug traces.
    log = append

    def extend(self, entries: Iterable[AuditEntry]) -> None:
        for entry in entries:
            self.append(entry.label, entry.content)

    def read_all(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def by_label(self, label: str) -> List[AuditEntry]:
        return [entry for entry in self.read_all() if entry.label == label]

    def latest(self, label: str) -> Optional[AuditEntry]:
        """Return the most recent entry carrying ``label``."""

        for entry in reversed(self.read_all()):
            if entry.label == label:
                return entry
        return None

    def dump(self) -> str:
        """Render the log as ``[label] content`` lines for prompts."""

        return "\n".join(entry.render() for entry in self.read_all())

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["AuditLog"]
