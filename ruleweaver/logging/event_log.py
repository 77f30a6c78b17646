"""
Event log for Ruleweaver.

A bounded, newest-first list of human-readable simulation events, each with
a severity tag. Components push entries (rule changes, objective
completions, reproduction, extinction, persistence failures); nothing reads
them back to drive the simulation.

Every entry is also mirrored to the standard `logging` module so headless
runs can route events to their usual handlers.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class Severity(Enum):
    """Severity tag attached to each event."""
    NORMAL = "normal"
    IMPORTANT = "important"
    SUCCESS = "success"
    CRITICAL = "critical"


_LOG_LEVELS = {
    Severity.NORMAL: logging.DEBUG,
    Severity.IMPORTANT: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.CRITICAL: logging.ERROR,
}


@dataclass
class EventEntry:
    """A single logged event."""
    tick: int
    message: str
    severity: Severity = Severity.NORMAL
    timestamp: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EventEntry:
        return cls(
            tick=int(data.get("tick", 0)),
            message=str(data["message"]),
            severity=Severity(data.get("severity", Severity.NORMAL.value)),
            timestamp=float(data.get("timestamp", 0.0)),
        )


class EventLog:
    """
    Bounded event sink.

    The owner (the simulation engine) advances `tick` so that components
    logging mid-tick do not need to know the current tick themselves.

    Attributes:
        capacity: Maximum number of retained entries.
        tick: Tick stamped onto new entries.
        entries: Retained entries, newest first.
    """

    def __init__(self, capacity: int = 100):
        self.capacity = capacity
        self.tick: int = 0
        self.entries: list[EventEntry] = []

    def log(self, message: str, severity: Severity = Severity.NORMAL) -> EventEntry:
        """Record an event and mirror it to the module logger."""
        entry = EventEntry(
            tick=self.tick,
            message=message,
            severity=severity,
            timestamp=time.time(),
        )
        self.entries.insert(0, entry)
        if len(self.entries) > self.capacity:
            del self.entries[self.capacity:]

        logger.log(_LOG_LEVELS[severity], "[%d] %s", self.tick, message)
        return entry

    def recent(self, count: Optional[int] = None) -> list[EventEntry]:
        """Newest `count` entries (all if None)."""
        if count is None:
            return list(self.entries)
        return self.entries[:count]

    def by_severity(self, severity: Severity) -> list[EventEntry]:
        return [e for e in self.entries if e.severity is severity]

    def clear(self) -> None:
        self.entries = []

    def export(self, count: Optional[int] = None) -> list[dict[str, Any]]:
        """Serialize the newest `count` entries for a save file."""
        return [e.to_dict() for e in self.recent(count)]

    def restore(self, data: list[dict[str, Any]]) -> None:
        """Replace the log with entries decoded from a save file."""
        self.entries = [EventEntry.from_dict(d) for d in data][: self.capacity]

    def __len__(self) -> int:
        return len(self.entries)

    def __repr__(self) -> str:
        return f"EventLog(entries={len(self.entries)}, capacity={self.capacity}, tick={self.tick})"
