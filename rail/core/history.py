"""
Bounded in-memory log of past emissions.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any


def now_ms() -> int:
    """Wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class HistoryEntry:
    """One recorded emission. ``payload`` is the emitter's own object."""

    event: str
    payload: Any
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "event": self.event,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }


class EventHistory:
    """
    Ring buffer of emissions.

    Args:
        max_entries: Entries kept before the oldest are dropped
            (None keeps everything)
    """

    def __init__(self, max_entries: int | None = 1000):
        self._entries: deque[HistoryEntry] = deque(maxlen=max_entries)
        self._recorded = 0

    def record(self, event: str, payload: Any, timestamp: int | None = None) -> HistoryEntry:
        entry = HistoryEntry(event, payload, now_ms() if timestamp is None else timestamp)
        self._entries.append(entry)
        self._recorded += 1
        return entry

    def recent(self, limit: int = 10, event: str | None = None) -> list[HistoryEntry]:
        """
        Most recent entries, oldest first.

        Args:
            limit: Maximum entries to return
            event: Only entries for this exact event name

        Returns:
            Up to ``limit`` entries in emission order
        """
        if limit <= 0:
            return []
        entries = list(self._entries)
        if event is not None:
            entries = [e for e in entries if e.event == event]
        return entries[-limit:]

    def clear(self) -> None:
        self._entries.clear()
        self._recorded = 0

    @property
    def recorded(self) -> int:
        """Emissions recorded since creation or the last clear, ignoring the bound."""
        return self._recorded

    @property
    def max_entries(self) -> int | None:
        return self._entries.maxlen

    def __len__(self) -> int:
        return len(self._entries)
