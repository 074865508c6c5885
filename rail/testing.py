"""
Test helpers for code built on Rail.

``RecordingRail`` keeps a cloned copy of every emitted payload so tests
can assert on what was emitted without caring who listened.
"""

from __future__ import annotations

from typing import Any

from rail.core.bus import _NO_PAYLOAD, HandlerResult, Rail
from rail.core.clone import deep_clone
from rail.core.history import HistoryEntry


class RecordingRail(Rail):
    """Rail that records every emission, including lifecycle and error events."""

    def __init__(self, *args: Any, **kwargs: Any):
        self.emitted_events: list[HistoryEntry] = []
        super().__init__(*args, **kwargs)

    def _dispatch(self, event: str, payload: Any, clone: bool) -> int:
        self.emitted_events.append(HistoryEntry(event, deep_clone(payload)))
        return super()._dispatch(event, payload, clone)

    async def emit_async(self, event: str, payload: Any = _NO_PAYLOAD) -> list[HandlerResult]:
        recorded = {} if payload is _NO_PAYLOAD else payload
        self.emitted_events.append(HistoryEntry(event, deep_clone(recorded)))
        return await super().emit_async(event, payload)

    def emitted(self, event: str) -> list[HistoryEntry]:
        return [e for e in self.emitted_events if e.event == event]

    def last_emitted(self, event: str) -> HistoryEntry | None:
        events = self.emitted(event)
        return events[-1] if events else None

    def was_emitted(self, event: str) -> bool:
        return any(e.event == event for e in self.emitted_events)

    def clear_emitted(self) -> None:
        self.emitted_events.clear()
