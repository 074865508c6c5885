"""
Listener registry: event name -> ordered listener records.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from rail.errors import InvalidHandlerError

ANONYMOUS = "anonymous"

# Handler type: plain function or coroutine function taking the payload
EventHandler = Callable[[Any], Any]


@dataclass(frozen=True)
class Listener:
    """A callback bound to an event and owned by a module name."""

    id: int
    module_name: str
    callback: EventHandler


class ListenerRegistry:
    """
    Ordered listener lists keyed by event name.

    Ids come from a counter that is never rewound, so an id is never
    reused for the lifetime of the registry. Lists that become empty
    are dropped from the map.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._last_id = 0

    def register(
        self,
        event: str,
        callback: EventHandler,
        module_name: str = ANONYMOUS,
    ) -> int:
        """
        Append a listener for ``event``.

        Args:
            event: Event name
            callback: Callable receiving the payload
            module_name: Owning module (used for detach cleanup)

        Returns:
            The new listener id

        Raises:
            InvalidHandlerError: If ``callback`` is not callable
        """
        if not callable(callback):
            raise InvalidHandlerError(event, callback)

        self._last_id += 1
        listener = Listener(id=self._last_id, module_name=module_name, callback=callback)
        self._listeners.setdefault(event, []).append(listener)
        return listener.id

    def unregister(self, event: str, listener_id: int) -> bool:
        """Remove one listener. Returns True only if it was found."""
        listeners = self._listeners.get(event)
        if not listeners:
            return False

        remaining = [l for l in listeners if l.id != listener_id]
        if len(remaining) == len(listeners):
            return False

        self._store(event, remaining)
        return True

    def unregister_module(self, module_name: str, after: int = 0) -> int:
        """
        Remove listeners owned by ``module_name``; returns how many.

        Only listeners with an id greater than ``after`` are removed, so
        passing a previous ``last_id`` leaves older registrations alone.
        """
        removed = 0
        for event, listeners in list(self._listeners.items()):
            remaining = [
                l for l in listeners if l.module_name != module_name or l.id <= after
            ]
            removed += len(listeners) - len(remaining)
            self._store(event, remaining)
        return removed

    def listeners_for(self, event: str) -> tuple[Listener, ...]:
        """Snapshot of the listeners for ``event``, in registration order."""
        return tuple(self._listeners.get(event, ()))

    def events(self) -> dict[str, list[str]]:
        """Event name -> owning module names, one per listener."""
        return {
            event: [l.module_name for l in listeners]
            for event, listeners in self._listeners.items()
        }

    @property
    def last_id(self) -> int:
        """Id handed out most recently (0 before the first registration)."""
        return self._last_id

    @property
    def event_count(self) -> int:
        return len(self._listeners)

    @property
    def listener_count(self) -> int:
        return sum(len(listeners) for listeners in self._listeners.values())

    def _store(self, event: str, listeners: list[Listener]) -> None:
        if listeners:
            self._listeners[event] = listeners
        else:
            self._listeners.pop(event, None)

    def __contains__(self, event: object) -> bool:
        return event in self._listeners

    def __len__(self) -> int:
        return self.listener_count
