"""
Core of the Rail event bus.

Deep clone engine, listener registry, module table, history and the
emission engine that ties them together.
"""

from rail.core.bus import (
    ERROR_EVENT,
    MODULE_ATTACHED_EVENT,
    MODULE_DETACHED_EVENT,
    HandlerResult,
    Rail,
    Unsubscribe,
    create,
)
from rail.core.clone import deep_clone
from rail.core.history import EventHistory, HistoryEntry
from rail.core.lifecycle import Module, ModuleTable
from rail.core.registry import ANONYMOUS, EventHandler, Listener, ListenerRegistry

__all__ = [
    "ANONYMOUS",
    "ERROR_EVENT",
    "MODULE_ATTACHED_EVENT",
    "MODULE_DETACHED_EVENT",
    "EventHandler",
    "EventHistory",
    "HandlerResult",
    "HistoryEntry",
    "Listener",
    "ListenerRegistry",
    "Module",
    "ModuleTable",
    "Rail",
    "Unsubscribe",
    "create",
    "deep_clone",
]
