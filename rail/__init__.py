"""
Rail: in-process event bus for modular applications.

Modules attach to a bus, listen for events and emit their own. Every
listener receives an isolated deep copy of the payload, so modules
cannot corrupt each other's data.

Example:
    from rail import create

    rail = create(name="shop")
    rail.on("order.placed", lambda order: print(order["id"]), "billing")
    rail.emit("order.placed", {"id": 42})
"""

from rail.config import RailOptions
from rail.core import (
    ERROR_EVENT,
    MODULE_ATTACHED_EVENT,
    MODULE_DETACHED_EVENT,
    HandlerResult,
    HistoryEntry,
    Listener,
    Module,
    Rail,
    Unsubscribe,
    create,
    deep_clone,
)
from rail.errors import (
    ConnectionFailedError,
    DuplicateModuleError,
    InvalidHandlerError,
    InvalidModuleError,
    RailError,
    RailTimeoutError,
)

__version__ = "0.1.0"

__all__ = [
    "ConnectionFailedError",
    "DuplicateModuleError",
    "ERROR_EVENT",
    "HandlerResult",
    "HistoryEntry",
    "InvalidHandlerError",
    "InvalidModuleError",
    "Listener",
    "MODULE_ATTACHED_EVENT",
    "MODULE_DETACHED_EVENT",
    "Module",
    "Rail",
    "RailError",
    "RailOptions",
    "RailTimeoutError",
    "Unsubscribe",
    "create",
    "deep_clone",
]
