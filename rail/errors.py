"""
Exceptions raised by the Rail event bus.

Registration and attachment errors are raised straight to the caller.
Handler failures during emission are never raised; they are reported
through the ``rail.error`` event and ``HandlerResult.error`` instead.
"""

from __future__ import annotations


class RailError(Exception):
    """Base class for all Rail errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class InvalidHandlerError(RailError, TypeError):
    """Raised when a non-callable is registered as a listener."""

    def __init__(self, event: str, handler: object, message: str | None = None):
        self.event = event
        self.handler = handler
        super().__init__(
            message
            or f"Handler for '{event}' must be callable, got {type(handler).__name__}"
        )


class InvalidModuleError(RailError, ValueError):
    """Raised when attaching something that is not a named module."""


class DuplicateModuleError(RailError):
    """Raised when a module name is already attached."""

    def __init__(self, module_name: str, message: str | None = None):
        self.module_name = module_name
        super().__init__(message or f"Module '{module_name}' is already attached")


class ConnectionFailedError(RailError):
    """Raised when a module's connect hook fails during attach."""

    def __init__(self, module_name: str, reason: str, message: str | None = None):
        self.module_name = module_name
        self.reason = reason
        super().__init__(
            message or f"Failed to connect module '{module_name}': {reason}"
        )


class RailTimeoutError(RailError, TimeoutError):
    """Raised when ``wait_for`` sees no emission before its deadline."""

    def __init__(self, event: str, timeout_ms: int, message: str | None = None):
        self.event = event
        self.timeout_ms = timeout_ms
        super().__init__(
            message or f"Timeout waiting for event '{event}' after {timeout_ms}ms"
        )


def describe_error(exc: BaseException) -> str:
    """Message text reported for a failed handler."""
    return str(exc) or type(exc).__name__
