"""
Rail: in-process event bus with module isolation.

Provides:
- Listener registration owned by named modules
- Clone-on-emit payload isolation
- Synchronous and asynchronous emission with per-handler failure capture
- Module attach/detach with rollback on a failed connect
- Bounded event history, stats and wait-for
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from rail.config import RailOptions
from rail.core.clone import deep_clone
from rail.core.history import EventHistory, HistoryEntry, now_ms
from rail.core.lifecycle import ModuleTable, module_hook, module_name
from rail.core.registry import ANONYMOUS, EventHandler, Listener, ListenerRegistry
from rail.errors import ConnectionFailedError, InvalidHandlerError, RailTimeoutError, describe_error
from rail.logging_config import configure_from_options, get_logger

logger = get_logger(__name__)


# =============================================================================
# Reserved Events
# =============================================================================

ERROR_EVENT = "rail.error"
MODULE_ATTACHED_EVENT = "rail.module.attached"
MODULE_DETACHED_EVENT = "rail.module.detached"

WAIT_FOR_MODULE = "wait-for"

# Marks an omitted payload; listeners then receive an empty dict
_NO_PAYLOAD: Any = object()


# =============================================================================
# Results
# =============================================================================


@dataclass
class HandlerResult:
    """Outcome of one listener in ``Rail.emit_async``."""

    module: str
    result: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"module": self.module, "result": self.result, "error": self.error}


@dataclass(frozen=True)
class Unsubscribe:
    """
    Returned by ``Rail.on``. Calling it removes the listener.

    Attributes:
        event: Event the listener was registered for
        listener_id: Id to pass to ``Rail.off``
    """

    rail: Rail = field(repr=False, compare=False)
    event: str
    listener_id: int

    def __call__(self) -> bool:
        return self.rail.off(self.event, self.listener_id)


async def _drain(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


# =============================================================================
# Rail
# =============================================================================


class Rail:
    """
    Event bus coordinating modules, listeners and emissions.

    Every listener receives its own deep copy of the payload unless
    cloning is switched off. A failing listener never stops the others
    and never raises to the emitter; the failure is reported as a
    ``rail.error`` event instead.
    """

    def __init__(
        self,
        name: str = "rail-app",
        debug: bool = False,
        clone: bool = True,
        max_history: int | None = 1000,
    ):
        """
        Initialize the bus.

        Args:
            name: Bus name, bound into every log line
            debug: Log registration, emission and lifecycle traces
            clone: Deep clone payloads per listener
            max_history: History entries kept (None for unbounded)
        """
        options = RailOptions(name=name, debug=debug, clone=clone, max_history=max_history)

        self.name = options.name
        self._debug = options.debug
        self._clone = options.clone
        self._registry = ListenerRegistry()
        self._modules = ModuleTable()
        self._history = EventHistory(options.max_history)
        self._background: set[asyncio.Future[Any]] = set()
        self._reporting_error = False
        self._log = logger.bind(rail=self.name)

        self._trace("rail_started", clone=self._clone, max_history=options.max_history)

    @classmethod
    def from_options(cls, options: RailOptions) -> Rail:
        """Build a bus from options, configuring logging first if asked to."""
        if options.setup_logging:
            configure_from_options(options)
        return cls(
            name=options.name,
            debug=options.debug,
            clone=options.clone,
            max_history=options.max_history,
        )

    @property
    def debug(self) -> bool:
        return self._debug

    @property
    def clone(self) -> bool:
        return self._clone

    def _trace(self, event: str, **kwargs: Any) -> None:
        if self._debug:
            self._log.info(event, **kwargs)

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def on(
        self,
        event: str,
        handler: EventHandler,
        module_name: str = ANONYMOUS,
    ) -> Unsubscribe:
        """
        Listen for an event.

        Args:
            event: Event name
            handler: Sync or async callable receiving the payload
            module_name: Owning module; its listeners go away on detach

        Returns:
            Unsubscribe callable

        Raises:
            InvalidHandlerError: If ``handler`` is not callable
        """
        listener_id = self._registry.register(event, handler, module_name)
        self._trace(
            "listener_registered", event_name=event, module=module_name, listener_id=listener_id
        )
        return Unsubscribe(self, event, listener_id)

    def once(
        self,
        event: str,
        handler: EventHandler,
        module_name: str = ANONYMOUS,
    ) -> Unsubscribe:
        """Listen for the next emission of ``event`` only."""
        if not callable(handler):
            raise InvalidHandlerError(event, handler)

        fired = False

        def single_shot(payload: Any) -> Any:
            nonlocal fired
            if fired:
                return None
            fired = True
            unsubscribe()
            return handler(payload)

        unsubscribe = self.on(event, single_shot, module_name)
        return unsubscribe

    def off(self, event: str, listener_id: int) -> bool:
        """Remove a listener. Returns True only if the id was registered for ``event``."""
        removed = self._registry.unregister(event, listener_id)
        if removed:
            self._trace("listener_removed", event_name=event, listener_id=listener_id)
        return removed

    # -------------------------------------------------------------------------
    # Emission
    # -------------------------------------------------------------------------

    def emit(self, event: str, payload: Any = _NO_PAYLOAD) -> int:
        """
        Emit an event synchronously.

        Async handlers are started but not awaited. With a running
        event loop they continue as background tasks; without one they
        are run to completion before the next listener.

        Args:
            event: Event name
            payload: Data for the listeners (defaults to an empty dict)

        Returns:
            Number of listeners invoked without raising
        """
        if payload is _NO_PAYLOAD:
            payload = {}
        return self._dispatch(event, payload, clone=self._clone)

    def _dispatch(self, event: str, payload: Any, clone: bool) -> int:
        entry = self._history.record(event, payload)
        self._trace("event_emitting", event_name=event)

        handled = 0
        for listener in self._registry.listeners_for(event):
            try:
                data = deep_clone(payload) if clone else payload
                self._trace("event_handling", event_name=event, module=listener.module_name)
                result = listener.callback(data)
                if inspect.isawaitable(result):
                    self._defer(event, listener, result, entry.timestamp)
                handled += 1
            except Exception as e:
                self._handler_failed(event, listener.module_name, e, entry.timestamp)

        if handled == 0 and self._debug:
            self._log.warning("event_unhandled", event_name=event)
        return handled

    def _defer(
        self,
        event: str,
        listener: Listener,
        awaitable: Awaitable[Any],
        timestamp: int,
    ) -> None:
        if _running_loop() is None:
            # No loop to hand the work to
            self._run_to_completion(awaitable)
            return

        self._spawn(
            awaitable,
            partial(self._handler_failed, event, listener.module_name, timestamp=timestamp),
            event_name=event,
            module=listener.module_name,
        )

    def _spawn(
        self,
        awaitable: Awaitable[Any],
        on_failure: Callable[[BaseException], None],
        **context: Any,
    ) -> asyncio.Future[Any]:
        """Run ``awaitable`` as a tracked background task on the running loop."""
        task = asyncio.ensure_future(awaitable)
        self._background.add(task)
        task.add_done_callback(partial(self._background_done, on_failure, context))
        return task

    def _background_done(
        self,
        on_failure: Callable[[BaseException], None],
        context: dict[str, Any],
        task: asyncio.Future[Any],
    ) -> None:
        self._background.discard(task)
        if task.cancelled():
            self._log.warning("background_task_cancelled", **context)
            return
        exc = task.exception()
        if exc is not None:
            on_failure(exc)

    def _run_to_completion(self, awaitable: Awaitable[Any]) -> Any:
        """
        Run ``awaitable`` on a private event loop when none is running.

        Background tasks started on that loop while it runs (async
        handlers of nested emits, for example) are awaited too before
        the loop is closed, so none of them is cancelled half-way.
        """
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(_drain(awaitable))
        finally:
            try:
                self._settle_background(loop)
                loop.run_until_complete(loop.shutdown_asyncgens())
            finally:
                loop.close()

    def _settle_background(self, loop: asyncio.AbstractEventLoop) -> None:
        while True:
            pending = {t for t in self._background if t.get_loop() is loop and not t.done()}
            if not pending:
                break
            loop.run_until_complete(asyncio.wait(pending))
        # one more pass so done callbacks of the last tasks run
        loop.run_until_complete(asyncio.sleep(0))

    async def emit_async(self, event: str, payload: Any = _NO_PAYLOAD) -> list[HandlerResult]:
        """
        Emit an event and wait for every listener to settle.

        Listeners run concurrently. A failure never cancels the others.

        Args:
            event: Event name
            payload: Data for the listeners (defaults to an empty dict)

        Returns:
            One HandlerResult per listener, in registration order
        """
        if payload is _NO_PAYLOAD:
            payload = {}

        entry = self._history.record(event, payload)
        self._trace("event_emitting_async", event_name=event)

        listeners = self._registry.listeners_for(event)
        if not listeners:
            if self._debug:
                self._log.warning("event_unhandled", event_name=event)
            return []

        clone = self._clone
        results = await asyncio.gather(
            *(self._run_async(event, l, payload, clone, entry.timestamp) for l in listeners)
        )
        return list(results)

    async def _run_async(
        self,
        event: str,
        listener: Listener,
        payload: Any,
        clone: bool,
        timestamp: int,
    ) -> HandlerResult:
        try:
            data = deep_clone(payload) if clone else payload
            self._trace("event_handling", event_name=event, module=listener.module_name)
            result = listener.callback(data)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self._handler_failed(event, listener.module_name, e, timestamp)
            return HandlerResult(module=listener.module_name, result=None, error=describe_error(e))

        return HandlerResult(module=listener.module_name, result=result, error=None)

    def _handler_failed(self, event: str, module: str, exc: BaseException, timestamp: int) -> None:
        message = describe_error(exc)
        self._log.error(
            "handler_failed",
            event_name=event,
            module=module,
            error=message,
            exc_info=exc,
        )

        # Failures raised while an error is being reported stop here
        if event == ERROR_EVENT or self._reporting_error:
            return

        self._reporting_error = True
        try:
            self._dispatch(
                ERROR_EVENT,
                {"module": module, "event": event, "error": message, "timestamp": timestamp},
                clone=True,
            )
        finally:
            self._reporting_error = False

    # -------------------------------------------------------------------------
    # Modules
    # -------------------------------------------------------------------------

    def attach(self, module: Any) -> Rail:
        """
        Attach a module and run its ``connect(rail)`` hook.

        If ``connect`` raises, the module and the listeners it registered
        during the call are removed again. A coroutine ``connect`` is run
        to completion when no event loop is running; inside a running
        loop it continues in the background, and a late failure rolls
        the module back and is reported as ``rail.error``. Use
        ``attach_async`` to wait for it instead.

        Args:
            module: Object or mapping with ``name`` and optional hooks

        Returns:
            This bus, for chaining

        Raises:
            InvalidModuleError: If ``module`` has no usable name
            DuplicateModuleError: If the name is already attached
            ConnectionFailedError: If ``connect`` raised
        """
        name = module_name(module)
        self._modules.add(name, module)
        mark = self._registry.last_id

        connect = module_hook(module, "connect")
        if connect is not None:
            try:
                result = connect(self)
                if inspect.isawaitable(result):
                    if _running_loop() is None:
                        self._run_to_completion(result)
                    else:
                        self._spawn(
                            result,
                            partial(self._connect_failed_late, name, module, mark),
                            module=name,
                        )
            except Exception as e:
                raise self._connect_failed(name, mark, e) from e

        self._trace("module_attached", module=name)
        self.emit(MODULE_ATTACHED_EVENT, {"module_name": name})
        return self

    async def attach_async(self, module: Any) -> Rail:
        """Attach a module, awaiting its ``connect`` hook if it is a coroutine."""
        name = module_name(module)
        self._modules.add(name, module)
        mark = self._registry.last_id

        connect = module_hook(module, "connect")
        if connect is not None:
            try:
                result = connect(self)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                raise self._connect_failed(name, mark, e) from e

        self._trace("module_attached", module=name)
        self.emit(MODULE_ATTACHED_EVENT, {"module_name": name})
        return self

    def _connect_failed(self, name: str, mark: int, exc: BaseException) -> ConnectionFailedError:
        # Listeners registered under the name before attach stay
        self._modules.remove(name)
        self._registry.unregister_module(name, after=mark)
        reason = describe_error(exc)
        self._log.error("module_connect_failed", module=name, error=reason)
        return ConnectionFailedError(name, reason)

    def _connect_failed_late(self, name: str, module: Any, mark: int, exc: BaseException) -> None:
        if self._modules.get(name) is module:
            self._connect_failed(name, mark, exc)
        self._handler_failed(MODULE_ATTACHED_EVENT, name, exc, now_ms())

    def detach(self, module_name: str) -> bool:
        """
        Detach a module, removing its listeners and calling ``disconnect``.

        A failing ``disconnect`` is logged and detach still completes. A
        coroutine ``disconnect`` is run to completion when no event loop
        is running and continues in the background otherwise.

        Returns:
            False if no module with that name is attached
        """
        found = self._release(module_name)
        if found is None:
            return False
        module, removed = found

        disconnect = module_hook(module, "disconnect")
        if disconnect is not None:
            try:
                result = disconnect(self)
                if inspect.isawaitable(result):
                    if _running_loop() is None:
                        self._run_to_completion(result)
                    else:
                        self._spawn(
                            result,
                            partial(self._disconnect_failed, module_name),
                            module=module_name,
                        )
            except Exception as e:
                self._disconnect_failed(module_name, e)

        self._detached(module_name, removed)
        return True

    async def detach_async(self, module_name: str) -> bool:
        """Detach a module, awaiting its ``disconnect`` hook if it is a coroutine."""
        found = self._release(module_name)
        if found is None:
            return False
        module, removed = found

        disconnect = module_hook(module, "disconnect")
        if disconnect is not None:
            try:
                result = disconnect(self)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._disconnect_failed(module_name, e)

        self._detached(module_name, removed)
        return True

    def _release(self, module_name: str) -> tuple[Any, int] | None:
        """Drop the listeners of an attached module; None if it is not attached."""
        if module_name not in self._modules:
            if self._debug:
                self._log.warning("module_not_found", module=module_name)
            return None
        module = self._modules.get(module_name)
        return module, self._registry.unregister_module(module_name)

    def _disconnect_failed(self, module_name: str, exc: BaseException) -> None:
        self._log.error(
            "module_disconnect_failed",
            module=module_name,
            error=describe_error(exc),
            exc_info=exc,
        )

    def _detached(self, module_name: str, removed: int) -> None:
        self._modules.remove(module_name)
        self._trace("module_detached", module=module_name, listeners_removed=removed)
        self.emit(MODULE_DETACHED_EVENT, {"module_name": module_name})

    def get_modules(self) -> list[str]:
        return self._modules.names()

    def get_events(self) -> dict[str, list[str]]:
        """Event name -> module names listening, one per listener."""
        return self._registry.events()

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def get_history(self, limit: int = 10, event: str | None = None) -> list[HistoryEntry]:
        """
        Get recent emissions, oldest first.

        Args:
            limit: Maximum entries to return
            event: Only entries for this event name

        Returns:
            History entries holding the emitters' own payload objects
        """
        return self._history.recent(limit, event)

    def clear_history(self) -> None:
        self._history.clear()

    async def wait_for(self, event: str, timeout_ms: int = 5000) -> Any:
        """
        Wait for the next emission of ``event``.

        Args:
            event: Event name
            timeout_ms: Deadline in milliseconds

        Returns:
            The payload delivered to the waiting listener

        Raises:
            RailTimeoutError: If ``event`` is not emitted in time
        """
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()

        def resolve(payload: Any) -> None:
            if not future.done():
                future.set_result(payload)

        unsubscribe = self.once(event, resolve, WAIT_FOR_MODULE)
        try:
            return await asyncio.wait_for(future, timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise RailTimeoutError(event, timeout_ms) from e
        finally:
            unsubscribe()

    def set_debug(self, enabled: bool) -> None:
        self._debug = bool(enabled)
        self._trace("debug_enabled")

    def set_clone(self, enabled: bool) -> None:
        """Switch clone-on-emit. Disabled, listeners share the emitter's payload."""
        self._clone = bool(enabled)
        self._trace("clone_changed", clone=self._clone)

    def get_stats(self) -> dict[str, Any]:
        """Get bus statistics."""
        return {
            "name": self.name,
            "modules": len(self._modules),
            "events": self._registry.event_count,
            "total_listeners": self._registry.listener_count,
            "events_emitted": self._history.recorded,
        }

    def __repr__(self) -> str:
        return (
            f"Rail(name={self.name!r}, modules={len(self._modules)}, "
            f"listeners={self._registry.listener_count})"
        )


def create(options: RailOptions | None = None, **overrides: Any) -> Rail:
    """
    Create a bus.

    Usage:
        rail = create(name="checkout", debug=True)
        rail = create(RailOptions.from_env())
    """
    options = options or RailOptions()
    if overrides:
        options = options.merged(**overrides)
    return Rail.from_options(options)
