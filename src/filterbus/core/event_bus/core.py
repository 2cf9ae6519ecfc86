"""EventBus core implementation.

This module contains the EventBus class, the dispatcher that owns the pending
event queue and runs matching subscribers for each event.

CONTENTS:
- EventBus: subscription API, the emit family, the drain loop and two-phase
  dispatch
- Event tracing through a Rich console
- Resource management: background loop, task tracking and cleanup
- get_default_bus(): process-wide bus used by Emitter

DISPATCH PHASES (per event):
1. Serial phase: ``await`` subscribers, newest first, one at a time. A handler
   returning CANCELLED on a completable event resolves it and ends dispatch.
2. Concurrent phase: every other matching subscriber, all at once. For
   notifications nothing is awaited; for completable events every outcome is
   awaited and the first non-CONTINUE value (serial result first) wins.

CONCURRENCY PATTERNS:
- Queued (emit(), notify()): events are dispatched one after another by a
  single drain loop
- Immediate (emit_now(), notify_now()): bypass the queue
- Without a running event loop, work is scheduled on a lazily started
  background loop thread
"""

from __future__ import annotations

import asyncio
import collections
import concurrent.futures
import inspect
import logging
import threading
import time
from collections.abc import Callable, Coroutine, Iterator, Mapping
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ...utilities.identifiers import smash
from .context import Completion, Event, active_handlers, event_ctx
from .decorators import iter_handlers
from .parser import WILDCARD
from .protocols import CANCELLED, CONTINUE, Callback, EventName, Unsubscribe
from .registration import Subscriber, SubscriptionRegistry

logger = logging.getLogger(__name__)

# Use stderr to avoid interfering with stdout
_console = Console(stderr=True)


def _event_name(name: EventName) -> str:
    return name if name == WILDCARD else smash(name)


class EventBus:
    """
    Expression-filtered publish/subscribe dispatcher.

    TYPICAL USAGE:
    ```python
    bus = EventBus()


    @bus.on("await orderPlaced[amount > 100]")
    def review(event):
        if event.data["customer"] == "blocked":
            return CANCELLED


    @bus.on("orderPlaced")
    async def ship(event):
        return await schedule_shipping(event.data)


    result = await bus.emit("orderPlaced", {"amount": 150, "customer": "acme"})
    ```

    Handlers are called as ``handler(event, *captures)`` where ``captures``
    are the regex groups matched by the subscription's filters. They may be
    plain functions or coroutine functions.

    ERROR HANDLING:
    - Malformed trigger expressions raise at subscribe time
    - Handler exceptions are logged and count as CONTINUE; they never reach
      the producer, sibling handlers or the queue

    CONFIGURATION OPTIONS:
    - debug: log registrations and timeouts
    - event_trace: print every dispatched event to stderr
    - enable_signal_handling: cancel tracked tasks on SIGINT/SIGTERM
    """

    def __init__(
        self,
        debug: bool = False,
        event_trace: bool = False,
        enable_signal_handling: bool = False,
    ):
        """
        Initialize EventBus.

        Args:
            debug: Enable debug logging
            event_trace: Enable event tracing (prints all dispatched events)
            enable_signal_handling: Enable automatic signal handling for graceful shutdown
        """
        self._debug = debug
        if event_trace:
            logger.debug("Event tracing enabled")
        self._event_trace = event_trace
        self._event_trace_verbosity = 1  # 0=minimal, 1=normal, 2=verbose
        self._event_trace_use_rich = True
        self._signal_handling_enabled = enable_signal_handling

        self._registry = SubscriptionRegistry(debug=debug)

        # Pending events and the drain loop state
        self._queue: collections.deque[Event] = collections.deque()
        self._queue_lock = threading.Lock()
        self._draining = False
        self._drain_generation = 0
        self._idle = threading.Event()
        self._idle.set()

        # Task management
        self._tasks: set[asyncio.Task] = set()
        self._futures: set[concurrent.futures.Future] = set()

        # Background loop used when no loop is running in the caller's thread
        self._event_loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: threading.Thread | None = None
        self._loop_lock = threading.Lock()

        if self._signal_handling_enabled:
            from ..signal_handler import register_for_signals

            register_for_signals(self)

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def on(
        self,
        expression: str,
        callback: Callback | None = None,
        event_source: Any = None,
    ) -> Any:
        """Subscribe to events matching ``expression``.

        Used directly it returns the unsubscribe function; without a callback
        it returns a decorator that subscribes the decorated function and
        hands it back unchanged.

        Example:
            ```python
            unsubscribe = bus.on("click:button[/ok/]", handle_ok)


            @bus.on("once ready")
            async def start(event): ...
            ```
        """
        if callback is None:

            def decorator(fn: Callback) -> Callback:
                self._registry.on(expression, fn, event_source)
                return fn

            return decorator

        return self._registry.on(expression, callback, event_source)

    def once(self, expression: str, callback: Callback, event_source: Any = None) -> Unsubscribe:
        """Subscribe for a single invocation."""
        return self._registry.once(expression, callback, event_source)

    def remove_all_listeners(self, owner: Any) -> None:
        self._registry.remove_all_listeners(owner)

    def subscribe(
        self,
        subscriber: Any,
        *,
        bind_all: bool = False,
        event_source: Any = None,
        once: bool = False,
    ) -> Unsubscribe:
        """Register many handlers at once.

        A mapping subscribes each callable value under its key. Any other
        object subscribes its ``@on`` decorated methods, plus every other
        public method under its own name when ``bind_all`` is set.

        Returns:
            A function removing every subscription made by this call.
        """
        if isinstance(subscriber, Mapping):
            pairs = [(key, value) for key, value in subscriber.items() if callable(value)]
        else:
            pairs = list(iter_handlers(subscriber, bind_all=bind_all))

        unsubscribes: list[Unsubscribe] = []
        try:
            for expression, callback in pairs:
                if once:
                    expression = f"once {expression}"
                unsubscribes.append(self._registry.on(expression, callback, event_source))
        except Exception:
            for unsubscribe in unsubscribes:
                unsubscribe()
            raise

        def unsubscribe_all() -> None:
            for unsubscribe in unsubscribes:
                unsubscribe()

        return unsubscribe_all

    def is_subscribed(self, name: EventName) -> bool:
        """True when an event called ``name`` could reach any subscriber."""
        return self._registry.has_subscribers(_event_name(name))

    def get_handler_count(self, name: EventName | None = None) -> int:
        return self._registry.get_handler_count(
            _event_name(name) if name is not None else None
        )

    def clear(self) -> None:
        """Drop every subscription."""
        self._registry.clear()

    # ------------------------------------------------------------------
    # Producing events
    # ------------------------------------------------------------------

    async def emit(self, name: EventName, *args: Any) -> Any:
        """Queue a completable event and wait for its result.

        Args:
            name: Event name (any naming convention)
            *args: ``[descriptors] [source] [text] [data]``, see
                :meth:`Event.from_arguments`

        Returns:
            CANCELLED, the first non-CONTINUE handler result, or CONTINUE.
        """
        name = _event_name(name)
        event = Event.from_arguments(name, args, Completion())
        if not self._registry.has_subscribers(name):
            return CONTINUE
        self._enqueue(event)
        return await event.completion

    async def emit_now(self, name: EventName, *args: Any) -> Any:
        """Dispatch a completable event immediately, bypassing the queue."""
        name = _event_name(name)
        event = Event.from_arguments(name, args, Completion())
        if not self._registry.has_subscribers(name):
            return CONTINUE
        await self._dispatch(event, "emit_now")
        return await event.completion

    def notify(self, name: EventName, *args: Any) -> None:
        """Queue a notification. Returns immediately."""
        name = _event_name(name)
        event = Event.from_arguments(name, args)
        if self._registry.has_subscribers(name):
            self._enqueue(event)

    def notify_now(self, name: EventName, *args: Any) -> None:
        """Dispatch a notification in place, bypassing the queue.

        Inside a running loop, synchronous handlers have run by the time this
        returns. The first serial handler returning an awaitable hands the rest
        of the dispatch to a tracked task. Without a running loop the whole
        dispatch runs on the background loop.
        """
        name = _event_name(name)
        event = Event.from_arguments(name, args)
        if not self._registry.has_subscribers(name):
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._schedule(self._dispatch(event, "notify_now"))
            return
        self._dispatch_inline(event)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        """True while a drain loop owns the queue."""
        return self._draining

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until the queue is drained. Returns False on timeout."""
        if not self._draining:
            return True
        return await asyncio.to_thread(self._idle.wait, timeout)

    def _enqueue(self, event: Event) -> None:
        with self._queue_lock:
            self._queue.append(event)
            if self._draining:
                return
            self._draining = True
            self._drain_generation += 1
            generation = self._drain_generation
            self._idle.clear()
        self._schedule(self._drain(), on_done=lambda: self._drain_stopped(generation))

    def _next_event(self) -> Event | None:
        with self._queue_lock:
            if self._queue:
                return self._queue.popleft()
            self._draining = False
            self._idle.set()
            return None

    async def _drain(self) -> None:
        # queued events start a fresh causal chain
        active_handlers.set(frozenset())
        event_ctx.set(None)
        while (event := self._next_event()) is not None:
            method = "emit" if event.completable else "notify"
            await self._dispatch(event, method)

    def _drain_stopped(self, generation: int) -> None:
        """Release the queue after a drain loop ends, even one cancelled before it ran."""
        with self._queue_lock:
            if not self._draining or generation != self._drain_generation:
                return
            leftovers = list(self._queue)
            self._queue.clear()
            self._draining = False
            self._idle.set()

        for event in leftovers:
            if event.completion is None or event.completion.resolved:
                continue
            try:
                event.completion.resolve(CONTINUE)
            except RuntimeError as e:
                # the emitter's loop is already closed
                logger.debug(f"Could not release {event.name!r}: {e!r}")
        if leftovers:
            logger.warning(f"Drain loop stopped with {len(leftovers)} queued events undelivered")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _start(self, subscriber: Subscriber, event: Event, captures: list[Any]) -> Any:
        """Call a handler; awaitable results come back as a tracked task."""
        token = active_handlers.set(active_handlers.get() | {subscriber.key})
        ctx_token = event_ctx.set(event)
        try:
            result = subscriber(event, *captures)
            if inspect.isawaitable(result):
                # created while the handler is marked active so the task inherits it
                task = asyncio.ensure_future(self._settle(subscriber, event, result))
                self._track(task)
                return task
            return result
        except Exception:
            logger.exception(f"Handler {subscriber!r} failed for event {event.name!r}")
            return CONTINUE
        finally:
            event_ctx.reset(ctx_token)
            active_handlers.reset(token)

    async def _settle(self, subscriber: Subscriber, event: Event, awaitable: Any) -> Any:
        try:
            return await awaitable
        except Exception:
            logger.exception(f"Handler {subscriber!r} failed for event {event.name!r}")
            return CONTINUE

    @staticmethod
    async def _outcome(value: Any) -> Any:
        if isinstance(value, asyncio.Future):
            (value,) = await asyncio.gather(value, return_exceptions=True)
            if isinstance(value, BaseException):
                return CONTINUE
        return value

    def _dispatch_inline(self, event: Event) -> None:
        """Run a notification's handlers in the caller's frame."""
        start_time = time.perf_counter()
        handler_count = 0
        serial = self._registry.iter_matches(event, synchronous=True)
        for subscriber, captures in serial:
            handler_count += 1
            value = self._start(subscriber, event, captures)
            if isinstance(value, asyncio.Future):
                # later serial handlers must wait for this one
                self._track(
                    asyncio.ensure_future(
                        self._dispatch(
                            event,
                            "notify_now",
                            serial=serial,
                            pending=value,
                            handler_count=handler_count,
                            start_time=start_time,
                        )
                    )
                )
                return

        for subscriber, captures in self._registry.iter_matches(event, synchronous=False):
            handler_count += 1
            self._start(subscriber, event, captures)
        self._log_event(
            event,
            "notify_now",
            handler_count,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            result=CONTINUE,
        )

    async def _dispatch(
        self,
        event: Event,
        method: str,
        *,
        serial: Iterator[tuple[Subscriber, list[Any]]] | None = None,
        pending: asyncio.Future | None = None,
        handler_count: int = 0,
        start_time: float | None = None,
    ) -> Any:
        """Run both phases for ``event``.

        ``serial``, ``pending`` and ``handler_count`` resume a dispatch whose
        serial phase was started by :meth:`_dispatch_inline`.
        """
        if start_time is None:
            start_time = time.perf_counter()
        if serial is None:
            serial = self._registry.iter_matches(event, synchronous=True)
        result: Any = CONTINUE
        error: BaseException | None = None

        try:
            if pending is not None:
                await self._outcome(pending)

            for subscriber, captures in serial:
                handler_count += 1
                value = await self._outcome(self._start(subscriber, event, captures))

                if event.completion is None:
                    continue
                if value is CANCELLED:
                    result = CANCELLED
                    event.completion.resolve(CANCELLED)
                    return result
                if value is not CONTINUE:
                    result = value

            if event.completion is None:
                # notifications: start everything, wait for nothing
                for subscriber, captures in self._registry.iter_matches(event, synchronous=False):
                    handler_count += 1
                    self._start(subscriber, event, captures)
                return CONTINUE

            outcomes: list[Any] = [result]
            for subscriber, captures in self._registry.iter_matches(event, synchronous=False):
                handler_count += 1
                outcomes.append(self._start(subscriber, event, captures))

            waiting = [each for each in outcomes if isinstance(each, asyncio.Future)]
            if waiting:
                await asyncio.gather(*waiting, return_exceptions=True)

            result = CONTINUE
            for outcome in outcomes:
                if isinstance(outcome, asyncio.Future):
                    if outcome.cancelled() or outcome.exception() is not None:
                        continue
                    outcome = outcome.result()
                if outcome is not CONTINUE:
                    result = outcome
                    break

            event.completion.resolve(result)
            return result
        except BaseException as e:
            error = e
            raise
        finally:
            # never leave an emitter waiting forever
            if event.completion is not None and not event.completion.resolved:
                event.completion.resolve(CONTINUE)
            self._log_event(
                event,
                method,
                handler_count,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                result=result,
                error=error,
            )

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _schedule(
        self,
        coro: Coroutine[Any, Any, Any],
        on_done: Callable[[], None] | None = None,
    ) -> None:
        """Run ``coro`` as a tracked task.

        ``on_done`` is called once the task finishes, including when it is
        cancelled before its first step, and may be called more than once.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(coro)
            self._track(task)
            if on_done is not None:
                task.add_done_callback(lambda _: on_done())
            return

        # No running loop - use the background loop
        background = self._start_event_loop()

        async def create_and_track_task() -> None:
            task = asyncio.ensure_future(coro)
            self._track(task)
            if on_done is not None:
                task.add_done_callback(lambda _: on_done())
            try:
                await task
            except asyncio.CancelledError:
                pass

        future = asyncio.run_coroutine_threadsafe(create_and_track_task(), background)
        self._futures.add(future)
        future.add_done_callback(self._futures.discard)
        if on_done is not None:
            # covers a future cancelled before the task was created
            future.add_done_callback(lambda _: on_done())

    def _start_event_loop(self) -> asyncio.AbstractEventLoop:
        """Start background event loop for work scheduled outside a loop."""
        with self._loop_lock:
            if self._event_loop and not self._event_loop.is_closed():
                return self._event_loop

            loop = asyncio.new_event_loop()
            ready = threading.Event()

            def run_loop() -> None:
                asyncio.set_event_loop(loop)
                loop.call_soon(ready.set)
                try:
                    loop.run_forever()
                finally:
                    loop.close()

            self._event_loop = loop
            self._loop_thread = threading.Thread(
                target=run_loop, name="filterbus-loop", daemon=True
            )
            self._loop_thread.start()
            ready.wait()
            return loop

    # ------------------------------------------------------------------
    # Event tracing
    # ------------------------------------------------------------------

    def set_event_trace(
        self, enabled: bool, verbosity: int = 1, use_rich: bool = True
    ) -> None:
        """
        Enable or disable event tracing with configurable output.

        Args:
            enabled: Whether to enable event tracing
            verbosity: Level of detail (0=minimal, 1=normal, 2=verbose)
            use_rich: Whether to use Rich formatting for output
        """
        self._event_trace = enabled
        self._event_trace_verbosity = verbosity
        self._event_trace_use_rich = use_rich

        msg = f"Event tracing {'enabled' if enabled else 'disabled'} for {self.__class__.__name__}"
        if not use_rich:
            logger.info(msg)
        elif enabled:
            _console.print(
                Panel(
                    f"[bold green]✓[/bold green] {msg}\n"
                    f"[dim]Verbosity: {['minimal', 'normal', 'verbose'][verbosity]}[/dim]",
                    title="Event Tracing",
                    border_style="green",
                )
            )
        else:
            _console.print(f"[yellow]ℹ[/yellow] {msg}")

    @property
    def event_trace_enabled(self) -> bool:
        return self._event_trace

    @staticmethod
    def _trace_parameters(event: Event) -> dict[str, Any]:
        parameters: dict[str, Any] = {}
        if event.text:
            parameters["text"] = event.text
        if event.data is not None:
            parameters["data"] = event.data
        if event.source is not None:
            parameters["source"] = type(event.source).__name__
        return parameters

    def _format_event_trace(
        self,
        event: Event,
        method: str,
        handler_count: int = 0,
        duration_ms: float | None = None,
        result: Any = None,
        error: BaseException | None = None,
    ) -> tuple[Text, Table | None]:
        """
        Format event trace data for Rich output.

        Returns:
            Tuple of (main_text, optional_table)
        """
        method_colors = {
            "emit": "blue",
            "emit_now": "magenta",
            "notify": "cyan",
            "notify_now": "green",
        }
        method_color = method_colors.get(method, "white")

        text = Text()
        text.append("🔥 " if method.startswith("notify") else "⚡ ", style="bold")
        text.append(event.name, style=f"bold {method_color}")
        text.append(" | ")
        text.append(f"{method}()", style=method_color)
        text.append(" | ")

        if handler_count > 0:
            text.append(f"handlers: {handler_count}", style="green")
        else:
            text.append("no handlers", style="dim red")

        if duration_ms is not None:
            text.append(" | ")
            if duration_ms < 10:
                dur_style = "green"
            elif duration_ms < 100:
                dur_style = "yellow"
            else:
                dur_style = "red"
            text.append(f"{duration_ms:.2f}ms", style=f"bold {dur_style}")

        if result is CANCELLED:
            text.append(" | ")
            text.append("cancelled", style="bold yellow")

        if error:
            text.append(" | ")
            text.append(f"ERROR: {error!r}", style="bold red")

        table = None
        if self._event_trace_verbosity >= 2:
            table = Table(show_header=True, header_style="bold cyan", box=None)
            table.add_column("Field", style="cyan", width=15)
            table.add_column("Value", overflow="fold")

            for key, value in self._trace_parameters(event).items():
                value_str = str(value)
                if len(value_str) > 100:
                    value_str = value_str[:97] + "..."
                table.add_row("param:" + key, value_str)

            if result is not None and event.completable:
                result_str = str(result)
                if len(result_str) > 200:
                    result_str = result_str[:197] + "..."
                table.add_row("result", result_str, style="green")

            if error:
                table.add_row("error", str(error), style="red")

        return text, table

    def _log_event(
        self,
        event: Event,
        method: str,
        handler_count: int = 0,
        duration_ms: float | None = None,
        result: Any = None,
        error: BaseException | None = None,
    ) -> None:
        """Report a dispatched event when tracing is enabled."""
        if not self._event_trace:
            return

        if self._event_trace_use_rich:
            text, table = self._format_event_trace(
                event, method, handler_count, duration_ms, result, error
            )
            parameters = self._trace_parameters(event)
            if self._event_trace_verbosity == 1 and parameters:
                # Normal - main line with inline params
                param_summary = Text(" ")
                param_summary.append("[", style="dim")
                param_items = []
                for k, v in parameters.items():
                    v_str = str(v)
                    if len(v_str) > 20:
                        v_str = v_str[:17] + "..."
                    param_items.append(f"{k}={v_str}")
                param_summary.append(", ".join(param_items), style="dim")
                param_summary.append("]", style="dim")
                text.append(param_summary)
            _console.print(text)
            if table:
                _console.print(table)
            return

        # Fallback to simple logging
        parts = [
            "[EVENT TRACE]",
            f"event={event.name!r}",
            f"method={method}",
            f"handlers={handler_count}",
        ]
        if duration_ms is not None:
            parts.append(f"duration={duration_ms:.2f}ms")
        if result is not None:
            parts.append(f"result={result!r}")
        if error:
            parts.append(f"error={error!r}")
        logger.debug(" | ".join(parts))

    # ------------------------------------------------------------------
    # Resource management
    # ------------------------------------------------------------------

    async def join_async(self, timeout: float = 5.0) -> None:
        """Wait for tracked tasks (and anything they spawn) to finish."""
        loop = asyncio.get_running_loop()
        current = asyncio.current_task()

        async def settle() -> None:
            while True:
                waiting: list[asyncio.Future] = [
                    task
                    for task in list(self._tasks)
                    if not task.done() and task is not current and task.get_loop() is loop
                ]
                waiting.extend(
                    asyncio.wrap_future(future)
                    for future in list(self._futures)
                    if not future.done()
                )
                if not waiting:
                    return
                await asyncio.gather(*waiting, return_exceptions=True)

        try:
            await asyncio.wait_for(settle(), timeout=timeout)
        except TimeoutError:
            if self._debug:
                logger.warning(f"Timeout waiting for {len(self._tasks)} tasks")

    def join(self, timeout: float = 5.0) -> None:
        """
        Wait for all background tasks to complete.

        This is the synchronous version - blocks until tasks complete or timeout.
        Only work running on the background loop can be waited for this way.
        """
        if not self._event_loop or self._event_loop.is_closed():
            return
        future = asyncio.run_coroutine_threadsafe(
            self.join_async(timeout), self._event_loop
        )
        try:
            future.result(timeout=timeout + 1.0)
        except concurrent.futures.TimeoutError:
            if self._debug:
                logger.warning(f"Timeout joining background loop after {timeout}s")

    def _stop_event_loop(self) -> None:
        loop, thread = self._event_loop, self._loop_thread
        self._event_loop = None
        self._loop_thread = None
        if loop is None or loop.is_closed():
            return

        def cancel_and_stop() -> None:
            for task in list(self._tasks):
                if task.get_loop() is loop and not task.done():
                    task.cancel()
            loop.stop()

        loop.call_soon_threadsafe(cancel_and_stop)
        if thread and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    def _unregister_signals(self) -> None:
        if self._signal_handling_enabled:
            from ..signal_handler import unregister_from_signals

            unregister_from_signals(self)
            self._signal_handling_enabled = False

    def close(self) -> None:
        """Clean up resources."""
        self._unregister_signals()

        # Wait for tasks
        self.join(timeout=1.0)

        # Cancel any remaining futures from run_coroutine_threadsafe
        for future in list(self._futures):
            if not future.done():
                future.cancel()
        self._futures.clear()

        self._stop_event_loop()

    async def async_close(self) -> None:
        """Async version of close - waits for tasks and cleans up."""
        self._unregister_signals()

        await self.join_async(timeout=1.0)

        for future in list(self._futures):
            if not future.done():
                future.cancel()
        self._futures.clear()

        # Cancel any remaining tasks on this loop
        loop = asyncio.get_running_loop()
        current = asyncio.current_task()
        remaining = [
            task
            for task in list(self._tasks)
            if task.get_loop() is loop and task is not current and not task.done()
        ]
        for task in remaining:
            task.cancel()
        if remaining:
            await asyncio.gather(*remaining, return_exceptions=True)

        if self._event_loop is not None and self._event_loop is not loop:
            await asyncio.to_thread(self._stop_event_loop)

    async def __aenter__(self) -> EventBus:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.async_close()

    def __enter__(self) -> EventBus:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


_default_bus: EventBus | None = None
_default_bus_lock = threading.Lock()


def get_default_bus() -> EventBus:
    """Return the process-wide bus, creating it on first use."""
    global _default_bus
    with _default_bus_lock:
        if _default_bus is None:
            _default_bus = EventBus()
        return _default_bus


def set_default_bus(bus: EventBus | None) -> EventBus | None:
    """Replace the process-wide bus (``None`` resets it). Returns the previous one."""
    global _default_bus
    with _default_bus_lock:
        previous, _default_bus = _default_bus, bus
        return previous


__all__ = ["EventBus", "get_default_bus", "set_default_bus"]
