"""Base class for objects that produce (and listen to) their own events."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from ...utilities.identifiers import smash
from .context import Event
from .core import EventBus, get_default_bus
from .descriptors import Descriptors
from .protocols import CANCELLED, CONTINUE, Callback, Unsubscribe

logger = logging.getLogger(__name__)

EventTrigger = Callable[..., Awaitable[Any]]
NotificationTrigger = Callable[..., None]


def _resolve_future(future: asyncio.Future[Any], value: Any) -> None:
    if not future.done():
        future.set_result(value)


class Emitter:
    """Producer base class.

    Every event an emitter raises carries the emitter as its source and the
    emitter's descriptors (one per class in its hierarchy, so ``click:Button``
    matches clicks raised by any ``Button``). Methods decorated with ``@on``
    are subscribed on construction for the lifetime of the instance.

    Example:
        ```python
        class Download(Emitter):
            def __init__(self):
                super().__init__()
                self.progress = self.new_notification("progress")
                self.finished = self.new_event("finished", default=True)


        download = Download()
        download.on("progress[percent >= 50]", lambda event: print("halfway"))
        download.progress({"percent": 60})
        ```
    """

    def __init__(self, bus: EventBus | None = None):
        self.bus = bus or get_default_bus()
        self.descriptors = Descriptors(self)
        self._known_events: set[str] = set()
        self.bus.subscribe(self, event_source=self)

    def is_known_event(self, name: str) -> bool:
        return smash(name) in self._known_events

    def _arguments(self, text_or_data: Any, data: Any) -> tuple[Any, ...]:
        if data is not None:
            return (self, text_or_data or "", data)
        return (self, text_or_data)

    # ------------------------------------------------------------------
    # Producing
    # ------------------------------------------------------------------

    async def emit(self, event: str, text_or_data: Any = None, data: Any = None) -> Any:
        """Queue an event from this emitter and wait for its result."""
        return await self.bus.emit(event, self.descriptors, *self._arguments(text_or_data, data))

    async def emit_now(self, event: str, text_or_data: Any = None, data: Any = None) -> Any:
        return await self.bus.emit_now(
            event, self.descriptors, *self._arguments(text_or_data, data)
        )

    def notify(self, event: str, text_or_data: Any = None, data: Any = None) -> None:
        self.bus.notify(event, self.descriptors, *self._arguments(text_or_data, data))

    def notify_now(self, event: str, text_or_data: Any = None, data: Any = None) -> None:
        self.bus.notify_now(event, self.descriptors, *self._arguments(text_or_data, data))

    def _event_descriptors(self, descriptors: Mapping[str, Any] | None) -> Descriptors:
        if descriptors:
            return Descriptors(self.descriptors, descriptors)
        return self.descriptors

    def new_event(
        self,
        name: str,
        *,
        now: bool = False,
        default: Any = None,
        cancel: Callable[[], Any] | None = None,
        descriptors: Mapping[str, Any] | None = None,
        once: bool = False,
    ) -> EventTrigger:
        """Create an async trigger function for a named completable event.

        The trigger returns the handlers' result, ``default`` (called or
        awaited when it is callable) when every handler continued, and
        ``cancel()`` (or CANCELLED) when a handler cancelled the event.

        Args:
            name: Event name.
            now: Dispatch immediately instead of queueing.
            default: Result used when every handler returns CONTINUE.
            cancel: Called to produce the result of a cancelled event.
            descriptors: Extra descriptors for this event only.
            once: Only the first trigger emits; later ones return None.
        """
        name = smash(name)
        self._known_events.add(name)
        event_descriptors = self._event_descriptors(descriptors)
        dispatch = self.bus.emit_now if now else self.bus.emit
        fired = False

        async def trigger(text_or_data: Any = None, data: Any = None) -> Any:
            nonlocal fired
            if once:
                if fired:
                    return None
                fired = True

            result = await dispatch(name, event_descriptors, *self._arguments(text_or_data, data))

            if result is CANCELLED:
                return cancel() if cancel is not None else CANCELLED
            if result is CONTINUE:
                value = default() if callable(default) else default
                if inspect.isawaitable(value):
                    value = await value
                return value
            return result

        trigger.__name__ = trigger.__qualname__ = name
        return trigger

    def new_notification(
        self,
        name: str,
        *,
        now: bool = False,
        descriptors: Mapping[str, Any] | None = None,
        once: bool = False,
    ) -> NotificationTrigger:
        """Create a trigger function for a named notification."""
        name = smash(name)
        self._known_events.add(name)
        event_descriptors = self._event_descriptors(descriptors)
        dispatch = self.bus.notify_now if now else self.bus.notify
        fired = False

        def trigger(text_or_data: Any = None, data: Any = None) -> None:
            nonlocal fired
            if once:
                if fired:
                    return
                fired = True
            dispatch(name, event_descriptors, *self._arguments(text_or_data, data))

        trigger.__name__ = trigger.__qualname__ = name
        return trigger

    # ------------------------------------------------------------------
    # Consuming
    # ------------------------------------------------------------------

    def on(self, expression: str, callback: Callback) -> Unsubscribe:
        """Subscribe to events raised by this emitter."""
        return self.bus.on(f"this {expression}", callback, self)

    def once(self, expression: str, callback: Callback) -> Unsubscribe:
        return self.bus.on(f"this once {expression}", callback, self)

    def subscribe(self, *subscribers: Any) -> None:
        """Subscribe handler objects (or mappings) for this emitter's lifetime.

        With no arguments the emitter's own decorated methods are subscribed.
        """
        for subscriber in subscribers or (self,):
            self.bus.subscribe(subscriber, event_source=self)

    def remove_all_listeners(self) -> None:
        self.bus.remove_all_listeners(self)

    async def wait(self, expression: str, timeout: float | None = None) -> Event:
        """Wait for the next event from this emitter matching ``expression``.

        Raises:
            TimeoutError: Nothing matched within ``timeout`` seconds.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Event] = loop.create_future()

        def resolve(event: Event, *captures: Any) -> None:
            loop.call_soon_threadsafe(_resolve_future, future, event)

        unsubscribe = self.once(expression, resolve)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()
