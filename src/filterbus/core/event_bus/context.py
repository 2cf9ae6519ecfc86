"""Event records, completion handles and dispatch context variables."""

from __future__ import annotations

import asyncio
import contextvars
import threading
from collections.abc import Generator, Sequence
from dataclasses import dataclass, field
from typing import Any

from .descriptors import NO_DESCRIPTORS, Descriptors
from .protocols import EventArgumentError


class Completion:
    """Single-resolve result handle for a completable event.

    Created on the loop of the emitting coroutine and awaited there. It may be
    resolved from any thread; resolution is marshalled back onto that loop.
    Resolving twice is a programming error and raises ``RuntimeError``.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future[Any] = self._loop.create_future()
        self._lock = threading.Lock()
        self._resolved = False

    @property
    def resolved(self) -> bool:
        return self._resolved

    def resolve(self, value: Any) -> None:
        with self._lock:
            if self._resolved:
                raise RuntimeError("completion already resolved")
            self._resolved = True

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._set(value)
        else:
            self._loop.call_soon_threadsafe(self._set, value)

    def _set(self, value: Any) -> None:
        if not self._future.done():
            self._future.set_result(value)

    def __await__(self) -> Generator[Any, None, Any]:
        return self._future.__await__()


@dataclass(slots=True)
class Event:
    """A single emission travelling through the bus."""

    name: str
    """Smashed event name."""

    descriptors: Descriptors = field(default_factory=lambda: NO_DESCRIPTORS)
    """Discriminator provider for filter segments other than the name."""

    source: Any = None
    """Producer of the event; used by ``this`` subscriptions."""

    data: Any = None
    """Structured payload handed to handlers."""

    text: str = ""
    """String shorthand; also offered to filters as an extra string."""

    completion: Completion | None = field(default=None, repr=False)
    """Present only for request/response emissions."""

    @classmethod
    def from_arguments(
        cls,
        name: str,
        args: Sequence[Any],
        completion: Completion | None = None,
    ) -> Event:
        """Build an event from the compact emit-family argument form.

        ``args`` is ``[descriptors?] + [source?, text?, data?]`` expanded by
        count and type:

        - no arguments: nothing
        - one: text when it is a string, else data
        - two: ``(text, data)`` when the first is a string, else
          ``(source, text)`` when the second is, else ``(source, data)``
        - three: ``(source, text, data)``

        Raises:
            EventArgumentError: More than three arguments follow the descriptors.
        """
        args = list(args)
        descriptors = NO_DESCRIPTORS
        if args and isinstance(args[0], Descriptors):
            descriptors = args.pop(0)

        event = cls(name, descriptors, completion=completion)
        if len(args) > 3:
            raise EventArgumentError(
                f"event {name!r} takes at most 3 arguments after the descriptors, got {len(args)}"
            )

        if len(args) == 1:
            (first,) = args
            if isinstance(first, str):
                event.text = first
            else:
                event.data = first
        elif len(args) == 2:
            first, second = args
            if isinstance(first, str):
                event.text, event.data = first, second
            elif isinstance(second, str):
                event.source, event.text = first, second
            else:
                event.source, event.data = first, second
        elif len(args) == 3:
            event.source, text, event.data = args
            event.text = text or ""

        return event

    @property
    def completable(self) -> bool:
        return self.completion is not None

    @property
    def payload(self) -> Any:
        """What filters and handlers see: ``data`` if given, else ``source``."""
        return self.data if self.data is not None else self.source


event_ctx: contextvars.ContextVar[Event | None] = contextvars.ContextVar(
    "event_ctx", default=None
)
"""ContextVar exposing the Event currently being handled."""

active_handlers: contextvars.ContextVar[frozenset[Any]] = contextvars.ContextVar(
    "active_handlers", default=frozenset()
)
"""Identities of handlers running in the current causal chain."""
