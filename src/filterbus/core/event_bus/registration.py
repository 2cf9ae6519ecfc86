"""Subscription storage, lookup and lifetime binding.

THREAD SAFETY: the indices are guarded by a ``threading.RLock``. Lookups copy
the candidate lists under the lock and evaluate filters outside it, so
handlers may subscribe and unsubscribe freely while an event is dispatched.

ORDERING: each event name maps to a deque of subscribers, newest first.
Two indices exist, one per phase (serial ``await`` subscribers and concurrent
ones). A name disappears from its index as soon as its deque empties.

LIFETIME: a subscription made with an ``event_source`` is recorded against
that owner. ``remove_all_listeners(owner)`` drops them all at once, and the
same happens automatically (``weakref.finalize``) once the owner is garbage
collected.
"""

from __future__ import annotations

import collections
import inspect
import logging
import threading
import weakref
from collections.abc import Callable, Iterator, Mapping
from typing import Any, Literal

from .context import Event, active_handlers
from .parser import WILDCARD, parse
from .protocols import CONTINUE, Callback, Filter, Unsubscribe

logger = logging.getLogger(__name__)


def handler_key(callback: Callable[..., Any]) -> Any:
    """Identity of a callback, stable across re-bound methods."""
    if inspect.ismethod(callback):
        return (id(callback.__self__), id(callback.__func__))
    return id(callback)


class Subscriber:
    """One registered callback together with its compiled filters."""

    __slots__ = (
        "expression",
        "filters",
        "is_synchronous",
        "once",
        "event_source",
        "key",
        "active",
        "unsubscribe",
        "_callback",
        "__weakref__",
    )

    def __init__(
        self,
        expression: str,
        filters: Mapping[str, Filter | Literal[True]],
        callback: Callback,
        *,
        is_synchronous: bool = False,
        once: bool = False,
        event_source: weakref.ref | None = None,
        owner: Any = None,
    ):
        self.expression = expression
        self.filters = filters
        self.is_synchronous = is_synchronous
        self.once = once
        self.event_source = event_source
        self.key = handler_key(callback)
        self.active = True
        self.unsubscribe: Unsubscribe = lambda: None

        # a method of the owner must not keep the owner alive
        if owner is not None and inspect.ismethod(callback) and callback.__self__ is owner:
            self._callback: Callable[[], Callback | None] = weakref.WeakMethod(callback)
        else:
            self._callback = lambda: callback

    @property
    def callback(self) -> Callback | None:
        return self._callback()

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self.filters)

    def __call__(self, *args: Any) -> Any:
        if self.once:
            if not self.active:
                return CONTINUE
            self.unsubscribe()

        callback = self._callback()
        if callback is None:
            return CONTINUE
        return callback(*args)

    def match(self, event: Event) -> list[Any] | None:
        """Return the captures if every filter matches ``event``, else None."""
        if self.event_source is not None:
            bound = self.event_source()
            if bound is None or bound is not event.source:
                return None

        captures: list[Any] = []
        for name, predicate in self.filters.items():
            if name == event.name or name == WILDCARD:
                strings: Any = ()
            else:
                strings = event.descriptors.get(name)
                if strings is None:
                    return None

            if predicate is True:
                continue

            if not predicate(event.payload, [*strings, event.text], captures):
                return None

        return captures

    def __repr__(self) -> str:
        return f"<Subscriber {self.expression!r}>"


class _OwnerBinding:
    __slots__ = ("unsubscribes", "finalizer")

    def __init__(self) -> None:
        self.unsubscribes: list[Unsubscribe] = []
        self.finalizer: weakref.finalize | None = None

    def release(self) -> None:
        unsubscribes, self.unsubscribes = self.unsubscribes, []
        for unsubscribe in unsubscribes:
            unsubscribe()


def _reclaim(registry_ref: weakref.ref[SubscriptionRegistry], key: int) -> None:
    registry = registry_ref()
    if registry is not None:
        registry._release_owner(key)


class SubscriptionRegistry:
    """Thread-safe subscriber indices for one event bus."""

    def __init__(self, debug: bool = False):
        self._lock = threading.RLock()
        """RLock guarding both indices and the owner bindings."""

        self._serial: dict[str, collections.deque[Subscriber]] = {}
        self._concurrent: dict[str, collections.deque[Subscriber]] = {}

        # keyed by id(owner) so unhashable owners work; entries are dropped
        # by the owner's finalizer before the id can be reused
        self._owners: dict[int, _OwnerBinding] = {}

        self._debug = debug

    def _index(self, synchronous: bool) -> dict[str, collections.deque[Subscriber]]:
        return self._serial if synchronous else self._concurrent

    def on(
        self,
        expression: str,
        callback: Callback,
        event_source: Any = None,
    ) -> Unsubscribe:
        """Subscribe ``callback`` to the events ``expression`` describes.

        Args:
            expression: Trigger expression, e.g. ``"await orderPlaced[amount > 100]"``.
            callback: Called as ``callback(event, *captures)``; may be async.
            event_source: Owner of the subscription. ``this`` in the expression
                also restricts it to events whose source is this owner.

        Returns:
            A function removing the subscription. Calling it twice is harmless.

        Raises:
            TriggerExpressionError: The expression did not parse.
            FilterCompilationError: A filter did not compile.
            TypeError: ``event_source`` does not support weak references.
        """
        trigger = parse(expression, event_source)

        bound = None
        if trigger.bound_source is not None:
            bound = weakref.ref(trigger.bound_source)

        subscriber = Subscriber(
            expression,
            trigger.filters,
            callback,
            is_synchronous=trigger.is_synchronous,
            once=trigger.once,
            event_source=bound,
            owner=event_source,
        )
        index = self._index(trigger.is_synchronous)
        owner_key = id(event_source) if event_source is not None else None

        def unsubscribe() -> None:
            with self._lock:
                if not subscriber.active:
                    return
                subscriber.active = False
                for name in subscriber.names:
                    subscribers = index.get(name)
                    if subscribers is None:
                        continue
                    try:
                        subscribers.remove(subscriber)
                    except ValueError:
                        pass
                    if not subscribers:
                        del index[name]

                if owner_key is not None:
                    binding = self._owners.get(owner_key)
                    if binding is not None and unsubscribe in binding.unsubscribes:
                        binding.unsubscribes.remove(unsubscribe)

            if self._debug:
                logger.debug(f"Unsubscribed {subscriber!r}")

        subscriber.unsubscribe = unsubscribe

        with self._lock:
            if owner_key is not None:
                binding = self._owners.get(owner_key)
                if binding is None:
                    binding = _OwnerBinding()
                    # raises TypeError for owners without weak reference support
                    binding.finalizer = weakref.finalize(
                        event_source, _reclaim, weakref.ref(self), owner_key
                    )
                    self._owners[owner_key] = binding
                binding.unsubscribes.append(unsubscribe)

            for name in subscriber.names:
                index.setdefault(name, collections.deque()).appendleft(subscriber)

        if self._debug:
            phase = "serial" if trigger.is_synchronous else "concurrent"
            logger.debug(f"Subscribed {subscriber!r} ({phase}) to {list(subscriber.names)}")

        return unsubscribe

    def once(self, expression: str, callback: Callback, event_source: Any = None) -> Unsubscribe:
        return self.on(f"once {expression}", callback, event_source)

    def remove_all_listeners(self, owner: Any) -> None:
        """Drop every subscription recorded against ``owner``."""
        if self._release_owner(id(owner)) and self._debug:
            logger.debug(f"Removed all listeners of {type(owner).__name__}")

    def _release_owner(self, key: int) -> bool:
        with self._lock:
            binding = self._owners.pop(key, None)
        if binding is None:
            return False
        if binding.finalizer is not None:
            binding.finalizer.detach()
        binding.release()
        return True

    def has_subscribers(self, name: str) -> bool:
        """True when any subscriber could receive an event called ``name``."""
        return (
            name in self._serial
            or name in self._concurrent
            or WILDCARD in self._serial
            or WILDCARD in self._concurrent
        )

    def candidates(self, name: str, synchronous: bool) -> list[Subscriber]:
        """Snapshot of the subscribers filed under ``name`` then ``*``."""
        index = self._index(synchronous)
        with self._lock:
            if not index:
                return []
            found = [*index.get(name, ()), *index.get(WILDCARD, ())]

        # a subscriber filed under both keys fires once
        seen: set[int] = set()
        unique = []
        for subscriber in found:
            if id(subscriber) not in seen:
                seen.add(id(subscriber))
                unique.append(subscriber)
        return unique

    def iter_matches(
        self, event: Event, synchronous: bool
    ) -> Iterator[tuple[Subscriber, list[Any]]]:
        """Lazily yield ``(subscriber, captures)`` for every match.

        Subscribers are checked as the caller advances, so a handler that
        unsubscribes a later candidate prevents it from running.
        """
        for subscriber in self.candidates(event.name, synchronous):
            if not subscriber.active:
                continue
            # the handler is running further up this call chain
            if subscriber.key in active_handlers.get():
                continue
            captures = subscriber.match(event)
            if captures is not None:
                yield subscriber, captures

    def get_handler_count(self, name: str | None = None) -> int:
        with self._lock:
            if name is not None:
                found = [*self._serial.get(name, ()), *self._concurrent.get(name, ())]
            else:
                found = [
                    subscriber
                    for index in (self._serial, self._concurrent)
                    for subscribers in index.values()
                    for subscriber in subscribers
                ]
        return len({id(subscriber) for subscriber in found})

    def clear(self) -> None:
        with self._lock:
            subscribers = [
                subscriber
                for index in (self._serial, self._concurrent)
                for each in index.values()
                for subscriber in each
            ]
            for subscriber in subscribers:
                subscriber.active = False
            self._serial.clear()
            self._concurrent.clear()
            bindings = list(self._owners.values())
            self._owners.clear()
        for binding in bindings:
            if binding.finalizer is not None:
                binding.finalizer.detach()
