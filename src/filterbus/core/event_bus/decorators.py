"""The ``@on`` handler decorator and the reflection used by bulk subscription."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterator
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

HANDLER_CONFIG = "_event_handler_config"


def on(*expressions: str) -> Callable[[F], F]:
    """Mark a method as a handler for one or more trigger expressions.

    The method is not wrapped; the expressions are stored on it and picked up
    when the owning object is passed to ``EventBus.subscribe`` (an ``Emitter``
    does this for itself on construction). Without expressions the method's
    own name is used. Stacking decorators accumulates expressions.

    Example:
        ```python
        class Checkout(Emitter):
            @on("await orderPlaced[amount > 1000]")
            def review(self, event):
                return CANCELLED

            @on()
            def payment_received(self, event): ...
        ```
    """

    def decorator(fn: F) -> F:
        existing = getattr(fn, HANDLER_CONFIG, None)
        events = list(existing["events"]) if existing else []
        events.extend(expressions or (fn.__name__,))
        setattr(fn, HANDLER_CONFIG, {"events": events})
        return fn

    return decorator


def iter_handlers(obj: Any, bind_all: bool = False) -> Iterator[tuple[str, Callable[..., Any]]]:
    """Yield ``(expression, bound_method)`` for the handlers ``obj`` declares.

    Decorated methods yield one pair per expression. With ``bind_all`` every
    other public method is yielded under its own name.
    """
    cls = type(obj)
    for name in dir(obj):
        if name.startswith("__"):
            continue

        # Look at the class attribute so properties are never evaluated
        class_attr = inspect.getattr_static(cls, name, None)
        if isinstance(class_attr, (staticmethod, classmethod)):
            class_attr = class_attr.__func__

        config = getattr(class_attr, HANDLER_CONFIG, None)
        if config:
            bound = getattr(obj, name)
            for expression in config["events"]:
                yield expression, bound
        elif bind_all and not name.startswith("_") and inspect.isfunction(class_attr):
            yield name, getattr(obj, name)
