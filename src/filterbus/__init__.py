"""filterbus - in-process publish/subscribe with filtered trigger expressions.

Subscribers describe the events they want with a trigger expression::

    bus.on("await orderPlaced[amount > 100]", review)
    bus.on("logLine[/ERROR (.*)/]", alert)

and producers raise events through ``emit``/``notify`` (queued) or
``emit_now``/``notify_now`` (immediate).
"""

import logging

from .core.event_bus import (
    CANCELLED,
    CONTINUE,
    Descriptors,
    Emitter,
    Event,
    EventArgumentError,
    EventBus,
    EventBusError,
    EventStatus,
    FilterCompilationError,
    TriggerExpressionError,
    event_ctx,
    get_default_bus,
    on,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "EventBus",
    "Emitter",
    "Event",
    "Descriptors",
    "on",
    "get_default_bus",
    "event_ctx",
    "EventStatus",
    "CANCELLED",
    "CONTINUE",
    "EventBusError",
    "TriggerExpressionError",
    "FilterCompilationError",
    "EventArgumentError",
    "__version__",
]
