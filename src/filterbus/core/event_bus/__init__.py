"""Re-export the event bus package's public API under one import path."""

from __future__ import annotations

# Event records and context
from .context import Completion, Event, active_handlers, event_ctx

# Dispatcher
from .core import EventBus, get_default_bus, set_default_bus

# Decorators
from .decorators import iter_handlers, on

# Descriptors
from .descriptors import NO_DESCRIPTORS, Descriptors

# Producer base class
from .emitter import Emitter

# Parsing and filters
from .filters import compile_filter
from .parser import ALWAYS, WILDCARD, TriggerExpression, parse

# Core protocols and types
from .protocols import (
    CANCELLED,
    CONTINUE,
    Callback,
    EventArgumentError,
    EventBusError,
    EventName,
    EventStatus,
    Filter,
    FilterCompilationError,
    TriggerExpressionError,
    Unsubscribe,
)

# Subscription registry
from .registration import Subscriber, SubscriptionRegistry

__all__ = [
    # Core classes
    "EventBus",
    "Emitter",
    "Event",
    "Completion",
    "Descriptors",
    "NO_DESCRIPTORS",
    # Decorators
    "on",
    "iter_handlers",
    # Parsing
    "parse",
    "compile_filter",
    "TriggerExpression",
    "ALWAYS",
    "WILDCARD",
    # Registration
    "Subscriber",
    "SubscriptionRegistry",
    # Status markers and type aliases
    "EventStatus",
    "CANCELLED",
    "CONTINUE",
    "EventName",
    "Filter",
    "Callback",
    "Unsubscribe",
    # Errors
    "EventBusError",
    "TriggerExpressionError",
    "FilterCompilationError",
    "EventArgumentError",
    # Default bus
    "get_default_bus",
    "set_default_bus",
    # Context variables (advanced usage)
    "event_ctx",
    "active_handlers",
]
