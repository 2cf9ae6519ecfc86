"""Status markers, type aliases and exceptions shared by the event bus."""

from __future__ import annotations

import enum
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from ..sandbox import ScriptError


class EventStatus(enum.Enum):
    """Result markers a handler can return to steer a completable event."""

    CANCELLED = "cancelled"
    """Stop processing the event and resolve it as cancelled."""

    def __repr__(self) -> str:
        return f"EventStatus.{self.name}"


CONTINUE: None = None
"""A handler returning ``None`` lets dispatch carry on untouched."""

CANCELLED = EventStatus.CANCELLED

EventName: TypeAlias = str

Filter: TypeAlias = Callable[[Any, list[str], list[Any]], bool]
"""Compiled predicate ``(data, strings, captures) -> bool``."""

Callback: TypeAlias = Callable[..., Any | Awaitable[Any]]
"""Handler invoked as ``callback(event, *captures)``."""

Unsubscribe: TypeAlias = Callable[[], None]


class EventBusError(Exception):
    """Base class for event bus errors."""


class TriggerExpressionError(EventBusError, ValueError):
    """A trigger expression could not be parsed."""

    def __init__(self, message: str, expression: str | None = None, offset: int | None = None):
        super().__init__(message)
        self.expression = expression
        self.offset = offset


class FilterCompilationError(TriggerExpressionError):
    """A filter clause parsed but its predicate did not compile."""

    def __init__(
        self,
        message: str,
        errors: list[ScriptError],
        expression: str | None = None,
        offset: int | None = None,
    ):
        super().__init__(message, expression, offset)
        self.errors = errors


class EventArgumentError(EventBusError, TypeError):
    """Emit-family call received an argument shape it cannot expand."""
