"""Trigger expression parsing.

Grammar::

    [modifiers] segment (separator segment)*

    modifiers  := ('once' | 'this' | 'await')*
    segment    := (identifier | '*') filter? | filter
    filter     := '[' clause ']'
    separator  := '/'+ | ':'

The first segment usually names the event, the rest name descriptors. Every
segment must match for a subscriber to fire.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Literal

from ...utilities.identifiers import smash
from ...utilities.scanner import Kind, Scanner, Token
from .filters import compile_filter
from .protocols import Filter, TriggerExpressionError

logger = logging.getLogger(__name__)

WILDCARD = "*"

ALWAYS: Literal[True] = True
"""Filter value for a segment without a bracketed clause."""

_SEPARATORS = (Kind.SLASH, Kind.COLON)


@dataclass(frozen=True, slots=True)
class TriggerExpression:
    """The parsed form of a subscription's trigger expression."""

    is_synchronous: bool
    """``await`` was given: the handler runs in the serial phase."""

    once: bool
    filters: Mapping[str, Filter | Literal[True]]
    bound_source: Any = None
    """Owner the ``this`` modifier bound the subscription to."""

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self.filters)


def _unexpected(token: Token, expression: str) -> TriggerExpressionError:
    return TriggerExpressionError(
        f"unexpected token {token} in trigger expression {expression!r}",
        expression,
        token.offset,
    )


def parse(expression: str, source: Any = None) -> TriggerExpression:
    """Parse ``expression``, binding ``this`` to ``source``.

    Raises:
        TriggerExpressionError: The expression is empty, malformed or has
            trailing input.
        FilterCompilationError: A filter clause did not compile.
    """
    scanner = Scanner(expression)
    scanner.take_whitespace_and_newlines()

    once = False
    is_synchronous = False
    bound_source = None

    while scanner.current.is_keyword:
        token = scanner.take()
        if token.kind is Kind.ONCE_KEYWORD:
            once = True
        elif token.kind is Kind.THIS_KEYWORD:
            bound_source = source
        elif token.kind is Kind.AWAIT_KEYWORD:
            is_synchronous = True
        else:
            raise _unexpected(token, expression)
        scanner.take_whitespace_and_newlines()

    filters: dict[str, Filter | Literal[True]] = {}
    expect_segment = True

    while True:
        scanner.take_whitespace_and_newlines()
        token = scanner.current
        if token.kind is Kind.END_OF_FILE:
            break

        if token.kind in _SEPARATORS:
            scanner.take()
            expect_segment = True
            continue

        if not expect_segment:
            raise _unexpected(token, expression)

        if token.kind is Kind.OPEN_BRACKET:
            scanner.take()
            filters[WILDCARD] = compile_filter(scanner, expression)
        elif token.kind in (Kind.IDENTIFIER, Kind.ASTERISK):
            scanner.take()
            name = WILDCARD if token.kind is Kind.ASTERISK else smash(token.text)
            scanner.take_whitespace_and_newlines()
            if scanner.current.kind is Kind.OPEN_BRACKET:
                scanner.take()
                filters[name] = compile_filter(scanner, expression)
            else:
                filters[name] = ALWAYS
        else:
            raise _unexpected(token, expression)

        expect_segment = False

    if not filters:
        raise TriggerExpressionError(
            f"trigger expression {expression!r} names no event", expression, 0
        )

    if source is not None and bound_source is not source:
        logger.debug(
            f"source given but 'this' not found in trigger expression {expression!r}"
        )

    return TriggerExpression(
        is_synchronous=is_synchronous,
        once=once,
        filters=MappingProxyType(filters),
        bound_source=bound_source,
    )
