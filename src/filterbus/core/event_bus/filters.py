"""Compiles bracketed filter clauses into sandboxed predicates.

A filter clause is one or more fragments joined with ``&&`` / ``||`` and
parentheses:

- ``/regex/flags`` tests the event's strings; the first string that matches
  contributes ``[full_match, *groups]`` to the captures,
- a string literal standing alone (``'ok'``) tests set membership in the
  strings,
- anything else is a field expression evaluated against the event data
  (``amount > 100`` reads ``data["amount"]``).

``!`` negates only the operand right after it, so ``!flag == true`` reads as
``(not flag) == True``. A negated parenthesized group negates the whole group.

The fragments are translated into one Python expression and compiled once
through :class:`~filterbus.core.sandbox.Sandbox`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

from ...utilities.scanner import Kind, Scanner, Token, UnexpectedEndOfInput
from ..sandbox import Sandbox, has_errors
from .protocols import Filter, FilterCompilationError, TriggerExpressionError

logger = logging.getLogger(__name__)

_sandbox = Sandbox()

DATA = "_data"
STRINGS = "_strings"
CAPTURES = "_captures"

_COMBINATORS = (Kind.AMPERSAND_AMPERSAND, Kind.BAR_BAR)
_BLANK = (Kind.WHITESPACE, Kind.NEW_LINE)
_OPENERS = (Kind.OPEN_PAREN, Kind.OPEN_BRACKET)
_CLOSERS = (Kind.CLOSE_PAREN, Kind.CLOSE_BRACKET)

_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    # global, sticky, unicode and indices have no meaning for a single search
    "g": 0,
    "y": 0,
    "u": 0,
    "d": 0,
}

_NAMED_GROUP = re.compile(r"\(\?<(?![=!])")
_NAMED_BACKREFERENCE = re.compile(r"\\k<(\w+)>")

_TRANSLATIONS = {
    Kind.AMPERSAND_AMPERSAND: " and ",
    Kind.BAR_BAR: " or ",
    Kind.EXCLAMATION: " not ",
    Kind.EQUALS_EQUALS_EQUALS: "==",
    Kind.EXCLAMATION_EQUALS_EQUALS: "!=",
}

_LITERALS = {
    "true": "True",
    "false": "False",
    "null": "None",
    "undefined": "None",
}


def _search(pattern: re.Pattern[str], strings: Iterable[Any], captures: list[Any]) -> bool:
    for text in strings:
        if not isinstance(text, str):
            continue
        match = pattern.search(text)
        if match:
            captures.append(match.group(0))
            captures.extend(match.groups())
            return True
    return False


def _translate(token: Token) -> str:
    if token.kind in _TRANSLATIONS:
        return _TRANSLATIONS[token.kind]
    if token.kind is Kind.NEW_LINE:
        return " "
    if token.kind in (Kind.BOOLEAN_LITERAL, Kind.IDENTIFIER):
        return _LITERALS.get(token.text, token.text)
    return token.text


def _skip_whitespace(tokens: list[Token]) -> None:
    while tokens and tokens[0].kind in _BLANK:
        tokens.pop(0)


def _group_end(tokens: list[Token], start: int) -> int:
    """Index just past the bracket or paren group opened at ``start``."""
    depth = 0
    for index in range(start, len(tokens)):
        kind = tokens[index].kind
        if kind in _OPENERS:
            depth += 1
        elif kind in _CLOSERS:
            depth -= 1
            if depth == 0:
                return index + 1
    return len(tokens)


def _operand_end(tokens: list[Token], start: int) -> int:
    """Index just past the operand a ``!`` at ``start - 1`` applies to."""
    index = start
    while index < len(tokens) and tokens[index].kind in _BLANK:
        index += 1
    if index >= len(tokens):
        return index
    if tokens[index].kind is Kind.EXCLAMATION:
        return _operand_end(tokens, index + 1)
    index = _group_end(tokens, index) if tokens[index].kind in _OPENERS else index + 1

    # member access, indexing and calls bind tighter than !
    while index < len(tokens):
        kind = tokens[index].kind
        if kind is Kind.DOT and index + 1 < len(tokens):
            index += 2
        elif kind in _OPENERS:
            index = _group_end(tokens, index)
        else:
            break
    return index


def _translate_run(tokens: list[Token]) -> str:
    """Translate a field expression, scoping each ``!`` to its own operand."""
    parts: list[str] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token.kind is Kind.EXCLAMATION:
            end = _operand_end(tokens, index + 1)
            parts.append(f"(not {_translate_run(tokens[index + 1 : end]).strip()})")
            index = end
        else:
            parts.append(_translate(token))
            index += 1
    return "".join(parts)


def compile_regex(body: str, flags: str) -> re.Pattern[str]:
    """Compile a ``/body/flags`` regex literal into a Python pattern."""
    options = 0
    for flag in flags:
        if flag not in _REGEX_FLAGS:
            raise TriggerExpressionError(f"unsupported regular expression flag {flag!r} in /{body}/{flags}")
        options |= _REGEX_FLAGS[flag]

    body = _NAMED_GROUP.sub("(?P<", body)
    body = _NAMED_BACKREFERENCE.sub(r"(?P=\1)", body)
    try:
        return re.compile(body, options)
    except re.error as e:
        raise TriggerExpressionError(f"invalid regular expression /{body}/{flags}: {e}") from e


class _FilterBuilder:
    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.expression: list[str] = []
        self.bindings: dict[str, Any] = {"_search": _search}

    def build(self) -> str:
        tokens = self.tokens
        while tokens:
            _skip_whitespace(tokens)
            if not tokens:
                break
            token = tokens.pop(0)

            if token.kind is Kind.SLASH:
                self._regex(token)
            elif token.kind is Kind.EXCLAMATION and self._negates_field():
                self._field_expression(token)
            elif token.kind in (Kind.OPEN_PAREN, Kind.CLOSE_PAREN, *_COMBINATORS, Kind.EXCLAMATION):
                self.expression.append(_translate(token))
            elif token.kind is Kind.STRING_LITERAL and self._stands_alone():
                self.expression.append(f"({token.text} in {STRINGS})")
            else:
                self._field_expression(token)

        return "".join(self.expression).strip()

    def _significant(self, start: int) -> int | None:
        for index in range(start, len(self.tokens)):
            if self.tokens[index].kind not in _BLANK:
                return index
        return None

    def _negates_field(self) -> bool:
        """True when the next operand of a ``!`` belongs to a field expression."""
        index = self._significant(0)
        if index is None:
            return False
        kind = self.tokens[index].kind
        if kind in (Kind.OPEN_PAREN, Kind.SLASH, Kind.EXCLAMATION):
            return False
        if kind is Kind.STRING_LITERAL:
            following = self._significant(index + 1)
            return following is not None and self.tokens[following].kind not in _COMBINATORS
        return True

    def _stands_alone(self) -> bool:
        _skip_whitespace(self.tokens)
        return not self.tokens or self.tokens[0].kind in _COMBINATORS

    def _regex(self, opening: Token) -> None:
        body: list[str] = []
        tokens = self.tokens
        while tokens:
            token = tokens.pop(0)
            if token.kind is Kind.SLASH:
                flags = ""
                if tokens and tokens[0].kind is Kind.IDENTIFIER:
                    flags = tokens.pop(0).text
                name = f"_rx{len(self.bindings)}"
                self.bindings[name] = compile_regex("".join(body), flags)
                self.expression.append(f"_search({name}, {STRINGS}, {CAPTURES})")
                return
            body.append(token.text)
            if token.kind is Kind.BACKSLASH and tokens:
                body.append(tokens.pop(0).text)

        raise TriggerExpressionError(
            f"unterminated regular expression /{''.join(body)}",
            offset=opening.offset,
        )

    def _field_expression(self, first: Token) -> None:
        run = [first]
        tokens = self.tokens
        while tokens and tokens[0].kind not in _COMBINATORS:
            run.append(tokens.pop(0))
        self.expression.append(_translate_run(run).strip())


def compile_filter(scanner: Scanner, expression: str | None = None) -> Filter:
    """Compile the clause following an already consumed ``[``.

    Consumes tokens up to and including the matching ``]``.

    Raises:
        TriggerExpressionError: The clause is unterminated or holds an
            unterminated or invalid regular expression.
        FilterCompilationError: The translated predicate did not compile.
    """
    start = scanner.current.offset
    try:
        tokens = list(
            scanner.take_until(
                Kind.CLOSE_BRACKET,
                escape=(Kind.BACKSLASH,),
                nestable=((Kind.OPEN_BRACKET, Kind.CLOSE_BRACKET),),
            )
        )
    except UnexpectedEndOfInput as e:
        raise TriggerExpressionError(
            f"unterminated filter starting at offset {start}", expression, start
        ) from e

    builder = _FilterBuilder(tokens)
    source = builder.build()
    compiled = _sandbox.create_function(
        source,
        (DATA, STRINGS, CAPTURES),
        filename="<filter>",
        scope=DATA,
        bindings=builder.bindings,
    )
    if has_errors(compiled):
        raise FilterCompilationError(
            f"invalid filter expression: {source!r}", compiled, expression, start
        )

    def predicate(data: Any, strings: list[str], captures: list[Any]) -> bool:
        try:
            return bool(compiled(data, strings, captures))
        except Exception as e:
            logger.debug(f"Filter {source!r} failed: {e!r}")
            return False

    predicate.expression = source  # type: ignore[attr-defined]
    return predicate
