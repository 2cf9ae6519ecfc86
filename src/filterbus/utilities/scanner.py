"""Pull-based tokenizer for trigger expressions and filter clauses.

The scanner keeps exactly one token of lookahead in :attr:`Scanner.current`.
``take()`` hands that token out and scans the next one, which is all the
trigger parser needs to make its decisions. ``take_until`` streams a bracketed
region (with nesting and escapes) to the filter compiler.

Token texts always cover the input exactly, so joining the texts of a run of
tokens reproduces the original source (regex literals rely on this).
"""

from __future__ import annotations

import enum
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass


class UnexpectedEndOfInput(ValueError):
    """Raised when ``take_until`` runs off the end of the text."""


class Kind(enum.IntEnum):
    UNKNOWN = 0
    END_OF_FILE = 1

    NEW_LINE = 10
    WHITESPACE = 11

    NUMERIC_LITERAL = 20
    STRING_LITERAL = 21
    BOOLEAN_LITERAL = 22

    OPEN_BRACE = 30
    CLOSE_BRACE = 31
    OPEN_PAREN = 32
    CLOSE_PAREN = 33
    OPEN_BRACKET = 34
    CLOSE_BRACKET = 35
    DOT = 36
    COMMA = 37
    SEMICOLON = 38
    COLON = 39
    QUESTION = 40

    LESS_THAN = 50
    LESS_THAN_EQUALS = 51
    GREATER_THAN = 52
    GREATER_THAN_EQUALS = 53
    EQUALS = 54
    EQUALS_EQUALS = 55
    EQUALS_EQUALS_EQUALS = 56
    EXCLAMATION = 57
    EXCLAMATION_EQUALS = 58
    EXCLAMATION_EQUALS_EQUALS = 59

    PLUS = 60
    MINUS = 61
    ASTERISK = 62
    SLASH = 63
    PERCENT = 64
    AMPERSAND = 65
    AMPERSAND_AMPERSAND = 66
    BAR = 67
    BAR_BAR = 68
    CARET = 69
    TILDE = 70
    BACKSLASH = 71
    AT = 72
    DOLLAR = 73

    IDENTIFIER = 80

    # keywords live between the two markers
    KEYWORDS_START = 1000
    THIS_KEYWORD = 1001
    AWAIT_KEYWORD = 1002
    ONCE_KEYWORD = 1003
    KEYWORDS_END = 1004


_KEYWORDS: dict[str, Kind] = {
    "this": Kind.THIS_KEYWORD,
    "await": Kind.AWAIT_KEYWORD,
    "once": Kind.ONCE_KEYWORD,
    "true": Kind.BOOLEAN_LITERAL,
    "false": Kind.BOOLEAN_LITERAL,
}

# longest operators first so "===" wins over "==" and "="
_PUNCTUATION: Sequence[tuple[str, Kind]] = (
    ("===", Kind.EQUALS_EQUALS_EQUALS),
    ("!==", Kind.EXCLAMATION_EQUALS_EQUALS),
    ("==", Kind.EQUALS_EQUALS),
    ("!=", Kind.EXCLAMATION_EQUALS),
    ("<=", Kind.LESS_THAN_EQUALS),
    (">=", Kind.GREATER_THAN_EQUALS),
    ("&&", Kind.AMPERSAND_AMPERSAND),
    ("||", Kind.BAR_BAR),
    ("{", Kind.OPEN_BRACE),
    ("}", Kind.CLOSE_BRACE),
    ("(", Kind.OPEN_PAREN),
    (")", Kind.CLOSE_PAREN),
    ("[", Kind.OPEN_BRACKET),
    ("]", Kind.CLOSE_BRACKET),
    (".", Kind.DOT),
    (",", Kind.COMMA),
    (";", Kind.SEMICOLON),
    (":", Kind.COLON),
    ("?", Kind.QUESTION),
    ("<", Kind.LESS_THAN),
    (">", Kind.GREATER_THAN),
    ("=", Kind.EQUALS),
    ("!", Kind.EXCLAMATION),
    ("+", Kind.PLUS),
    ("-", Kind.MINUS),
    ("*", Kind.ASTERISK),
    ("/", Kind.SLASH),
    ("%", Kind.PERCENT),
    ("&", Kind.AMPERSAND),
    ("|", Kind.BAR),
    ("^", Kind.CARET),
    ("~", Kind.TILDE),
    ("\\", Kind.BACKSLASH),
    ("@", Kind.AT),
    ("$", Kind.DOLLAR),
)
_PUNCTUATION_KINDS = {text: kind for text, kind in _PUNCTUATION}

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<newline>\r\n|\r|\n)
  | (?P<whitespace>[^\S\r\n]+)
  | (?P<number>0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*(?:"|$)|'(?:[^'\\]|\\.)*(?:'|$)|`(?:[^`\\]|\\.)*(?:`|$))
  | (?P<identifier>[^\W\d]\w*)
  | (?P<punctuation>{punctuation})
    """.format(
        punctuation="|".join(re.escape(text) for text, _ in _PUNCTUATION)
    ),
    re.VERBOSE | re.DOTALL,
)


@dataclass(frozen=True, slots=True)
class Token:
    kind: Kind
    text: str
    offset: int

    @property
    def is_keyword(self) -> bool:
        return Kind.KEYWORDS_START < self.kind < Kind.KEYWORDS_END

    def __str__(self) -> str:
        return f"{self.kind.name}({self.text!r}) at {self.offset}"


def _scan(text: str) -> Iterator[Token]:
    position = 0
    length = len(text)
    while position < length:
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            yield Token(Kind.UNKNOWN, text[position], position)
            position += 1
            continue

        group = match.lastgroup
        value = match.group()
        if group == "newline":
            kind = Kind.NEW_LINE
        elif group == "whitespace":
            kind = Kind.WHITESPACE
        elif group == "number":
            kind = Kind.NUMERIC_LITERAL
        elif group == "string":
            kind = Kind.STRING_LITERAL
        elif group == "identifier":
            kind = _KEYWORDS.get(value, Kind.IDENTIFIER)
        else:
            kind = _PUNCTUATION_KINDS[value]

        yield Token(kind, value, position)
        position = match.end()

    yield Token(Kind.END_OF_FILE, "", length)


class Scanner:
    """Token stream with a single token of lookahead."""

    def __init__(self, text: str):
        self.text = text
        self._tokens = _scan(text)
        self.current: Token = next(self._tokens)

    @property
    def eof(self) -> bool:
        return self.current.kind is Kind.END_OF_FILE

    def take(self) -> Token:
        """Return the current token and advance to the next one."""
        token = self.current
        if token.kind is not Kind.END_OF_FILE:
            self.current = next(self._tokens)
        return token

    def take_whitespace(self) -> None:
        while self.current.kind is Kind.WHITESPACE:
            self.take()

    def take_whitespace_and_newlines(self) -> None:
        while self.current.kind in (Kind.WHITESPACE, Kind.NEW_LINE):
            self.take()

    def take_until(
        self,
        end: Kind,
        *,
        escape: Sequence[Kind] = (),
        nestable: Sequence[tuple[Kind, Kind]] = (),
        _yield_final_close: bool = False,
    ) -> Iterator[Token]:
        """Yield tokens up to the ``end`` token, which is consumed.

        Tokens listed in ``escape`` are passed through together with the token
        that follows them. Open tokens from ``nestable`` recurse until their
        matching close, and those inner close tokens are yielded.
        """
        while True:
            kind = self.current.kind
            if kind is end:
                token = self.take()
                if _yield_final_close:
                    yield token
                return

            if kind is Kind.END_OF_FILE:
                raise UnexpectedEndOfInput(
                    f"unexpected end of input while looking for {end.name}"
                )

            if kind in escape:
                yield self.take()
                if self.current.kind is Kind.END_OF_FILE:
                    raise UnexpectedEndOfInput("unexpected end of input after escape")
                yield self.take()
                continue

            for open_kind, close_kind in nestable:
                if kind is open_kind:
                    yield self.take()
                    yield from self.take_until(
                        close_kind,
                        escape=escape,
                        nestable=nestable,
                        _yield_final_close=True,
                    )
                    break
            else:
                yield self.take()
