from __future__ import annotations

import pytest

from filterbus.utilities.scanner import Kind, Scanner, Token, UnexpectedEndOfInput


def scan(text: str) -> list[Token]:
    scanner = Scanner(text)
    tokens = []
    while True:
        token = scanner.take()
        tokens.append(token)
        if token.kind is Kind.END_OF_FILE:
            return tokens


def kinds(text: str) -> list[Kind]:
    return [token.kind for token in scan(text)]


def test_keywords_and_identifiers() -> None:
    assert kinds("once click") == [
        Kind.ONCE_KEYWORD,
        Kind.WHITESPACE,
        Kind.IDENTIFIER,
        Kind.END_OF_FILE,
    ]
    assert scan("this")[0].is_keyword
    assert scan("await")[0].kind is Kind.AWAIT_KEYWORD
    assert not scan("clicked")[0].is_keyword


def test_booleans_scan_as_literals() -> None:
    assert kinds("true false")[::2] == [Kind.BOOLEAN_LITERAL, Kind.BOOLEAN_LITERAL]


def test_operators_prefer_the_longest_match() -> None:
    assert kinds("a===b")[1] is Kind.EQUALS_EQUALS_EQUALS
    assert kinds("a!==b")[1] is Kind.EXCLAMATION_EQUALS_EQUALS
    assert kinds("a&&b||c")[1::2][:2] == [Kind.AMPERSAND_AMPERSAND, Kind.BAR_BAR]
    assert kinds("!a")[0] is Kind.EXCLAMATION


def test_literals() -> None:
    assert scan("3.14")[0] == Token(Kind.NUMERIC_LITERAL, "3.14", 0)
    assert scan(".5")[0].kind is Kind.NUMERIC_LITERAL
    assert scan("'it works'")[0].text == "'it works'"
    assert scan('"a\\"b"')[0].text == '"a\\"b"'


def test_unterminated_string_runs_to_end_of_input() -> None:
    tokens = scan("'abc def")
    assert tokens[0].kind is Kind.STRING_LITERAL
    assert tokens[0].text == "'abc def"
    assert tokens[1].kind is Kind.END_OF_FILE


def test_token_texts_cover_the_input() -> None:
    text = "click:button[/ok\\/yes/i && count > 2]\n"
    assert "".join(token.text for token in scan(text)) == text


def test_offsets_and_unknown_characters() -> None:
    tokens = scan("a #")
    assert [token.offset for token in tokens] == [0, 1, 2, 3]
    assert tokens[2].kind is Kind.UNKNOWN


def test_take_never_moves_past_end_of_file() -> None:
    scanner = Scanner("x")
    scanner.take()
    assert scanner.eof
    assert scanner.take().kind is Kind.END_OF_FILE
    assert scanner.take().kind is Kind.END_OF_FILE


def test_take_whitespace_and_newlines() -> None:
    scanner = Scanner(" \n\t x")
    scanner.take_whitespace_and_newlines()
    assert scanner.current.text == "x"


def test_take_until_recurses_into_nested_brackets() -> None:
    scanner = Scanner("a[b]c]rest")
    inner = scanner.take_until(
        Kind.CLOSE_BRACKET, nestable=((Kind.OPEN_BRACKET, Kind.CLOSE_BRACKET),)
    )
    assert "".join(token.text for token in inner) == "a[b]c"
    assert scanner.current.text == "rest"


def test_take_until_passes_escaped_tokens_through() -> None:
    scanner = Scanner("x\\]y]")
    inner = list(scanner.take_until(Kind.CLOSE_BRACKET, escape=(Kind.BACKSLASH,)))
    assert [token.text for token in inner] == ["x", "\\", "]", "y"]
    assert scanner.eof


def test_take_until_raises_at_end_of_input() -> None:
    scanner = Scanner("a > 1")
    with pytest.raises(UnexpectedEndOfInput):
        list(scanner.take_until(Kind.CLOSE_BRACKET))
