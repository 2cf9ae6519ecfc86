"""Identifier normalization shared by trigger expressions, event names and descriptors."""

from __future__ import annotations

import re
from collections.abc import Iterable

_LOWER_UPPER = re.compile(r"([a-z]+)([A-Z])")
_DIGIT_ALPHA = re.compile(r"(\d+)([a-zA-Z]+)")
_ACRONYM = re.compile(r"\b([A-Z]+)([A-Z])([a-z])")
_SEPARATORS = re.compile(r"[\W_]+")


def deconstruct(identifier: str | Iterable[str]) -> list[str]:
    """Split an identifier into its lower-cased words.

    Handles camelCase, PascalCase, acronyms (``HTTPServer``), digit/letter
    boundaries and any non-word separator::

        >>> deconstruct("orderPlaced")
        ['order', 'placed']
        >>> deconstruct("select-binary")
        ['select', 'binary']
    """
    if not isinstance(identifier, str):
        return [word for each in identifier for word in deconstruct(each)]

    text = _LOWER_UPPER.sub(r"\1 \2", identifier)
    text = _DIGIT_ALPHA.sub(r"\1 \2", text)
    text = _ACRONYM.sub(r"\1 \2\3", text, count=1)
    return [word.lower() for word in _SEPARATORS.split(text) if word]


def smash(identifier: str | Iterable[str]) -> str:
    """Normalize an identifier so every naming convention maps to one key.

    ``fooBar``, ``foo-bar``, ``foo_bar`` and ``FooBar`` all become ``foobar``.
    """
    return "".join(deconstruct(identifier))
