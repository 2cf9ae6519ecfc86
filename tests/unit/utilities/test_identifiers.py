from __future__ import annotations

import pytest

from filterbus.utilities.identifiers import deconstruct, smash


@pytest.mark.parametrize(
    ("identifier", "words"),
    [
        ("orderPlaced", ["order", "placed"]),
        ("OrderPlaced", ["order", "placed"]),
        ("order_placed", ["order", "placed"]),
        ("select-binary", ["select", "binary"]),
        ("HTTPServer", ["http", "server"]),
        ("log line", ["log", "line"]),
        ("", []),
    ],
)
def test_deconstruct_splits_naming_conventions(identifier: str, words: list[str]) -> None:
    assert deconstruct(identifier) == words


def test_deconstruct_accepts_several_identifiers() -> None:
    assert deconstruct(["fooBar", "baz"]) == ["foo", "bar", "baz"]


def test_smash_maps_conventions_to_one_key() -> None:
    variants = ["orderPlaced", "OrderPlaced", "order_placed", "order-placed", "ORDER_PLACED"]
    assert {smash(each) for each in variants} == {"orderplaced"}
