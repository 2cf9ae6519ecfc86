from __future__ import annotations

import pytest

from filterbus.core.event_bus import FilterCompilationError, TriggerExpressionError
from filterbus.core.event_bus.parser import ALWAYS, WILDCARD, parse


class Owner:
    pass


class TestSegments:
    def test_single_name(self):
        trigger = parse("orderPlaced")
        assert trigger.names == ("orderplaced",)
        assert trigger.filters["orderplaced"] is ALWAYS
        assert not trigger.once
        assert not trigger.is_synchronous
        assert trigger.bound_source is None

    def test_names_are_smashed(self):
        assert parse("order_placed").names == parse("OrderPlaced").names

    @pytest.mark.parametrize("expression", ["click:button", "click/button", "click // button", "click : button"])
    def test_separators(self, expression):
        assert parse(expression).names == ("click", "button")

    def test_wildcard(self):
        assert parse("*").names == (WILDCARD,)
        assert parse("*[amount > 1]").names == (WILDCARD,)

    def test_nameless_filter_is_filed_under_the_wildcard(self):
        trigger = parse("[amount > 1]")
        assert trigger.names == (WILDCARD,)
        assert trigger.filters[WILDCARD]({"amount": 2}, [], [])

    def test_filters_are_compiled_per_segment(self):
        trigger = parse("log:lines[/ERROR/]")
        assert trigger.filters["log"] is ALWAYS
        assert callable(trigger.filters["lines"])

    def test_whitespace_before_a_filter(self):
        assert callable(parse("order [amount > 1]").filters["order"])

    def test_filters_are_read_only(self):
        trigger = parse("click")
        with pytest.raises(TypeError):
            trigger.filters["other"] = ALWAYS  # type: ignore[index]


class TestModifiers:
    def test_once_and_await(self):
        trigger = parse("once await saved")
        assert trigger.once
        assert trigger.is_synchronous
        assert trigger.names == ("saved",)

    def test_this_binds_the_source(self):
        owner = Owner()
        assert parse("this click", owner).bound_source is owner
        assert parse("click", owner).bound_source is None

    def test_this_without_a_source(self):
        assert parse("this click").bound_source is None

    def test_missing_this_is_logged(self, debug_logs):
        parse("click", Owner())
        assert "'this' not found" in debug_logs.text

    def test_modifiers_span_lines(self):
        assert parse("once\n  this\n click", Owner()).once


class TestErrors:
    @pytest.mark.parametrize("expression", ["", "   ", "once", "await this"])
    def test_no_event_named(self, expression):
        with pytest.raises(TriggerExpressionError, match="names no event"):
            parse(expression)

    def test_trailing_segment_without_separator(self):
        with pytest.raises(TriggerExpressionError) as exc_info:
            parse("click extra")
        assert exc_info.value.offset == 6
        assert exc_info.value.expression == "click extra"

    @pytest.mark.parametrize(("expression", "offset"), [("$click", 0), ("click:42", 6), ("click:'x'", 6)])
    def test_unexpected_tokens(self, expression, offset):
        with pytest.raises(TriggerExpressionError) as exc_info:
            parse(expression)
        assert exc_info.value.offset == offset

    def test_unterminated_filter(self):
        with pytest.raises(TriggerExpressionError, match="unterminated"):
            parse("order[amount > 1")

    def test_bad_filter(self):
        with pytest.raises(FilterCompilationError):
            parse("order[amount >]")
