from __future__ import annotations

import pytest

from filterbus.core.event_bus import EventBus, TriggerExpressionError, iter_handlers, on
from filterbus.core.event_bus.decorators import HANDLER_CONFIG


class Handlers:
    @on("saved", "await stored")
    def persist(self, event):
        return "persisted"

    @on()
    def closed(self, event):
        pass

    @staticmethod
    @on("tick")
    def tick(event):
        pass

    @property
    def explosive(self):
        raise AssertionError("properties must not be evaluated")

    def helper(self, event):
        pass

    def _private(self, event):
        pass


def test_expressions_accumulate():
    @on("b")
    @on("a")
    def handler(event):
        pass

    assert getattr(handler, HANDLER_CONFIG) == {"events": ["a", "b"]}


def test_default_expression_is_the_function_name():
    assert getattr(Handlers.closed, HANDLER_CONFIG) == {"events": ["closed"]}


def test_iter_handlers():
    handlers = Handlers()
    found = sorted((expression, fn.__name__) for expression, fn in iter_handlers(handlers))
    assert found == [
        ("await stored", "persist"),
        ("closed", "closed"),
        ("saved", "persist"),
        ("tick", "tick"),
    ]


def test_iter_handlers_bind_all():
    found = {expression for expression, _ in iter_handlers(Handlers(), bind_all=True)}
    assert "helper" in found
    assert "_private" not in found
    assert "explosive" not in found


class TestBusSubscribe:
    @pytest.mark.asyncio()
    async def test_object(self, bus: EventBus):
        unsubscribe = bus.subscribe(Handlers())

        assert await bus.emit("stored") == "persisted"
        assert bus.get_handler_count() == 4

        unsubscribe()
        assert bus.get_handler_count() == 0

    @pytest.mark.asyncio()
    async def test_mapping(self, bus: EventBus):
        seen = []
        bus.subscribe({"ping": lambda event: seen.append("ping"), "ignored": "not callable"})

        await bus.emit("ping")

        assert seen == ["ping"]
        assert not bus.is_subscribed("ignored")

    @pytest.mark.asyncio()
    async def test_once(self, bus: EventBus):
        seen = []
        bus.subscribe({"ping": lambda event: seen.append("ping")}, once=True)

        await bus.emit("ping")
        await bus.emit("ping")

        assert seen == ["ping"]

    def test_bind_all(self, bus: EventBus):
        bus.subscribe(Handlers(), bind_all=True)
        assert bus.is_subscribed("helper")

    def test_failed_subscription_rolls_back(self, bus: EventBus):
        with pytest.raises(TriggerExpressionError):
            bus.subscribe({"ok": lambda event: None, "bad name": lambda event: None})
        assert bus.get_handler_count() == 0

    def test_decorator_form_of_on(self, bus: EventBus):
        @bus.on("ping")
        def handler(event):
            pass

        assert handler.__name__ == "handler"
        assert bus.get_handler_count("ping") == 1
