from __future__ import annotations

import gc

import pytest

from filterbus.core.event_bus import Descriptors, Event
from filterbus.core.event_bus.context import active_handlers
from filterbus.core.event_bus.registration import SubscriptionRegistry, handler_key


class Owner:
    def __init__(self):
        self.calls = []

    def handle(self, event, *captures):
        self.calls.append(event)


@pytest.fixture()
def registry() -> SubscriptionRegistry:
    return SubscriptionRegistry()


def noop(event, *captures):
    return None


def make_handler():
    def handler(event, *captures):
        return None

    return handler


def matches(registry, event, synchronous=False):
    return [(subscriber.callback, captures) for subscriber, captures in registry.iter_matches(event, synchronous)]


class TestIndices:
    def test_newest_subscriber_first(self, registry):
        first, second = make_handler(), make_handler()
        registry.on("ping", first)
        registry.on("ping", second)
        assert [each.callback for each in registry.candidates("ping", False)] == [second, first]

    def test_phases_are_separate(self, registry):
        serial, concurrent = make_handler(), make_handler()
        registry.on("await ping", serial)
        registry.on("ping", concurrent)
        assert [each.callback for each in registry.candidates("ping", True)] == [serial]
        assert [each.callback for each in registry.candidates("ping", False)] == [concurrent]

    def test_wildcard_subscribers_follow_named_ones(self, registry):
        named, anything = make_handler(), make_handler()
        registry.on("*", anything)
        registry.on("ping", named)
        assert [each.callback for each in registry.candidates("ping", False)] == [named, anything]

    def test_subscriber_under_both_keys_is_listed_once(self, registry):
        registry.on("ping/*", noop)
        assert len(registry.candidates("ping", False)) == 1

    def test_unsubscribe_removes_empty_names(self, registry):
        unsubscribe = registry.on("ping:source", noop)
        assert registry.has_subscribers("ping")
        unsubscribe()
        unsubscribe()
        assert not registry.has_subscribers("ping")
        assert registry.candidates("source", False) == []
        assert registry.get_handler_count() == 0

    def test_wildcard_makes_every_name_interesting(self, registry):
        assert not registry.has_subscribers("anything")
        registry.on("*", noop)
        assert registry.has_subscribers("anything")

    def test_handler_counts(self, registry):
        registry.on("ping", noop)
        registry.on("await ping", make_handler())
        registry.on("pong/*", make_handler())
        assert registry.get_handler_count("ping") == 2
        assert registry.get_handler_count("pong") == 1
        assert registry.get_handler_count() == 3

    def test_clear(self, registry):
        owner = Owner()
        registry.on("ping", owner.handle, owner)
        registry.clear()
        assert registry.get_handler_count() == 0
        assert not registry.has_subscribers("ping")


class TestMatching:
    def test_name_only_subscription(self, registry):
        registry.on("ping", noop)
        assert matches(registry, Event("ping")) == [(noop, [])]
        assert matches(registry, Event("pong")) == []

    def test_descriptor_filter_collects_captures(self, registry):
        registry.on("log:lines[/ERROR (\\w+)/]", noop)
        descriptors = Descriptors(descriptors={"lines": ["INFO start", "ERROR disk"]})
        assert matches(registry, Event("log", descriptors)) == [(noop, ["ERROR disk", "disk"])]

    def test_missing_descriptor_skips_the_subscriber(self, registry):
        registry.on("log:lines", noop)
        assert matches(registry, Event("log")) == []

    def test_event_text_is_offered_to_filters(self, registry):
        registry.on("log[/ERROR.*/]", noop)
        assert matches(registry, Event("log", text="ERROR: disk full")) == [(noop, ["ERROR: disk full"])]
        assert matches(registry, Event("log", text="all good")) == []

    def test_field_filter_sees_the_payload(self, registry):
        registry.on("order[amount > 100]", noop)
        assert matches(registry, Event("order", data={"amount": 150}))
        assert not matches(registry, Event("order", data={"amount": 50}))
        assert matches(registry, Event("order", source={"amount": 150}))

    def test_this_restricts_to_the_owner(self, registry):
        owner, other = Owner(), Owner()
        registry.on("this click", owner.handle, owner)
        assert matches(registry, Event("click", source=owner))
        assert not matches(registry, Event("click", source=other))
        assert not matches(registry, Event("click"))

    def test_owner_without_this_hears_everyone(self, registry):
        owner = Owner()
        registry.on("click", owner.handle, owner)
        assert matches(registry, Event("click", source=Owner()))

    def test_running_handlers_are_skipped(self, registry):
        registry.on("ping", noop)
        token = active_handlers.set(frozenset({handler_key(noop)}))
        try:
            assert matches(registry, Event("ping")) == []
        finally:
            active_handlers.reset(token)

    def test_unsubscribed_during_iteration(self, registry):
        second = make_handler()
        unsubscribe = registry.on("ping", second)
        registry.on("ping", noop)
        found = registry.iter_matches(Event("ping"), False)
        assert next(found)[0].callback is noop
        unsubscribe()
        assert list(found) == []


class TestOnce:
    def test_once_unsubscribes_before_running(self, registry):
        seen = []

        def handler(event):
            seen.append(registry.get_handler_count("ping"))

        registry.once("ping", handler)
        (subscriber, captures), = registry.iter_matches(Event("ping"), False)
        subscriber(Event("ping"))
        subscriber(Event("ping"))
        assert seen == [0]
        assert not subscriber.active


class TestOwners:
    def test_remove_all_listeners(self, registry):
        owner = Owner()
        registry.on("ping", owner.handle, owner)
        registry.on("await pong", make_handler(), owner)
        registry.on("ping", noop)
        registry.remove_all_listeners(owner)
        assert registry.get_handler_count() == 1
        registry.remove_all_listeners(owner)

    def test_collected_owner_releases_its_subscriptions(self, registry):
        owner = Owner()
        registry.on("ping", owner.handle, owner)
        assert registry.get_handler_count() == 1
        del owner
        gc.collect()
        assert registry.get_handler_count() == 0

    def test_owner_methods_do_not_keep_the_owner_alive(self, registry):
        owner = Owner()
        unsubscribe = registry.on("ping", owner.handle, owner)
        (subscriber, _), = registry.iter_matches(Event("ping"), False)
        del owner
        gc.collect()
        assert subscriber.callback is None
        assert not subscriber.active
        unsubscribe()

    def test_owner_must_support_weak_references(self, registry):
        with pytest.raises(TypeError):
            registry.on("ping", noop, object())
        assert registry.get_handler_count() == 0

    def test_unhashable_owner(self, registry):
        class Unhashable(Owner):
            __hash__ = None

        owner = Unhashable()
        registry.on("ping", owner.handle, owner)
        registry.remove_all_listeners(owner)
        assert registry.get_handler_count() == 0

    def test_handler_key_is_stable_for_bound_methods(self):
        owner = Owner()
        assert handler_key(owner.handle) == handler_key(owner.handle)
        assert handler_key(owner.handle) != handler_key(Owner().handle)
