from __future__ import annotations

import pytest

from filterbus.core.event_bus import NO_DESCRIPTORS, Descriptors, Event, EventArgumentError, EventBus


class Source:
    pass


SOURCE = Source()
DATA = {"amount": 1}


@pytest.mark.parametrize(
    ("args", "source", "text", "data"),
    [
        ((), None, "", None),
        (("hello",), None, "hello", None),
        ((DATA,), None, "", DATA),
        (("hello", DATA), None, "hello", DATA),
        ((SOURCE, "hello"), SOURCE, "hello", None),
        ((SOURCE, DATA), SOURCE, "", DATA),
        ((SOURCE, "hello", DATA), SOURCE, "hello", DATA),
        ((SOURCE, None, DATA), SOURCE, "", DATA),
    ],
)
def test_argument_shapes(args, source, text, data):
    event = Event.from_arguments("ping", args)
    assert event.source is source
    assert event.text == text
    assert event.data is data
    assert event.descriptors is NO_DESCRIPTORS
    assert not event.completable


def test_event_defaults():
    import filterbus

    event = filterbus.Event("x")

    assert event.descriptors is NO_DESCRIPTORS
    assert event.source is None
    assert event.data is None
    assert event.text == ""
    assert event.completion is None
    assert filterbus.EventBus is EventBus


def test_shared_empty_descriptors_are_read_only():
    with pytest.raises(TypeError):
        Event("x").descriptors.add("lines", "a")
    with pytest.raises(TypeError):
        NO_DESCRIPTORS["lines"] = {"a"}

    assert Event("y").descriptors == {}
    assert "lines" not in NO_DESCRIPTORS


def test_copying_the_empty_descriptors_gives_a_writable_set():
    descriptors = Descriptors(NO_DESCRIPTORS, {"lines": "a"})
    descriptors.add("lines", "b")
    assert descriptors.get("lines") == {"a", "b"}
    assert NO_DESCRIPTORS == {}


def test_leading_descriptors_are_taken_first():
    descriptors = Descriptors(descriptors={"lines": "a"})
    event = Event.from_arguments("ping", (descriptors, SOURCE, "hello"))
    assert event.descriptors is descriptors
    assert event.source is SOURCE
    assert event.text == "hello"


def test_too_many_arguments():
    with pytest.raises(EventArgumentError):
        Event.from_arguments("ping", (SOURCE, "a", DATA, "extra"))
    assert issubclass(EventArgumentError, TypeError)


def test_payload_prefers_data_over_source():
    assert Event("ping", source=SOURCE, data=DATA).payload is DATA
    assert Event("ping", source=SOURCE).payload is SOURCE
    assert Event("ping").payload is None


@pytest.mark.asyncio()
async def test_bus_rejects_too_many_arguments(bus: EventBus):
    bus.on("ping", lambda event: None)
    with pytest.raises(EventArgumentError):
        await bus.emit("ping", SOURCE, "a", DATA, "extra")
    with pytest.raises(EventArgumentError):
        bus.notify("ping", SOURCE, "a", DATA, "extra")
