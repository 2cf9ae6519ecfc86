import logging

import pytest

from filterbus.core.event_bus import EventBus, set_default_bus


@pytest.fixture(autouse=True)
def _isolated_default_bus():
    """Give every test its own process-wide bus."""
    previous = set_default_bus(None)
    yield
    bus = set_default_bus(previous)
    if bus is not None:
        bus.close()


@pytest.fixture()
def bus():
    bus = EventBus()
    yield bus
    bus.close()


@pytest.fixture()
def debug_logs(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    caplog.set_level(logging.DEBUG, logger="filterbus")
    return caplog
