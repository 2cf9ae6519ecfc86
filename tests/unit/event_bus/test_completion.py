from __future__ import annotations

import asyncio
import threading

import pytest

from filterbus.core.event_bus import CANCELLED, Completion


@pytest.mark.asyncio()
async def test_resolves_once():
    completion = Completion()
    assert not completion.resolved

    completion.resolve(CANCELLED)

    assert completion.resolved
    assert await completion is CANCELLED
    with pytest.raises(RuntimeError, match="already resolved"):
        completion.resolve("again")


@pytest.mark.asyncio()
async def test_resolve_from_another_thread():
    completion = Completion()

    thread = threading.Thread(target=completion.resolve, args=("done",))
    thread.start()

    assert await asyncio.wait_for(completion, 1.0) == "done"
    thread.join()


def test_requires_a_loop():
    with pytest.raises(RuntimeError):
        Completion()

    loop = asyncio.new_event_loop()
    try:
        completion = Completion(loop)
        completion.resolve(1)
        assert loop.run_until_complete(_wait(completion)) == 1
    finally:
        loop.close()


async def _wait(completion: Completion):
    return await completion
