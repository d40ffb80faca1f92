import asyncio
import concurrent.futures

import pytest

from utils.event_loop import BackgroundLoop


@pytest.fixture
def loop():
    background = BackgroundLoop(name="test-loop")
    yield background
    background.stop()


def test_run_returns_coroutine_result(loop):
    async def add(a, b):
        await asyncio.sleep(0)
        return a + b

    assert loop.run(add(2, 3), timeout=2) == 5


def test_run_times_out(loop):
    with pytest.raises(concurrent.futures.TimeoutError):
        loop.run(asyncio.sleep(5), timeout=0.05)


def test_exceptions_propagate(loop):
    async def fail():
        raise ValueError("bad row")

    with pytest.raises(ValueError):
        loop.run(fail(), timeout=2)


def test_restarts_after_stop(loop):
    async def answer():
        return 42

    assert loop.run(answer(), timeout=2) == 42
    loop.stop()
    assert loop.run(answer(), timeout=2) == 42
