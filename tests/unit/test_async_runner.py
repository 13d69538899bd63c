from __future__ import annotations

import asyncio
import threading
import time

import pytest

from offerintel.async_runner import gather_bounded, run_async
from offerintel.exceptions import AsyncExecutionError


async def _identity(value: int) -> int:
    await asyncio.sleep(0)
    return value


def test_run_async_from_sync_context() -> None:
    assert run_async(_identity(7)) == 7


def test_run_async_with_running_loop() -> None:
    async def _nested() -> int:
        await asyncio.sleep(0)
        return run_async(_identity(11))

    assert asyncio.run(_nested()) == 11


def test_run_async_wraps_errors_inside_running_loop() -> None:
    async def _boom() -> int:
        raise ValueError("boom")

    async def _nested() -> int:
        return run_async(_boom())

    with pytest.raises(AsyncExecutionError, match="boom"):
        asyncio.run(_nested())


def test_gather_bounded_keeps_input_order() -> None:
    def _slow_square(value: int) -> int:
        time.sleep(0.01 * (5 - value))
        return value * value

    assert run_async(gather_bounded([1, 2, 3, 4], _slow_square, limit=4)) == [1, 4, 9, 16]


def test_gather_bounded_limits_concurrency() -> None:
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def _track(value: int) -> int:
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(0.02)
        with lock:
            state["active"] -= 1
        return value

    assert run_async(gather_bounded(range(6), _track, limit=2)) == list(range(6))
    assert state["peak"] <= 2
