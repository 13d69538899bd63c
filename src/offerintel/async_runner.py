"""Helpers to run per-page work concurrently from sync or async callers."""

from __future__ import annotations

import asyncio
import threading
from queue import Queue
from typing import TYPE_CHECKING, Any, TypeVar

from offerintel.exceptions import AsyncExecutionError

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Iterable

T = TypeVar("T")
R = TypeVar("R")


def _run_in_background_thread(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine in a dedicated thread with its own event loop.

    Raises:
        AsyncExecutionError: If the coroutine raises an exception.
    """
    output: Queue[T | BaseException] = Queue(maxsize=1)

    def _runner() -> None:
        try:
            output.put(asyncio.run(coro))
        except BaseException as exc:
            output.put(exc)

    thread = threading.Thread(target=_runner, daemon=True)
    thread.start()
    thread.join()

    result = output.get()
    if isinstance(result, BaseException):
        raise AsyncExecutionError(result=result) from result
    return result


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine from both sync and async contexts.

    Without a running loop the coroutine runs through `asyncio.run`. Inside a running loop it
    runs on a dedicated thread so that sync APIs stay callable from async code.

    Args:
        coro: The coroutine to run.

    Returns:
        The result of the coroutine.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    return _run_in_background_thread(coro)


async def gather_bounded(
    items: Iterable[T],
    func: Callable[[T], R],
    *,
    limit: int,
) -> list[R]:
    """Call a blocking function for each item on worker threads, at most `limit` at a time.

    Args:
        items: Inputs, e.g. page images.
        func: Blocking call applied to each input.
        limit: Maximum number of calls in flight.

    Returns:
        list[R]: Results in input order, whatever the completion order.
    """
    semaphore = asyncio.Semaphore(max(limit, 1))

    async def _call(item: T) -> R:
        async with semaphore:
            return await asyncio.to_thread(func, item)

    return list(await asyncio.gather(*(_call(item) for item in items)))
