"""Fixed-size task pool used for the per-job and per-topic fan-out."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> list[R]:
    """
    Run ``worker`` over ``items`` with at most ``concurrency`` in flight.

    Pending items wait on an asyncio.Queue; a fixed number of worker tasks
    drain it. Returns one result per item, in completion order. ``worker``
    is expected to handle its own errors; anything it raises propagates
    after the remaining workers are cancelled.
    """
    queue: asyncio.Queue = asyncio.Queue()
    count = 0
    for item in items:
        queue.put_nowait(item)
        count += 1
    if count == 0:
        return []

    results: list[R] = []

    async def _drain() -> None:
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results.append(await worker(item))

    tasks = [asyncio.create_task(_drain()) for _ in range(min(concurrency, count))]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for t in tasks:
            t.cancel()
        raise
    return results
