"""Fixed-size asyncio worker pool."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> List[Optional[R]]:
    """Run ``worker`` over ``items`` with at most ``concurrency`` in flight.

    A fixed number of workers drain a shared queue, so the bound holds no
    matter how many items are queued. Results come back in input order.
    ``worker`` is expected to handle its own errors; an exception escaping
    it propagates to the caller.

    Args:
        items: Work items.
        worker: Coroutine function applied to each item.
        concurrency: Number of workers (at least 1).

    Returns:
        List of worker results aligned with ``items``.
    """
    results: List[Optional[R]] = [None] * len(items)
    if not items:
        return results

    queue: "asyncio.Queue[int]" = asyncio.Queue()
    for index in range(len(items)):
        queue.put_nowait(index)

    async def _drain() -> None:
        while True:
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[index] = await worker(items[index])

    size = max(1, min(concurrency, len(items)))
    logger.debug("Starting %d workers for %d items", size, len(items))
    await asyncio.gather(*(_drain() for _ in range(size)))
    return results
