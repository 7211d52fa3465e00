"""Bounded worker pool with fail-fast sibling cancellation."""

import asyncio
from typing import Awaitable, Callable, Iterable, Iterator, TypeVar

T = TypeVar("T")


async def run_workers(
    items: Iterable[T],
    handler: Callable[[T], Awaitable[None]],
    concurrency: int,
) -> None:
    """Process items with at most ``concurrency`` concurrent workers.

    Workers share a single cursor and each pulls the next unclaimed item
    until the cursor is exhausted. The first failure cancels every sibling
    worker, waits for them to unwind, and is then re-raised unchanged.

    Args:
        items: Work items (consumed once)
        handler: Coroutine run for each item
        concurrency: Number of workers
    """
    cursor: Iterator[T] = iter(items)

    async def worker() -> None:
        # next() never suspends, so workers cannot claim the same item
        for item in cursor:
            await handler(item)

    tasks = [asyncio.create_task(worker()) for _ in range(max(1, concurrency))]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    for task in done:
        if not task.cancelled() and task.exception() is not None:
            raise task.exception()
