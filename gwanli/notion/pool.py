"""Concurrency primitives shared by the fetcher and the converter."""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CONCURRENCY = 2


class ConcurrencyLimiter:
    """Caps the number of Notion requests in flight at once."""

    def __init__(self, width: int = DEFAULT_CONCURRENCY):
        """
        Initialize limiter.

        Args:
            width: Maximum number of concurrent holders
        """
        if width < 1:
            raise ValueError(f"Concurrency width must be at least 1, got {width}")
        self.width = width
        self._semaphore = asyncio.Semaphore(width)
        self._in_flight = 0
        self.peak = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self._semaphore.acquire()
        self._in_flight += 1
        self.peak = max(self.peak, self._in_flight)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self._in_flight -= 1
        self._semaphore.release()

    async def run(self, call: Callable[[], Awaitable[R]]) -> R:
        """Await ``call()`` while holding a slot."""
        async with self:
            return await call()


async def run_bounded(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    width: int = DEFAULT_CONCURRENCY,
    logger: Optional[logging.Logger] = None,
) -> List[R]:
    """
    Run ``worker`` over ``items`` with a fixed pool of consumers.

    Items are queued up front and ``width`` workers drain the queue. Results
    are returned in input order. The first failure cancels the remaining
    workers and is re-raised.

    Args:
        items: Work items
        worker: Coroutine function applied to each item
        width: Number of workers
        logger: Optional logger for progress lines

    Returns:
        List of worker results, aligned with ``items``
    """
    if width < 1:
        raise ValueError(f"Pool width must be at least 1, got {width}")

    logger = logger or logging.getLogger(__name__)
    queue: "asyncio.Queue[Tuple[int, T]]" = asyncio.Queue()
    for index, item in enumerate(items):
        queue.put_nowait((index, item))

    results: List[Optional[R]] = [None] * len(items)
    total = len(items)
    completed = 0

    async def consume() -> None:
        nonlocal completed
        while True:
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[index] = await worker(item)
            completed += 1
            logger.debug(f"Completed {completed}/{total} tasks")

    workers = [asyncio.create_task(consume()) for _ in range(min(width, total))]
    try:
        await asyncio.gather(*workers)
    except BaseException:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        raise

    return results  # type: ignore[return-value]
