"""Bounded FIFO admission queue for extraction calls.

A counting semaphore with explicit ordered wakeup: callers beyond the limit
wait in arrival order, and each release hands its slot directly to the
oldest waiter. One instance is shared by every job and page.
"""

import asyncio
from collections import deque


class AdmissionQueue:
    """Counting semaphore that admits waiters strictly first-in, first-out.

    Example:
        >>> gate = AdmissionQueue(3)
        >>> async with gate:
        ...     await call_remote()
    """

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        self.limit = limit
        self._available = limit
        self._waiters: deque[asyncio.Future] = deque()

    @property
    def available(self) -> int:
        return self._available

    @property
    def waiting(self) -> int:
        return sum(1 for fut in self._waiters if not fut.done())

    @property
    def in_flight(self) -> int:
        return self.limit - self._available

    async def acquire(self) -> None:
        if self._available > 0 and not self.waiting:
            self._available -= 1
            return

        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await fut
        except asyncio.CancelledError:
            if not fut.cancelled():
                # Slot was handed over before the cancellation landed
                self.release()
            raise

    def release(self) -> None:
        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                fut.set_result(None)
                return
        if self._available >= self.limit:
            raise RuntimeError("AdmissionQueue released more times than acquired")
        self._available += 1

    async def __aenter__(self) -> "AdmissionQueue":
        await self.acquire()
        return self

    async def __aexit__(self, *args) -> None:
        self.release()
