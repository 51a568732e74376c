"""Bounded-concurrency gate with strict FIFO admission.

:class:`ConcurrencyGate` admits at most ``limit`` operations at a time.
Further operations wait in an explicit queue and are admitted in arrival
order as slots free up.  A freed slot is handed directly to the oldest
waiter, so a newcomer can never overtake a queued operation.

Cancelling a queued operation removes it from the queue without consuming
a slot.  Cancelling a running operation delivers :class:`asyncio.CancelledError`
at its next suspension point; in-flight network I/O is not forcibly torn
down, and the slot is released once the operation unwinds.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


class ConcurrencyGate:
    """Admit at most *limit* concurrent operations, queueing the rest FIFO.

    Parameters
    ----------
    limit:
        Maximum number of operations in flight at once.

    Examples
    --------
    ::

        gate = ConcurrencyGate(4)
        results = await asyncio.gather(*(gate.run(lambda u=u: fetch(u)) for u in units))
    """

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        self._limit = limit
        self._in_flight = 0
        self._peak = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def queued(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    @property
    def peak_in_flight(self) -> int:
        """Highest number of simultaneously admitted operations so far."""
        return self._peak

    def _admit(self) -> None:
        self._in_flight += 1
        self._peak = max(self._peak, self._in_flight)

    async def _acquire(self) -> None:
        if self._in_flight < self._limit and not self.queued:
            self._admit()
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was handed over in the same tick; pass it on.
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Slot ownership moves to the waiter; in_flight is unchanged.
                waiter.set_result(None)
                return
        self._in_flight -= 1

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T:
        """Run ``factory()`` once a slot is free and return its result.

        *factory* is only invoked after admission, so a cancelled queued
        operation never starts.
        """
        await self._acquire()
        try:
            return await factory()
        finally:
            self._release()

    def submit(self, factory: Callable[[], Awaitable[T]]) -> asyncio.Task[T]:
        """Schedule :meth:`run` as a task and return it.

        Tasks submitted in order queue in that order.
        """
        return asyncio.get_running_loop().create_task(self.run(factory))
