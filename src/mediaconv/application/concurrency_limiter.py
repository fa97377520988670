"""ConcurrencyLimiter — bounded admission gate for transcoder processes."""

from __future__ import annotations

import asyncio
import logging

from mediaconv.domain.cancellation import CancellationToken
from mediaconv.domain.errors import ConversionCanceledError

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY: int = 4


class ProcessSlot:
    """One admission permit. Released at most once."""

    def __init__(self, limiter: ConcurrencyLimiter) -> None:
        self._limiter = limiter
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        """Return the permit to the pool. Returns False on every call after the first."""
        if self._released:
            return False
        self._released = True
        self._limiter._release()
        return True


class ConcurrencyLimiter:
    """Counting gate bounding simultaneously running transcoder processes.

    Waiters are admitted in FIFO order. A permit is only ever handed out
    wrapped in a :class:`ProcessSlot`, whose one-shot ``release`` is the sole
    way back into the pool.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._semaphore = asyncio.Semaphore(capacity)
        self._acquired_total = 0
        self._released_total = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_use(self) -> int:
        """Permits currently held."""
        return self._acquired_total - self._released_total

    @property
    def available(self) -> int:
        return self._capacity - self.in_use

    @property
    def acquired_total(self) -> int:
        return self._acquired_total

    @property
    def released_total(self) -> int:
        return self._released_total

    async def acquire(self, cancellation: CancellationToken | None = None) -> ProcessSlot:
        """Wait for a free permit.

        Raises ConversionCanceledError, without consuming a permit, if
        ``cancellation`` fires first.
        """
        if cancellation is None:
            await self._semaphore.acquire()
            return self._admit()

        if cancellation.cancelled:
            raise ConversionCanceledError("Canceled before admission", reason=cancellation.reason or "canceled")

        waiter = asyncio.ensure_future(self._semaphore.acquire())
        unregister = cancellation.register(waiter.cancel)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Caller was cancelled after the semaphore was already taken
                self._semaphore.release()
            task = asyncio.current_task()
            if cancellation.cancelled and (task is None or task.cancelling() == 0):
                raise ConversionCanceledError(
                    "Canceled while waiting for a transcoder slot",
                    reason=cancellation.reason or "canceled",
                ) from None
            raise
        finally:
            unregister()
        return self._admit()

    def _admit(self) -> ProcessSlot:
        self._acquired_total += 1
        logger.debug("Slot acquired (%d/%d in use)", self.in_use, self._capacity)
        return ProcessSlot(self)

    def _release(self) -> None:
        if self.in_use <= 0:
            raise RuntimeError("ConcurrencyLimiter released more times than acquired")
        self._released_total += 1
        self._semaphore.release()
        logger.debug("Slot released (%d/%d in use)", self.in_use, self._capacity)
