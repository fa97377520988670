"""CancellationToken — caller-owned, one-way cancellation signal."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

Unregister = Callable[[], None]


class CancellationToken:
    """A flag that flips once from active to cancelled.

    Callbacks registered with :meth:`register` run synchronously, in
    registration order, on the first :meth:`cancel` call. Registering on an
    already-cancelled token runs the callback immediately. All use is expected
    on the event loop thread.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._callbacks: dict[int, Callable[[], object]] = {}
        self._next_id = 0

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> str | None:
        """Reason passed to the first cancel call, or None while active."""
        return self._reason

    def cancel(self, reason: str = "canceled") -> bool:
        """Cancel the token. Returns False if it was already cancelled."""
        if self._reason is not None:
            return False
        self._reason = reason
        self._event.set()
        callbacks = list(self._callbacks.values())
        self._callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback %r failed", callback)
        return True

    def register(self, callback: Callable[[], object]) -> Unregister:
        """Run ``callback`` on cancellation. Returns a function that unregisters it."""
        if self._reason is not None:
            callback()
            return _noop

        key = self._next_id
        self._next_id += 1
        self._callbacks[key] = callback

        def unregister() -> None:
            self._callbacks.pop(key, None)

        return unregister

    async def wait(self) -> str:
        """Suspend until cancelled and return the reason."""
        await self._event.wait()
        assert self._reason is not None
        return self._reason


def _noop() -> None:
    return None
