"""CancellationController — caller cancellation OR hard timeout, enforced by kill."""

from __future__ import annotations

import asyncio
import logging

from mediaconv.application.completion_signal import CompletionSignal
from mediaconv.application.process_handle import ProcessHandle
from mediaconv.domain.cancellation import CancellationToken, Unregister
from mediaconv.domain.enums import CancelReason

logger = logging.getLogger(__name__)


class CancellationController:
    """Bounded-lifetime cancellation context for one conversion.

    ``token`` fires when the caller's token fires or when ``timeout_seconds``
    elapse after :meth:`start`, whichever comes first. Once bound to a running
    process, firing kills it (best effort) and resolves the completion signal
    as canceled. Permit release is left to the exit path, which observes the
    killed process like any other exit.
    """

    def __init__(self, external: CancellationToken | None, timeout_seconds: float) -> None:
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout_seconds}")
        self._external = external
        self._timeout_seconds = timeout_seconds
        self.token = CancellationToken()
        self._timer: asyncio.TimerHandle | None = None
        self._unregister: list[Unregister] = []

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    def start(self) -> None:
        """Link to the external token and arm the ceiling timer."""
        if self._external is not None:
            external = self._external
            self._unregister.append(
                external.register(lambda: self.token.cancel(external.reason or CancelReason.CANCELED.value))
            )
        if not self.token.cancelled:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self._timeout_seconds, self._expire)

    def bind(self, handle: ProcessHandle, signal: CompletionSignal) -> None:
        """Kill ``handle`` and cancel ``signal`` when the token fires (immediately if it already has)."""
        self._unregister.append(self.token.register(lambda: self._trigger(handle, signal)))

    def close(self) -> None:
        """Disarm the timer and detach from the external token. Idempotent."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        while self._unregister:
            self._unregister.pop()()

    def _expire(self) -> None:
        self._timer = None
        if self.token.cancel(CancelReason.TIMEOUT.value):
            logger.warning("Conversion exceeded %.1fs ceiling", self._timeout_seconds)

    def _trigger(self, handle: ProcessHandle, signal: CompletionSignal) -> None:
        reason = self.token.reason or CancelReason.CANCELED.value
        if handle.returncode is not None:
            # Exit already happened; the exit path decides the outcome
            logger.debug("Cancellation (%s) after pid %d exited, ignoring", reason, handle.pid)
            return
        if not handle.terminate():
            logger.warning("Could not kill pid %d on %s (already exited?)", handle.pid, reason)
        if signal.cancel(reason):
            logger.warning("Conversion pid %d canceled: %s", handle.pid, reason)
