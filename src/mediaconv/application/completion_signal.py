"""CompletionSignal — single-assignment conversion outcome."""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from typing import Any

from mediaconv.domain.models import CompletionOutcome


class CompletionSignal:
    """First-writer-wins cell holding a conversion's CompletionOutcome.

    Process exit, cancellation, and launch failure all race to resolve the
    same signal; only the first resolution sticks and every later attempt is a
    no-op returning False. The check-and-set runs without suspending, so it is
    atomic with respect to other tasks on the loop.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[CompletionOutcome] = asyncio.get_running_loop().create_future()

    @property
    def done(self) -> bool:
        return self._future.done()

    @property
    def outcome(self) -> CompletionOutcome | None:
        """The resolved outcome, or None while pending."""
        return self._future.result() if self._future.done() else None

    def resolve(self, outcome: CompletionOutcome) -> bool:
        if self._future.done():
            return False
        self._future.set_result(outcome)
        return True

    def succeed(self) -> bool:
        return self.resolve(CompletionOutcome.success())

    def fail(self, diagnostics: str, exit_code: int | None) -> bool:
        return self.resolve(CompletionOutcome.failed(diagnostics, exit_code))

    def cancel(self, reason: str = "canceled") -> bool:
        return self.resolve(CompletionOutcome.canceled(reason))

    async def wait(self) -> CompletionOutcome:
        """Suspend until resolved. Cancelling the waiter leaves the signal untouched."""
        return await asyncio.shield(self._future)

    def __await__(self) -> Generator[Any, None, CompletionOutcome]:
        return self.wait().__await__()
