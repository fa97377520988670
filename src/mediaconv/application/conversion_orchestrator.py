"""ConversionOrchestrator — admit, launch, stream, and report transcoder runs."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
import uuid
from collections.abc import Sequence
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING

from mediaconv.application.argument_builder import ArgumentBuilder, join_command_line
from mediaconv.application.cancellation_controller import CancellationController
from mediaconv.application.completion_signal import CompletionSignal
from mediaconv.application.concurrency_limiter import ConcurrencyLimiter, ProcessSlot
from mediaconv.application.process_handle import (
    DEFAULT_STDERR_DRAIN_SECONDS,
    DEFAULT_STDERR_TAIL_LINES,
    OutputStream,
    ProcessHandle,
)
from mediaconv.domain.cancellation import CancellationToken
from mediaconv.domain.enums import CancelReason, ConversionState
from mediaconv.domain.errors import (
    ConfigurationError,
    ConversionCanceledError,
    InvalidInputError,
    LaunchFailureError,
)
from mediaconv.domain.models import CompletionOutcome, ConversionRequest
from mediaconv.domain.transitions import advance, event_for_outcome, is_terminal, state_for_outcome
from mediaconv.domain.types import ConversionId

if TYPE_CHECKING:
    from mediaconv.domain.ports import VideoConverterPort

logger = logging.getLogger(__name__)

DEFAULT_MAX_DURATION_SECONDS: float = 1800.0

# Stderr tail included in error log lines
_LOG_DIAGNOSTICS_CHARS = 2000


class ConversionHandle:
    """What the caller gets back: the output stream and the completion signal.

    The caller owns ``output`` and must drain or close it, then await
    ``completion``; success is only certain once the process has exited.
    Using the handle as an async context manager closes the stream on exit
    and cancels the conversion if the block raised before completion.
    """

    def __init__(
        self,
        conversion_id: ConversionId,
        output: OutputStream | None,
        completion: CompletionSignal,
        pid: int,
        command_line: str,
        cancellation: CancellationToken,
    ) -> None:
        self.conversion_id = conversion_id
        self.output = output
        self.completion = completion
        self.pid = pid
        self.command_line = command_line
        self._cancellation = cancellation

    @property
    def state(self) -> ConversionState:
        outcome = self.completion.outcome
        if outcome is None:
            return ConversionState.RUNNING
        return state_for_outcome(outcome.kind)

    @property
    def finished(self) -> bool:
        """True once the conversion reached a terminal state."""
        return is_terminal(self.state)

    def cancel(self, reason: str = CancelReason.CANCELED.value) -> bool:
        """Request cancellation. Returns False if cancellation already fired."""
        return self._cancellation.cancel(reason)

    async def __aenter__(self) -> ConversionHandle:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is not None and not self.finished:
            self.cancel()
        if self.output is not None:
            await self.output.aclose()


class ConversionOrchestrator:
    """Run the external transcoder under a shared ConcurrencyLimiter.

    Per conversion: validate input, build argv, acquire a slot, spawn, hand
    the stream back, and resolve the completion signal exactly once. The slot
    is released exactly once, by the exit watcher, on every path that got as
    far as a spawned process; failed launches release it on the spot.

    Satisfies the VideoConverterPort protocol.
    """

    if TYPE_CHECKING:
        _protocol_check: VideoConverterPort

    def __init__(
        self,
        executable: Path | str,
        limiter: ConcurrencyLimiter | None = None,
        builder: ArgumentBuilder | None = None,
        max_duration_seconds: float = DEFAULT_MAX_DURATION_SECONDS,
        stderr_tail_lines: int = DEFAULT_STDERR_TAIL_LINES,
        stderr_drain_seconds: float = DEFAULT_STDERR_DRAIN_SECONDS,
    ) -> None:
        if max_duration_seconds <= 0:
            raise ConfigurationError(f"max_duration_seconds must be positive, got {max_duration_seconds}")
        self._executable = resolve_executable(executable)
        self._limiter = limiter or ConcurrencyLimiter()
        self._builder = builder or ArgumentBuilder()
        self._max_duration_seconds = max_duration_seconds
        self._stderr_tail_lines = stderr_tail_lines
        self._stderr_drain_seconds = stderr_drain_seconds
        self._active: dict[ConversionId, tuple[asyncio.Task[None], ConversionHandle]] = {}
        # Requests between admission and spawn, resolved when they leave that window
        self._pending: dict[CancellationController, asyncio.Future[None]] = {}
        self._closed = False

    @property
    def executable(self) -> Path:
        return self._executable

    @property
    def limiter(self) -> ConcurrencyLimiter:
        return self._limiter

    @property
    def builder(self) -> ArgumentBuilder:
        return self._builder

    @property
    def active_count(self) -> int:
        """Conversions spawned and not yet through their exit path."""
        return len(self._active)

    async def request(self, request: ConversionRequest) -> ConversionHandle:
        """Start a streaming conversion and return its handle.

        Raises InvalidInputError before any slot is taken, ConversionCanceledError
        if cancellation fires before spawn, and LaunchFailureError if the OS
        refuses to start the transcoder.
        """
        check_input_file(request.input_path)
        arguments = self._builder.build(request.input_path, request.waveform_path)
        return await self._start(
            arguments,
            cancellation=request.cancellation,
            deadline_seconds=request.deadline_seconds,
            capture_output=True,
        )

    async def run(
        self,
        input_path: Path,
        arguments: Sequence[str],
        *,
        cancellation: CancellationToken | None = None,
        deadline_seconds: float | None = None,
    ) -> CompletionOutcome:
        """Run the transcoder with ``arguments`` to completion, discarding stdout."""
        check_input_file(input_path)
        handle = await self._start(
            tuple(arguments),
            cancellation=cancellation,
            deadline_seconds=deadline_seconds,
            capture_output=False,
        )
        return await handle.completion

    @property
    def closed(self) -> bool:
        return self._closed

    async def shutdown(self) -> None:
        """Refuse new requests, cancel queued and running ones, and wait until every slot is back."""
        self._closed = True
        canceled = 0
        while self._pending or self._active:
            for controller in list(self._pending):
                if controller.token.cancel(CancelReason.SHUTDOWN.value):
                    canceled += 1
            for _, handle in list(self._active.values()):
                if handle.cancel(CancelReason.SHUTDOWN.value):
                    canceled += 1
            waiters: list[asyncio.Future[None]] = [*self._pending.values()]
            waiters.extend(task for task, _ in self._active.values())
            await asyncio.gather(*waiters, return_exceptions=True)
        if canceled:
            logger.info("Shut down %d queued or in-flight conversions", canceled)

    async def _start(
        self,
        arguments: tuple[str, ...],
        *,
        cancellation: CancellationToken | None,
        deadline_seconds: float | None,
        capture_output: bool,
    ) -> ConversionHandle:
        if self._closed:
            raise ConversionCanceledError("Orchestrator is shut down", reason=CancelReason.SHUTDOWN.value)

        timeout = self._max_duration_seconds
        if deadline_seconds is not None:
            timeout = min(deadline_seconds, timeout)

        controller = CancellationController(cancellation, timeout)
        controller.start()
        left = asyncio.get_running_loop().create_future()
        self._pending[controller] = left
        try:
            return await self._admit_and_spawn(controller, arguments, capture_output)
        finally:
            del self._pending[controller]
            left.set_result(None)

    async def _admit_and_spawn(
        self,
        controller: CancellationController,
        arguments: tuple[str, ...],
        capture_output: bool,
    ) -> ConversionHandle:
        conversion_id = ConversionId(uuid.uuid4().hex[:12])
        try:
            slot = await self._limiter.acquire(controller.token)
        except BaseException:
            controller.close()
            raise

        state = ConversionState.ADMITTED
        if controller.token.cancelled:
            advance(state, "canceled")
            slot.release()
            controller.close()
            reason = controller.token.reason or CancelReason.CANCELED.value
            raise ConversionCanceledError(f"Conversion {conversion_id} {reason} before launch", reason=reason)

        command_line = join_command_line((str(self._executable), *arguments))
        logger.debug("Conversion %s command: %s", conversion_id, command_line)
        try:
            handle = await ProcessHandle.spawn(
                self._executable,
                arguments,
                capture_output=capture_output,
                stderr_tail_lines=self._stderr_tail_lines,
                stderr_drain_seconds=self._stderr_drain_seconds,
            )
        except OSError as exc:
            advance(state, "launch_failed")
            slot.release()
            controller.close()
            logger.error("Transcoder %s failed to start: %s", self._executable, exc)
            raise LaunchFailureError(
                f"Could not start transcoder {self._executable}: {exc}",
                CompletionOutcome.failed(str(exc), None),
            ) from exc
        except BaseException:
            slot.release()
            controller.close()
            raise

        state = advance(state, "spawned")
        signal = CompletionSignal()
        conversion = ConversionHandle(
            conversion_id=conversion_id,
            output=handle.output,
            completion=signal,
            pid=handle.pid,
            command_line=command_line,
            cancellation=controller.token,
        )
        controller.bind(handle, signal)
        task = asyncio.create_task(self._watch_exit(conversion, handle, slot, controller))
        self._active[conversion_id] = (task, conversion)
        logger.info("Transcoder started: conversion=%s pid=%d", conversion_id, handle.pid)
        return conversion

    async def _watch_exit(
        self,
        conversion: ConversionHandle,
        handle: ProcessHandle,
        slot: ProcessSlot,
        controller: CancellationController,
    ) -> None:
        """Resolve the completion from the process exit, then release the slot once."""
        signal = conversion.completion
        started = time.monotonic()
        try:
            returncode = await handle.wait()
            elapsed = time.monotonic() - started
            if returncode == 0:
                if signal.succeed():
                    logger.info("Conversion %s completed in %.1fs", conversion.conversion_id, elapsed)
            elif signal.fail(handle.diagnostics, returncode):
                logger.error(
                    "Conversion %s failed with code %d after %.1fs. Stderr: %s",
                    conversion.conversion_id,
                    returncode,
                    elapsed,
                    handle.diagnostics[-_LOG_DIAGNOSTICS_CHARS:],
                )
        finally:
            if not signal.done:
                # Watcher torn down before the exit was observed
                handle.terminate()
                signal.cancel(CancelReason.SHUTDOWN.value)
            controller.close()
            slot.release()
            self._active.pop(conversion.conversion_id, None)
            outcome = signal.outcome
            if outcome is not None:
                final = advance(ConversionState.RUNNING, event_for_outcome(outcome.kind))
                logger.debug("Conversion %s finished: %s", conversion.conversion_id, final.value)


def resolve_executable(executable: Path | str) -> Path:
    """Locate the transcoder binary. Bare names are looked up on PATH.

    Raises ConfigurationError if it cannot be found.
    """
    text = str(executable)
    if not text:
        raise ConfigurationError("Transcoder path must not be empty")

    if os.sep not in text and (os.altsep is None or os.altsep not in text):
        found = shutil.which(text)
        if found is None:
            raise ConfigurationError(f"Transcoder executable not found on PATH: {text}")
        return Path(found)

    path = Path(text)
    if not path.is_file():
        raise ConfigurationError(f"Transcoder executable not found: {path}")
    return path


def check_input_file(path: Path) -> None:
    """Raise InvalidInputError unless ``path`` is an existing, readable file."""
    if not path.is_file():
        raise InvalidInputError(f"Input file not found: {path}")
    if not os.access(path, os.R_OK):
        raise InvalidInputError(f"Input file not readable: {path}")
