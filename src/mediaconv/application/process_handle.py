"""ProcessHandle — one live transcoder subprocess and its pipes."""

from __future__ import annotations

import asyncio
import collections
import logging
import re
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE: int = 64 * 1024
DEFAULT_STDERR_TAIL_LINES: int = 500
DEFAULT_STDERR_DRAIN_SECONDS: float = 5.0

_STDOUT_FD = 1
_STDERR_FD = 2
_STREAM_LIMIT = 2 * DEFAULT_CHUNK_SIZE
_LINE_BREAK = re.compile(rb"\r\n|\r|\n")


class OutputStream:
    """Caller-facing view of the transcoder's standard output.

    Reading returns b"" at end of stream. :meth:`aclose` takes effect exactly
    once: it discards whatever the process still writes so that a caller
    abandoning the stream cannot leave the process blocked on a full pipe.
    """

    def __init__(self, reader: asyncio.StreamReader, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._reader = reader
        self._chunk_size = chunk_size
        self._closed = False
        self._bytes_read = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def bytes_read(self) -> int:
        return self._bytes_read

    async def read(self, n: int = -1) -> bytes:
        if self._closed:
            raise ValueError("I/O operation on closed output stream")
        data = await self._reader.read(n)
        self._bytes_read += len(data)
        return data

    def at_eof(self) -> bool:
        return self._reader.at_eof()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while chunk := await self.read(self._chunk_size):
            yield chunk

    async def aclose(self) -> bool:
        """Close the stream. Returns False if it was already closed."""
        if self._closed:
            return False
        self._closed = True
        discarded = 0
        while chunk := await self._reader.read(self._chunk_size):
            discarded += len(chunk)
        if discarded:
            logger.debug("Discarded %d unread output bytes", discarded)
        return True


class _StderrCollector:
    """Accumulate stderr bytes as a bounded tail of text lines.

    Splits on ``\\n`` and ``\\r`` so ffmpeg progress updates do not pile up
    into one unbounded line.
    """

    def __init__(self, max_lines: int) -> None:
        self.lines: collections.deque[str] = collections.deque(maxlen=max_lines)
        self._pending = b""

    def feed(self, data: bytes) -> None:
        pieces = _LINE_BREAK.split(self._pending + data)
        self._pending = pieces.pop()
        self.lines.extend(p.decode(errors="replace") for p in pieces if p)

    def finish(self) -> None:
        if self._pending:
            self.lines.append(self._pending.decode(errors="replace"))
            self._pending = b""


class _TranscoderProtocol(asyncio.SubprocessProtocol):
    """Route stdout into a StreamReader and stderr into a collector.

    Process exit is reported through ``exited`` as soon as the OS reports it,
    independently of whether the stdout pipe has been drained.
    """

    def __init__(self, stdout: asyncio.StreamReader | None, stderr: _StderrCollector) -> None:
        loop = asyncio.get_running_loop()
        self._stdout = stdout
        self._stderr = stderr
        self._transport: asyncio.SubprocessTransport | None = None
        self._open_pipes: set[int] = set()
        self._process_exited = False
        self.exited: asyncio.Future[int] = loop.create_future()
        self.stderr_closed: asyncio.Future[None] = loop.create_future()

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        assert isinstance(transport, asyncio.SubprocessTransport)
        self._transport = transport
        if self._stdout is not None:
            stdout_pipe = transport.get_pipe_transport(_STDOUT_FD)
            if stdout_pipe is not None:
                self._stdout.set_transport(stdout_pipe)
                self._open_pipes.add(_STDOUT_FD)
        if transport.get_pipe_transport(_STDERR_FD) is not None:
            self._open_pipes.add(_STDERR_FD)
        else:
            self.stderr_closed.set_result(None)

    def pipe_data_received(self, fd: int, data: bytes | bytearray) -> None:
        if fd == _STDOUT_FD and self._stdout is not None:
            self._stdout.feed_data(data)
        elif fd == _STDERR_FD:
            self._stderr.feed(bytes(data))

    def pipe_connection_lost(self, fd: int, exc: Exception | None) -> None:
        self._open_pipes.discard(fd)
        if fd == _STDOUT_FD and self._stdout is not None:
            if exc is None:
                self._stdout.feed_eof()
            else:
                self._stdout.set_exception(exc)
        elif fd == _STDERR_FD:
            self._stderr.finish()
            if not self.stderr_closed.done():
                self.stderr_closed.set_result(None)
        self._maybe_close_transport()

    def process_exited(self) -> None:
        assert self._transport is not None
        self._process_exited = True
        if not self.exited.done():
            returncode = self._transport.get_returncode()
            self.exited.set_result(returncode if returncode is not None else -1)
        self._maybe_close_transport()

    def _maybe_close_transport(self) -> None:
        if self._process_exited and not self._open_pipes and self._transport is not None:
            self._transport.close()


class ProcessHandle:
    """Owns one spawned transcoder: stdout stream, stderr capture, exit state."""

    def __init__(
        self,
        transport: asyncio.SubprocessTransport,
        protocol: _TranscoderProtocol,
        stderr: _StderrCollector,
        output: OutputStream | None,
        stderr_drain_seconds: float = DEFAULT_STDERR_DRAIN_SECONDS,
    ) -> None:
        self._transport = transport
        self._protocol = protocol
        self._stderr = stderr
        self._output = output
        self._stderr_drain_seconds = stderr_drain_seconds

    @classmethod
    async def spawn(
        cls,
        executable: Path | str,
        arguments: Sequence[str],
        *,
        capture_output: bool = True,
        stderr_tail_lines: int = DEFAULT_STDERR_TAIL_LINES,
        stderr_drain_seconds: float = DEFAULT_STDERR_DRAIN_SECONDS,
    ) -> ProcessHandle:
        """Start the process. Raises OSError if the OS refuses to spawn it."""
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=_STREAM_LIMIT) if capture_output else None
        stderr = _StderrCollector(stderr_tail_lines)
        protocol = _TranscoderProtocol(reader, stderr)
        transport, _ = await loop.subprocess_exec(
            lambda: protocol,
            str(executable),
            *arguments,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE if capture_output else asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        output = OutputStream(reader) if reader is not None else None
        return cls(transport, protocol, stderr, output, stderr_drain_seconds=stderr_drain_seconds)

    @property
    def pid(self) -> int:
        return self._transport.get_pid()

    @property
    def returncode(self) -> int | None:
        """Exit code once the exit has been observed, else None."""
        if self._protocol.exited.done():
            return self._protocol.exited.result()
        return None

    @property
    def output(self) -> OutputStream | None:
        """Live stdout stream, or None when output was not captured."""
        return self._output

    @property
    def diagnostics(self) -> str:
        """Captured standard error, one line per entry."""
        return "\n".join(self._stderr.lines)

    async def wait(self) -> int:
        """Wait for exit, then give the stderr pipe a bounded window to drain."""
        returncode = await asyncio.shield(self._protocol.exited)
        try:
            await asyncio.wait_for(asyncio.shield(self._protocol.stderr_closed), self._stderr_drain_seconds)
        except TimeoutError:
            logger.warning(
                "Stderr of pid %d still open %.1fs after exit, using what was captured",
                self.pid,
                self._stderr_drain_seconds,
            )
        return returncode

    def terminate(self) -> bool:
        """Kill the process and cut its stdout pipe, best effort.

        Returns False if the process had already exited or could not be signalled.
        """
        if self.returncode is not None:
            return False
        try:
            self._transport.kill()
        except ProcessLookupError:
            return False
        except OSError:
            logger.warning("Failed to kill transcoder pid %d", self.pid, exc_info=True)
            return False
        finally:
            # Undrained stdout must not keep the pipe, and the caller's reads, pending
            stdout_pipe = self._transport.get_pipe_transport(_STDOUT_FD)
            if stdout_pipe is not None:
                stdout_pipe.close()
        return True
