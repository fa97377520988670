"""Domain ports — Protocol interfaces for hexagonal architecture boundaries."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from mediaconv.domain.cancellation import CancellationToken
from mediaconv.domain.models import ConversionRequest, MediaInfo

if TYPE_CHECKING:
    from mediaconv.application.conversion_orchestrator import ConversionHandle


@runtime_checkable
class ByteSource(Protocol):
    """Anything with an async ``read(n)`` returning b"" at end of stream."""

    async def read(self, n: int = -1) -> bytes: ...


@runtime_checkable
class VideoConverterPort(Protocol):
    """Start a streaming conversion and hand back its output and completion."""

    async def request(self, request: ConversionRequest) -> ConversionHandle: ...


@runtime_checkable
class WaveformGeneratorPort(Protocol):
    """Render a waveform still image for a media file."""

    async def generate(self, input_path: Path, cancellation: CancellationToken | None = None) -> Path: ...


@runtime_checkable
class MediaProbePort(Protocol):
    """Read container and codec metadata from a media file."""

    async def probe(self, path: Path) -> MediaInfo: ...


@runtime_checkable
class StoragePort(Protocol):
    """Persist and retrieve byte streams by key."""

    async def upload_stream(self, key: str, source: ByteSource) -> int: ...

    async def download(self, key: str, destination: Path) -> Path: ...

    async def delete(self, key: str) -> None: ...

    async def exists(self, key: str) -> bool: ...
