"""IngestWorkflow — probe, convert, and persist one media file."""

from __future__ import annotations

import hashlib
import logging
import tempfile
import time
import uuid
from pathlib import Path

import aiofiles

from mediaconv.domain.cancellation import CancellationToken
from mediaconv.domain.errors import ConfigurationError, InvalidInputError
from mediaconv.domain.models import ConversionRequest, IngestResult
from mediaconv.domain.ports import MediaProbePort, StoragePort, VideoConverterPort, WaveformGeneratorPort

logger = logging.getLogger(__name__)

VIDEO_PREFIX = "converted"
WAVEFORM_PREFIX = "waveforms"


def object_name(input_path: Path) -> str:
    """Storage name for an input: its stem plus a short hash of its absolute path.

    Files with the same name in different directories map to different keys.
    """
    path_hash = hashlib.sha256(str(input_path.resolve()).encode()).hexdigest()[:8]
    return f"{input_path.stem}-{path_hash}"


class IngestWorkflow:
    """Stream a conversion into storage, then upload its waveform.

    The converted stream is written to ``converted/<name>.mp4`` while the
    transcoder runs. Completion is awaited only after the stream is fully
    consumed. A storage failure mid-stream cancels the conversion and waits
    for it to wind down before the error propagates.

    With a ``waveform`` generator, ``store_waveform`` renders and uploads the
    waveform alone, without converting the video.
    """

    def __init__(
        self,
        converter: VideoConverterPort,
        storage: StoragePort,
        probe: MediaProbePort | None = None,
        with_waveform: bool = True,
        deadline_seconds: float | None = None,
        work_dir: Path | None = None,
        waveform: WaveformGeneratorPort | None = None,
    ) -> None:
        self._converter = converter
        self._storage = storage
        self._probe = probe
        self._with_waveform = with_waveform
        self._deadline_seconds = deadline_seconds
        self._work_dir = work_dir
        self._waveform = waveform

    async def run(self, input_path: Path, cancellation: CancellationToken | None = None) -> IngestResult:
        """Ingest ``input_path``.

        Raises InvalidInputError for missing files or files without audio,
        ProcessFailureError / ConversionCanceledError from the conversion,
        and StorageError from the storage backend.
        """
        started = time.monotonic()
        media_info = None
        if self._probe is not None:
            media_info = await self._probe.probe(input_path)
            if not media_info.has_audio:
                raise InvalidInputError(f"No audio stream in {input_path.name}; lossless audio track cannot be produced")

        waveform_path = self._temp_waveform_path() if self._with_waveform else None
        name = object_name(input_path)
        video_key = f"{VIDEO_PREFIX}/{name}.mp4"
        waveform_key: str | None = None

        try:
            bytes_written = await self._convert_and_store(input_path, video_key, waveform_path, cancellation)

            if waveform_path is not None:
                waveform_key = await self._upload_waveform(name, waveform_path)
        finally:
            if waveform_path is not None:
                waveform_path.unlink(missing_ok=True)

        return IngestResult(
            video_key=video_key,
            bytes_written=bytes_written,
            duration_seconds=time.monotonic() - started,
            waveform_key=waveform_key,
            media_info=media_info,
        )

    async def _convert_and_store(
        self,
        input_path: Path,
        video_key: str,
        waveform_path: Path | None,
        cancellation: CancellationToken | None,
    ) -> int:
        request = ConversionRequest(
            input_path=input_path,
            waveform_path=waveform_path,
            cancellation=cancellation,
            deadline_seconds=self._deadline_seconds,
        )
        handle = await self._converter.request(request)
        assert handle.output is not None

        async with handle:
            try:
                written = await self._storage.upload_stream(video_key, handle.output)
            except BaseException:
                handle.cancel()
                await handle.output.aclose()
                outcome = await handle.completion
                logger.error("Upload of %s failed; conversion %s ended %s", video_key, handle.conversion_id, outcome.kind.value)
                raise

        outcome = await handle.completion
        if not outcome.succeeded:
            # Stream ended early; what was stored is truncated
            await self._storage.delete(video_key)
            outcome.raise_for_outcome()
        logger.info("Video uploaded: %s (%d bytes)", video_key, written)
        return written

    def _temp_waveform_path(self) -> Path:
        directory = self._work_dir or Path(tempfile.gettempdir())
        return directory / f"{uuid.uuid4().hex}.png"

    async def store_waveform(self, input_path: Path, cancellation: CancellationToken | None = None) -> str:
        """Render the waveform for ``input_path`` on its own and upload it. Returns the storage key."""
        if self._waveform is None:
            raise ConfigurationError("No waveform generator configured")
        waveform_path = await self._waveform.generate(input_path, cancellation)
        try:
            return await self._upload_waveform(object_name(input_path), waveform_path)
        finally:
            waveform_path.unlink(missing_ok=True)

    async def _upload_waveform(self, name: str, waveform_path: Path) -> str:
        waveform_key = f"{WAVEFORM_PREFIX}/{name}.png"
        async with aiofiles.open(waveform_path, "rb") as f:
            await self._storage.upload_stream(waveform_key, f)
        logger.info("Waveform uploaded: %s", waveform_key)
        return waveform_key
