"""FfprobeMediaProbe — container and codec metadata via ffprobe JSON output."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mediaconv.domain.errors import InvalidInputError, ProbeError
from mediaconv.domain.models import MediaInfo

if TYPE_CHECKING:
    from mediaconv.domain.ports import MediaProbePort

logger = logging.getLogger(__name__)

_FFPROBE_TIMEOUT_S: float = 30.0


class FfprobeMediaProbe:
    """Probe a media file with ``ffprobe -show_format -show_streams``.

    Satisfies the MediaProbePort protocol.
    """

    if TYPE_CHECKING:
        _protocol_check: MediaProbePort

    def __init__(self, ffprobe_path: str = "ffprobe", timeout_seconds: float = _FFPROBE_TIMEOUT_S) -> None:
        self._ffprobe_path = ffprobe_path
        self._timeout_seconds = timeout_seconds

    async def probe(self, path: Path) -> MediaInfo:
        """Return metadata for ``path``.

        Raises InvalidInputError if the file is missing and ProbeError when
        ffprobe fails, times out, or does not recognise the container.
        """
        if not path.is_file():
            raise InvalidInputError(f"Media file not found: {path}")

        try:
            proc = await asyncio.create_subprocess_exec(
                self._ffprobe_path,
                "-v",
                "error",
                "-print_format",
                "json",
                "-show_format",
                "-show_streams",
                str(path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ProbeError(f"ffprobe failed to start: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout_seconds)
        except TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise ProbeError(f"ffprobe timed out after {self._timeout_seconds}s for {path.name}") from exc

        if proc.returncode != 0:
            raise ProbeError(f"ffprobe failed (exit {proc.returncode}): {stderr.decode(errors='replace').strip()}")

        try:
            payload = json.loads(stdout.decode())
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ProbeError(f"Invalid ffprobe JSON for {path.name}: {exc}") from exc

        info = parse_probe_payload(payload, path)
        logger.info("Probed %s: %s, video=%s, audio=%s", path.name, info.container_format, info.video_codec, info.audio_codec)
        return info


def parse_probe_payload(payload: object, path: Path) -> MediaInfo:
    """Map ffprobe's JSON document onto MediaInfo."""
    if not isinstance(payload, dict):
        raise ProbeError(f"ffprobe output root must be an object, got {type(payload).__name__}")

    fmt: dict[str, Any] = payload.get("format") or {}
    streams: list[dict[str, Any]] = payload.get("streams") or []
    container = fmt.get("format_name")
    if not container:
        raise ProbeError(f"Unrecognised container format: {path}")

    video = _first_stream(streams, "video")
    audio = _first_stream(streams, "audio")

    return MediaInfo(
        container_format=str(container),
        file_name=path.name,
        full_path=path.resolve(),
        duration_seconds=_to_float(fmt.get("duration")),
        video_codec=video.get("codec_name"),
        width=_to_int(video.get("width")),
        height=_to_int(video.get("height")),
        video_bit_rate=_to_int(video.get("bit_rate")),
        frame_rate=video.get("avg_frame_rate") or video.get("r_frame_rate"),
        audio_codec=audio.get("codec_name"),
        audio_channels=_to_int(audio.get("channels")),
        audio_sample_rate=_to_int(audio.get("sample_rate")),
        audio_bit_rate=_to_int(audio.get("bit_rate")),
        file_size=_to_int(fmt.get("size")),
    )


def _first_stream(streams: list[dict[str, Any]], codec_type: str) -> dict[str, Any]:
    for stream in streams:
        if stream.get("codec_type") == codec_type:
            return stream
    return {}


def _to_int(value: object) -> int | None:
    try:
        return int(str(value)) if value is not None else None
    except ValueError:
        return None


def _to_float(value: object) -> float | None:
    try:
        return float(str(value)) if value is not None else None
    except ValueError:
        return None
