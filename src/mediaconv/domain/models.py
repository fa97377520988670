"""Domain models — frozen dataclasses for conversion requests, outcomes, and media metadata."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from mediaconv.domain.cancellation import CancellationToken
from mediaconv.domain.enums import OutcomeKind
from mediaconv.domain.errors import ConversionCanceledError, ProcessFailureError


@dataclass(frozen=True)
class ConversionRequest:
    """Input bundle for one streaming conversion."""

    input_path: Path
    waveform_path: Path | None = None
    cancellation: CancellationToken | None = None
    deadline_seconds: float | None = None

    def __post_init__(self) -> None:
        if not str(self.input_path):
            raise ValueError("input_path must not be empty")
        if self.deadline_seconds is not None and self.deadline_seconds <= 0:
            raise ValueError(f"deadline_seconds must be positive, got {self.deadline_seconds}")


@dataclass(frozen=True)
class CompletionOutcome:
    """Terminal result of a conversion. Created once, never changed."""

    kind: OutcomeKind
    diagnostics: str = ""
    exit_code: int | None = None
    reason: str = ""

    def __post_init__(self) -> None:
        if self.kind is OutcomeKind.SUCCESS and (self.diagnostics or self.exit_code not in (None, 0)):
            raise ValueError("success outcome carries no diagnostics and a zero exit code")
        if self.kind is OutcomeKind.FAILED and self.exit_code == 0:
            raise ValueError("failed outcome cannot have exit code 0")

    @classmethod
    def success(cls) -> CompletionOutcome:
        return cls(kind=OutcomeKind.SUCCESS, exit_code=0)

    @classmethod
    def failed(cls, diagnostics: str, exit_code: int | None) -> CompletionOutcome:
        return cls(kind=OutcomeKind.FAILED, diagnostics=diagnostics, exit_code=exit_code)

    @classmethod
    def canceled(cls, reason: str = "canceled") -> CompletionOutcome:
        return cls(kind=OutcomeKind.CANCELED, reason=reason)

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def is_failed(self) -> bool:
        return self.kind is OutcomeKind.FAILED

    @property
    def is_canceled(self) -> bool:
        return self.kind is OutcomeKind.CANCELED

    def raise_for_outcome(self) -> None:
        """Raise ProcessFailureError or ConversionCanceledError unless this is a success."""
        if self.kind is OutcomeKind.FAILED:
            raise ProcessFailureError(
                f"Transcoder failed (exit {self.exit_code}): {self.diagnostics.strip()[-2000:]}",
                diagnostics=self.diagnostics,
                exit_code=self.exit_code,
            )
        if self.kind is OutcomeKind.CANCELED:
            raise ConversionCanceledError(f"Conversion {self.reason}", reason=self.reason)


@dataclass(frozen=True)
class MediaInfo:
    """Container and first-stream metadata probed from a media file."""

    container_format: str
    file_name: str
    full_path: Path
    duration_seconds: float | None = None
    video_codec: str | None = None
    width: int | None = None
    height: int | None = None
    video_bit_rate: int | None = None
    frame_rate: str | None = None
    audio_codec: str | None = None
    audio_channels: int | None = None
    audio_sample_rate: int | None = None
    audio_bit_rate: int | None = None
    file_size: int | None = None

    def __post_init__(self) -> None:
        if not self.container_format:
            raise ValueError("container_format must not be empty")
        if self.duration_seconds is not None and self.duration_seconds < 0:
            raise ValueError(f"duration_seconds must be non-negative, got {self.duration_seconds}")

    @property
    def has_audio(self) -> bool:
        return bool(self.audio_codec)

    @property
    def has_video(self) -> bool:
        return bool(self.video_codec)


@dataclass(frozen=True)
class IngestResult:
    """Storage keys and stats of a completed ingest run."""

    video_key: str
    bytes_written: int
    duration_seconds: float
    waveform_key: str | None = None
    media_info: MediaInfo | None = None
