"""Domain errors — mediaconv exception hierarchy."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mediaconv.domain.models import CompletionOutcome


class MediaConvError(Exception):
    """Base error for all conversion operations.

    Use ``raise MediaConvError("msg") from cause`` for exception chaining.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(MediaConvError):
    """Invalid configuration, missing transcoder executable, or bad settings."""


class InvalidInputError(MediaConvError):
    """Missing or unreadable input file, or an empty path argument."""


class LaunchFailureError(MediaConvError):
    """The OS could not start the transcoder process."""

    def __init__(self, message: str, outcome: CompletionOutcome) -> None:
        super().__init__(message)
        self.outcome = outcome


class ProcessFailureError(MediaConvError):
    """The transcoder exited with a nonzero code."""

    def __init__(self, message: str, diagnostics: str = "", exit_code: int | None = None) -> None:
        super().__init__(message)
        self.diagnostics = diagnostics
        self.exit_code = exit_code


class ConversionCanceledError(MediaConvError):
    """The conversion was canceled by the caller or hit its time ceiling."""

    def __init__(self, message: str, reason: str = "canceled") -> None:
        super().__init__(message)
        self.reason = reason


class ProbeError(MediaConvError):
    """Media metadata could not be read from a file."""


class StorageError(MediaConvError):
    """Persisting or retrieving an object failed."""
