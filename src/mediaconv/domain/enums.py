"""Domain enums — conversion outcomes, lifecycle states, and cancellation reasons."""

from enum import Enum, unique


@unique
class OutcomeKind(Enum):
    """Terminal result of one conversion request."""

    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"


@unique
class ConversionState(Enum):
    """Per-conversion lifecycle: Admitted -> Running -> terminal."""

    ADMITTED = "admitted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


@unique
class CancelReason(Enum):
    """Why a conversion's cancellation fired."""

    CANCELED = "canceled"
    TIMEOUT = "timeout"
    SHUTDOWN = "shutdown"


@unique
class StorageProvider(Enum):
    """Backend used to persist converted output."""

    DISK = "disk"
    S3 = "s3"
