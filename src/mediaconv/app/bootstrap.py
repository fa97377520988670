"""Bootstrap — composition root wiring all adapters to port protocols."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from mediaconv.app.settings import MediaConvSettings
from mediaconv.application.concurrency_limiter import ConcurrencyLimiter
from mediaconv.application.conversion_orchestrator import ConversionOrchestrator
from mediaconv.application.ingest_workflow import IngestWorkflow
from mediaconv.application.waveform_generator import WaveformGenerator
from mediaconv.domain.enums import StorageProvider
from mediaconv.domain.errors import ConfigurationError
from mediaconv.domain.ports import StoragePort
from mediaconv.infrastructure.adapters.disk_storage import DiskStorage
from mediaconv.infrastructure.adapters.ffprobe_probe import FfprobeMediaProbe
from mediaconv.infrastructure.adapters.s3_storage import S3Storage

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Container for all wired conversion components.

    Not a frozen dataclass — components are mutable singletons.
    """

    settings: MediaConvSettings
    limiter: ConcurrencyLimiter
    orchestrator: ConversionOrchestrator
    waveform_generator: WaveformGenerator
    probe: FfprobeMediaProbe
    storage: StoragePort

    def ingest_workflow(self, with_waveform: bool = True, deadline_seconds: float | None = None) -> IngestWorkflow:
        return IngestWorkflow(
            converter=self.orchestrator,
            storage=self.storage,
            probe=self.probe,
            with_waveform=with_waveform,
            deadline_seconds=deadline_seconds,
            waveform=self.waveform_generator,
        )


def create_services(settings: MediaConvSettings | None = None) -> Services:
    """Wire all adapters and return the services ready to run.

    If no settings are provided, loads from environment/.env.
    """
    if settings is None:
        settings = MediaConvSettings()

    _validate_settings(settings)

    # One limiter shared by every transcoder invocation in the process
    limiter = ConcurrencyLimiter(settings.max_concurrent_processes)
    orchestrator = ConversionOrchestrator(
        executable=settings.ffmpeg_path,
        limiter=limiter,
        max_duration_seconds=settings.conversion_timeout_seconds,
    )
    waveform_generator = WaveformGenerator(orchestrator, timeout_seconds=settings.waveform_timeout_seconds)
    probe = FfprobeMediaProbe(ffprobe_path=settings.ffprobe_path, timeout_seconds=settings.probe_timeout_seconds)
    storage = _create_storage(settings)

    logger.info(
        "Services wired: transcoder=%s, max_concurrent=%d, storage=%s",
        orchestrator.executable,
        limiter.capacity,
        settings.storage_provider.value,
    )
    return Services(
        settings=settings,
        limiter=limiter,
        orchestrator=orchestrator,
        waveform_generator=waveform_generator,
        probe=probe,
        storage=storage,
    )


def _create_storage(settings: MediaConvSettings) -> StoragePort:
    if settings.storage_provider is StorageProvider.S3:
        return S3Storage(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            region=settings.s3_region,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            max_attempts=settings.s3_max_attempts,
        )
    return DiskStorage(settings.storage_root)


def _validate_settings(settings: MediaConvSettings) -> None:
    """Validate critical settings at boot time.

    Raises ConfigurationError if the environment is not viable.
    """
    if settings.storage_provider is StorageProvider.S3:
        missing = [
            name
            for name, value in (
                ("S3_BUCKET", settings.s3_bucket),
                ("S3_ACCESS_KEY", settings.s3_access_key),
                ("S3_SECRET_KEY", settings.s3_secret_key),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(f"{', '.join(missing)} required when STORAGE_PROVIDER is s3")

    if settings.storage_provider is StorageProvider.DISK and settings.storage_root.exists():
        if not settings.storage_root.is_dir():
            raise ConfigurationError(f"STORAGE_ROOT is not a directory: {settings.storage_root}")
