"""MediaConv settings — Pydantic BaseSettings for configuration from .env."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

from mediaconv.domain.enums import StorageProvider


class MediaConvSettings(BaseSettings):
    """Converter configuration loaded from environment variables and .env file.

    S3 credentials come from environment only.
    """

    # Transcoder
    ffmpeg_path: str = Field(default="ffmpeg", description="Transcoder executable name or path")
    ffprobe_path: str = Field(default="ffprobe", description="Probe executable name or path")
    max_concurrent_processes: int = Field(default=4, ge=1, description="Transcoder processes allowed at once")
    conversion_timeout_seconds: float = Field(default=1800.0, gt=0, description="Hard ceiling per conversion")
    waveform_timeout_seconds: float = Field(default=300.0, gt=0, description="Hard ceiling per waveform render")
    probe_timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout for a single ffprobe call")

    # Storage
    storage_provider: StorageProvider = Field(default=StorageProvider.DISK, description="Storage backend: disk or s3")
    storage_root: Path = Field(default=Path("storage"), description="Root directory for disk storage")
    s3_bucket: str = Field(default="", description="S3 bucket name")
    s3_endpoint_url: str = Field(default="", description="S3-compatible endpoint URL. Empty = AWS default")
    s3_region: str = Field(default="us-east-1", description="S3 region")
    s3_access_key: str = Field(default="", description="S3 access key id")
    s3_secret_key: str = Field(default="", description="S3 secret access key")
    s3_max_attempts: int = Field(default=3, ge=1, description="botocore retry attempts per S3 call")

    model_config = {"env_prefix": "", "env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}
