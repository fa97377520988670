"""Tests for bootstrap — composition root wiring and settings validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from mediaconv.app.bootstrap import create_services
from mediaconv.app.settings import MediaConvSettings
from mediaconv.application.ingest_workflow import IngestWorkflow
from mediaconv.domain.enums import StorageProvider
from mediaconv.domain.errors import ConfigurationError
from mediaconv.infrastructure.adapters.disk_storage import DiskStorage
from mediaconv.infrastructure.adapters.s3_storage import S3Storage


def _settings(tmp_path: Path, **overrides: object) -> MediaConvSettings:
    values: dict[str, object] = {"ffmpeg_path": "sh", "storage_root": tmp_path / "storage"}
    values.update(overrides)
    return MediaConvSettings(**values)  # type: ignore[arg-type]


class TestCreateServices:
    def test_wires_disk_storage_by_default(self, tmp_path: Path) -> None:
        services = create_services(_settings(tmp_path))
        assert isinstance(services.storage, DiskStorage)
        assert services.storage.root == tmp_path / "storage"

    def test_one_limiter_shared(self, tmp_path: Path) -> None:
        services = create_services(_settings(tmp_path, max_concurrent_processes=3))
        assert services.limiter.capacity == 3
        assert services.orchestrator.limiter is services.limiter

    def test_ingest_workflow_factory(self, tmp_path: Path) -> None:
        services = create_services(_settings(tmp_path))
        workflow = services.ingest_workflow(with_waveform=False)
        assert isinstance(workflow, IngestWorkflow)
        assert workflow._waveform is services.waveform_generator

    def test_wires_s3_storage(self, tmp_path: Path) -> None:
        services = create_services(
            _settings(
                tmp_path,
                storage_provider=StorageProvider.S3,
                s3_bucket="media",
                s3_access_key="ak",
                s3_secret_key="sk",
            )
        )
        assert isinstance(services.storage, S3Storage)
        assert services.storage.bucket == "media"

    def test_missing_transcoder(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            create_services(_settings(tmp_path, ffmpeg_path=str(tmp_path / "ffmpeg")))


class TestValidateSettings:
    def test_s3_requires_bucket_and_credentials(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="S3_BUCKET, S3_ACCESS_KEY, S3_SECRET_KEY"):
            create_services(_settings(tmp_path, storage_provider=StorageProvider.S3))

    def test_s3_requires_secret(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="S3_SECRET_KEY"):
            create_services(
                _settings(tmp_path, storage_provider=StorageProvider.S3, s3_bucket="media", s3_access_key="ak")
            )

    def test_storage_root_must_be_directory(self, tmp_path: Path) -> None:
        not_a_dir = tmp_path / "file"
        not_a_dir.write_text("x")
        with pytest.raises(ConfigurationError, match="STORAGE_ROOT"):
            create_services(_settings(tmp_path, storage_root=not_a_dir))
