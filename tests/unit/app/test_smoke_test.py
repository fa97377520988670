"""Tests for smoke_test module — environment checks with mocked externals."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mediaconv.app.settings import MediaConvSettings
from mediaconv.smoke_test import CheckResult, check_executable, check_storage_root, run_smoke_test

_SUBPROCESS = "mediaconv.smoke_test.asyncio.create_subprocess_exec"


def _mock_proc(returncode: int = 0, stdout: bytes = b"", stderr: bytes = b"") -> MagicMock:
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    return proc


class TestCheckExecutable:
    async def test_found(self) -> None:
        proc = _mock_proc(stdout=b"ffmpeg version 6.1.1 Copyright (c) 2000-2023\nbuilt with gcc\n")
        with patch(_SUBPROCESS, new_callable=AsyncMock, return_value=proc):
            result = await check_executable("FFmpeg", "ffmpeg")
        assert result.passed
        assert result.message == "ffmpeg version 6.1.1 Copyright (c) 2000-2023"

    async def test_not_found(self) -> None:
        with patch(_SUBPROCESS, new_callable=AsyncMock, side_effect=FileNotFoundError):
            result = await check_executable("FFprobe", "ffprobe")
        assert not result.passed
        assert "not found" in result.message

    async def test_nonzero_exit(self) -> None:
        with patch(_SUBPROCESS, new_callable=AsyncMock, return_value=_mock_proc(returncode=1)):
            result = await check_executable("FFmpeg", "ffmpeg")
        assert not result.passed
        assert "Exit code 1" in result.message

    async def test_permission_error(self) -> None:
        with patch(_SUBPROCESS, new_callable=AsyncMock, side_effect=PermissionError("denied")):
            result = await check_executable("FFmpeg", "/opt/ffmpeg")
        assert not result.passed
        assert "denied" in result.message


class TestCheckStorageRoot:
    def test_writable(self, tmp_path: Path) -> None:
        result = check_storage_root(tmp_path / "storage")
        assert result.passed
        assert list((tmp_path / "storage").iterdir()) == []

    def test_not_writable(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x")
        result = check_storage_root(blocker / "storage")
        assert not result.passed


class TestRunSmokeTest:
    async def test_all_pass(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        ok = CheckResult(service="FFmpeg", passed=True, message="ok")
        with patch("mediaconv.smoke_test.check_executable", new_callable=AsyncMock, return_value=ok):
            passed = await run_smoke_test(MediaConvSettings(storage_root=tmp_path))
        assert passed
        assert "3/3 passed" in capsys.readouterr().out

    async def test_failure_reported(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        bad = CheckResult(service="FFmpeg", passed=False, message="'ffmpeg' not found in PATH")
        with patch("mediaconv.smoke_test.check_executable", new_callable=AsyncMock, return_value=bad):
            passed = await run_smoke_test(MediaConvSettings(storage_root=tmp_path))
        assert not passed
        assert "[FAIL]" in capsys.readouterr().out
