"""Tests for main.py — argument parsing, exit codes, and result output."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mediaconv.app.main import EXIT_FAILED, EXIT_INTERRUPTED, EXIT_OK, build_parser, format_media_info, main, run
from mediaconv.domain.errors import ConfigurationError, ConversionCanceledError, ProcessFailureError
from mediaconv.domain.models import IngestResult, MediaInfo


def _make_info() -> MediaInfo:
    return MediaInfo(
        container_format="matroska,webm",
        file_name="talk.mkv",
        full_path=Path("/media/talk.mkv"),
        duration_seconds=90.0,
        video_codec="h264",
        width=1280,
        height=720,
        frame_rate="25/1",
        audio_codec="opus",
        audio_channels=2,
        audio_sample_rate=48000,
    )


def _make_services(result: IngestResult | None = None, error: Exception | None = None) -> SimpleNamespace:
    workflow = MagicMock()
    workflow.run = AsyncMock(return_value=result, side_effect=error)
    workflow.store_waveform = AsyncMock(return_value="waveforms/talk-0a1b2c3d.png", side_effect=error)
    orchestrator = MagicMock()
    orchestrator.shutdown = AsyncMock()
    services = SimpleNamespace(orchestrator=orchestrator, workflow=workflow)
    services.ingest_workflow = MagicMock(return_value=workflow)
    return services


class TestParser:
    def test_defaults(self) -> None:
        args = build_parser().parse_args(["in.mkv"])
        assert args.input == Path("in.mkv")
        assert args.no_waveform is False
        assert args.waveform_only is False
        assert args.timeout is None

    def test_options(self) -> None:
        args = build_parser().parse_args(["in.mkv", "--no-waveform", "--timeout", "120"])
        assert args.no_waveform is True
        assert args.timeout == 120.0

    def test_waveform_only(self) -> None:
        args = build_parser().parse_args(["in.mkv", "--waveform-only"])
        assert args.waveform_only is True

    def test_waveform_modes_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["in.mkv", "--no-waveform", "--waveform-only"])


class TestRun:
    async def test_success(self, capsys: pytest.CaptureFixture[str]) -> None:
        result = IngestResult(
            video_key="converted/talk.mp4",
            bytes_written=1024,
            duration_seconds=2.0,
            waveform_key="waveforms/talk.png",
            media_info=_make_info(),
        )
        services = _make_services(result=result)
        args = build_parser().parse_args(["talk.mkv", "--timeout", "60"])

        code = await run(args, services)  # type: ignore[arg-type]

        assert code == EXIT_OK
        services.ingest_workflow.assert_called_once_with(with_waveform=True, deadline_seconds=60.0)
        services.orchestrator.shutdown.assert_awaited_once()
        out = capsys.readouterr().out
        assert "converted/talk.mp4" in out
        assert "waveforms/talk.png" in out
        assert "opus" in out

    async def test_failure_exit_code(self) -> None:
        services = _make_services(error=ProcessFailureError("exit 1", diagnostics="bad", exit_code=1))
        code = await run(build_parser().parse_args(["talk.mkv"]), services)  # type: ignore[arg-type]
        assert code == EXIT_FAILED
        services.orchestrator.shutdown.assert_awaited_once()

    async def test_canceled_exit_code(self) -> None:
        services = _make_services(error=ConversionCanceledError("too slow", reason="timeout"))
        code = await run(build_parser().parse_args(["talk.mkv", "--no-waveform"]), services)  # type: ignore[arg-type]
        assert code == EXIT_INTERRUPTED
        services.ingest_workflow.assert_called_once_with(with_waveform=False, deadline_seconds=None)

    async def test_waveform_only_skips_conversion(self, capsys: pytest.CaptureFixture[str]) -> None:
        services = _make_services()

        code = await run(build_parser().parse_args(["talk.mkv", "--waveform-only"]), services)  # type: ignore[arg-type]

        assert code == EXIT_OK
        services.workflow.store_waveform.assert_awaited_once_with(Path("talk.mkv"))
        services.workflow.run.assert_not_awaited()
        services.orchestrator.shutdown.assert_awaited_once()
        assert "waveforms/talk-0a1b2c3d.png" in capsys.readouterr().out

    async def test_waveform_only_failure(self) -> None:
        services = _make_services(error=ProcessFailureError("exit 1", diagnostics="bad", exit_code=1))
        code = await run(build_parser().parse_args(["talk.mkv", "--waveform-only"]), services)  # type: ignore[arg-type]
        assert code == EXIT_FAILED

    async def test_configuration_error(self) -> None:
        with patch("mediaconv.app.main.create_services", side_effect=ConfigurationError("ffmpeg not found")):
            code = await run(build_parser().parse_args(["talk.mkv"]))
        assert code == EXIT_FAILED

    async def test_non_positive_timeout(self) -> None:
        code = await run(build_parser().parse_args(["talk.mkv", "--timeout", "0"]), _make_services())  # type: ignore[arg-type]
        assert code == EXIT_FAILED


class TestMain:
    def test_exits_with_run_code(self) -> None:
        with patch("mediaconv.app.main.run", new_callable=AsyncMock, return_value=EXIT_FAILED):
            with pytest.raises(SystemExit) as exc_info:
                main(["talk.mkv"])
        assert exc_info.value.code == EXIT_FAILED

    def test_keyboard_interrupt_exits_130(self) -> None:
        with patch("mediaconv.app.main.asyncio.run", side_effect=KeyboardInterrupt):
            with pytest.raises(SystemExit) as exc_info:
                main(["talk.mkv"])
        assert exc_info.value.code == EXIT_INTERRUPTED


class TestFormatMediaInfo:
    def test_includes_streams(self) -> None:
        text = format_media_info(_make_info())
        assert "talk.mkv" in text
        assert "h264 1280x720 @ 25/1" in text
        assert "opus 2ch 48000Hz" in text
        assert "90.00s" in text
