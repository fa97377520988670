"""Main entry point — ``mediaconv INPUT`` or ``python3 -m mediaconv.app.main INPUT``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from mediaconv.app.bootstrap import Services, create_services
from mediaconv.domain.errors import ConversionCanceledError, MediaConvError
from mediaconv.domain.models import IngestResult, MediaInfo

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mediaconv",
        description="Convert a media file to fragmented MP4 with lossless audio and store it",
    )
    parser.add_argument("input", type=Path, help="Media file to convert")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--no-waveform", action="store_true", help="Skip rendering the waveform image")
    mode.add_argument("--waveform-only", action="store_true", help="Render and store only the waveform image")
    parser.add_argument("--timeout", type=float, default=None, metavar="SECONDS", help="Deadline for the conversion")
    return parser


def format_media_info(info: MediaInfo) -> str:
    lines = [
        f"File:      {info.file_name}",
        f"Container: {info.container_format}",
    ]
    if info.duration_seconds is not None:
        lines.append(f"Duration:  {info.duration_seconds:.2f}s")
    if info.has_video:
        lines.append(f"Video:     {info.video_codec} {info.width}x{info.height} @ {info.frame_rate}")
    if info.has_audio:
        lines.append(f"Audio:     {info.audio_codec} {info.audio_channels}ch {info.audio_sample_rate}Hz")
    return "\n".join(lines)


async def run(args: argparse.Namespace, services: Services | None = None) -> int:
    """Ingest one file, or only its waveform, and return the process exit code."""
    if args.timeout is not None and args.timeout <= 0:
        logger.error("--timeout must be positive, got %s", args.timeout)
        return EXIT_FAILED

    try:
        if services is None:
            services = create_services()
    except MediaConvError as exc:
        logger.error("Configuration error: %s", exc.message)
        return EXIT_FAILED

    workflow = services.ingest_workflow(with_waveform=not args.no_waveform, deadline_seconds=args.timeout)
    try:
        if args.waveform_only:
            waveform_key = await workflow.store_waveform(args.input)
        else:
            result = await workflow.run(args.input)
    except ConversionCanceledError as exc:
        logger.warning("Conversion %s: %s", exc.reason, exc.message)
        return EXIT_INTERRUPTED
    except MediaConvError as exc:
        logger.error("Conversion failed for %s: %s", args.input, exc.message)
        return EXIT_FAILED
    finally:
        await services.orchestrator.shutdown()

    if args.waveform_only:
        print(f"Waveform:  {waveform_key}")
    else:
        _print_result(result)
    return EXIT_OK


def _print_result(result: IngestResult) -> None:
    if result.media_info is not None:
        print(format_media_info(result.media_info))
    print(f"Video:     {result.video_key} ({result.bytes_written} bytes)")
    if result.waveform_key is not None:
        print(f"Waveform:  {result.waveform_key}")
    print(f"Elapsed:   {result.duration_seconds:.1f}s")


def main(argv: list[str] | None = None) -> None:
    """Synchronous console-script entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    args = build_parser().parse_args(argv)
    try:
        code = asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted, conversion canceled")
        code = EXIT_INTERRUPTED
    sys.exit(code)


if __name__ == "__main__":
    main()
