"""Shared test fixtures for the mediaconv test suite."""

from __future__ import annotations

import os
import stat
from collections.abc import Callable
from pathlib import Path

import pytest


def _write_script(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def make_transcoder(tmp_path: Path) -> Callable[[str], Path]:
    """Factory writing an executable shell script that stands in for ffmpeg."""
    counter = iter(range(1000))

    def _make(body: str) -> Path:
        return _write_script(tmp_path / f"fake-ffmpeg-{next(counter)}.sh", body)

    return _make


@pytest.fixture
def input_file(tmp_path: Path) -> Path:
    """A readable stand-in for a source media file."""
    path = tmp_path / "episode one.mkv"
    path.write_bytes(b"\x1a\x45\xdf\xa3" + os.urandom(64))
    return path


@pytest.fixture
def echo_transcoder(make_transcoder: Callable[[str], Path]) -> Path:
    """Writes a fixed payload to stdout, a progress line to stderr, exits 0."""
    return make_transcoder('printf "fmp4-payload"\nprintf "frame=1\\rframe=2\\n" >&2\nexit 0\n')


@pytest.fixture
def failing_transcoder(make_transcoder: Callable[[str], Path]) -> Path:
    """Writes an error to stderr and exits 1."""
    return make_transcoder('echo "Invalid data found when processing input" >&2\nexit 1\n')


@pytest.fixture
def sleeping_transcoder(make_transcoder: Callable[[str], Path]) -> Path:
    """Runs until killed. ``exec`` so the kill reaches the sleeping process itself."""
    return make_transcoder("exec sleep 30\n")
