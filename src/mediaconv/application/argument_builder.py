"""ArgumentBuilder — transcoder argv construction and command-line quoting."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from mediaconv.domain.errors import InvalidInputError

# Fragmented MP4 so the container can be consumed before it is finalized
FRAGMENTED_MOVFLAGS = "frag_keyframe+empty_moov+separate_moof+default_base_moof"
LOSSLESS_AUDIO_CODEC = "flac"
STDOUT_TARGET = "-"

_NEEDS_QUOTING = frozenset(" \t\n\v\"")


def escape_argument(arg: str) -> str:
    """Quote one argument so a command-line parser recovers it verbatim.

    Follows the MSVC runtime rules: arguments with whitespace, a double quote,
    or a trailing backslash are wrapped in quotes. Inside the quotes a run of
    backslashes is doubled (plus one) before a literal quote, doubled before
    the closing quote, and left alone anywhere else.
    """
    if not arg:
        return '""'
    if not _NEEDS_QUOTING.intersection(arg) and not arg.endswith("\\"):
        return arg

    parts = ['"']
    backslashes = 0
    for char in arg:
        if char == "\\":
            backslashes += 1
            continue
        if char == '"':
            parts.append("\\" * (backslashes * 2 + 1))
            parts.append('"')
        else:
            parts.append("\\" * backslashes)
            parts.append(char)
        backslashes = 0
    parts.append("\\" * (backslashes * 2))
    parts.append('"')
    return "".join(parts)


def join_command_line(args: Iterable[str]) -> str:
    """Render an argv sequence as a single quoted command line."""
    return " ".join(escape_argument(a) for a in args)


@dataclass(frozen=True)
class WaveformStyle:
    """Parameters of the showwavespic filter."""

    width: int = 1200
    height: int = 300
    color: str = "blue"
    scale: str = "sqrt"

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"width and height must be positive, got ({self.width}, {self.height})")

    def filter_graph(self) -> str:
        return f"[0:a]showwavespic=s={self.width}x{self.height}:colors={self.color}:scale={self.scale}[wave]"


class ArgumentBuilder:
    """Build transcoder argv for streaming conversion and waveform rendering.

    The argv excludes the executable itself. Arguments are handed to the OS as
    a list, so no shell ever re-parses them; :func:`join_command_line` renders
    the equivalent quoted form for logs.
    """

    def __init__(self, waveform_style: WaveformStyle | None = None) -> None:
        self._style = waveform_style or WaveformStyle()

    def build(self, input_path: Path | str, waveform_path: Path | str | None = None) -> tuple[str, ...]:
        """Return argv that remuxes video, transcodes audio to FLAC, and streams fMP4 to stdout.

        When ``waveform_path`` is given, a single waveform PNG frame is also
        written there from the same invocation.
        """
        source = _require_path(input_path, "input_path")
        args: list[str] = [
            "-i",
            source,
            "-map",
            "0:v",
            "-map",
            "0:a",
            "-c:v",
            "copy",
            "-c:a",
            LOSSLESS_AUDIO_CODEC,
            "-movflags",
            FRAGMENTED_MOVFLAGS,
            "-f",
            "mp4",
            STDOUT_TARGET,
        ]

        if waveform_path is not None:
            target = _require_path(waveform_path, "waveform_path")
            args.extend(
                [
                    "-filter_complex",
                    self._style.filter_graph(),
                    "-map",
                    "[wave]",
                    "-frames:v",
                    "1",
                    "-update",
                    "1",
                    "-y",
                    target,
                ]
            )

        return tuple(args)

    def build_waveform(self, input_path: Path | str, output_path: Path | str) -> tuple[str, ...]:
        """Return argv that renders only the waveform image to ``output_path``."""
        source = _require_path(input_path, "input_path")
        target = _require_path(output_path, "output_path")
        return (
            "-i",
            source,
            "-filter_complex",
            self._style.filter_graph(),
            "-map",
            "[wave]",
            "-f",
            "image2",
            "-frames:v",
            "1",
            "-y",
            target,
        )


def _require_path(value: Path | str, name: str) -> str:
    text = str(value) if value is not None else ""
    # Path("") normalises to "."
    if not text or (isinstance(value, Path) and text == "." and not value.parts):
        raise InvalidInputError(f"{name} must not be empty")
    return text
