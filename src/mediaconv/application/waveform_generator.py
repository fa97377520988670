"""WaveformGenerator — standalone waveform PNG rendering via the transcoder."""

from __future__ import annotations

import logging
import tempfile
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

from mediaconv.application.conversion_orchestrator import ConversionOrchestrator
from mediaconv.domain.cancellation import CancellationToken

if TYPE_CHECKING:
    from mediaconv.domain.ports import WaveformGeneratorPort

logger = logging.getLogger(__name__)

DEFAULT_WAVEFORM_TIMEOUT_SECONDS: float = 300.0


class WaveformGenerator:
    """Render a single waveform frame for a media file into a temp PNG.

    Runs through the orchestrator, so it shares the converter's slot pool,
    with its own time ceiling. The caller deletes the returned file.

    Satisfies the WaveformGeneratorPort protocol.
    """

    if TYPE_CHECKING:
        _protocol_check: WaveformGeneratorPort

    def __init__(
        self,
        orchestrator: ConversionOrchestrator,
        timeout_seconds: float = DEFAULT_WAVEFORM_TIMEOUT_SECONDS,
        output_dir: Path | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._timeout_seconds = timeout_seconds
        self._output_dir = output_dir

    async def generate(self, input_path: Path, cancellation: CancellationToken | None = None) -> Path:
        """Return the path of the rendered PNG.

        Raises InvalidInputError, LaunchFailureError, ProcessFailureError, or
        ConversionCanceledError; no file is left behind on failure.
        """
        output_dir = self._output_dir or Path(tempfile.gettempdir())
        output = output_dir / f"{uuid.uuid4().hex}.png"
        arguments = self._orchestrator.builder.build_waveform(input_path, output)

        try:
            outcome = await self._orchestrator.run(
                input_path,
                arguments,
                cancellation=cancellation,
                deadline_seconds=self._timeout_seconds,
            )
            outcome.raise_for_outcome()
        except BaseException:
            output.unlink(missing_ok=True)
            raise

        logger.info("Waveform rendered for %s: %s", input_path.name, output)
        return output
