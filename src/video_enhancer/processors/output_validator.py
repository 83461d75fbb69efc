"""Output file validation.

This module decides whether an encoder output is usable. A zero exit code
from the encoder is only a candidate success: the job is completed only
after its output passes these checks.

Validation Checks (in order, stopping at the first failure):
    1. File exists
    2. File size > 0
    3. File size >= the minimum plausible size
    4. FFprobe can parse the container
    5. The container holds at least one video stream

Example:
    >>> validator = OutputValidator()
    >>> result = validator.validate(Path("clip_enhanced.mp4"))
    >>> if not result.ok:
    ...     print(result.reason)
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from video_enhancer.core.types import ValidationResult
from video_enhancer.processors.probe import find_stream
from video_enhancer.utils.command_runner import (
    CommandExecutionError,
    CommandNotFoundError,
    CommandTimeoutError,
    FFprobeRunner,
)
from video_enhancer.utils.constants import MIN_OUTPUT_SIZE, PROBE_TIMEOUT
from video_enhancer.utils.file_utils import format_size

logger = logging.getLogger(__name__)

REASON_MISSING = "output file does not exist"
REASON_EMPTY = "output file is empty (0 bytes)"
REASON_TOO_SMALL = "output file is smaller than {minimum}"
REASON_UNPARSEABLE = "container could not be parsed"
REASON_NO_VIDEO = "no video stream in output"


class OutputValidator:
    """Validate candidate output files.

    Attributes:
        min_size: Smallest acceptable output in bytes.
        timeout: Maximum time for FFprobe commands.
    """

    def __init__(
        self,
        *,
        min_size: int = MIN_OUTPUT_SIZE,
        timeout: float = PROBE_TIMEOUT,
        ffprobe: FFprobeRunner | None = None,
    ) -> None:
        """Initialize the output validator.

        Args:
            min_size: Smallest acceptable output in bytes.
            timeout: Maximum time for FFprobe operations (seconds).
            ffprobe: FFprobe runner to use (creates new one if None).
        """
        self.min_size = min_size
        self.timeout = timeout
        self.ffprobe = ffprobe or FFprobeRunner()

    def check_size(self, path: Path) -> ValidationResult:
        """Run the filesystem checks only (existence and size).

        Args:
            path: Candidate output file.

        Returns:
            ValidationResult for checks 1 to 3.
        """
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return ValidationResult(ok=False, reason=REASON_MISSING)

        if size == 0:
            return ValidationResult(ok=False, reason=REASON_EMPTY)

        if size < self.min_size:
            return ValidationResult(
                ok=False,
                reason=REASON_TOO_SMALL.format(minimum=format_size(self.min_size)),
                size=size,
            )

        return ValidationResult(ok=True, size=size)

    def validate(self, path: Path) -> ValidationResult:
        """Validate a candidate output file.

        Args:
            path: Candidate output file.

        Returns:
            ValidationResult with a distinct reason per failing check.

        Raises:
            CommandNotFoundError: If FFprobe is not installed.
        """
        result = self.check_size(path)
        if not result.ok:
            logger.debug(f"Output rejected: {path.name}: {result.reason}")
            return result

        try:
            probe_data = self.ffprobe.probe(
                path,
                show_format=True,
                show_streams=True,
                timeout=self.timeout,
            )
        except CommandNotFoundError:
            raise
        except FileNotFoundError:
            return ValidationResult(ok=False, reason=REASON_MISSING)
        except (CommandExecutionError, CommandTimeoutError, json.JSONDecodeError) as e:
            logger.debug(f"Output rejected: {path.name}: {e}")
            return ValidationResult(ok=False, reason=REASON_UNPARSEABLE, size=result.size)

        if find_stream(probe_data.get("streams", []), "video") is None:
            return ValidationResult(ok=False, reason=REASON_NO_VIDEO, size=result.size)

        return result

    async def validate_async(self, path: Path) -> ValidationResult:
        """Validate a candidate output file without blocking the event loop."""
        return await asyncio.to_thread(self.validate, path)


__all__ = [
    "OutputValidator",
    "REASON_MISSING",
    "REASON_EMPTY",
    "REASON_TOO_SMALL",
    "REASON_UNPARSEABLE",
    "REASON_NO_VIDEO",
]
