"""Encoder progress parsing and percent mapping.

This module turns FFmpeg stderr lines into progress information and maps
that information onto the job's running percent band. The mapper keeps the
reported percent monotonic and throttles how often events are emitted.

Example:
    >>> from video_enhancer.converters.progress import ProgressMapper, ProgressParser
    >>>
    >>> parser = ProgressParser(total_duration=60.0)
    >>> mapper = ProgressMapper(min_interval=0.0)
    >>> info = parser.parse_line("frame=  720 fps=180 time=00:00:30.00 speed=6.0x")
    >>> mapper.update(info).percent
    55
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass

from video_enhancer.core.types import ProgressEvent
from video_enhancer.utils.constants import (
    DEFAULT_PROGRESS_INTERVAL,
    PROGRESS_RUNNING_MAX,
    PROGRESS_RUNNING_MIN,
)


@dataclass
class ProgressInfo:
    """Progress information extracted from one FFmpeg status line.

    Attributes:
        frame: Current frame number being processed.
        fps: Encoding frames per second.
        current_time: Current position in seconds.
        total_time: Total media duration in seconds (0.0 if unknown).
        current_size: Current output size in bytes.
        speed: Encoding speed multiplier (e.g., 6.0 means 6x realtime).
    """

    frame: int = 0
    fps: float = 0.0
    current_time: float = 0.0
    total_time: float = 0.0
    current_size: int = 0
    speed: float = 0.0

    @property
    def ratio(self) -> float | None:
        """Fraction of the media already encoded, or None if unknown."""
        if self.total_time <= 0:
            return None
        return max(0.0, min(1.0, self.current_time / self.total_time))

    @property
    def eta_seconds(self) -> float:
        """Estimated seconds remaining, or infinity if speed is zero."""
        if self.speed <= 0:
            return float("inf")
        remaining_time = self.total_time - self.current_time
        if remaining_time <= 0:
            return 0.0
        return remaining_time / self.speed


class ProgressParser:
    """Parser for FFmpeg stderr progress output.

    When no duration is known up front, the parser picks it up from the
    ``Duration:`` line FFmpeg prints for its input.

    Attributes:
        total_duration: Total media duration in seconds.
    """

    _FRAME_PATTERN = re.compile(r"frame=\s*(\d+)")
    _FPS_PATTERN = re.compile(r"fps=\s*([\d.]+)")
    _SIZE_PATTERN = re.compile(r"size=\s*(\d+)\s*(kB|KiB)")
    _TIME_PATTERN = re.compile(r"time=(\d+):(\d+):(\d+)\.(\d+)")
    _SPEED_PATTERN = re.compile(r"speed=\s*([\d.]+)x")
    _DURATION_PATTERN = re.compile(r"Duration:\s*(\d+):(\d+):(\d+)\.(\d+)")

    def __init__(self, total_duration: float = 0.0) -> None:
        """Initialize the progress parser.

        Args:
            total_duration: Total media duration in seconds (0 if unknown).
        """
        self.total_duration = max(0.0, total_duration)

    @staticmethod
    def _to_seconds(match: re.Match[str]) -> float:
        hours, minutes, seconds, fraction = match.groups()
        return (
            int(hours) * 3600
            + int(minutes) * 60
            + int(seconds)
            + int(fraction) / (10 ** len(fraction))
        )

    def parse_line(self, line: str) -> ProgressInfo | None:
        """Parse a single line of FFmpeg stderr output.

        Args:
            line: A line from FFmpeg's stderr output.

        Returns:
            ProgressInfo object if progress data was found, None otherwise.
        """
        if self.total_duration <= 0 and (match := self._DURATION_PATTERN.search(line)):
            self.total_duration = self._to_seconds(match)
            return None

        if "frame=" not in line or "time=" not in line:
            return None

        info = ProgressInfo(total_time=self.total_duration)

        if match := self._FRAME_PATTERN.search(line):
            info.frame = int(match.group(1))

        if match := self._FPS_PATTERN.search(line):
            info.fps = float(match.group(1))

        if match := self._SIZE_PATTERN.search(line):
            info.current_size = int(match.group(1)) * 1024

        if match := self._TIME_PATTERN.search(line):
            info.current_time = self._to_seconds(match)

        if match := self._SPEED_PATTERN.search(line):
            info.speed = float(match.group(1))

        return info


class ProgressMapper:
    """Map encoder progress onto the job's running percent band.

    Percent is ``15 + ratio * 80`` clamped to [15, 95]. The reported value
    never decreases, and after the first event a new one is only emitted
    once ``min_interval`` seconds have passed and the percent changed.

    Attributes:
        min_interval: Minimum seconds between emitted events.
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_PROGRESS_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._last_percent: int | None = None
        self._last_emit: float = 0.0

    @staticmethod
    def to_percent(ratio: float | None) -> int:
        """Convert a completion ratio into the running percent band."""
        if ratio is None:
            return PROGRESS_RUNNING_MIN
        span = PROGRESS_RUNNING_MAX - PROGRESS_RUNNING_MIN
        percent = int(PROGRESS_RUNNING_MIN + ratio * span)
        return max(PROGRESS_RUNNING_MIN, min(PROGRESS_RUNNING_MAX, percent))

    @property
    def last_percent(self) -> int | None:
        return self._last_percent

    def update(self, info: ProgressInfo) -> ProgressEvent | None:
        """Feed parsed progress and get an event when one is due.

        Args:
            info: Parsed progress information.

        Returns:
            ProgressEvent to persist, or None if throttled or unchanged.
        """
        percent = self.to_percent(info.ratio)
        if self._last_percent is not None:
            percent = max(percent, self._last_percent)

        now = self._clock()
        if self._last_percent is not None:
            if percent == self._last_percent:
                return None
            if now - self._last_emit < self.min_interval:
                return None

        self._last_percent = percent
        self._last_emit = now

        if info.ratio is None:
            message = "Encoding"
        else:
            message = f"Encoding {info.ratio * 100:.0f}%"
            if info.eta_seconds != float("inf"):
                message += f", {info.eta_seconds:.0f}s left"
        return ProgressEvent(percent=percent, message=message)


__all__ = [
    "ProgressInfo",
    "ProgressParser",
    "ProgressMapper",
]
