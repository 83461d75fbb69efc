"""Input media probing using FFprobe.

This module reads the characteristics the parameter policy needs from an
input file: duration, display size, frame rate and the presence and codec
of its video and audio streams.

Probing failure is not fatal for a submission. :meth:`MediaProber.probe_or_default`
substitutes conservative defaults and logs a warning, leaving the encoder
to report a more specific failure if the file is truly unusable.

Example:
    >>> from video_enhancer.processors.probe import MediaProber
    >>> prober = MediaProber()
    >>> info = prober.probe(Path("clip.mov"))
    >>> print(info.resolution_label, info.fps)  # "1920x1080 29.97"
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from video_enhancer.core.errors import ProbeFailedError
from video_enhancer.core.types import MediaInfo
from video_enhancer.utils.command_runner import (
    CommandExecutionError,
    CommandNotFoundError,
    CommandTimeoutError,
    FFprobeRunner,
)
from video_enhancer.utils.constants import PROBE_TIMEOUT

logger = logging.getLogger(__name__)


def find_stream(streams: list[dict[str, Any]], codec_type: str) -> dict[str, Any] | None:
    """Find the first stream of a type ("video" or "audio")."""
    for stream in streams:
        if stream.get("codec_type") == codec_type:
            return stream
    return None


def parse_frame_rate(stream: dict[str, Any]) -> float:
    """Parse frame rate from stream data.

    Tries ``avg_frame_rate`` first and falls back to ``r_frame_rate``;
    both are ``"num/den"`` strings.

    Returns:
        Frame rate in fps, or 0.0 if neither field is usable.
    """
    for key in ("avg_frame_rate", "r_frame_rate"):
        value = str(stream.get(key, "0/1"))
        if "/" not in value:
            continue
        num, den = value.split("/", 1)
        try:
            if float(den) > 0 and float(num) > 0:
                return float(num) / float(den)
        except ValueError:
            continue
    return 0.0


def parse_duration(stream: dict[str, Any], format_info: dict[str, Any]) -> float:
    """Parse duration from the stream, falling back to the container."""
    for source in (stream, format_info):
        duration = source.get("duration")
        if duration is None:
            continue
        try:
            return max(0.0, float(duration))
        except (ValueError, TypeError):
            continue
    return 0.0


def _rotation(stream: dict[str, Any]) -> int:
    rotate = stream.get("tags", {}).get("rotate")
    if rotate is None:
        for side_data in stream.get("side_data_list", []):
            if "rotation" in side_data:
                rotate = side_data["rotation"]
                break
    try:
        return int(float(rotate)) % 360 if rotate is not None else 0
    except (ValueError, TypeError):
        return 0


def parse_probe_data(data: dict[str, Any]) -> MediaInfo:
    """Convert FFprobe JSON output into MediaInfo.

    Width and height are reported as displayed, so a stream rotated by
    90 or 270 degrees has its dimensions swapped.

    Args:
        data: FFprobe JSON output.

    Returns:
        Parsed MediaInfo.

    Raises:
        ProbeFailedError: If the data has no video stream.
    """
    streams = data.get("streams", [])
    format_info = data.get("format", {})

    video_stream = find_stream(streams, "video")
    if video_stream is None:
        raise ProbeFailedError("no video stream found")

    audio_stream = find_stream(streams, "audio")

    width = int(video_stream.get("width") or 0)
    height = int(video_stream.get("height") or 0)
    if _rotation(video_stream) in (90, 270):
        width, height = height, width

    return MediaInfo(
        duration=parse_duration(video_stream, format_info),
        width=width,
        height=height,
        fps=parse_frame_rate(video_stream),
        has_video=True,
        has_audio=audio_stream is not None,
        audio_codec=audio_stream.get("codec_name") if audio_stream else None,
        video_codec=video_stream.get("codec_name"),
        probed=True,
    )


class MediaProber:
    """Probe input files for the parameter policy.

    Example:
        >>> prober = MediaProber(timeout=10.0)
        >>> info = prober.probe_or_default(Path("upload.mov"))
    """

    def __init__(
        self,
        ffprobe_runner: FFprobeRunner | None = None,
        timeout: float = PROBE_TIMEOUT,
    ) -> None:
        """Initialize MediaProber.

        Args:
            ffprobe_runner: FFprobe runner to use. If None, creates a new one.
            timeout: Timeout for FFprobe commands in seconds.
        """
        self._ffprobe = ffprobe_runner or FFprobeRunner()
        self._timeout = timeout

    def probe(self, path: Path) -> MediaInfo:
        """Probe a media file.

        Args:
            path: Path to the media file.

        Returns:
            MediaInfo with the probed characteristics.

        Raises:
            ProbeFailedError: If FFprobe fails, is missing, times out, or
                reports no video stream.
        """
        try:
            data = self._ffprobe.probe(
                path,
                show_format=True,
                show_streams=True,
                timeout=self._timeout,
            )
        except CommandExecutionError as e:
            raise ProbeFailedError(f"ffprobe failed: {e.stderr.strip()[-200:]}") from e
        except (CommandNotFoundError, CommandTimeoutError, FileNotFoundError) as e:
            raise ProbeFailedError(str(e)) from e
        except json.JSONDecodeError as e:
            raise ProbeFailedError(f"unreadable ffprobe output: {e}") from e

        return parse_probe_data(data)

    async def probe_async(self, path: Path) -> MediaInfo:
        """Probe a media file without blocking the event loop."""
        return await asyncio.to_thread(self.probe, path)

    def probe_or_default(self, path: Path) -> MediaInfo:
        """Probe a media file, substituting defaults on failure."""
        try:
            return self.probe(path)
        except ProbeFailedError as e:
            logger.warning(f"Probe failed for {path.name}, using defaults: {e.reason}")
            return MediaInfo.defaults()

    async def probe_or_default_async(self, path: Path) -> MediaInfo:
        """Async variant of :meth:`probe_or_default`."""
        try:
            return await self.probe_async(path)
        except ProbeFailedError as e:
            logger.warning(f"Probe failed for {path.name}, using defaults: {e.reason}")
            return MediaInfo.defaults()


__all__ = [
    "MediaProber",
    "parse_probe_data",
    "parse_frame_rate",
    "parse_duration",
    "find_stream",
]
