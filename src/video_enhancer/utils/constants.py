"""Centralized constants for video_enhancer.

This module contains the magic numbers and policy tables used by the
transcode job manager. Import from here so the encoder, the validator
and the status resolver agree on the same values.

Example:
    >>> from video_enhancer.utils.constants import (
    ...     MIN_OUTPUT_SIZE,
    ...     QUALITY_CRF,
    ... )
    >>> QUALITY_CRF["high"]
    20
"""

from __future__ import annotations

from pathlib import Path

# =============================================================================
# Size Units (bytes)
# =============================================================================
BYTES_PER_KB = 1024
BYTES_PER_MB = 1024 * 1024

# =============================================================================
# Time Units (seconds)
# =============================================================================
SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600

# =============================================================================
# Timeouts (seconds)
# =============================================================================
ENCODE_TIMEOUT = 600  # 10 minutes
MIN_ENCODE_TIMEOUT = 60
MAX_ENCODE_TIMEOUT = 7200
PROBE_TIMEOUT = 30.0

# =============================================================================
# Encoding Policy
# =============================================================================
# Constant-quality factor per tier (lower = better quality)
QUALITY_CRF = {
    "low": 28,
    "medium": 25,
    "high": 20,
}

# Bounding boxes for explicit resolution modes (landscape orientation)
RESOLUTION_BOXES = {
    "720p": (1280, 720),
    "1080p": (1920, 1080),
}

# Encoder names per requested codec
CODEC_ENCODERS = {
    "h264": "libx264",
    "h265": "libx265",
}

MAX_OUTPUT_FPS = 30.0
DEFAULT_FPS = 30.0
DEFAULT_GOP_SECONDS = 2.0
DEFAULT_PRESET = "medium"

# Audio handling: codecs the MP4 container carries natively are copied
NATIVE_AUDIO_CODECS = frozenset({"aac"})
TARGET_AUDIO_CODEC = "aac"
DEFAULT_AUDIO_BITRATE = "128k"
DEFAULT_AUDIO_SAMPLE_RATE = 44100
DEFAULT_AUDIO_CHANNELS = 2

# Encode-time estimate factor per tier (seconds of work per media second at 720p)
QUALITY_TIME_FACTOR = {
    "low": 0.5,
    "medium": 1.0,
    "high": 1.5,
}
REFERENCE_PIXELS = 1280 * 720
MIN_ESTIMATED_SECONDS = 5.0

# =============================================================================
# Progress
# =============================================================================
PROGRESS_QUEUED = 0
PROGRESS_ENCODER_STARTED = 10
PROGRESS_RUNNING_MIN = 15
PROGRESS_RUNNING_MAX = 95
PROGRESS_VALIDATING = 95
PROGRESS_COMPLETE = 100
DEFAULT_PROGRESS_INTERVAL = 2.0
STDERR_TAIL_CHARS = 500

# =============================================================================
# Validation and Status
# =============================================================================
MIN_OUTPUT_SIZE = 1 * BYTES_PER_KB
DEFAULT_RECENCY_WINDOW = 5.0
DEFAULT_STALE_AFTER = 60.0
DEFAULT_INITIAL_PERCENT = 5

# Percent estimates from a growing output file: (upper size bound, percent)
SIZE_PROGRESS_BANDS = (
    (1 * BYTES_PER_MB, 20),
    (10 * BYTES_PER_MB, 50),
    (50 * BYTES_PER_MB, 75),
)
SIZE_PROGRESS_CEILING = 85

# =============================================================================
# Retention
# =============================================================================
DEFAULT_RETENTION_INTERVAL_MINUTES = 15
DEFAULT_RETENTION_MAX_AGE_MINUTES = 60

# =============================================================================
# File System
# =============================================================================
VIDEO_EXTENSIONS = frozenset({".mov", ".mp4", ".m4v", ".avi", ".mkv", ".wmv", ".flv", ".webm"})
OUTPUT_SUFFIX = "_enhanced"
OUTPUT_EXTENSION = ".mp4"
PROGRESS_EXTENSION = ".progress"

# Default paths (unexpanded - use Path.expanduser() when accessing)
DEFAULT_DATA_DIR = Path("~/.local/share/video_enhancer")
DEFAULT_UPLOADS_DIR = DEFAULT_DATA_DIR / "uploads"
DEFAULT_PROCESSED_DIR = DEFAULT_DATA_DIR / "processed"
DEFAULT_TEMP_DIR = DEFAULT_DATA_DIR / "temp"


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format.

    Args:
        seconds: Duration in seconds.

    Returns:
        Formatted duration string like "3 min 45 sec" or "1 hr 30 min".

    Example:
        >>> format_duration(45)
        '45 sec'
        >>> format_duration(125)
        '2 min 5 sec'
    """
    if seconds < SECONDS_PER_MINUTE:
        return f"{int(seconds)} sec"
    elif seconds < SECONDS_PER_HOUR:
        mins = int(seconds // SECONDS_PER_MINUTE)
        secs = int(seconds % SECONDS_PER_MINUTE)
        return f"{mins} min {secs} sec"
    else:
        hrs = int(seconds // SECONDS_PER_HOUR)
        mins = int((seconds % SECONDS_PER_HOUR) // SECONDS_PER_MINUTE)
        return f"{hrs} hr {mins} min"


__all__ = [
    "BYTES_PER_KB",
    "BYTES_PER_MB",
    "SECONDS_PER_MINUTE",
    "SECONDS_PER_HOUR",
    "ENCODE_TIMEOUT",
    "MIN_ENCODE_TIMEOUT",
    "MAX_ENCODE_TIMEOUT",
    "PROBE_TIMEOUT",
    "QUALITY_CRF",
    "RESOLUTION_BOXES",
    "CODEC_ENCODERS",
    "MAX_OUTPUT_FPS",
    "DEFAULT_FPS",
    "DEFAULT_GOP_SECONDS",
    "DEFAULT_PRESET",
    "NATIVE_AUDIO_CODECS",
    "TARGET_AUDIO_CODEC",
    "DEFAULT_AUDIO_BITRATE",
    "DEFAULT_AUDIO_SAMPLE_RATE",
    "DEFAULT_AUDIO_CHANNELS",
    "QUALITY_TIME_FACTOR",
    "REFERENCE_PIXELS",
    "MIN_ESTIMATED_SECONDS",
    "PROGRESS_QUEUED",
    "PROGRESS_ENCODER_STARTED",
    "PROGRESS_RUNNING_MIN",
    "PROGRESS_RUNNING_MAX",
    "PROGRESS_VALIDATING",
    "PROGRESS_COMPLETE",
    "DEFAULT_PROGRESS_INTERVAL",
    "STDERR_TAIL_CHARS",
    "MIN_OUTPUT_SIZE",
    "DEFAULT_RECENCY_WINDOW",
    "DEFAULT_STALE_AFTER",
    "DEFAULT_INITIAL_PERCENT",
    "SIZE_PROGRESS_BANDS",
    "SIZE_PROGRESS_CEILING",
    "DEFAULT_RETENTION_INTERVAL_MINUTES",
    "DEFAULT_RETENTION_MAX_AGE_MINUTES",
    "VIDEO_EXTENSIONS",
    "OUTPUT_SUFFIX",
    "OUTPUT_EXTENSION",
    "PROGRESS_EXTENSION",
    "DEFAULT_DATA_DIR",
    "DEFAULT_UPLOADS_DIR",
    "DEFAULT_PROCESSED_DIR",
    "DEFAULT_TEMP_DIR",
    "format_duration",
]
