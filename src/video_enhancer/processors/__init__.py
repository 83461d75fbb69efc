"""Processor modules for video enhancer.

This package provides media probing of inputs and validation of encoder
outputs.
"""

from video_enhancer.processors.output_validator import OutputValidator
from video_enhancer.processors.probe import (
    MediaProber,
    find_stream,
    parse_duration,
    parse_frame_rate,
    parse_probe_data,
)

__all__ = [
    "MediaProber",
    "OutputValidator",
    "find_stream",
    "parse_duration",
    "parse_frame_rate",
    "parse_probe_data",
]
