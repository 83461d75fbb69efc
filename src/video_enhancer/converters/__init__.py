"""Video converters module.

This module provides the FFmpeg encoder adapter, the parameter policy that
resolves encode settings from probed media, and real-time progress
parsing.
"""

from video_enhancer.converters.encoder import (
    CancelToken,
    EncoderAdapter,
    build_audio_args,
    build_scale_filter,
)
from video_enhancer.converters.policy import (
    ParameterPolicy,
    compute_gop,
    estimate_duration,
    resolve_audio_mode,
    resolve_fps,
    resolve_resolution,
)
from video_enhancer.converters.progress import (
    ProgressInfo,
    ProgressMapper,
    ProgressParser,
)

__all__ = [
    "CancelToken",
    "EncoderAdapter",
    "ParameterPolicy",
    "ProgressInfo",
    "ProgressMapper",
    "ProgressParser",
    "build_audio_args",
    "build_scale_filter",
    "compute_gop",
    "estimate_duration",
    "resolve_audio_mode",
    "resolve_fps",
    "resolve_resolution",
]
