"""Encode parameter resolution.

Resolves the encoder parameters of a job from probed input characteristics
and the requested options, using fixed policy tables. Resolution is
deterministic: the same inputs always yield the same parameters.

The policy never upsamples. The target size never exceeds the source size
and the target frame rate never exceeds the source frame rate.

Example:
    >>> from video_enhancer.converters.policy import ParameterPolicy
    >>> from video_enhancer.core.types import EncodeOptions, MediaInfo
    >>> policy = ParameterPolicy()
    >>> media = MediaInfo(duration=10.0, width=1920, height=1080, fps=60.0)
    >>> params = policy.resolve(media, EncodeOptions(resolution="720p", quality="high"))
    >>> (params.width, params.height, params.fps, params.crf)
    (1280, 720, 30.0, 20)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from fractions import Fraction
from typing import TYPE_CHECKING

from video_enhancer.core.types import (
    AudioMode,
    EncodeOptions,
    EncodeParams,
    MediaInfo,
    QualityTier,
    ResolutionMode,
)
from video_enhancer.utils.constants import (
    DEFAULT_AUDIO_BITRATE,
    DEFAULT_AUDIO_CHANNELS,
    DEFAULT_AUDIO_SAMPLE_RATE,
    DEFAULT_FPS,
    DEFAULT_GOP_SECONDS,
    DEFAULT_PRESET,
    MAX_OUTPUT_FPS,
    MIN_ESTIMATED_SECONDS,
    NATIVE_AUDIO_CODECS,
    QUALITY_CRF,
    QUALITY_TIME_FACTOR,
    REFERENCE_PIXELS,
    RESOLUTION_BOXES,
)

if TYPE_CHECKING:
    from video_enhancer.core.config import EncodingConfig

logger = logging.getLogger(__name__)


def _floor_even(value: int | Fraction) -> int:
    return max(2, math.floor(value) // 2 * 2)


def resolve_resolution(
    width: int,
    height: int,
    mode: ResolutionMode,
) -> tuple[int, int]:
    """Resolve the target size for a source size and resolution mode.

    ``auto`` keeps the source size. An explicit mode fits the source inside
    its box, turned to portrait for portrait sources, without ever scaling
    up. Both dimensions are floored to even numbers.

    Args:
        width: Source width in pixels.
        height: Source height in pixels.
        mode: Requested resolution mode.

    Returns:
        Target (width, height), or (0, 0) when the source size is unknown.
    """
    if width <= 0 or height <= 0:
        return 0, 0

    if mode is ResolutionMode.AUTO:
        return _floor_even(width), _floor_even(height)

    box_w, box_h = RESOLUTION_BOXES[mode.value]
    if height > width:
        box_w, box_h = box_h, box_w

    scale = min(Fraction(box_w, width), Fraction(box_h, height), Fraction(1))
    return _floor_even(width * scale), _floor_even(height * scale)


def resolve_fps(source_fps: float, max_fps: float = MAX_OUTPUT_FPS) -> float:
    """Resolve the target frame rate: ``min(source_fps, max_fps)``."""
    if source_fps <= 0:
        source_fps = DEFAULT_FPS
    return float(min(source_fps, max_fps))


def resolve_audio_mode(media: MediaInfo) -> AudioMode:
    """Choose between stripping, copying and re-encoding the audio track."""
    if not media.has_audio:
        return AudioMode.STRIP
    if media.audio_codec and media.audio_codec.lower() in NATIVE_AUDIO_CODECS:
        return AudioMode.COPY
    return AudioMode.ENCODE


def compute_gop(fps: float, gop_seconds: float = DEFAULT_GOP_SECONDS) -> int:
    """Keyframe interval in frames for a frame rate."""
    return max(1, round(fps * gop_seconds))


@dataclass
class ParameterPolicy:
    """Policy tables and limits applied to every submission.

    Attributes:
        preset: Encoder speed preset.
        max_fps: Output frame rate ceiling.
        gop_seconds: Seconds between keyframes.
        audio_bitrate: Bitrate for re-encoded audio.
        audio_sample_rate: Sample rate for re-encoded audio.
        audio_channels: Channel count for re-encoded audio.
    """

    preset: str = DEFAULT_PRESET
    max_fps: float = MAX_OUTPUT_FPS
    gop_seconds: float = DEFAULT_GOP_SECONDS
    audio_bitrate: str = DEFAULT_AUDIO_BITRATE
    audio_sample_rate: int = DEFAULT_AUDIO_SAMPLE_RATE
    audio_channels: int = DEFAULT_AUDIO_CHANNELS

    @classmethod
    def from_config(cls, encoding: EncodingConfig) -> ParameterPolicy:
        return cls(
            preset=encoding.preset,
            max_fps=encoding.max_fps,
            gop_seconds=encoding.gop_seconds,
            audio_bitrate=encoding.audio_bitrate,
            audio_sample_rate=encoding.audio_sample_rate,
            audio_channels=encoding.audio_channels,
        )

    def resolve(self, media: MediaInfo, options: EncodeOptions) -> EncodeParams:
        """Resolve encoder parameters for one job.

        Args:
            media: Probed (or default) input characteristics.
            options: Requested options.

        Returns:
            Resolved EncodeParams.
        """
        width, height = resolve_resolution(media.width, media.height, options.resolution)
        fps = resolve_fps(media.fps, self.max_fps)

        bounds = None
        if width == 0 and options.resolution is not ResolutionMode.AUTO:
            bounds = RESOLUTION_BOXES[options.resolution.value]

        params = EncodeParams(
            width=width,
            height=height,
            fps=fps,
            crf=QUALITY_CRF[options.quality.value],
            gop=compute_gop(fps, self.gop_seconds),
            codec=options.codec,
            preset=self.preset,
            audio_mode=resolve_audio_mode(media),
            audio_bitrate=self.audio_bitrate,
            audio_sample_rate=self.audio_sample_rate,
            audio_channels=self.audio_channels,
            bounds=bounds,
        )

        logger.debug(
            f"Resolved {media.resolution_label} -> {params.width}x{params.height} "
            f"@ {params.fps:g} fps, crf {params.crf}, gop {params.gop}, "
            f"audio {params.audio_mode.value}"
        )
        return params


def estimate_duration(
    media: MediaInfo,
    params: EncodeParams,
    quality: QualityTier,
) -> float | None:
    """Estimate the encode time in seconds.

    Args:
        media: Input characteristics.
        params: Resolved parameters.
        quality: Requested quality tier.

    Returns:
        Estimated seconds, or None when the media duration is unknown.
    """
    if media.duration <= 0:
        return None

    pixels = params.width * params.height if params.has_fixed_size else REFERENCE_PIXELS
    estimate = media.duration * QUALITY_TIME_FACTOR[quality.value] * pixels / REFERENCE_PIXELS
    return round(max(MIN_ESTIMATED_SECONDS, estimate), 1)


__all__ = [
    "ParameterPolicy",
    "resolve_resolution",
    "resolve_fps",
    "resolve_audio_mode",
    "compute_gop",
    "estimate_duration",
]
