"""Core type definitions for the transcode job workflow.

This module defines the data classes passed between the job manager, the
encoder adapter, the progress store and the status resolver: requested
options, probed media characteristics, resolved encode parameters,
progress records and status reports.

Example:
    >>> from video_enhancer.core.types import EncodeOptions, QualityTier
    >>> options = EncodeOptions(quality="high")
    >>> options.quality is QualityTier.HIGH
    True
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from video_enhancer.utils.constants import (
    DEFAULT_AUDIO_BITRATE,
    DEFAULT_AUDIO_CHANNELS,
    DEFAULT_AUDIO_SAMPLE_RATE,
    DEFAULT_FPS,
    DEFAULT_PRESET,
)


class ResolutionMode(Enum):
    """Requested output resolution.

    Attributes:
        AUTO: Keep the source resolution (quality-only enhancement).
        HD_720: Fit inside 1280x720 when the source is larger.
        FULL_HD_1080: Fit inside 1920x1080 when the source is larger.
    """

    AUTO = "auto"
    HD_720 = "720p"
    FULL_HD_1080 = "1080p"


class QualityTier(Enum):
    """Requested quality tier, mapped to a constant-quality factor."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VideoCodec(Enum):
    """Target video codec."""

    H264 = "h264"
    H265 = "h265"


class AudioMode(Enum):
    """How the audio track is carried into the output.

    Attributes:
        STRIP: No audio stream in the input; output has none.
        COPY: Input audio is already container-native; copy bytes.
        ENCODE: Re-encode to the target audio codec.
    """

    STRIP = "strip"
    COPY = "copy"
    ENCODE = "encode"


class ProgressStatus(Enum):
    """Status values stored in a progress record."""

    STARTED = "started"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        """Check if the status ends the job."""
        return self in (ProgressStatus.COMPLETED, ProgressStatus.FAILED, ProgressStatus.TIMEOUT)

    @property
    def is_failure(self) -> bool:
        """Check if the status carries an error."""
        return self in (ProgressStatus.FAILED, ProgressStatus.TIMEOUT)


class JobStatus(Enum):
    """Status reported to polling clients."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        """Check if polling can stop."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMEOUT)


class SessionFileType(Enum):
    """Role of a file tracked for a client session."""

    INPUT = "input"
    OUTPUT = "output"


@dataclass
class EncodeOptions:
    """Options requested by the client for a job.

    String values are normalized to their enums, so a ``ValueError`` is
    raised for unknown modes, tiers or codecs.

    Attributes:
        resolution: Requested resolution mode.
        quality: Requested quality tier.
        codec: Requested video codec.
    """

    resolution: ResolutionMode = ResolutionMode.AUTO
    quality: QualityTier = QualityTier.MEDIUM
    codec: VideoCodec = VideoCodec.H264

    def __post_init__(self) -> None:
        """Validate and normalize fields."""
        if isinstance(self.resolution, str):
            self.resolution = ResolutionMode(self.resolution)
        if isinstance(self.quality, str):
            self.quality = QualityTier(self.quality)
        if isinstance(self.codec, str):
            self.codec = VideoCodec("h265" if self.codec == "hevc" else self.codec)

    def to_dict(self) -> dict[str, str]:
        return {
            "resolution": self.resolution.value,
            "quality": self.quality.value,
            "codec": self.codec.value,
        }


@dataclass
class MediaInfo:
    """Characteristics of an input file as reported by the prober.

    Attributes:
        duration: Duration in seconds (0.0 if unknown).
        width: Width of the primary video stream in pixels.
        height: Height of the primary video stream in pixels.
        fps: Native frame rate.
        has_video: Whether a video stream was found.
        has_audio: Whether an audio stream was found.
        audio_codec: Codec name of the primary audio stream.
        video_codec: Codec name of the primary video stream.
        probed: False when these values are fallback defaults.
    """

    duration: float = 0.0
    width: int = 0
    height: int = 0
    fps: float = DEFAULT_FPS
    has_video: bool = True
    has_audio: bool = False
    audio_codec: str | None = None
    video_codec: str | None = None
    probed: bool = True

    @classmethod
    def defaults(cls) -> MediaInfo:
        """Conservative values used when probing fails."""
        return cls(fps=DEFAULT_FPS, has_audio=False, probed=False)

    @property
    def resolution_label(self) -> str:
        if self.width <= 0 or self.height <= 0:
            return "unknown"
        return f"{self.width}x{self.height}"


@dataclass
class EncodeParams:
    """Resolved encoder parameters for one job.

    When the source size is unknown, width and height are 0 and the
    encoder derives the size from the input at run time, fitting it inside
    ``bounds`` when one is set.

    Attributes:
        width: Target width (even, never above the source).
        height: Target height (even, never above the source).
        fps: Target frame rate (never above the source).
        crf: Constant-quality factor.
        gop: Keyframe interval in frames.
        codec: Target video codec.
        preset: Encoder speed preset.
        audio_mode: Strip, copy or re-encode audio.
        audio_bitrate: Bitrate for re-encoded audio.
        audio_sample_rate: Sample rate for re-encoded audio.
        audio_channels: Channel count for re-encoded audio.
        bounds: Bounding box used when the source size is unknown.
    """

    width: int
    height: int
    fps: float
    crf: int
    gop: int
    codec: VideoCodec = VideoCodec.H264
    preset: str = DEFAULT_PRESET
    audio_mode: AudioMode = AudioMode.STRIP
    audio_bitrate: str = DEFAULT_AUDIO_BITRATE
    audio_sample_rate: int = DEFAULT_AUDIO_SAMPLE_RATE
    audio_channels: int = DEFAULT_AUDIO_CHANNELS
    bounds: tuple[int, int] | None = None

    @property
    def has_fixed_size(self) -> bool:
        return self.width > 0 and self.height > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "crf": self.crf,
            "gop": self.gop,
            "codec": self.codec.value,
            "preset": self.preset,
            "audio_mode": self.audio_mode.value,
            "audio_bitrate": self.audio_bitrate,
            "audio_sample_rate": self.audio_sample_rate,
            "audio_channels": self.audio_channels,
        }


@dataclass
class ProgressRecord:
    """Persisted status/progress snapshot of a job.

    The error field is present exactly when the status is a failure;
    ``__post_init__`` normalizes records that violate this.

    Attributes:
        percent: Progress percentage (0-100).
        status: Current record status.
        message: Human-readable phase description.
        error: Categorized failure reason (failed/timeout only).
        timestamp: Time of the last write.
    """

    percent: int
    status: ProgressStatus
    message: str = ""
    error: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        """Validate and normalize fields."""
        if isinstance(self.status, str):
            self.status = ProgressStatus(self.status)
        if isinstance(self.timestamp, str):
            self.timestamp = datetime.fromisoformat(self.timestamp)
        self.percent = max(0, min(100, int(self.percent)))

        if self.status.is_failure:
            if not self.error:
                self.error = self.message or self.status.value
        else:
            self.error = None

    def age_seconds(self, now: datetime | None = None) -> float:
        """Seconds since the record was written."""
        reference = now or datetime.now()
        return max(0.0, (reference - self.timestamp).total_seconds())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "percent": self.percent,
            "status": self.status.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProgressRecord:
        return cls(
            percent=data.get("percent", 0),
            status=data["status"],
            message=data.get("message", ""),
            error=data.get("error"),
            timestamp=data.get("timestamp") or datetime.now(),
        )


@dataclass
class ProgressEvent:
    """Progress emitted by the encoder adapter while the encoder runs.

    Attributes:
        percent: Percentage in the running band.
        message: Phase description.
    """

    percent: int
    message: str


@dataclass
class EncodeResult:
    """Terminal result of one encoder process.

    Attributes:
        exit_code: Process exit code (negative when killed by a signal).
        stderr_tail: Last lines of encoder diagnostics.
        cancel_reason: Reason the process was killed, if it was.
        duration_seconds: Wall-clock runtime of the process.
    """

    exit_code: int
    stderr_tail: str = ""
    cancel_reason: str | None = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        """Candidate success, still pending output validation."""
        return self.exit_code == 0 and self.cancel_reason is None


@dataclass
class ValidationResult:
    """Outcome of output validation.

    Attributes:
        ok: Whether the output is usable.
        reason: Why the output was rejected (None when ok).
        size: Output size in bytes, when known.
    """

    ok: bool
    reason: str | None = None
    size: int = 0


@dataclass
class StatusReport:
    """Single status answer for a polling client.

    Attributes:
        job_id: Job identifier (output file name).
        status: Reported job status.
        percent: Progress percentage (0-100).
        message: Human-readable phase description.
        error: Categorized failure reason, if any.
        output_path: Output file path when completed.
    """

    job_id: str
    status: JobStatus
    percent: int
    message: str = ""
    error: str | None = None
    output_path: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.status.value,
            "percent": self.percent,
            "message": self.message,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.output_path is not None:
            data["output"] = str(self.output_path)
        return data


@dataclass
class JobSubmission:
    """Immediate answer to a submission.

    Attributes:
        job_id: Job identifier (output file name).
        output_path: Where the encoder writes.
        params: Resolved encode parameters.
        media: Probed (or default) input characteristics.
        estimated_duration: Estimated encode time in seconds, if known.
    """

    job_id: str
    output_path: Path
    params: EncodeParams
    media: MediaInfo
    estimated_duration: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "output": str(self.output_path),
            "params": self.params.to_dict(),
            "estimated_duration": self.estimated_duration,
        }


@dataclass
class SessionFileRecord:
    """A file owned by a client session.

    Attributes:
        session_id: Owning session.
        path: Absolute file path.
        file_type: Input or output.
        registered_at: Registration time.
    """

    session_id: str
    path: Path
    file_type: SessionFileType = SessionFileType.INPUT
    registered_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        """Validate and normalize fields."""
        if isinstance(self.path, str):
            self.path = Path(self.path)
        if isinstance(self.file_type, str):
            self.file_type = SessionFileType(self.file_type)
