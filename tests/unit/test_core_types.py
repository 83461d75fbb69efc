"""Unit tests for core type definitions and the error taxonomy."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from video_enhancer.core.errors import (
    EmptyInputError,
    EncodeProcessFailedError,
    InputNotFoundError,
    InvalidJobIdError,
    JobCancelledError,
    JobError,
    JobTimeoutError,
    OutputInvalidError,
)
from video_enhancer.core.types import (
    EncodeOptions,
    EncodeParams,
    EncodeResult,
    JobStatus,
    MediaInfo,
    ProgressRecord,
    ProgressStatus,
    QualityTier,
    ResolutionMode,
    SessionFileRecord,
    SessionFileType,
    StatusReport,
    VideoCodec,
)


class TestEncodeOptions:
    """Tests for EncodeOptions dataclass."""

    def test_defaults(self) -> None:
        """Test default field values."""
        options = EncodeOptions()
        assert options.resolution is ResolutionMode.AUTO
        assert options.quality is QualityTier.MEDIUM
        assert options.codec is VideoCodec.H264

    def test_string_normalization(self) -> None:
        """Test string values are converted to enums."""
        options = EncodeOptions(resolution="1080p", quality="low", codec="h265")  # type: ignore[arg-type]
        assert options.resolution is ResolutionMode.FULL_HD_1080
        assert options.quality is QualityTier.LOW
        assert options.codec is VideoCodec.H265

    def test_hevc_alias(self) -> None:
        """Test "hevc" is accepted for H.265."""
        assert EncodeOptions(codec="hevc").codec is VideoCodec.H265  # type: ignore[arg-type]

    def test_unknown_value(self) -> None:
        """Test unknown values are rejected."""
        with pytest.raises(ValueError):
            EncodeOptions(resolution="4k")  # type: ignore[arg-type]

    def test_to_dict(self) -> None:
        """Test conversion to dictionary."""
        assert EncodeOptions(quality="high").to_dict() == {  # type: ignore[arg-type]
            "resolution": "auto",
            "quality": "high",
            "codec": "h264",
        }


class TestMediaInfo:
    """Tests for MediaInfo dataclass."""

    def test_defaults(self) -> None:
        """Test fallback values used when probing fails."""
        info = MediaInfo.defaults()
        assert info.fps == 30.0
        assert not info.has_audio
        assert not info.probed
        assert info.resolution_label == "unknown"

    def test_resolution_label(self) -> None:
        """Test the size label."""
        assert MediaInfo(width=1920, height=1080).resolution_label == "1920x1080"


class TestProgressRecord:
    """Tests for ProgressRecord dataclass."""

    def test_percent_clamped(self) -> None:
        """Test percent is kept within 0-100."""
        assert ProgressRecord(percent=150, status=ProgressStatus.PROCESSING).percent == 100
        assert ProgressRecord(percent=-5, status=ProgressStatus.PROCESSING).percent == 0

    def test_error_only_on_failure(self) -> None:
        """Test the error field is dropped for non-failure statuses."""
        record = ProgressRecord(percent=40, status=ProgressStatus.PROCESSING, error="stray")
        assert record.error is None

    def test_failure_always_has_error(self) -> None:
        """Test failure records always carry an error."""
        record = ProgressRecord(percent=40, status=ProgressStatus.FAILED, message="Encoding failed")
        assert record.error == "Encoding failed"

        record = ProgressRecord(percent=40, status=ProgressStatus.TIMEOUT)
        assert record.error == "timeout"

    def test_round_trip(self) -> None:
        """Test dictionary conversion keeps every field."""
        record = ProgressRecord(
            percent=40,
            status=ProgressStatus.FAILED,
            message="Encoding failed",
            error="encode_failed: boom",
            timestamp=datetime(2024, 1, 2, 3, 4, 5),
        )
        data = record.to_dict()

        assert data["timestamp"] == "2024-01-02T03:04:05"
        assert ProgressRecord.from_dict(data) == record

    def test_to_dict_omits_missing_error(self) -> None:
        """Test non-failure records serialize without an error key."""
        data = ProgressRecord(percent=10, status=ProgressStatus.PROCESSING).to_dict()
        assert "error" not in data

    def test_age_seconds(self) -> None:
        """Test age relative to a reference time."""
        written = datetime(2024, 1, 1, 12, 0, 0)
        record = ProgressRecord(percent=0, status=ProgressStatus.STARTED, timestamp=written)

        assert record.age_seconds(written + timedelta(seconds=30)) == 30.0
        assert record.age_seconds(written - timedelta(seconds=30)) == 0.0

    def test_status_properties(self) -> None:
        """Test terminal and failure classification."""
        assert ProgressStatus.COMPLETED.is_terminal
        assert not ProgressStatus.COMPLETED.is_failure
        assert ProgressStatus.TIMEOUT.is_failure
        assert not ProgressStatus.STARTED.is_terminal
        assert JobStatus.FAILED.is_terminal
        assert not JobStatus.QUEUED.is_terminal


class TestResultsAndReports:
    """Tests for EncodeResult, EncodeParams and StatusReport."""

    def test_encode_result_success(self) -> None:
        """Test a zero exit without cancellation is a candidate success."""
        assert EncodeResult(exit_code=0).success
        assert not EncodeResult(exit_code=0, cancel_reason="timeout").success
        assert not EncodeResult(exit_code=1).success

    def test_params_fixed_size(self) -> None:
        """Test unknown sizes are detected."""
        assert EncodeParams(width=1280, height=720, fps=30.0, crf=25, gop=60).has_fixed_size
        assert not EncodeParams(width=0, height=0, fps=30.0, crf=25, gop=60).has_fixed_size

    def test_status_report_to_dict(self) -> None:
        """Test optional fields are only serialized when set."""
        report = StatusReport(
            job_id="clip_enhanced.mp4",
            status=JobStatus.COMPLETED,
            percent=100,
            output_path=Path("/processed/clip_enhanced.mp4"),
        )
        data = report.to_dict()

        assert data["status"] == "completed"
        assert data["output"] == "/processed/clip_enhanced.mp4"
        assert "error" not in data

    def test_session_file_record_normalization(self) -> None:
        """Test string values are normalized."""
        record = SessionFileRecord(session_id="s1", path="/tmp/a.mov", file_type="output")  # type: ignore[arg-type]
        assert record.path == Path("/tmp/a.mov")
        assert record.file_type is SessionFileType.OUTPUT


class TestJobErrors:
    """Tests for the job error taxonomy."""

    def test_error_string(self) -> None:
        """Test categorized reasons."""
        error = OutputInvalidError("no video stream")
        assert error.error_string == "output_invalid: no video stream"
        assert JobCancelledError().error_string == "cancelled: job cancelled"
        assert JobTimeoutError(600).error_string == "timeout: encode exceeded time budget (600s)"

    def test_encode_failed_keeps_cause(self) -> None:
        """Test the cause before the closing line is surfaced."""
        error = EncodeProcessFailedError(
            1, "Stream info\n\nInvalid data found\nConversion failed!\n"
        )
        assert error.exit_code == 1
        assert error.error_string == (
            "encode_failed: encoder exited with code 1: "
            "Stream info | Invalid data found | Conversion failed!"
        )

    def test_encode_failed_tail_is_bounded(self) -> None:
        """Test long diagnostics keep only their last 500 characters."""
        error = EncodeProcessFailedError(1, "x" * 2000 + "\nConversion failed!")
        assert len(error.reason) <= len("encoder exited with code 1: ") + 500
        assert error.reason.endswith("Conversion failed!")

    def test_encode_failed_without_diagnostic(self) -> None:
        """Test an empty diagnostic."""
        assert str(EncodeProcessFailedError(-9, "")).endswith("no diagnostic")

    def test_input_errors(self, tmp_path: Path) -> None:
        """Test input errors name the file, not the full path."""
        missing = InputNotFoundError(tmp_path / "clip.mov")
        assert missing.category == "input_not_found"
        assert str(tmp_path) not in str(missing)
        assert EmptyInputError(tmp_path / "clip.mov").category == "empty_input"

    def test_hierarchy(self) -> None:
        """Test all errors derive from JobError."""
        error = InvalidJobIdError("../etc")
        assert isinstance(error, JobError)
        assert isinstance(error, ValueError)
        assert error.job_id == "../etc"
