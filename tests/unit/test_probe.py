"""Unit tests for input media probing."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from video_enhancer.core.errors import ProbeFailedError
from video_enhancer.processors.probe import (
    MediaProber,
    find_stream,
    parse_duration,
    parse_frame_rate,
    parse_probe_data,
)
from video_enhancer.utils.command_runner import (
    CommandExecutionError,
    CommandNotFoundError,
    CommandTimeoutError,
)


@pytest.fixture
def probe_data() -> dict[str, Any]:
    """FFprobe output of a 1080p H.264 clip with AAC audio."""
    return {
        "streams": [
            {
                "codec_type": "video",
                "codec_name": "h264",
                "width": 1920,
                "height": 1080,
                "avg_frame_rate": "30000/1001",
                "r_frame_rate": "30/1",
                "duration": "12.5",
            },
            {"codec_type": "audio", "codec_name": "aac"},
        ],
        "format": {"duration": "12.6"},
    }


class TestParsers:
    """Tests for the probe data parsers."""

    def test_find_stream(self, probe_data: dict[str, Any]) -> None:
        """Test finding streams by type."""
        streams = probe_data["streams"]
        assert find_stream(streams, "audio") == streams[1]
        assert find_stream(streams, "subtitle") is None

    def test_frame_rate_average_first(self) -> None:
        """Test the average rate is preferred."""
        assert parse_frame_rate({"avg_frame_rate": "30000/1001"}) == pytest.approx(29.97, abs=0.01)

    def test_frame_rate_fallback(self) -> None:
        """Test the real base rate is used when the average is missing."""
        assert parse_frame_rate({"avg_frame_rate": "0/0", "r_frame_rate": "25/1"}) == 25.0

    def test_frame_rate_unusable(self) -> None:
        """Test unusable rates give 0.0."""
        assert parse_frame_rate({"avg_frame_rate": "abc/def"}) == 0.0
        assert parse_frame_rate({}) == 0.0

    def test_duration_fallback_to_format(self) -> None:
        """Test the container duration is used when the stream has none."""
        assert parse_duration({}, {"duration": "8.25"}) == 8.25
        assert parse_duration({"duration": "N/A"}, {"duration": "3.0"}) == 3.0
        assert parse_duration({}, {}) == 0.0

    def test_parse_probe_data(self, probe_data: dict[str, Any]) -> None:
        """Test conversion to MediaInfo."""
        info = parse_probe_data(probe_data)

        assert (info.width, info.height) == (1920, 1080)
        assert info.duration == 12.5
        assert info.fps == pytest.approx(29.97, abs=0.01)
        assert info.has_audio
        assert info.audio_codec == "aac"
        assert info.video_codec == "h264"
        assert info.probed

    @pytest.mark.parametrize(
        "rotation_fields",
        [
            {"tags": {"rotate": "90"}},
            {"side_data_list": [{"rotation": -90}]},
        ],
    )
    def test_rotated_dimensions(
        self,
        probe_data: dict[str, Any],
        rotation_fields: dict[str, Any],
    ) -> None:
        """Test portrait recordings report their displayed size."""
        probe_data["streams"][0].update(rotation_fields)
        info = parse_probe_data(probe_data)
        assert (info.width, info.height) == (1080, 1920)

    def test_no_audio(self, probe_data: dict[str, Any]) -> None:
        """Test a silent clip."""
        probe_data["streams"].pop()
        info = parse_probe_data(probe_data)
        assert not info.has_audio
        assert info.audio_codec is None

    def test_no_video(self) -> None:
        """Test data without a video stream is rejected."""
        with pytest.raises(ProbeFailedError, match="no video stream"):
            parse_probe_data({"streams": [{"codec_type": "audio"}], "format": {}})


class TestMediaProber:
    """Tests for MediaProber."""

    def test_probe(self, probe_data: dict[str, Any], tmp_path: Path) -> None:
        """Test probing through the FFprobe runner."""
        runner = MagicMock()
        runner.probe.return_value = probe_data
        prober = MediaProber(runner, timeout=5.0)

        info = prober.probe(tmp_path / "clip.mov")

        assert info.width == 1920
        runner.probe.assert_called_once_with(
            tmp_path / "clip.mov",
            show_format=True,
            show_streams=True,
            timeout=5.0,
        )

    @pytest.mark.parametrize(
        "error",
        [
            CommandExecutionError("ffprobe", 1, "Invalid data found when processing input"),
            CommandNotFoundError("ffprobe"),
            CommandTimeoutError("ffprobe", 30.0),
            FileNotFoundError("clip.mov"),
            json.JSONDecodeError("Expecting value", "", 0),
        ],
    )
    def test_probe_errors(self, error: Exception, tmp_path: Path) -> None:
        """Test every runner failure becomes ProbeFailedError."""
        runner = MagicMock()
        runner.probe.side_effect = error

        with pytest.raises(ProbeFailedError):
            MediaProber(runner).probe(tmp_path / "clip.mov")

    def test_probe_or_default(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        """Test defaults are substituted with a warning."""
        runner = MagicMock()
        runner.probe.side_effect = CommandTimeoutError("ffprobe", 30.0)

        info = MediaProber(runner).probe_or_default(tmp_path / "clip.mov")

        assert not info.probed
        assert info.fps == 30.0
        assert "using defaults" in caplog.text

    @pytest.mark.asyncio
    async def test_probe_or_default_async(self, probe_data: dict[str, Any], tmp_path: Path) -> None:
        """Test asynchronous probing."""
        runner = MagicMock()
        runner.probe.return_value = probe_data

        info = await MediaProber(runner).probe_or_default_async(tmp_path / "clip.mov")

        assert info.probed
        assert info.height == 1080

    @pytest.mark.asyncio
    async def test_probe_or_default_async_failure(self, tmp_path: Path) -> None:
        """Test asynchronous probing falls back to defaults."""
        runner = MagicMock()
        runner.probe.side_effect = CommandNotFoundError("ffprobe")

        info = await MediaProber(runner).probe_or_default_async(tmp_path / "clip.mov")

        assert not info.probed
