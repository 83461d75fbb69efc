"""Shared pytest fixtures for video_enhancer tests.

This module provides common fixtures used across all test modules,
including isolated working directories, an isolated configuration and a
fake FFmpeg executable that mimics the encoder's stderr output.

Example:
    def test_with_work_dirs(work_dirs):
        assert work_dirs.processed.is_dir()

    async def test_with_fake_encoder(fake_ffmpeg, ffmpeg_mode):
        ffmpeg_mode("fail")
        ...
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest

from video_enhancer.core.config import Config
from video_enhancer.core.types import MediaInfo
from video_enhancer.processors.output_validator import OutputValidator

if TYPE_CHECKING:
    from collections.abc import Generator

# Stand-in for the ffmpeg binary. The behaviour is selected through the
# FAKE_FFMPEG_MODE environment variable:
#   ok    - writes an 8 KB output and four progress lines
#   fail  - exits 1 with a diagnostic ending in "Conversion failed!"
#   empty - exits 0 leaving a zero-byte output
#   small - exits 0 leaving a 16 byte output
#   hang  - prints the input duration and sleeps until killed
FAKE_FFMPEG_SCRIPT = r'''
import os
import sys
import time

mode = os.environ.get("FAKE_FFMPEG_MODE", "ok")
delay = float(os.environ.get("FAKE_FFMPEG_DELAY", "0.02"))
output = sys.argv[-1]

if mode == "fail":
    sys.stderr.write("Input #0, mov, from 'input.mov':\n")
    sys.stderr.write("input.mov: Invalid data found when processing input\n")
    sys.stderr.write("Conversion failed!\n")
    sys.exit(1)

sys.stderr.write("  Duration: 00:00:02.00, start: 0.000000, bitrate: 1000 kb/s\n")
sys.stderr.flush()

if mode == "hang":
    time.sleep(60)
    sys.exit(0)

with open(output, "wb") as f:
    if mode == "small":
        f.write(b"\0" * 16)
    elif mode == "ok":
        for step in range(1, 5):
            f.write(b"\0" * 2048)
            f.flush()
            sys.stderr.write(
                f"frame={step * 15:5d} fps= 30 q=28.0 size={step * 2}kB "
                f"time=00:00:0{step // 2}.{(step % 2) * 5}0 bitrate=100.0kbits/s speed=1.0x\r"
            )
            sys.stderr.flush()
            time.sleep(delay)

sys.stderr.write("\n")
sys.exit(0)
'''


@dataclass
class WorkDirs:
    """Isolated working directories.

    Attributes:
        uploads: Input files.
        processed: Encoder outputs.
        temp: Progress records.
    """

    uploads: Path
    processed: Path
    temp: Path


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test files.

    Args:
        tmp_path: Pytest's built-in temporary path fixture.

    Returns:
        Path: Temporary directory path.
    """
    return tmp_path


@pytest.fixture
def work_dirs(tmp_path: Path) -> WorkDirs:
    """Create uploads, processed and temp directories."""
    dirs = WorkDirs(
        uploads=tmp_path / "uploads",
        processed=tmp_path / "processed",
        temp=tmp_path / "temp",
    )
    for directory in (dirs.uploads, dirs.processed, dirs.temp):
        directory.mkdir()
    return dirs


@pytest.fixture
def sample_input(work_dirs: WorkDirs) -> Path:
    """Create a non-empty input file in the uploads directory."""
    path = work_dirs.uploads / "clip.mov"
    path.write_bytes(b"\x00\x00\x00\x18ftypqt  " + b"\x00" * 4096)
    return path


@pytest.fixture
def fake_ffmpeg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Install an executable fake ffmpeg script.

    Returns:
        Path: Path to the fake encoder.
    """
    script = tmp_path / "bin" / "ffmpeg"
    script.parent.mkdir()
    script.write_text(f"#!{sys.executable}\n{FAKE_FFMPEG_SCRIPT}")
    script.chmod(0o755)
    monkeypatch.setenv("FAKE_FFMPEG_MODE", "ok")
    return script


@pytest.fixture
def ffmpeg_mode(monkeypatch: pytest.MonkeyPatch) -> Callable[[str], None]:
    """Switch the behaviour of the fake encoder."""

    def set_mode(mode: str) -> None:
        monkeypatch.setenv("FAKE_FFMPEG_MODE", mode)

    return set_mode


@pytest.fixture
def media_info() -> MediaInfo:
    """Probe result of a 2 second 1080p clip with AAC audio."""
    return MediaInfo(
        duration=2.0,
        width=1920,
        height=1080,
        fps=29.97,
        has_audio=True,
        audio_codec="aac",
        video_codec="h264",
    )


@pytest.fixture
def mock_prober(media_info: MediaInfo) -> MagicMock:
    """Provide a prober returning the sample media info."""
    prober = MagicMock()
    prober.probe_or_default.return_value = media_info
    prober.probe_or_default_async = AsyncMock(return_value=media_info)
    return prober


@pytest.fixture
def mock_ffprobe_runner() -> MagicMock:
    """Provide an FFprobe runner that reports one video stream."""
    runner = MagicMock()
    runner.probe.return_value = {
        "streams": [{"codec_type": "video", "codec_name": "h264"}],
        "format": {"duration": "2.0"},
    }
    return runner


@pytest.fixture
def output_validator(mock_ffprobe_runner: MagicMock) -> OutputValidator:
    """Provide an output validator backed by the mocked FFprobe runner."""
    return OutputValidator(ffprobe=mock_ffprobe_runner)


@pytest.fixture
def isolated_config(
    tmp_path: Path,
    work_dirs: WorkDirs,
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[Config, None, None]:
    """Provide a configuration pointing at temporary directories.

    The user config file is redirected into the temporary directory and
    the singleton is reset around the test.

    Yields:
        Config: Configuration instance for testing.
    """
    monkeypatch.setattr(
        "video_enhancer.core.config.DEFAULT_CONFIG_FILE",
        tmp_path / "config" / "config.json",
    )
    monkeypatch.setenv("VIDEO_ENHANCER_PATHS__UPLOADS", str(work_dirs.uploads))
    monkeypatch.setenv("VIDEO_ENHANCER_PATHS__PROCESSED", str(work_dirs.processed))
    monkeypatch.setenv("VIDEO_ENHANCER_PATHS__TEMP", str(work_dirs.temp))

    Config.reset()
    config = Config.load()
    yield config
    Config.reset()
