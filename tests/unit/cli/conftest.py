"""Fixtures for CLI tests."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from video_enhancer.core.config import Config


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click test runner."""
    return CliRunner()


@pytest.fixture
def cli_config(
    isolated_config: Config,
    fake_ffmpeg: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> Config:
    """Configure the CLI to run the fake encoder without ffprobe.

    Probing falls back to defaults and validation to size checks, and
    logging is left unconfigured so the handlers of the test session
    stay in place.
    """
    monkeypatch.setenv("VIDEO_ENHANCER_ENCODING__FFMPEG_PATH", str(fake_ffmpeg))
    monkeypatch.setenv(
        "VIDEO_ENHANCER_VALIDATION__FFPROBE_PATH",
        str(fake_ffmpeg.parent / "missing-ffprobe"),
    )
    monkeypatch.setattr("video_enhancer.__main__.configure_logging", MagicMock())
    monkeypatch.setattr("video_enhancer.__main__.POLL_INTERVAL", 0.05)

    Config.reset()
    return Config.load()
