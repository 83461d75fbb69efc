"""Unit tests for the CLI commands."""

from __future__ import annotations

import json
import os
import time
from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner

from video_enhancer import __version__
from video_enhancer.__main__ import main
from video_enhancer.core.config import Config
from video_enhancer.core.retention import RetentionSweeper


def _write(path: Path, size: int = 2048, age: float = 0.0) -> Path:
    path.write_bytes(b"\0" * size)
    if age:
        mtime = time.time() - age
        os.utime(path, (mtime, mtime))
    return path


class TestMain:
    """Tests for the command group."""

    def test_version(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test --version prints the package version."""
        result = cli_runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test every command is listed."""
        result = cli_runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        for command in ("submit", "status", "cancel", "plan", "sweep", "purge", "usage", "list"):
            assert command in result.output


class TestSubmit:
    """Tests for the submit command."""

    def test_submit_json(
        self,
        cli_runner: CliRunner,
        cli_config: Config,
        sample_input: Path,
    ) -> None:
        """Test a successful encode reports completed."""
        result = cli_runner.invoke(main, ["submit", str(sample_input), "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["submission"]["job_id"] == "clip_enhanced.mp4"
        assert data["status"]["status"] == "completed"
        assert data["status"]["percent"] == 100
        assert (cli_config.paths.processed / "clip_enhanced.mp4").exists()

    def test_submit_options(
        self,
        cli_runner: CliRunner,
        cli_config: Config,
        sample_input: Path,
    ) -> None:
        """Test command line options reach the resolved parameters."""
        result = cli_runner.invoke(
            main,
            ["submit", str(sample_input), "--quality", "high", "--resolution", "720p", "--json"],
        )

        assert result.exit_code == 0, result.output
        params = json.loads(result.stdout)["submission"]["params"]
        assert params["crf"] == 20

    def test_submit_failure(
        self,
        cli_runner: CliRunner,
        cli_config: Config,
        sample_input: Path,
        ffmpeg_mode: Callable[[str], None],
    ) -> None:
        """Test a failed encode exits with status 1."""
        ffmpeg_mode("fail")

        result = cli_runner.invoke(main, ["submit", str(sample_input), "--json"])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["status"]["status"] == "failed"
        assert data["status"]["error"].startswith("encode_failed:")

    def test_submit_missing_input(
        self,
        cli_runner: CliRunner,
        cli_config: Config,
        work_dirs,
    ) -> None:
        """Test a missing input is reported with its category."""
        result = cli_runner.invoke(main, ["submit", str(work_dirs.uploads / "missing.mov")])

        assert result.exit_code == 1
        assert "input_not_found" in result.output

    def test_submit_quiet(
        self,
        cli_runner: CliRunner,
        cli_config: Config,
        sample_input: Path,
    ) -> None:
        """Test quiet mode prints nothing on success."""
        result = cli_runner.invoke(main, ["-q", "submit", str(sample_input)])

        assert result.exit_code == 0
        assert result.output.strip() == ""

    def test_submit_runs_sweeper(
        self,
        cli_runner: CliRunner,
        cli_config: Config,
        sample_input: Path,
        mocker,
    ) -> None:
        """Test the periodic sweep runs for the lifetime of the job."""
        start = mocker.spy(RetentionSweeper, "start")
        stop = mocker.spy(RetentionSweeper, "stop")

        result = cli_runner.invoke(main, ["-q", "submit", str(sample_input)])

        assert result.exit_code == 0, result.output
        start.assert_called_once()
        assert start.call_args.kwargs == {"interval": 15 * 60}
        assert stop.call_count == 1
        sweeper = start.call_args.args[0]
        assert sweeper.max_age == 60 * 60
        assert not sweeper.running

    def test_submit_retention_disabled(
        self,
        cli_runner: CliRunner,
        cli_config: Config,
        sample_input: Path,
        monkeypatch: pytest.MonkeyPatch,
        mocker,
    ) -> None:
        """Test no sweep is scheduled when retention is disabled."""
        monkeypatch.setenv("VIDEO_ENHANCER_RETENTION__ENABLED", "false")
        Config.reset()
        start = mocker.spy(RetentionSweeper, "start")

        result = cli_runner.invoke(main, ["-q", "submit", str(sample_input)])

        assert result.exit_code == 0, result.output
        start.assert_not_called()


class TestStatus:
    """Tests for the status command."""

    def test_status_completed(
        self,
        cli_runner: CliRunner,
        cli_config: Config,
        sample_input: Path,
    ) -> None:
        """Test the status of a finished job."""
        cli_runner.invoke(main, ["submit", str(sample_input), "-q"])

        result = cli_runner.invoke(main, ["status", "clip_enhanced.mp4", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["status"] == "completed"
        assert data["percent"] == 100

    def test_status_text(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test the human-readable report."""
        result = cli_runner.invoke(main, ["status", "unknown_enhanced.mp4"])

        assert result.exit_code == 0
        assert "unknown_enhanced.mp4" in result.output

    def test_invalid_job_id(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test a path-like id is a usage error."""
        result = cli_runner.invoke(main, ["status", "../secret.mp4"])

        assert result.exit_code == 2
        assert "invalid job id" in result.output


class TestCancel:
    """Tests for the cancel command."""

    def test_cancel_deletes_artifacts(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test the output and progress record are removed."""
        output = _write(cli_config.paths.processed / "clip_enhanced.mp4")
        record = cli_config.paths.temp / "clip_enhanced.mp4.progress"
        record.write_text('{"percent": 40, "status": "processing"}')

        result = cli_runner.invoke(main, ["cancel", "clip_enhanced.mp4"])

        assert result.exit_code == 0
        assert "Cancelled clip_enhanced.mp4" in result.output
        assert not output.exists()
        assert not record.exists()

    def test_cancel_invalid_id(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test a path-like id is a usage error."""
        result = cli_runner.invoke(main, ["cancel", "a/b.mp4"])
        assert result.exit_code == 2


class TestPlan:
    """Tests for the plan command."""

    def test_plan_json(
        self,
        cli_runner: CliRunner,
        cli_config: Config,
        sample_input: Path,
        fake_ffmpeg: Path,
    ) -> None:
        """Test the plan uses defaults when probing is unavailable."""
        result = cli_runner.invoke(
            main, ["plan", str(sample_input), "--quality", "low", "--json"]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["job_id"] == "clip_enhanced.mp4"
        assert data["media"]["probed"] is False
        assert data["params"]["crf"] == 28
        assert data["estimated_duration"] is None
        assert data["command"][0] == str(fake_ffmpeg)
        assert data["command"][-1].endswith("clip_enhanced.mp4")
        assert not (cli_config.paths.processed / "clip_enhanced.mp4").exists()

    def test_plan_table(
        self,
        cli_runner: CliRunner,
        cli_config: Config,
        sample_input: Path,
    ) -> None:
        """Test the table output warns about the missing probe."""
        result = cli_runner.invoke(main, ["plan", str(sample_input)])

        assert result.exit_code == 0
        assert "Probe failed" in result.output

    def test_plan_missing_input(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test click rejects a missing input."""
        result = cli_runner.invoke(main, ["plan", "/nonexistent/clip.mov"])
        assert result.exit_code == 2


class TestHousekeeping:
    """Tests for sweep, purge, usage, list and config."""

    def test_sweep(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test expired files are deleted."""
        old = _write(cli_config.paths.uploads / "old.mov", age=600)
        fresh = _write(cli_config.paths.uploads / "fresh.mov")

        result = cli_runner.invoke(main, ["sweep", "--max-age", "5"])

        assert result.exit_code == 0
        assert "Deleted 1 files" in result.output
        assert not old.exists()
        assert fresh.exists()

    def test_purge_yes(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test purge deletes everything."""
        path = _write(cli_config.paths.processed / "a_enhanced.mp4")

        result = cli_runner.invoke(main, ["purge", "--yes"])

        assert result.exit_code == 0
        assert "Purged 1 files" in result.output
        assert not path.exists()

    def test_purge_declined(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test declining the confirmation keeps the files."""
        path = _write(cli_config.paths.processed / "a_enhanced.mp4")

        result = cli_runner.invoke(main, ["purge"], input="n\n")

        assert result.exit_code == 1
        assert path.exists()

    def test_usage(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test the usage table has a total row."""
        _write(cli_config.paths.uploads / "a.mov")

        result = cli_runner.invoke(main, ["usage"])

        assert result.exit_code == 0
        assert "Total" in result.output

    def test_list_empty(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test the message when nothing was processed."""
        result = cli_runner.invoke(main, ["list"])

        assert result.exit_code == 0
        assert "No processed files" in result.output

    def test_list_json(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test processed outputs are listed."""
        _write(cli_config.paths.processed / "a_enhanced.mp4", size=4096)
        (cli_config.paths.processed / "notes.txt").write_text("ignored")

        result = cli_runner.invoke(main, ["list", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [entry["job_id"] for entry in data] == ["a_enhanced.mp4"]
        assert data[0]["size"] == 4096

    def test_config_json(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test the effective configuration is printed."""
        result = cli_runner.invoke(main, ["config", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["paths"]["uploads"] == str(cli_config.paths.uploads)
        assert data["encoding"]["codec"] == "h264"

    def test_config_text(self, cli_runner: CliRunner, cli_config: Config) -> None:
        """Test the human-readable configuration."""
        result = cli_runner.invoke(main, ["config"])

        assert result.exit_code == 0
        assert "Retention" in result.output
