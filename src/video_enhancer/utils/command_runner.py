"""Command execution utilities for external tools.

This module provides a wrapper for executing external commands like FFprobe
and FFmpeg with proper error handling and output capture.
"""

from __future__ import annotations

import json
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass
class CommandResult:
    """Result of a command execution.

    Attributes:
        returncode: Exit code of the command (0 = success).
        stdout: Standard output from the command.
        stderr: Standard error output from the command.
        success: Whether the command completed successfully.
    """

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        """Check if command completed successfully."""
        return self.returncode == 0


class CommandNotFoundError(Exception):
    """Raised when required external command is not found.

    This exception provides helpful installation instructions for common tools.

    Attributes:
        command: The command that was not found.
    """

    INSTALL_HINTS = {
        "ffmpeg": "Install FFmpeg (e.g. apt install ffmpeg / brew install ffmpeg)",
        "ffprobe": "Install FFmpeg (e.g. apt install ffmpeg / brew install ffmpeg)",
    }

    def __init__(self, command: str) -> None:
        self.command = command
        hint = self.INSTALL_HINTS.get(Path(command).name, "")
        msg = f"Command '{command}' not found."
        if hint:
            msg += f" {hint}"
        super().__init__(msg)


class CommandTimeoutError(Exception):
    """Raised when command execution exceeds timeout.

    Attributes:
        command: The command that timed out.
        timeout: The timeout value in seconds.
    """

    def __init__(self, command: str, timeout: float) -> None:
        self.command = command
        self.timeout = timeout
        super().__init__(f"Command '{command}' timed out after {timeout:.1f} seconds.")


class CommandExecutionError(Exception):
    """Raised when command execution fails."""

    def __init__(self, command: str, returncode: int, stderr: str) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Command '{command}' failed with code {returncode}: {stderr}")


class CommandRunner:
    """Wrapper for executing external commands.

    Example:
        >>> runner = CommandRunner()
        >>> result = runner.run(["ffprobe", "-version"])
        >>> print(result.stdout)
    """

    @staticmethod
    def check_command_exists(command: str) -> bool:
        """Check if a command exists in PATH.

        Args:
            command: The command name (or absolute path) to check.

        Returns:
            True if the command exists, False otherwise.
        """
        return shutil.which(command) is not None

    @staticmethod
    def ensure_command_exists(command: str) -> None:
        """Ensure a command exists, raising an error if not.

        Args:
            command: The command name to check.

        Raises:
            CommandNotFoundError: If the command is not found.
        """
        if not CommandRunner.check_command_exists(command):
            raise CommandNotFoundError(command)

    def run(
        self,
        args: list[str],
        *,
        timeout: float | None = 60.0,
        check: bool = False,
    ) -> CommandResult:
        """Run a command synchronously.

        Args:
            args: Command and arguments to execute.
            timeout: Maximum time to wait for command (seconds).
            check: If True, raise exception on non-zero exit code.

        Returns:
            CommandResult containing the execution result.

        Raises:
            CommandNotFoundError: If the command is not found.
            CommandExecutionError: If check=True and command fails.
            CommandTimeoutError: If command times out.
        """
        command_name = args[0] if args else ""
        self.ensure_command_exists(command_name)

        try:
            result = subprocess.run(
                args,
                timeout=timeout,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            raise CommandNotFoundError(command_name) from e
        except subprocess.TimeoutExpired as e:
            raise CommandTimeoutError(command_name, timeout or 0.0) from e

        cmd_result = CommandResult(
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

        if check and not cmd_result.success:
            raise CommandExecutionError(command_name, cmd_result.returncode, cmd_result.stderr)

        return cmd_result


class FFprobeRunner:
    """Specialized runner for FFprobe commands.

    Provides JSON-parsed probing of media files for the input prober and
    the output validator.

    Example:
        ```python
        runner = FFprobeRunner()
        info = runner.probe(Path("video.mp4"))
        print(info["format"]["duration"])
        ```
    """

    FFPROBE_CMD = "ffprobe"

    def __init__(
        self,
        command_runner: CommandRunner | None = None,
        ffprobe_path: str | None = None,
    ) -> None:
        """Initialize FFprobe runner.

        Args:
            command_runner: CommandRunner instance to use. If None, creates a new one.
            ffprobe_path: FFprobe binary to invoke. Defaults to "ffprobe" on PATH.
        """
        self._runner = command_runner or CommandRunner()
        self.ffprobe_path = ffprobe_path or self.FFPROBE_CMD

    def _build_json_args(
        self,
        path: Path,
        show_format: bool = True,
        show_streams: bool = True,
    ) -> list[str]:
        """Build FFprobe arguments for JSON output.

        Args:
            path: Path to the media file.
            show_format: Include format information.
            show_streams: Include stream information.

        Returns:
            List of command arguments.
        """
        args = [
            self.ffprobe_path,
            "-v",
            "error",
            "-print_format",
            "json",
        ]

        if show_format:
            args.append("-show_format")
        if show_streams:
            args.append("-show_streams")

        args.append(str(path))
        return args

    def probe(
        self,
        path: Path,
        *,
        show_format: bool = True,
        show_streams: bool = True,
        timeout: float = 30.0,
    ) -> dict[str, Any]:
        """Probe a media file and return information as a dictionary.

        Args:
            path: Path to the media file.
            show_format: Include format information.
            show_streams: Include stream information.
            timeout: Maximum time to wait (seconds).

        Returns:
            Dictionary containing media information.

        Raises:
            CommandNotFoundError: If FFprobe is not installed.
            CommandExecutionError: If probing fails.
            CommandTimeoutError: If probing takes longer than timeout.
            json.JSONDecodeError: If output cannot be parsed.
            FileNotFoundError: If the media file doesn't exist.
        """
        if not path.exists():
            raise FileNotFoundError(f"Media file not found: {path}")

        args = self._build_json_args(
            path,
            show_format=show_format,
            show_streams=show_streams,
        )

        result = self._runner.run(args, timeout=timeout, check=True)
        parsed: dict[str, Any] = json.loads(result.stdout)
        return parsed


__all__ = [
    "CommandResult",
    "CommandRunner",
    "FFprobeRunner",
    "CommandNotFoundError",
    "CommandTimeoutError",
    "CommandExecutionError",
]
