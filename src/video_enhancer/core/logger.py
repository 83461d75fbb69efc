"""Logging system with file and console output.

This module provides the logging setup for video_enhancer: colored console
output through the Rich library plus a rotating log file. Library modules
only ever call ``logging.getLogger(__name__)``; the CLI (or an embedding
application) calls :func:`configure_logging` once at startup.

Example:
    >>> from video_enhancer.core.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Job submitted")

    >>> from video_enhancer.core.logger import configure_logging
    >>> configure_logging(level="DEBUG", log_dir=Path("/custom/path"))
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

ROOT_LOGGER_NAME = "video_enhancer"
LOG_FILE_NAME = "video_enhancer.log"

# Default configuration
DEFAULT_LOG_DIR = Path.home() / ".local" / "share" / "video_enhancer" / "logs"
DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "[%(asctime)s] %(levelname)-8s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

CUSTOM_THEME = Theme(
    {
        "logging.level.debug": "dim cyan",
        "logging.level.info": "green",
        "logging.level.warning": "yellow",
        "logging.level.error": "bold red",
        "logging.level.critical": "bold white on red",
    }
)

# Global state
_log_dir: Path = DEFAULT_LOG_DIR
_log_level: int = DEFAULT_LOG_LEVEL
_console: Console | None = None


def _get_console() -> Console:
    """Get or create the shared Rich console (stderr)."""
    global _console
    if _console is None:
        _console = Console(theme=CUSTOM_THEME, stderr=True)
    return _console


def _create_file_handler() -> RotatingFileHandler:
    """Create a rotating file handler in the current log directory."""
    _log_dir.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        filename=str(_log_dir / LOG_FILE_NAME),
        maxBytes=MAX_LOG_SIZE,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(fmt=DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT))
    handler.setLevel(_log_level)
    return handler


def _create_console_handler() -> RichHandler:
    """Create a Rich console handler with colored output."""
    handler = RichHandler(
        console=_get_console(),
        show_time=True,
        show_level=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setLevel(_log_level)
    return handler


def _parse_level(level: int | str) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), DEFAULT_LOG_LEVEL)
    return level


def configure_logging(
    level: int | str = DEFAULT_LOG_LEVEL,
    log_dir: Path | None = None,
    console_output: bool = True,
    file_output: bool = True,
) -> None:
    """Configure the video_enhancer logger hierarchy.

    Subsequent calls replace the previously installed handlers.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL), int or str.
        log_dir: Directory for log files. Default: ~/.local/share/video_enhancer/logs
        console_output: Whether to output logs to the console (stderr).
        file_output: Whether to output logs to a rotating file.
    """
    global _log_dir, _log_level

    _log_level = _parse_level(level)
    if log_dir is not None:
        _log_dir = log_dir

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(_log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    if console_output:
        root_logger.addHandler(_create_console_handler())

    if file_output:
        root_logger.addHandler(_create_file_handler())


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the video_enhancer namespace.

    Args:
        name: The name of the logger, typically __name__.

    Returns:
        Logger instance.
    """
    logger_name = name if name.startswith(ROOT_LOGGER_NAME) else f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(logger_name)


def set_log_level(level: int | str) -> None:
    """Set the log level for all video_enhancer loggers and handlers."""
    global _log_level

    _log_level = _parse_level(level)
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(_log_level)

    for handler in root_logger.handlers:
        handler.setLevel(_log_level)


def get_log_file_path() -> Path:
    """Get the path to the current log file."""
    return _log_dir / LOG_FILE_NAME


__all__ = [
    "configure_logging",
    "get_logger",
    "get_log_file_path",
    "set_log_level",
    "DEFAULT_LOG_DIR",
    "DEFAULT_LOG_LEVEL",
]
