"""File utilities for path, size and artifact management.

This module provides the small filesystem helpers shared by the job
manager, the progress store and the retention sweeper: path expansion,
size formatting, tolerant deletion, atomic text writes and the
deterministic output naming used as job identity.

Example:
    >>> from video_enhancer.utils.file_utils import format_size, generate_output_path
    >>> print(format_size(1536000000))
    1.43 GB
    >>> generate_output_path("/uploads/clip.mov", "/processed")
    PosixPath('/processed/clip_enhanced.mp4')
"""

from __future__ import annotations

import os
import time
import uuid
from pathlib import Path

from video_enhancer.core.logger import get_logger
from video_enhancer.utils.constants import (
    OUTPUT_EXTENSION,
    OUTPUT_SUFFIX,
    VIDEO_EXTENSIONS,
)

logger = get_logger(__name__)

SIZE_UNITS = ["B", "KB", "MB", "GB", "TB", "PB"]
BYTES_PER_UNIT = 1024


def expand_path(path: str | Path) -> Path:
    """Expand user paths and resolve to absolute path.

    Args:
        path: Path string or Path object to expand.

    Returns:
        Fully expanded and resolved absolute Path.
    """
    return Path(path).expanduser().resolve()


def format_size(size_bytes: int | float, precision: int = 2) -> str:
    """Format bytes into human-readable size string.

    Args:
        size_bytes: Size in bytes.
        precision: Number of decimal places. Default is 2.

    Returns:
        Human-readable size string (e.g., "1.43 GB").

    Example:
        >>> format_size(1023)
        '1023 B'
        >>> format_size(1024)
        '1.00 KB'
    """
    if size_bytes < 0:
        return f"-{format_size(-size_bytes, precision)}"

    if size_bytes < BYTES_PER_UNIT:
        return f"{int(size_bytes)} B"

    size = float(size_bytes)
    for unit in SIZE_UNITS[1:]:
        size /= BYTES_PER_UNIT
        if size < BYTES_PER_UNIT:
            return f"{size:.{precision}f} {unit}"

    return f"{size:.{precision}f} {SIZE_UNITS[-1]}"


def safe_delete(path: str | Path, missing_ok: bool = True) -> bool:
    """Safely delete a file.

    Args:
        path: Path to the file to delete.
        missing_ok: If True, don't raise error if file doesn't exist.

    Returns:
        True if file was deleted, False if it didn't exist.

    Raises:
        FileNotFoundError: If file doesn't exist and missing_ok is False.
        OSError: If deletion fails.
    """
    file_path = Path(path).expanduser()

    try:
        file_path.unlink()
    except FileNotFoundError:
        if missing_ok:
            return False
        raise

    logger.debug("Deleted file: %s", file_path)
    return True


def atomic_write_text(path: str | Path, text: str) -> Path:
    """Write text to a file so readers never observe a partial write.

    The content goes to a uniquely named sibling first and is then moved
    over the target with ``os.replace``, which is atomic on one filesystem.

    Args:
        path: Target file path.
        text: Content to write.

    Returns:
        The target path.
    """
    target_path = Path(path).expanduser()
    target_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = target_path.with_name(f".{target_path.name}.{uuid.uuid4().hex[:8]}.tmp")

    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(temp_path, target_path)
    except OSError:
        safe_delete(temp_path)
        raise

    return target_path


def file_age_seconds(path: str | Path, now: float | None = None) -> float:
    """Get the seconds elapsed since a file was last modified.

    Args:
        path: Path to the file.
        now: Reference timestamp (defaults to the current time).

    Returns:
        Age in seconds (never negative).

    Raises:
        FileNotFoundError: If file doesn't exist.
    """
    reference = time.time() if now is None else now
    return max(0.0, reference - Path(path).stat().st_mtime)


def ensure_directory(path: str | Path) -> Path:
    """Ensure a directory exists, creating it if necessary.

    Args:
        path: Path to the directory.

    Returns:
        Path to the directory.
    """
    dir_path = expand_path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def is_video_file(path: str | Path) -> bool:
    """Check if a path points to a video file based on extension.

    Args:
        path: Path to check.

    Returns:
        True if the file has a video extension.
    """
    return Path(path).suffix.lower() in VIDEO_EXTENSIONS


def generate_output_path(
    input_path: str | Path,
    output_dir: str | Path,
    suffix: str = OUTPUT_SUFFIX,
    extension: str = OUTPUT_EXTENSION,
) -> Path:
    """Generate the deterministic output path for an input file.

    Args:
        input_path: Path to the input video.
        output_dir: Directory for output.
        suffix: Suffix to add to the stem. Default is "_enhanced".
        extension: Output container extension. Default is ".mp4".

    Returns:
        Generated output path.

    Example:
        >>> generate_output_path("/uploads/video.mov", "/processed")
        PosixPath('/processed/video_enhanced.mp4')
    """
    if not extension.startswith("."):
        extension = f".{extension}"

    return Path(output_dir) / f"{Path(input_path).stem}{suffix}{extension}"


__all__ = [
    "expand_path",
    "ensure_directory",
    "generate_output_path",
    "format_size",
    "file_age_seconds",
    "safe_delete",
    "atomic_write_text",
    "is_video_file",
]
