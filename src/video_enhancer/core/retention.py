"""Age-based retention of working files.

The sweeper deletes files older than a maximum age from the uploads,
processed and temp directories, independent of job status. It can run
once (:meth:`RetentionSweeper.sweep`) or periodically on the event loop
(:meth:`RetentionSweeper.start`).

Example:
    >>> sweeper = RetentionSweeper([uploads, processed, temp], max_age=3600)
    >>> deleted = sweeper.sweep()
    >>> sweeper.start(interval=900)  # inside a running event loop
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from video_enhancer.utils.constants import (
    DEFAULT_RETENTION_INTERVAL_MINUTES,
    DEFAULT_RETENTION_MAX_AGE_MINUTES,
    SECONDS_PER_MINUTE,
)

logger = logging.getLogger(__name__)


@dataclass
class DirectoryUsage:
    """Disk usage of one working directory.

    Attributes:
        path: Directory path.
        total_bytes: Sum of file sizes.
        file_count: Number of files.
    """

    path: Path
    total_bytes: int = 0
    file_count: int = 0


@dataclass
class SweepResult:
    """Outcome of one sweep.

    Attributes:
        deleted: Files that were deleted.
        freed_bytes: Bytes reclaimed.
        errors: Files that could not be deleted.
    """

    deleted: list[Path] = field(default_factory=list)
    freed_bytes: int = 0
    errors: list[Path] = field(default_factory=list)


class RetentionSweeper:
    """Delete aged files from the working directories.

    Attributes:
        directories: Directories to sweep (top level only).
        max_age: Maximum file age in seconds.
    """

    def __init__(
        self,
        directories: Iterable[Path],
        max_age: float = DEFAULT_RETENTION_MAX_AGE_MINUTES * SECONDS_PER_MINUTE,
    ) -> None:
        self.directories = [Path(d).expanduser() for d in directories]
        self.max_age = max_age
        self._task: asyncio.Task[None] | None = None

    def _files(self) -> list[Path]:
        files: list[Path] = []
        for directory in self.directories:
            if not directory.is_dir():
                continue
            files.extend(path for path in directory.iterdir() if path.is_file())
        return files

    def _delete(self, paths: Iterable[Path], result: SweepResult) -> None:
        for path in paths:
            try:
                size = path.stat().st_size
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Failed to delete {path}: {e}")
                result.errors.append(path)
                continue
            result.deleted.append(path)
            result.freed_bytes += size
            logger.info(f"Deleted expired file: {path.name}")

    def sweep(self, max_age: float | None = None, now: float | None = None) -> SweepResult:
        """Delete files whose modification time is older than the max age.

        Args:
            max_age: Override of the configured max age in seconds.
            now: Reference timestamp (defaults to the current time).

        Returns:
            SweepResult listing deleted files.
        """
        limit = self.max_age if max_age is None else max_age
        reference = time.time() if now is None else now
        result = SweepResult()

        expired: list[Path] = []
        for path in self._files():
            try:
                if reference - path.stat().st_mtime > limit:
                    expired.append(path)
            except FileNotFoundError:
                continue

        self._delete(expired, result)
        if result.deleted:
            logger.info(f"Retention sweep removed {len(result.deleted)} files")
        return result

    def purge_all(self) -> SweepResult:
        """Delete every file in the working directories regardless of age."""
        result = SweepResult()
        self._delete(self._files(), result)
        logger.info(f"Purged {len(result.deleted)} files from working directories")
        return result

    def disk_usage(self) -> list[DirectoryUsage]:
        """Report size and file count per working directory."""
        usage: list[DirectoryUsage] = []
        for directory in self.directories:
            entry = DirectoryUsage(path=directory)
            if directory.is_dir():
                for path in directory.iterdir():
                    try:
                        if path.is_file():
                            entry.total_bytes += path.stat().st_size
                            entry.file_count += 1
                    except FileNotFoundError:
                        continue
            usage.append(entry)
        return usage

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(
        self,
        interval: float = DEFAULT_RETENTION_INTERVAL_MINUTES * SECONDS_PER_MINUTE,
    ) -> None:
        """Start periodic sweeping on the running event loop.

        Args:
            interval: Seconds between sweeps.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(interval))
        logger.debug(f"Retention sweeper started (every {interval:.0f}s)")

    async def stop(self) -> None:
        """Stop periodic sweeping."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await asyncio.to_thread(self.sweep)
            except OSError as e:
                logger.error(f"Retention sweep failed: {e}")


__all__ = ["RetentionSweeper", "SweepResult", "DirectoryUsage"]
