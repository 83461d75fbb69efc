"""Per-job progress persistence.

Each job has a small JSON sidecar ``<temp>/<job_id>.progress`` holding
``{percent, status, message, error?, timestamp}``. Writes go through a
temporary file and an atomic rename, so a reader in another request or
process never observes a half-written record.

Example:
    >>> from video_enhancer.core.progress_store import ProgressStore
    >>> store = ProgressStore(Path("/tmp/video_enhancer"))
    >>> store.update("clip_enhanced.mp4", ProgressStatus.PROCESSING, 40, "Encoding 31%")
    >>> store.read("clip_enhanced.mp4").percent
    40
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from video_enhancer.core.errors import InvalidJobIdError
from video_enhancer.core.types import ProgressRecord, ProgressStatus
from video_enhancer.utils.constants import PROGRESS_EXTENSION
from video_enhancer.utils.file_utils import atomic_write_text, safe_delete

logger = logging.getLogger(__name__)


def validate_job_id(job_id: str) -> str:
    """Check that a job id is a plain file name.

    Job ids address files inside the working directories, so separators
    and relative components are rejected.

    Args:
        job_id: Candidate job id.

    Returns:
        The job id unchanged.

    Raises:
        InvalidJobIdError: If the id is empty or not a plain file name.
    """
    if (
        not job_id
        or job_id in (".", "..")
        or "\x00" in job_id
        or "/" in job_id
        or (os.altsep is not None and os.altsep in job_id)
        or os.sep in job_id
        or Path(job_id).name != job_id
    ):
        raise InvalidJobIdError(job_id)
    return job_id


class ProgressStore:
    """File-backed store of ProgressRecords keyed by job id.

    Attributes:
        directory: Directory holding the sidecar files.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory).expanduser()

    def path_for(self, job_id: str) -> Path:
        """Get the sidecar path of a job.

        Raises:
            InvalidJobIdError: If the job id is not a plain file name.
        """
        return self.directory / f"{validate_job_id(job_id)}{PROGRESS_EXTENSION}"

    def write(self, job_id: str, record: ProgressRecord) -> ProgressRecord:
        """Persist a record atomically, replacing any previous one.

        Args:
            job_id: Job identifier.
            record: Record to persist.

        Returns:
            The persisted record.

        Raises:
            InvalidJobIdError: If the job id is not a plain file name.
            OSError: If the record cannot be written.
        """
        path = self.path_for(job_id)
        atomic_write_text(path, json.dumps(record.to_dict(), ensure_ascii=False))
        logger.debug(
            f"Progress {job_id}: {record.status.value} {record.percent}% {record.message}"
        )
        return record

    def update(
        self,
        job_id: str,
        status: ProgressStatus,
        percent: int,
        message: str = "",
        error: str | None = None,
    ) -> ProgressRecord:
        """Build a fresh record and persist it."""
        record = ProgressRecord(percent=percent, status=status, message=message, error=error)
        return self.write(job_id, record)

    def read(self, job_id: str) -> ProgressRecord | None:
        """Read a job's record.

        Args:
            job_id: Job identifier.

        Returns:
            The record, or None if it is missing or unreadable.

        Raises:
            InvalidJobIdError: If the job id is not a plain file name.
        """
        path = self.path_for(job_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            data = json.loads(text)
            if not isinstance(data, dict):
                raise ValueError("progress record must be a JSON object")
            return ProgressRecord.from_dict(data)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable progress record {path.name}: {e}")
            return None

    def delete(self, job_id: str) -> bool:
        """Delete a job's record.

        Returns:
            True if a record was deleted, False if none existed.
        """
        return safe_delete(self.path_for(job_id))

    def job_ids(self) -> list[str]:
        """List the job ids that currently have a record."""
        if not self.directory.is_dir():
            return []
        return sorted(
            path.name[: -len(PROGRESS_EXTENSION)]
            for path in self.directory.glob(f"*{PROGRESS_EXTENSION}")
            if path.is_file()
        )


__all__ = ["ProgressStore", "validate_job_id"]
