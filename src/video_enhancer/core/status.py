"""Job status resolution for polling clients.

The status of a job is observed indirectly: a poll may arrive in a
different request, or a different process, than the one running the
encoder. :func:`resolve_status` reconciles the two signals available on
the filesystem, the job's ProgressRecord and a stat of its output file,
into one answer.

Priority order:
    1. A terminal record (completed, failed, timeout) is returned as is.
       A completed record whose output is missing or empty resolves to
       failed instead.
    2. A fresh non-terminal record is authoritative: started reports
       queued, processing reports its own percent.
    3. With no usable record, the output file decides:
       a. it passes validation: completed at 100;
       b. it was modified within the recency window: processing, percent
          from the record or else from the output size;
       c. it is older and fails validation: failed;
       d. it does not exist yet: processing at a low percent.

Known race:
    A job is resubmitted by deleting its output before the new encoder
    starts. A poll landing between that delete and the first progress
    write sees neither record nor output and reports processing at the
    initial percent. A poll landing while an old completed record is
    still present and the output is already deleted reports failed until
    the new started record replaces it. Neither case is prevented here.

Example:
    >>> resolver = StatusResolver(store, processed_dir, OutputValidator())
    >>> report = resolver.resolve("clip_enhanced.mp4")
    >>> print(report.status.value, report.percent)
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from video_enhancer.core.errors import OutputInvalidError
from video_enhancer.core.progress_store import ProgressStore, validate_job_id
from video_enhancer.core.types import (
    JobStatus,
    ProgressRecord,
    ProgressStatus,
    StatusReport,
    ValidationResult,
)
from video_enhancer.processors.output_validator import OutputValidator
from video_enhancer.utils.command_runner import CommandNotFoundError
from video_enhancer.utils.constants import (
    DEFAULT_INITIAL_PERCENT,
    DEFAULT_RECENCY_WINDOW,
    DEFAULT_STALE_AFTER,
    PROGRESS_COMPLETE,
    SIZE_PROGRESS_BANDS,
    SIZE_PROGRESS_CEILING,
)

logger = logging.getLogger(__name__)

_TERMINAL_STATUS = {
    ProgressStatus.COMPLETED: JobStatus.COMPLETED,
    ProgressStatus.FAILED: JobStatus.FAILED,
    ProgressStatus.TIMEOUT: JobStatus.TIMEOUT,
}


@dataclass
class OutputSnapshot:
    """Filesystem state of a job's output at poll time.

    Attributes:
        path: Output file path.
        size: Size in bytes.
        age: Seconds since the last modification.
    """

    path: Path
    size: int
    age: float

    @classmethod
    def capture(cls, path: Path, now: datetime | None = None) -> OutputSnapshot | None:
        """Stat an output file, returning None if it does not exist."""
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        reference = (now or datetime.now()).timestamp()
        return cls(path=path, size=stat.st_size, age=max(0.0, reference - stat.st_mtime))


@dataclass
class StatusPolicy:
    """Timing constants of the fallback chain.

    Attributes:
        recency_window: Seconds within which a modified output counts as growing.
        stale_after: Seconds after which a non-terminal record is no longer trusted.
        initial_percent: Percent reported before any evidence exists.
    """

    recency_window: float = DEFAULT_RECENCY_WINDOW
    stale_after: float = DEFAULT_STALE_AFTER
    initial_percent: int = DEFAULT_INITIAL_PERCENT


def estimate_percent_from_size(size: int) -> int:
    """Guess progress from the size of a growing output file."""
    for upper_bound, percent in SIZE_PROGRESS_BANDS:
        if size < upper_bound:
            return percent
    return SIZE_PROGRESS_CEILING


def _report_terminal(
    job_id: str,
    record: ProgressRecord,
    output: OutputSnapshot | None,
) -> StatusReport:
    status = _TERMINAL_STATUS[record.status]

    if status is JobStatus.COMPLETED:
        if output is None or output.size == 0:
            state = "missing" if output is None else "empty"
            reason = f"output {state} after completion"
            return StatusReport(
                job_id=job_id,
                status=JobStatus.FAILED,
                percent=record.percent,
                message="Output no longer available",
                error=OutputInvalidError(reason).error_string,
            )
        return StatusReport(
            job_id=job_id,
            status=JobStatus.COMPLETED,
            percent=PROGRESS_COMPLETE,
            message=record.message,
            output_path=output.path,
        )

    return StatusReport(
        job_id=job_id,
        status=status,
        percent=record.percent,
        message=record.message,
        error=record.error,
    )


def resolve_status(
    job_id: str,
    record: ProgressRecord | None,
    output: OutputSnapshot | None,
    check_output: Callable[[Path], ValidationResult],
    policy: StatusPolicy | None = None,
    now: datetime | None = None,
) -> StatusReport:
    """Reconcile a ProgressRecord and an output snapshot into one status.

    Args:
        job_id: Job identifier.
        record: The job's ProgressRecord, if any.
        output: Snapshot of the output file, or None if it does not exist.
        check_output: Output validation, only called when the fallback
            chain needs it.
        policy: Timing constants.
        now: Reference time for record staleness.

    Returns:
        StatusReport for the job.
    """
    policy = policy or StatusPolicy()
    now = now or datetime.now()

    if record is not None and record.status.is_terminal:
        return _report_terminal(job_id, record, output)

    if record is not None and record.age_seconds(now) < policy.stale_after:
        if record.status is ProgressStatus.STARTED:
            return StatusReport(
                job_id=job_id,
                status=JobStatus.QUEUED,
                percent=record.percent,
                message=record.message or "Queued",
            )
        return StatusReport(
            job_id=job_id,
            status=JobStatus.PROCESSING,
            percent=record.percent,
            message=record.message,
        )

    if output is None:
        return StatusReport(
            job_id=job_id,
            status=JobStatus.PROCESSING,
            percent=record.percent if record is not None else policy.initial_percent,
            message="Waiting for encoder output",
        )

    validation = check_output(output.path)
    if validation.ok:
        return StatusReport(
            job_id=job_id,
            status=JobStatus.COMPLETED,
            percent=PROGRESS_COMPLETE,
            message="Output ready",
            output_path=output.path,
        )

    if output.age <= policy.recency_window:
        percent = record.percent if record is not None else estimate_percent_from_size(output.size)
        return StatusReport(
            job_id=job_id,
            status=JobStatus.PROCESSING,
            percent=percent,
            message="Encoding",
        )

    return StatusReport(
        job_id=job_id,
        status=JobStatus.FAILED,
        percent=record.percent if record is not None else 0,
        message="Output is not usable",
        error=OutputInvalidError(validation.reason or "output rejected").error_string,
    )


class StatusResolver:
    """Resolve job status from the progress store and the output directory.

    The resolver remembers the last percent it reported for each running
    job and never reports a lower one, so repeated polls are monotone.

    Attributes:
        store: Progress store holding the job records.
        output_dir: Directory holding job outputs.
        validator: Output validator used by the fallback chain.
        policy: Timing constants.
    """

    def __init__(
        self,
        store: ProgressStore,
        output_dir: Path,
        validator: OutputValidator,
        policy: StatusPolicy | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.output_dir = Path(output_dir)
        self.validator = validator
        self.policy = policy or StatusPolicy()
        self._clock = clock
        self._lock = threading.Lock()
        self._last_percent: dict[str, int] = {}
        self._validator_warned = False

    def _check_output(self, path: Path) -> ValidationResult:
        try:
            return self.validator.validate(path)
        except CommandNotFoundError as e:
            # Without ffprobe only the size checks can run
            if not self._validator_warned:
                logger.warning(f"Output probing unavailable, checking size only: {e}")
                self._validator_warned = True
            return self.validator.check_size(path)

    def resolve(self, job_id: str) -> StatusReport:
        """Resolve the current status of a job.

        Args:
            job_id: Job identifier (output file name).

        Returns:
            StatusReport for the job.

        Raises:
            InvalidJobIdError: If the job id is not a plain file name.
        """
        validate_job_id(job_id)
        now = self._clock()
        record = self.store.read(job_id)
        output = OutputSnapshot.capture(self.output_dir / job_id, now)

        report = resolve_status(job_id, record, output, self._check_output, self.policy, now)

        with self._lock:
            if report.status.is_terminal:
                self._last_percent.pop(job_id, None)
            else:
                previous = self._last_percent.get(job_id, 0)
                report.percent = max(report.percent, previous)
                self._last_percent[job_id] = report.percent

        return report

    async def resolve_async(self, job_id: str) -> StatusReport:
        """Resolve status without blocking the event loop."""
        return await asyncio.to_thread(self.resolve, job_id)

    def forget(self, job_id: str) -> None:
        """Drop the remembered percent of a job (on resubmission or cancel)."""
        with self._lock:
            self._last_percent.pop(job_id, None)


__all__ = [
    "StatusResolver",
    "StatusPolicy",
    "OutputSnapshot",
    "resolve_status",
    "estimate_percent_from_size",
]
