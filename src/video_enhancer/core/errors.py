"""Job error taxonomy.

Every job-level failure carries a stable ``category`` string. The job
manager writes ``"<category>: <reason>"`` into the progress record's
error field, so polling clients see a categorized reason and never a
stack trace.
"""

from __future__ import annotations

from pathlib import Path

from video_enhancer.utils.constants import STDERR_TAIL_CHARS


class JobError(Exception):
    """Base exception for transcode job failures.

    Attributes:
        reason: Short human-readable reason.
    """

    category = "job_error"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)

    @property
    def error_string(self) -> str:
        """Categorized reason as surfaced through status polls."""
        return f"{self.category}: {self.reason}"


class InvalidJobIdError(JobError, ValueError):
    """Raised when a job id is not a plain file name."""

    category = "invalid_job_id"

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"invalid job id {job_id!r}")


class InputNotFoundError(JobError):
    """Raised when the input file does not exist."""

    category = "input_not_found"

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"input file not found: {path.name}")


class EmptyInputError(JobError):
    """Raised when the input file has zero bytes."""

    category = "empty_input"

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"input file is empty: {path.name}")


class ProbeFailedError(JobError):
    """Raised when input metadata cannot be read.

    The job manager recovers from this by substituting defaults.
    """

    category = "probe_failed"


class EncodeProcessFailedError(JobError):
    """Raised when the encoder exits with a non-zero status.

    The reason keeps the last 500 characters of the encoder diagnostic,
    its non-empty lines joined with " | ".
    """

    category = "encode_failed"

    def __init__(self, exit_code: int, diagnostic: str) -> None:
        self.exit_code = exit_code
        self.diagnostic = diagnostic
        lines = [line.strip() for line in diagnostic.splitlines() if line.strip()]
        detail = " | ".join(lines)[-STDERR_TAIL_CHARS:] if lines else "no diagnostic"
        super().__init__(f"encoder exited with code {exit_code}: {detail}")


class OutputInvalidError(JobError):
    """Raised when the validator rejects the output of a successful exit."""

    category = "output_invalid"


class JobTimeoutError(JobError):
    """Raised when a job exceeds its time budget."""

    category = "timeout"

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"encode exceeded time budget ({timeout:.0f}s)")


class JobCancelledError(JobError):
    """Raised when a job is cancelled by a client.

    Cancellation deletes the progress record, so this category is never
    visible to status polls; it only labels the cancellation in the log.
    """

    category = "cancelled"

    def __init__(self, reason: str = "job cancelled") -> None:
        super().__init__(reason)


__all__ = [
    "JobError",
    "InvalidJobIdError",
    "InputNotFoundError",
    "EmptyInputError",
    "ProbeFailedError",
    "EncodeProcessFailedError",
    "OutputInvalidError",
    "JobTimeoutError",
    "JobCancelledError",
]
