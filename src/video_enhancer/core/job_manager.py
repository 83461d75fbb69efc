"""Asynchronous transcode job management.

This module implements the JobManager that runs one encode per submission
in the background: it probes the input, resolves encode parameters, starts
the encoder adapter, enforces a per-job timeout and validates the output
before marking the job terminal.

A job's identity is its output file name (``<stem>_enhanced.mp4``); its
lifecycle is observed through the progress store and the output file, so
a status poll does not need a handle on the running task.

Each job is finalized exactly once. A job-local ``finalized`` flag decides
between a timeout, a cancellation and a natural exit that race each other,
and no progress is written after it is set.

Example:
    >>> from video_enhancer.core.job_manager import JobManager
    >>> manager = JobManager.from_config(Config.load())
    >>>
    >>> submission = await manager.submit(Path("clip.mov"), EncodeOptions(quality="high"))
    >>> print(submission.job_id)  # "clip_enhanced.mp4"
    >>>
    >>> report = manager.status(submission.job_id)
    >>> print(report.status.value, report.percent)
    >>>
    >>> report = await manager.wait(submission.job_id)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from video_enhancer.converters.encoder import CancelToken, EncoderAdapter
from video_enhancer.converters.policy import ParameterPolicy, estimate_duration
from video_enhancer.core.errors import (
    EmptyInputError,
    EncodeProcessFailedError,
    InputNotFoundError,
    JobCancelledError,
    JobTimeoutError,
    OutputInvalidError,
)
from video_enhancer.core.progress_store import ProgressStore, validate_job_id
from video_enhancer.core.session import SessionRegistry
from video_enhancer.core.status import StatusPolicy, StatusResolver
from video_enhancer.core.types import (
    EncodeOptions,
    EncodeParams,
    EncodeResult,
    JobSubmission,
    MediaInfo,
    ProgressStatus,
    SessionFileType,
    StatusReport,
    ValidationResult,
)
from video_enhancer.processors.output_validator import OutputValidator
from video_enhancer.processors.probe import MediaProber
from video_enhancer.utils.command_runner import CommandNotFoundError, FFprobeRunner
from video_enhancer.utils.constants import (
    ENCODE_TIMEOUT,
    OUTPUT_EXTENSION,
    OUTPUT_SUFFIX,
    PROGRESS_COMPLETE,
    PROGRESS_ENCODER_STARTED,
    PROGRESS_QUEUED,
    PROGRESS_VALIDATING,
)
from video_enhancer.utils.file_utils import (
    generate_output_path,
    is_video_file,
    safe_delete,
)

if TYPE_CHECKING:
    from video_enhancer.core.config import Config

logger = logging.getLogger(__name__)

CANCEL_REASON_TIMEOUT = "timeout"
CANCEL_REASON_CANCELLED = "cancelled"
CANCEL_REASON_SUPERSEDED = "superseded"
CANCEL_REASON_SHUTDOWN = "shutdown"


@dataclass
class ActiveJob:
    """In-process state of a running job.

    Attributes:
        job_id: Job identifier (output file name).
        input_path: Source media file.
        output_path: Encoder output file.
        params: Resolved encode parameters.
        media: Probed (or default) input characteristics.
        timeout: Time budget in seconds.
        token: Cancel token shared with the encoder adapter.
        task: Background task running the encode.
        timer: Timeout timer handle.
        finalized: Set once a terminal outcome has been decided.
        created_at: Submission time.
    """

    job_id: str
    input_path: Path
    output_path: Path
    params: EncodeParams
    media: MediaInfo
    timeout: float
    token: CancelToken = field(default_factory=CancelToken)
    task: asyncio.Task[None] | None = None
    timer: asyncio.TimerHandle | None = None
    finalized: bool = False
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class OutputFile:
    """A finished output in the processed directory.

    Attributes:
        path: Output file path.
        size: Size in bytes.
        modified: Last modification time.
    """

    path: Path
    size: int
    modified: datetime

    @property
    def job_id(self) -> str:
        return self.path.name


class JobManager:
    """Run transcode jobs in the background and answer status polls.

    Attributes:
        output_dir: Directory receiving encoder outputs.
        store: Progress store shared with the status resolver.
        resolver: Status resolver for polling clients.
        sessions: Session file registry, if sessions are tracked.
        timeout: Default per-job time budget in seconds.
        default_options: Options used when a submission names none.
    """

    def __init__(
        self,
        output_dir: Path,
        temp_dir: Path,
        *,
        timeout: float = ENCODE_TIMEOUT,
        default_options: EncodeOptions | None = None,
        prober: MediaProber | None = None,
        policy: ParameterPolicy | None = None,
        encoder: EncoderAdapter | None = None,
        validator: OutputValidator | None = None,
        sessions: SessionRegistry | None = None,
        status_policy: StatusPolicy | None = None,
    ) -> None:
        """Initialize the JobManager.

        Args:
            output_dir: Directory receiving encoder outputs.
            temp_dir: Directory holding progress records.
            timeout: Default per-job time budget in seconds.
            default_options: Options used when a submission names none.
            prober: Input prober. Creates a default one if None.
            policy: Parameter policy. Uses default tables if None.
            encoder: Encoder adapter. Creates a default one if None.
            validator: Output validator. Creates a default one if None.
            sessions: Session registry receiving job outputs.
            status_policy: Timing constants of the status fallback chain.
        """
        self.output_dir = Path(output_dir).expanduser()
        self.store = ProgressStore(Path(temp_dir).expanduser())
        self.timeout = timeout
        self.default_options = default_options or EncodeOptions()
        self.prober = prober or MediaProber()
        self.policy = policy or ParameterPolicy()
        self.encoder = encoder or EncoderAdapter()
        self.validator = validator or OutputValidator()
        self.sessions = sessions
        self.resolver = StatusResolver(self.store, self.output_dir, self.validator, status_policy)

        self._jobs: dict[str, ActiveJob] = {}
        self._submit_locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def from_config(
        cls,
        config: Config,
        sessions: SessionRegistry | None = None,
    ) -> JobManager:
        """Build a JobManager and its collaborators from configuration."""
        ffprobe = FFprobeRunner(ffprobe_path=config.validation.ffprobe_path)
        return cls(
            config.paths.processed,
            config.paths.temp,
            timeout=config.encoding.timeout_seconds,
            default_options=EncodeOptions(
                resolution=config.encoding.resolution,
                quality=config.encoding.quality,
                codec=config.encoding.codec,
            ),
            prober=MediaProber(ffprobe, timeout=config.validation.probe_timeout),
            policy=ParameterPolicy.from_config(config.encoding),
            encoder=EncoderAdapter(
                ffmpeg_path=config.encoding.ffmpeg_path,
                progress_interval=config.encoding.progress_interval,
            ),
            validator=OutputValidator(
                min_size=config.validation.min_output_size,
                timeout=config.validation.probe_timeout,
                ffprobe=ffprobe,
            ),
            sessions=sessions,
            status_policy=StatusPolicy(
                recency_window=config.status.recency_window,
                stale_after=config.status.stale_after,
                initial_percent=config.status.initial_percent,
            ),
        )

    def output_path_for(self, input_path: Path) -> Path:
        """Get the deterministic output path of an input file."""
        return generate_output_path(input_path, self.output_dir, OUTPUT_SUFFIX, OUTPUT_EXTENSION)

    @property
    def active_jobs(self) -> list[str]:
        """Ids of jobs whose encode task is still running."""
        return [job_id for job_id, job in self._jobs.items() if not job.finalized]

    def is_active(self, job_id: str) -> bool:
        job = self._jobs.get(job_id)
        return job is not None and not job.finalized

    def _submit_lock(self, job_id: str) -> asyncio.Lock:
        return self._submit_locks.setdefault(job_id, asyncio.Lock())

    async def submit(
        self,
        input_path: Path,
        options: EncodeOptions | None = None,
        session_id: str | None = None,
        *,
        timeout: float | None = None,
    ) -> JobSubmission:
        """Submit an input file for encoding.

        Returns as soon as the encode is started; the job then runs in the
        background and is observed through :meth:`status`.

        Args:
            input_path: Source media file.
            options: Requested options. Uses the defaults if None.
            session_id: Session that owns the output, if any.
            timeout: Override of the per-job time budget in seconds.

        Returns:
            JobSubmission with the job id and the resolved parameters.

        Raises:
            InputNotFoundError: If the input does not exist.
            EmptyInputError: If the input has zero bytes.
        """
        input_path = Path(input_path).expanduser()
        if not input_path.is_file():
            raise InputNotFoundError(input_path)
        if input_path.stat().st_size == 0:
            raise EmptyInputError(input_path)

        options = options or self.default_options
        media = await self.prober.probe_or_default_async(input_path)
        params = self.policy.resolve(media, options)

        output_path = self.output_path_for(input_path)
        job_id = output_path.name

        # Held from the takeover of a running job until the new task is
        # registered, so one encoder at most writes to an output path
        async with self._submit_lock(job_id):
            previous = self._jobs.get(job_id)
            if previous is not None:
                logger.info(f"Resubmission of {job_id} supersedes the running job")
                await self._stop(previous, CANCEL_REASON_SUPERSEDED)
                self._release(previous)

            # The newest submission owns the output path
            output_path.parent.mkdir(parents=True, exist_ok=True)
            safe_delete(output_path)
            self.resolver.forget(job_id)
            self.store.update(job_id, ProgressStatus.STARTED, PROGRESS_QUEUED, "Queued")

            if session_id is not None and self.sessions is not None:
                self.sessions.register(session_id, output_path, SessionFileType.OUTPUT)

            job = ActiveJob(
                job_id=job_id,
                input_path=input_path,
                output_path=output_path,
                params=params,
                media=media,
                timeout=timeout if timeout is not None else self.timeout,
            )
            self._jobs[job_id] = job

            loop = asyncio.get_running_loop()
            job.task = loop.create_task(self._run_job(job), name=f"encode:{job_id}")
            job.task.add_done_callback(lambda _task: self._release(job))
            job.timer = loop.call_later(job.timeout, self._on_timeout, job)

        estimated = estimate_duration(media, params, options.quality)
        logger.info(
            f"Submitted {input_path.name} as {job_id} "
            f"({options.resolution.value}, {options.quality.value}, {options.codec.value})"
        )
        logger.info(
            f"Resolved parameters for {job_id}: {params.width}x{params.height} "
            f"@ {params.fps:g} fps, crf {params.crf}, audio {params.audio_mode.value}"
        )

        return JobSubmission(
            job_id=job_id,
            output_path=output_path,
            params=params,
            media=media,
            estimated_duration=estimated,
        )

    def _release(self, job: ActiveJob) -> None:
        if self._jobs.get(job.job_id) is job:
            del self._jobs[job.job_id]

    def _write_progress(self, job: ActiveJob, percent: int, message: str) -> None:
        if job.finalized:
            return
        self.store.update(job.job_id, ProgressStatus.PROCESSING, percent, message)

    def _finalize(
        self,
        job: ActiveJob,
        status: ProgressStatus,
        percent: int,
        message: str,
        error: str | None = None,
    ) -> bool:
        """Write the terminal record of a job, once.

        Returns:
            True if this call finalized the job, False if it already was.
        """
        if job.finalized:
            return False
        job.finalized = True

        if job.timer is not None:
            job.timer.cancel()

        try:
            self.store.update(job.job_id, status, percent, message, error)
        except OSError as e:
            logger.error(f"Failed to write terminal record for {job.job_id}: {e}")

        if status is ProgressStatus.COMPLETED:
            logger.info(f"Job {job.job_id} completed")
        else:
            logger.warning(f"Job {job.job_id} {status.value}: {error}")
        return True

    def _fail(self, job: ActiveJob, status: ProgressStatus, message: str, error: str) -> None:
        """Delete the partial output, then write a failing terminal record."""
        if job.finalized:
            return
        try:
            safe_delete(job.output_path)
        except OSError as e:
            logger.error(f"Failed to delete partial output {job.output_path}: {e}")
        self._finalize(job, status, self._last_percent(job), message, error)

    def _last_percent(self, job: ActiveJob) -> int:
        record = self.store.read(job.job_id)
        return record.percent if record is not None else PROGRESS_QUEUED

    def _on_timeout(self, job: ActiveJob) -> None:
        if job.finalized:
            return
        logger.warning(f"Job {job.job_id} exceeded its time budget of {job.timeout:.0f}s")
        job.token.cancel(CANCEL_REASON_TIMEOUT)

    async def _run_job(self, job: ActiveJob) -> None:
        try:
            result = await self.encoder.run(
                job.input_path,
                job.output_path,
                job.params,
                total_duration=job.media.duration,
                on_start=lambda: self._write_progress(
                    job, PROGRESS_ENCODER_STARTED, "Encoder started"
                ),
                on_progress=lambda event: self._write_progress(job, event.percent, event.message),
                token=job.token,
            )
        except CommandNotFoundError as e:
            self._fail(
                job,
                ProgressStatus.FAILED,
                "Encoder not available",
                EncodeProcessFailedError(-1, str(e)).error_string,
            )
            return
        except Exception as e:
            logger.exception(f"Encoder run failed for {job.job_id}")
            self._fail(
                job,
                ProgressStatus.FAILED,
                "Encoder failed",
                EncodeProcessFailedError(-1, str(e)).error_string,
            )
            return
        finally:
            if job.timer is not None:
                job.timer.cancel()

        await self._complete(job, result)

    async def _complete(self, job: ActiveJob, result: EncodeResult) -> None:
        """Turn an encoder result into the job's terminal record."""
        if result.cancel_reason == CANCEL_REASON_TIMEOUT:
            self._fail(
                job,
                ProgressStatus.TIMEOUT,
                "Timed out",
                JobTimeoutError(job.timeout).error_string,
            )
            return

        if result.cancel_reason is not None:
            # Cancellation owns artifact removal
            job.finalized = True
            return

        if result.exit_code != 0:
            self._fail(
                job,
                ProgressStatus.FAILED,
                "Encoding failed",
                EncodeProcessFailedError(result.exit_code, result.stderr_tail).error_string,
            )
            return

        self._write_progress(job, PROGRESS_VALIDATING, "Validating output")
        validation = await self._validate(job.output_path)
        if not validation.ok:
            logger.warning(f"Output of {job.job_id} rejected: {validation.reason}")
            self._fail(
                job,
                ProgressStatus.FAILED,
                "Output validation failed",
                OutputInvalidError(validation.reason or "output rejected").error_string,
            )
            return

        self._finalize(job, ProgressStatus.COMPLETED, PROGRESS_COMPLETE, "Enhancement complete")

    async def _validate(self, path: Path) -> ValidationResult:
        try:
            return await self.validator.validate_async(path)
        except CommandNotFoundError as e:
            logger.warning(f"Output probing unavailable, checking size only: {e}")
            return self.validator.check_size(path)

    async def _stop(self, job: ActiveJob, reason: str) -> None:
        """Finalize a job without a record, kill its encoder and wait for it."""
        job.finalized = True
        if job.timer is not None:
            job.timer.cancel()
        job.token.cancel(reason)
        if job.task is not None and not job.task.done():
            await asyncio.wait({job.task})

    def _delete_artifacts(self, job_id: str) -> None:
        output_path = self.output_dir / job_id
        try:
            safe_delete(output_path)
        except OSError as e:
            logger.error(f"Failed to delete {output_path}: {e}")
        try:
            self.store.delete(job_id)
        except OSError as e:
            logger.error(f"Failed to delete progress record of {job_id}: {e}")

    async def cancel(self, job_id: str) -> None:
        """Cancel a job and delete its artifacts.

        Kills the encoder if the job is running in this process, then
        deletes the output file and the progress record. Cancelling an
        unknown or finished job only deletes whatever artifacts exist, so
        repeated calls are no-ops.

        Args:
            job_id: Job identifier.

        Raises:
            InvalidJobIdError: If the job id is not a plain file name.
        """
        validate_job_id(job_id)

        job = self._jobs.get(job_id)
        if job is not None:
            await self._stop(job, CANCEL_REASON_CANCELLED)
            logger.warning(f"Job {job_id} stopped: {JobCancelledError().error_string}")

        self._delete_artifacts(job_id)
        self.resolver.forget(job_id)

    async def wait(self, job_id: str) -> StatusReport:
        """Wait for a job running in this process to finish.

        Args:
            job_id: Job identifier.

        Returns:
            The job's status after its task finished.
        """
        validate_job_id(job_id)
        job = self._jobs.get(job_id)
        if job is not None and job.task is not None and not job.task.done():
            await asyncio.wait({job.task})
        return self.status(job_id)

    def status(self, job_id: str) -> StatusReport:
        """Resolve the current status of a job.

        Raises:
            InvalidJobIdError: If the job id is not a plain file name.
        """
        return self.resolver.resolve(job_id)

    async def status_async(self, job_id: str) -> StatusReport:
        """Resolve the current status without blocking the event loop."""
        return await self.resolver.resolve_async(job_id)

    def list_outputs(self) -> list[OutputFile]:
        """List finished outputs in the processed directory, newest first."""
        if not self.output_dir.is_dir():
            return []

        outputs: list[OutputFile] = []
        for path in self.output_dir.iterdir():
            if not path.is_file() or not is_video_file(path):
                continue
            if self.is_active(path.name):
                continue
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            outputs.append(
                OutputFile(
                    path=path,
                    size=stat.st_size,
                    modified=datetime.fromtimestamp(stat.st_mtime),
                )
            )

        outputs.sort(key=lambda output: output.modified, reverse=True)
        return outputs

    async def shutdown(self) -> None:
        """Cancel every running job and wait for the encoders to exit."""
        job_ids = list(self._jobs)
        if job_ids:
            logger.info(f"Shutting down {len(job_ids)} running jobs")
        for job_id in job_ids:
            job = self._jobs.get(job_id)
            if job is not None:
                await self._stop(job, CANCEL_REASON_SHUTDOWN)
            self._delete_artifacts(job_id)
            self.resolver.forget(job_id)


__all__ = [
    "JobManager",
    "ActiveJob",
    "OutputFile",
]
