"""Encoder adapter for the external FFmpeg binary.

This module builds the FFmpeg argument list from resolved encode
parameters, runs the encoder as an asyncio subprocess, turns its stderr
into throttled progress events and reports a terminal result on exit.

A :class:`CancelToken` passed into :meth:`EncoderAdapter.run` lets the job
manager kill the encoder for a timeout or a client cancellation; the
reason that fired the token is reported back in the result.

Example:
    >>> adapter = EncoderAdapter()
    >>> token = CancelToken()
    >>> result = await adapter.run(
    ...     Path("clip.mov"),
    ...     Path("clip_enhanced.mp4"),
    ...     params,
    ...     total_duration=10.0,
    ...     on_progress=lambda event: print(event.percent),
    ...     token=token,
    ... )
    >>> result.exit_code
    0
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import re
import time
from collections import deque
from collections.abc import Callable
from pathlib import Path

from video_enhancer.converters.progress import ProgressMapper, ProgressParser
from video_enhancer.core.types import (
    AudioMode,
    EncodeParams,
    EncodeResult,
    ProgressEvent,
    VideoCodec,
)
from video_enhancer.utils.command_runner import CommandNotFoundError
from video_enhancer.utils.constants import (
    CODEC_ENCODERS,
    DEFAULT_PROGRESS_INTERVAL,
    STDERR_TAIL_CHARS,
    TARGET_AUDIO_CODEC,
)

logger = logging.getLogger(__name__)

_LINE_SPLIT = re.compile(r"[\r\n]+")
_READ_CHUNK = 4096
_TAIL_LINES = 64


class CancelToken:
    """One-shot signal asking a running encoder to stop.

    The first call to :meth:`cancel` wins; later calls keep the original
    reason.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the token."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    async def wait(self) -> str | None:
        """Wait until the token fires and return its reason."""
        await self._event.wait()
        return self.reason


def _format_rate(fps: float) -> str:
    return f"{fps:.3f}".rstrip("0").rstrip(".")


def build_scale_filter(params: EncodeParams) -> str:
    """Build the ``-vf`` scale filter for resolved parameters.

    Args:
        params: Resolved encode parameters.

    Returns:
        FFmpeg filter string.
    """
    if params.has_fixed_size:
        return f"scale={params.width}:{params.height}:flags=lanczos"

    if params.bounds is not None:
        box_w, box_h = params.bounds
        return (
            f"scale='min({box_w},iw)':'min({box_h},ih)'"
            ":force_original_aspect_ratio=decrease:force_divisible_by=2:flags=lanczos"
        )

    return "scale=trunc(iw/2)*2:trunc(ih/2)*2:flags=lanczos"


def build_audio_args(params: EncodeParams) -> list[str]:
    """Build the audio arguments for the resolved audio mode."""
    if params.audio_mode is AudioMode.STRIP:
        return ["-an"]
    if params.audio_mode is AudioMode.COPY:
        return ["-c:a", "copy"]
    return [
        "-c:a",
        TARGET_AUDIO_CODEC,
        "-b:a",
        params.audio_bitrate,
        "-ar",
        str(params.audio_sample_rate),
        "-ac",
        str(params.audio_channels),
    ]


class EncoderAdapter:
    """Run FFmpeg for one job and report its progress.

    Attributes:
        ffmpeg_path: Encoder executable.
        progress_interval: Minimum seconds between progress events.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        progress_interval: float = DEFAULT_PROGRESS_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.progress_interval = progress_interval
        self._clock = clock

    def build_command(
        self,
        input_path: Path,
        output_path: Path,
        params: EncodeParams,
    ) -> list[str]:
        """Build the FFmpeg command for an encode.

        Args:
            input_path: Source media file.
            output_path: Target MP4 file.
            params: Resolved encode parameters.

        Returns:
            List of command arguments for FFmpeg.
        """
        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            "-y",
            "-i",
            str(input_path),
            "-c:v",
            CODEC_ENCODERS[params.codec.value],
            "-crf",
            str(params.crf),
            "-preset",
            params.preset,
            "-pix_fmt",
            "yuv420p",
        ]

        if params.codec is VideoCodec.H264:
            cmd.extend(["-profile:v", "main", "-level", "4.0"])
        else:
            # QuickTime compatibility for HEVC in MP4
            cmd.extend(["-tag:v", "hvc1"])

        gop = str(params.gop)
        cmd.extend(
            [
                "-r",
                _format_rate(params.fps),
                "-g",
                gop,
                "-keyint_min",
                gop,
                "-sc_threshold",
                "0",
                "-vf",
                build_scale_filter(params),
                "-movflags",
                "+faststart",
                "-avoid_negative_ts",
                "make_zero",
                "-fps_mode",
                "cfr",
            ]
        )
        cmd.extend(build_audio_args(params))
        cmd.append(str(output_path))
        return cmd

    async def run(
        self,
        input_path: Path,
        output_path: Path,
        params: EncodeParams,
        *,
        total_duration: float = 0.0,
        on_start: Callable[[], None] | None = None,
        on_progress: Callable[[ProgressEvent], None] | None = None,
        token: CancelToken | None = None,
    ) -> EncodeResult:
        """Run the encoder until it exits or the token fires.

        Args:
            input_path: Source media file.
            output_path: Target MP4 file.
            params: Resolved encode parameters.
            total_duration: Media duration used for percent mapping.
            on_start: Called once the encoder process is running.
            on_progress: Called with throttled progress events.
            token: Cancel token; firing it kills the encoder.

        Returns:
            EncodeResult with the exit code and the stderr tail.

        Raises:
            CommandNotFoundError: If the encoder executable is missing.
        """
        token = token or CancelToken()
        command = self.build_command(input_path, output_path, params)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        logger.debug(f"Encoder command: {' '.join(command)}")
        start_time = time.perf_counter()

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise CommandNotFoundError(self.ffmpeg_path) from e

        if on_start is not None:
            try:
                on_start()
            except Exception:
                logger.exception("Start callback failed")

        tail: deque[str] = deque(maxlen=_TAIL_LINES)
        parser = ProgressParser(total_duration=total_duration)
        mapper = ProgressMapper(min_interval=self.progress_interval, clock=self._clock)

        reader = asyncio.create_task(self._pump_stderr(process, parser, mapper, tail, on_progress))
        watcher = asyncio.create_task(token.wait())

        try:
            await asyncio.wait({reader, watcher}, return_when=asyncio.FIRST_COMPLETED)

            if token.cancelled and process.returncode is None:
                logger.info(f"Stopping encoder for {output_path.name} ({token.reason})")
                self._kill(process)

            await reader
            exit_code = await process.wait()
        finally:
            if process.returncode is None:
                self._kill(process)
                await process.wait()
            if not reader.done():
                reader.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reader
            if not watcher.done():
                watcher.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await watcher

        stderr_tail = "\n".join(tail)[-STDERR_TAIL_CHARS:]
        duration = time.perf_counter() - start_time
        logger.debug(f"Encoder exited with code {exit_code} after {duration:.1f}s")

        return EncodeResult(
            exit_code=exit_code,
            stderr_tail=stderr_tail,
            cancel_reason=token.reason if token.cancelled else None,
            duration_seconds=duration,
        )

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            pass  # Already exited

    async def _pump_stderr(
        self,
        process: asyncio.subprocess.Process,
        parser: ProgressParser,
        mapper: ProgressMapper,
        tail: deque[str],
        on_progress: Callable[[ProgressEvent], None] | None,
    ) -> None:
        """Read encoder stderr until EOF, splitting on CR and LF.

        FFmpeg rewrites its status line with carriage returns, so progress
        lines never end in a newline.
        """
        if process.stderr is None:
            return

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""

        while True:
            chunk = await process.stderr.read(_READ_CHUNK)
            if not chunk:
                break

            pending += decoder.decode(chunk)
            *lines, pending = _LINE_SPLIT.split(pending)
            for line in lines:
                self._handle_line(line, parser, mapper, tail, on_progress)

        pending += decoder.decode(b"", final=True)
        if pending:
            self._handle_line(pending, parser, mapper, tail, on_progress)

    @staticmethod
    def _handle_line(
        line: str,
        parser: ProgressParser,
        mapper: ProgressMapper,
        tail: deque[str],
        on_progress: Callable[[ProgressEvent], None] | None,
    ) -> None:
        line = line.strip()
        if not line:
            return
        tail.append(line)

        info = parser.parse_line(line)
        if info is None or on_progress is None:
            return

        event = mapper.update(info)
        if event is None:
            return

        try:
            on_progress(event)
        except Exception:
            # A failing progress sink must not abort the encode
            logger.exception("Progress callback failed")


__all__ = [
    "CancelToken",
    "EncoderAdapter",
    "build_scale_filter",
    "build_audio_args",
]
