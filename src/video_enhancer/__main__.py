"""CLI entrypoint for video-enhancer."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from video_enhancer import __version__
from video_enhancer.converters.policy import estimate_duration
from video_enhancer.core.config import Config
from video_enhancer.core.errors import InvalidJobIdError, JobError
from video_enhancer.core.job_manager import JobManager
from video_enhancer.core.logger import configure_logging
from video_enhancer.core.retention import RetentionSweeper
from video_enhancer.core.session import SessionRegistry
from video_enhancer.core.types import (
    EncodeOptions,
    JobStatus,
    JobSubmission,
    StatusReport,
)
from video_enhancer.utils.constants import (
    DEFAULT_RETENTION_INTERVAL_MINUTES,
    SECONDS_PER_MINUTE,
    format_duration,
)
from video_enhancer.utils.file_utils import format_size

# Rich console for formatted output
console = Console()

POLL_INTERVAL = 0.5

STATUS_STYLES = {
    JobStatus.QUEUED: "cyan",
    JobStatus.PROCESSING: "yellow",
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
    JobStatus.TIMEOUT: "red",
}


@dataclass
class CLIContext:
    """Context object passed between CLI commands."""

    config: Config
    verbose: bool
    quiet: bool


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output (DEBUG level logging).",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    default=False,
    help="Minimal output (only errors and results).",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, quiet: bool) -> None:
    """Video Enhancer - background transcoding with pollable job status.

    Submits media files to FFmpeg, tracks their progress on disk and
    manages the working files they leave behind.
    """
    config = Config.load()

    if verbose:
        configure_logging(level=logging.DEBUG, console_output=True)
    elif quiet:
        configure_logging(level=logging.ERROR, console_output=True)
    else:
        configure_logging(level=logging.INFO, console_output=True)

    ctx.obj = CLIContext(config=config, verbose=verbose, quiet=quiet)


def _encode_options(
    config: Config,
    resolution: str | None,
    quality: str | None,
    codec: str | None,
) -> EncodeOptions:
    """Merge command line options over configured defaults."""
    return EncodeOptions(
        resolution=resolution or config.encoding.resolution,
        quality=quality or config.encoding.quality,
        codec=codec or config.encoding.codec,
    )


def _encode_option_flags(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the --resolution/--quality/--codec options."""
    func = click.option(
        "--codec",
        type=click.Choice(["h264", "h265"]),
        default=None,
        help="Target video codec. Uses config default if not specified.",
    )(func)
    func = click.option(
        "--quality",
        type=click.Choice(["low", "medium", "high"]),
        default=None,
        help="Quality tier. Uses config default if not specified.",
    )(func)
    func = click.option(
        "--resolution",
        type=click.Choice(["auto", "720p", "1080p"]),
        default=None,
        help="Output resolution. Uses config default if not specified.",
    )(func)
    return func


def _print_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _print_report(report: StatusReport) -> None:
    style = STATUS_STYLES[report.status]
    console.print(f"[bold]Job:[/bold]     {report.job_id}")
    console.print(f"[bold]Status:[/bold]  [{style}]{report.status.value}[/{style}]")
    console.print(f"[bold]Progress:[/bold] {report.percent}%")
    if report.message:
        console.print(f"[bold]Message:[/bold] {report.message}")
    if report.error:
        console.print(f"[bold]Error:[/bold]   [red]{report.error}[/red]")
    if report.output_path is not None:
        console.print(f"[bold]Output:[/bold]  {report.output_path}")


def _print_submission(submission: JobSubmission) -> None:
    params = submission.params
    size = f"{params.width}x{params.height}" if params.has_fixed_size else "source size"
    console.print(f"[bold]Job:[/bold]        {submission.job_id}")
    media = submission.media
    console.print(f"[bold]Input:[/bold]      {media.resolution_label} @ {media.fps:g} fps")
    console.print(
        f"[bold]Encode:[/bold]     {params.codec.value}, crf {params.crf}, "
        f"{size} @ {params.fps:g} fps, "
        f"gop {params.gop}, audio {params.audio_mode.value}"
    )
    if submission.estimated_duration is not None:
        console.print(f"[bold]Estimated:[/bold]  {format_duration(submission.estimated_duration)}")


async def _run_foreground(
    manager: JobManager,
    input_file: Path,
    options: EncodeOptions,
    session_id: str | None,
    timeout: float | None,
    on_submitted: Callable[[JobSubmission], None],
    on_update: Callable[[StatusReport], None],
    sweeper: RetentionSweeper | None = None,
    sweep_interval: float = DEFAULT_RETENTION_INTERVAL_MINUTES * SECONDS_PER_MINUTE,
) -> tuple[JobSubmission, StatusReport]:
    """Submit a job and poll its status until it is terminal.

    When a sweeper is given it sweeps every `sweep_interval` seconds for
    as long as the job runs.
    """
    try:
        if sweeper is not None:
            sweeper.start(interval=sweep_interval)
        submission = await manager.submit(input_file, options, session_id, timeout=timeout)
        on_submitted(submission)

        while True:
            report = await manager.status_async(submission.job_id)
            on_update(report)
            if report.status.is_terminal:
                break
            await asyncio.sleep(POLL_INTERVAL)

        await manager.wait(submission.job_id)
        return submission, report
    finally:
        if sweeper is not None:
            await sweeper.stop()
        await manager.shutdown()


@main.command()
@click.argument("input_file", type=click.Path(path_type=Path))
@_encode_option_flags
@click.option(
    "--timeout",
    type=click.IntRange(min=1),
    default=None,
    help="Time budget in seconds. Uses config default if not specified.",
)
@click.option("--session", "session_id", default=None, help="Session that owns the output.")
@click.option("--json", "output_json", is_flag=True, help="Print the result as JSON.")
@click.pass_context
def submit(
    ctx: click.Context,
    input_file: Path,
    resolution: str | None,
    quality: str | None,
    codec: str | None,
    timeout: int | None,
    session_id: str | None,
    output_json: bool,
) -> None:
    """Encode a file and follow the job until it finishes.

    INPUT_FILE is the media file to enhance. The output is written to the
    processed directory as <name>_enhanced.mp4.

    Examples:

        # Quality-only enhancement
        video-enhancer submit clip.mov

        # Downscale to 720p with the high quality tier
        video-enhancer submit clip.mov --resolution 720p --quality high
    """
    cli_ctx: CLIContext = ctx.obj
    config = cli_ctx.config
    options = _encode_options(config, resolution, quality, codec)
    config.paths.ensure()

    sessions = SessionRegistry()
    manager = JobManager.from_config(config, sessions=sessions)
    sweeper = _sweeper(config) if config.retention.enabled else None
    show_progress = not cli_ctx.quiet and not output_json

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        disable=not show_progress,
    )
    task_id = progress.add_task(input_file.name, total=100)

    def on_submitted(submission: JobSubmission) -> None:
        if show_progress:
            _print_submission(submission)
            console.print()

    def on_update(report: StatusReport) -> None:
        description = report.message or report.status.value
        progress.update(task_id, completed=report.percent, description=description)

    try:
        with progress:
            submission, report = asyncio.run(
                _run_foreground(
                    manager,
                    input_file,
                    options,
                    session_id,
                    timeout,
                    on_submitted,
                    on_update,
                    sweeper=sweeper,
                    sweep_interval=config.retention.interval_minutes * SECONDS_PER_MINUTE,
                )
            )
    except JobError as e:
        console.print(f"[red]✗ {e.error_string}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        sessions.cleanup_all()
        console.print()
        console.print("[yellow]Job cancelled by user.[/yellow]")
        sys.exit(130)

    if output_json:
        _print_json({"submission": submission.to_dict(), "status": report.to_dict()})
    elif not cli_ctx.quiet:
        console.print()
        _print_report(report)

    if report.status is not JobStatus.COMPLETED:
        sys.exit(1)


@main.command()
@click.argument("job_id")
@click.option("--json", "output_json", is_flag=True, help="Print the status as JSON.")
@click.pass_context
def status(ctx: click.Context, job_id: str, output_json: bool) -> None:
    """Show the status of a job from its progress record and output file.

    JOB_ID is the output file name, e.g. clip_enhanced.mp4.
    """
    cli_ctx: CLIContext = ctx.obj
    manager = JobManager.from_config(cli_ctx.config)

    try:
        report = manager.status(job_id)
    except InvalidJobIdError as e:
        raise click.BadParameter(str(e), param_hint="JOB_ID") from e

    if output_json:
        _print_json(report.to_dict())
    else:
        _print_report(report)


@main.command()
@click.argument("job_id")
@click.pass_context
def cancel(ctx: click.Context, job_id: str) -> None:
    """Delete the output and progress record of a job.

    An encoder started by another process is not stopped by this command;
    only the artifacts are removed.
    """
    cli_ctx: CLIContext = ctx.obj
    manager = JobManager.from_config(cli_ctx.config)

    try:
        asyncio.run(manager.cancel(job_id))
    except InvalidJobIdError as e:
        raise click.BadParameter(str(e), param_hint="JOB_ID") from e

    if not cli_ctx.quiet:
        console.print(f"[green]✓[/green] Cancelled {job_id}")


@main.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_encode_option_flags
@click.option("--json", "output_json", is_flag=True, help="Print the plan as JSON.")
@click.pass_context
def plan(
    ctx: click.Context,
    input_file: Path,
    resolution: str | None,
    quality: str | None,
    codec: str | None,
    output_json: bool,
) -> None:
    """Probe a file and show the encode parameters it would get.

    Nothing is encoded.
    """
    cli_ctx: CLIContext = ctx.obj
    config = cli_ctx.config
    options = _encode_options(config, resolution, quality, codec)
    manager = JobManager.from_config(config)

    media = manager.prober.probe_or_default(input_file)
    params = manager.policy.resolve(media, options)
    estimated = estimate_duration(media, params, options.quality)
    output_path = manager.output_path_for(input_file)

    if output_json:
        _print_json(
            {
                "job_id": output_path.name,
                "options": options.to_dict(),
                "media": {
                    "duration": media.duration,
                    "width": media.width,
                    "height": media.height,
                    "fps": media.fps,
                    "has_audio": media.has_audio,
                    "audio_codec": media.audio_codec,
                    "video_codec": media.video_codec,
                    "probed": media.probed,
                },
                "params": params.to_dict(),
                "estimated_duration": estimated,
                "command": manager.encoder.build_command(input_file, output_path, params),
            }
        )
        return

    table = Table(title=f"Plan for {input_file.name}")
    table.add_column("Property", style="cyan")
    table.add_column("Source")
    table.add_column("Output")
    size = f"{params.width}x{params.height}" if params.has_fixed_size else "source size"
    table.add_row("Resolution", media.resolution_label, size)
    table.add_row("Frame rate", f"{media.fps:g}", f"{params.fps:g}")
    table.add_row("Video codec", media.video_codec or "unknown", params.codec.value)
    table.add_row("Audio", media.audio_codec or "none", params.audio_mode.value)
    table.add_row("Quality", "", f"crf {params.crf}")
    table.add_row("Keyframes", "", f"every {params.gop} frames")
    console.print(table)

    if not media.probed:
        console.print("[yellow]⚠ Probe failed, defaults were used.[/yellow]")
    if estimated is not None:
        console.print(f"[bold]Estimated time:[/bold] {format_duration(estimated)}")


def _sweeper(config: Config) -> RetentionSweeper:
    return RetentionSweeper(
        [config.paths.uploads, config.paths.processed, config.paths.temp],
        max_age=config.retention.max_age_minutes * SECONDS_PER_MINUTE,
    )


@main.command()
@click.option(
    "--max-age",
    type=click.IntRange(min=0),
    default=None,
    help="Maximum file age in minutes. Uses config default if not specified.",
)
@click.pass_context
def sweep(ctx: click.Context, max_age: int | None) -> None:
    """Delete working files older than the retention age."""
    cli_ctx: CLIContext = ctx.obj
    sweeper = _sweeper(cli_ctx.config)

    limit = max_age * SECONDS_PER_MINUTE if max_age is not None else None
    result = sweeper.sweep(max_age=limit)

    if not cli_ctx.quiet:
        console.print(
            f"[green]✓[/green] Deleted {len(result.deleted)} files "
            f"({format_size(result.freed_bytes)} freed)"
        )
    if result.errors:
        console.print(f"[red]✗ {len(result.errors)} files could not be deleted[/red]")
        sys.exit(1)


@main.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def purge(ctx: click.Context, yes: bool) -> None:
    """Delete every file in the working directories."""
    cli_ctx: CLIContext = ctx.obj
    if not yes:
        click.confirm("Delete all uploads, outputs and progress records?", abort=True)

    result = _sweeper(cli_ctx.config).purge_all()

    if not cli_ctx.quiet:
        console.print(
            f"[green]✓[/green] Purged {len(result.deleted)} files "
            f"({format_size(result.freed_bytes)} freed)"
        )
    if result.errors:
        console.print(f"[red]✗ {len(result.errors)} files could not be deleted[/red]")
        sys.exit(1)


@main.command()
@click.pass_context
def usage(ctx: click.Context) -> None:
    """Show disk usage of the working directories."""
    cli_ctx: CLIContext = ctx.obj

    table = Table(title="Working directories")
    table.add_column("Directory", style="cyan")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right")

    total_bytes = 0
    total_files = 0
    for entry in _sweeper(cli_ctx.config).disk_usage():
        table.add_row(str(entry.path), str(entry.file_count), format_size(entry.total_bytes))
        total_bytes += entry.total_bytes
        total_files += entry.file_count

    table.add_row("[bold]Total[/bold]", str(total_files), format_size(total_bytes))
    console.print(table)


@main.command("list")
@click.option("--json", "output_json", is_flag=True, help="Print the list as JSON.")
@click.pass_context
def list_outputs(ctx: click.Context, output_json: bool) -> None:
    """List finished outputs in the processed directory."""
    cli_ctx: CLIContext = ctx.obj
    outputs = JobManager.from_config(cli_ctx.config).list_outputs()

    if output_json:
        _print_json(
            [
                {
                    "job_id": output.job_id,
                    "path": str(output.path),
                    "size": output.size,
                    "modified": output.modified.isoformat(),
                }
                for output in outputs
            ]
        )
        return

    if not outputs:
        console.print("[dim]No processed files.[/dim]")
        return

    table = Table(title="Processed files")
    table.add_column("Job", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    for output in outputs:
        modified = output.modified.strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(output.job_id, format_size(output.size), modified)
    console.print(table)


@main.command()
@click.option("--json", "output_json", is_flag=True, help="Print the configuration as JSON.")
@click.pass_context
def config(ctx: click.Context, output_json: bool) -> None:
    """View current configuration.

    Examples:

        # View current configuration
        video-enhancer config

        # Override a value for one run
        VIDEO_ENHANCER_ENCODING__TIMEOUT_SECONDS=900 video-enhancer config
    """
    cli_ctx: CLIContext = ctx.obj
    cfg = cli_ctx.config

    if output_json:
        _print_json(cfg.to_dict())
        return

    console.print()
    console.print("[bold]Video Enhancer Configuration[/bold]")
    console.print("=" * 50)
    console.print()

    console.print("[bold cyan]Paths[/bold cyan]")
    console.print(f"  Uploads:    {cfg.paths.uploads}")
    console.print(f"  Processed:  {cfg.paths.processed}")
    console.print(f"  Temp:       {cfg.paths.temp}")
    console.print()

    console.print("[bold cyan]Encoding[/bold cyan]")
    console.print(f"  Codec:       {cfg.encoding.codec}")
    console.print(f"  Quality:     {cfg.encoding.quality}")
    console.print(f"  Resolution:  {cfg.encoding.resolution}")
    console.print(f"  Preset:      {cfg.encoding.preset}")
    console.print(f"  Timeout:     {format_duration(cfg.encoding.timeout_seconds)}")
    console.print()

    console.print("[bold cyan]Status[/bold cyan]")
    console.print(f"  Recency window:  {cfg.status.recency_window:g}s")
    console.print(f"  Stale after:     {cfg.status.stale_after:g}s")
    console.print()

    console.print("[bold cyan]Retention[/bold cyan]")
    console.print(f"  Enabled:   {cfg.retention.enabled}")
    console.print(f"  Interval:  {cfg.retention.interval_minutes} min")
    console.print(f"  Max age:   {cfg.retention.max_age_minutes} min")
    console.print()

    console.print("[bold cyan]Config File[/bold cyan]")
    console.print(f"  Location:  {Config.get_default_config_path()}")


if __name__ == "__main__":
    main()
