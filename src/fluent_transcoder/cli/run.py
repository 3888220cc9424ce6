"""Run command: transcode inputs into one output file."""

import logging
from pathlib import Path

import click

from fluent_transcoder.cli.exit_codes import ExitCode
from fluent_transcoder.command import FfmpegCommand
from fluent_transcoder.executor.errors import (
    BuildError,
    ExecutionError,
    ProbeError,
    ProcessTimeoutError,
    SignalError,
    SpawnError,
    ValidationError,
)
from fluent_transcoder.executor.events import (
    CODEC_DATA,
    PROGRESS,
    START,
    CodecDataEvent,
    ProgressEvent,
    StartEvent,
)

logger = logging.getLogger(__name__)


def _exit_code_for(error: Exception) -> ExitCode:
    """Map a terminal error to an exit code."""
    if isinstance(error, ValidationError):
        return ExitCode.VALIDATION_ERROR
    if isinstance(error, SpawnError):
        return ExitCode.TOOL_NOT_AVAILABLE
    if isinstance(error, ProbeError):
        return ExitCode.PROBE_FAILED
    if isinstance(error, ProcessTimeoutError):
        return ExitCode.TIMEOUT
    if isinstance(error, SignalError):
        return ExitCode.KILLED
    if isinstance(error, ExecutionError):
        return ExitCode.OPERATION_FAILED
    return ExitCode.GENERAL_ERROR


@click.command("run")
@click.option(
    "--input",
    "-i",
    "inputs",
    multiple=True,
    required=True,
    help="Input file or URL (repeatable).",
)
@click.option("--format", "-f", "fmt", default=None, help="Output format.")
@click.option("--acodec", default=None, help="Audio codec.")
@click.option("--vcodec", default=None, help="Video codec.")
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Kill ffmpeg after this many seconds.",
)
@click.option(
    "--no-check",
    is_flag=True,
    help="Skip format and codec validation.",
)
@click.argument("output", type=click.Path(path_type=Path, dir_okay=False))
@click.pass_context
def run_command(
    ctx: click.Context,
    inputs: tuple[str, ...],
    fmt: str | None,
    acodec: str | None,
    vcodec: str | None,
    timeout: float | None,
    no_check: bool,
    output: Path,
) -> None:
    """Transcode INPUTs into OUTPUT, printing progress."""
    config = ctx.obj["config"]
    command = FfmpegCommand(
        tool_paths=ctx.obj["tool_paths"],
        config=config.execution,
        check_capabilities=not no_check,
    )
    try:
        for source in inputs:
            command.add_input(source)
        if fmt:
            command.format(fmt)
        if acodec:
            command.audio_codec(acodec)
        if vcodec:
            command.video_codec(vcodec)
        if timeout is not None:
            command.timeout(timeout)
        command.add_output(output)
    except BuildError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(ExitCode.BUILD_ERROR)

    def on_start(event: StartEvent) -> None:
        click.echo(f"Running: {event.command_line}")

    def on_codec_data(event: CodecDataEvent) -> None:
        for index, data in enumerate(event.inputs):
            click.echo(
                f"Input #{index}: {data.format}, duration {data.duration or 'N/A'}, "
                f"audio {data.audio or 'none'}, video {data.video or 'none'}"
            )

    def on_progress(event: ProgressEvent) -> None:
        percent = f" ({event.percent:.1f}%)" if event.percent is not None else ""
        click.echo(f"\r{event.timemark}{percent}", nl=False)

    command.on(START, on_start)
    command.on(CODEC_DATA, on_codec_data)
    command.on(PROGRESS, on_progress)

    try:
        command.run_sync()
    except KeyboardInterrupt:
        command.kill()
        click.echo("\nInterrupted.", err=True)
        ctx.exit(ExitCode.INTERRUPTED)
    except (ExecutionError, ProbeError, ValidationError) as e:
        click.echo(f"\nError: {e}", err=True)
        ctx.exit(_exit_code_for(e))

    click.echo(f"\nWrote {output}")
