"""CLI module for fluent-transcoder."""

import logging
from pathlib import Path

import click

from fluent_transcoder.cli.exit_codes import ExitCode
from fluent_transcoder.config import get_config
from fluent_transcoder.config.logging_factory import build_logging_config
from fluent_transcoder.logging import configure_logging
from fluent_transcoder.tools.locator import ToolPaths

logger = logging.getLogger(__name__)


@click.group()
@click.version_option(package_name="fluent-transcoder")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Config file (default: ~/.fluent-transcoder/config.toml).",
)
@click.option(
    "--ffmpeg",
    "ffmpeg_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to the ffmpeg executable.",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level (default: info).",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Override log file path.",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Use JSON log format.",
)
@click.option(
    "--log-engine",
    is_flag=True,
    default=False,
    help="Log every ffmpeg diagnostic line at debug level.",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    ffmpeg_path: Path | None,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
    log_engine: bool,
) -> None:
    """fluent-transcoder - Build, validate and run ffmpeg commands."""
    ctx.ensure_object(dict)
    try:
        config = get_config(config_path, ffmpeg_path=ffmpeg_path, log_level=log_level)
        logging_config = build_logging_config(
            config.logging,
            file=log_file,
            format="json" if log_json else None,
            engine_output=True if log_engine else None,
        )
    except ValueError as e:
        click.echo(f"Error: invalid configuration: {e}", err=True)
        ctx.exit(ExitCode.CONFIG_ERROR)

    configure_logging(logging_config)
    logger.debug("Configuration loaded: %s", config)

    ctx.obj["config"] = config
    ctx.obj["tool_paths"] = ToolPaths.from_config(config.tools)


# Defer import to avoid circular dependency
def _register_commands():
    from fluent_transcoder.cli.capabilities import (
        capabilities_command,
        check_command,
        tools_command,
    )
    from fluent_transcoder.cli.run import run_command

    main.add_command(capabilities_command)
    main.add_command(check_command)
    main.add_command(tools_command)
    main.add_command(run_command)


_register_commands()
