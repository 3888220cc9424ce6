"""Logging configuration factory.

Builds LoggingConfig instances with CLI overrides applied to the
configuration loaded from file and environment.
"""

from __future__ import annotations

from pathlib import Path

from fluent_transcoder.config.models import LoggingConfig


def build_logging_config(
    base: LoggingConfig,
    *,
    level: str | None = None,
    file: Path | None = None,
    format: str | None = None,
    engine_output: bool | None = None,
) -> LoggingConfig:
    """Build LoggingConfig by merging base config with CLI overrides.

    Args:
        base: Base logging configuration (typically from config file).
        level: Override log level. If None, uses base.level.
        file: Override log file path. If None, uses base.file.
        format: Override log format (text, json). If None, uses base.format.
        engine_output: Override engine line logging. If None, uses
            base.engine_output.

    Returns:
        New LoggingConfig with overrides applied. Invalid values raise
        ValueError from LoggingConfig.__post_init__.
    """
    return LoggingConfig(
        level=level if level is not None else base.level,
        file=file if file is not None else base.file,
        format=format if format is not None else base.format,
        include_stderr=base.include_stderr,
        engine_output=(
            engine_output if engine_output is not None else base.engine_output
        ),
        max_bytes=base.max_bytes,
        backup_count=base.backup_count,
    )

