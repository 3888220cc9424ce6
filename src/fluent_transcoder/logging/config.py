"""Logging setup for the library and the CLI.

configure_logging() installs handlers on the root logger from a
LoggingConfig. ffmpeg's own diagnostic lines go to the ENGINE_LOGGER
logger at debug level; they are muted unless engine_output is enabled,
because a transcode writes one progress line per frame batch.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from fluent_transcoder.logging.handlers import JSONFormatter

if TYPE_CHECKING:
    from fluent_transcoder.config.models import LoggingConfig

# Logger receiving every diagnostic line read from ffmpeg
ENGINE_LOGGER = "fluent_transcoder.engine"

_LEVEL_MAP: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _formatter(format: str) -> logging.Formatter:
    if format.casefold() == "json":
        return JSONFormatter()
    return logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )


def _file_handler(config: LoggingConfig) -> logging.Handler | None:
    """Open the rotating log file, or return None if it cannot be opened."""
    path = Path(config.file).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            path,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        # Logging is not set up yet
        sys.stderr.write(f"Warning: Could not open log file {config.file}: {e}\n")
        return None


def configure_logging(config: LoggingConfig) -> None:
    """Configure the root logger and the engine logger.

    Installs a rotating file handler when a file is configured, and a
    stderr handler when requested or when there is no usable file. The
    handlers carry no level of their own, so engine lines enabled with
    engine_output reach them whatever the root level is.

    Args:
        config: Logging configuration.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(_LEVEL_MAP.get(config.level.casefold(), logging.INFO))
    root_logger.handlers.clear()

    handlers: list[logging.Handler] = []
    if config.file:
        file_handler = _file_handler(config)
        if file_handler is not None:
            handlers.append(file_handler)
    if config.include_stderr or not handlers:
        handlers.append(logging.StreamHandler(sys.stderr))

    formatter = _formatter(config.format)
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    logging.getLogger(ENGINE_LOGGER).setLevel(
        logging.DEBUG if config.engine_output else logging.WARNING
    )
