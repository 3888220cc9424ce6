"""Structured logging module for fluent_transcoder.

Provides configurable logging with JSON format support, file rotation and
an opt-in logger for ffmpeg's diagnostic output.
"""

from fluent_transcoder.logging.config import ENGINE_LOGGER, configure_logging
from fluent_transcoder.logging.handlers import JSONFormatter

__all__ = [
    "ENGINE_LOGGER",
    "JSONFormatter",
    "configure_logging",
]
