"""Centralized exit codes for all CLI commands.

Exit code ranges:
    0: Success
    1-9: General errors
    10-19: Validation errors (command, config)
    30-39: Tool/dependency errors
    40-49: Operation errors
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit codes for fluent-transcoder CLI commands."""

    # Success (0)
    SUCCESS = 0

    # General errors (1-9)
    GENERAL_ERROR = 1
    INTERRUPTED = 2

    # Validation errors (10-19)
    VALIDATION_ERROR = 10
    CONFIG_ERROR = 11
    BUILD_ERROR = 12

    # Tool/dependency errors (30-39)
    TOOL_NOT_AVAILABLE = 30
    PROBE_FAILED = 31

    # Operation errors (40-49)
    OPERATION_FAILED = 40
    TIMEOUT = 41
    KILLED = 42
