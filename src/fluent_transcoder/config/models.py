"""Configuration data models.

This module defines dataclasses for fluent_transcoder configuration options.
"""

from dataclasses import dataclass, field
from pathlib import Path

# Maximum bytes accepted from a capability listing (1 MiB)
DEFAULT_PROBE_MAX_BUFFER = 1024 * 1024


@dataclass
class ToolPathsConfig:
    """Configuration for external tool paths.

    All paths are optional. If not specified, tools are looked up through
    the environment overrides and then PATH.
    """

    ffmpeg: Path | None = None
    ffprobe: Path | None = None
    flvtool: Path | None = None


@dataclass
class ExecutionConfig:
    """Defaults applied to every command execution."""

    # Kill the process after this many seconds (None = no timeout)
    timeout: float | None = None

    # Lines kept in the stdout/diagnostic buffers (0 = unbounded)
    stdout_lines: int = 0

    # Scheduling priority applied right after spawn
    niceness: int = 0

    # Working directory for the process (None = inherit)
    cwd: Path | None = None

    # Variables set on top of the inherited environment
    env: dict[str, str] | None = None

    # Probe output bound and timeout
    probe_max_buffer: int = DEFAULT_PROBE_MAX_BUFFER
    probe_timeout: float = 10.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.stdout_lines < 0:
            raise ValueError(
                f"stdout_lines must be >= 0, got {self.stdout_lines}"
            )
        if self.probe_max_buffer <= 0:
            raise ValueError(
                f"probe_max_buffer must be positive, got {self.probe_max_buffer}"
            )


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""

    # Log level: debug, info, warning, error
    level: str = "info"

    # Log file path (None = stderr only)
    file: Path | None = None

    # Log format: text or json
    format: str = "text"

    # Also log to stderr when file is set
    include_stderr: bool = False

    # Log every ffmpeg diagnostic line on the fluent_transcoder.engine logger
    engine_output: bool = False

    # Rotation threshold in bytes (default 10MB)
    max_bytes: int = 10_485_760

    # Number of rotated files to keep
    backup_count: int = 5

    def __post_init__(self) -> None:
        """Validate configuration."""
        valid_levels = {"debug", "info", "warning", "error"}
        if self.level.lower() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}, got {self.level}")
        valid_formats = {"text", "json"}
        if self.format.lower() not in valid_formats:
            raise ValueError(
                f"format must be one of {valid_formats}, got {self.format}"
            )


@dataclass
class TranscoderConfig:
    """Top-level configuration."""

    tools: ToolPathsConfig = field(default_factory=ToolPathsConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
