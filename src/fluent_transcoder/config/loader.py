"""Configuration loader with precedence handling.

Configuration is loaded with the following precedence (highest to lowest):
1. Arguments passed to get_config() (CLI flags)
2. Environment variables
3. Config file (~/.fluent-transcoder/config.toml)
4. Default values

Environment variables:
- FLUENT_TRANSCODER_CONFIG: Path to config file (overrides default location)
- FFMPEG_PATH / FFPROBE_PATH / FLVMETA_PATH / FLVTOOL2_PATH: tool paths
- FLUENT_TRANSCODER_TIMEOUT: Execution timeout in seconds
- FLUENT_TRANSCODER_STDOUT_LINES: Lines kept in output buffers (0 = all)
- FLUENT_TRANSCODER_LOG_LEVEL: Log level (debug, info, warning, error)
- FLUENT_TRANSCODER_LOG_FILE: Log file path
- FLUENT_TRANSCODER_LOG_FORMAT: Log format (text, json)
- FLUENT_TRANSCODER_LOG_ENGINE: Log every ffmpeg diagnostic line (1/0, true/false)
"""

import logging
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from fluent_transcoder.config.env import EnvReader
from fluent_transcoder.config.models import (
    DEFAULT_PROBE_MAX_BUFFER,
    ExecutionConfig,
    LoggingConfig,
    ToolPathsConfig,
    TranscoderConfig,
)

logger = logging.getLogger(__name__)

# Default config location
DEFAULT_CONFIG_DIR = Path.home() / ".fluent-transcoder"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

_config_cache: TranscoderConfig | None = None


def get_default_config_path(env: Mapping[str, str] | None = None) -> Path:
    """Get the default config file path.

    Can be overridden by FLUENT_TRANSCODER_CONFIG environment variable.

    Returns:
        Path to config file.
    """
    return (
        EnvReader(env).get_path("FLUENT_TRANSCODER_CONFIG", must_exist=False)
        or DEFAULT_CONFIG_FILE
    )


def load_config_file(path: Path | None = None) -> dict[str, Any]:
    """Load configuration from TOML file.

    Args:
        path: Path to config file. If None, uses default location.

    Returns:
        Parsed configuration dict. Empty dict if file doesn't exist or
        cannot be parsed.
    """
    if path is None:
        path = get_default_config_path()

    if not path.exists():
        logger.debug("Config file not found: %s", path)
        return {}

    try:
        with path.open("rb") as f:
            config = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Failed to load config file %s: %s", path, e)
        return {}

    logger.debug("Loaded config from %s", path)
    return config


def _file_path(section: dict[str, Any], key: str) -> Path | None:
    value = section.get(key)
    return Path(value).expanduser() if value else None


def _env_table(value: Any) -> dict[str, str] | None:
    if not value:
        return None
    if not isinstance(value, dict):
        raise ValueError(f"execution.env must be a table, got {type(value).__name__}")
    return {str(key): str(item) for key, item in value.items()}


def get_config(
    config_path: Path | None = None,
    *,
    env: Mapping[str, str] | None = None,
    ffmpeg_path: Path | None = None,
    timeout: float | None = None,
    log_level: str | None = None,
) -> TranscoderConfig:
    """Build configuration with full precedence handling.

    Args:
        config_path: Path to config file (overrides FLUENT_TRANSCODER_CONFIG).
        env: Environment mapping, defaults to os.environ.
        ffmpeg_path: CLI override for the ffmpeg path.
        timeout: CLI override for the execution timeout.
        log_level: CLI override for the log level.

    Returns:
        TranscoderConfig with merged configuration.
    """
    reader = EnvReader(env)
    file_config = load_config_file(config_path or get_default_config_path(env))

    tools_file = file_config.get("tools", {})
    tools = ToolPathsConfig(
        ffmpeg=(
            ffmpeg_path
            or reader.get_file("FFMPEG_PATH")
            or _file_path(tools_file, "ffmpeg")
        ),
        ffprobe=reader.get_file("FFPROBE_PATH") or _file_path(tools_file, "ffprobe"),
        flvtool=(
            reader.get_file("FLVMETA_PATH")
            or reader.get_file("FLVTOOL2_PATH")
            or _file_path(tools_file, "flvtool")
        ),
    )

    execution_file = file_config.get("execution", {})
    execution = ExecutionConfig(
        timeout=(
            timeout
            or reader.get_float(
                "FLUENT_TRANSCODER_TIMEOUT", execution_file.get("timeout")
            )
        ),
        stdout_lines=reader.get_int(
            "FLUENT_TRANSCODER_STDOUT_LINES", execution_file.get("stdout_lines", 0)
        ),
        niceness=execution_file.get("niceness", 0),
        cwd=_file_path(execution_file, "cwd"),
        env=_env_table(execution_file.get("env")),
        probe_max_buffer=execution_file.get(
            "probe_max_buffer", DEFAULT_PROBE_MAX_BUFFER
        ),
        probe_timeout=execution_file.get("probe_timeout", 10.0),
    )

    logging_file = file_config.get("logging", {})
    logging_config = LoggingConfig(
        level=(
            log_level
            or reader.get_str(
                "FLUENT_TRANSCODER_LOG_LEVEL", logging_file.get("level", "info")
            )
        ),
        file=(
            reader.get_path("FLUENT_TRANSCODER_LOG_FILE", must_exist=False)
            or _file_path(logging_file, "file")
        ),
        format=reader.get_str(
            "FLUENT_TRANSCODER_LOG_FORMAT", logging_file.get("format", "text")
        ),
        include_stderr=logging_file.get("include_stderr", False),
        engine_output=reader.get_bool(
            "FLUENT_TRANSCODER_LOG_ENGINE", logging_file.get("engine_output", False)
        ),
        max_bytes=logging_file.get("max_bytes", 10_485_760),
        backup_count=logging_file.get("backup_count", 5),
    )

    return TranscoderConfig(tools=tools, execution=execution, logging=logging_config)


def get_cached_config() -> TranscoderConfig:
    """Get the process-wide configuration, building it on first use."""
    global _config_cache
    if _config_cache is None:
        _config_cache = get_config()
    return _config_cache


def clear_config_cache() -> None:
    """Forget the cached configuration (for tests and reloads)."""
    global _config_cache
    _config_cache = None
