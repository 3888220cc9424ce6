"""Configuration management for fluent_transcoder.

Configuration is loaded with precedence handling:
1. CLI flags (highest priority)
2. Environment variables
3. Config file (~/.fluent-transcoder/config.toml)
4. Default values (lowest priority)
"""

from fluent_transcoder.config.env import EnvReader
from fluent_transcoder.config.loader import (
    clear_config_cache,
    get_cached_config,
    get_config,
    get_default_config_path,
    load_config_file,
)
from fluent_transcoder.config.logging_factory import build_logging_config
from fluent_transcoder.config.models import (
    ExecutionConfig,
    LoggingConfig,
    ToolPathsConfig,
    TranscoderConfig,
)

__all__ = [
    # Models
    "ExecutionConfig",
    "LoggingConfig",
    "ToolPathsConfig",
    "TranscoderConfig",
    # Loader
    "EnvReader",
    "clear_config_cache",
    "get_cached_config",
    "get_config",
    "get_default_config_path",
    "load_config_file",
    # Logging
    "build_logging_config",
]
