"""Environment variable access for tool overrides and settings.

EnvReader reads FFMPEG_PATH and friends and the FLUENT_TRANSCODER_*
settings. It accepts a mapping in place of os.environ so lookups can be
tested without touching the real process environment.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

logger = logging.getLogger(__name__)

_TRUE = frozenset(["1", "true", "yes", "on"])
_FALSE = frozenset(["0", "false", "no", "off"])


class EnvReader:
    """Typed reads from an environment mapping.

    Unset and empty variables yield the default. Values that cannot be
    converted are logged and also yield the default.

    Example:
        >>> reader = EnvReader({"FLUENT_TRANSCODER_TIMEOUT": "30"})
        >>> reader.get_float("FLUENT_TRANSCODER_TIMEOUT")
        30.0
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = env if env is not None else os.environ

    def _raw(self, var: str) -> str | None:
        value = self._env.get(var)
        return value.strip() if value and value.strip() else None

    def get_str(self, var: str, default: str | None = None) -> str | None:
        """Get a string, or default if the variable is unset or empty."""
        value = self._raw(var)
        return default if value is None else value

    def get_int(self, var: str, default: int | None = None) -> int | None:
        """Get an integer, e.g. FLUENT_TRANSCODER_STDOUT_LINES."""
        value = self._raw(var)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid integer value for %s: %s", var, value)
            return default

    def get_float(self, var: str, default: float | None = None) -> float | None:
        """Get a float, e.g. FLUENT_TRANSCODER_TIMEOUT."""
        value = self._raw(var)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            logger.warning("Invalid float value for %s: %s", var, value)
            return default

    def get_bool(self, var: str, default: bool | None = None) -> bool | None:
        """Get a flag.

        Accepts 1/true/yes/on and 0/false/no/off in any case. Anything else
        is logged and yields default.
        """
        value = self._raw(var)
        if value is None:
            return default
        folded = value.casefold()
        if folded in _TRUE:
            return True
        if folded in _FALSE:
            return False
        logger.warning("Invalid boolean value for %s: %s", var, value)
        return default

    def get_path(
        self, var: str, must_exist: bool = True, default: Path | None = None
    ) -> Path | None:
        """Get a path with ``~`` expanded.

        Args:
            var: Environment variable name.
            must_exist: Log and return default for paths that do not exist.
            default: Value used when unset (or missing under must_exist).
        """
        value = self._raw(var)
        if value is None:
            return default

        path = Path(value).expanduser()
        if must_exist and not path.exists():
            logger.warning(
                "Environment variable %s points to non-existent path: %s",
                var,
                value,
            )
            return default
        return path

    def get_file(self, var: str) -> Path | None:
        """Get a path naming an existing regular file, e.g. FFMPEG_PATH.

        Directories and missing paths are logged and ignored so lookup can
        continue with PATH.
        """
        path = self.get_path(var, must_exist=False)
        if path is None:
            return None
        if not path.is_file():
            logger.warning("Ignoring %s=%s: not a file", var, path)
            return None
        return path
