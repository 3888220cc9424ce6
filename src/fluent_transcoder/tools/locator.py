"""Executable lookup for the engine and its companion tools.

Lookup order per tool:

- ffmpeg: explicit path, ``FFMPEG_PATH``, PATH.
- ffprobe: explicit path, ``FFPROBE_PATH``, PATH, next to ffmpeg.
- flvtool: explicit path, ``FLVMETA_PATH``, ``FLVTOOL2_PATH``, ``flvmeta``
  on PATH, ``flvtool2`` on PATH.

Lookups return None for a missing tool; only require_ffmpeg() raises.
Results (including misses) are memoized until forget() is called.
"""

import logging
import platform
import shutil
import threading
from collections.abc import Mapping
from pathlib import Path

from fluent_transcoder.config.env import EnvReader
from fluent_transcoder.config.models import ToolPathsConfig
from fluent_transcoder.executor.errors import ToolNotFoundError

logger = logging.getLogger(__name__)


class ToolPaths:
    """Memoized executable locations.

    Args:
        env: Optional environment mapping, defaults to os.environ.
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = EnvReader(env)
        self._paths: dict[str, Path | None] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_config(
        cls, config: ToolPathsConfig, env: Mapping[str, str] | None = None
    ) -> "ToolPaths":
        """Create a locator with the configured paths pinned."""
        paths = cls(env)
        if config.ffmpeg is not None:
            paths.set_ffmpeg_path(config.ffmpeg)
        if config.ffprobe is not None:
            paths.set_ffprobe_path(config.ffprobe)
        if config.flvtool is not None:
            paths.set_flvtool_path(config.flvtool)
        return paths

    def set_ffmpeg_path(self, path: str | Path) -> None:
        """Pin the ffmpeg executable, bypassing lookup."""
        with self._lock:
            self._paths["ffmpeg"] = Path(path)

    def set_ffprobe_path(self, path: str | Path) -> None:
        """Pin the ffprobe executable, bypassing lookup."""
        with self._lock:
            self._paths["ffprobe"] = Path(path)

    def set_flvtool_path(self, path: str | Path) -> None:
        """Pin the flvtool2/flvmeta executable, bypassing lookup."""
        with self._lock:
            self._paths["flvtool"] = Path(path)

    def forget(self) -> None:
        """Drop every memoized path (explicit ones included)."""
        with self._lock:
            self._paths.clear()

    def _memoized(self, name: str, lookup) -> Path | None:
        with self._lock:
            if name not in self._paths:
                found = lookup()
                self._paths[name] = found
                if found is None:
                    logger.debug("%s not found", name)
                else:
                    logger.debug("Located %s at %s", name, found)
            return self._paths[name]

    def _env_file(self, var: str) -> Path | None:
        return self._env.get_file(var)

    def _which(self, name: str) -> Path | None:
        found = shutil.which(name)
        return Path(found) if found else None

    def ffmpeg(self) -> Path | None:
        """Locate ffmpeg."""

        def lookup() -> Path | None:
            return self._env_file("FFMPEG_PATH") or self._which("ffmpeg")

        return self._memoized("ffmpeg", lookup)

    def require_ffmpeg(self) -> Path:
        """Locate ffmpeg or raise.

        Raises:
            ToolNotFoundError: If ffmpeg cannot be found.
        """
        path = self.ffmpeg()
        if path is None:
            raise ToolNotFoundError("ffmpeg")
        return path

    def ffprobe(self) -> Path | None:
        """Locate ffprobe, falling back to the directory holding ffmpeg."""

        def lookup() -> Path | None:
            found = self._env_file("FFPROBE_PATH") or self._which("ffprobe")
            if found is not None:
                return found
            ffmpeg = self.ffmpeg()
            if ffmpeg is None:
                return None
            name = "ffprobe.exe" if platform.system() == "Windows" else "ffprobe"
            sibling = ffmpeg.parent / name
            return sibling if sibling.is_file() else None

        return self._memoized("ffprobe", lookup)

    def flvtool(self) -> Path | None:
        """Locate flvmeta or flvtool2."""

        def lookup() -> Path | None:
            return (
                self._env_file("FLVMETA_PATH")
                or self._env_file("FLVTOOL2_PATH")
                or self._which("flvmeta")
                or self._which("flvtool2")
            )

        return self._memoized("flvtool", lookup)

    def summary(self) -> dict[str, str]:
        """Get located paths for display."""
        return {
            "ffmpeg": str(self.ffmpeg() or "not found"),
            "ffprobe": str(self.ffprobe() or "not found"),
            "flvtool": str(self.flvtool() or "not found"),
        }


_default_paths: ToolPaths | None = None


def get_tool_paths() -> ToolPaths:
    """Get the process-wide ToolPaths instance."""
    global _default_paths
    if _default_paths is None:
        _default_paths = ToolPaths()
    return _default_paths
