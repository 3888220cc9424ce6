"""Shared test fixtures for fluent_transcoder."""

import shutil
import stat
import sys
import tempfile
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from fluent_transcoder.config.loader import clear_config_cache
from fluent_transcoder.tools.locator import ToolPaths
from fluent_transcoder.tools.prober import get_capability_cache


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test isolation."""
    dir_path = tempfile.mkdtemp()
    yield Path(dir_path)
    shutil.rmtree(dir_path, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolated_environment(temp_dir: Path, monkeypatch: pytest.MonkeyPatch):
    """Keep tests away from the user's config file and tool overrides.

    Points FLUENT_TRANSCODER_CONFIG at a file that does not exist, removes
    the tool path overrides and resets process-wide caches.
    """
    monkeypatch.setenv("FLUENT_TRANSCODER_CONFIG", str(temp_dir / "config.toml"))
    for var in (
        "FFMPEG_PATH",
        "FFPROBE_PATH",
        "FLVMETA_PATH",
        "FLVTOOL2_PATH",
        "FLUENT_TRANSCODER_TIMEOUT",
        "FLUENT_TRANSCODER_STDOUT_LINES",
        "FLUENT_TRANSCODER_LOG_LEVEL",
        "FLUENT_TRANSCODER_LOG_FILE",
        "FLUENT_TRANSCODER_LOG_FORMAT",
        "FLUENT_TRANSCODER_LOG_ENGINE",
    ):
        monkeypatch.delenv(var, raising=False)
    clear_config_cache()
    get_capability_cache().reset()
    yield
    clear_config_cache()
    get_capability_cache().reset()


@pytest.fixture
def fake_engine(temp_dir: Path) -> Callable[[str], Path]:
    """Factory writing an executable Python script that stands in for ffmpeg.

    The script body sees ``sys``, ``os`` and ``time`` imported, and the
    command line arguments in ``args``.

    Example:
        engine = fake_engine('sys.stderr.write("hello\\n")')
    """
    counter = {"n": 0}

    def _create(body: str) -> Path:
        counter["n"] += 1
        path = temp_dir / f"ffmpeg-{counter['n']}"
        script = (
            f"#!{sys.executable}\n"
            "import os\n"
            "import sys\n"
            "import time\n"
            "args = sys.argv[1:]\n"
            + textwrap.dedent(body)
        )
        path.write_text(script)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _create


@pytest.fixture
def engine_paths() -> Callable[[Path], ToolPaths]:
    """Factory for a ToolPaths with ffmpeg pinned to a given executable."""

    def _create(executable: Path) -> ToolPaths:
        paths = ToolPaths(env={})
        paths.set_ffmpeg_path(executable)
        return paths

    return _create


@pytest.fixture
def posix_only():
    """Skip tests relying on POSIX signals and shebang scripts."""
    if sys.platform == "win32":
        pytest.skip("requires a POSIX platform")
