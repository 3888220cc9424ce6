"""Tests for EnvReader class."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from fluent_transcoder.config.env import EnvReader


class TestEnvReaderGetStr:
    """Tests for EnvReader.get_str method."""

    def test_returns_value_when_set(self) -> None:
        """Should return the value when environment variable is set."""
        reader = EnvReader(env={"MY_VAR": "hello"})
        assert reader.get_str("MY_VAR") == "hello"

    def test_returns_default_when_not_set(self) -> None:
        """Should return default when environment variable is not set."""
        reader = EnvReader(env={})
        assert reader.get_str("MY_VAR", "default") == "default"

    def test_empty_value_counts_as_unset(self) -> None:
        """Should return default when variable is set to empty."""
        reader = EnvReader(env={"MY_VAR": ""})
        assert reader.get_str("MY_VAR", "default") == "default"


class TestEnvReaderGetInt:
    """Tests for EnvReader.get_int method."""

    def test_returns_value_when_set(self) -> None:
        """Should parse and return integer when environment variable is set."""
        reader = EnvReader(env={"MY_VAR": "42"})
        assert reader.get_int("MY_VAR") == 42

    def test_returns_default_when_not_set(self) -> None:
        """Should return default when environment variable is not set."""
        reader = EnvReader(env={})
        assert reader.get_int("MY_VAR", 100) == 100

    def test_invalid_value_logs_and_returns_default(self, caplog) -> None:
        """Should warn and fall back to default for unparseable values."""
        reader = EnvReader(env={"MY_VAR": "lots"})
        with caplog.at_level(logging.WARNING):
            assert reader.get_int("MY_VAR", 7) == 7
        assert "Invalid integer value for MY_VAR" in caplog.text


class TestEnvReaderGetFloat:
    """Tests for EnvReader.get_float method."""

    def test_returns_value_when_set(self) -> None:
        reader = EnvReader(env={"FLUENT_TRANSCODER_TIMEOUT": "2.5"})
        assert reader.get_float("FLUENT_TRANSCODER_TIMEOUT") == 2.5

    def test_invalid_value_returns_default(self) -> None:
        reader = EnvReader(env={"FLUENT_TRANSCODER_TIMEOUT": "soon"})
        assert reader.get_float("FLUENT_TRANSCODER_TIMEOUT", 1.0) == 1.0


class TestEnvReaderGetBool:
    """Tests for EnvReader.get_bool method."""

    @pytest.mark.parametrize("value", ["true", "TRUE", "1", "yes", "on"])
    def test_truthy_values(self, value: str) -> None:
        """Should treat common truthy spellings as True."""
        assert EnvReader(env={"FLAG": value}).get_bool("FLAG") is True

    @pytest.mark.parametrize("value", ["false", "0", "no", "Off"])
    def test_falsy_values(self, value: str) -> None:
        assert EnvReader(env={"FLAG": value}).get_bool("FLAG", True) is False

    def test_unrecognized_value_warns_and_returns_default(self, caplog) -> None:
        reader = EnvReader(env={"FLUENT_TRANSCODER_LOG_ENGINE": "maybe"})
        with caplog.at_level(logging.WARNING):
            assert reader.get_bool("FLUENT_TRANSCODER_LOG_ENGINE", False) is False
        assert "Invalid boolean value for FLUENT_TRANSCODER_LOG_ENGINE" in caplog.text

    def test_returns_default_when_not_set(self) -> None:
        assert EnvReader(env={}).get_bool("FLAG", True) is True


class TestEnvReaderGetPath:
    """Tests for EnvReader.get_path method."""

    def test_existing_path(self, temp_dir: Path) -> None:
        """Should return the path when it exists."""
        reader = EnvReader(env={"FFMPEG_PATH": str(temp_dir)})
        assert reader.get_path("FFMPEG_PATH") == temp_dir

    def test_missing_path_warns_and_returns_default(
        self, temp_dir: Path, caplog
    ) -> None:
        """Should warn and return default when the path does not exist."""
        missing = temp_dir / "missing"
        reader = EnvReader(env={"FFMPEG_PATH": str(missing)})
        with caplog.at_level(logging.WARNING):
            assert reader.get_path("FFMPEG_PATH") is None
        assert "non-existent path" in caplog.text

    def test_missing_path_allowed(self, temp_dir: Path) -> None:
        """Should return nonexistent paths when must_exist is False."""
        missing = temp_dir / "missing.log"
        reader = EnvReader(env={"LOG": str(missing)})
        assert reader.get_path("LOG", must_exist=False) == missing

    def test_expands_user(self) -> None:
        reader = EnvReader(env={"LOG": "~/x.log"})
        assert reader.get_path("LOG", must_exist=False) == Path("~/x.log").expanduser()

    def test_uses_os_environ_by_default(self, monkeypatch, temp_dir: Path) -> None:
        """Should read os.environ when no mapping is injected."""
        monkeypatch.setenv("FLUENT_TEST_DIR", str(temp_dir))
        assert EnvReader().get_path("FLUENT_TEST_DIR") == temp_dir


class TestEnvReaderGetFile:
    """Tests for EnvReader.get_file method."""

    def test_existing_file(self, temp_dir: Path) -> None:
        engine = temp_dir / "ffmpeg"
        engine.touch()
        reader = EnvReader(env={"FFMPEG_PATH": str(engine)})
        assert reader.get_file("FFMPEG_PATH") == engine

    def test_unset(self) -> None:
        assert EnvReader(env={}).get_file("FFMPEG_PATH") is None

    @pytest.mark.parametrize("name", [None, "missing"])
    def test_directory_or_missing_is_ignored(
        self, temp_dir: Path, caplog, name: str | None
    ) -> None:
        """Should warn and return None unless the path is a regular file."""
        target = temp_dir if name is None else temp_dir / name
        reader = EnvReader(env={"FFPROBE_PATH": str(target)})
        with caplog.at_level(logging.WARNING):
            assert reader.get_file("FFPROBE_PATH") is None
        assert "Ignoring FFPROBE_PATH" in caplog.text
