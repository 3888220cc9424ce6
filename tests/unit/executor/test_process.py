"""Tests for executor/process.py - ProcessController lifecycle.

These tests run small Python scripts standing in for ffmpeg, so they
exercise real process spawning, stdio pumping and signal delivery.
"""

import io
import logging
import os
import threading
import time
from pathlib import Path

import pytest

from fluent_transcoder.command.builder import FfmpegCommand
from fluent_transcoder.command.models import CommandPlan
from fluent_transcoder.config.models import ExecutionConfig
from fluent_transcoder.executor.errors import (
    BuildError,
    ExitCodeError,
    InputStreamError,
    OutputStreamError,
    ProcessTimeoutError,
    SignalError,
    SpawnError,
    ValidationError,
)
from fluent_transcoder.executor.events import (
    CodecDataEvent,
    EndEvent,
    ErrorEvent,
    EventChannel,
    ProgressEvent,
    StartEvent,
)
from fluent_transcoder.executor.process import (
    ProcessController,
    ProcessState,
    clamp_niceness,
    resolve_signal,
)
from fluent_transcoder.logging import ENGINE_LOGGER

pytestmark = pytest.mark.usefixtures("posix_only")

WAIT = 20.0

TRANSCODE_SCRIPT = r"""
sys.stderr.write("ffmpeg version 6.0 Copyright (c) 2000-2023\n")
sys.stderr.write("Input #0, avi, from 'a.avi':\n")
sys.stderr.write("  Duration: 00:00:10.00, start: 0.000000, bitrate: 1000 kb/s\n")
sys.stderr.write("    Stream #0:0: Video: mpeg4 (Simple Profile), yuv420p, 640x480\n")
sys.stderr.write("Input #1, wav, from 'b.wav':\n")
sys.stderr.write("  Duration: 00:00:05.00, bitrate: 1411 kb/s\n")
sys.stderr.write("    Stream #1:0: Audio: pcm_s16le, 44100 Hz, 2 channels\n")
sys.stderr.write("Stream mapping:\n")
sys.stderr.write(
    "frame=  125 fps= 25 q=28.0 size=     512kB time=00:00:05.00 "
    "bitrate= 838.9kbits/s speed=1.0x\r"
)
sys.stderr.write("video:512kB audio:0kB\n")
"""


class Recorder:
    """Listener collecting every event in delivery order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []
        self._lock = threading.Lock()

    def _record(self, name: str, event: object) -> None:
        with self._lock:
            self.events.append((name, event))

    def on_start(self, event):
        self._record("start", event)

    def on_progress(self, event):
        self._record("progress", event)

    def on_codec_data(self, event):
        self._record("codec_data", event)

    def on_stderr(self, event):
        self._record("stderr", event)

    def on_end(self, event):
        self._record("end", event)

    def on_error(self, event):
        self._record("error", event)

    def names(self) -> list[str]:
        with self._lock:
            return [name for name, _ in self.events]

    def of(self, name: str) -> list:
        with self._lock:
            return [event for n, event in self.events if n == name]


def make_plan(*inputs, output="out.mkv") -> CommandPlan:
    plan = CommandPlan()
    for source in inputs or ("a.avi",):
        plan.add_input(source)
    plan.add_output(output)
    return plan


def make_controller(plan, executable, **kwargs) -> tuple[ProcessController, Recorder]:
    recorder = Recorder()
    channel = EventChannel()
    channel.add_listener(recorder)
    controller = ProcessController(plan, channel, executable=executable, **kwargs)
    return controller, recorder


class TestHelpers:
    """Tests for clamp_niceness and resolve_signal."""

    @pytest.mark.parametrize(
        "value,expected",
        [(5, 5), (25, 20), (-30, -20), ("7", 7), ("abc", 0), (None, 0)],
    )
    def test_clamp_niceness(self, value, expected) -> None:
        assert clamp_niceness(value) == expected

    @pytest.mark.parametrize("value", ["SIGKILL", "kill", "Kill", 9])
    def test_resolve_signal(self, value) -> None:
        assert resolve_signal(value).name == "SIGKILL"

    def test_resolve_unknown_signal(self) -> None:
        with pytest.raises(ValueError, match="Unknown signal"):
            resolve_signal("SIGNOPE")


class TestSuccessfulRun:
    """Tests for a run ending with exit code 0."""

    def test_event_sequence(self, fake_engine) -> None:
        engine = fake_engine(TRANSCODE_SCRIPT)
        controller, recorder = make_controller(make_plan("a.avi", "b.wav"), engine)

        controller.start()
        result = controller.wait(WAIT)

        assert isinstance(result, EndEvent)
        assert controller.state is ProcessState.COMPLETED
        names = recorder.names()
        assert names[0] == "start"
        assert names[-1] == "end"
        assert names.count("end") == 1
        assert "error" not in names

    def test_start_event_carries_command_line(self, fake_engine) -> None:
        engine = fake_engine(TRANSCODE_SCRIPT)
        controller, recorder = make_controller(make_plan("a.avi"), engine)

        controller.start().wait(WAIT)

        start = recorder.of("start")[0]
        assert isinstance(start, StartEvent)
        assert start.args[0] == str(engine)
        assert start.command_line == f"{engine} -y -i a.avi out.mkv"

    def test_codec_data_in_input_order(self, fake_engine) -> None:
        engine = fake_engine(TRANSCODE_SCRIPT)
        controller, recorder = make_controller(make_plan("a.avi", "b.wav"), engine)

        controller.start().wait(WAIT)

        codec_events = recorder.of("codec_data")
        assert len(codec_events) == 1
        event = codec_events[0]
        assert isinstance(event, CodecDataEvent)
        assert [data.format for data in event.inputs] == ["avi", "wav"]
        assert event.inputs[0].video == "mpeg4 (Simple Profile)"
        assert event.inputs[1].audio == "pcm_s16le"

    def test_progress_percent_from_first_input(self, fake_engine) -> None:
        engine = fake_engine(TRANSCODE_SCRIPT)
        controller, recorder = make_controller(make_plan("a.avi", "b.wav"), engine)

        controller.start().wait(WAIT)

        progress = recorder.of("progress")
        assert len(progress) == 1
        assert isinstance(progress[0], ProgressEvent)
        assert progress[0].frames == 125
        assert progress[0].percent == pytest.approx(50.0)

    def test_unrecognized_lines_become_stderr_events(self, fake_engine) -> None:
        engine = fake_engine(TRANSCODE_SCRIPT)
        controller, recorder = make_controller(make_plan("a.avi", "b.wav"), engine)

        controller.start().wait(WAIT)

        lines = [event.line for event in recorder.of("stderr")]
        assert lines == [
            "ffmpeg version 6.0 Copyright (c) 2000-2023",
            "Stream mapping:",
            "video:512kB audio:0kB",
        ]

    def test_diagnostic_lines_logged_on_engine_logger(self, fake_engine, caplog) -> None:
        engine = fake_engine(TRANSCODE_SCRIPT)
        controller, _ = make_controller(make_plan("a.avi"), engine)

        with caplog.at_level(logging.DEBUG, logger=ENGINE_LOGGER):
            controller.start().wait(WAIT)

        engine_lines = [r.getMessage() for r in caplog.records if r.name == ENGINE_LOGGER]
        assert f"[{controller.pid}] Stream mapping:" in engine_lines

    def test_end_event_carries_diagnostic_output(self, fake_engine) -> None:
        engine = fake_engine(TRANSCODE_SCRIPT)
        controller, _ = make_controller(make_plan("a.avi"), engine)

        result = controller.start().wait(WAIT)

        assert "Stream mapping:" in result.stderr
        assert result.stdout == ""

    def test_stdout_lines_bound_buffers(self, fake_engine) -> None:
        engine = fake_engine(
            """
            for i in range(10):
                print(i)
            """
        )
        controller, _ = make_controller(make_plan(), engine, stdout_lines=3)

        result = controller.start().wait(WAIT)

        assert isinstance(result, EndEvent)
        assert result.stdout == "7\n8\n9"

    def test_start_twice_raises(self, fake_engine) -> None:
        engine = fake_engine("pass\n")
        controller, _ = make_controller(make_plan(), engine)
        controller.start().wait(WAIT)

        with pytest.raises(BuildError, match="already started"):
            controller.start()

    def test_plan_is_frozen(self, fake_engine) -> None:
        engine = fake_engine("pass\n")
        plan = make_plan()
        controller, _ = make_controller(plan, engine)
        controller.start().wait(WAIT)

        with pytest.raises(BuildError, match="no longer be changed"):
            plan.add_input("other.avi")


class TestFailures:
    """Tests for the terminal error event."""

    def test_nonzero_exit_code(self, fake_engine) -> None:
        engine = fake_engine(
            r"""
            sys.stderr.write("Input #0, avi, from 'a.avi':\n")
            sys.stderr.write("  Duration: 00:00:10.00\n")
            sys.stderr.write("[mp4 @ 0x55] Could not find tag for codec\n")
            sys.stderr.write("Something bad\n")
            sys.exit(1)
            """
        )
        controller, recorder = make_controller(make_plan(), engine)

        result = controller.start().wait(WAIT)

        assert isinstance(result, ErrorEvent)
        assert isinstance(result.error, ExitCodeError)
        assert result.error.exit_code == 1
        assert str(result.error) == "ffmpeg exited with code 1: Something bad"
        assert "Could not find tag" in result.error.stderr
        assert controller.state is ProcessState.FAILED
        assert recorder.names().count("error") == 1
        assert "end" not in recorder.names()

    def test_kill(self, fake_engine) -> None:
        engine = fake_engine("time.sleep(30)\n")
        controller, recorder = make_controller(make_plan(), engine)
        controller.start()

        assert controller.kill() is True
        result = controller.wait(WAIT)

        assert isinstance(result, ErrorEvent)
        assert isinstance(result.error, SignalError)
        assert str(result.error) == "ffmpeg was killed with signal SIGKILL"
        assert controller.state is ProcessState.KILLED
        assert recorder.names().count("error") == 1

    def test_kill_with_other_signal(self, fake_engine) -> None:
        engine = fake_engine("time.sleep(30)\n")
        controller, _ = make_controller(make_plan(), engine)
        controller.start()

        controller.kill("SIGTERM")
        result = controller.wait(WAIT)

        assert result.error.signal_name == "SIGTERM"

    def test_kill_after_end_is_noop(self, fake_engine) -> None:
        engine = fake_engine("pass\n")
        controller, recorder = make_controller(make_plan(), engine)
        controller.start().wait(WAIT)

        assert controller.kill() is False
        assert recorder.names().count("end") == 1
        assert "error" not in recorder.names()

    def test_unknown_signal_after_end_is_noop(self, fake_engine) -> None:
        engine = fake_engine("pass\n")
        controller, _ = make_controller(make_plan(), engine)
        controller.start().wait(WAIT)

        assert controller.kill("SIGNOPE") is False

    def test_unknown_signal_while_running(self, fake_engine) -> None:
        engine = fake_engine("time.sleep(30)\n")
        controller, _ = make_controller(make_plan(), engine)
        controller.start()
        try:
            with pytest.raises(ValueError, match="Unknown signal"):
                controller.kill("SIGNOPE")
        finally:
            controller.kill()
            controller.wait(WAIT)

    def test_interrupt_handled_by_engine_completes(self, fake_engine) -> None:
        """An engine finishing cleanly on SIGINT ends with the end event."""
        engine = fake_engine(
            """
            import signal
            signal.signal(signal.SIGINT, lambda signum, frame: sys.exit(0))
            sys.stderr.write("ready\\n")
            sys.stderr.flush()
            time.sleep(30)
            """
        )
        controller, recorder = make_controller(make_plan(), engine)
        ready = threading.Event()
        controller.channel.on(
            "stderr", lambda event: ready.set() if event.line == "ready" else None
        )

        controller.start()
        assert ready.wait(WAIT)
        assert controller.kill("SIGINT") is True
        result = controller.wait(WAIT)

        assert isinstance(result, EndEvent)
        assert controller.state is ProcessState.COMPLETED
        assert recorder.names().count("end") == 1
        assert "error" not in recorder.names()

    def test_slow_callback_after_clean_exit_is_not_a_timeout(self, fake_engine) -> None:
        """The timeout stops counting once the engine has exited."""
        engine = fake_engine('sys.stderr.write("done\\n")\n')
        controller, recorder = make_controller(make_plan(), engine, timeout=0.5)
        controller.channel.on("stderr", lambda event: time.sleep(1.5))

        result = controller.start().wait(WAIT)

        assert isinstance(result, EndEvent)
        assert controller.state is ProcessState.COMPLETED
        assert "error" not in recorder.names()

    def test_kill_before_start_is_noop(self, temp_dir: Path) -> None:
        controller = ProcessController(make_plan(), executable=temp_dir / "ffmpeg")
        assert controller.kill() is False
        assert controller.state is ProcessState.IDLE

    def test_timeout(self, fake_engine) -> None:
        engine = fake_engine("time.sleep(30)\n")
        controller, recorder = make_controller(make_plan(), engine, timeout=0.5)

        result = controller.start().wait(WAIT)

        assert isinstance(result, ErrorEvent)
        assert isinstance(result.error, ProcessTimeoutError)
        assert str(result.error) == "process ran into a timeout (0.5s)"
        assert controller.state is ProcessState.KILLED
        assert recorder.names().count("error") == 1

    def test_missing_executable(self, temp_dir: Path) -> None:
        controller, recorder = make_controller(make_plan(), temp_dir / "no-ffmpeg")

        result = controller.start().wait(WAIT)

        assert isinstance(result, ErrorEvent)
        assert isinstance(result.error, SpawnError)
        assert isinstance(result.error.__cause__, OSError)
        assert recorder.names() == ["error"]
        assert controller.state is ProcessState.FAILED

    def test_preflight_failure_skips_spawn(self, fake_engine, temp_dir: Path) -> None:
        marker = temp_dir / "spawned"
        engine = fake_engine(f"open({str(marker)!r}, 'w').close()\n")

        def preflight():
            raise ValidationError("Output format", ["nope"])

        controller, recorder = make_controller(make_plan(), engine, preflight=preflight)
        result = controller.start().wait(WAIT)

        assert isinstance(result.error, ValidationError)
        assert recorder.names() == ["error"]
        assert controller.pid is None
        assert not marker.exists()


class TestStreams:
    """Tests for stdin and stdout stream binding."""

    UPPERCASE_SCRIPT = """
    data = sys.stdin.buffer.read()
    sys.stdout.buffer.write(data.upper())
    """

    def test_stdin_to_stdout_stream(self, fake_engine) -> None:
        engine = fake_engine(self.UPPERCASE_SCRIPT)
        source = io.BytesIO(b"hello world")
        sink = io.BytesIO()
        plan = make_plan(source, output=sink)
        assert plan.render() == ["-i", "-", "pipe:1"]

        controller, _ = make_controller(plan, engine)
        result = controller.start().wait(WAIT)

        assert isinstance(result, EndEvent)
        assert sink.getvalue() == b"HELLO WORLD"
        assert result.stdout == ""

    def test_pipe_returns_readable_stream(self, fake_engine, engine_paths) -> None:
        engine = fake_engine(self.UPPERCASE_SCRIPT)
        command = FfmpegCommand(
            io.BytesIO(b"piped"),
            tool_paths=engine_paths(engine),
            check_capabilities=False,
        )

        stream = command.pipe()
        data = stream.read()
        stream.close()

        assert data == b"PIPED"
        assert isinstance(command.controller.wait(WAIT), EndEvent)

    def test_pipe_sees_eof_when_preflight_fails(self, temp_dir: Path) -> None:
        plan = make_plan(output=None)

        def preflight():
            raise ValidationError("Output format", ["nope"])

        controller = ProcessController(
            plan, executable=temp_dir / "ffmpeg", preflight=preflight
        )
        controller.start()

        assert controller.output.read() == b""
        controller.output.close()

    def test_input_stream_error(self, fake_engine) -> None:
        class FailingStream:
            def read(self, size=-1):
                raise OSError("boom")

        engine = fake_engine("time.sleep(30)\n")
        controller, recorder = make_controller(make_plan(FailingStream()), engine)

        result = controller.start().wait(WAIT)

        assert isinstance(result.error, InputStreamError)
        assert isinstance(result.error.cause, OSError)
        assert str(result.error) == "Input stream error: boom"
        assert controller.state is ProcessState.FAILED
        assert recorder.names().count("error") == 1

    def test_output_stream_error(self, fake_engine) -> None:
        class FailingSink:
            def write(self, data):
                raise OSError("disk full")

        engine = fake_engine(
            """
            sys.stdout.buffer.write(b"x" * 1024)
            sys.stdout.flush()
            time.sleep(30)
            """
        )
        controller, _ = make_controller(make_plan(output=FailingSink()), engine)

        result = controller.start().wait(WAIT)

        assert isinstance(result.error, OutputStreamError)
        assert "disk full" in str(result.error)


class TestRenice:
    """Tests for process priority handling."""

    def test_queued_before_start(self, temp_dir: Path) -> None:
        controller = ProcessController(make_plan(), executable=temp_dir / "ffmpeg")
        assert controller.renice(25) is True
        assert controller.niceness == 20

    @pytest.mark.skipif(not hasattr(os, "getpriority"), reason="needs getpriority")
    def test_applied_after_spawn(self, fake_engine) -> None:
        engine = fake_engine("time.sleep(30)\n")
        controller, _ = make_controller(make_plan(), engine, niceness=19)
        controller.start()
        try:
            assert os.getpriority(os.PRIO_PROCESS, controller.pid) == 19
        finally:
            controller.kill()
            controller.wait(WAIT)

    def test_noop_after_end(self, fake_engine) -> None:
        engine = fake_engine("pass\n")
        controller, _ = make_controller(make_plan(), engine)
        controller.start().wait(WAIT)

        assert controller.renice(5) is False


class TestFfmpegCommandRun:
    """Tests for running through the FfmpegCommand facade."""

    def test_run_sync(self, fake_engine, engine_paths) -> None:
        engine = fake_engine(TRANSCODE_SCRIPT)
        seen = []
        command = (
            FfmpegCommand("a.avi", tool_paths=engine_paths(engine), check_capabilities=False)
            .on("progress", lambda event: seen.append(event.timemark))
            .add_output("out.mkv")
        )

        result = command.run_sync(WAIT)

        assert isinstance(result, EndEvent)
        assert seen == ["00:00:05.00"]

    def test_run_sync_raises_error(self, fake_engine, engine_paths) -> None:
        engine = fake_engine("sys.exit(3)\n")
        command = FfmpegCommand(
            "a.avi", tool_paths=engine_paths(engine), check_capabilities=False
        ).add_output("out.mkv")

        with pytest.raises(ExitCodeError, match="exited with code 3"):
            command.run_sync(WAIT)

    def test_run_twice_raises(self, fake_engine, engine_paths) -> None:
        engine = fake_engine("pass\n")
        command = FfmpegCommand(
            "a.avi", tool_paths=engine_paths(engine), check_capabilities=False
        ).add_output("out.mkv")
        command.run_sync(WAIT)

        with pytest.raises(BuildError, match="already run"):
            command.run()

    def test_clone_runs_again(self, fake_engine, engine_paths) -> None:
        engine = fake_engine("pass\n")
        command = FfmpegCommand(
            "a.avi", tool_paths=engine_paths(engine), check_capabilities=False
        ).add_output("out.mkv")
        command.run_sync(WAIT)

        assert isinstance(command.clone().run_sync(WAIT), EndEvent)

    def test_working_directory_and_environment(
        self, fake_engine, engine_paths, temp_dir: Path
    ) -> None:
        """The engine runs in the configured directory with extra variables."""
        workdir = temp_dir / "work"
        workdir.mkdir()
        engine = fake_engine(
            """
            print(os.getcwd())
            print(os.environ.get("FLUENT_TEST_VALUE", "unset"))
            print("PATH" in os.environ)
            """
        )
        config = ExecutionConfig(cwd=workdir, env={"FLUENT_TEST_VALUE": "from-config"})
        command = FfmpegCommand(
            "a.avi",
            tool_paths=engine_paths(engine),
            config=config,
            check_capabilities=False,
        ).add_output("out.mkv")

        result = command.run_sync(WAIT)

        cwd, value, inherited = result.stdout.splitlines()
        assert Path(cwd).resolve() == workdir.resolve()
        assert value == "from-config"
        assert inherited == "True"

    def test_environment_inherited_by_default(self, fake_engine, engine_paths) -> None:
        engine = fake_engine('print(os.environ.get("FLUENT_TEST_VALUE", "unset"))\n')
        command = FfmpegCommand(
            "a.avi", tool_paths=engine_paths(engine), check_capabilities=False
        ).add_output("out.mkv")

        result = command.run_sync(WAIT)

        assert result.stdout == "unset"

    def test_kill_before_run(self) -> None:
        assert FfmpegCommand("a.avi").kill() is False

    def test_renice_queued_until_run(self, fake_engine, engine_paths) -> None:
        engine = fake_engine("time.sleep(30)\n")
        command = (
            FfmpegCommand("a.avi", tool_paths=engine_paths(engine), check_capabilities=False)
            .add_output("out.mkv")
            .renice(50)
        )
        controller = command.run()
        try:
            assert controller.niceness == 20
        finally:
            command.kill()
            controller.wait(WAIT)
