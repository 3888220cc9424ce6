"""Process lifecycle controller.

ProcessController spawns the engine for one CommandPlan, wires its stdio,
turns the diagnostic stream into events and reports exactly one terminal
event.

States::

    idle -> starting -> running -> completed | failed | killed

Several threads may try to end an execution: the stdin and stdout pumps
(stream errors), the timeout timer and kill(). Each of them only records a
failure (the first one wins) and, where needed, kills the process. The
supervisor thread waits for the process to exit and for its output to be
drained, then emits the terminal event. A failure before spawn (pre-flight
checks, missing executable) emits the terminal event directly, without a
start event.
"""

from __future__ import annotations

import io
import logging
import os
import signal as signal_module
import subprocess  # nosec B404 - subprocess is required for ffmpeg invocation
import threading
from collections.abc import Callable, Mapping
from enum import Enum
from pathlib import Path
from typing import IO, TYPE_CHECKING

from fluent_transcoder.executor.diagnostics import (
    CodecDataCollector,
    LineRing,
    extract_error,
    parse_progress,
)
from fluent_transcoder.executor.errors import (
    BuildError,
    ExecutionError,
    ExitCodeError,
    InputStreamError,
    OutputStreamError,
    ProcessTimeoutError,
    SignalError,
    SpawnError,
    TranscoderError,
)
from fluent_transcoder.executor.events import (
    CODEC_DATA,
    END,
    ERROR,
    PROGRESS,
    START,
    STDERR,
    CodecDataEvent,
    EndEvent,
    ErrorEvent,
    EventChannel,
    StartEvent,
    StderrEvent,
    TerminalEvent,
)
from fluent_transcoder.logging.config import ENGINE_LOGGER
from fluent_transcoder.tools.locator import ToolPaths, get_tool_paths

if TYPE_CHECKING:
    from fluent_transcoder.command.models import CommandPlan

logger = logging.getLogger(__name__)
engine_logger = logging.getLogger(ENGINE_LOGGER)

NICENESS_MIN = -20
NICENESS_MAX = 20

_CHUNK_SIZE = 64 * 1024


class ProcessState(Enum):
    """Lifecycle state of one execution."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    KILLED = "killed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessState.COMPLETED, ProcessState.FAILED, ProcessState.KILLED)


def clamp_niceness(niceness) -> int:
    """Clamp a niceness value to [-20, 20]; non-integers become 0."""
    try:
        value = int(niceness)
    except (TypeError, ValueError):
        return 0
    return max(NICENESS_MIN, min(NICENESS_MAX, value))


def resolve_signal(sig: str | int | signal_module.Signals) -> signal_module.Signals:
    """Resolve "SIGKILL", "kill", 9 or signal.SIGKILL to a Signals member.

    Raises:
        ValueError: If the signal is unknown on this platform.
    """
    if isinstance(sig, str):
        name = sig.upper()
        if not name.startswith("SIG"):
            name = f"SIG{name}"
        try:
            return signal_module.Signals[name]
        except KeyError:
            raise ValueError(f"Unknown signal: {sig}") from None
    return signal_module.Signals(sig)


def signal_name(signum: int) -> str:
    try:
        return signal_module.Signals(signum).name
    except ValueError:
        return str(signum)


class ProcessController:
    """Runs one CommandPlan and reports its events.

    Args:
        plan: Plan to execute. Frozen when start() is called.
        channel: Event channel to report to.
        executable: Engine executable; located through tool_paths if None.
        tool_paths: Locator used when executable is None.
        preflight: Callable run before spawning (capability validation).
            A TranscoderError it raises becomes the terminal error.
        timeout: Kill the process after this many seconds.
        stdout_lines: Lines kept in the stdout/stderr buffers (0 = all).
        niceness: Scheduling priority applied right after spawn.
        cwd: Working directory of the process.
        env: Variables set on top of the inherited environment.
    """

    def __init__(
        self,
        plan: CommandPlan,
        channel: EventChannel | None = None,
        *,
        executable: Path | None = None,
        tool_paths: ToolPaths | None = None,
        preflight: Callable[[], None] | None = None,
        timeout: float | None = None,
        stdout_lines: int = 0,
        niceness: int = 0,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.plan = plan
        self.channel = channel if channel is not None else EventChannel()
        self.executable = executable
        self.tool_paths = tool_paths
        self.preflight = preflight
        self.timeout = timeout
        self.cwd = cwd
        self.env = env

        self._state = ProcessState.IDLE
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._result: TerminalEvent | None = None
        self._failure: ExecutionError | None = None
        self._kill_requested = False
        self._exited = False
        self._niceness = clamp_niceness(niceness) if niceness else None

        self._process: subprocess.Popen | None = None
        self._stdout_ring = LineRing(stdout_lines)
        self._stderr_ring = LineRing(stdout_lines)
        self._codec_data = CodecDataCollector(len(plan.inputs))
        self._threads: list[threading.Thread] = []
        self._timer: threading.Timer | None = None

        self.output: IO[bytes] | None = None
        self._pipe_writer: IO[bytes] | None = None

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def result(self) -> TerminalEvent | None:
        """The terminal event, once it fired."""
        return self._result

    @property
    def niceness(self) -> int | None:
        return self._niceness

    def start(self) -> ProcessController:
        """Spawn the process and start supervising it.

        Never raises for execution failures; they are reported through the
        terminal error event.

        Raises:
            BuildError: If the controller was already started.
        """
        with self._lock:
            if self._state is not ProcessState.IDLE:
                raise BuildError("Command execution was already started")
            self._state = ProcessState.STARTING

        self.plan.freeze()
        stdout_spec = self.plan.stdout_output
        if stdout_spec is not None and stdout_spec.target is None:
            read_fd, write_fd = os.pipe()
            self.output = os.fdopen(read_fd, "rb")
            self._pipe_writer = os.fdopen(write_fd, "wb")

        try:
            if self.preflight is not None:
                self.preflight()
            executable = self.executable or (
                self.tool_paths or get_tool_paths()
            ).require_ffmpeg()
        except TranscoderError as e:
            self._close_pipe_writer()
            self._finish(ErrorEvent(error=e))
            return self

        args = self.plan.render()
        command = [str(executable), *args]
        command_line = " ".join(command)
        stdin_spec = self.plan.stdin_input

        logger.info("Spawning: %s", command_line)
        try:
            self._process = subprocess.Popen(  # nosec B603
                command,
                stdin=subprocess.PIPE if stdin_spec is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self.cwd,
                env={**os.environ, **self.env} if self.env else None,
            )
        except OSError as e:
            self._close_pipe_writer()
            error = SpawnError(f"Failed to spawn {executable}: {e}")
            error.__cause__ = e
            self._finish(ErrorEvent(error=error))
            return self

        with self._lock:
            self._state = ProcessState.RUNNING
        self.channel.emit(START, StartEvent(command_line=command_line, args=command))

        if self._niceness is not None:
            self._apply_niceness(self._niceness)

        if stdin_spec is not None:
            self._spawn_thread(self._pump_stdin, stdin_spec.source, daemon_only=True)
        self._spawn_thread(self._read_stdout, stdout_spec)
        self._spawn_thread(self._read_stderr)

        if self.timeout:
            self._timer = threading.Timer(self.timeout, self._on_timeout)
            self._timer.daemon = True
            self._timer.start()

        threading.Thread(target=self._supervise, daemon=True).start()
        return self

    def wait(self, timeout: float | None = None) -> TerminalEvent | None:
        """Block until the terminal event fired.

        Returns:
            EndEvent or ErrorEvent, or None if timeout elapsed first.
        """
        self._done.wait(timeout)
        return self._result

    def kill(self, signal: str | int | signal_module.Signals = "SIGKILL") -> bool:
        """Send a signal to the running process.

        The terminal event fires once the process actually exits. A no-op
        when the process is not running.

        Returns:
            True if the signal was sent.

        Raises:
            ValueError: If the process is running and signal is unknown.
        """
        with self._lock:
            if self._state is not ProcessState.RUNNING or self._process is None:
                return False
        sig = resolve_signal(signal)
        with self._lock:
            if self._exited:
                return False
            self._kill_requested = True
            process = self._process
        logger.info("Sending %s to ffmpeg (pid %d)", sig.name, process.pid)
        try:
            process.send_signal(sig)
        except ProcessLookupError:
            return False
        return True

    def renice(self, niceness: int = 0) -> bool:
        """Change the scheduling priority of the process.

        Values are clamped to [-20, 20]. Before the process is spawned the
        value is queued and applied right after spawn; after the terminal
        event this is a no-op.

        Returns:
            True if the value was applied or queued.
        """
        value = clamp_niceness(niceness)
        with self._lock:
            if self._state.is_terminal:
                return False
            self._niceness = value
            running = self._state is ProcessState.RUNNING
        if running:
            return self._apply_niceness(value)
        return True

    def _apply_niceness(self, niceness: int) -> bool:
        if self._process is None:
            return False
        if not hasattr(os, "setpriority"):
            logger.warning("Process priority is not supported on this platform")
            return False
        try:
            os.setpriority(os.PRIO_PROCESS, self._process.pid, niceness)
        except OSError as e:
            logger.warning("Failed to renice pid %d: %s", self._process.pid, e)
            return False
        logger.debug("Reniced pid %d to %d", self._process.pid, niceness)
        return True

    def _spawn_thread(self, target, *args, daemon_only: bool = False) -> None:
        thread = threading.Thread(target=target, args=args, daemon=True)
        thread.start()
        if not daemon_only:
            self._threads.append(thread)

    def _fail(self, error: ExecutionError, *, while_running: bool = False) -> None:
        """Record the first failure and kill the process.

        With while_running, the failure is dropped once the process exited.
        """
        with self._lock:
            if self._failure is not None or self._state is not ProcessState.RUNNING:
                return
            if while_running and self._exited:
                return
            self._failure = error
            process = self._process
        if process is not None and process.poll() is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass

    def _on_timeout(self) -> None:
        logger.warning("ffmpeg timed out after %ss, killing it", self.timeout)
        self._fail(ProcessTimeoutError(self.timeout), while_running=True)

    def _pump_stdin(self, source: IO[bytes]) -> None:
        assert self._process is not None and self._process.stdin is not None
        sink = self._process.stdin
        try:
            while True:
                try:
                    chunk = source.read(_CHUNK_SIZE)
                except Exception as e:
                    failure = InputStreamError(e)
                    failure.__cause__ = e
                    self._fail(failure)
                    return
                if not chunk:
                    return
                try:
                    sink.write(chunk)
                    sink.flush()
                except (BrokenPipeError, ValueError):
                    # The engine stopped reading; its exit code decides
                    return
        finally:
            try:
                sink.close()
            except (BrokenPipeError, OSError):
                pass

    def _read_stdout(self, spec) -> None:
        assert self._process is not None and self._process.stdout is not None
        source = self._process.stdout
        sink = None
        if spec is not None:
            sink = self._pipe_writer if spec.target is None else spec.target

        try:
            if sink is None:
                for raw in source:
                    self._stdout_ring.append(
                        raw.decode("utf-8", errors="replace").rstrip("\r\n")
                    )
                return

            while chunk := source.read1(_CHUNK_SIZE):
                try:
                    sink.write(chunk)
                except Exception as e:
                    failure = OutputStreamError(e)
                    failure.__cause__ = e
                    self._fail(failure)
                    # Drain so the process can exit
                    while source.read1(_CHUNK_SIZE):
                        pass
                    return
            flush = getattr(sink, "flush", None)
            if flush is not None:
                try:
                    flush()
                except Exception as e:
                    failure = OutputStreamError(e)
                    failure.__cause__ = e
                    self._fail(failure)
        finally:
            self._close_pipe_writer()

    def _read_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        pid = self._process.pid
        stream = io.TextIOWrapper(self._process.stderr, encoding="utf-8", errors="replace")
        for raw in stream:
            line = raw.rstrip("\r\n")
            if not line:
                continue
            engine_logger.debug("[%d] %s", pid, line)
            self._stderr_ring.append(line)
            self._handle_diagnostic(line)

    def _handle_diagnostic(self, line: str) -> None:
        progress = parse_progress(line, self._codec_data.duration)
        if progress is not None:
            self.channel.emit(PROGRESS, progress)
            return

        consumed, ready = self._codec_data.feed(line)
        if ready is not None:
            self.channel.emit(CODEC_DATA, CodecDataEvent(inputs=list(ready)))
        if not consumed:
            self.channel.emit(STDERR, StderrEvent(line=line))

    def _supervise(self) -> None:
        assert self._process is not None
        returncode = self._process.wait()
        with self._lock:
            self._exited = True
        if self._timer is not None:
            self._timer.cancel()
        for thread in self._threads:
            thread.join()

        stdout = self._stdout_ring.text()
        stderr = self._stderr_ring.text()
        with self._lock:
            failure = self._failure

        if failure is not None:
            failure.stdout = stdout
            failure.stderr = stderr
            self._finish(ErrorEvent(error=failure, stdout=stdout, stderr=stderr))
        elif returncode == 0:
            self._finish(EndEvent(stdout=stdout, stderr=stderr))
        elif returncode < 0:
            error = SignalError(signal_name(-returncode), stdout, stderr)
            self._finish(ErrorEvent(error=error, stdout=stdout, stderr=stderr))
        else:
            error = ExitCodeError(returncode, extract_error(stderr), stdout, stderr)
            self._finish(ErrorEvent(error=error, stdout=stdout, stderr=stderr))

    def _close_pipe_writer(self) -> None:
        writer, self._pipe_writer = self._pipe_writer, None
        if writer is not None:
            try:
                writer.close()
            except OSError:
                pass

    def _finish(self, event: TerminalEvent) -> None:
        """Emit the terminal event; every call after the first is ignored."""
        with self._lock:
            if self._result is not None:
                return
            self._result = event
            if isinstance(event, EndEvent):
                self._state = ProcessState.COMPLETED
            elif self._kill_requested or isinstance(event.error, ProcessTimeoutError):
                self._state = ProcessState.KILLED
            else:
                self._state = ProcessState.FAILED

        if isinstance(event, EndEvent):
            logger.info("ffmpeg finished successfully")
            self.channel.emit(END, event)
        else:
            logger.warning("ffmpeg failed: %s", event.error)
            self.channel.emit(ERROR, event)

        if self._process is not None:
            for stream in (self._process.stdout, self._process.stderr):
                if stream is not None:
                    stream.close()
        self._done.set()
