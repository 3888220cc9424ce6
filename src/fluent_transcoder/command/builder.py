"""Fluent ffmpeg command builder.

FfmpegCommand accumulates inputs, outputs and their options into a
CommandPlan and runs it through a ProcessController.

Input options apply to the most recently added input. Output options apply
to the most recently added output; when no output exists yet one is created
implicitly and receives its destination from the next add_output(),
save() or pipe() call.

Example:
    >>> cmd = (
    ...     FfmpegCommand("in.avi")
    ...     .audio_codec("libvorbis")
    ...     .video_codec("copy")
    ...     .add_output("out.mkv")
    ... )
    >>> cmd.render()
    ['-y', '-i', 'in.avi', '-vcodec', 'copy', '-acodec', 'libvorbis', 'out.mkv']
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from pathlib import Path
from typing import IO, Any

from fluent_transcoder.command.models import CommandPlan, InputSpec, OutputSpec
from fluent_transcoder.command.options import parse_options
from fluent_transcoder.command.validator import validate
from fluent_transcoder.config.models import ExecutionConfig
from fluent_transcoder.executor.errors import BuildError
from fluent_transcoder.executor.events import EndEvent, ErrorEvent, EventChannel
from fluent_transcoder.executor.process import ProcessController
from fluent_transcoder.tools.locator import ToolPaths, get_tool_paths
from fluent_transcoder.tools.prober import CapabilityProber

logger = logging.getLogger(__name__)

_SIZE_PATTERN = re.compile(r"^\d+x\d+$")


def _kbps(bitrate: str | int) -> str:
    """Normalize a bitrate to the "<n>k" form."""
    text = str(bitrate)
    return text if text.endswith("k") else f"{text}k"


def _flatten(values: tuple) -> list[str]:
    """Accept both f("a", "b") and f(["a", "b"])."""
    if len(values) == 1 and isinstance(values[0], (list, tuple)):
        values = tuple(values[0])
    return [str(v) for v in values]


class FfmpegCommand:
    """Builds and runs one ffmpeg invocation.

    Args:
        source: Optional first input (path, URL or readable stream).
        executable: Explicit ffmpeg path; located through tool_paths if None.
        tool_paths: Locator for ffmpeg, defaults to the process-wide one.
        prober: Capability prober used for pre-flight validation.
        config: Execution defaults (timeout, buffer size, niceness, cwd).
        check_capabilities: Validate formats and codecs before spawning.
    """

    def __init__(
        self,
        source: str | Path | IO[bytes] | None = None,
        *,
        executable: str | Path | None = None,
        tool_paths: ToolPaths | None = None,
        prober: CapabilityProber | None = None,
        config: ExecutionConfig | None = None,
        check_capabilities: bool = True,
    ) -> None:
        if executable is not None:
            tool_paths = ToolPaths()
            tool_paths.set_ffmpeg_path(executable)
        self.tool_paths = tool_paths if tool_paths is not None else get_tool_paths()
        self.config = config if config is not None else ExecutionConfig()
        self.prober = prober
        self.check_capabilities = check_capabilities

        self.channel = EventChannel()
        self.controller: ProcessController | None = None
        self._plan = CommandPlan()
        self._timeout = self.config.timeout
        self._niceness = self.config.niceness

        if source is not None:
            self.add_input(source)

    @property
    def plan(self) -> CommandPlan:
        return self._plan

    # Inputs

    def add_input(self, source: str | Path | IO[bytes]) -> FfmpegCommand:
        """Add an input. At most one input may be a readable stream."""
        self._plan.add_input(source)
        return self

    def _current_input(self) -> InputSpec:
        self._plan.ensure_mutable()
        if not self._plan.inputs:
            raise BuildError("No input specified")
        return self._plan.inputs[-1]

    def input_format(self, fmt: str) -> FfmpegCommand:
        """Force the format of the current input (``-f``)."""
        self._current_input().options.add("-f", fmt)
        return self

    def input_fps(self, fps: float | str) -> FfmpegCommand:
        """Force the frame rate of the current input (``-r``)."""
        self._current_input().options.add("-r", fps)
        return self

    def native_framerate(self) -> FfmpegCommand:
        """Read the current input at its native frame rate (``-re``)."""
        self._current_input().options.add("-re")
        return self

    def seek_input(self, time: float | str) -> FfmpegCommand:
        """Seek in the current input before decoding (``-ss``)."""
        self._current_input().options.add("-ss", time)
        return self

    def loop(self, duration: float | str | None = None) -> FfmpegCommand:
        """Loop the current input, optionally limiting the output duration."""
        self._current_input().options.add("-loop", "1")
        if duration is not None:
            self.duration(duration)
        return self

    def input_options(self, *options) -> FfmpegCommand:
        """Add raw options to the current input."""
        self._current_input().options.extend(parse_options(*options))
        return self

    # Outputs

    def _current_output(self) -> OutputSpec:
        self._plan.ensure_mutable()
        if not self._plan.outputs:
            self._plan.add_output(bound=False)
        return self._plan.outputs[-1]

    def add_output(self, target: str | Path | IO[bytes] | None = None) -> FfmpegCommand:
        """Add an output, or give the implicit output its destination.

        A writable stream or None streams the output through stdout; at
        most one output may do so.
        """
        outputs = self._plan.outputs
        if outputs and not outputs[-1].bound:
            self._plan.bind_output(outputs[-1], target)
        else:
            self._plan.add_output(target)
        return self

    def format(self, fmt: str) -> FfmpegCommand:
        """Set the output format (``-f``)."""
        self._current_output().options.add("-f", fmt)
        return self

    def duration(self, duration: float | str) -> FfmpegCommand:
        """Limit the output duration (``-t``)."""
        self._current_output().options.add("-t", duration)
        return self

    def seek(self, time: float | str) -> FfmpegCommand:
        """Seek in the output, decoding and discarding input (``-ss``)."""
        self._current_output().options.add("-ss", time)
        return self

    def output_options(self, *options) -> FfmpegCommand:
        """Add raw options to the current output."""
        self._current_output().options.extend(parse_options(*options))
        return self

    # Audio

    def audio_codec(self, codec: str) -> FfmpegCommand:
        self._current_output().audio.add("-acodec", codec)
        return self

    def audio_bitrate(self, bitrate: str | int) -> FfmpegCommand:
        self._current_output().audio.add("-b:a", _kbps(bitrate))
        return self

    def audio_channels(self, channels: int) -> FfmpegCommand:
        self._current_output().audio.add("-ac", channels)
        return self

    def audio_frequency(self, frequency: int) -> FfmpegCommand:
        self._current_output().audio.add("-ar", frequency)
        return self

    def audio_quality(self, quality: int | float) -> FfmpegCommand:
        self._current_output().audio.add("-aq", quality)
        return self

    def audio_filters(self, *filters) -> FfmpegCommand:
        """Append filters to the output's ``-filter:a`` chain."""
        self._current_output().audio_filters.extend(_flatten(filters))
        return self

    def no_audio(self) -> FfmpegCommand:
        """Drop audio from the output; earlier audio options are discarded."""
        output = self._current_output()
        output.audio.clear()
        output.audio_filters.clear()
        output.audio.add("-an")
        return self

    # Video

    def video_codec(self, codec: str) -> FfmpegCommand:
        self._current_output().video.add("-vcodec", codec)
        return self

    def video_bitrate(self, bitrate: str | int, constant: bool = False) -> FfmpegCommand:
        """Set the video bitrate; constant also pins min/max rate."""
        video = self._current_output().video
        value = _kbps(bitrate)
        video.add("-b:v", value)
        if constant:
            video.add("-maxrate", value)
            video.add("-minrate", value)
            video.add("-bufsize", "3M")
        return self

    def video_filters(self, *filters) -> FfmpegCommand:
        """Append filters to the output's ``-filter:v`` chain."""
        self._current_output().video_filters.extend(_flatten(filters))
        return self

    def fps(self, fps: float | str) -> FfmpegCommand:
        self._current_output().video.add("-r", fps)
        return self

    def frames(self, frames: int) -> FfmpegCommand:
        self._current_output().video.add("-vframes", frames)
        return self

    def no_video(self) -> FfmpegCommand:
        """Drop video from the output; earlier video options are discarded."""
        output = self._current_output()
        output.video.clear()
        output.video_filters.clear()
        output.video.add("-vn")
        return self

    def size(self, size: str) -> FfmpegCommand:
        """Set the output frame size as ``WIDTHxHEIGHT``."""
        if not _SIZE_PATTERN.match(size):
            raise BuildError(f"Invalid size specification: {size}")
        self._current_output().video.add("-s", size)
        return self

    # Global

    def global_options(self, *options) -> FfmpegCommand:
        """Add options rendered before every input."""
        self._plan.ensure_mutable()
        self._plan.global_options.extend(parse_options(*options))
        return self

    def complex_filter(
        self, spec: str | list[str], map: str | list[str] | None = None
    ) -> FfmpegCommand:
        """Set the ``-filter_complex`` graph, replacing any previous one.

        Args:
            spec: Filter graph, or a list of filter chains joined with ";".
            map: Output label(s) mapped with ``-map``.
        """
        self._plan.ensure_mutable()
        self._plan.complex_filters = [spec] if isinstance(spec, str) else list(spec)
        if map is None:
            self._plan.complex_filter_maps = []
        else:
            self._plan.complex_filter_maps = [map] if isinstance(map, str) else list(map)
        return self

    def timeout(self, seconds: float | None) -> FfmpegCommand:
        """Kill the process when it runs longer than seconds."""
        self._timeout = seconds
        return self

    # Rendering

    def render(self) -> list[str]:
        """Render the argument vector, without the executable."""
        return self._plan.render()

    def command_line(self) -> str:
        """Render the full command line as shown in the start event."""
        executable = self.tool_paths.ffmpeg() or "ffmpeg"
        return " ".join([str(executable), *self.render()])

    def clone(self) -> FfmpegCommand:
        """Copy this command, including callbacks, into an unfrozen one."""
        other = FfmpegCommand(
            tool_paths=self.tool_paths,
            prober=self.prober,
            config=self.config,
            check_capabilities=self.check_capabilities,
        )
        other._plan = self._plan.clone()
        other.channel = self.channel.copy()
        other._timeout = self._timeout
        other._niceness = self._niceness
        return other

    # Execution

    def on(self, event_name: str, callback: Callable[[Any], None]) -> FfmpegCommand:
        """Register a callback for one execution event."""
        self.channel.on(event_name, callback)
        return self

    def _get_prober(self) -> CapabilityProber:
        if self.prober is None:
            self.prober = CapabilityProber(
                tool_paths=self.tool_paths,
                max_buffer=self.config.probe_max_buffer,
                timeout=self.config.probe_timeout,
            )
        return self.prober

    def run(self, listener: object | None = None) -> ProcessController:
        """Start the command without waiting for it.

        Args:
            listener: Optional object with ``on_<event>`` hooks.

        Returns:
            The controller of the started execution.

        Raises:
            BuildError: If the command has no input or no output, or was
                already run.
        """
        if self.controller is not None:
            raise BuildError("Command was already run; use clone() to run it again")
        self._plan.check_complete()
        if listener is not None:
            self.channel.add_listener(listener)

        preflight = None
        if self.check_capabilities:
            plan, prober = self._plan, self._get_prober()

            def preflight() -> None:
                validate(plan, prober)

        self.controller = ProcessController(
            self._plan,
            self.channel,
            tool_paths=self.tool_paths,
            preflight=preflight,
            timeout=self._timeout,
            stdout_lines=self.config.stdout_lines,
            niceness=self._niceness,
            cwd=self.config.cwd,
            env=self.config.env,
        )
        return self.controller.start()

    def save(self, target: str | Path) -> ProcessController:
        """Write the output to a file and start the command."""
        self.add_output(target)
        return self.run()

    def pipe(self, stream: IO[bytes] | None = None) -> IO[bytes]:
        """Stream the output through stdout and start the command.

        Args:
            stream: Writable binary stream to copy the output into. When
                None, a readable pipe is returned instead.

        Returns:
            The stream passed in, or the read end of the output pipe.
        """
        self.add_output(stream)
        controller = self.run()
        if stream is not None:
            return stream
        assert controller.output is not None
        return controller.output

    def run_sync(self, timeout: float | None = None) -> EndEvent:
        """Run the command and wait for it to finish.

        Raises:
            TranscoderError: The error of the terminal error event.
            TimeoutError: If timeout elapses before the command finishes.
        """
        event = self.run().wait(timeout)
        if event is None:
            raise TimeoutError(f"Command did not finish within {timeout}s")
        if isinstance(event, ErrorEvent):
            raise event.error
        return event

    def kill(self, signal: str | int = "SIGKILL") -> bool:
        """Send a signal to the running process; a no-op when not running."""
        if self.controller is None:
            return False
        return self.controller.kill(signal)

    def renice(self, niceness: int = 0) -> FfmpegCommand:
        """Set the process priority, queued until the process is spawned."""
        if self.controller is None:
            self._niceness = niceness
        else:
            self.controller.renice(niceness)
        return self
