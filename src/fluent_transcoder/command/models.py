"""Command plan data models.

A CommandPlan is the ordered, in-memory form of one engine invocation:
global options, inputs with their per-input options, and outputs with
separate video, audio and other option lists. It can be mutated until an
execution starts, then it is frozen.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, Any

from fluent_transcoder.command.options import OptionList
from fluent_transcoder.executor.errors import BuildError

STDIN_TOKEN = "-"
STDOUT_TOKEN = "pipe:1"

AUDIO_CODEC_FLAGS = ("-acodec", "-c:a", "-codec:a")
VIDEO_CODEC_FLAGS = ("-vcodec", "-c:v", "-codec:v")
FORMAT_FLAGS = ("-f",)

# Codec value that requests stream copy instead of an encoder
PASSTHROUGH_CODEC = "copy"


class SourceKind(Enum):
    """Where an input reads from."""

    PATH = "path"  # Local file or URL handed to the engine
    STREAM = "stream"  # Readable object piped to the engine's stdin


class TargetKind(Enum):
    """Where an output writes to."""

    PATH = "path"  # Local file or URL handed to the engine
    STREAM = "stream"  # Writable object fed from the engine's stdout
    PIPE = "pipe"  # Engine stdout exposed to the caller as a readable pipe


def is_readable_stream(obj: Any) -> bool:
    return hasattr(obj, "read") and not isinstance(obj, (str, Path))


def is_writable_stream(obj: Any) -> bool:
    return hasattr(obj, "write") and not isinstance(obj, (str, Path))


@dataclass
class InputSpec:
    """One input of a command.

    Attributes:
        source: Path, URL, or readable binary stream.
        options: Options placed before this input's ``-i``.
    """

    source: str | Path | IO[bytes]
    options: OptionList = field(default_factory=OptionList)

    @property
    def kind(self) -> SourceKind:
        return SourceKind.STREAM if is_readable_stream(self.source) else SourceKind.PATH

    @property
    def format(self) -> str | None:
        """Explicit input format (``-f``), if set."""
        return self.options.find_first(FORMAT_FLAGS)

    def token(self) -> str:
        """Argument following ``-i`` for this input."""
        if self.kind is SourceKind.STREAM:
            return STDIN_TOKEN
        return str(self.source)

    def render(self) -> list[str]:
        return [*self.options.render(), "-i", self.token()]


@dataclass
class OutputSpec:
    """One output of a command.

    Attributes:
        target: Path, URL, writable binary stream, or None for a pipe
            returned to the caller.
        audio: Audio options (codec, bitrate, channels, ...).
        audio_filters: Filters joined into ``-filter:a``.
        video: Video options (codec, bitrate, fps, size, ...).
        video_filters: Filters joined into ``-filter:v``.
        options: Other output options (format, duration, seek, ...).
        bound: False while the output was only created implicitly by an
            output option and still waits for its destination.
    """

    target: str | Path | IO[bytes] | None = None
    audio: OptionList = field(default_factory=OptionList)
    audio_filters: list[str] = field(default_factory=list)
    video: OptionList = field(default_factory=OptionList)
    video_filters: list[str] = field(default_factory=list)
    options: OptionList = field(default_factory=OptionList)
    bound: bool = True

    @property
    def kind(self) -> TargetKind:
        if self.target is None:
            return TargetKind.PIPE
        if is_writable_stream(self.target):
            return TargetKind.STREAM
        return TargetKind.PATH

    @property
    def uses_stdout(self) -> bool:
        return self.bound and self.kind is not TargetKind.PATH

    @property
    def format(self) -> str | None:
        """Explicit output format (``-f``), if set."""
        return self.options.find_first(FORMAT_FLAGS)

    @property
    def audio_codec(self) -> str | None:
        return self.audio.find_first(AUDIO_CODEC_FLAGS) or self.options.find_first(
            AUDIO_CODEC_FLAGS
        )

    @property
    def video_codec(self) -> str | None:
        return self.video.find_first(VIDEO_CODEC_FLAGS) or self.options.find_first(
            VIDEO_CODEC_FLAGS
        )

    def token(self) -> str:
        if self.uses_stdout:
            return STDOUT_TOKEN
        return str(self.target)

    def render(self) -> list[str]:
        """Render video options, audio options, other options, then target."""
        args = self.video.render()
        if self.video_filters:
            args += ["-filter:v", ",".join(self.video_filters)]
        args += self.audio.render()
        if self.audio_filters:
            args += ["-filter:a", ",".join(self.audio_filters)]
        args += self.options.render()
        args.append(self.token())
        return args


@dataclass
class CommandPlan:
    """Ordered representation of one invocation before rendering."""

    global_options: OptionList = field(default_factory=OptionList)
    inputs: list[InputSpec] = field(default_factory=list)
    outputs: list[OutputSpec] = field(default_factory=list)
    complex_filters: list[str] = field(default_factory=list)
    complex_filter_maps: list[str] = field(default_factory=list)
    frozen: bool = False

    def ensure_mutable(self) -> None:
        """Raise if an execution already started from this plan."""
        if self.frozen:
            raise BuildError("Command is already running and can no longer be changed")

    def freeze(self) -> None:
        self.frozen = True

    @property
    def stdin_input(self) -> InputSpec | None:
        """The input bound to the process's stdin, if any."""
        for spec in self.inputs:
            if spec.kind is SourceKind.STREAM:
                return spec
        return None

    @property
    def stdout_output(self) -> OutputSpec | None:
        """The output bound to the process's stdout, if any."""
        for spec in self.outputs:
            if spec.uses_stdout:
                return spec
        return None

    def add_input(self, source: str | Path | IO[bytes]) -> InputSpec:
        self.ensure_mutable()
        spec = InputSpec(source=source)
        if spec.kind is SourceKind.STREAM and self.stdin_input is not None:
            raise BuildError("Only one input stream is supported")
        self.inputs.append(spec)
        return spec

    def add_output(
        self, target: str | Path | IO[bytes] | None = None, *, bound: bool = True
    ) -> OutputSpec:
        """Append an output.

        Args:
            target: Destination; None streams to stdout.
            bound: False to create a placeholder whose destination is set
                later with bind_output().
        """
        self.ensure_mutable()
        spec = OutputSpec(target=None, bound=False)
        if bound:
            self.bind_output(spec, target)
        self.outputs.append(spec)
        return spec

    def bind_output(
        self, spec: OutputSpec, target: str | Path | IO[bytes] | None
    ) -> OutputSpec:
        """Set the destination of an output.

        Raises:
            BuildError: If target is a stream and another output already
                streams to stdout.
        """
        self.ensure_mutable()
        probe = OutputSpec(target=target)
        current = self.stdout_output
        if probe.uses_stdout and current is not None and current is not spec:
            raise BuildError("Only one output stream is supported")
        spec.target = target
        spec.bound = True
        return spec

    def check_complete(self) -> None:
        """Raise if the plan cannot be rendered into a runnable command."""
        if not self.inputs:
            raise BuildError("No input specified")
        if not self.outputs or not all(o.bound for o in self.outputs):
            raise BuildError("No output specified")

    def render(self) -> list[str]:
        """Render the argument vector (without the executable).

        Order: global options, each input's options and ``-i`` token,
        complex filters, then each output's video, audio and other options
        followed by its destination token.

        Raises:
            BuildError: If the plan has no input or an output without
                destination.
        """
        self.check_complete()
        args = self.global_options.render()
        if any(o.kind is TargetKind.PATH for o in self.outputs):
            if self.global_options.find("-y") is None:
                args.append("-y")
        for spec in self.inputs:
            args += spec.render()
        if self.complex_filters:
            args += ["-filter_complex", ";".join(self.complex_filters)]
            for label in self.complex_filter_maps:
                args += ["-map", label]
        for spec in self.outputs:
            args += spec.render()
        return args

    def clone(self) -> CommandPlan:
        """Deep copy of the plan's options; stream objects are shared."""
        return CommandPlan(
            global_options=self.global_options.copy(),
            inputs=[
                InputSpec(source=spec.source, options=spec.options.copy())
                for spec in self.inputs
            ],
            outputs=[
                OutputSpec(
                    target=spec.target,
                    audio=spec.audio.copy(),
                    audio_filters=list(spec.audio_filters),
                    video=spec.video.copy(),
                    video_filters=list(spec.video_filters),
                    options=spec.options.copy(),
                    bound=spec.bound,
                )
                for spec in self.outputs
            ],
            complex_filters=copy.copy(self.complex_filters),
            complex_filter_maps=copy.copy(self.complex_filter_maps),
        )
