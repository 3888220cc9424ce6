"""Build, validate and run ffmpeg commands with structured events."""

from fluent_transcoder.command import FfmpegCommand
from fluent_transcoder.executor import (
    BuildError,
    ExecutionError,
    ExitCodeError,
    InputStreamError,
    OutputStreamError,
    ProbeError,
    ProcessController,
    ProcessTimeoutError,
    SignalError,
    SpawnError,
    ToolNotFoundError,
    TranscoderError,
    ValidationError,
)
from fluent_transcoder.tools import CapabilityKind, CapabilityProber

__version__ = "0.1.0"

__all__ = [
    "BuildError",
    "CapabilityKind",
    "CapabilityProber",
    "ExecutionError",
    "ExitCodeError",
    "FfmpegCommand",
    "InputStreamError",
    "OutputStreamError",
    "ProbeError",
    "ProcessController",
    "ProcessTimeoutError",
    "SignalError",
    "SpawnError",
    "ToolNotFoundError",
    "TranscoderError",
    "ValidationError",
    "__version__",
]
