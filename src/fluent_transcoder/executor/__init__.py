"""Execution layer for fluent_transcoder.

This module runs command plans and reports their lifecycle:
- errors: Error hierarchy shared by probing, building and execution
- events: Event types and the EventChannel callback registry
- diagnostics: Progress and codec data parsing of the diagnostic stream
- process: ProcessController state machine
"""

from fluent_transcoder.executor.errors import (
    BuildError,
    ExecutionError,
    ExitCodeError,
    InputStreamError,
    OutputStreamError,
    ProbeError,
    ProcessTimeoutError,
    SignalError,
    SpawnError,
    ToolNotFoundError,
    TranscoderError,
    ValidationError,
)
from fluent_transcoder.executor.events import (
    CodecDataEvent,
    EndEvent,
    ErrorEvent,
    EventChannel,
    EventListener,
    InputCodecData,
    ProgressEvent,
    StartEvent,
    StderrEvent,
)
from fluent_transcoder.executor.process import ProcessController, ProcessState

__all__ = [
    # Errors
    "BuildError",
    "ExecutionError",
    "ExitCodeError",
    "InputStreamError",
    "OutputStreamError",
    "ProbeError",
    "ProcessTimeoutError",
    "SignalError",
    "SpawnError",
    "ToolNotFoundError",
    "TranscoderError",
    "ValidationError",
    # Events
    "CodecDataEvent",
    "EndEvent",
    "ErrorEvent",
    "EventChannel",
    "EventListener",
    "InputCodecData",
    "ProgressEvent",
    "StartEvent",
    "StderrEvent",
    # Process
    "ProcessController",
    "ProcessState",
]
