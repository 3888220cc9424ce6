"""Execution event definitions and dispatch.

This module defines the events a running command reports to its caller
and the EventChannel that fans them out to registered callbacks.

Ordering guarantees for one execution:

- ``start`` fires first, exactly once, unless the command fails before
  the process is spawned.
- ``codec_data``, ``progress`` and ``stderr`` fire while the process runs.
- Exactly one of ``end`` or ``error`` fires last.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Event name constants
START = "start"
PROGRESS = "progress"
CODEC_DATA = "codec_data"
STDERR = "stderr"
END = "end"
ERROR = "error"

# All valid event names
VALID_EVENTS = frozenset([START, PROGRESS, CODEC_DATA, STDERR, END, ERROR])


@dataclass
class StartEvent:
    """Event data for the start event.

    Fired once the process has been spawned.
    """

    command_line: str
    args: list[str] = field(default_factory=list)


@dataclass
class ProgressEvent:
    """Decoded progress line.

    ``target_size`` is in kilobytes and ``timemark`` is the engine's
    ``HH:MM:SS.xx`` output position. ``percent`` is only set when the
    duration of the first input is known.
    """

    timemark: str
    frames: int | None = None
    current_fps: float | None = None
    current_kbps: float | None = None
    target_size: int | None = None
    percent: float | None = None


@dataclass
class InputCodecData:
    """Codec identification for one input."""

    format: str = ""
    duration: str = ""
    audio: str = ""
    audio_details: str = ""
    video: str = ""
    video_details: str = ""


@dataclass
class CodecDataEvent:
    """Event data for the codec_data event: one entry per input, in order."""

    inputs: list[InputCodecData]


@dataclass
class StderrEvent:
    """A diagnostic line not recognized as progress or codec data."""

    line: str


@dataclass
class EndEvent:
    """The process exited with code 0."""

    stdout: str = ""
    stderr: str = ""


@dataclass
class ErrorEvent:
    """The execution failed; ``error`` is a TranscoderError subclass."""

    error: Exception
    stdout: str = ""
    stderr: str = ""


TerminalEvent = EndEvent | ErrorEvent


@runtime_checkable
class EventListener(Protocol):
    """Observer interface for execution events.

    Every hook is optional; the channel only calls hooks a listener
    actually defines.
    """

    def on_start(self, event: StartEvent) -> None: ...

    def on_progress(self, event: ProgressEvent) -> None: ...

    def on_codec_data(self, event: CodecDataEvent) -> None: ...

    def on_stderr(self, event: StderrEvent) -> None: ...

    def on_end(self, event: EndEvent) -> None: ...

    def on_error(self, event: ErrorEvent) -> None: ...


_LISTENER_HOOKS = {
    START: "on_start",
    PROGRESS: "on_progress",
    CODEC_DATA: "on_codec_data",
    STDERR: "on_stderr",
    END: "on_end",
    ERROR: "on_error",
}


def is_valid_event(event_name: str) -> bool:
    """Check if an event name is valid."""
    return event_name in VALID_EVENTS


class EventChannel:
    """Callback registry for one command.

    Callbacks run on the thread that produced the event. A callback that
    raises is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._callbacks: dict[str, list[Callable[[Any], None]]] = {
            name: [] for name in VALID_EVENTS
        }
        self._lock = threading.Lock()

    def on(self, event_name: str, callback: Callable[[Any], None]) -> None:
        """Register a callback for one event.

        Raises:
            ValueError: If event_name is not a known event.
        """
        if not is_valid_event(event_name):
            raise ValueError(
                f"Unknown event {event_name!r}, expected one of "
                f"{sorted(VALID_EVENTS)}"
            )
        with self._lock:
            self._callbacks[event_name].append(callback)

    def add_listener(self, listener: object) -> None:
        """Register every ``on_*`` hook a listener defines."""
        for event_name, hook_name in _LISTENER_HOOKS.items():
            hook = getattr(listener, hook_name, None)
            if callable(hook):
                self.on(event_name, hook)

    def copy(self) -> EventChannel:
        channel = EventChannel()
        with self._lock:
            for name, callbacks in self._callbacks.items():
                channel._callbacks[name] = list(callbacks)
        return channel

    def emit(self, event_name: str, event: Any) -> None:
        """Deliver an event to every callback registered for it."""
        with self._lock:
            callbacks = list(self._callbacks[event_name])
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Callback for %s event failed", event_name)
