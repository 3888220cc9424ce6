"""Diagnostic stream parsing.

The engine writes progress, input identification and warnings to stderr.
Each line is offered to the matchers in a fixed order:

1. Progress grammars (video progress, then audio-only progress). A line
   must match a grammar completely to count; anything else falls through.
2. The CodecDataCollector, which consumes ``Input #N``, ``Duration:`` and
   stream description lines until every declared input has been seen.
3. Everything left is a plain diagnostic line.
"""

import logging
import re
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from fluent_transcoder.executor.events import InputCodecData, ProgressEvent

logger = logging.getLogger(__name__)

# Unit suffix of size fields: "kB" in older builds, "KiB" in newer ones
_SIZE = r"(?P<size>\d+|N/A)\s*(?:[kK]i?B)?"
_TIME = r"(?P<timemark>-?\d+:\d{2}:\d{2}(?:\.\d+)?|N/A)"
_BITRATE = r"(?P<bitrate>N/A|-?[\d.]+)(?:kbits/s)?"

VIDEO_PROGRESS = re.compile(
    r"^frame=\s*(?P<frames>\d+)\s+fps=\s*(?P<fps>[\d.]+)\s+"
    r"(?:q=\s*\S+\s+)*"
    rf"L?size=\s*{_SIZE}\s+time=\s*{_TIME}\s+bitrate=\s*{_BITRATE}(?:\s|$)"
)
AUDIO_PROGRESS = re.compile(
    rf"^L?size=\s*{_SIZE}\s+time=\s*{_TIME}\s+bitrate=\s*{_BITRATE}(?:\s|$)"
)

INPUT_HEADER = re.compile(r"^Input #(\d+), ([^ ]+),")
DURATION = re.compile(r"Duration: ([^,]+)")
AUDIO_STREAM = re.compile(r"Audio: (.*)")
VIDEO_STREAM = re.compile(r"Video: (.*)")

# Lines that end the input description section
CODEC_SECTION_END = re.compile(r"^(Stream mapping:|Output #\d+|Press \[q\])")

_TIMEMARK_PARTS = re.compile(r"^(-?)(\d+):(\d{2}):(\d{2}(?:\.\d+)?)$")


def timemark_to_seconds(timemark: str) -> float | None:
    """Convert ``[-]HH:MM:SS[.xx]`` to seconds, None if unparseable."""
    match = _TIMEMARK_PARTS.match(timemark.strip())
    if match is None:
        return None
    sign, hours, minutes, seconds = match.groups()
    total = int(hours) * 3600 + int(minutes) * 60 + float(seconds)
    return -total if sign else total


def _int(value: str) -> int | None:
    return None if value == "N/A" else int(value)


def _float(value: str) -> float | None:
    return None if value == "N/A" else float(value)


@dataclass(frozen=True)
class ProgressGrammar:
    """One named progress line format."""

    name: str
    pattern: re.Pattern[str]

    def match(self, line: str) -> ProgressEvent | None:
        match = self.pattern.match(line)
        if match is None:
            return None
        fields = match.groupdict()
        frames = fields.get("frames")
        fps = fields.get("fps")
        return ProgressEvent(
            timemark=fields["timemark"],
            frames=int(frames) if frames is not None else None,
            current_fps=float(fps) if fps is not None else None,
            current_kbps=_float(fields["bitrate"]),
            target_size=_int(fields["size"]),
        )


PROGRESS_GRAMMARS: tuple[ProgressGrammar, ...] = (
    ProgressGrammar("video", VIDEO_PROGRESS),
    ProgressGrammar("audio", AUDIO_PROGRESS),
)


def parse_progress(
    line: str, duration: float | None = None
) -> ProgressEvent | None:
    """Decode a progress line.

    Args:
        line: Diagnostic line, without line terminator.
        duration: Duration of the first input in seconds, if known.

    Returns:
        ProgressEvent, or None if no grammar matches the whole line.
    """
    line = line.strip()
    for grammar in PROGRESS_GRAMMARS:
        event = grammar.match(line)
        if event is None:
            continue
        if duration:
            position = timemark_to_seconds(event.timemark)
            if position is not None:
                event.percent = position / duration * 100
        return event
    return None


class CodecDataCollector:
    """Accumulates input identification until every input is described.

    Args:
        input_count: Number of inputs declared on the command line.
    """

    def __init__(self, input_count: int) -> None:
        self.input_count = input_count
        self.inputs: list[InputCodecData] = []
        self.done = input_count == 0

    @property
    def duration(self) -> float | None:
        """Duration of the first input in seconds, once known."""
        if not self.inputs or not self.inputs[0].duration:
            return None
        return timemark_to_seconds(self.inputs[0].duration)

    def feed(self, line: str) -> tuple[bool, list[InputCodecData] | None]:
        """Offer one diagnostic line.

        Returns:
            Tuple of (consumed, ready). ``consumed`` is True when the line
            was input identification. ``ready`` holds one entry per input,
            in input order, the first time the section ends with every
            input described; it is None otherwise.
        """
        if self.done:
            return False, None

        stripped = line.strip()
        header = INPUT_HEADER.match(stripped)
        if header:
            self.inputs.append(InputCodecData(format=header.group(2)))
            return True, None

        if CODEC_SECTION_END.match(stripped):
            self.done = True
            if len(self.inputs) >= self.input_count:
                return False, self.inputs[: self.input_count]
            logger.debug(
                "Codec data incomplete: %d of %d inputs described",
                len(self.inputs),
                self.input_count,
            )
            return False, None

        if not self.inputs:
            return False, None
        current = self.inputs[-1]

        duration = DURATION.search(stripped)
        if duration and not current.duration:
            current.duration = duration.group(1)
            return True, None

        audio = AUDIO_STREAM.search(stripped)
        if audio and not current.audio:
            current.audio_details = audio.group(1)
            current.audio = audio.group(1).split(", ")[0]
            return True, None

        video = VIDEO_STREAM.search(stripped)
        if video and not current.video:
            current.video_details = video.group(1)
            current.video = video.group(1).split(", ")[0]
            return True, None

        return False, None


class LineRing:
    """Rolling buffer of output lines.

    Args:
        max_lines: Lines kept; 0 keeps everything.
        on_line: Optional callback invoked with each appended line.
    """

    def __init__(
        self, max_lines: int = 0, on_line: Callable[[str], None] | None = None
    ) -> None:
        self._lines: deque[str] = deque(maxlen=max_lines or None)
        self._on_line = on_line

    def append(self, line: str) -> None:
        self._lines.append(line)
        if self._on_line is not None:
            self._on_line(line)

    def lines(self) -> list[str]:
        return list(self._lines)

    def text(self) -> str:
        return "\n".join(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


def extract_error(stderr: str) -> str:
    """Get the trailing error message block from diagnostic output.

    Lines starting with a space or ``[`` (stream descriptions and
    per-component log lines) reset the block; what remains after the last
    such line is the engine's own error summary.
    """
    messages: list[str] = []
    for line in stderr.splitlines():
        if line.startswith((" ", "[")):
            messages = []
        else:
            messages.append(line)
    return "\n".join(messages)
