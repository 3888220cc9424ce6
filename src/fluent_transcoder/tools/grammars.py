"""Fixed-column grammars for the engine's capability listings.

Each listing (``-formats``, ``-codecs``, ``-encoders``, ``-filters``) is a
table of positional flag letters followed by a name and a free-text
description. Grammars are kept as data: a kind maps to an ordered tuple of
grammars, tried in order, first match wins. Lines that match no grammar
(banners, legends, separators, blank lines) are skipped.

Example:
    >>> parse_table(CapabilityKind.FORMATS, " DE  mp4   MP4 (MPEG-4 Part 14)")
    {'mp4': FormatCapability(description='MP4 (MPEG-4 Part 14)', ...)}
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from fluent_transcoder.tools.models import (
    Capability,
    CapabilityKind,
    CodecCapability,
    EncoderCapability,
    FilterCapability,
    FilterPad,
    FormatCapability,
    StreamType,
)

logger = logging.getLogger(__name__)

LINE_BREAK = re.compile(r"\r\n|\r|\n")

_STREAM_TYPES: dict[str, StreamType] = {
    "V": "video",
    "A": "audio",
    "S": "subtitle",
}


@dataclass(frozen=True)
class TableGrammar:
    """One positional grammar for a capability listing line.

    Attributes:
        name: Grammar name, used in debug logging.
        pattern: Regex anchored at both ends of the line.
        build: Turns a match into a (name, record) pair.
        reject_names: Names that identify legend/header rows, never entries.
    """

    name: str
    pattern: re.Pattern[str]
    build: Callable[[re.Match[str]], tuple[str, Capability]]
    reject_names: frozenset[str] = frozenset({"="})

    def match(self, line: str) -> tuple[str, Capability] | None:
        """Decode a line, or return None if it does not fit this grammar."""
        m = self.pattern.match(line)
        if m is None:
            return None
        name, record = self.build(m)
        if name in self.reject_names:
            return None
        return name, record


def _filter_pad(spec: str) -> FilterPad:
    if spec in ("N", "|"):
        return "none"
    return "audio" if "A" in spec else "video"


def _build_av_codec(m: re.Match[str]) -> tuple[str, Capability]:
    return m.group(7), CodecCapability(
        type=_STREAM_TYPES[m.group(3)],
        description=m.group(8).strip(),
        can_decode=m.group(1) == "D",
        can_encode=m.group(2) == "E",
    )


def _build_ff_codec(m: re.Match[str]) -> tuple[str, Capability]:
    return m.group(7), CodecCapability(
        type=_STREAM_TYPES[m.group(3)],
        description=m.group(8).strip(),
        can_decode=m.group(1) == "D",
        can_encode=m.group(2) == "E",
        draw_horiz_band=m.group(4) == "I",
        direct_rendering=m.group(5) == "L",
        weird_frame_truncation=m.group(6) == "S",
    )


def _build_encoder(m: re.Match[str]) -> tuple[str, Capability]:
    return m.group(7), EncoderCapability(
        type=_STREAM_TYPES[m.group(1)],
        description=m.group(8).strip(),
        frame_mt=m.group(2) == "F",
        slice_mt=m.group(3) == "S",
        experimental=m.group(4) == "X",
        draw_horiz_band=m.group(5) == "B",
        direct_rendering=m.group(6) == "D",
    )


def _build_format(m: re.Match[str]) -> tuple[str, Capability]:
    return m.group(3), FormatCapability(
        description=m.group(4).strip(),
        can_demux=m.group(1) == "D",
        can_mux=m.group(2) == "E",
    )


def _build_filter(m: re.Match[str]) -> tuple[str, Capability]:
    return m.group(1), FilterCapability(
        description=m.group(4).strip(),
        input=_filter_pad(m.group(2)),
        multiple_inputs=len(m.group(2)) > 1,
        output=_filter_pad(m.group(3)),
        multiple_outputs=len(m.group(3)) > 1,
    )


AV_CODEC_GRAMMAR = TableGrammar(
    name="avcodec-codecs",
    pattern=re.compile(r"^\s*([D ])([E ])([VAS])([S ])([D ])([T ]) ([^ ]+) +(.*)$"),
    build=_build_av_codec,
)

FF_CODEC_GRAMMAR = TableGrammar(
    name="ffmpeg-codecs",
    pattern=re.compile(
        r"^\s*([D.])([E.])([VAS])([I.])([L.])([S.]) ([^ ]+) +(.*)$"
    ),
    build=_build_ff_codec,
)

ENCODER_GRAMMAR = TableGrammar(
    name="encoders",
    pattern=re.compile(
        r"^\s*([VAS])([F.])([S.])([X.])([B.])([D.]) ([^ ]+) +(.*)$"
    ),
    build=_build_encoder,
)

FORMAT_GRAMMAR = TableGrammar(
    name="formats",
    pattern=re.compile(r"^\s*([D ])([E ])\s+([^ ]+)\s+(.*)$"),
    build=_build_format,
)

FILTER_GRAMMAR = TableGrammar(
    name="filters",
    pattern=re.compile(
        r"^\s*[TSC.]{3} ([^ ]+) +(AA?|VV?|N|\|)->(AA?|VV?|N|\|) +(.*)$"
    ),
    build=_build_filter,
    reject_names=frozenset({"=", "filter"}),
)

# Two codec layouts exist across engine builds; both are tried.
GRAMMARS: dict[CapabilityKind, tuple[TableGrammar, ...]] = {
    CapabilityKind.CODECS: (AV_CODEC_GRAMMAR, FF_CODEC_GRAMMAR),
    CapabilityKind.ENCODERS: (ENCODER_GRAMMAR,),
    CapabilityKind.FORMATS: (FORMAT_GRAMMAR,),
    CapabilityKind.FILTERS: (FILTER_GRAMMAR,),
}


def parse_line(kind: CapabilityKind, line: str) -> tuple[str, Capability] | None:
    """Decode one listing line with the grammars registered for a kind.

    Args:
        kind: Capability kind the line belongs to.
        line: Raw listing line.

    Returns:
        (name, record) for the first grammar that matches, or None.
    """
    for grammar in GRAMMARS[kind]:
        decoded = grammar.match(line)
        if decoded is not None:
            return decoded
    return None


def parse_table(kind: CapabilityKind, output: str) -> dict[str, Capability]:
    """Parse a full capability listing into a name -> record mapping.

    Non-matching lines are skipped; non-blank ones are logged at debug
    level so unexpected engine output can be diagnosed.

    Args:
        kind: Capability kind of the listing.
        output: Captured stdout of the engine.

    Returns:
        Mapping of capability name to record, in listing order.
    """
    table: dict[str, Capability] = {}
    skipped = 0
    for line in LINE_BREAK.split(output):
        decoded = parse_line(kind, line)
        if decoded is None:
            if line.strip():
                skipped += 1
                logger.debug("Ignoring unrecognized %s line: %r", kind.value, line)
            continue
        name, record = decoded
        table[name] = record

    logger.debug(
        "Parsed %d %s (%d lines ignored)", len(table), kind.value, skipped
    )
    return table
