"""Data models for engine capabilities.

This module defines dataclasses for the records parsed out of the engine's
self-report listings (``-formats``, ``-codecs``, ``-encoders``,
``-filters``) and the aggregated capability snapshot.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

StreamType = Literal["audio", "video", "subtitle"]
FilterPad = Literal["audio", "video", "none"]


class CapabilityKind(Enum):
    """Kind of capability listing the engine can report."""

    FILTERS = "filters"
    CODECS = "codecs"
    ENCODERS = "encoders"
    FORMATS = "formats"

    @property
    def flag(self) -> str:
        """Engine flag that produces this listing."""
        return f"-{self.value}"


@dataclass(frozen=True)
class FormatCapability:
    """A container format reported by ``-formats``."""

    description: str
    can_demux: bool
    can_mux: bool


@dataclass(frozen=True)
class CodecCapability:
    """A codec reported by ``-codecs``.

    The last three flags only exist in the ffmpeg-style listing; they stay
    None when the line came from an avconv-style listing.
    """

    type: StreamType
    description: str
    can_decode: bool
    can_encode: bool
    draw_horiz_band: bool | None = None
    direct_rendering: bool | None = None
    weird_frame_truncation: bool | None = None


@dataclass(frozen=True)
class EncoderCapability:
    """An encoder reported by ``-encoders``."""

    type: StreamType
    description: str
    frame_mt: bool
    slice_mt: bool
    experimental: bool
    draw_horiz_band: bool
    direct_rendering: bool


@dataclass(frozen=True)
class FilterCapability:
    """A filter reported by ``-filters``."""

    description: str
    input: FilterPad
    multiple_inputs: bool
    output: FilterPad
    multiple_outputs: bool


Capability = FormatCapability | CodecCapability | EncoderCapability | FilterCapability


@dataclass
class Capabilities:
    """Snapshot of every capability listing, as returned by check_all()."""

    filters: dict[str, FilterCapability] = field(default_factory=dict)
    codecs: dict[str, CodecCapability] = field(default_factory=dict)
    encoders: dict[str, EncoderCapability] = field(default_factory=dict)
    formats: dict[str, FormatCapability] = field(default_factory=dict)

    def get(self, kind: CapabilityKind) -> dict:
        """Get the listing for a capability kind."""
        return getattr(self, kind.value)

    def has_muxer(self, name: str) -> bool:
        """Check if a format can be written."""
        fmt = self.formats.get(name)
        return fmt is not None and fmt.can_mux

    def has_demuxer(self, name: str) -> bool:
        """Check if a format can be read."""
        fmt = self.formats.get(name)
        return fmt is not None and fmt.can_demux

    def has_encoder(self, name: str, type: StreamType) -> bool:
        """Check if an encoder of the given stream type exists."""
        encoder = self.encoders.get(name)
        return encoder is not None and encoder.type == type
