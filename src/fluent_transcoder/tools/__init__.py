"""Engine capability model, probing and executable lookup.

This package locates the engine executables, queries the engine's
capability listings (formats, codecs, encoders, filters) and caches the
parsed records for the lifetime of the process.
"""

from fluent_transcoder.tools.grammars import GRAMMARS, TableGrammar, parse_table
from fluent_transcoder.tools.locator import ToolPaths, get_tool_paths
from fluent_transcoder.tools.models import (
    Capabilities,
    CapabilityKind,
    CodecCapability,
    EncoderCapability,
    FilterCapability,
    FormatCapability,
)
from fluent_transcoder.tools.prober import (
    CapabilityCache,
    CapabilityProber,
    get_capability_cache,
)

__all__ = [
    # Models
    "Capabilities",
    "CapabilityKind",
    "CodecCapability",
    "EncoderCapability",
    "FilterCapability",
    "FormatCapability",
    # Grammars
    "GRAMMARS",
    "TableGrammar",
    "parse_table",
    # Locator
    "ToolPaths",
    "get_tool_paths",
    # Prober
    "CapabilityCache",
    "CapabilityProber",
    "get_capability_cache",
]
