"""Pre-flight capability checks for command plans.

Checks run in a fixed order: output formats, input formats, audio codecs,
video codecs. Every offending name of one category is reported in a
single ValidationError; the first category with violations is raised.
Listings are only probed when the plan actually sets a format or codec.
"""

import logging

from fluent_transcoder.command.models import PASSTHROUGH_CODEC, CommandPlan
from fluent_transcoder.executor.errors import ValidationError
from fluent_transcoder.tools.models import EncoderCapability, FormatCapability
from fluent_transcoder.tools.prober import CapabilityProber

logger = logging.getLogger(__name__)


def _unique(names: list[str]) -> list[str]:
    return list(dict.fromkeys(names))


def _check(category: str, offending: list[str]) -> None:
    if offending:
        error = ValidationError(category, _unique(offending))
        logger.info("Validation failed: %s", error)
        raise error


def check_formats(plan: CommandPlan, prober: CapabilityProber) -> None:
    """Check explicit output and input formats against ``-formats``.

    Raises:
        ValidationError: For output formats that cannot be muxed, or input
            formats that cannot be demuxed.
        ProbeError: If the formats listing cannot be obtained.
    """
    output_formats = [o.format for o in plan.outputs if o.format]
    input_formats = [i.format for i in plan.inputs if i.format]
    if not output_formats and not input_formats:
        return

    formats = prober.available_formats()

    def supports(name: str, attr: str) -> bool:
        fmt = formats.get(name)
        return isinstance(fmt, FormatCapability) and getattr(fmt, attr)

    _check("Output format", [f for f in output_formats if not supports(f, "can_mux")])
    _check("Input format", [f for f in input_formats if not supports(f, "can_demux")])


def check_codecs(plan: CommandPlan, prober: CapabilityProber) -> None:
    """Check explicit audio and video codecs against ``-encoders``.

    The ``copy`` codec is never checked.

    Raises:
        ValidationError: For codecs with no encoder of the matching type.
        ProbeError: If the encoders listing cannot be obtained.
    """
    audio = [
        o.audio_codec
        for o in plan.outputs
        if o.audio_codec and o.audio_codec != PASSTHROUGH_CODEC
    ]
    video = [
        o.video_codec
        for o in plan.outputs
        if o.video_codec and o.video_codec != PASSTHROUGH_CODEC
    ]
    if not audio and not video:
        return

    encoders = prober.available_encoders()

    def supports(name: str, stream_type: str) -> bool:
        encoder = encoders.get(name)
        return isinstance(encoder, EncoderCapability) and encoder.type == stream_type

    _check("Audio codec", [c for c in audio if not supports(c, "audio")])
    _check("Video codec", [c for c in video if not supports(c, "video")])


def validate(plan: CommandPlan, prober: CapabilityProber) -> None:
    """Verify a plan only requests what the engine supports.

    Never mutates the plan or the capability cache contents.

    Args:
        plan: Plan to check.
        prober: Prober supplying (cached) capability listings.

    Raises:
        ValidationError: First category with unsupported names.
        ProbeError: If a needed listing cannot be obtained.
    """
    check_formats(plan, prober)
    check_codecs(plan, prober)
