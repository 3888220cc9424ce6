"""Command building and pre-flight validation.

This module turns fluent builder calls into an ordered CommandPlan and
checks the plan against the engine's capabilities before it runs.
"""

from fluent_transcoder.command.builder import FfmpegCommand
from fluent_transcoder.command.models import CommandPlan, InputSpec, OutputSpec
from fluent_transcoder.command.options import OptionList, parse_options
from fluent_transcoder.command.validator import validate

__all__ = [
    "CommandPlan",
    "FfmpegCommand",
    "InputSpec",
    "OptionList",
    "OutputSpec",
    "parse_options",
    "validate",
]
