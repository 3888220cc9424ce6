"""Capability inspection commands.

Provides 'capabilities' (one listing), 'check' (all listings) and 'tools'
(located executables).
"""

import json
from dataclasses import asdict

import click

from fluent_transcoder.cli.exit_codes import ExitCode
from fluent_transcoder.executor.errors import ProbeError, ToolNotFoundError
from fluent_transcoder.tools import CapabilityKind, CapabilityProber
from fluent_transcoder.tools.models import (
    Capability,
    CodecCapability,
    EncoderCapability,
    FilterCapability,
    FormatCapability,
)


def _flag(value: bool | None, letter: str) -> str:
    return letter if value else "."


def _flags(capability: Capability) -> str:
    """Render the capability flags the way the engine lists them."""
    if isinstance(capability, FormatCapability):
        return _flag(capability.can_demux, "D") + _flag(capability.can_mux, "E")
    if isinstance(capability, CodecCapability):
        return (
            _flag(capability.can_decode, "D")
            + _flag(capability.can_encode, "E")
            + capability.type[0].upper()
        )
    if isinstance(capability, EncoderCapability):
        return (
            capability.type[0].upper()
            + _flag(capability.frame_mt, "F")
            + _flag(capability.slice_mt, "S")
            + _flag(capability.experimental, "X")
        )
    if isinstance(capability, FilterCapability):
        return f"{capability.input}->{capability.output}"
    return ""


def _get_prober(ctx: click.Context) -> CapabilityProber:
    config = ctx.obj["config"]
    return CapabilityProber(
        tool_paths=ctx.obj["tool_paths"],
        max_buffer=config.execution.probe_max_buffer,
        timeout=config.execution.probe_timeout,
    )


def _exit_for_probe_error(ctx: click.Context, error: ProbeError) -> None:
    click.echo(f"Error: {error}", err=True)
    if isinstance(error, ToolNotFoundError) or any(
        isinstance(e, ToolNotFoundError) for e in error.errors.values()
    ):
        ctx.exit(ExitCode.TOOL_NOT_AVAILABLE)
    ctx.exit(ExitCode.PROBE_FAILED)


@click.command("capabilities")
@click.argument(
    "kind",
    type=click.Choice([kind.value for kind in CapabilityKind], case_sensitive=False),
)
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output results as JSON",
)
@click.pass_context
def capabilities_command(ctx: click.Context, kind: str, json_output: bool) -> None:
    """List the formats, codecs, encoders or filters ffmpeg supports."""
    prober = _get_prober(ctx)
    try:
        listing = prober.probe(CapabilityKind(kind.lower()))
    except ProbeError as e:
        _exit_for_probe_error(ctx, e)
        return

    if json_output:
        data = {name: asdict(capability) for name, capability in listing.items()}
        click.echo(json.dumps(data, indent=2, sort_keys=True))
        return

    width = max((len(name) for name in listing), default=0)
    for name in sorted(listing):
        capability = listing[name]
        click.echo(
            f"{_flags(capability):<12} {name:<{width}}  {capability.description}"
        )


@click.command("check")
@click.pass_context
def check_command(ctx: click.Context) -> None:
    """Probe every capability listing and report their sizes."""
    prober = _get_prober(ctx)
    try:
        capabilities = prober.check_all()
    except ProbeError as e:
        _exit_for_probe_error(ctx, e)
        return

    for kind in CapabilityKind:
        click.echo(f"{kind.value:<10} {len(capabilities.get(kind))}")
    click.echo("All capability probes succeeded.")


@click.command("tools")
@click.pass_context
def tools_command(ctx: click.Context) -> None:
    """Show the located executables."""
    summary = ctx.obj["tool_paths"].summary()
    for name, path in summary.items():
        click.echo(f"{name:<8} {path}")
    if summary["ffmpeg"] == "not found":
        ctx.exit(ExitCode.TOOL_NOT_AVAILABLE)
