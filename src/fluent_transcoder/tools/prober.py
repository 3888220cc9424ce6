"""Capability probing and caching.

The prober runs the engine with one listing flag per capability kind,
parses the listing with the grammars from tools.grammars and stores the
result in a CapabilityCache. The cache lives until reset() is called; a
per-kind lock collapses concurrent probes of one kind into a single engine
invocation.

Example:
    >>> prober = CapabilityProber()
    >>> formats = prober.probe(CapabilityKind.FORMATS)
    >>> formats["mp4"].can_mux
    True
"""

import logging
import subprocess  # nosec B404 - subprocess is required for ffmpeg invocation
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from fluent_transcoder.config.models import DEFAULT_PROBE_MAX_BUFFER
from fluent_transcoder.executor.errors import ProbeError
from fluent_transcoder.tools.grammars import LINE_BREAK, parse_table
from fluent_transcoder.tools.locator import ToolPaths, get_tool_paths
from fluent_transcoder.tools.models import Capabilities, Capability, CapabilityKind

logger = logging.getLogger(__name__)

# A last diagnostic line starting with one of these does not fail a probe
WARNING_PREFIXES = ("Warning", "NOTE:")

_READ_CHUNK = 64 * 1024


class CapabilityCache:
    """Process-scoped cache of capability listings.

    Safe for concurrent readers. Population is guarded per kind so two
    threads probing the same kind trigger one engine invocation.
    """

    def __init__(self) -> None:
        self._tables: dict[CapabilityKind, dict[str, Capability]] = {}
        self._locks = {kind: threading.Lock() for kind in CapabilityKind}

    def get(self, kind: CapabilityKind) -> dict[str, Capability] | None:
        """Get a cached listing, or None if it was never populated."""
        return self._tables.get(kind)

    def get_or_populate(
        self,
        kind: CapabilityKind,
        loader: Callable[[], dict[str, Capability]],
    ) -> dict[str, Capability]:
        """Return the cached listing, running loader once if missing.

        Errors raised by loader propagate and leave the kind unpopulated.
        """
        cached = self._tables.get(kind)
        if cached is not None:
            logger.debug("Capability cache hit: %s", kind.value)
            return cached

        with self._locks[kind]:
            cached = self._tables.get(kind)
            if cached is not None:
                logger.debug("Capability cache hit: %s", kind.value)
                return cached
            table = loader()
            self._tables[kind] = table
            return table

    def reset(self, kind: CapabilityKind | None = None) -> None:
        """Drop one cached listing, or all of them."""
        if kind is None:
            self._tables.clear()
        else:
            self._tables.pop(kind, None)


_default_cache = CapabilityCache()


def get_capability_cache() -> CapabilityCache:
    """Get the process-wide capability cache."""
    return _default_cache


class CapabilityProber:
    """Queries the engine for its capabilities.

    Attributes:
        cache: Cache the listings are stored in.
        tool_paths: Locator used to find ffmpeg.
        max_buffer: Maximum listing size in bytes; larger output is an error.
        timeout: Seconds to wait for one listing.
    """

    def __init__(
        self,
        cache: CapabilityCache | None = None,
        tool_paths: ToolPaths | None = None,
        max_buffer: int = DEFAULT_PROBE_MAX_BUFFER,
        timeout: float = 10.0,
    ) -> None:
        self.cache = cache if cache is not None else get_capability_cache()
        self.tool_paths = tool_paths if tool_paths is not None else get_tool_paths()
        self.max_buffer = max_buffer
        self.timeout = timeout

    def probe(self, kind: CapabilityKind) -> dict[str, Capability]:
        """Get the listing for one capability kind.

        Args:
            kind: Capability kind to query.

        Returns:
            Mapping of capability name to record.

        Raises:
            ProbeError: If ffmpeg is missing, fails, or reports an error.
        """
        return self.cache.get_or_populate(kind, lambda: self._load(kind))

    def available_filters(self) -> dict[str, Capability]:
        """Get the filters listing."""
        return self.probe(CapabilityKind.FILTERS)

    def available_codecs(self) -> dict[str, Capability]:
        """Get the codecs listing."""
        return self.probe(CapabilityKind.CODECS)

    def available_encoders(self) -> dict[str, Capability]:
        """Get the encoders listing."""
        return self.probe(CapabilityKind.ENCODERS)

    def available_formats(self) -> dict[str, Capability]:
        """Get the formats listing."""
        return self.probe(CapabilityKind.FORMATS)

    def check_all(self) -> Capabilities:
        """Probe every capability kind concurrently.

        Returns:
            Capabilities holding all four listings.

        Raises:
            ProbeError: Aggregating every failed kind; ``errors`` maps each
                failed kind to its exception.
        """
        kinds = list(CapabilityKind)
        with ThreadPoolExecutor(max_workers=len(kinds)) as executor:
            futures = {kind: executor.submit(self.probe, kind) for kind in kinds}

        tables: dict[CapabilityKind, dict[str, Capability]] = {}
        errors: dict[CapabilityKind, Exception] = {}
        for kind, future in futures.items():
            try:
                tables[kind] = future.result()
            except ProbeError as e:
                errors[kind] = e

        if errors:
            if len(errors) == 1:
                raise ProbeError(str(next(iter(errors.values()))), errors)
            detail = "; ".join(f"{kind.value}: {e}" for kind, e in errors.items())
            raise ProbeError(f"Capability probes failed: {detail}", errors)

        return Capabilities(**{kind.value: table for kind, table in tables.items()})

    def _load(self, kind: CapabilityKind) -> dict[str, Capability]:
        ffmpeg = self.tool_paths.require_ffmpeg()
        stdout, stderr = self._run_listing(ffmpeg, kind)

        if stderr:
            last_line = LINE_BREAK.split(stderr)[-1]
            if last_line and not last_line.startswith(WARNING_PREFIXES):
                raise ProbeError(f"ffmpeg returned error: {last_line}")

        table = parse_table(kind, stdout)
        if not table and stdout.strip():
            raise ProbeError(
                f"ffmpeg {kind.flag} output has no recognizable {kind.value} entries"
            )
        return table

    def _run_listing(self, ffmpeg: Path, kind: CapabilityKind) -> tuple[str, str]:
        """Run ``ffmpeg -<kind>`` and capture its output.

        Returns:
            Tuple of (stdout, stderr) as text.

        Raises:
            ProbeError: If the process cannot be started, times out, exits
                nonzero, or writes more than max_buffer bytes to stdout.
        """
        args = [str(ffmpeg), kind.flag]
        logger.debug("Probing %s: %s", kind.value, " ".join(args))

        try:
            process = subprocess.Popen(  # nosec B603
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise ProbeError(f"Failed to run {args[0]}: {e}") from e

        stderr_chunks: list[bytes] = []

        def read_stderr() -> None:
            assert process.stderr is not None
            stderr_chunks.append(process.stderr.read())

        reader_thread = threading.Thread(target=read_stderr, daemon=True)
        reader_thread.start()

        timed_out = threading.Event()

        def on_timeout() -> None:
            timed_out.set()
            process.kill()

        timer = threading.Timer(self.timeout, on_timeout)
        timer.daemon = True
        timer.start()

        stdout = bytearray()
        overflow = False
        try:
            assert process.stdout is not None
            while chunk := process.stdout.read(_READ_CHUNK):
                stdout.extend(chunk)
                if len(stdout) > self.max_buffer:
                    overflow = True
                    process.kill()
                    break
        finally:
            timer.cancel()
            returncode = process.wait()
            reader_thread.join()
            process.stdout.close()
            process.stderr.close()

        if overflow:
            raise ProbeError(
                f"ffmpeg {kind.flag} output exceeded {self.max_buffer} bytes"
            )
        if timed_out.is_set():
            raise ProbeError(f"ffmpeg {kind.flag} timed out after {self.timeout:g}s")

        stderr = b"".join(stderr_chunks).decode("utf-8", errors="replace")
        if returncode != 0:
            tail = stderr.strip().splitlines()[-1:] or [""]
            raise ProbeError(
                f"ffmpeg {kind.flag} exited with code {returncode}: {tail[0]}"
            )

        return stdout.decode("utf-8", errors="replace"), stderr
