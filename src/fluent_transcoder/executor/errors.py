"""Error hierarchy for probing, validation and process execution.

Probe, build and validation errors are raised before any process is
spawned. Once a process exists, every failure is delivered through the
single terminal ``error`` event as one of the ExecutionError subclasses,
carrying the captured stdout and diagnostic output.
"""


class TranscoderError(Exception):
    """Base class for all fluent_transcoder errors."""

    pass


class BuildError(TranscoderError):
    """Invalid command construction (e.g. two streams bound to stdin)."""

    pass


class ProbeError(TranscoderError):
    """Capability probing failed (engine invocation or listing parse).

    Attributes:
        errors: Per-kind failures when several probes ran together.
    """

    def __init__(self, message: str, errors: dict | None = None):
        super().__init__(message)
        self.errors = errors or {}


class ValidationError(TranscoderError):
    """The command requests formats or codecs the engine does not offer.

    Attributes:
        category: What was checked ("Output format", "Audio codec", ...).
        names: Every offending name in that category, in plan order.
    """

    def __init__(self, category: str, names: list[str]):
        self.category = category
        self.names = list(names)
        if len(self.names) == 1:
            msg = f"{category} {self.names[0]} is not available"
        else:
            msg = f"{category}s {', '.join(self.names)} are not available"
        super().__init__(msg)


class ExecutionError(TranscoderError):
    """A failure reported by the terminal ``error`` event.

    Attributes:
        stdout: Captured engine stdout (empty when stdout was streamed).
        stderr: Captured diagnostic output.
    """

    def __init__(self, message: str, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


class SpawnError(ExecutionError):
    """The engine executable is missing or could not be launched."""

    pass


class ToolNotFoundError(SpawnError, ProbeError):
    """A required executable could not be located.

    Attributes:
        tool: Logical tool name.
    """

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"{tool} not found")


class InputStreamError(ExecutionError):
    """Reading the bound input stream failed.

    Attributes:
        cause: The original exception raised by the stream.
    """

    def __init__(self, cause: BaseException, stdout: str = "", stderr: str = ""):
        self.cause = cause
        super().__init__(f"Input stream error: {cause}", stdout, stderr)


class OutputStreamError(ExecutionError):
    """Writing to the bound output stream failed.

    Attributes:
        cause: The original exception raised by the stream.
    """

    def __init__(self, cause: BaseException, stdout: str = "", stderr: str = ""):
        self.cause = cause
        super().__init__(f"Output stream error: {cause}", stdout, stderr)


class ProcessTimeoutError(ExecutionError):
    """The process was killed because the configured timeout elapsed.

    Attributes:
        timeout: The timeout in seconds.
    """

    def __init__(self, timeout: float, stdout: str = "", stderr: str = ""):
        self.timeout = timeout
        super().__init__(
            f"process ran into a timeout ({timeout:g}s)", stdout, stderr
        )


class SignalError(ExecutionError):
    """The process was terminated by a signal.

    Attributes:
        signal_name: Name of the signal, e.g. "SIGKILL".
    """

    def __init__(self, signal_name: str, stdout: str = "", stderr: str = ""):
        self.signal_name = signal_name
        super().__init__(
            f"ffmpeg was killed with signal {signal_name}", stdout, stderr
        )


class ExitCodeError(ExecutionError):
    """The process exited with a nonzero code.

    Attributes:
        exit_code: Process exit code.
        stderr_tail: Last diagnostic lines, also included in the message.
    """

    def __init__(
        self, exit_code: int, stderr_tail: str, stdout: str = "", stderr: str = ""
    ):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        msg = f"ffmpeg exited with code {exit_code}"
        if stderr_tail:
            msg += f": {stderr_tail}"
        super().__init__(msg, stdout, stderr)
