"""External command runner

Every external tool (git, ssh, rsync) is invoked through :func:`run` with a
:class:`Command` describing its argv, timeout and which exit codes count as
success. Nothing here builds shell source text.
"""

import shlex
import shutil
import subprocess
import time
from dataclasses import dataclass
from enum import Enum

from .errors import ConfigurationError, HostDeployError
from .utils import logger

DEFAULT_TIMEOUT = 900.0

LOCAL_TOOLS = ("git", "ssh", "rsync")


@dataclass(frozen=True)
class Command:
    """An external command and the outcome it is expected to have.

    ``remote`` holds the argv executed on the far side when the command is an
    SSH wrapper, ``host`` the SSH target it runs on.
    """

    argv: tuple[str, ...]
    timeout: float | None = DEFAULT_TIMEOUT
    ok_codes: tuple[int, ...] = (0,)
    fatal: bool = True
    input: str | None = None
    remote: tuple[str, ...] | None = None
    host: str | None = None

    def __str__(self) -> str:
        if self.remote is not None:
            return f"[{self.host}] {shlex.join(self.remote)}"
        return shlex.join(self.argv)


@dataclass
class CommandResult:
    """Outcome of a finished (or timed out) command"""

    command: Command
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def timed_out(self) -> bool:
        return self.returncode is None

    @property
    def ok(self) -> bool:
        return self.returncode in self.command.ok_codes

    def output(self) -> str:
        return (self.stderr.strip() or self.stdout.strip())


class Removal(Enum):
    """Result of a remove-if-exists operation."""

    REMOVED = "removed"
    ABSENT = "absent"
    FAILED = "failed"


def execute(command: Command) -> CommandResult:
    """Run ``command`` and capture its output without judging the exit status.

    A timeout yields a result with ``returncode`` None; a missing executable
    yields 127 like a shell would.
    """
    start = time.monotonic()
    try:
        proc = subprocess.run(
            list(command.argv),
            input=command.input,
            capture_output=True,
            text=True,
            timeout=command.timeout,
        )
    except subprocess.TimeoutExpired:
        return CommandResult(
            command,
            None,
            stderr=f"timed out after {command.timeout}s",
            duration=time.monotonic() - start,
        )
    except FileNotFoundError as e:
        return CommandResult(command, 127, stderr=str(e), duration=time.monotonic() - start)

    return CommandResult(
        command,
        proc.returncode,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
        duration=time.monotonic() - start,
    )


def run(
    command: Command,
    error: type[HostDeployError] = HostDeployError,
    what: str | None = None,
) -> CommandResult:
    """Run a command and enforce its outcome contract.

    Args:
        command: Command to run
        error: Exception class raised when a fatal command fails
        what: Short description used in failure messages

    Returns:
        The CommandResult (also for tolerated, non-fatal failures)

    Raises:
        error: If the command is fatal and its exit code is not accepted
    """
    logger.detail(f"$ {command}")
    result = execute(command)
    logger.detail(result.stdout.strip())
    logger.detail(result.stderr.strip())

    if result.ok:
        return result

    reason = "timed out" if result.timed_out else f"exit status {result.returncode}"
    label = what or str(command)
    if command.fatal:
        raise error(f"{label} failed: {reason}", logger.scrub(result.output()[-400:]) or None)

    logger.warn(f"{label} failed ({reason}), continuing")
    return result


def require_tools(tools: tuple[str, ...] = LOCAL_TOOLS):
    """Check that the local tools the pipeline shells out to are installed.

    Raises:
        ConfigurationError: Naming the first missing tool
    """
    for tool in tools:
        if shutil.which(tool) is None:
            raise ConfigurationError(f"{tool} is required locally but was not found on PATH")
    logger.info("Local prerequisites satisfied")
