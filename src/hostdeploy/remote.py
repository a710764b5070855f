"""SSH command builders and remote filesystem helpers"""

import shlex

from . import shell
from .config import DeploymentSpec
from .errors import HostDeployError, RemoteUnreachableError
from .shell import Command, Removal
from .utils import logger

SSH_CONNECT_TIMEOUT = 10


def ssh_options(spec: DeploymentSpec) -> list[str]:
    """Options shared by every SSH session (also used as rsync's -e)."""
    return [
        "-i",
        str(spec.ssh_key),
        "-o",
        "BatchMode=yes",
        "-o",
        f"ConnectTimeout={SSH_CONNECT_TIMEOUT}",
        "-o",
        "StrictHostKeyChecking=accept-new",
    ]


def ssh(
    spec: DeploymentSpec,
    argv,
    *,
    timeout: float | None = shell.DEFAULT_TIMEOUT,
    ok_codes: tuple[int, ...] = (0,),
    fatal: bool = True,
    input: str | None = None,
) -> Command:
    """Build a Command running ``argv`` on the target host.

    The remote argv is quoted with shlex so repository URLs, project names and
    paths reach the remote process as single arguments.
    """
    remote = tuple(str(a) for a in argv)
    return Command(
        argv=("ssh", *ssh_options(spec), spec.ssh_target, "--", shlex.join(remote)),
        timeout=timeout,
        ok_codes=ok_codes,
        fatal=fatal,
        input=input,
        remote=remote,
        host=spec.ssh_target,
    )


def sudo(*argv) -> tuple[str, ...]:
    return ("sudo", *(str(a) for a in argv))


def check_reachable(spec: DeploymentSpec):
    """Open a non-interactive session and run a no-op.

    Raises:
        RemoteUnreachableError: On any non-zero exit or timeout
    """
    logger.info(f"Checking SSH to {spec.ssh_target}")
    shell.run(
        ssh(spec, ["true"], timeout=SSH_CONNECT_TIMEOUT + 5),
        error=RemoteUnreachableError,
        what=f"SSH connectivity to {spec.ssh_target}",
    )
    logger.success("SSH connectivity OK")


def command_exists(spec: DeploymentSpec, binary: str, error=HostDeployError) -> bool:
    """Whether ``binary`` is on the remote PATH."""
    result = shell.run(
        ssh(spec, ["command", "-v", binary], ok_codes=(0, 1)),
        error=error,
        what=f"probe for {binary}",
    )
    return result.returncode == 0


def path_exists(spec: DeploymentSpec, path: str, error=HostDeployError) -> bool:
    """Whether ``path`` exists on the host (dangling symlinks count)."""
    result = shell.run(
        ssh(spec, sudo("test", "-e", path, "-o", "-L", path), ok_codes=(0, 1)),
        error=error,
        what=f"check for {path}",
    )
    return result.returncode == 0


def remove_path(spec: DeploymentSpec, path: str) -> Removal:
    """Recursively remove a remote file, symlink or directory if present."""
    probe = shell.run(
        ssh(spec, sudo("test", "-e", path, "-o", "-L", path), ok_codes=(0, 1), fatal=False),
        what=f"check for {path}",
    )
    if probe.returncode == 1:
        return Removal.ABSENT
    if not probe.ok:
        return Removal.FAILED
    result = shell.run(ssh(spec, sudo("rm", "-rf", path), fatal=False), what=f"remove {path}")
    return Removal.REMOVED if result.ok else Removal.FAILED
