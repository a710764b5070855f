"""Mirror the local project tree to the remote host (rsync over SSH)"""

import shlex
from pathlib import Path

from . import shell
from .config import DeploymentSpec
from .errors import TransferError
from .remote import ssh, ssh_options, sudo
from .shell import Command
from .utils import logger

TRANSFER_TIMEOUT = 1800.0

EXCLUDES = (".git",)


def build_rsync_cmd(local_tree: Path, spec: DeploymentSpec) -> Command:
    """rsync command mirroring ``local_tree`` into the remote project dir.

    ``--delete`` removes remote files that no longer exist locally.
    """
    remote_shell = shlex.join(["ssh", *ssh_options(spec)])
    argv = ["rsync", "-az", "--delete", "-e", remote_shell]
    for pattern in EXCLUDES:
        argv += ["--exclude", pattern]
    # Trailing slashes copy the tree's contents, not the directory itself
    argv += [f"{local_tree}/", f"{spec.ssh_target}:{spec.remote_dir}/"]
    return Command(argv=tuple(argv), timeout=TRANSFER_TIMEOUT)


def sync(local_tree: Path, spec: DeploymentSpec):
    """Create the remote project directory and mirror the local tree into it.

    Raises:
        TransferError: If the directory cannot be prepared or rsync fails
    """
    logger.info(f"Transferring project to {spec.ssh_target}:{spec.remote_dir}")
    owner = f"{spec.remote_user}:{spec.remote_user}"
    shell.run(ssh(spec, sudo("mkdir", "-p", spec.remote_dir)), error=TransferError,
              what="create remote directory")
    shell.run(ssh(spec, sudo("chown", owner, spec.remote_dir)), error=TransferError,
              what="set remote directory owner")
    shell.run(build_rsync_cmd(local_tree, spec), error=TransferError, what="rsync")
    logger.success("Project files transferred")
