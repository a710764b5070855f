"""Host + project scoped lock preventing concurrent runs"""

import os
import socket
import time

from . import shell
from .config import DeploymentSpec
from .errors import LockError
from .remote import remove_path, ssh
from .shell import Removal
from .utils import logger

LOCK_DIR = "/tmp"
STALE_AFTER = 30 * 60


class RemoteLock:
    """Lock directory on the target host, created atomically with mkdir.

    The directory holds an ``owner`` file ("<hostname> <pid> <unix time>") for
    diagnostics. A lock whose directory is older than ``stale_after`` seconds
    (by the remote clock) is considered abandoned and broken.
    """

    def __init__(self, spec: DeploymentSpec, stale_after: int = STALE_AFTER):
        self.spec = spec
        self.stale_after = stale_after
        self.path = f"{LOCK_DIR}/hostdeploy-{spec.resource_name}.lock"
        self.held = False

    def acquire(self):
        """Take the lock, breaking it once if it is stale.

        Raises:
            LockError: If a live lock is held by another run
        """
        if self._try_create():
            return

        owner = self._owner()
        age = self._age()
        if age is not None and age > self.stale_after:
            logger.warn(f"Breaking stale lock {self.path} (held by {owner}, {age}s old)")
            shell.run(ssh(self.spec, ["rm", "-rf", self.path]), error=LockError, what="break stale lock")
            if self._try_create():
                return

        raise LockError(
            f"Another run is deploying {self.spec.project_name} on {self.spec.remote_host}",
            f"lock {self.path} held by {owner}",
        )

    def release(self):
        if not self.held:
            return
        self.held = False
        if remove_path(self.spec, self.path) is Removal.FAILED:
            logger.warn(f"Could not release lock {self.path}; remove it manually")
        else:
            logger.info("Deployment lock released")

    def _try_create(self) -> bool:
        result = shell.run(
            ssh(self.spec, ["mkdir", self.path], ok_codes=(0, 1)),
            error=LockError,
            what="lock acquisition",
        )
        if result.returncode != 0:
            return False
        self.held = True
        owner = f"{socket.gethostname()} {os.getpid()} {int(time.time())}\n"
        try:
            shell.run(
                ssh(self.spec, ["tee", f"{self.path}/owner"], input=owner),
                error=LockError,
                what="lock owner record",
            )
        except BaseException:
            self.release()
            raise
        logger.info(f"Deployment lock acquired: {self.path}")
        return True

    def _owner(self) -> str:
        result = shell.run(ssh(self.spec, ["cat", f"{self.path}/owner"], fatal=False), what="read lock owner")
        return result.stdout.strip() if result.ok and result.stdout.strip() else "unknown"

    def _age(self) -> int | None:
        mtime = shell.run(ssh(self.spec, ["stat", "-c", "%Y", self.path], fatal=False), what="lock age")
        now = shell.run(ssh(self.spec, ["date", "+%s"], fatal=False), what="remote clock")
        try:
            return int(now.stdout.strip()) - int(mtime.stdout.strip())
        except ValueError:
            return None
