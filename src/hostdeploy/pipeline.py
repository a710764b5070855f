"""Deploy and cleanup pipelines"""

from pathlib import Path
from typing import Callable

from . import deployer, provision, proxy, remote, source, teardown, transfer, validate
from .config import DeploymentSpec
from .errors import HostDeployError
from .lock import RemoteLock
from .shell import Removal
from .utils import logger


class Pipeline:
    """Runs the deployment steps strictly in order, failing fast.

    Hooks registered with :meth:`on_cleanup` run (newest first) from
    :meth:`close`, whether the run succeeded, failed or was interrupted.
    """

    def __init__(
        self,
        spec: DeploymentSpec,
        workdir: Path,
        settle: float = validate.SETTLE_SECONDS,
    ):
        self.spec = spec
        self.workdir = workdir
        self.settle = settle
        self._hooks: list[Callable[[], None]] = []

    def on_cleanup(self, hook: Callable[[], None]):
        self._hooks.append(hook)

    def close(self):
        """Run cleanup hooks; a failing hook never hides the original outcome."""
        while self._hooks:
            hook = self._hooks.pop()
            try:
                hook()
            except HostDeployError as e:
                logger.warn(f"Cleanup step failed: {e}")

    def _lock(self):
        lock = RemoteLock(self.spec)
        self.on_cleanup(lock.release)
        lock.acquire()

    def deploy(self) -> validate.ValidationReport:
        """Source sync -> probe -> provision -> transfer -> deploy -> proxy -> validate"""
        checkout = source.ensure_local_checkout(self.spec, self.workdir)
        remote.check_reachable(self.spec)
        self._lock()
        provision.converge(self.spec)
        transfer.sync(checkout.path, self.spec)
        deployer.deploy(self.spec, checkout)
        proxy.configure(self.spec)
        report = validate.validate(self.spec, settle=self.settle)
        self.close()
        return report

    def decommission(self) -> dict[str, Removal]:
        """Probe -> teardown"""
        remote.check_reachable(self.spec)
        self._lock()
        report = teardown.teardown(self.spec)
        self.close()
        return report
