"""Cleanup mode: remove everything a deployment created on the host"""

from .config import DeploymentSpec
from .docker import remove_containers, remove_images
from .errors import DeploymentError, ProxyConfigError
from .proxy import check_config, reload, site_paths
from .remote import remove_path
from .shell import Removal
from .utils import logger


def teardown(spec: DeploymentSpec) -> dict[str, Removal]:
    """Remove the project's containers, images, Nginx site and directory.

    Already-absent resources are fine, so repeated teardowns succeed. Real
    failures do not stop the remaining steps; they are raised together at
    the end.

    Returns:
        Mapping of resource to its removal outcome

    Raises:
        DeploymentError: If any resource existed but could not be removed
    """
    logger.info(f"Running cleanup of {spec.project_name} on {spec.ssh_target}")
    available, enabled = site_paths(spec)
    report: dict[str, Removal] = {}

    report["containers"] = remove_containers(spec)
    report["images"] = remove_images(spec)
    report[enabled] = remove_path(spec, enabled)
    report[available] = remove_path(spec, available)

    if Removal.REMOVED in (report[enabled], report[available]):
        if check_config(spec):
            try:
                reload(spec)
            except ProxyConfigError as e:
                logger.warn(str(e))
                report["nginx reload"] = Removal.FAILED
        else:
            logger.warn("Nginx configuration test failed after removing the site; not reloading")

    report[spec.remote_dir] = remove_path(spec, spec.remote_dir)

    for resource, outcome in report.items():
        logger.info(f"{resource}: {outcome.value}")

    failed = [r for r, outcome in report.items() if outcome is Removal.FAILED]
    if failed:
        raise DeploymentError("Cleanup incomplete", f"could not remove: {', '.join(failed)}")

    logger.success("Remote cleanup completed")
    return report
