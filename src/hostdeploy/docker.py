"""Docker operations on the remote host (docker CLI over SSH)"""

from . import shell
from .config import DeploymentSpec
from .remote import ssh, sudo
from .shell import Removal
from .utils import logger

LIST_TIMEOUT = 120.0


def docker(*argv) -> tuple[str, ...]:
    return sudo("docker", *argv)


def belongs_to_project(name: str, resource: str) -> bool:
    """Whether a container or image repository name belongs to the project.

    Matches the bare name plus the ``<name>_...`` and ``<name>-...`` forms
    used for timestamped containers and Compose services.
    """
    name = name.lstrip("/")
    return name == resource or name.startswith((f"{resource}_", f"{resource}-"))


def _list(spec: DeploymentSpec, argv, what: str) -> list[str] | None:
    result = shell.run(ssh(spec, argv, timeout=LIST_TIMEOUT, fatal=False), what=what)
    if not result.ok:
        return None
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def project_containers(spec: DeploymentSpec) -> list[str] | None:
    """Names of all containers (running or stopped) of the project.

    Returns:
        Container names, or None if the listing itself failed
    """
    names = _list(spec, docker("ps", "-a", "--format", "{{.Names}}"), "list containers")
    if names is None:
        return None
    return [n for n in names if belongs_to_project(n, spec.resource_name)]


def project_images(spec: DeploymentSpec) -> list[str] | None:
    """``repository:tag`` references of the project's images."""
    refs = _list(spec, docker("images", "--format", "{{.Repository}}:{{.Tag}}"), "list images")
    if refs is None:
        return None
    images = []
    for ref in refs:
        repository, _, tag = ref.rpartition(":")
        if tag == "<none>" or repository == "<none>":
            continue
        if belongs_to_project(repository, spec.resource_name):
            images.append(ref)
    return images


def remove_containers(spec: DeploymentSpec) -> Removal:
    """Force-remove every container of the project."""
    names = project_containers(spec)
    if names is None:
        return Removal.FAILED
    if not names:
        return Removal.ABSENT
    logger.info(f"Removing containers: {', '.join(names)}")
    result = shell.run(ssh(spec, docker("rm", "-f", *names), fatal=False), what="remove containers")
    return Removal.REMOVED if result.ok else Removal.FAILED


def remove_images(spec: DeploymentSpec) -> Removal:
    """Force-remove every image of the project."""
    refs = project_images(spec)
    if refs is None:
        return Removal.FAILED
    if not refs:
        return Removal.ABSENT
    logger.info(f"Removing images: {', '.join(refs)}")
    result = shell.run(ssh(spec, docker("rmi", "-f", *refs), fatal=False), what="remove images")
    return Removal.REMOVED if result.ok else Removal.FAILED


def log_running_containers(spec: DeploymentSpec):
    """Write the running container table into the run log."""
    result = shell.run(
        ssh(spec, docker("ps", "--format", "table {{.Names}}\t{{.Image}}\t{{.Status}}"),
            timeout=LIST_TIMEOUT, fatal=False),
        what="list running containers",
    )
    if result.ok:
        logger.detail(f"Running containers:\n{result.stdout.rstrip()}")
