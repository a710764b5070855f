"""Docker Compose deployment backend"""

from .. import shell
from ..config import DeploymentSpec
from ..docker import log_running_containers
from ..errors import DeploymentError
from ..remote import ssh, sudo
from ..utils import logger

COMPOSE_TIMEOUT = 1800.0


def compose(spec: DeploymentSpec, descriptor: str, *argv) -> tuple[str, ...]:
    """docker-compose argv pinned to the project's name and compose file"""
    return sudo(
        "docker-compose",
        "-p",
        spec.resource_name,
        "-f",
        f"{spec.remote_dir}/{descriptor}",
        *argv,
    )


def deploy(spec: DeploymentSpec, descriptor: str):
    """Replace the project's Compose stack with a freshly built one.

    Args:
        spec: Deployment parameters
        descriptor: Compose file name inside the remote project dir
    """
    logger.info(f"Using docker-compose ({descriptor})")

    shell.run(
        ssh(spec, compose(spec, descriptor, "down", "--remove-orphans"),
            timeout=COMPOSE_TIMEOUT, fatal=False),
        what="docker-compose down",
    )
    shell.run(
        ssh(spec, compose(spec, descriptor, "pull", "--ignore-pull-failures"),
            timeout=COMPOSE_TIMEOUT, fatal=False),
        what="docker-compose pull",
    )
    shell.run(
        ssh(spec, compose(spec, descriptor, "up", "-d", "--build"), timeout=COMPOSE_TIMEOUT),
        error=DeploymentError,
        what="docker-compose up",
    )

    log_running_containers(spec)
    logger.success(f"Compose stack {spec.resource_name} is up")
