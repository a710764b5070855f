"""Single-container deployment backend (docker build + docker run)"""

import time

from .. import shell
from ..config import DeploymentSpec
from ..docker import docker, log_running_containers
from ..errors import DeploymentError
from ..remote import ssh
from ..utils import logger

BUILD_TIMEOUT = 1800.0


def image_tag(spec: DeploymentSpec) -> str:
    return f"{spec.resource_name}:latest"


def container_name(spec: DeploymentSpec, now: float | None = None) -> str:
    """Project name plus a timestamp, unique across partial reruns"""
    return f"{spec.resource_name}_{int(now if now is not None else time.time())}"


def deploy(spec: DeploymentSpec, descriptor: str = "Dockerfile") -> str:
    """Build the project image and run a single container from it.

    The container publishes the application port on the same host port,
    bound to loopback for Nginx only, and restarts unless manually stopped.

    Returns:
        Name of the started container
    """
    logger.info("Using Dockerfile")
    tag = image_tag(spec)
    shell.run(
        ssh(spec, docker("build", "-t", tag, "-f", f"{spec.remote_dir}/{descriptor}", spec.remote_dir),
            timeout=BUILD_TIMEOUT),
        error=DeploymentError,
        what="docker build",
    )

    name = container_name(spec)
    port = f"127.0.0.1:{spec.container_port}:{spec.container_port}"
    shell.run(
        ssh(spec, docker("run", "-d", "--name", name, "--restart", "unless-stopped", "-p", port, tag)),
        error=DeploymentError,
        what="docker run",
    )

    log_running_containers(spec)
    logger.success(f"Container {name} started from {tag}")
    return name
