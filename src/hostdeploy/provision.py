"""Remote environment convergence (Docker, Docker Compose, Nginx)"""

from dataclasses import dataclass
from typing import Callable

from . import shell
from .config import DeploymentSpec
from .errors import ProvisioningError
from .remote import command_exists, path_exists, ssh, sudo
from .utils import logger

INSTALL_TIMEOUT = 1800.0

DOCKER_INSTALL_URL = "https://get.docker.com"
DOCKER_INSTALL_SCRIPT = "/tmp/get-docker.sh"
COMPOSE_RELEASE_URL = (
    "https://github.com/docker/compose/releases/latest/download/docker-compose-{system}-{machine}"
)
COMPOSE_BINARY = "/usr/local/bin/docker-compose"

SSL_DIR = "/etc/nginx/ssl"
SSL_README = """\
# SSL Certificate Directory
#
# To enable SSL:
# 1. Install Certbot: sudo apt-get install certbot python3-certbot-nginx
# 2. Get certificate: sudo certbot --nginx -d yourdomain.com
# 3. Certbot will automatically update the Nginx configuration
#
# For self-signed certificates (testing):
# sudo openssl req -x509 -nodes -days 365 -newkey rsa:2048 \\
#   -keyout /etc/nginx/ssl/selfsigned.key \\
#   -out /etc/nginx/ssl/selfsigned.crt
"""


@dataclass(frozen=True)
class Component:
    """A runtime dependency the host must have"""

    name: str
    binary: str
    install: Callable[[DeploymentSpec], None]
    service: str | None = None


def _step(spec: DeploymentSpec, component: str, what: str, argv, *, fatal=True, input=None):
    return shell.run(
        ssh(spec, argv, timeout=INSTALL_TIMEOUT, fatal=fatal, input=input),
        error=ProvisioningError,
        what=f"{component}: {what}",
    )


def install_docker(spec: DeploymentSpec):
    _step(spec, "docker", "download install script",
          ["curl", "-fsSL", DOCKER_INSTALL_URL, "-o", DOCKER_INSTALL_SCRIPT])
    _step(spec, "docker", "install", sudo("sh", DOCKER_INSTALL_SCRIPT))
    _step(spec, "docker", "add user to docker group",
          sudo("usermod", "-aG", "docker", spec.remote_user), fatal=False)


def install_compose(spec: DeploymentSpec):
    system = _step(spec, "docker-compose", "detect kernel", ["uname", "-s"]).stdout.strip()
    machine = _step(spec, "docker-compose", "detect architecture", ["uname", "-m"]).stdout.strip()
    url = COMPOSE_RELEASE_URL.format(system=system, machine=machine)
    _step(spec, "docker-compose", "download", sudo("curl", "-fsSL", url, "-o", COMPOSE_BINARY))
    _step(spec, "docker-compose", "make executable", sudo("chmod", "+x", COMPOSE_BINARY))


def install_nginx(spec: DeploymentSpec):
    """Install Nginx with apt-get (Debian family) or dnf/yum (RedHat family)."""
    if command_exists(spec, "apt-get", error=ProvisioningError):
        _step(spec, "nginx", "apt-get update", sudo("apt-get", "update", "-y"))
        _step(spec, "nginx", "apt-get install",
              sudo("env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "install", "-y", "nginx"))
        return

    for manager in ("dnf", "yum"):
        if command_exists(spec, manager, error=ProvisioningError):
            _step(spec, "nginx", "install epel-release",
                  sudo(manager, "install", "-y", "epel-release"), fatal=False)
            _step(spec, "nginx", f"{manager} install", sudo(manager, "install", "-y", "nginx"))
            return

    raise ProvisioningError(
        "nginx: no supported package manager found",
        f"expected apt-get, dnf or yum on {spec.remote_host}",
    )


COMPONENTS = (
    Component("docker", "docker", install_docker, service="docker"),
    Component("docker-compose", "docker-compose", install_compose),
    Component("nginx", "nginx", install_nginx, service="nginx"),
)


def converge(spec: DeploymentSpec) -> list[str]:
    """Bring the host to the desired state, installing only what is missing.

    Safe to re-run: present components are left alone apart from making sure
    their services are enabled and running.

    Args:
        spec: Deployment parameters

    Returns:
        Names of the components installed by this call

    Raises:
        ProvisioningError: Naming the component whose step failed
    """
    logger.info("Preparing remote environment")
    installed = []

    for component in COMPONENTS:
        if command_exists(spec, component.binary, error=ProvisioningError):
            logger.info(f"{component.name} already installed")
        else:
            logger.info(f"Installing {component.name}...")
            component.install(spec)
            installed.append(component.name)
            logger.success(f"{component.name} installed")

        if component.service:
            _step(spec, component.name, "enable service",
                  sudo("systemctl", "enable", "--now", component.service))

    ensure_tls_placeholder(spec)
    report_inventory(spec)
    logger.success("Remote environment prepared")
    return installed


def ensure_tls_placeholder(spec: DeploymentSpec):
    """Create the certificate directory with a README on how to fill it."""
    _step(spec, "ssl", "create directory", sudo("mkdir", "-p", SSL_DIR))
    readme = f"{SSL_DIR}/README"
    if not path_exists(spec, readme, error=ProvisioningError):
        _step(spec, "ssl", "write README", sudo("tee", readme), input=SSL_README)
    logger.info("SSL directory ready; to enable HTTPS later run: sudo certbot --nginx -d <your-domain>")


def report_inventory(spec: DeploymentSpec):
    """Log installed versions and service states (informational only)."""
    checks = (
        ("Docker", ["docker", "--version"]),
        ("Docker Compose", ["docker-compose", "--version"]),
        ("Nginx", ["nginx", "-v"]),
        ("Docker service", ["systemctl", "is-active", "docker"]),
        ("Nginx service", ["systemctl", "is-active", "nginx"]),
    )
    for label, argv in checks:
        result = shell.execute(ssh(spec, argv, timeout=60))
        if result.timed_out or result.returncode == 127:
            value = "NOT FOUND"
        else:
            value = (result.output() or "unknown").splitlines()[0]
        logger.info(f"{label}: {value}")
