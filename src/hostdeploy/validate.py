"""Post-deployment validation"""

import time
from dataclasses import dataclass, field

import httpx

from . import shell
from .config import DeploymentSpec
from .docker import log_running_containers
from .errors import ValidationError
from .proxy import check_config
from .remote import ssh, sudo
from .utils import logger

SETTLE_SECONDS = 5.0
PROBE_TIMEOUT = 10.0


@dataclass
class Check:
    name: str
    passed: bool
    fatal: bool
    detail: str = ""


@dataclass
class ValidationReport:
    """Ordered outcome of the validation checks"""

    checks: list[Check] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(c.passed for c in self.checks if c.fatal)

    @property
    def warnings(self) -> list[Check]:
        return [c for c in self.checks if not c.passed and not c.fatal]

    def add(self, name: str, passed: bool, fatal: bool, detail: str = "") -> Check:
        check = Check(name, passed, fatal, detail)
        self.checks.append(check)
        if passed:
            logger.success(name)
        elif fatal:
            logger.error(f"{name} failed{': ' + detail if detail else ''}")
            raise ValidationError(f"{name} failed", detail or None)
        else:
            logger.warn(f"{name} failed{': ' + detail if detail else ''}")
        return check


def service_active(spec: DeploymentSpec, service: str) -> bool:
    result = shell.run(
        ssh(spec, sudo("systemctl", "is-active", service), timeout=60, fatal=False),
        what=f"systemctl is-active {service}",
    )
    return result.ok


def probe_internal(spec: DeploymentSpec) -> bool:
    """curl the application port from the host itself."""
    url = f"http://127.0.0.1:{spec.container_port}"
    result = shell.run(
        ssh(spec, ["curl", "-sfS", "-o", "/dev/null", "--connect-timeout", str(int(PROBE_TIMEOUT)), url],
            timeout=PROBE_TIMEOUT + 20, fatal=False),
        what=f"health probe {url}",
    )
    return result.ok


def probe_public(spec: DeploymentSpec) -> tuple[bool, str]:
    """GET the public URL from this machine, through Nginx."""
    try:
        resp = httpx.get(spec.public_url, timeout=PROBE_TIMEOUT, follow_redirects=True)
    except httpx.HTTPError as e:
        return False, str(e)
    return resp.is_success, f"HTTP {resp.status_code}"


def validate(spec: DeploymentSpec, settle: float = SETTLE_SECONDS) -> ValidationReport:
    """Check services, proxy configuration and application health.

    The service and Nginx checks are fatal. The two HTTP probes only warn:
    firewalls outside the pipeline's control can block them.

    Raises:
        ValidationError: On the first failed fatal check
    """
    logger.info("Validating deployment")
    if settle > 0:
        time.sleep(settle)

    report = ValidationReport()
    report.add("Docker service active", service_active(spec, "docker"), fatal=True)
    log_running_containers(spec)
    report.add("Nginx service active", service_active(spec, "nginx"), fatal=True)
    report.add("Nginx configuration valid", check_config(spec), fatal=True)
    report.add(
        f"Application healthy on 127.0.0.1:{spec.container_port}",
        probe_internal(spec),
        fatal=False,
    )
    reachable, detail = probe_public(spec)
    report.add(
        f"Application reachable via {spec.public_url}",
        reachable,
        fatal=False,
        detail="" if reachable else f"{detail}; check firewall/security groups",
    )
    return report
