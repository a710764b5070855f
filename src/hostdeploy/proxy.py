"""Nginx reverse proxy configuration"""

from string import Template

from . import shell
from .config import DeploymentSpec
from .errors import ProxyConfigError
from .remote import remove_path, ssh, sudo
from .shell import Removal
from .utils import logger

SITES_AVAILABLE = "/etc/nginx/sites-available"
SITES_ENABLED = "/etc/nginx/sites-enabled"
DEFAULT_SITE = f"{SITES_ENABLED}/default"
PUBLIC_PORT = 80

SITE_TEMPLATE = Template("""\
# Managed by hostdeploy for project $project

# HTTP to HTTPS redirect (enable once a certificate is installed)
# server {
#     listen 80;
#     server_name _;
#     return 301 https://$$host$$request_uri;
# }

server {
    listen $public_port;
    server_name _;

    location / {
        proxy_pass http://127.0.0.1:$port;
        proxy_set_header Host $$host;
        proxy_set_header X-Real-IP $$remote_addr;
        proxy_set_header X-Forwarded-For $$proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $$scheme;
        proxy_http_version 1.1;
        proxy_set_header Upgrade $$http_upgrade;
        proxy_set_header Connection "upgrade";
    }

    add_header X-Frame-Options DENY always;
    add_header X-Content-Type-Options nosniff always;
    add_header X-XSS-Protection "1; mode=block" always;
}
""")


def site_paths(spec: DeploymentSpec) -> tuple[str, str]:
    """(sites-available file, sites-enabled symlink) for the project"""
    filename = f"{spec.resource_name}.conf"
    return f"{SITES_AVAILABLE}/{filename}", f"{SITES_ENABLED}/{filename}"


def render_site(project: str, port) -> str:
    """Render the server block routing port 80 to ``127.0.0.1:<port>``.

    Raises:
        ProxyConfigError: If ``port`` is not a valid TCP port number
    """
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port <= 65535:
        raise ProxyConfigError(f"Invalid upstream port for Nginx: {port!r}")
    return SITE_TEMPLATE.substitute(project=project, port=port, public_port=PUBLIC_PORT)


def check_config(spec: DeploymentSpec) -> bool:
    """Run ``nginx -t``; True if the full configuration is valid."""
    result = shell.run(ssh(spec, sudo("nginx", "-t"), timeout=60, fatal=False), what="nginx -t")
    return result.ok


def reload(spec: DeploymentSpec):
    shell.run(ssh(spec, sudo("systemctl", "reload", "nginx"), timeout=60),
              error=ProxyConfigError, what="nginx reload")


def configure(spec: DeploymentSpec):
    """Install and activate the project's site, then reload Nginx.

    Nginx is only reloaded after ``nginx -t`` passes. On a failed test the
    new site is disabled again so the running configuration stays valid.

    Raises:
        ProxyConfigError: If the site cannot be written or fails validation
    """
    logger.info("Configuring Nginx reverse proxy")
    content = render_site(spec.project_name, spec.container_port)
    available, enabled = site_paths(spec)

    def step(what, argv, input=None):
        shell.run(ssh(spec, argv, timeout=60, input=input), error=ProxyConfigError, what=what)

    step("create site directories", sudo("mkdir", "-p", SITES_AVAILABLE, SITES_ENABLED))
    step("write site config", sudo("tee", available), input=content)
    step("enable site", sudo("ln", "-sf", available, enabled))
    if remove_path(spec, DEFAULT_SITE) is Removal.FAILED:
        raise ProxyConfigError("Could not disable the default Nginx site", DEFAULT_SITE)

    if not check_config(spec):
        remove_path(spec, enabled)
        raise ProxyConfigError(
            "Nginx configuration test failed; site disabled and Nginx not reloaded",
            available,
        )

    reload(spec)
    logger.success(f"Nginx routes port {PUBLIC_PORT} to 127.0.0.1:{spec.container_port}")
    logger.info("To add TLS later: sudo certbot --nginx -d <your-domain> (see /etc/nginx/ssl/README)")
