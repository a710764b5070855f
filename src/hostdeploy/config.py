"""Deployment parameters: collection, validation and project identity"""

import os
import re
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import unquote, urlsplit, urlunsplit

import click

from .errors import ConfigurationError
from .utils import is_non_empty_str, logger

DEFAULT_BRANCH = "main"
DEFAULT_CONFIG_FILE = "hostdeploy.toml"

# field -> (environment variable, hostdeploy.toml key, prompt)
FIELDS: dict[str, tuple[str, str | None, str]] = {
    "repo_url": ("GIT_URL", "repo_url", "Git repository URL (https://...)"),
    "access_token": ("PAT", None, "Personal Access Token (press Enter if public)"),
    "branch": ("BRANCH", "branch", "Branch"),
    "remote_user": ("REMOTE_USER", "remote_user", "Remote SSH username"),
    "remote_host": ("REMOTE_HOST", "remote_host", "Remote server IP/hostname"),
    "ssh_key": ("SSH_KEY", "ssh_key", "SSH key path (e.g. ~/.ssh/id_rsa)"),
    "container_port": (
        "CONTAINER_PORT",
        "container_port",
        "Application internal container port (e.g. 3000)",
    ),
    "remote_dir": (
        "REMOTE_PROJECT_DIR",
        "remote_dir",
        "Remote project directory (leave blank for default)",
    ),
}

REQUIRED = ("repo_url", "remote_user", "remote_host", "ssh_key", "container_port")
OPTIONAL = ("access_token", "remote_dir")


def project_name_from_url(url: str) -> str:
    """Derive the project name from a repository URL.

    The last path component with exactly one trailing ``.git`` removed, so
    ``https://example.com/org/sample.git`` and ``git@example.com:org/sample``
    both give ``sample``.

    Raises:
        ConfigurationError: If no name can be derived
    """
    base = url.strip().rstrip("/")
    base = re.split(r"[/:]", base)[-1]
    if base.endswith(".git"):
        base = base[: -len(".git")]
    if not base:
        raise ConfigurationError(f"Cannot derive a project name from repository URL: {url}")
    return base


def resource_name(project_name: str) -> str:
    """Docker/Compose-safe form of a project name (lowercase, [a-z0-9_-])."""
    name = re.sub(r"[^a-z0-9_-]+", "-", project_name.lower()).strip("-_")
    return name or "app"


def remote_home(user: str) -> str:
    return "/root" if user == "root" else f"/home/{user}"


def default_remote_dir(user: str, project_name: str) -> str:
    return f"{remote_home(user)}/{project_name}"


def normalize_remote_dir(user: str, value: str) -> str:
    """Absolute form of a remote directory override.

    A leading ``~`` means the remote user's home. Remote commands are quoted,
    so the remote shell never expands it.

    Raises:
        ConfigurationError: If the path is relative or the filesystem root
    """
    if value == "~" or value.startswith("~/"):
        value = remote_home(user) + value[1:]
    if not value.startswith("/"):
        raise ConfigurationError(f"remote_dir must be an absolute path, got {value!r}")
    value = value.rstrip("/")
    if not value:
        raise ConfigurationError("remote_dir must not be the filesystem root")
    return value


def url_credentials(url: str) -> list[str]:
    """Secrets embedded in the userinfo of an http(s) URL.

    The password when one is given, otherwise the user part (a bare token).
    Both the raw and the percent-decoded form are returned.
    """
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or "@" not in parts.netloc:
        return []
    userinfo = parts.netloc.rpartition("@")[0]
    user, sep, password = userinfo.partition(":")
    secret = password if sep else user
    return [s for s in dict.fromkeys((secret, unquote(secret))) if s]


def strip_credentials(url: str) -> str:
    """``url`` without any userinfo in an http(s) authority."""
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or "@" not in parts.netloc:
        return url
    netloc = parts.netloc.rpartition("@")[2]
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


@dataclass(frozen=True)
class DeploymentSpec:
    """Validated, immutable deployment parameters"""

    repo_url: str
    remote_user: str
    remote_host: str
    ssh_key: Path
    container_port: int
    branch: str = DEFAULT_BRANCH
    access_token: str | None = field(default=None, repr=False)
    remote_dir: str = ""

    def __post_init__(self):
        if self.remote_dir:
            remote_dir = normalize_remote_dir(self.remote_user, self.remote_dir)
        else:
            remote_dir = default_remote_dir(self.remote_user, self.project_name)
        object.__setattr__(self, "remote_dir", remote_dir)

    @property
    def project_name(self) -> str:
        return project_name_from_url(self.repo_url)

    @property
    def display_url(self) -> str:
        """Repository URL safe to log"""
        return strip_credentials(self.repo_url)

    @property
    def resource_name(self) -> str:
        return resource_name(self.project_name)

    @property
    def ssh_target(self) -> str:
        return f"{self.remote_user}@{self.remote_host}"

    @property
    def public_url(self) -> str:
        return f"http://{self.remote_host}"


def parse_port(value) -> int:
    """Parse a container port, accepting ints and numeric strings only.

    Raises:
        ConfigurationError: If the value is empty, non-numeric or out of range
    """
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ConfigurationError("Missing required input: container_port")
    if not text.isdigit():
        raise ConfigurationError(f"container_port must be a positive integer, got {text!r}")
    port = int(text)
    if not 0 < port <= 65535:
        raise ConfigurationError(f"container_port must be between 1 and 65535, got {port}")
    return port


def load_file_config(path: Path) -> dict:
    """Read the [deploy] table of a hostdeploy.toml file (empty if absent)."""
    if not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid config file {path}", str(e))
    deploy = data.get("deploy", {})
    if not isinstance(deploy, dict):
        raise ConfigurationError(f"[deploy] in {path} must be a table")
    return deploy


def collect_spec(
    config_file: Path | None = None,
    environ: dict[str, str] | None = None,
    interactive: bool | None = None,
) -> DeploymentSpec:
    """Gather and validate deployment parameters.

    Precedence (highest to lowest):
    1. Environment variables (GIT_URL, PAT, BRANCH, REMOTE_USER, ...)
    2. hostdeploy.toml [deploy] section
    3. Interactive prompts, only for values still missing

    Args:
        config_file: Path to hostdeploy.toml (defaults to ./hostdeploy.toml)
        environ: Environment mapping (defaults to os.environ)
        interactive: Prompt for missing values (defaults to stdin being a TTY)

    Returns:
        Validated DeploymentSpec

    Raises:
        ConfigurationError: Naming the first missing or invalid field
    """
    environ = os.environ if environ is None else environ
    if interactive is None:
        interactive = sys.stdin.isatty()
    file_config = load_file_config(config_file or Path.cwd() / DEFAULT_CONFIG_FILE)

    values: dict[str, str] = {}
    for name, (env_var, file_key, prompt) in FIELDS.items():
        value = environ.get(env_var)
        if not is_non_empty_str(value) and file_key is not None:
            raw = file_config.get(file_key)
            value = str(raw) if raw is not None else None
        if not is_non_empty_str(value) and interactive:
            value = _prompt(name, prompt)
        values[name] = (value or "").strip()

    for name in REQUIRED:
        if not values[name]:
            raise ConfigurationError(f"Missing required input: {name}")

    for secret in url_credentials(values["repo_url"]):
        logger.redact(secret)

    port = parse_port(values["container_port"])

    ssh_key = Path(values["ssh_key"]).expanduser()
    if not ssh_key.is_file():
        raise ConfigurationError(f"SSH key not found: {ssh_key}")

    spec = DeploymentSpec(
        repo_url=values["repo_url"],
        remote_user=values["remote_user"],
        remote_host=values["remote_host"],
        ssh_key=ssh_key,
        container_port=port,
        branch=values["branch"] or DEFAULT_BRANCH,
        access_token=values["access_token"] or None,
        remote_dir=values["remote_dir"],
    )
    logger.redact(spec.access_token)
    return spec


def _prompt(name: str, text: str) -> str:
    if name == "access_token":
        return click.prompt(text, default="", hide_input=True, show_default=False)
    if name == "branch":
        return click.prompt(text, default=DEFAULT_BRANCH)
    if name in OPTIONAL:
        return click.prompt(text, default="", show_default=False)
    return click.prompt(text)


def describe(spec: DeploymentSpec) -> str:
    """One-line, secret-free summary for the log"""
    auth = "token" if spec.access_token or url_credentials(spec.repo_url) else "anonymous"
    return (
        f"{spec.project_name} ({spec.display_url}@{spec.branch}, {auth}) -> "
        f"{spec.ssh_target}:{spec.remote_dir}, port {spec.container_port}"
    )
