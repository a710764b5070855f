"""Local git working copy and build descriptor detection"""

from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, urlsplit, urlunsplit

from . import shell
from .config import DeploymentSpec
from .errors import MissingBuildDescriptorError, SourceSyncError
from .shell import Command
from .utils import logger

COMPOSE_FILES = ("docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml")
DOCKERFILE = "Dockerfile"

GIT_TIMEOUT = 600.0

DEFAULT_DOCKERFILE = """\
# Auto-generated Dockerfile (Node.js)
FROM node:18-alpine
WORKDIR /app
COPY package*.json ./
RUN npm ci --omit=dev || npm install --omit=dev
COPY . .
EXPOSE {port}
ENV PORT={port}
CMD ["npm", "start"]
"""


@dataclass(frozen=True)
class Checkout:
    """A prepared local working copy"""

    path: Path
    project_name: str
    descriptor: str
    kind: str
    synthesized: bool = False

    @property
    def uses_compose(self) -> bool:
        return self.kind == "compose"


def authenticated_url(url: str, token: str | None) -> str:
    """Embed ``token`` in an http(s) URL that carries no credentials.

    Any other URL (ssh, file, already authenticated) is returned unchanged.
    """
    if not token:
        return url
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or "@" in parts.netloc:
        return url
    quoted = quote(token, safe="")
    logger.redact(token)
    logger.redact(quoted)
    netloc = f"{quoted}@{parts.netloc}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def _git(*args, cwd: Path | None = None) -> Command:
    argv = ("git", "-C", str(cwd), *args) if cwd else ("git", *args)
    return Command(argv=argv, timeout=GIT_TIMEOUT)


def ensure_local_checkout(spec: DeploymentSpec, workdir: Path) -> Checkout:
    """Clone the repository or fast-forward an existing working copy.

    Args:
        spec: Deployment parameters
        workdir: Directory holding local working copies

    Returns:
        Checkout with the detected (or synthesized) build descriptor

    Raises:
        SourceSyncError: If any git operation fails
        MissingBuildDescriptorError: If no build descriptor can be used
    """
    project = spec.project_name
    path = workdir / project
    remote_url = authenticated_url(spec.repo_url, spec.access_token)
    logger.info(f"Preparing local repo for {spec.display_url} (branch: {spec.branch})")

    if (path / ".git").is_dir():
        logger.info("Repo exists locally, pulling latest")
        for args, what in (
            (("fetch", "--prune", remote_url, "+refs/heads/*:refs/remotes/origin/*"), "git fetch"),
            (("checkout", spec.branch), f"git checkout {spec.branch}"),
            (("pull", "--ff-only", remote_url, spec.branch), "git pull"),
        ):
            shell.run(_git(*args, cwd=path), error=SourceSyncError, what=what)
    else:
        logger.info(f"Cloning {spec.display_url} into {path}")
        workdir.mkdir(parents=True, exist_ok=True)
        shell.run(
            _git("clone", "--branch", spec.branch, remote_url, str(path)),
            error=SourceSyncError,
            what="git clone",
        )
        if remote_url != spec.display_url:
            # Keep credentials out of .git/config
            shell.run(
                _git("remote", "set-url", "origin", spec.display_url, cwd=path),
                error=SourceSyncError,
                what="git remote set-url",
            )

    checkout = detect_build_descriptor(path, project, spec.container_port)
    logger.success(f"Local checkout ready: {path} ({checkout.descriptor})")
    return checkout


def detect_build_descriptor(path: Path, project_name: str, port: int) -> Checkout:
    """Pick the compose file or Dockerfile to deploy with.

    Compose files win over a Dockerfile. With neither present a default
    Node.js Dockerfile is written if the project has a package.json.
    """
    for name in COMPOSE_FILES:
        if (path / name).is_file():
            return Checkout(path, project_name, name, "compose")

    if (path / DOCKERFILE).is_file():
        return Checkout(path, project_name, DOCKERFILE, "dockerfile")

    if not (path / "package.json").is_file():
        raise MissingBuildDescriptorError(
            f"No Dockerfile or compose file found in {path}",
            "add a Dockerfile or docker-compose.yml to the repository",
        )

    logger.warn("No Dockerfile or compose file found, generating a default Node.js Dockerfile")
    (path / DOCKERFILE).write_text(DEFAULT_DOCKERFILE.format(port=port))
    return Checkout(path, project_name, DOCKERFILE, "dockerfile", synthesized=True)
