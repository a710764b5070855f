#!/usr/bin/env python3
"""hostdeploy CLI"""

import sys
from pathlib import Path

import click

from . import __version__, config, shell
from .errors import HostDeployError, Interrupted
from .pipeline import Pipeline
from .utils import logger
from .validate import SETTLE_SECONDS


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="hostdeploy")
@click.option(
    "--cleanup",
    is_flag=True,
    help="Remove the deployment (containers, images, Nginx site, remote files)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=config.DEFAULT_CONFIG_FILE,
    show_default=True,
    help="TOML file with a [deploy] section",
)
@click.option(
    "--workdir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Directory holding the local working copy",
)
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default="logs",
    show_default=True,
    help="Directory for run logs",
)
@click.option(
    "--settle",
    type=click.FloatRange(min=0),
    default=SETTLE_SECONDS,
    show_default=True,
    help="Seconds to wait before validating the deployment",
)
def main(cleanup: bool, config_file: Path, workdir: Path, log_dir: Path, settle: float):
    """Deploy a git repository's containers to a remote host behind Nginx

    Parameters come from environment variables, the config file, or prompts.

    \b
    Environment variables:
      GIT_URL             - Repository URL
      PAT                 - Access token for private HTTPS repositories
      BRANCH              - Branch to deploy (default: main)
      REMOTE_USER         - SSH user on the target host
      REMOTE_HOST         - Target host name or IP
      SSH_KEY             - Private key for SSH
      CONTAINER_PORT      - Port the application listens on
      REMOTE_PROJECT_DIR  - Remote directory (default: ~REMOTE_USER/<project>)

    \b
    Examples:
      hostdeploy                  # Deploy
      hostdeploy --cleanup        # Tear the deployment down
    """
    log_path = logger.open(log_dir)
    pipeline: Pipeline | None = None
    try:
        spec = config.collect_spec(config_file)
        logger.info(f"Deployment: {config.describe(spec)}")
        shell.require_tools()
        pipeline = Pipeline(spec, workdir=workdir.resolve(), settle=settle)

        if cleanup:
            pipeline.decommission()
            logger.success(f"Cleanup finished. Detailed logs: {log_path}")
        else:
            report = pipeline.deploy()
            for warning in report.warnings:
                logger.warn(f"Check not passed: {warning.name}")
            logger.success(f"Deployment completed successfully: {spec.public_url}")
            logger.info("SSL is ready for configuration, see /etc/nginx/ssl/README on the server")
            logger.info(f"Detailed logs: {log_path}")

    except (KeyboardInterrupt, click.Abort):
        _fail(pipeline, Interrupted(), log_path)
    except HostDeployError as e:
        _fail(pipeline, e, log_path)
    except Exception as e:
        _fail(pipeline, HostDeployError(f"Unexpected error: {e}"), log_path)
    finally:
        logger.close()


def _fail(pipeline: Pipeline | None, error: HostDeployError, log_path: Path):
    if pipeline is not None:
        pipeline.close()
    logger.error(f"{type(error).__name__}: {error} (exit status {error.exit_code}). See {log_path}")
    sys.exit(error.exit_code)


if __name__ == "__main__":
    main()
