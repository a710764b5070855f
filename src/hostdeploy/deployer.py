"""Container deployment: clear the previous release, then start the new one"""

from .backends import compose, dockerfile
from .config import DeploymentSpec
from .docker import remove_containers, remove_images
from .errors import DeploymentError
from .shell import Removal
from .source import Checkout
from .utils import logger


def remove_previous_release(spec: DeploymentSpec):
    """Force-remove the project's existing containers and images.

    Raises:
        DeploymentError: If something exists but cannot be removed
    """
    logger.info("Cleaning up existing containers and images")
    for what, remove in (("containers", remove_containers), ("images", remove_images)):
        outcome = remove(spec)
        if outcome is Removal.FAILED:
            raise DeploymentError(f"Could not remove previous {what} of {spec.project_name}")
        if outcome is Removal.ABSENT:
            logger.info(f"No previous {what} to remove")


def deploy(spec: DeploymentSpec, checkout: Checkout):
    """Deploy with Compose when the checkout has a compose file, else Dockerfile."""
    logger.info("Deploying application on remote host")
    remove_previous_release(spec)
    if checkout.uses_compose:
        compose.deploy(spec, checkout.descriptor)
    else:
        dockerfile.deploy(spec, checkout.descriptor)
    logger.success("Remote deployment completed")
