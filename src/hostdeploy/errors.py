"""
hostdeploy exception hierarchy

Every fatal condition in the pipeline is one of these. Each class carries the
process exit status the CLI reports for it, so callers can tell failure
classes apart from the exit code alone.
"""

from typing import Optional


class HostDeployError(Exception):
    """Base exception for all hostdeploy errors."""

    exit_code = 1

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message} ({self.context})"
        return self.message


class ConfigurationError(HostDeployError):
    """Raised when a deployment parameter or local prerequisite is invalid."""

    exit_code = 2


class MissingBuildDescriptorError(HostDeployError):
    """Raised when the checkout has no Dockerfile or compose file."""

    exit_code = 3


class SourceSyncError(HostDeployError):
    """Raised when cloning or updating the local working copy fails."""

    exit_code = 4


class RemoteUnreachableError(HostDeployError):
    """Raised when the target host does not answer over SSH."""

    exit_code = 5


class ProvisioningError(HostDeployError):
    """Raised when installing or starting a remote component fails."""

    exit_code = 6


class TransferError(HostDeployError):
    """Raised when project files cannot be synchronised to the host."""

    exit_code = 7


class DeploymentError(HostDeployError):
    """Raised when containers cannot be built, started or removed."""

    exit_code = 8


class ProxyConfigError(HostDeployError):
    """Raised when the Nginx site cannot be written or fails validation."""

    exit_code = 9


class ValidationError(HostDeployError):
    """Raised when a mandatory post-deployment check fails."""

    exit_code = 10


class LockError(HostDeployError):
    """Raised when another run holds the project lock on the host."""

    exit_code = 11


class Interrupted(HostDeployError):
    """Raised when the operator interrupts the run."""

    exit_code = 130

    def __init__(self, message: str = "Interrupted", context: Optional[str] = None):
        super().__init__(message, context)
