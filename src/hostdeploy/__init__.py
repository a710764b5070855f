"""hostdeploy: git-to-container deployments on a single SSH host"""

__version__ = "0.1.0"
