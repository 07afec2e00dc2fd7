"""
nextdeploy - Provision a host and deploy a Node.js application under PM2
"""

__version__ = "0.1.0"

from .core import Deployer
from .errors import DeployerError
