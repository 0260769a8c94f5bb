"""Adset provisioning, payload building and batch deployment."""

from .deployer import CombinationDeployer, DeployOutcome, DeployState, DeploymentTarget, UploadCache
from .orchestrator import BatchOrchestrator, default_client_factory
from .provisioner import ResourceProvisioner

__all__ = [
    "BatchOrchestrator",
    "CombinationDeployer",
    "DeployOutcome",
    "DeployState",
    "DeploymentTarget",
    "ResourceProvisioner",
    "UploadCache",
    "default_client_factory",
]
