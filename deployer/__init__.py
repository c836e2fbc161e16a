"""Single-host container deployment with health polling and rollback."""
from .config import DeploymentConfig, load_config
from .engine import ContainerRuntime, ContainerSpec, DockerCliEngine, DockerEngine
from .errors import CommandError, DeploymentError
from .log import DeploymentLogger
from .pipeline import Deployer, DeploymentOutcome, LocalDeployer, create_deployer
from .report import DeploymentReport

__version__ = "0.1.0"

__all__ = [
    "CommandError",
    "ContainerRuntime",
    "ContainerSpec",
    "Deployer",
    "DeploymentConfig",
    "DeploymentError",
    "DeploymentLogger",
    "DeploymentOutcome",
    "DeploymentReport",
    "DockerCliEngine",
    "DockerEngine",
    "LocalDeployer",
    "create_deployer",
    "load_config",
]
