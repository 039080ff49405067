"""Sync engine for S7 Webserver deployments - directory trees and WebApps."""

from .comparator import ResourceTreeDiffer, diff_webapp_resources
from .config import (
    DEFAULT_WEBAPP_CONFIG_FILE,
    DirectoryBuilderConfiguration,
    WebAppConfigParser,
    WebAppConfiguration,
    load_builder_configuration,
)
from .engine import DeploymentStep, DirectorySynchronizer, RoundExecutor
from .progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker
from .scanner import DirectoryScanner, WebAppResourceBuilder
from .webapp import WebAppDeployer

__all__ = [
    "DirectorySynchronizer",
    "WebAppDeployer",
    "ResourceTreeDiffer",
    "diff_webapp_resources",
    "DeploymentStep",
    "RoundExecutor",
    "DirectoryScanner",
    "WebAppResourceBuilder",
    "DirectoryBuilderConfiguration",
    "load_builder_configuration",
    "WebAppConfigParser",
    "WebAppConfiguration",
    "DEFAULT_WEBAPP_CONFIG_FILE",
    "SyncProgressEvent",
    "SyncProgressInfo",
    "SyncProgressTracker",
]
