"""
Remote provisioning driven by cluster definition changes.
"""

from .config_dirs import ConfigurationDirectoryManager
from .coordinator import (
    JmxInstallationError,
    ProvisioningCoordinator,
    ProvisioningReport,
    ProvisioningStep,
    StepOutcome,
)
from .jmx import AgentPushResult, JmxAgentInstaller
from .metrics_db import InfluxDBClient, MetricsDatabaseClient
from .node_refresher import WorkerNodeRefresher
from .worker_nodes import WorkerNodeLocator, parse_node_list

__all__ = [
    "AgentPushResult",
    "ConfigurationDirectoryManager",
    "InfluxDBClient",
    "JmxAgentInstaller",
    "JmxInstallationError",
    "MetricsDatabaseClient",
    "ProvisioningCoordinator",
    "ProvisioningReport",
    "ProvisioningStep",
    "StepOutcome",
    "WorkerNodeLocator",
    "WorkerNodeRefresher",
    "parse_node_list",
]
