"""Data models package."""

from .base import BaseResponse, ErrorResponse
from .cluster import (
    Agents,
    ClusterDefinition,
    DaemonHosts,
    HadoopUsers,
    MetricsDatabaseConfig,
    PlatformType,
    Workers,
    validate_cluster_name,
)

__all__ = [
    # Base
    "BaseResponse",
    "ErrorResponse",
    # Cluster
    "Agents",
    "ClusterDefinition",
    "DaemonHosts",
    "HadoopUsers",
    "MetricsDatabaseConfig",
    "PlatformType",
    "Workers",
    "validate_cluster_name",
]
