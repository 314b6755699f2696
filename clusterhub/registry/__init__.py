"""
Cluster registry components.
"""

from .cluster_registry import (
    CLUSTER_NOT_FOUND_MESSAGE,
    ClusterRegistry,
    GlobalClusterRegistry,
    build_cluster_registry,
    get_cluster_registry,
)

__all__ = [
    "CLUSTER_NOT_FOUND_MESSAGE",
    "ClusterRegistry",
    "GlobalClusterRegistry",
    "build_cluster_registry",
    "get_cluster_registry",
]
