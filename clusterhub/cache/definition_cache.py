"""
Process-wide cache of the last known definition per cluster name.
"""

from typing import Dict, List, Optional

from ..models.cluster import ClusterDefinition
from ..utils.logging import get_logger

logger = get_logger(__name__)


class DefinitionCache:
    """Name-keyed cache of cluster definitions.

    The cache is never authoritative: a miss does not mean the cluster is
    absent, and entries may be stale with respect to the store. It lives for
    the lifetime of the process and starts empty.
    """

    def __init__(self):
        self._entries: Dict[str, ClusterDefinition] = {}

    def put(self, cluster_name: str, definition: ClusterDefinition) -> None:
        """Replace the cached entry for a name."""
        self._entries[cluster_name] = definition.model_copy(deep=True)
        logger.debug(f"Cached definition of cluster '{cluster_name}'")

    def get(self, cluster_name: str) -> Optional[ClusterDefinition]:
        """Return a copy of the cached entry, or None on a miss."""
        entry = self._entries.get(cluster_name)
        if entry is None:
            return None
        return entry.model_copy(deep=True)

    def invalidate(self, cluster_name: str) -> None:
        """Drop the cached entry for a name, if any."""
        if self._entries.pop(cluster_name, None) is not None:
            logger.debug(f"Invalidated cached definition of cluster '{cluster_name}'")

    def clear(self) -> None:
        self._entries.clear()

    def names(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, cluster_name: str) -> bool:
        return cluster_name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
