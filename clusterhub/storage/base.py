"""
Abstract base class for definition stores.
"""

from abc import ABC, abstractmethod
from typing import List
from ..models.cluster import ClusterDefinition


class DefinitionStore(ABC):
    """Durable name -> definition persistence."""

    @abstractmethod
    async def initialize(self) -> bool:
        """Initialize the store.

        Returns:
            True if initialization was successful

        Raises:
            StorageBackendError: If initialization fails
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the store and cleanup resources."""
        pass

    @abstractmethod
    async def put(self, definition: ClusterDefinition) -> bool:
        """Write the full definition under its name, replacing prior content.

        Args:
            definition: Cluster definition to persist

        Returns:
            True if the write was successful

        Raises:
            StorageBackendError: If the write fails
        """
        pass

    @abstractmethod
    async def get(self, cluster_name: str) -> ClusterDefinition:
        """Load the definition stored under a name.

        Args:
            cluster_name: Cluster name

        Returns:
            The stored definition

        Raises:
            ClusterNotFoundError: If nothing is stored under the name
            StorageBackendError: If the read fails
        """
        pass

    @abstractmethod
    async def delete(self, cluster_name: str) -> bool:
        """Remove the definition stored under a name.

        Deleting an absent name is a successful no-op.

        Args:
            cluster_name: Cluster name

        Returns:
            True if an entry was removed, False if none existed

        Raises:
            StorageBackendError: If the delete fails
        """
        pass

    @abstractmethod
    async def list_names(self) -> List[str]:
        """Enumerate all stored names.

        The listing is not isolated from concurrent writers: a name created
        or deleted during the scan may or may not appear.

        Returns:
            Stored names, in implementation-defined order

        Raises:
            StorageBackendError: If the listing fails
        """
        pass

    @abstractmethod
    async def exists(self, cluster_name: str) -> bool:
        """Check whether a definition is stored under a name."""
        pass
