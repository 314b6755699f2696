"""
Central registry for cluster definitions.

The registry keeps the definition store, the in-memory cache and the remote
side effects of each cluster consistent on a best-effort basis: the store
write is authoritative and decides the outcome of an operation, provisioning
steps are advisory and only ever logged.
"""

import asyncio
from typing import List, Optional, Union

from ..cache.definition_cache import DefinitionCache
from ..config import Settings, get_settings
from ..exceptions import (
    ClusterNotFoundError,
    ClusterOperationError,
    ClusterValidationError,
    StorageBackendError,
)
from ..models.cluster import ClusterDefinition, PlatformType, validate_cluster_name
from ..provisioning.config_dirs import ConfigurationDirectoryManager
from ..provisioning.coordinator import ProvisioningCoordinator
from ..provisioning.jmx import JmxAgentInstaller
from ..provisioning.metrics_db import InfluxDBClient
from ..provisioning.node_refresher import WorkerNodeRefresher
from ..provisioning.worker_nodes import WorkerNodeLocator
from ..remote.executor import SSHCommandExecutor
from ..security.credentials import CredentialHandler
from ..security.encryption import FernetEncryptionService
from ..storage.base import DefinitionStore
from ..storage.file_backend import FileDefinitionStore
from ..utils.logging import get_logger, log_performance

logger = get_logger(__name__)

CLUSTER_NOT_FOUND_MESSAGE = "No cluster with name {name} exists. Please provide a valid cluster name"


class ClusterRegistry:
    """Orchestrates create, read, update and delete of cluster definitions."""

    def __init__(self, store: DefinitionStore, cache: DefinitionCache,
                 credentials: CredentialHandler, coordinator: ProvisioningCoordinator,
                 worker_locator: Optional[WorkerNodeLocator] = None):
        """Initialize cluster registry.

        Args:
            store: Authoritative definition store
            cache: Process-wide definition cache
            credentials: Agent password normalization
            coordinator: Runs the advisory provisioning steps
            worker_locator: Lists running workers of spot-instance clusters
        """
        self.store = store
        self.cache = cache
        self.credentials = credentials
        self.coordinator = coordinator
        self.worker_locator = worker_locator

        # Refresh ticks reload definitions and resync elastic workers
        self.coordinator.node_refresher.set_refresh_callback(self.refresh_worker_nodes)

    async def initialize(self) -> None:
        """Prepare the store."""
        await self.store.initialize()
        logger.info("Cluster registry initialized")

    async def close(self) -> None:
        """Stop background refreshes and release collaborators."""
        await self.coordinator.node_refresher.shutdown()
        await self.coordinator.metrics_db.close()
        await self.store.close()
        logger.info("Cluster registry closed")

    @log_performance("create_cluster")
    async def create_cluster(self, definition: ClusterDefinition) -> bool:
        """Persist a new definition and provision its remote state.

        An existing definition of the same name is overwritten.

        Args:
            definition: Incoming definition, possibly with a plaintext password

        Returns:
            True once the definition is persisted

        Raises:
            ClusterOperationError: If the store write fails
        """
        cluster_name = definition.cluster_name

        normalized = self.credentials.normalize_secrets(definition)
        normalized = normalized.with_derived_hadoop_users()

        await self._persist(normalized, operation="create")
        self.cache.put(cluster_name, normalized)

        report = await self.coordinator.on_create_or_update(normalized)
        if not report.succeeded:
            logger.warning(
                f"Cluster '{cluster_name}' persisted with failed provisioning steps: "
                f"{', '.join(report.failed_steps)}"
            )

        logger.info(f"Created cluster '{cluster_name}'")
        return True

    async def get_cluster(self, cluster_name: str) -> Union[ClusterDefinition, str]:
        """Read a definition from the store.

        Returns:
            The stored definition, or a human-readable message if there is none
        """
        try:
            return await self.load_cluster(cluster_name)
        except ClusterNotFoundError:
            logger.info(f"Cluster '{cluster_name}' requested but not found")
            return CLUSTER_NOT_FOUND_MESSAGE.format(name=cluster_name)

    async def load_cluster(self, cluster_name: str) -> ClusterDefinition:
        """Read a definition from the store and refresh its cache entry.

        Raises:
            ClusterValidationError: If the name cannot be a store key
            ClusterNotFoundError: If no definition is stored under the name
        """
        _check_cluster_name(cluster_name)
        definition = await self.store.get(cluster_name)
        self.cache.put(cluster_name, definition)
        return definition

    async def lookup_cluster(self, cluster_name: str) -> ClusterDefinition:
        """Cache-first read, falling back to the store on a miss.

        Raises:
            ClusterNotFoundError: If no definition is stored under the name
        """
        _check_cluster_name(cluster_name)
        cached = self.cache.get(cluster_name)
        if cached is not None:
            return cached
        return await self.load_cluster(cluster_name)

    async def list_cluster_names(self) -> List[str]:
        """Names of all stored definitions, sorted."""
        return sorted(await self.store.list_names())

    @log_performance("update_cluster")
    async def update_cluster(self, cluster_name: str, definition: ClusterDefinition) -> bool:
        """Replace a stored definition and re-provision its remote state.

        Args:
            cluster_name: Name of the definition to replace
            definition: New definition; its name must equal ``cluster_name``

        Returns:
            Result of the store write

        Raises:
            ClusterValidationError: If the name is invalid or the definition renames the cluster
            ClusterNotFoundError: If no definition is stored under the name
            ClusterOperationError: If the store write fails
        """
        _check_cluster_name(cluster_name)
        if definition.cluster_name != cluster_name:
            raise ClusterValidationError(
                cluster_name,
                [f"Cluster name cannot be changed to '{definition.cluster_name}'"]
            )

        try:
            previous = await self.store.get(cluster_name)
        except StorageBackendError as e:
            raise ClusterOperationError(cluster_name, "update", e.message, cause=e)

        normalized = self.credentials.normalize_secrets_for_update(definition, previous)
        normalized = normalized.with_derived_hadoop_users()

        persisted = await self._persist(normalized, operation="update")
        self.cache.put(cluster_name, normalized)

        report = await self.coordinator.on_create_or_update(normalized)
        if not report.succeeded:
            logger.warning(
                f"Cluster '{cluster_name}' updated with failed provisioning steps: "
                f"{', '.join(report.failed_steps)}"
            )

        logger.info(f"Updated cluster '{cluster_name}'")
        return persisted

    @log_performance("delete_cluster")
    async def delete_cluster(self, cluster_name: str) -> bool:
        """Remove a definition and tear down its remote state.

        Deleting an absent cluster succeeds.

        Raises:
            ClusterValidationError: If the name cannot be a store key
            ClusterOperationError: If the store delete fails; nothing else runs
        """
        _check_cluster_name(cluster_name)
        try:
            removed = await self.store.delete(cluster_name)
        except StorageBackendError as e:
            raise ClusterOperationError(cluster_name, "delete", e.message, cause=e)

        self.cache.invalidate(cluster_name)

        report = await self.coordinator.on_delete(cluster_name)
        if not report.succeeded:
            logger.warning(
                f"Cluster '{cluster_name}' deleted with failed cleanup steps: "
                f"{', '.join(report.failed_steps)}"
            )

        if removed:
            logger.info(f"Deleted cluster '{cluster_name}'")
        else:
            logger.info(f"Cluster '{cluster_name}' was already absent")
        return True

    async def count_total_hosts(self) -> int:
        """Total number of worker hosts over all stored definitions.

        Raises:
            ClusterOperationError: If any definition cannot be read
        """
        total = 0
        for cluster_name in await self.list_cluster_names():
            try:
                definition = await self.store.get(cluster_name)
            except (ClusterNotFoundError, StorageBackendError) as e:
                logger.error(f"Unable to count hosts of cluster '{cluster_name}': {e}")
                raise ClusterOperationError(cluster_name, "count hosts", e.message, cause=e)
            total += definition.host_count
        return total

    def get_default_platform_type(self) -> PlatformType:
        return PlatformType(hadoop_type="yarn")

    async def refresh_worker_nodes(self, cluster_name: str) -> bool:
        """Reload a definition and, for spot-instance clusters, resync its workers.

        Used as the worker refresher's callback. The running workers are read
        from the cluster's resource manager; a changed list is persisted and
        cached. Other clusters only get their cache entry reloaded.

        Returns:
            False if the cluster is no longer stored
        """
        try:
            definition = await self.load_cluster(cluster_name)
        except ClusterNotFoundError:
            self.cache.invalidate(cluster_name)
            logger.info(f"Cluster '{cluster_name}' no longer stored, dropping it from the cache")
            return False

        if not definition.workers.spot_instances or self.worker_locator is None:
            return True

        hosts = await self.worker_locator.locate_workers(definition)
        if hosts is None or hosts == definition.workers.hosts:
            return True

        refreshed = definition.model_copy(deep=True)
        refreshed.workers.hosts = hosts
        await self._persist(refreshed, operation="refresh workers of")
        self.cache.put(cluster_name, refreshed)

        logger.info(
            f"Worker nodes of cluster '{cluster_name}' changed",
            extra={
                'cluster_name': cluster_name,
                'added': [host for host in hosts if host not in definition.workers.hosts],
                'removed': [host for host in definition.workers.hosts if host not in hosts]
            }
        )
        return True

    async def _persist(self, definition: ClusterDefinition, operation: str) -> bool:
        try:
            return await self.store.put(definition)
        except StorageBackendError as e:
            logger.error(f"Failed to {operation} cluster '{definition.cluster_name}': {e}")
            raise ClusterOperationError(definition.cluster_name, operation, e.message, cause=e)


def _check_cluster_name(cluster_name: str) -> None:
    """Reject names that would escape the store or configuration directories."""
    try:
        validate_cluster_name(cluster_name)
    except ValueError as e:
        raise ClusterValidationError(cluster_name, [str(e)])


def build_cluster_registry(settings: Optional[Settings] = None) -> ClusterRegistry:
    """Wire a registry with the file store, Fernet, ssh and InfluxDB collaborators."""
    settings = settings or get_settings()

    store = FileDefinitionStore(
        storage_dir=settings.storage.clusters_path(),
        extension=settings.storage.file_extension
    )
    credentials = CredentialHandler(FernetEncryptionService(
        secret_key=settings.security.secret_key,
        salt=settings.security.key_salt
    ))

    executor = SSHCommandExecutor(
        ssh_binary=settings.remote.ssh_binary,
        port=settings.remote.ssh_port,
        connect_timeout=settings.remote.connect_timeout,
        default_timeout=settings.remote.command_timeout
    )
    config_manager = ConfigurationDirectoryManager(settings.storage.conf_path())
    coordinator = ProvisioningCoordinator(
        jmx_installer=JmxAgentInstaller(executor, timeout=settings.remote.command_timeout),
        metrics_db=InfluxDBClient(config_manager, timeout=settings.metrics_db.request_timeout),
        config_manager=config_manager,
        node_refresher=WorkerNodeRefresher(
            interval_seconds=settings.provisioning.refresh_interval_seconds,
            timeout_seconds=settings.provisioning.refresh_timeout_seconds
        )
    )

    return ClusterRegistry(
        store, DefinitionCache(), credentials, coordinator,
        worker_locator=WorkerNodeLocator(executor, timeout=settings.remote.command_timeout)
    )


class GlobalClusterRegistry:
    """Singleton cluster registry for global use."""

    _instance: Optional[ClusterRegistry] = None
    _lock = asyncio.Lock()

    @classmethod
    async def get_instance(cls, settings: Optional[Settings] = None) -> ClusterRegistry:
        """Get the global cluster registry instance.

        Args:
            settings: Settings to build the registry from (only used on first call)

        Returns:
            Global ClusterRegistry instance
        """
        if cls._instance is None:
            async with cls._lock:
                if cls._instance is None:
                    registry = build_cluster_registry(settings)
                    await registry.initialize()
                    cls._instance = registry
                    logger.info("Created global cluster registry instance")

        return cls._instance

    @classmethod
    async def reset_instance(cls) -> None:
        """Close and drop the global instance."""
        async with cls._lock:
            if cls._instance is not None:
                await cls._instance.close()
            cls._instance = None
            logger.info("Reset global cluster registry instance")


async def get_cluster_registry() -> ClusterRegistry:
    """Get the global cluster registry instance."""
    return await GlobalClusterRegistry.get_instance()
