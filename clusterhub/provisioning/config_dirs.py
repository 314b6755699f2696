"""
Per-cluster monitoring configuration directories.
"""

import asyncio
import json
import shutil
import aiofiles
from pathlib import Path
from typing import Any, Dict, Optional, Union
from pydantic import ValidationError as PydanticValidationError

from ..config import get_settings
from ..exceptions import ConfigurationNotFoundError, StorageBackendError
from ..models.cluster import MetricsDatabaseConfig
from ..utils.logging import get_logger

logger = get_logger(__name__)

METRICS_DB_CONFIG_FILE = "influxdb.json"
MONITORING_CONFIG_FILE = "monitoring.json"

DEFAULT_MONITORING_CONFIG: Dict[str, Any] = {
    "jmxPollIntervalSeconds": 60,
    "workerRefreshEnabled": True,
    "alerts": {
        "diskUsagePercent": 90,
        "heapUsagePercent": 85
    }
}


class ConfigurationDirectoryManager:
    """Creates, reads and removes ``<conf_root>/<clusterName>/``."""

    def __init__(self, conf_root: Optional[Union[str, Path]] = None):
        settings = get_settings()
        self.conf_root = Path(conf_root) if conf_root else settings.storage.conf_path()
        self._metrics_defaults = settings.metrics_db

    def cluster_dir(self, cluster_name: str) -> Path:
        """Directory of one cluster; refuses names that resolve outside the conf root."""
        cluster_dir = self.conf_root / cluster_name
        if cluster_dir.resolve().parent != self.conf_root.resolve():
            raise StorageBackendError(
                f"Refusing configuration path outside {self.conf_root} for cluster {cluster_name!r}",
                backend_type="file",
                operation="resolve_configuration",
                details={"cluster_name": cluster_name}
            )
        return cluster_dir

    async def create_or_ensure(self, cluster_name: str) -> Path:
        """Create the configuration directory and default files if absent.

        Existing files are left untouched.

        Returns:
            The cluster's configuration directory
        """
        cluster_dir = self.cluster_dir(cluster_name)
        try:
            cluster_dir.mkdir(parents=True, exist_ok=True)

            metrics_file = cluster_dir / METRICS_DB_CONFIG_FILE
            if not metrics_file.exists():
                await self._write_json_file(metrics_file, self.default_metrics_db_config(cluster_name).model_dump())
                logger.info(f"Created metrics database configuration for cluster '{cluster_name}'")

            monitoring_file = cluster_dir / MONITORING_CONFIG_FILE
            if not monitoring_file.exists():
                await self._write_json_file(monitoring_file, DEFAULT_MONITORING_CONFIG)

            return cluster_dir

        except OSError as e:
            raise StorageBackendError(
                f"Failed to create configuration directory for cluster {cluster_name}",
                backend_type="file",
                operation="create_configuration",
                details={"cluster_name": cluster_name},
                cause=e
            )

    async def delete_all(self, cluster_name: str) -> bool:
        """Remove every persisted configuration of a cluster.

        Returns:
            True if a directory was removed, False if there was none
        """
        cluster_dir = self.cluster_dir(cluster_name)
        if not cluster_dir.exists():
            logger.debug(f"No configuration directory for cluster '{cluster_name}'")
            return False

        try:
            await asyncio.to_thread(shutil.rmtree, cluster_dir)
            logger.info(f"Removed configurations of cluster '{cluster_name}'")
            return True
        except OSError as e:
            raise StorageBackendError(
                f"Failed to remove configurations of cluster {cluster_name}",
                backend_type="file",
                operation="delete_configuration",
                details={"cluster_name": cluster_name},
                cause=e
            )

    async def load_metrics_db_config(self, cluster_name: str) -> MetricsDatabaseConfig:
        """Read the cluster's metrics database configuration.

        Raises:
            ConfigurationNotFoundError: If the cluster has no such configuration
        """
        metrics_file = self.cluster_dir(cluster_name) / METRICS_DB_CONFIG_FILE
        if not metrics_file.exists():
            raise ConfigurationNotFoundError(cluster_name, METRICS_DB_CONFIG_FILE)

        try:
            return MetricsDatabaseConfig.model_validate(await self._read_json_file(metrics_file))
        except FileNotFoundError:
            raise ConfigurationNotFoundError(cluster_name, METRICS_DB_CONFIG_FILE)
        except (OSError, ValueError, PydanticValidationError) as e:
            raise StorageBackendError(
                f"Failed to read metrics database configuration of cluster {cluster_name}",
                backend_type="file",
                operation="load_configuration",
                details={"cluster_name": cluster_name},
                cause=e
            )

    def default_metrics_db_config(self, cluster_name: str) -> MetricsDatabaseConfig:
        """Metrics database configuration derived from the global settings."""
        return MetricsDatabaseConfig(
            host=self._metrics_defaults.host,
            port=self._metrics_defaults.port,
            username=self._metrics_defaults.username,
            password=self._metrics_defaults.password,
            database=cluster_name,
            retention_period=self._metrics_defaults.retention_period
        )

    async def _read_json_file(self, file_path: Path) -> Dict[str, Any]:
        async with aiofiles.open(file_path, 'r') as f:
            return json.loads(await f.read())

    async def _write_json_file(self, file_path: Path, data: Dict[str, Any]) -> None:
        async with aiofiles.open(file_path, 'w') as f:
            await f.write(json.dumps(data, indent=2, default=str))
