"""
Metrics database lifecycle for monitored clusters.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from ..config import get_settings
from ..exceptions import ConfigurationNotFoundError, MetricsDatabaseError
from ..models.cluster import MetricsDatabaseConfig
from ..utils.logging import get_logger
from .config_dirs import ConfigurationDirectoryManager

logger = get_logger(__name__)


class MetricsDatabaseClient(ABC):
    """Creates and drops the time-series database of a cluster."""

    @abstractmethod
    async def ensure_database(self, cluster_name: str) -> MetricsDatabaseConfig:
        """Create the cluster's database if it does not exist."""

    @abstractmethod
    async def drop_database(self, config: MetricsDatabaseConfig) -> None:
        """Drop the database described by ``config``."""

    @abstractmethod
    async def resolve_config(self, cluster_name: str) -> MetricsDatabaseConfig:
        """Return the cluster's database configuration.

        Raises:
            ConfigurationNotFoundError: If the cluster has none
        """

    async def close(self) -> None:
        pass


class InfluxDBClient(MetricsDatabaseClient):
    """InfluxDB 1.x client speaking InfluxQL over the HTTP ``/query`` endpoint."""

    def __init__(self, config_manager: ConfigurationDirectoryManager,
                 timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config_manager = config_manager
        self.timeout = timeout or get_settings().metrics_db.request_timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def resolve_config(self, cluster_name: str) -> MetricsDatabaseConfig:
        return await self.config_manager.load_metrics_db_config(cluster_name)

    async def ensure_database(self, cluster_name: str) -> MetricsDatabaseConfig:
        try:
            config = await self.resolve_config(cluster_name)
        except ConfigurationNotFoundError:
            config = self.config_manager.default_metrics_db_config(cluster_name)
            logger.debug(f"Using default metrics database configuration for cluster '{cluster_name}'")

        # CREATE DATABASE is a no-op when the database already exists
        query = f'CREATE DATABASE "{_escape(config.database)}" WITH DURATION {config.retention_period}'
        await self._query(config, query, operation="create")
        logger.info(f"Ensured metrics database '{config.database}' for cluster '{cluster_name}'")
        return config

    async def drop_database(self, config: MetricsDatabaseConfig) -> None:
        await self._query(config, f'DROP DATABASE "{_escape(config.database)}"', operation="drop")
        logger.info(f"Dropped metrics database '{config.database}'")

    async def _query(self, config: MetricsDatabaseConfig, query: str, operation: str) -> Dict[str, Any]:
        params = {"q": query}
        if config.username:
            params["u"] = config.username
        if config.password:
            params["p"] = config.password

        try:
            response = await self.http_client.post(f"{config.base_url}/query", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise MetricsDatabaseError(
                config.database, operation,
                f"HTTP {e.response.status_code}: {e.response.text}", cause=e
            )
        except httpx.HTTPError as e:
            raise MetricsDatabaseError(config.database, operation, f"request failed: {e}", cause=e)
        except ValueError as e:
            raise MetricsDatabaseError(config.database, operation, "invalid JSON response", cause=e)

        for result in payload.get("results", []):
            if "error" in result:
                raise MetricsDatabaseError(config.database, operation, result["error"])
        if "error" in payload:
            raise MetricsDatabaseError(config.database, operation, payload["error"])

        return payload


def _escape(identifier: str) -> str:
    return identifier.replace("\\", "\\\\").replace('"', '\\"')
