"""
Periodic worker-node refresh for active clusters.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional

from ..config import get_settings
from ..models.cluster import ClusterDefinition
from ..utils.logging import get_logger

logger = get_logger(__name__)

# Returns False when the cluster is gone and its loop should end
RefreshCallback = Callable[[str], Awaitable[bool]]


class WorkerNodeRefresher:
    """Runs one background refresh loop per enabled cluster."""

    def __init__(self, refresh: Optional[RefreshCallback] = None,
                 interval_seconds: Optional[float] = None,
                 timeout_seconds: Optional[float] = None):
        provisioning = get_settings().provisioning
        self._refresh = refresh
        self.interval_seconds = interval_seconds or provisioning.refresh_interval_seconds
        self.timeout_seconds = timeout_seconds or provisioning.refresh_timeout_seconds
        self._tasks: Dict[str, asyncio.Task] = {}

    def set_refresh_callback(self, refresh: RefreshCallback) -> None:
        self._refresh = refresh

    def enable(self, definition: ClusterDefinition) -> bool:
        """Start refreshing a cluster; a no-op if it is already refreshed.

        Returns:
            True if a new refresh loop was started
        """
        cluster_name = definition.cluster_name
        if self.is_enabled(cluster_name):
            logger.debug(f"Worker refresh already enabled for cluster '{cluster_name}'")
            return False

        task = asyncio.create_task(self._refresh_loop(cluster_name))
        self._tasks[cluster_name] = task
        logger.info(f"Enabled worker refresh for cluster '{cluster_name}' every {self.interval_seconds}s")
        return True

    async def disable(self, cluster_name: str) -> bool:
        """Stop refreshing a cluster.

        Returns:
            True if a refresh loop was stopped
        """
        task = self._tasks.pop(cluster_name, None)
        if task is None:
            return False

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Disabled worker refresh for cluster '{cluster_name}'")
        return True

    def is_enabled(self, cluster_name: str) -> bool:
        task = self._tasks.get(cluster_name)
        return task is not None and not task.done()

    def active_clusters(self) -> List[str]:
        return [name for name in self._tasks if self.is_enabled(name)]

    async def shutdown(self) -> None:
        """Stop every refresh loop."""
        for cluster_name in list(self._tasks):
            await self.disable(cluster_name)

    async def _refresh_loop(self, cluster_name: str) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            if self._refresh is None:
                continue
            try:
                keep_running = await asyncio.wait_for(self._refresh(cluster_name), timeout=self.timeout_seconds)
                if keep_running is False:
                    self._tasks.pop(cluster_name, None)
                    logger.info(f"Stopped worker refresh of cluster '{cluster_name}', it is no longer registered")
                    return
                logger.debug(f"Refreshed worker nodes of cluster '{cluster_name}'")
            except asyncio.CancelledError:
                raise
            except asyncio.TimeoutError:
                logger.warning(
                    f"Worker refresh of cluster '{cluster_name}' timed out after {self.timeout_seconds}s"
                )
            except Exception as e:
                logger.error(f"Worker refresh of cluster '{cluster_name}' failed: {e}")
