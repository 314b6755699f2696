"""
Discovery of the live worker nodes of elastic clusters.

Clusters backed by spot instances gain and lose workers over time. The
resource manager knows which NodeManagers are currently running, so the
worker list is read from it over ssh.
"""

from typing import List, Optional

from ..config import get_settings
from ..exceptions import RemoteCommandError
from ..models.cluster import ClusterDefinition
from ..remote.executor import RemoteCommandExecutor
from ..utils.logging import get_logger

logger = get_logger(__name__)


def parse_node_list(output: str) -> List[str]:
    """Extract worker hosts from ``yarn node -list`` output.

    Data rows look like ``worker-1:45454  RUNNING  worker-1:8042  0``; the
    summary and header rows are skipped. Order is kept, duplicates dropped.
    """
    hosts: List[str] = []
    for line in output.splitlines():
        fields = line.split()
        if len(fields) < 2 or fields[0] in ("Total", "Node-Id") or ":" not in fields[0]:
            continue
        host = fields[0].rsplit(":", 1)[0]
        if host and host not in hosts:
            hosts.append(host)
    return hosts


class WorkerNodeLocator:
    """Asks a cluster's resource manager for its running worker nodes."""

    def __init__(self, executor: RemoteCommandExecutor, timeout: Optional[float] = None,
                 command: Optional[str] = None):
        remote = get_settings().remote
        self.executor = executor
        self.timeout = timeout or remote.command_timeout
        self.command = command or remote.node_list_command

    async def locate_workers(self, definition: ClusterDefinition) -> Optional[List[str]]:
        """Current worker hosts of the cluster.

        Resource manager hosts are tried in order until one answers.

        Returns:
            The running worker hosts, or None if the cluster has no resource
            manager host or reported no running workers

        Raises:
            RemoteCommandError: If no resource manager host could be queried
        """
        masters = definition.task_managers.hosts
        if not masters:
            logger.warning(
                f"Cluster '{definition.cluster_name}' uses spot instances but has no "
                f"resource manager host to list workers from"
            )
            return None

        user = definition.agents.user or definition.workers.user
        last_error: Optional[RemoteCommandError] = None
        for host in masters:
            try:
                output = await self.executor.execute(
                    host,
                    self.command,
                    user=user,
                    key_file=definition.agents.ssh_auth_keys_file,
                    timeout=self.timeout
                )
            except RemoteCommandError as e:
                logger.warning(f"Unable to list worker nodes of cluster '{definition.cluster_name}' on {host}: {e}")
                last_error = e
                continue

            hosts = parse_node_list(output)
            if not hosts:
                # Keep the stored list; a restarting resource manager reports none
                logger.warning(f"Resource manager {host} of cluster '{definition.cluster_name}' reported no running workers")
                return None
            return hosts

        raise last_error
