"""
JMX agent installation on cluster hosts.
"""

import asyncio
import shlex
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..config import get_settings
from ..models.cluster import ClusterDefinition
from ..remote.executor import RemoteCommandExecutor
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AgentPushResult:
    """Outcome of installing the agent on one host."""
    host: str
    success: bool
    output: str = ""
    error: Optional[str] = None


class JmxAgentInstaller:
    """Pushes the JMX agent to every daemon host of a cluster.

    Every host is contacted by its own task with its own timeout, so an
    unreachable host never delays or blocks the others.
    """

    def __init__(self, executor: RemoteCommandExecutor, timeout: Optional[float] = None,
                 agent_dir: Optional[str] = None, agent_jar: Optional[str] = None,
                 download_url: Optional[str] = None, default_port: Optional[int] = None):
        remote = get_settings().remote
        self.executor = executor
        self.timeout = timeout or remote.command_timeout
        self.agent_dir = agent_dir or remote.agent_dir
        self.agent_jar = agent_jar or remote.agent_jar
        self.download_url = download_url if download_url is not None else remote.agent_download_url
        self.default_port = default_port or remote.default_agent_port

    async def install_agents(self, definition: ClusterDefinition) -> Dict[str, AgentPushResult]:
        """Install the agent on all hosts concurrently.

        Returns:
            Push result per host
        """
        hosts = definition.all_daemon_hosts()
        if not hosts:
            logger.info(f"Cluster '{definition.cluster_name}' has no hosts to install JMX agents on")
            return {}

        command = self.build_install_command(definition)
        tasks = [self._push_to_host(definition, host, command) for host in hosts]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results: Dict[str, AgentPushResult] = {}
        for host, outcome in zip(hosts, outcomes):
            if isinstance(outcome, BaseException):
                results[host] = AgentPushResult(host=host, success=False, error=str(outcome))
            else:
                results[host] = outcome

        failed = [host for host, result in results.items() if not result.success]
        if failed:
            logger.warning(
                f"JMX agent installation failed on {len(failed)}/{len(hosts)} hosts "
                f"of cluster '{definition.cluster_name}': {', '.join(failed)}"
            )
        else:
            logger.info(f"Installed JMX agents on {len(hosts)} hosts of cluster '{definition.cluster_name}'")

        return results

    def build_install_command(self, definition: ClusterDefinition) -> str:
        """Shell command that installs and configures the agent on a host."""
        agent_dir = shlex.quote(self.agent_dir)
        jar_path = f"{self.agent_dir}/{self.agent_jar}"
        port = definition.agents.agent_port or self.default_port
        opts_file = f"{self.agent_dir}/{definition.cluster_name}-jmx.env"

        steps: List[str] = [f"mkdir -p {agent_dir}"]
        if self.download_url:
            steps.append(
                f"(test -f {shlex.quote(jar_path)} || "
                f"curl -fsSL -o {shlex.quote(jar_path)} {shlex.quote(self.download_url)})"
            )
        else:
            steps.append(f"test -f {shlex.quote(jar_path)}")

        lines = [f"JMX_AGENT_OPTS=-javaagent:{jar_path}={port}"]
        for label, jmx_port in self._daemon_ports(definition).items():
            lines.append(f"{label}={jmx_port}")
        content = "\n".join(lines) + "\n"
        steps.append(f"printf %s {shlex.quote(content)} > {shlex.quote(opts_file)}")

        return " && ".join(steps)

    def _daemon_ports(self, definition: ClusterDefinition) -> Dict[str, str]:
        ports = {
            "DATANODE_JMX_PORT": definition.workers.data_node_jmx_port,
            "NODEMANAGER_JMX_PORT": definition.workers.task_executor_jmx_port,
            "NAMENODE_JMX_PORT": definition.name_nodes.jmx_port,
            "RESOURCEMANAGER_JMX_PORT": definition.task_managers.jmx_port,
        }
        return {label: port for label, port in ports.items() if port}

    async def _push_to_host(self, definition: ClusterDefinition, host: str, command: str) -> AgentPushResult:
        user = definition.agents.user or definition.workers.user
        try:
            output = await asyncio.wait_for(
                self.executor.execute(
                    host,
                    command,
                    user=user,
                    key_file=definition.agents.ssh_auth_keys_file,
                    timeout=self.timeout
                ),
                timeout=self.timeout
            )
            logger.debug(f"JMX agent installed on {host}")
            return AgentPushResult(host=host, success=True, output=output)
        except asyncio.TimeoutError:
            logger.warning(f"JMX agent installation on {host} timed out after {self.timeout}s")
            return AgentPushResult(host=host, success=False, error=f"timed out after {self.timeout}s")
        except Exception as e:
            logger.warning(f"JMX agent installation on {host} failed: {e}")
            return AgentPushResult(host=host, success=False, error=str(e))
