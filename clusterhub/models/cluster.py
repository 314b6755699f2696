"""
Cluster definition data models.

Definitions are read from and written to disk and the wire in camelCase
(``clusterName``, ``jmxPluginEnabled``, ...) so that files written by
earlier deployments keep loading; Python code uses snake_case attributes.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def validate_cluster_name(name: str) -> str:
    """Check that a cluster name can be used as a single file stem.

    Returns:
        The name without surrounding whitespace

    Raises:
        ValueError: If the name is empty, starts with '.', or contains a path separator
    """
    name = name.strip() if name else ""
    if not name:
        raise ValueError("Cluster name is required")
    if "/" in name or "\\" in name or "\x00" in name or name.startswith("."):
        raise ValueError("Cluster name must not contain path separators or start with '.'")
    return name


class DefinitionModel(BaseModel):
    """Base model for persisted definition documents."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow"
    )

    def to_document(self) -> Dict:
        """Serialize to the camelCase document stored on disk."""
        return self.model_dump(by_alias=True, mode="json")


class Workers(DefinitionModel):
    """Worker hosts of a cluster."""
    hosts: List[str] = Field(default_factory=list, description="Ordered worker host identifiers")
    user: Optional[str] = Field(None, description="SSH user on worker hosts")
    data_node_jmx_port: Optional[str] = Field(None, description="DataNode JMX port")
    task_executor_jmx_port: Optional[str] = Field(None, description="NodeManager JMX port")
    spot_instances: bool = Field(default=False, description="Hosts are elastic and must be refreshed")


class DaemonHosts(DefinitionModel):
    """Hosts running a cluster-scoped master daemon."""
    hosts: List[str] = Field(default_factory=list, description="Daemon hosts")
    jmx_port: Optional[str] = Field(None, description="Daemon JMX port")


class Agents(DefinitionModel):
    """Credentials used to reach cluster hosts."""
    user: Optional[str] = Field(None, description="Agent user")
    password: Optional[str] = Field(None, description="Plaintext pending encryption, or ciphertext")
    ssh_auth_keys_file: Optional[str] = Field(None, description="Path of the SSH private key")
    agent_port: Optional[int] = Field(None, ge=1024, le=65535, description="JMX agent port")


class HadoopUsers(DefinitionModel):
    """Filesystem user settings, always derived from ``Agents`` before a write."""
    fs_user: Optional[str] = None
    fs_private_key_path: Optional[str] = None
    fs_user_password: Optional[str] = None
    has_single_user: bool = False


class PlatformType(BaseModel):
    """Descriptor of the Hadoop platform flavour served to clients."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    hadoop_type: str = "yarn"


class ClusterDefinition(DefinitionModel):
    """Durable record describing one cluster's hosts, credentials and agents."""
    cluster_name: str = Field(..., description="Unique cluster name, used as the store key")
    hadoop_distribution: str = Field(default="Apache", description="Hadoop distribution")
    hadoop_type: str = Field(default="yarn", description="Hadoop platform type")
    workers: Workers = Field(default_factory=Workers)
    agents: Agents = Field(default_factory=Agents)
    hadoop_users: HadoopUsers = Field(default_factory=HadoopUsers)
    name_nodes: DaemonHosts = Field(default_factory=DaemonHosts)
    task_managers: DaemonHosts = Field(default_factory=DaemonHosts)
    jmx_plugin_enabled: bool = Field(default=False, description="Install JMX agents on cluster hosts")
    enable_high_availability: bool = False
    cluster_ports: Dict[str, str] = Field(default_factory=dict, description="Cluster-scoped port settings")

    @field_validator('cluster_name')
    @classmethod
    def validate_cluster_name(cls, v):
        """Names become file stems, so they must be usable as one."""
        return validate_cluster_name(v)

    @property
    def host_count(self) -> int:
        """Number of worker hosts."""
        return len(self.workers.hosts)

    def all_daemon_hosts(self) -> List[str]:
        """Worker and master daemon hosts, de-duplicated, workers first."""
        seen = []
        for host in self.workers.hosts + self.name_nodes.hosts + self.task_managers.hosts:
            if host not in seen:
                seen.append(host)
        return seen

    def with_derived_hadoop_users(self) -> "ClusterDefinition":
        """Return a copy whose ``hadoop_users`` is rebuilt from ``agents``."""
        derived = self.model_copy(deep=True)
        derived.hadoop_users = HadoopUsers(
            fs_user=self.agents.user,
            fs_private_key_path=self.agents.ssh_auth_keys_file,
            fs_user_password=self.agents.password,
            has_single_user=self.hadoop_users.has_single_user
        )
        return derived


class MetricsDatabaseConfig(BaseModel):
    """Connection settings of a cluster's metrics database."""
    host: str
    port: int = Field(default=8086, ge=1, le=65535)
    username: Optional[str] = None
    password: Optional[str] = None
    database: str
    retention_period: str = "90d"

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"
