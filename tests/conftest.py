"""
Pytest configuration and shared fixtures
"""

import shutil
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Set
from unittest.mock import AsyncMock

import pytest

from clusterhub.cache.definition_cache import DefinitionCache
from clusterhub.exceptions import EncryptionError, RemoteCommandError
from clusterhub.models.cluster import Agents, ClusterDefinition, MetricsDatabaseConfig, Workers
from clusterhub.provisioning.config_dirs import ConfigurationDirectoryManager
from clusterhub.provisioning.coordinator import ProvisioningCoordinator
from clusterhub.provisioning.jmx import JmxAgentInstaller
from clusterhub.provisioning.metrics_db import MetricsDatabaseClient
from clusterhub.provisioning.node_refresher import WorkerNodeRefresher
from clusterhub.registry.cluster_registry import ClusterRegistry
from clusterhub.remote.executor import RemoteCommandExecutor, SSHCommandExecutor
from clusterhub.security.credentials import CredentialHandler
from clusterhub.security.encryption import EncryptionService
from clusterhub.storage.file_backend import FileDefinitionStore

CIPHER_PREFIX = "enc:"


class FakeEncryptionService(EncryptionService):
    """Reversible prefix "encryption" that counts its calls."""

    def __init__(self):
        self.encrypt_calls: List[str] = []
        self.fail = False

    def encrypt(self, plaintext: str) -> str:
        self.encrypt_calls.append(plaintext)
        if self.fail:
            raise EncryptionError("encryption", "key unavailable")
        return CIPHER_PREFIX + plaintext

    def decrypt(self, ciphertext: str) -> str:
        return ciphertext[len(CIPHER_PREFIX):]

    def is_encrypted(self, value: str) -> bool:
        return bool(value) and value.startswith(CIPHER_PREFIX)


class FakeExecutor(RemoteCommandExecutor):
    """Records remote calls; hosts in ``failing_hosts`` exit non-zero."""

    def __init__(self, failing_hosts: Optional[Set[str]] = None):
        self.failing_hosts = failing_hosts or set()
        self.calls: Dict[str, str] = {}

    async def execute(self, host, command, user=None, key_file=None, timeout=None) -> str:
        self.calls[host] = command
        if host in self.failing_hosts:
            raise RemoteCommandError(host=host, command=command, exit_code=255, stderr="Connection refused")
        return "ok"


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def definition_factory():
    """Build cluster definitions with a few knobs."""
    def build(name: str = "prod", hosts: Optional[List[str]] = None, password: Optional[str] = "secret",
              jmx: bool = False, user: str = "hadoop") -> ClusterDefinition:
        return ClusterDefinition(
            cluster_name=name,
            workers=Workers(hosts=hosts if hosts is not None else ["h1", "h2"], user=user),
            agents=Agents(user=user, password=password, ssh_auth_keys_file="/home/hadoop/.ssh/id_rsa"),
            jmx_plugin_enabled=jmx
        )
    return build


@pytest.fixture
def hanging_ssh(temp_dir):
    """An ssh stand-in that records its pid and never returns."""
    pid_file = temp_dir / "ssh.pid"
    script = temp_dir / "fake_ssh.sh"
    script.write_text(f"#!/bin/sh\necho $$ > {pid_file}\nexec sleep 30\n")
    script.chmod(0o755)
    return SSHCommandExecutor(ssh_binary=str(script), default_timeout=30), pid_file


@pytest.fixture
def encryption():
    return FakeEncryptionService()


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
async def store(temp_dir):
    """Create and initialize a file definition store."""
    store = FileDefinitionStore(storage_dir=temp_dir / "clusters")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def config_manager(temp_dir):
    return ConfigurationDirectoryManager(conf_root=temp_dir / "conf")


@pytest.fixture
def metrics_db():
    """Metrics database client that accepts every request."""
    client = AsyncMock(spec=MetricsDatabaseClient)
    client.resolve_config.side_effect = lambda name: MetricsDatabaseConfig(host="localhost", database=name)
    client.ensure_database.side_effect = lambda name: MetricsDatabaseConfig(host="localhost", database=name)
    return client


@pytest.fixture
async def node_refresher():
    refresher = WorkerNodeRefresher(interval_seconds=3600, timeout_seconds=5)
    yield refresher
    await refresher.shutdown()


@pytest.fixture
def coordinator(executor, metrics_db, config_manager, node_refresher):
    return ProvisioningCoordinator(
        jmx_installer=JmxAgentInstaller(executor, timeout=5, agent_dir="/opt/agent", agent_jar="agent.jar",
                                        download_url="", default_port=5555),
        metrics_db=metrics_db,
        config_manager=config_manager,
        node_refresher=node_refresher
    )


@pytest.fixture
async def registry(store, encryption, coordinator):
    """Registry wired with a real store and cache, fake remote collaborators."""
    registry = ClusterRegistry(store, DefinitionCache(), CredentialHandler(encryption), coordinator)
    await registry.initialize()
    yield registry
    await registry.close()
