"""
Tests for cluster registry functionality.
"""

import pytest
from unittest.mock import AsyncMock, patch

from clusterhub.exceptions import (
    ClusterNotFoundError,
    ClusterOperationError,
    ClusterValidationError,
    MetricsDatabaseError,
    RemoteCommandError,
    StorageBackendError
)
from clusterhub.models.cluster import DaemonHosts, PlatformType
from clusterhub.provisioning.coordinator import ProvisioningReport, StepOutcome
from clusterhub.provisioning.worker_nodes import WorkerNodeLocator, parse_node_list
from clusterhub.registry.cluster_registry import (
    CLUSTER_NOT_FOUND_MESSAGE,
    ClusterRegistry,
    GlobalClusterRegistry,
    build_cluster_registry
)
from clusterhub.config import Settings
from clusterhub.remote.executor import RemoteCommandExecutor


class TestCreateCluster:
    """Test ClusterRegistry.create_cluster."""

    async def test_create_then_get_returns_encrypted_definition(self, registry, definition_factory):
        definition = definition_factory("prod", password="secret")

        assert await registry.create_cluster(definition) is True

        loaded = await registry.get_cluster("prod")
        assert loaded.cluster_name == "prod"
        assert loaded.workers.hosts == ["h1", "h2"]
        assert loaded.agents.password == "enc:secret"

    async def test_create_derives_hadoop_users_from_agents(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod", password="secret", user="hdfs"))

        loaded = await registry.load_cluster("prod")
        assert loaded.hadoop_users.fs_user == "hdfs"
        assert loaded.hadoop_users.fs_private_key_path == "/home/hadoop/.ssh/id_rsa"
        assert loaded.hadoop_users.fs_user_password == "enc:secret"

    async def test_create_does_not_mutate_input(self, registry, definition_factory):
        definition = definition_factory("prod", password="secret")

        await registry.create_cluster(definition)

        assert definition.agents.password == "secret"

    async def test_create_skips_already_encrypted_password(self, registry, encryption, definition_factory):
        await registry.create_cluster(definition_factory("prod", password="enc:secret"))

        assert encryption.encrypt_calls == []
        assert (await registry.load_cluster("prod")).agents.password == "enc:secret"

    async def test_create_populates_cache(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod"))

        cached = registry.cache.get("prod")
        assert cached is not None
        assert cached.agents.password == "enc:secret"

    async def test_create_overwrites_existing_name(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod", hosts=["h1"]))
        await registry.create_cluster(definition_factory("prod", hosts=["h7", "h8", "h9"]))

        assert (await registry.load_cluster("prod")).workers.hosts == ["h7", "h8", "h9"]
        assert await registry.list_cluster_names() == ["prod"]

    async def test_create_persists_when_encryption_fails(self, registry, encryption, definition_factory):
        encryption.fail = True

        assert await registry.create_cluster(definition_factory("prod", password="secret")) is True

        assert (await registry.load_cluster("prod")).agents.password == "secret"

    async def test_create_store_failure_runs_nothing_else(self, registry, definition_factory):
        registry.store.put = AsyncMock(side_effect=StorageBackendError("disk full", backend_type="file"))

        with patch.object(registry.coordinator, "on_create_or_update", AsyncMock()) as provisioning:
            with pytest.raises(ClusterOperationError) as exc_info:
                await registry.create_cluster(definition_factory("prod"))

        assert exc_info.value.operation == "create"
        provisioning.assert_not_called()
        assert "prod" not in registry.cache

    async def test_create_with_jmx_pushes_to_each_host_independently(self, registry, executor, definition_factory):
        executor.failing_hosts = {"h2"}

        result = await registry.create_cluster(definition_factory("prod", hosts=["h1", "h2"], jmx=True))

        assert result is True
        assert set(executor.calls) == {"h1", "h2"}
        assert "prod" in await registry.list_cluster_names()

    async def test_create_without_jmx_does_not_contact_hosts(self, registry, executor, definition_factory):
        await registry.create_cluster(definition_factory("prod", jmx=False))

        assert executor.calls == {}

    async def test_create_prepares_metrics_storage_and_refresh(self, registry, metrics_db, config_manager,
                                                               definition_factory):
        await registry.create_cluster(definition_factory("prod"))

        metrics_db.ensure_database.assert_awaited_once_with("prod")
        assert config_manager.cluster_dir("prod").exists()
        assert registry.coordinator.node_refresher.is_enabled("prod")

    async def test_create_succeeds_when_metrics_database_is_down(self, registry, metrics_db, definition_factory):
        metrics_db.ensure_database.side_effect = MetricsDatabaseError("prod", "create", "connection refused")

        assert await registry.create_cluster(definition_factory("prod")) is True
        assert "prod" in await registry.list_cluster_names()


class TestReadCluster:
    """Test the read operations."""

    async def test_get_unknown_cluster_returns_message(self, registry):
        result = await registry.get_cluster("ghost")

        assert result == CLUSTER_NOT_FOUND_MESSAGE.format(name="ghost")
        assert result == "No cluster with name ghost exists. Please provide a valid cluster name"

    async def test_load_unknown_cluster_raises(self, registry):
        with pytest.raises(ClusterNotFoundError):
            await registry.load_cluster("ghost")

    async def test_get_populates_cache(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod"))
        registry.cache.clear()

        await registry.get_cluster("prod")

        assert "prod" in registry.cache

    async def test_lookup_prefers_cache(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod"))
        registry.store.get = AsyncMock(side_effect=AssertionError("store must not be read"))

        definition = await registry.lookup_cluster("prod")

        assert definition.cluster_name == "prod"

    async def test_lookup_falls_back_to_store(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod"))
        registry.cache.clear()

        definition = await registry.lookup_cluster("prod")

        assert definition.cluster_name == "prod"
        assert "prod" in registry.cache

    async def test_list_cluster_names_is_sorted(self, registry, definition_factory):
        for name in ["zeta", "alpha", "mid"]:
            await registry.create_cluster(definition_factory(name))

        assert await registry.list_cluster_names() == ["alpha", "mid", "zeta"]

    async def test_default_platform_type(self, registry):
        platform = registry.get_default_platform_type()

        assert isinstance(platform, PlatformType)
        assert platform.model_dump(by_alias=True) == {"hadoopType": "yarn"}


class TestUpdateCluster:
    """Test ClusterRegistry.update_cluster."""

    async def test_update_unknown_cluster_changes_nothing(self, registry, definition_factory):
        with pytest.raises(ClusterNotFoundError):
            await registry.update_cluster("ghost", definition_factory("ghost"))

        assert await registry.list_cluster_names() == []
        assert "ghost" not in registry.cache

    async def test_update_replaces_definition_and_cache(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod", hosts=["h1"]))
        stored = await registry.load_cluster("prod")

        updated = definition_factory("prod", hosts=["h1", "h2", "h3"], password=stored.agents.password)
        assert await registry.update_cluster("prod", updated) is True

        loaded = await registry.load_cluster("prod")
        assert loaded.workers.hosts == ["h1", "h2", "h3"]
        assert registry.cache.get("prod").workers.hosts == ["h1", "h2", "h3"]

    async def test_update_with_unchanged_ciphertext_does_not_encrypt(self, registry, encryption, definition_factory):
        await registry.create_cluster(definition_factory("prod", password="secret"))
        stored = await registry.load_cluster("prod")
        calls_before = len(encryption.encrypt_calls)

        await registry.update_cluster("prod", definition_factory("prod", password=stored.agents.password))

        assert len(encryption.encrypt_calls) == calls_before
        assert (await registry.load_cluster("prod")).agents.password == "enc:secret"

    async def test_update_with_new_password_encrypts_once(self, registry, encryption, definition_factory):
        await registry.create_cluster(definition_factory("prod", password="secret"))
        calls_before = len(encryption.encrypt_calls)

        await registry.update_cluster("prod", definition_factory("prod", password="rotated"))

        assert len(encryption.encrypt_calls) == calls_before + 1
        assert (await registry.load_cluster("prod")).agents.password == "enc:rotated"

    async def test_update_rejects_rename(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod"))

        with pytest.raises(ClusterValidationError):
            await registry.update_cluster("prod", definition_factory("staging"))

        assert await registry.list_cluster_names() == ["prod"]

    async def test_update_store_failure_keeps_previous_definition(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod", hosts=["h1"]))
        registry.store.put = AsyncMock(side_effect=StorageBackendError("disk full", backend_type="file"))

        with pytest.raises(ClusterOperationError) as exc_info:
            await registry.update_cluster("prod", definition_factory("prod", hosts=["h9"]))

        assert exc_info.value.operation == "update"
        assert (await registry.store.get("prod")).workers.hosts == ["h1"]


class TestDeleteCluster:
    """Test ClusterRegistry.delete_cluster."""

    async def test_delete_twice_succeeds(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod"))

        assert await registry.delete_cluster("prod") is True
        assert await registry.delete_cluster("prod") is True
        assert await registry.list_cluster_names() == []

    async def test_delete_clears_cache_config_and_refresh(self, registry, config_manager, definition_factory):
        await registry.create_cluster(definition_factory("prod"))

        await registry.delete_cluster("prod")

        assert "prod" not in registry.cache
        assert not config_manager.cluster_dir("prod").exists()
        assert not registry.coordinator.node_refresher.is_enabled("prod")

    async def test_delete_drops_metrics_database(self, registry, metrics_db, definition_factory):
        await registry.create_cluster(definition_factory("x"))

        await registry.delete_cluster("x")

        metrics_db.drop_database.assert_awaited_once()
        assert metrics_db.drop_database.await_args.args[0].database == "x"

    async def test_delete_succeeds_when_database_drop_fails(self, registry, metrics_db, definition_factory):
        await registry.create_cluster(definition_factory("x"))
        metrics_db.drop_database.side_effect = MetricsDatabaseError("x", "drop", "connection refused")

        assert await registry.delete_cluster("x") is True
        assert "x" not in await registry.list_cluster_names()

    async def test_delete_store_failure_skips_cleanup(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod"))
        registry.store.delete = AsyncMock(side_effect=StorageBackendError("read-only", backend_type="file"))

        with patch.object(registry.coordinator, "on_delete", AsyncMock()) as cleanup:
            with pytest.raises(ClusterOperationError) as exc_info:
                await registry.delete_cluster("prod")

        assert exc_info.value.operation == "delete"
        cleanup.assert_not_called()
        assert "prod" in registry.cache


class TestClusterNameSafety:
    """Names from request paths cannot reach outside the storage directories."""

    @pytest.mark.parametrize("name", ["..", ".", "../clusters", "a/b", "", "  "])
    async def test_delete_rejects_unsafe_name(self, registry, config_manager, definition_factory, name):
        await registry.create_cluster(definition_factory("a"))
        await registry.create_cluster(definition_factory("b"))

        with pytest.raises(ClusterValidationError):
            await registry.delete_cluster(name)

        assert await registry.list_cluster_names() == ["a", "b"]
        assert config_manager.cluster_dir("a").exists()
        assert config_manager.cluster_dir("b").exists()
        registry.coordinator.metrics_db.drop_database.assert_not_called()

    @pytest.mark.parametrize("name", ["..", ".", ".hidden"])
    async def test_reads_reject_unsafe_name(self, registry, name):
        with pytest.raises(ClusterValidationError):
            await registry.get_cluster(name)
        with pytest.raises(ClusterValidationError):
            await registry.load_cluster(name)
        with pytest.raises(ClusterValidationError):
            await registry.lookup_cluster(name)

    async def test_update_rejects_unsafe_path_name(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod"))

        with pytest.raises(ClusterValidationError):
            await registry.update_cluster("..", definition_factory("prod"))

        assert await registry.list_cluster_names() == ["prod"]


class TestCountTotalHosts:
    """Test ClusterRegistry.count_total_hosts."""

    async def test_count_sums_worker_hosts(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("a", hosts=["a1", "a2", "a3"]))
        await registry.create_cluster(definition_factory("b", hosts=["b1", "b2"]))

        assert await registry.count_total_hosts() == 5

    async def test_count_with_no_clusters(self, registry):
        assert await registry.count_total_hosts() == 0

    async def test_count_fails_when_a_definition_is_unreadable(self, registry, definition_factory, temp_dir):
        await registry.create_cluster(definition_factory("a", hosts=["a1"]))
        (temp_dir / "clusters" / "broken.json").write_text("{not json")

        with pytest.raises(ClusterOperationError) as exc_info:
            await registry.count_total_hosts()

        assert exc_info.value.operation == "count hosts"


YARN_NODE_LIST = """Total Nodes:2
         Node-Id             Node-State Node-Http-Address       Number-of-Running-Containers
     h1:45454                   RUNNING          h1:8042                                   0
     h3:45454                   RUNNING          h3:8042                                   2
"""


class NodeListExecutor(RemoteCommandExecutor):
    """Answers node-list commands per host; hosts missing from ``outputs`` are unreachable."""

    def __init__(self, outputs):
        self.outputs = outputs
        self.queried = []

    async def execute(self, host, command, user=None, key_file=None, timeout=None) -> str:
        self.queried.append(host)
        if host not in self.outputs:
            raise RemoteCommandError(host=host, command=command, exit_code=255, stderr="Connection refused")
        return self.outputs[host]


@pytest.fixture
def spot_definition(definition_factory):
    def build(name="prod", hosts=None, masters=("rm1",)):
        definition = definition_factory(name, hosts=hosts or ["h1", "h2"])
        definition.workers.spot_instances = True
        definition.task_managers = DaemonHosts(hosts=list(masters))
        return definition
    return build


def registry_with_locator(registry, executor):
    return ClusterRegistry(registry.store, registry.cache, registry.credentials, registry.coordinator,
                           worker_locator=WorkerNodeLocator(executor, timeout=5))


class TestWorkerRefresh:
    """Test the refresh callback wired into the worker refresher."""

    async def test_refresh_reloads_cache_from_store(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod", hosts=["h1"]))
        await registry.store.put(definition_factory("prod", hosts=["h1", "h2"]))

        assert await registry.refresh_worker_nodes("prod") is True

        assert registry.cache.get("prod").workers.hosts == ["h1", "h2"]

    async def test_refresh_of_removed_cluster_ends_refreshing(self, registry, definition_factory):
        await registry.create_cluster(definition_factory("prod"))
        await registry.store.delete("prod")

        assert await registry.refresh_worker_nodes("prod") is False

        assert "prod" not in registry.cache

    async def test_refresh_does_not_query_fixed_clusters(self, registry, definition_factory):
        nodes = NodeListExecutor({"rm1": YARN_NODE_LIST})
        refreshing = registry_with_locator(registry, nodes)
        definition = definition_factory("prod", hosts=["h1", "h2"])
        definition.task_managers = DaemonHosts(hosts=["rm1"])
        await refreshing.create_cluster(definition)

        assert await refreshing.refresh_worker_nodes("prod") is True

        assert nodes.queried == []
        assert (await refreshing.store.get("prod")).workers.hosts == ["h1", "h2"]

    async def test_refresh_persists_changed_spot_workers(self, registry, spot_definition):
        nodes = NodeListExecutor({"rm1": YARN_NODE_LIST})
        refreshing = registry_with_locator(registry, nodes)
        await refreshing.create_cluster(spot_definition("prod", hosts=["h1", "h2"]))

        assert await refreshing.refresh_worker_nodes("prod") is True

        assert nodes.queried == ["rm1"]
        assert (await refreshing.store.get("prod")).workers.hosts == ["h1", "h3"]
        assert refreshing.cache.get("prod").workers.hosts == ["h1", "h3"]

    async def test_refresh_skips_write_when_workers_unchanged(self, registry, spot_definition):
        refreshing = registry_with_locator(registry, NodeListExecutor({"rm1": YARN_NODE_LIST}))
        await refreshing.create_cluster(spot_definition("prod", hosts=["h1", "h3"]))

        with patch.object(refreshing.store, "put", AsyncMock()) as put:
            assert await refreshing.refresh_worker_nodes("prod") is True

        put.assert_not_called()

    async def test_refresh_falls_back_to_next_resource_manager(self, registry, spot_definition):
        nodes = NodeListExecutor({"rm2": YARN_NODE_LIST})
        refreshing = registry_with_locator(registry, nodes)
        await refreshing.create_cluster(spot_definition("prod", masters=("rm1", "rm2")))

        await refreshing.refresh_worker_nodes("prod")

        assert nodes.queried == ["rm1", "rm2"]
        assert (await refreshing.store.get("prod")).workers.hosts == ["h1", "h3"]

    async def test_refresh_keeps_workers_when_none_are_running(self, registry, spot_definition):
        refreshing = registry_with_locator(registry, NodeListExecutor({"rm1": "Total Nodes:0\n"}))
        await refreshing.create_cluster(spot_definition("prod", hosts=["h1", "h2"]))

        assert await refreshing.refresh_worker_nodes("prod") is True

        assert (await refreshing.store.get("prod")).workers.hosts == ["h1", "h2"]

    async def test_refresh_raises_when_no_resource_manager_answers(self, registry, spot_definition):
        refreshing = registry_with_locator(registry, NodeListExecutor({}))
        await refreshing.create_cluster(spot_definition("prod", hosts=["h1", "h2"]))

        with pytest.raises(RemoteCommandError):
            await refreshing.refresh_worker_nodes("prod")

        assert (await refreshing.store.get("prod")).workers.hosts == ["h1", "h2"]


def test_parse_node_list():
    assert parse_node_list(YARN_NODE_LIST) == ["h1", "h3"]
    assert parse_node_list("Total Nodes:0\n") == []


class TestRegistryWiring:
    """Test registry construction from settings."""

    async def test_build_cluster_registry_uses_settings_paths(self, temp_dir):
        settings = Settings()
        settings.storage.home_dir = str(temp_dir)

        registry = build_cluster_registry(settings)

        assert isinstance(registry, ClusterRegistry)
        assert registry.store.storage_dir == temp_dir / "clusters"
        assert registry.coordinator.config_manager.conf_root == temp_dir / "conf"
        await registry.close()

    async def test_global_registry_is_a_singleton(self, temp_dir):
        settings = Settings()
        settings.storage.home_dir = str(temp_dir)

        await GlobalClusterRegistry.reset_instance()
        try:
            first = await GlobalClusterRegistry.get_instance(settings)
            second = await GlobalClusterRegistry.get_instance()
            assert first is second
        finally:
            await GlobalClusterRegistry.reset_instance()


async def test_failed_provisioning_report_does_not_fail_create(registry, definition_factory):
    report = ProvisioningReport(cluster_name="prod")
    report.outcomes.append(StepOutcome(step="ensure_metrics_storage", success=False))

    with patch.object(registry.coordinator, "on_create_or_update", AsyncMock(return_value=report)):
        assert await registry.create_cluster(definition_factory("prod")) is True
