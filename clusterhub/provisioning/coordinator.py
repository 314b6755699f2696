"""
Provisioning coordinator.

Runs the remote side effects that follow a change to a cluster definition.
Each side effect is a step; advisory steps are logged and recorded when they
fail but never abort the remaining steps or the calling registry operation.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from ..exceptions import ConfigurationNotFoundError, ClusterHubError, ProvisioningWarning
from ..models.cluster import ClusterDefinition
from ..utils.logging import get_logger, log_provisioning_step
from .config_dirs import ConfigurationDirectoryManager
from .jmx import JmxAgentInstaller
from .metrics_db import MetricsDatabaseClient
from .node_refresher import WorkerNodeRefresher

logger = get_logger(__name__)


@dataclass
class ProvisioningStep:
    """A named side effect.

    ``advisory`` steps have their failures recorded; other steps re-raise.
    """
    name: str
    action: Callable[[], Awaitable[Any]]
    advisory: bool = True


@dataclass
class StepOutcome:
    step: str
    success: bool
    result: Any = None
    error: Optional[ProvisioningWarning] = None
    duration_ms: float = 0.0
    skipped: bool = False


@dataclass
class ProvisioningReport:
    """Outcomes of all steps run for one cluster."""
    cluster_name: str
    outcomes: List[StepOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(outcome.success for outcome in self.outcomes)

    @property
    def failed_steps(self) -> List[str]:
        return [outcome.step for outcome in self.outcomes if not outcome.success]

    @property
    def warnings(self) -> List[ProvisioningWarning]:
        return [outcome.error for outcome in self.outcomes if outcome.error is not None]

    def outcome(self, step: str) -> Optional[StepOutcome]:
        for outcome in self.outcomes:
            if outcome.step == step:
                return outcome
        return None


class JmxInstallationError(ClusterHubError):
    """Raised when the JMX agent could not be installed on some hosts."""

    def __init__(self, cluster_name: str, failed_hosts: List[str]):
        super().__init__(
            message=f"JMX agent installation failed on hosts: {', '.join(failed_hosts)}",
            details={"cluster_name": cluster_name, "failed_hosts": failed_hosts}
        )
        self.failed_hosts = failed_hosts


class ProvisioningCoordinator:
    """Drives JMX agents, metrics storage and worker refresh for clusters."""

    INSTALL_JMX_AGENTS = "install_jmx_agents"
    ENSURE_METRICS_STORAGE = "ensure_metrics_storage"
    ENABLE_WORKER_REFRESH = "enable_worker_refresh"
    DROP_METRICS_DATABASE = "drop_metrics_database"
    DELETE_CONFIGURATIONS = "delete_configurations"
    DISABLE_WORKER_REFRESH = "disable_worker_refresh"

    def __init__(self, jmx_installer: JmxAgentInstaller,
                 metrics_db: MetricsDatabaseClient,
                 config_manager: ConfigurationDirectoryManager,
                 node_refresher: WorkerNodeRefresher):
        self.jmx_installer = jmx_installer
        self.metrics_db = metrics_db
        self.config_manager = config_manager
        self.node_refresher = node_refresher

    async def on_create_or_update(self, definition: ClusterDefinition) -> ProvisioningReport:
        """Provision remote state for a created or updated definition."""
        cluster_name = definition.cluster_name
        steps = []
        if definition.jmx_plugin_enabled:
            steps.append(ProvisioningStep(self.INSTALL_JMX_AGENTS, lambda: self._install_jmx_agents(definition)))
        steps.append(ProvisioningStep(self.ENSURE_METRICS_STORAGE, lambda: self._ensure_metrics_storage(cluster_name)))
        steps.append(ProvisioningStep(self.ENABLE_WORKER_REFRESH, lambda: self._enable_worker_refresh(definition)))

        return await self.run_steps(cluster_name, steps)

    async def on_delete(self, cluster_name: str) -> ProvisioningReport:
        """Tear down remote state of a deleted cluster."""
        steps = [
            ProvisioningStep(self.DROP_METRICS_DATABASE, lambda: self._drop_metrics_database(cluster_name)),
            ProvisioningStep(self.DELETE_CONFIGURATIONS, lambda: self.config_manager.delete_all(cluster_name)),
            ProvisioningStep(self.DISABLE_WORKER_REFRESH, lambda: self.node_refresher.disable(cluster_name)),
        ]
        return await self.run_steps(cluster_name, steps)

    async def run_steps(self, cluster_name: str, steps: List[ProvisioningStep]) -> ProvisioningReport:
        """Run steps in order; advisory failures are recorded and do not stop later steps."""
        report = ProvisioningReport(cluster_name=cluster_name)

        for step in steps:
            start_time = time.time()
            try:
                result = await step.action()
            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000
                if not step.advisory:
                    log_provisioning_step(cluster_name, step.name, False, duration_ms, error=str(e))
                    raise
                warning = ProvisioningWarning(cluster_name, step.name, e)
                report.outcomes.append(StepOutcome(
                    step=step.name, success=False, error=warning, duration_ms=duration_ms
                ))
                log_provisioning_step(
                    cluster_name, step.name, False, duration_ms,
                    error=str(e), error_type=type(e).__name__
                )
                continue

            duration_ms = (time.time() - start_time) * 1000
            report.outcomes.append(StepOutcome(
                step=step.name, success=True, result=result, duration_ms=duration_ms
            ))
            log_provisioning_step(cluster_name, step.name, True, duration_ms)

        return report

    # Step actions

    async def _install_jmx_agents(self, definition: ClusterDefinition):
        results = await self.jmx_installer.install_agents(definition)
        failed_hosts = [host for host, result in results.items() if not result.success]
        if failed_hosts:
            raise JmxInstallationError(definition.cluster_name, failed_hosts)
        return results

    async def _ensure_metrics_storage(self, cluster_name: str):
        await self.config_manager.create_or_ensure(cluster_name)
        return await self.metrics_db.ensure_database(cluster_name)

    async def _enable_worker_refresh(self, definition: ClusterDefinition) -> bool:
        return self.node_refresher.enable(definition)

    async def _drop_metrics_database(self, cluster_name: str) -> bool:
        try:
            config = await self.metrics_db.resolve_config(cluster_name)
        except ConfigurationNotFoundError:
            logger.warning(
                f"Unable to get metrics database configuration of cluster [{cluster_name}], "
                f"not dropping its database"
            )
            return False

        try:
            await self.metrics_db.drop_database(config)
        except Exception as e:
            logger.warning(
                f"It seems that the metrics database is not installed. "
                f"Not dropping database [{config.database}]: {e}"
            )
            raise
        return True
