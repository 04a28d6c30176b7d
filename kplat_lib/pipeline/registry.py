"""
Resource registry.

Answers "which named resources exist right now" by querying the platform on
every call. Nothing is cached or persisted, so the answer can never drift from
what is actually deployed.
"""

from pathlib import Path

import structlog

from kplat_lib.any.protocols import ClusterAPI
from kplat_lib.cal.protocols import ProviderAdapter
from kplat_lib.config.schemas import PlatformConfig, PlatformManifest
from kplat_lib.types import ObservedState, Resource, ResourceKind

LOGGER = structlog.get_logger("kplat_lib.pipeline.registry")


class ResourceRegistry:
    """Live view of the physical cluster, its virtual clusters and their namespaces."""

    def __init__(
        self,
        config: PlatformConfig,
        manifest: PlatformManifest,
        provider: ProviderAdapter,
        cluster_api: ClusterAPI,
        host_kubeconfig: Path,
    ):
        self._config = config
        self._manifest = manifest
        self._provider = provider
        self._cluster_api = cluster_api
        self._host_kubeconfig = host_kubeconfig

    def cluster(self) -> Resource:
        """The physical cluster."""
        state = self._provider.cluster_state(self._config.cluster_name, self._config.region)
        return Resource(
            name=self._config.cluster_name,
            kind=ResourceKind.PHYSICAL_CLUSTER,
            provider=self._provider.name,
            observed_state=state,
        )

    def _host_reachable(self) -> bool:
        return self._host_kubeconfig.exists() and self.cluster().observed_state is ObservedState.PRESENT

    def _namespace_state(self, namespace: str, reachable: bool) -> ObservedState:
        if reachable and self._cluster_api.namespace_exists(namespace, self._host_kubeconfig):
            return ObservedState.PRESENT
        return ObservedState.ABSENT

    def _vcluster(self, name: str, reachable: bool) -> Resource:
        spec = next(v for v in self._manifest.vclusters if v.name == name)
        return Resource(
            name=name,
            kind=ResourceKind.VIRTUAL_CLUSTER,
            provider=self._provider.name,
            observed_state=self._namespace_state(spec.namespace, reachable),
        )

    def vcluster(self, name: str) -> Resource:
        """A virtual cluster, observed through the namespace that hosts it."""
        return self._vcluster(name, self._host_reachable())

    def existing(self) -> list[Resource]:
        """Every tracked resource that currently exists."""
        cluster = self.cluster()
        if not cluster.observed_state.exists:
            return []

        resources = [cluster]
        reachable = self._host_kubeconfig.exists() and cluster.observed_state is ObservedState.PRESENT
        for spec in self._manifest.vclusters:
            vcluster = self._vcluster(spec.name, reachable)
            if vcluster.observed_state.exists:
                resources.append(vcluster)
        LOGGER.debug(f"Existing resources: {[r.name for r in resources]}")
        return resources
