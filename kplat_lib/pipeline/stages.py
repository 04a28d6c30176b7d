"""
Stage generation from the platform manifest.

Stages are produced in dependency order:

1. ``cluster``: the physical cluster and its kubeconfig
2. one stage per host component, in manifest order (filtered by cloud)
3. ``vcluster:<name>``: one per virtual cluster
4. ``<app>@<vcluster>``: one per (virtual cluster, application) pair
5. ``platform-secrets``: platform URLs and admin passwords

Every probe queries the platform; every reverse action tolerates resources
that are already gone and reports that by returning False.
"""

from pathlib import Path

import structlog

from kplat_lib.any.exceptions import KPlatError
from kplat_lib.any.protocols import ChartInstaller, ClusterAPI, VClusterEngine
from kplat_lib.cal.protocols import ProviderAdapter
from kplat_lib.config.loaders import load_manifest
from kplat_lib.config.schemas import ComponentSpec, CredentialRef, PlatformConfig, PlatformManifest, VClusterSpec
from kplat_lib.contexts.manager import ContextEntry, ContextManager
from kplat_lib.pipeline.registry import ResourceRegistry
from kplat_lib.pipeline.stage import Stage
from kplat_lib.security.store import SecretStore
from kplat_lib.types import Criticality, ObservedState

LOGGER = structlog.get_logger("kplat_lib.pipeline.stages")

ORDINAL_STEP = 10
PROVISION_SOURCE = "kplat-provision"


class PlatformStages:
    """Builds the stage list for one platform (config + manifest + collaborators)."""

    def __init__(
        self,
        config: PlatformConfig,
        manifest: PlatformManifest,
        provider: ProviderAdapter,
        cluster_api: ClusterAPI,
        charts: ChartInstaller,
        vclusters: VClusterEngine,
        contexts: ContextManager,
        store: SecretStore,
    ):
        self._config = config
        self._manifest = manifest
        self._provider = provider
        self._cluster_api = cluster_api
        self._charts = charts
        self._vclusters = vclusters
        self._contexts = contexts
        self._store = store
        self._host = contexts.host_entry()
        self.registry = ResourceRegistry(config, manifest, provider, cluster_api, self._host.path)

    def build(self) -> list[Stage]:
        """All stages in ascending ordinal order."""
        stages = [self._cluster_stage()]
        for component in self._manifest.host_components_for(self._config.cloud):
            stages.append(self._component_stage(component, None))
        stages += [self._vcluster_stage(spec) for spec in self._manifest.vclusters]
        for spec in self._manifest.vclusters:
            for application in self._manifest.vcluster_applications_for(self._config.cloud):
                stages.append(self._component_stage(application, spec))
        stages.append(self._platform_secrets_stage())

        for index, stage in enumerate(stages, start=1):
            stage.ordinal = index * ORDINAL_STEP
        return stages

    # ------------------------------------------------------------------
    # Kubeconfig helpers
    # ------------------------------------------------------------------

    def _cluster_state(self) -> ObservedState:
        return self._provider.cluster_state(self._config.cluster_name, self._config.region)

    def _host_kubeconfig(self) -> Path:
        """Host kubeconfig, regenerated from the provider when the cluster exists but the file does not."""
        if not self._host.path.exists() and self._cluster_state() is ObservedState.PRESENT:
            LOGGER.info(f"Host kubeconfig missing, regenerating {self._host.path}")
            self._provider.write_kubeconfig(self._config.cluster_name, self._config.region, self._host.path)
        return self._host.path

    def _vcluster_kubeconfig(self, spec: VClusterSpec) -> Path:
        """Virtual-cluster kubeconfig, re-captured from the engine when the file is missing."""
        entry = self._contexts.vcluster_entry(spec.name)
        if not entry.path.exists():
            content = self._vclusters.kubeconfig(spec.name, spec.namespace, self._host_kubeconfig())
            self._contexts.save_kubeconfig(entry.name, content, source=PROVISION_SOURCE)
        return entry.path

    # ------------------------------------------------------------------
    # cluster
    # ------------------------------------------------------------------

    def _cluster_stage(self) -> Stage:
        name, region = self._config.cluster_name, self._config.region

        def probe() -> bool:
            return self._cluster_state() is ObservedState.PRESENT and self._host.path.exists()

        def forward() -> None:
            endpoint = self._provider.ensure_cluster(name, region, self._config.versions.kubernetes)
            self._provider.write_kubeconfig(name, region, self._host.path)
            self._contexts.save_kubeconfig(self._host.name, self._host.path.read_bytes(), source=PROVISION_SOURCE)
            LOGGER.info(f"Cluster {endpoint.name} reachable at {endpoint.server or 'unknown endpoint'}")

        def reverse() -> bool:
            result = self._provider.delete_cluster(name, region)
            self._contexts.forget(self._host.name)
            if not result.ok:
                raise KPlatError(f"Cluster deletion incomplete: {'; '.join(result.errors)}")
            return not result.not_found

        return Stage(
            name="cluster",
            ordinal=0,
            probe=probe,
            forward=forward,
            reverse=reverse,
            criticality=Criticality.FATAL,
            description=f"{self._provider.name} cluster {name} in {region}",
        )

    # ------------------------------------------------------------------
    # Components (host and per-vcluster)
    # ------------------------------------------------------------------

    def _component_stage(self, component: ComponentSpec, vcluster: VClusterSpec | None) -> Stage:
        def target_present() -> bool:
            if not self._host.path.exists() or self._cluster_state() is not ObservedState.PRESENT:
                return False
            if vcluster is None:
                return True
            if not self._cluster_api.namespace_exists(vcluster.namespace, self._host.path):
                return False
            return self._vclusters.exists(vcluster.name, vcluster.namespace, self._host.path)

        def kubeconfig() -> Path:
            return self._host_kubeconfig() if vcluster is None else self._vcluster_kubeconfig(vcluster)

        def installed(path: Path) -> bool:
            if component.kind == "chart":
                return self._charts.release_exists(component.release, component.namespace, path)
            return self._cluster_api.resource_exists(component.probe, path, namespace=component.namespace)

        def probe() -> bool:
            return target_present() and installed(kubeconfig())

        def forward() -> None:
            path = kubeconfig()
            if component.kind == "chart":
                self._charts.install(component, path)
                return

            if component.namespace:
                self._cluster_api.ensure_namespace(component.namespace, path)
            namespace = component.namespace if component.apply_in_namespace else None
            if component.urls:
                self._cluster_api.apply_urls(component.urls, path, namespace=namespace)
            if component.documents:
                self._cluster_api.apply_documents(component.documents, path, namespace=namespace)

        def reverse() -> bool:
            self._host_kubeconfig()
            if not target_present():
                if vcluster is not None:
                    LOGGER.info(f"vcluster {vcluster.name} not found, skipping {component.name}")
                return False
            path = kubeconfig()
            if component.kind == "chart":
                return self._charts.uninstall(component.release, component.namespace, path)

            removed = installed(path)
            namespace = component.namespace if component.apply_in_namespace else None
            if removed:
                if component.documents:
                    self._cluster_api.delete_documents(component.documents, path, namespace=namespace)
                if component.urls:
                    self._cluster_api.delete_urls(component.urls, path, namespace=namespace)
            if component.apply_in_namespace and component.namespace:
                removed = self._cluster_api.delete_namespace(component.namespace, path) or removed
            return removed

        name = component.name if vcluster is None else f"{component.name}@{vcluster.name}"
        return Stage(
            name=name,
            ordinal=0,
            probe=probe,
            forward=forward,
            reverse=reverse,
            criticality=component.criticality,
            description=f"{component.kind} {component.release or component.name}",
        )

    # ------------------------------------------------------------------
    # vclusters
    # ------------------------------------------------------------------

    def _vcluster_stage(self, spec: VClusterSpec) -> Stage:
        entry: ContextEntry = self._contexts.vcluster_entry(spec.name)

        def probe() -> bool:
            if not self.registry.vcluster(spec.name).observed_state.exists or not entry.path.exists():
                return False
            return self._vclusters.exists(spec.name, spec.namespace, self._host.path)

        def forward() -> None:
            host_kubeconfig = self._host_kubeconfig()
            self._cluster_api.ensure_namespace(spec.namespace, host_kubeconfig)
            self._vclusters.create(spec.name, spec.namespace, self._config.versions.vcluster, host_kubeconfig)
            content = self._vclusters.kubeconfig(spec.name, spec.namespace, host_kubeconfig)
            self._contexts.save_kubeconfig(entry.name, content, source=PROVISION_SOURCE)

        def reverse() -> bool:
            host_kubeconfig = self._host_kubeconfig()
            if not self.registry.vcluster(spec.name).observed_state.exists:
                LOGGER.info(f"vcluster {spec.name} not found, skipping")
                self._contexts.forget(entry.name)
                return False

            deleted = self._vclusters.delete(spec.name, spec.namespace, host_kubeconfig)
            if not deleted:
                LOGGER.info(f"vcluster {spec.name} not found, removing namespace {spec.namespace}")
            namespace_removed = self._cluster_api.delete_namespace(spec.namespace, host_kubeconfig)
            self._contexts.forget(entry.name)
            return deleted or namespace_removed

        return Stage(
            name=f"vcluster:{spec.name}",
            ordinal=0,
            probe=probe,
            forward=forward,
            reverse=reverse,
            criticality=Criticality.FATAL,
            description=f"vcluster {spec.name} in namespace {spec.namespace}",
        )

    # ------------------------------------------------------------------
    # platform-secrets
    # ------------------------------------------------------------------

    def _credential_value(self, ref: CredentialRef) -> bytes | None:
        """Current value of a platform credential, or None while its source secret is not there."""
        path = self._contexts.entry(ref.context).path
        if not path.exists():
            return None
        return self._cluster_api.read_secret_field(ref.namespace, ref.secret, ref.field, path)

    def _record(self, path: str, value: bytes) -> None:
        """Store ``value`` unless the store already holds it."""
        if path in self._store.list(path.rsplit("/", 1)[0]) and self._store.get(path) == value:
            return
        self._store.put(path, value, source=PROVISION_SOURCE)

    def _platform_secrets_stage(self) -> Stage:
        url_paths = {f"platform/urls/{key}" for key in self._manifest.platform_urls}

        def probe() -> bool:
            """Satisfied once everything that can be discovered right now is stored."""
            if not self._host.path.exists() or self._cluster_state() is not ObservedState.PRESENT:
                return False
            stored = set(self._store.list("platform/urls")) | set(self._store.list("platform/credentials"))
            if not url_paths <= stored and self._cluster_api.load_balancer_host(self._host.path):
                return False
            return all(
                f"platform/credentials/{ref.key}" in stored or self._credential_value(ref) is None
                for ref in self._manifest.platform_credentials
            )

        def forward() -> None:
            if self._manifest.platform_urls:
                host = self._cluster_api.load_balancer_host(self._host_kubeconfig())
                if host:
                    for key, pattern in self._manifest.platform_urls.items():
                        self._record(f"platform/urls/{key}", pattern.format(host=host).encode("utf-8"))
                else:
                    LOGGER.warning("No load balancer address yet; platform URLs not recorded")

            for ref in self._manifest.platform_credentials:
                value = self._credential_value(ref)
                if value is None:
                    LOGGER.warning(f"Secret {ref.namespace}/{ref.secret} has no '{ref.field}'; {ref.key} not recorded")
                    continue
                self._record(f"platform/credentials/{ref.key}", value)

        def reverse() -> bool:
            LOGGER.info("Platform secrets are kept after teardown")
            return False

        return Stage(
            name="platform-secrets",
            ordinal=0,
            probe=probe,
            forward=forward,
            reverse=reverse,
            criticality=Criticality.BEST_EFFORT,
            description="platform URLs and admin credentials",
        )


class PlatformStageBuilder:
    """
    Callable handed to the orchestrator: ``builder(account_id) -> list[Stage]``.

    The manifest is loaded here, after credentials are verified, because its
    templates may reference ``{{account_id}}``.
    """

    def __init__(
        self,
        config: PlatformConfig,
        provider: ProviderAdapter,
        cluster_api: ClusterAPI,
        charts: ChartInstaller,
        vclusters: VClusterEngine,
        contexts: ContextManager,
        store: SecretStore,
    ):
        self._config = config
        self._provider = provider
        self._cluster_api = cluster_api
        self._charts = charts
        self._vclusters = vclusters
        self._contexts = contexts
        self._store = store

    def __call__(self, account_id: str) -> list[Stage]:
        manifest = load_manifest(self._config, account_id=account_id)
        return PlatformStages(
            self._config,
            manifest,
            self._provider,
            self._cluster_api,
            self._charts,
            self._vclusters,
            self._contexts,
            self._store,
        ).build()
