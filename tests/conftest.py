"""Pytest configuration and fake collaborators for kplat-lib tests.

The fakes share one in-memory ``FakeWorld``. Kubeconfigs written by the fakes
contain ``target: <host|vcluster name>`` so every fake call can tell which
cluster a kubeconfig points at.
"""

from collections import defaultdict
from pathlib import Path
from typing import Any

import pytest

from kplat_lib.any.exceptions import (
    CommandFailedError,
    PreconditionFailedError,
    ProvisionFailedError,
    SecretNotFoundError,
)
from kplat_lib.any.utils import write_private_file
from kplat_lib.cal.protocols import DeleteResult, Endpoint
from kplat_lib.config.loaders import load_manifest, load_platform_config
from kplat_lib.config.schemas import ComponentSpec, PlatformConfig, PlatformManifest
from kplat_lib.contexts.manager import ContextManager
from kplat_lib.pipeline.stages import PlatformStageBuilder
from kplat_lib.security.backup import CredentialBackups
from kplat_lib.security.store import SecretStore
from kplat_lib.types import ObservedState

ACCOUNT_ID = "123456789012"
HOST = "host"

# Resources each remote manifest URL creates when applied.
URL_RESOURCES = {"https://example.com/argocd/install.yaml": {"deployment/argocd-server", "secret/argocd-secret"}}

TEST_MANIFEST = """
contexts:
  - name: main
    aliases: [kc]
    default: true
  - name: dev
    vcluster: modernengg-dev
    aliases: [vd]
  - name: prod
    vcluster: modernengg-prod
    aliases: [vp]

host_components:
  - name: karpenter-nodepool
    kind: manifests
    clouds: [aws]
    probe: nodepool/spot
    documents:
      - apiVersion: "{{versions.node_pool_api}}"
        kind: NodePool
        metadata:
          name: spot
  - name: istiod
    kind: chart
    release: istiod
    chart: istio/istiod
    repo_name: istio
    repo_url: https://istio-release.storage.googleapis.com/charts
    version: "{{versions.istio}}"
    namespace: istio-system
  - name: kubecost
    kind: chart
    criticality: best-effort
    release: kubecost
    chart: kubecost/cost-analyzer
    namespace: kubecost

vclusters:
  - name: modernengg-dev
  - name: modernengg-prod

vcluster_applications:
  - name: argocd
    kind: manifests
    namespace: argocd
    apply_in_namespace: true
    probe: deployment/argocd-server
    urls:
      - https://example.com/argocd/install.yaml

platform_urls:
  argocd: "https://{host}/argocd"

platform_credentials:
  - key: argocd_admin_password
    context: dev
    namespace: argocd
    secret: argocd-initial-admin-secret
    field: password
"""


def kubeconfig_target(kubeconfig: Path) -> str:
    """Cluster a fake kubeconfig points at."""
    return kubeconfig.read_text(encoding="utf-8").split(":", 1)[1].strip()


class FakeWorld:
    """In-memory platform shared by the fake collaborators."""

    def __init__(self):
        self.clusters: dict[str, ObservedState] = {}
        self.namespaces: dict[str, set[str]] = defaultdict(set)
        self.resources: dict[str, set[str]] = defaultdict(set)
        self.releases: dict[str, set[tuple[str, str]]] = defaultdict(set)
        self.vclusters: set[str] = set()
        self.secret_fields: dict[tuple[str, str, str, str], bytes] = {}
        self.load_balancer: str | None = "lb.example.com"
        self.calls: list[str] = []

    def existing(self) -> set[str]:
        """Every resource on the platform as a comparable label."""
        labels = {f"cluster/{name}" for name, state in self.clusters.items() if state.exists}
        labels |= {f"vcluster/{name}" for name in self.vclusters}
        for target, names in self.namespaces.items():
            labels |= {f"{target}:ns/{name}" for name in names}
        for target, names in self.resources.items():
            labels |= {f"{target}:{name}" for name in names}
        for target, releases in self.releases.items():
            labels |= {f"{target}:release/{namespace}/{release}" for release, namespace in releases}
        return labels

    def wipe(self, target: str) -> None:
        """Drop everything that lives inside ``target``."""
        self.namespaces.pop(target, None)
        self.resources.pop(target, None)
        self.releases.pop(target, None)


class FakeProvider:
    """ProviderAdapter backed by FakeWorld."""

    name = "aws"
    required_tools: tuple[str, ...] = ()
    auth_exec_hint = "aws eks get-token"

    def __init__(self, world: FakeWorld):
        self.world = world
        self.fail_create = False
        self.credentials_valid = True
        self.create_calls = 0
        self.closed = False

    def verify_credentials(self) -> str:
        if not self.credentials_valid:
            raise PreconditionFailedError("AWS credentials not configured")
        return ACCOUNT_ID

    def cluster_state(self, name: str, region: str) -> ObservedState:
        return self.world.clusters.get(name, ObservedState.ABSENT)

    def cluster_exists(self, name: str, region: str) -> bool:
        return self.cluster_state(name, region).exists

    def ensure_cluster(self, name: str, region: str, version: str) -> Endpoint:
        self.world.calls.append(f"ensure_cluster {name}")
        if self.fail_create:
            raise ProvisionFailedError("cluster", "EKS cluster creation failed")
        created = name not in self.world.clusters
        if created:
            self.create_calls += 1
        self.world.clusters[name] = ObservedState.PRESENT
        return Endpoint(name=name, region=region, server=f"https://{name}.eks", created=created)

    def write_kubeconfig(self, name: str, region: str, path: Path) -> Path:
        return write_private_file(path, f"target: {HOST}\n".encode())

    def delete_cluster(self, name: str, region: str) -> DeleteResult:
        self.world.calls.append(f"delete_cluster {name}")
        if name not in self.world.clusters:
            return DeleteResult(name=name, not_found=True)
        del self.world.clusters[name]
        for vcluster in list(self.world.vclusters):
            self.world.wipe(vcluster)
        self.world.vclusters.clear()
        self.world.wipe(HOST)
        return DeleteResult(name=name, deleted=True)

    def troubleshooting_hints(self, name: str, region: str) -> list[str]:
        return [f"eksctl get cluster --name {name} --region {region}"]

    def close(self) -> None:
        self.closed = True


class FakeClusterAPI:
    """ClusterAPI backed by FakeWorld."""

    def __init__(self, world: FakeWorld):
        self.world = world
        self.failing_applies = 0

    def namespace_exists(self, namespace: str, kubeconfig: Path) -> bool:
        return namespace in self.world.namespaces[kubeconfig_target(kubeconfig)]

    def ensure_namespace(self, namespace: str, kubeconfig: Path) -> None:
        self.world.namespaces[kubeconfig_target(kubeconfig)].add(namespace)

    def delete_namespace(self, namespace: str, kubeconfig: Path) -> bool:
        namespaces = self.world.namespaces[kubeconfig_target(kubeconfig)]
        if namespace not in namespaces:
            return False
        namespaces.discard(namespace)
        return True

    def resource_exists(self, resource: str, kubeconfig: Path, namespace: str | None = None) -> bool:
        return resource in self.world.resources[kubeconfig_target(kubeconfig)]

    def apply_urls(self, urls: list[str], kubeconfig: Path, namespace: str | None = None) -> None:
        self.world.calls.append(f"apply_urls {kubeconfig_target(kubeconfig)}")
        if self.failing_applies:
            self.failing_applies -= 1
            raise CommandFailedError(["kubectl", "apply", "-f", urls[0]], 1, "connection refused")
        for url in urls:
            self.world.resources[kubeconfig_target(kubeconfig)].update(URL_RESOURCES.get(url, {url}))

    def apply_documents(self, documents: list[dict[str, Any]], kubeconfig: Path, namespace: str | None = None) -> None:
        names = {f"{doc['kind'].lower()}/{doc['metadata']['name']}" for doc in documents}
        self.world.resources[kubeconfig_target(kubeconfig)].update(names)

    def delete_urls(self, urls: list[str], kubeconfig: Path, namespace: str | None = None) -> None:
        for url in urls:
            self.world.resources[kubeconfig_target(kubeconfig)].difference_update(URL_RESOURCES.get(url, {url}))

    def delete_documents(self, documents: list[dict[str, Any]], kubeconfig: Path, namespace: str | None = None) -> None:
        names = {f"{doc['kind'].lower()}/{doc['metadata']['name']}" for doc in documents}
        self.world.resources[kubeconfig_target(kubeconfig)].difference_update(names)

    def load_balancer_host(self, kubeconfig: Path) -> str | None:
        return self.world.load_balancer

    def read_secret_field(self, namespace: str, secret: str, field: str, kubeconfig: Path) -> bytes | None:
        return self.world.secret_fields.get((kubeconfig_target(kubeconfig), namespace, secret, field))


class FakeChartInstaller:
    """ChartInstaller backed by FakeWorld."""

    def __init__(self, world: FakeWorld):
        self.world = world
        self.failing: set[str] = set()
        self.installs: list[str] = []

    def release_exists(self, release: str, namespace: str, kubeconfig: Path) -> bool:
        return (release, namespace) in self.world.releases[kubeconfig_target(kubeconfig)]

    def install(self, component: ComponentSpec, kubeconfig: Path) -> None:
        if component.name in self.failing:
            raise CommandFailedError(["helm", "upgrade", "--install", component.release], 1, "chart failed")
        self.installs.append(component.name)
        self.world.releases[kubeconfig_target(kubeconfig)].add((component.release, component.namespace))

    def uninstall(self, release: str, namespace: str, kubeconfig: Path) -> bool:
        releases = self.world.releases[kubeconfig_target(kubeconfig)]
        if (release, namespace) not in releases:
            return False
        releases.discard((release, namespace))
        return True


class FakeVCluster:
    """VClusterEngine backed by FakeWorld."""

    def __init__(self, world: FakeWorld):
        self.world = world

    def create(self, name: str, namespace: str, version: str, kubeconfig: Path) -> None:
        if namespace not in self.world.namespaces[kubeconfig_target(kubeconfig)]:
            raise CommandFailedError(["vcluster", "create", name], 1, f'namespaces "{namespace}" not found')
        self.world.vclusters.add(name)

    def exists(self, name: str, namespace: str, kubeconfig: Path) -> bool:
        return name in self.world.vclusters

    def delete(self, name: str, namespace: str, kubeconfig: Path) -> bool:
        if name not in self.world.vclusters:
            return False
        self.world.vclusters.discard(name)
        self.world.wipe(name)
        return True

    def kubeconfig(self, name: str, namespace: str, kubeconfig: Path) -> bytes:
        if name not in self.world.vclusters:
            raise CommandFailedError(["vcluster", "connect", name], 1, f"couldn't find vcluster {name}")
        return f"target: {name}\n".encode()


class InMemorySecretBackend:
    """SecretBackend keeping envelopes in a dict."""

    def __init__(self, name: str = "memory", available: bool = True):
        self.name = name
        self.available = available
        self.data: dict[str, dict[str, str]] = {}

    def is_available(self) -> bool:
        return self.available

    def write(self, path: str, envelope: dict[str, str]) -> None:
        self.data[path] = dict(envelope)

    def read(self, path: str) -> dict[str, str]:
        if path not in self.data:
            raise SecretNotFoundError(f"Secret not found: {path}")
        return dict(self.data[path])

    def list(self, prefix: str) -> list[str]:
        return sorted(path for path in self.data if not prefix or path.startswith(f"{prefix}/"))


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------


@pytest.fixture
def world() -> FakeWorld:
    return FakeWorld()


@pytest.fixture
def provider(world) -> FakeProvider:
    return FakeProvider(world)


@pytest.fixture
def cluster_api(world) -> FakeClusterAPI:
    return FakeClusterAPI(world)


@pytest.fixture
def charts(world) -> FakeChartInstaller:
    return FakeChartInstaller(world)


@pytest.fixture
def vclusters(world) -> FakeVCluster:
    return FakeVCluster(world)


@pytest.fixture
def admin_password(world):
    """Argo CD admin password present in the dev vcluster."""
    world.secret_fields[("modernengg-dev", "argocd", "argocd-initial-admin-secret", "password")] = b"s3cret"


@pytest.fixture
def manifest_file(tmp_path) -> Path:
    path = tmp_path / "platform.yaml"
    path.write_text(TEST_MANIFEST, encoding="utf-8")
    return path


@pytest.fixture
def config(tmp_path, manifest_file) -> PlatformConfig:
    """Config isolated from the process environment, state under tmp_path."""
    return load_platform_config({"state_dir": tmp_path / "state", "manifest_path": manifest_file}, environ={})


@pytest.fixture
def manifest(config) -> PlatformManifest:
    return load_manifest(config, account_id=ACCOUNT_ID)


@pytest.fixture
def memory_backend() -> InMemorySecretBackend:
    return InMemorySecretBackend()


@pytest.fixture
def store(config, memory_backend) -> SecretStore:
    return SecretStore(
        primary=memory_backend,
        fallback=None,
        credential_dir=config.kubeconfig_dir,
        backups=CredentialBackups(config.backup_dir),
    )


@pytest.fixture
def contexts(config, manifest, store) -> ContextManager:
    return ContextManager(config, manifest, store=store, auth_exec_hint="aws eks get-token")


@pytest.fixture
def stage_builder(config, provider, cluster_api, charts, vclusters, contexts, store) -> PlatformStageBuilder:
    return PlatformStageBuilder(config, provider, cluster_api, charts, vclusters, contexts, store)


@pytest.fixture
def make_backend():
    """Factory for additional in-memory secret backends."""
    return InMemorySecretBackend
