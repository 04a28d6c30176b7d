"""
Protocol definitions for KPlat.

These protocols define the contracts that collaborators must implement.
Protocols let the pipeline and the secret store run against real CLIs and
SDKs in production and against in-memory fakes in tests.

All protocols follow PEP 544 (Structural Subtyping / Protocol).
"""

from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from kplat_lib.config.schemas import ComponentSpec


@runtime_checkable
class SecretBackend(Protocol):
    """
    Protocol for a key/value secret backend.

    Implementations:
    - security/vault.py - HashiCorp Vault KV v2 (hvac)
    - security/parameter_store.py - AWS SSM Parameter Store (boto3)

    Every record is written as one envelope dict (value + metadata), so a write
    replaces value and metadata in a single backend call.
    """

    name: str

    def is_available(self) -> bool:
        """
        Check that the backend is configured and reachable.

        Returns
        -------
            True if reads and writes can be issued

        """
        ...

    def write(self, path: str, envelope: dict[str, str]) -> None:
        """
        Create or overwrite the record at ``path``.

        Raises
        ------
            SecretBackendUnavailableError: If the backend rejects the request

        """
        ...

    def read(self, path: str) -> dict[str, str]:
        """
        Read the envelope stored at ``path``.

        Raises
        ------
            SecretNotFoundError: If nothing is stored at ``path``
            SecretBackendUnavailableError: If the backend cannot be reached

        """
        ...

    def list(self, prefix: str) -> list[str]:
        """
        List record paths under ``prefix`` (recursive, sorted).

        Returns an empty list when the prefix holds nothing.
        """
        ...


@runtime_checkable
class ClusterAPI(Protocol):
    """
    Protocol for the Kubernetes API of one cluster (host or virtual).

    Every call takes the kubeconfig of the cluster it targets; implementations
    keep no per-cluster state.

    Implementations:
    - cluster/kubectl.py - kubectl via run_command
    """

    def namespace_exists(self, namespace: str, kubeconfig: Path) -> bool:
        """Whether ``namespace`` exists."""
        ...

    def ensure_namespace(self, namespace: str, kubeconfig: Path) -> None:
        """Create ``namespace`` if missing."""
        ...

    def delete_namespace(self, namespace: str, kubeconfig: Path) -> bool:
        """
        Delete ``namespace``.

        Returns
        -------
            False if the namespace was already absent

        """
        ...

    def resource_exists(self, resource: str, kubeconfig: Path, namespace: str | None = None) -> bool:
        """Whether ``resource`` (``kind/name``) exists."""
        ...

    def apply_urls(self, urls: list[str], kubeconfig: Path, namespace: str | None = None) -> None:
        """Apply remote manifests in order."""
        ...

    def apply_documents(self, documents: list[dict[str, Any]], kubeconfig: Path, namespace: str | None = None) -> None:
        """Apply inline manifest documents."""
        ...

    def delete_urls(self, urls: list[str], kubeconfig: Path, namespace: str | None = None) -> None:
        """Delete what remote manifests created, ignoring objects already gone."""
        ...

    def delete_documents(self, documents: list[dict[str, Any]], kubeconfig: Path, namespace: str | None = None) -> None:
        """Delete inline manifest documents, ignoring objects already gone."""
        ...

    def load_balancer_host(self, kubeconfig: Path) -> str | None:
        """Hostname (or IP) of the first LoadBalancer service with an ingress address."""
        ...

    def read_secret_field(self, namespace: str, secret: str, field: str, kubeconfig: Path) -> bytes | None:
        """Decoded value of ``secret.data[field]``, or None when absent."""
        ...


@runtime_checkable
class ChartInstaller(Protocol):
    """
    Protocol for installing Helm charts.

    Implementations:
    - cluster/helm.py - helm via run_command
    """

    def release_exists(self, release: str, namespace: str, kubeconfig: Path) -> bool:
        """Whether a release named ``release`` is deployed in ``namespace``."""
        ...

    def install(self, component: ComponentSpec, kubeconfig: Path) -> None:
        """Install or upgrade the chart described by ``component`` (``helm upgrade --install``)."""
        ...

    def uninstall(self, release: str, namespace: str, kubeconfig: Path) -> bool:
        """
        Uninstall ``release``.

        Returns
        -------
            False if the release was already absent

        """
        ...


@runtime_checkable
class VClusterEngine(Protocol):
    """
    Protocol for the virtual-cluster engine.

    Implementations:
    - cluster/vcluster.py - vcluster CLI via run_command
    """

    def create(self, name: str, namespace: str, version: str, kubeconfig: Path) -> None:
        """Create the virtual cluster and wait until it is ready."""
        ...

    def exists(self, name: str, namespace: str, kubeconfig: Path) -> bool:
        """Whether the engine still knows the virtual cluster (its namespace may outlive it)."""
        ...

    def delete(self, name: str, namespace: str, kubeconfig: Path) -> bool:
        """
        Delete the virtual cluster.

        Returns
        -------
            False if it was already absent

        """
        ...

    def kubeconfig(self, name: str, namespace: str, kubeconfig: Path) -> bytes:
        """Kubeconfig that reaches the virtual cluster from the operator's machine."""
        ...
