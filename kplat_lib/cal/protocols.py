"""
Cloud Abstraction Layer Protocol Definitions.

This module defines the protocol (structural typing) for managed-Kubernetes
providers. Any implementation that matches the interface can be driven by the
provisioning pipeline, which keeps the pipeline cloud independent.

Key types:
- ProviderAdapter: create/describe/delete a managed cluster
- Endpoint: where an ensured cluster can be reached
- DeleteResult: outcome of a best-effort cluster deletion
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from kplat_lib.types import ObservedState


@dataclass(frozen=True)
class Endpoint:
    """API endpoint of a managed cluster."""

    name: str
    region: str
    server: str
    created: bool = False
    """True when this call issued the create; False when the cluster already existed."""


@dataclass
class DeleteResult:
    """
    Outcome of ``ProviderAdapter.delete_cluster``.

    Deletion never raises; every step that failed is recorded in ``errors``.
    """

    name: str
    deleted: bool = False
    not_found: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Whether every deletion step succeeded (or had nothing to do)."""
        return not self.errors


@runtime_checkable
class ProviderAdapter(Protocol):
    """
    Protocol for managed-Kubernetes cloud backends.

    Implementations:
    - cal/adapters/aws_eks.py - EKS (boto3 + eksctl)
    - cal/adapters/azure_aks.py - AKS (az CLI)
    """

    name: str
    required_tools: tuple[str, ...]
    auth_exec_hint: str

    def verify_credentials(self) -> str:
        """
        Check that a valid cloud credential is available.

        Returns
        -------
            Account id (AWS) or subscription id (Azure)

        Raises
        ------
            PreconditionFailedError: If no usable credential is configured

        """
        ...

    def cluster_state(self, name: str, region: str) -> ObservedState:
        """Observed lifecycle state of the cluster, from a live query."""
        ...

    def cluster_exists(self, name: str, region: str) -> bool:
        """Whether the cluster occupies ``name`` (in any state but Absent)."""
        ...

    def ensure_cluster(self, name: str, region: str, version: str) -> Endpoint:
        """
        Create the cluster unless it already exists.

        A cluster still being created is waited on; an existing cluster is
        returned without issuing a create call.

        Raises
        ------
            ProvisionFailedError: If creation fails or the cluster is being deleted

        """
        ...

    def delete_cluster(self, name: str, region: str) -> DeleteResult:
        """Delete the cluster and its supporting resources. Never raises."""
        ...

    def write_kubeconfig(self, name: str, region: str, path: Path) -> Path:
        """Write an owner-only kubeconfig for the cluster to ``path``."""
        ...

    def troubleshooting_hints(self, name: str, region: str) -> list[str]:
        """Operator commands that help diagnose a failed run."""
        ...

    def close(self) -> None:
        """Release SDK clients held by the adapter."""
        ...
