"""
Azure AKS Provider Adapter.

Creates and deletes the host cluster on Azure Kubernetes Service through the
``az`` CLI. The cluster lives in its own resource group (``rg-<cluster>``)
so teardown can remove everything in one call.
"""

import json
import os
from pathlib import Path
from typing import Any

import structlog

from kplat_lib.any.exceptions import CommandFailedError, PreconditionFailedError, ProvisionFailedError
from kplat_lib.any.utils import run_command
from kplat_lib.cal.protocols import DeleteResult, Endpoint
from kplat_lib.config.schemas import PlatformConfig
from kplat_lib.types import ObservedState

LOGGER = structlog.get_logger("kplat_lib.cal.azure_aks")

_PROVISIONING_STATES = {
    "Creating": ObservedState.CREATING,
    "Succeeded": ObservedState.PRESENT,
    "Updating": ObservedState.PRESENT,
    "Upgrading": ObservedState.PRESENT,
    "Scaling": ObservedState.PRESENT,
    "Failed": ObservedState.FAILED,
    "Deleting": ObservedState.DELETING,
}


def resource_group_for(name: str) -> str:
    """Resource group that owns cluster ``name``."""
    return f"rg-{name}"


class AKSProviderAdapter:
    """Managed-cluster adapter for Azure AKS."""

    name = "azure"
    required_tools: tuple[str, ...] = ("az", "kubectl", "helm", "vcluster")
    auth_exec_hint = "kubelogin get-token"

    def __init__(self, config: PlatformConfig):
        self._config = config

    def verify_credentials(self) -> str:
        """Return the active Azure subscription id."""
        try:
            result = run_command(["az", "account", "show", "--query", "id", "--output", "tsv"])
        except CommandFailedError as e:
            raise PreconditionFailedError(f"Azure CLI not logged in: {e.stderr or e}") from e

        subscription_id = result.stdout.strip()
        LOGGER.info(f"✓ Azure CLI logged in to subscription {subscription_id}")
        return subscription_id

    def _show(self, name: str) -> dict[str, Any] | None:
        """``az aks show`` output, or None when the cluster does not exist."""
        cmd = ["az", "aks", "show", "--resource-group", resource_group_for(name), "--name", name, "--output", "json"]
        result = run_command(cmd, check=False)
        if result.returncode != 0:
            stderr = result.stderr or ""
            if "ResourceNotFound" in stderr or "ResourceGroupNotFound" in stderr or "not found" in stderr.lower():
                return None
            raise CommandFailedError(cmd, result.returncode, stderr)
        return json.loads(result.stdout or "{}")

    def cluster_state(self, name: str, region: str) -> ObservedState:
        """Map the AKS provisioning state onto the resource lifecycle."""
        cluster = self._show(name)
        if cluster is None:
            return ObservedState.ABSENT
        return _PROVISIONING_STATES.get(cluster.get("provisioningState", ""), ObservedState.PRESENT)

    def cluster_exists(self, name: str, region: str) -> bool:
        """Whether an AKS cluster named ``name`` exists."""
        return self.cluster_state(name, region).exists

    def ensure_cluster(self, name: str, region: str, version: str) -> Endpoint:
        """Ensure the resource group and the AKS cluster exist."""
        resource_group = resource_group_for(name)
        LOGGER.info(f"Ensuring resource group {resource_group}...")
        run_command(["az", "group", "create", "--name", resource_group, "--location", region])

        cluster = self._show(name)
        created = False
        if cluster is not None:
            state = cluster.get("provisioningState")
            if state == "Deleting":
                raise ProvisionFailedError("cluster", f"AKS cluster {name} is being deleted; retry once it is gone")
            if state == "Failed":
                raise ProvisionFailedError("cluster", f"AKS cluster {name} is in Failed state")
            if state == "Creating":
                LOGGER.info(f"AKS cluster {name} is still being created, waiting")
                run_command(["az", "aks", "wait", "--created", "--resource-group", resource_group, "--name", name])
            else:
                LOGGER.info(f"AKS cluster {name} exists, skipping creation")
                return Endpoint(name=name, region=region, server=_server(cluster))
        else:
            LOGGER.info(f"Creating AKS cluster {name}...")
            run_command(
                [
                    "az",
                    "aks",
                    "create",
                    "--resource-group",
                    resource_group,
                    "--name",
                    name,
                    "--location",
                    region,
                    "--kubernetes-version",
                    version,
                    "--node-count",
                    "2",
                    "--node-vm-size",
                    "Standard_D2s_v3",
                    "--enable-managed-identity",
                    "--enable-addons",
                    "monitoring",
                    "--enable-cluster-autoscaler",
                    "--min-count",
                    "1",
                    "--max-count",
                    "10",
                    "--network-plugin",
                    "azure",
                    "--network-plugin-mode",
                    "overlay",
                    "--network-dataplane",
                    self._config.azure_network_dataplane,
                    "--generate-ssh-keys",
                ],
                capture=False,
            )
            created = True

        cluster = self._show(name) or {}
        LOGGER.info(f"✓ AKS cluster {name} ready")
        return Endpoint(name=name, region=region, server=_server(cluster), created=created)

    def write_kubeconfig(self, name: str, region: str, path: Path) -> Path:
        """Write the cluster kubeconfig to ``path`` (mode 0600)."""
        path.parent.mkdir(parents=True, exist_ok=True)
        run_command(
            [
                "az",
                "aks",
                "get-credentials",
                "--resource-group",
                resource_group_for(name),
                "--name",
                name,
                "--file",
                str(path),
                "--overwrite-existing",
            ]
        )
        os.chmod(path, 0o600)
        return path

    def delete_cluster(self, name: str, region: str) -> DeleteResult:
        """Delete the AKS cluster and its resource group. Errors are collected, never raised."""
        result = DeleteResult(name=name)
        resource_group = resource_group_for(name)

        try:
            state = self.cluster_state(name, region)
        except CommandFailedError as e:
            result.errors.append(f"az aks show: {e}")
            state = ObservedState.PRESENT

        if state is ObservedState.ABSENT:
            LOGGER.info(f"AKS cluster {name} not found, skipping")
            result.not_found = True
        else:
            try:
                run_command(
                    ["az", "aks", "delete", "--name", name, "--resource-group", resource_group, "--yes"], capture=False
                )
                result.deleted = True
            except CommandFailedError as e:
                LOGGER.warning(f"✗ az aks delete failed: {e}")
                result.errors.append(f"az aks delete: {e}")

        try:
            exists = run_command(["az", "group", "exists", "--name", resource_group]).stdout.strip() == "true"
            if exists:
                run_command(["az", "group", "delete", "--name", resource_group, "--yes", "--no-wait"])
                LOGGER.info(f"✓ Resource group {resource_group} deletion started")
        except CommandFailedError as e:
            LOGGER.warning(f"✗ Deleting resource group {resource_group} failed: {e}")
            result.errors.append(f"az group delete: {e}")

        return result

    def troubleshooting_hints(self, name: str, region: str) -> list[str]:
        """Commands that help diagnose a failed AKS run."""
        resource_group = resource_group_for(name)
        return [
            f"az aks show --resource-group {resource_group} --name {name} --output table",
            f"az monitor activity-log list --resource-group {resource_group} --max-events 20",
            "kubectl get nodes -o wide",
            "kubectl get pods -A | grep -v Running",
        ]

    def close(self) -> None:
        """Nothing to release; every call shells out to az."""


def _server(cluster: dict[str, Any]) -> str:
    """API server URL from ``az aks show`` output."""
    fqdn = cluster.get("fqdn") or cluster.get("privateFqdn") or ""
    return f"https://{fqdn}:443" if fqdn else ""
