"""
AWS EKS Provider Adapter.

Creates and deletes the host cluster on Amazon EKS:
- Karpenter IAM/SQS CloudFormation stack (``Karpenter-<cluster>``)
- EKS cluster via eksctl (OIDC, discovery tags, spot bootstrap node group)
- kubeconfig via ``aws eks update-kubeconfig``

Describe/wait calls use boto3 clients; eksctl is driven through run_command.
"""

import os
from pathlib import Path
from typing import Any

import boto3
import httpx
import structlog
from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from kplat_lib.any.exceptions import CommandFailedError, PreconditionFailedError, ProvisionFailedError
from kplat_lib.any.utils import run_command
from kplat_lib.cal.protocols import DeleteResult, Endpoint
from kplat_lib.config.schemas import PlatformConfig
from kplat_lib.types import ObservedState

LOGGER = structlog.get_logger("kplat_lib.cal.aws_eks")

KARPENTER_TEMPLATE_URL = (
    "https://raw.githubusercontent.com/aws/karpenter-provider-aws/v{version}"
    "/website/content/en/preview/getting-started/getting-started-with-karpenter/cloudformation.yaml"
)

_CLUSTER_STATES = {
    "CREATING": ObservedState.CREATING,
    "ACTIVE": ObservedState.PRESENT,
    "UPDATING": ObservedState.PRESENT,
    "FAILED": ObservedState.FAILED,
    "PENDING": ObservedState.CREATING,
    "DELETING": ObservedState.DELETING,
}

_STACK_DONE = {"CREATE_COMPLETE", "UPDATE_COMPLETE", "UPDATE_ROLLBACK_COMPLETE"}
_STACK_PENDING = {"CREATE_IN_PROGRESS", "UPDATE_IN_PROGRESS", "UPDATE_COMPLETE_CLEANUP_IN_PROGRESS"}


class EKSProviderAdapter:
    """
    Managed-cluster adapter for Amazon EKS.

    Example:
    -------
        ```python
        adapter = EKSProviderAdapter(config)
        account_id = adapter.verify_credentials()
        endpoint = adapter.ensure_cluster("modern-engineering", "us-west-2", "1.29")
        adapter.write_kubeconfig(endpoint.name, endpoint.region, Path("main.yaml"))
        ```

    """

    name = "aws"
    required_tools: tuple[str, ...] = ("aws", "eksctl", "kubectl", "helm", "vcluster")
    auth_exec_hint = "aws eks get-token"

    def __init__(self, config: PlatformConfig, http_client: httpx.Client | None = None):
        """
        Initialize the EKS adapter.

        Args:
        ----
            config: Platform configuration (Karpenter version pin)
            http_client: Optional httpx client used to fetch the CloudFormation template

        """
        self._config = config
        self._http_client = http_client
        self._clients: dict[tuple[str, str], Any] = {}

    def _client(self, service: str, region: str) -> Any:
        """Return a cached boto3 client for ``service`` in ``region``."""
        key = (service, region)
        if key not in self._clients:
            self._clients[key] = boto3.client(service_name=service, region_name=region)
        return self._clients[key]

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def verify_credentials(self) -> str:
        """Return the AWS account id of the active credentials."""
        try:
            identity = self._client("sts", self._config.region).get_caller_identity()
        except (ClientError, BotoCoreError) as e:
            raise PreconditionFailedError(f"AWS credentials not configured: {e}") from e

        account_id = identity["Account"]
        LOGGER.info(f"✓ AWS credentials valid for account {account_id}")
        return account_id

    # ------------------------------------------------------------------
    # Cluster state
    # ------------------------------------------------------------------

    def _describe(self, name: str, region: str) -> dict[str, Any] | None:
        """Describe the cluster, or None when it does not exist."""
        try:
            return self._client("eks", region).describe_cluster(name=name)["cluster"]
        except ClientError as e:
            if e.response["Error"]["Code"] == "ResourceNotFoundException":
                return None
            raise

    def cluster_state(self, name: str, region: str) -> ObservedState:
        """Map the EKS cluster status onto the resource lifecycle."""
        cluster = self._describe(name, region)
        if cluster is None:
            return ObservedState.ABSENT
        return _CLUSTER_STATES.get(cluster.get("status", ""), ObservedState.PRESENT)

    def cluster_exists(self, name: str, region: str) -> bool:
        """Whether an EKS cluster named ``name`` exists in ``region``."""
        return self.cluster_state(name, region).exists

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _stack_status(self, stack_name: str, region: str) -> str | None:
        """CloudFormation stack status, or None when the stack does not exist."""
        try:
            stacks = self._client("cloudformation", region).describe_stacks(StackName=stack_name)["Stacks"]
        except ClientError as e:
            if "does not exist" in e.response["Error"].get("Message", ""):
                return None
            raise
        return stacks[0]["StackStatus"] if stacks else None

    def _fetch_karpenter_template(self) -> str:
        """Download the Karpenter CloudFormation template for the pinned version."""
        url = KARPENTER_TEMPLATE_URL.format(version=self._config.versions.karpenter)
        LOGGER.debug(f"Fetching Karpenter CloudFormation template: {url}")

        client = self._http_client or httpx.Client(timeout=30.0, follow_redirects=True)
        try:
            response = client.get(url)
            response.raise_for_status()
            return response.text
        except httpx.HTTPError as e:
            raise ProvisionFailedError("cluster", f"Could not download Karpenter template {url}: {e}") from e
        finally:
            if self._http_client is None:
                client.close()

    def ensure_karpenter_stack(self, name: str, region: str) -> None:
        """Deploy the Karpenter IAM/SQS stack unless it already exists."""
        stack_name = f"Karpenter-{name}"
        status = self._stack_status(stack_name, region)
        cfn = self._client("cloudformation", region)

        if status in _STACK_DONE:
            LOGGER.info(f"CloudFormation stack {stack_name} exists ({status}), skipping")
            return
        if status in _STACK_PENDING:
            LOGGER.info(f"Waiting for CloudFormation stack {stack_name} ({status})")
            cfn.get_waiter("stack_create_complete").wait(StackName=stack_name)
            return
        if status is not None:
            raise ProvisionFailedError(
                "cluster", f"CloudFormation stack {stack_name} is in state {status}; delete it and retry"
            )

        LOGGER.info(f"Deploying CloudFormation stack {stack_name}...")
        cfn.create_stack(
            StackName=stack_name,
            TemplateBody=self._fetch_karpenter_template(),
            Capabilities=["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM"],
            Parameters=[{"ParameterKey": "ClusterName", "ParameterValue": name}],
        )
        cfn.get_waiter("stack_create_complete").wait(StackName=stack_name)
        LOGGER.info(f"✓ CloudFormation stack {stack_name} created")

    def ensure_cluster(self, name: str, region: str, version: str) -> Endpoint:
        """
        Ensure the Karpenter stack and the EKS cluster exist.

        An ACTIVE cluster is returned as-is, a CREATING cluster is waited on and
        a DELETING cluster cannot be ensured.
        """
        self.ensure_karpenter_stack(name, region)

        eks = self._client("eks", region)
        cluster = self._describe(name, region)
        created = False

        if cluster is not None:
            status = cluster.get("status")
            if status == "DELETING":
                raise ProvisionFailedError("cluster", f"EKS cluster {name} is being deleted; retry once it is gone")
            if status == "FAILED":
                raise ProvisionFailedError("cluster", f"EKS cluster {name} is in FAILED state")
            if status == "ACTIVE":
                LOGGER.info(f"EKS cluster {name} exists, skipping creation")
                return Endpoint(name=name, region=region, server=cluster.get("endpoint", ""))
            LOGGER.info(f"EKS cluster {name} is {status}, waiting for it to become active")
        else:
            LOGGER.info(f"Creating EKS cluster {name} with a small bootstrap nodegroup...")
            run_command(
                [
                    "eksctl",
                    "create",
                    "cluster",
                    "--name",
                    name,
                    "--region",
                    region,
                    "--version",
                    version,
                    "--with-oidc",
                    "--tags",
                    f"karpenter.sh/discovery={name}",
                    "--nodegroup-name",
                    "bootstrap",
                    "--node-type",
                    "t3.large",
                    "--spot",
                    "--nodes",
                    "1",
                    "--nodes-min",
                    "1",
                    "--nodes-max",
                    "2",
                ],
                capture=False,
            )
            created = True

        eks.get_waiter("cluster_active").wait(name=name)
        cluster = self._describe(name, region) or {}
        LOGGER.info(f"✓ EKS cluster {name} active")
        return Endpoint(name=name, region=region, server=cluster.get("endpoint", ""), created=created)

    def write_kubeconfig(self, name: str, region: str, path: Path) -> Path:
        """Write the cluster kubeconfig to ``path`` (mode 0600)."""
        path.parent.mkdir(parents=True, exist_ok=True)
        run_command(
            [
                "aws",
                "eks",
                "update-kubeconfig",
                "--region",
                region,
                "--name",
                name,
                "--kubeconfig",
                str(path),
                "--alias",
                name,
            ]
        )
        os.chmod(path, 0o600)
        return path

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete_cluster(self, name: str, region: str) -> DeleteResult:
        """Delete the EKS cluster and the Karpenter stack. Errors are collected, never raised."""
        result = DeleteResult(name=name)

        try:
            state = self.cluster_state(name, region)
        except (ClientError, BotoCoreError) as e:
            result.errors.append(f"describe cluster: {e}")
            state = ObservedState.PRESENT

        if state is ObservedState.ABSENT:
            LOGGER.info(f"EKS cluster {name} not found, skipping")
            result.not_found = True
        else:
            try:
                run_command(
                    ["eksctl", "delete", "cluster", "--name", name, "--region", region, "--wait"], capture=False
                )
                result.deleted = True
            except CommandFailedError as e:
                LOGGER.warning(f"✗ eksctl delete cluster failed: {e}")
                result.errors.append(f"eksctl delete cluster: {e}")

        stack_name = f"Karpenter-{name}"
        try:
            if self._stack_status(stack_name, region) is not None:
                cfn = self._client("cloudformation", region)
                cfn.delete_stack(StackName=stack_name)
                cfn.get_waiter("stack_delete_complete").wait(StackName=stack_name)
                LOGGER.info(f"✓ CloudFormation stack {stack_name} deleted")
        except (ClientError, BotoCoreError, WaiterError) as e:
            LOGGER.warning(f"✗ Deleting CloudFormation stack {stack_name} failed: {e}")
            result.errors.append(f"delete stack {stack_name}: {e}")

        return result

    def troubleshooting_hints(self, name: str, region: str) -> list[str]:
        """Commands that help diagnose a failed EKS run."""
        return [
            f"eksctl get cluster --name {name} --region {region}",
            f"aws eks describe-cluster --name {name} --region {region}",
            f"aws cloudformation describe-stack-events --stack-name Karpenter-{name} --region {region}",
            "kubectl get nodes -o wide",
            "kubectl get pods -A | grep -v Running",
        ]

    def close(self) -> None:
        """Close all client connections."""
        for client in self._clients.values():
            if hasattr(client, "close"):
                client.close()
        self._clients.clear()
