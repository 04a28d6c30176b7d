"""Tests for the EKS provider adapter."""

import subprocess
from unittest.mock import MagicMock, patch

import httpx
import pytest
from botocore.exceptions import ClientError

from kplat_lib.any.exceptions import CommandFailedError, PreconditionFailedError, ProvisionFailedError
from kplat_lib.cal.adapters.aws_eks import EKSProviderAdapter
from kplat_lib.cal.protocols import ProviderAdapter
from kplat_lib.config.schemas import PlatformConfig
from kplat_lib.types import ObservedState


def _client_error(code: str, message: str = "") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, "Operation")


def _completed(stdout: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=0, stdout=stdout, stderr="")


@pytest.fixture
def clients():
    """One MagicMock per AWS service."""
    return {"sts": MagicMock(), "eks": MagicMock(), "cloudformation": MagicMock()}


@pytest.fixture
def mock_boto3(clients):
    with patch("kplat_lib.cal.adapters.aws_eks.boto3") as boto3:
        boto3.client.side_effect = lambda service_name, region_name: clients[service_name]
        yield boto3


@pytest.fixture
def mock_run():
    with patch("kplat_lib.cal.adapters.aws_eks.run_command") as run:
        run.return_value = _completed()
        yield run


@pytest.fixture
def adapter(mock_boto3, mock_run):
    return EKSProviderAdapter(PlatformConfig(), http_client=MagicMock())


def _stack_missing(clients):
    clients["cloudformation"].describe_stacks.side_effect = _client_error(
        "ValidationError", "Stack with id Karpenter-modern-engineering does not exist"
    )


class TestCredentials:
    """Tests for verify_credentials."""

    def test_protocol_compliance(self, adapter):
        """Test the adapter satisfies ProviderAdapter."""
        assert isinstance(adapter, ProviderAdapter)
        assert adapter.name == "aws"
        assert "eksctl" in adapter.required_tools

    def test_returns_account_id(self, adapter, clients):
        """Test the STS account id is returned."""
        clients["sts"].get_caller_identity.return_value = {"Account": "123456789012"}

        assert adapter.verify_credentials() == "123456789012"

    def test_invalid_credentials(self, adapter, clients):
        """Test STS errors become precondition failures."""
        clients["sts"].get_caller_identity.side_effect = _client_error("InvalidClientTokenId")

        with pytest.raises(PreconditionFailedError, match="AWS credentials not configured"):
            adapter.verify_credentials()


class TestClusterState:
    """Tests for cluster_state/cluster_exists."""

    def test_absent(self, adapter, clients):
        """Test a missing cluster is Absent."""
        clients["eks"].describe_cluster.side_effect = _client_error("ResourceNotFoundException")

        assert adapter.cluster_state("c", "us-west-2") is ObservedState.ABSENT
        assert adapter.cluster_exists("c", "us-west-2") is False

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("CREATING", ObservedState.CREATING),
            ("ACTIVE", ObservedState.PRESENT),
            ("DELETING", ObservedState.DELETING),
            ("FAILED", ObservedState.FAILED),
        ],
    )
    def test_status_mapping(self, adapter, clients, status, expected):
        """Test EKS status values map onto the lifecycle."""
        clients["eks"].describe_cluster.return_value = {"cluster": {"status": status}}

        assert adapter.cluster_state("c", "us-west-2") is expected

    def test_deleting_cluster_occupies_name(self, adapter, clients):
        """Test a cluster being deleted still exists."""
        clients["eks"].describe_cluster.return_value = {"cluster": {"status": "DELETING"}}

        assert adapter.cluster_exists("c", "us-west-2") is True

    def test_other_errors_propagate(self, adapter, clients):
        """Test unexpected API errors are not treated as absence."""
        clients["eks"].describe_cluster.side_effect = _client_error("AccessDeniedException")

        with pytest.raises(ClientError):
            adapter.cluster_state("c", "us-west-2")


class TestEnsureCluster:
    """Tests for ensure_cluster and the Karpenter stack."""

    def test_existing_cluster_is_not_recreated(self, adapter, clients, mock_run):
        """Test an ACTIVE cluster is returned without calling eksctl."""
        clients["cloudformation"].describe_stacks.return_value = {"Stacks": [{"StackStatus": "CREATE_COMPLETE"}]}
        clients["eks"].describe_cluster.return_value = {"cluster": {"status": "ACTIVE", "endpoint": "https://x"}}

        endpoint = adapter.ensure_cluster("modern-engineering", "us-west-2", "1.29")

        assert endpoint.server == "https://x"
        assert endpoint.created is False
        mock_run.assert_not_called()
        clients["cloudformation"].create_stack.assert_not_called()

    def test_creates_stack_and_cluster(self, adapter, clients, mock_run):
        """Test a fresh run deploys the stack, then creates the cluster with eksctl."""
        _stack_missing(clients)
        adapter._http_client.get.return_value = MagicMock(text="AWSTemplateFormatVersion: x")
        clients["eks"].describe_cluster.side_effect = [
            _client_error("ResourceNotFoundException"),
            {"cluster": {"status": "ACTIVE", "endpoint": "https://new"}},
        ]

        endpoint = adapter.ensure_cluster("modern-engineering", "us-west-2", "1.29")

        assert endpoint.created is True
        assert endpoint.server == "https://new"
        stack_kwargs = clients["cloudformation"].create_stack.call_args.kwargs
        assert stack_kwargs["StackName"] == "Karpenter-modern-engineering"
        assert stack_kwargs["TemplateBody"] == "AWSTemplateFormatVersion: x"
        assert "v1.5.0" in adapter._http_client.get.call_args.args[0]

        cmd = mock_run.call_args.args[0]
        assert cmd[:3] == ["eksctl", "create", "cluster"]
        assert "--with-oidc" in cmd
        assert "karpenter.sh/discovery=modern-engineering" in cmd
        assert cmd[cmd.index("--version") + 1] == "1.29"
        clients["eks"].get_waiter.assert_called_with("cluster_active")

    def test_creating_cluster_is_waited_on(self, adapter, clients, mock_run):
        """Test a cluster still being created is awaited, not recreated."""
        clients["cloudformation"].describe_stacks.return_value = {"Stacks": [{"StackStatus": "CREATE_COMPLETE"}]}
        clients["eks"].describe_cluster.side_effect = [
            {"cluster": {"status": "CREATING"}},
            {"cluster": {"status": "ACTIVE", "endpoint": "https://x"}},
        ]

        endpoint = adapter.ensure_cluster("modern-engineering", "us-west-2", "1.29")

        assert endpoint.created is False
        mock_run.assert_not_called()
        clients["eks"].get_waiter.return_value.wait.assert_called_once_with(name="modern-engineering")

    def test_deleting_cluster_fails(self, adapter, clients):
        """Test a cluster being deleted cannot be ensured."""
        clients["cloudformation"].describe_stacks.return_value = {"Stacks": [{"StackStatus": "CREATE_COMPLETE"}]}
        clients["eks"].describe_cluster.return_value = {"cluster": {"status": "DELETING"}}

        with pytest.raises(ProvisionFailedError, match="being deleted"):
            adapter.ensure_cluster("modern-engineering", "us-west-2", "1.29")

    def test_failed_cluster_fails(self, adapter, clients, mock_run):
        """Test a cluster in FAILED state is reported instead of reused."""
        clients["cloudformation"].describe_stacks.return_value = {"Stacks": [{"StackStatus": "CREATE_COMPLETE"}]}
        clients["eks"].describe_cluster.return_value = {"cluster": {"status": "FAILED", "endpoint": "https://x"}}

        with pytest.raises(ProvisionFailedError, match="FAILED state"):
            adapter.ensure_cluster("modern-engineering", "us-west-2", "1.29")

        mock_run.assert_not_called()

    def test_pending_stack_is_waited_on(self, adapter, clients):
        """Test a stack in progress is awaited instead of created."""
        clients["cloudformation"].describe_stacks.return_value = {"Stacks": [{"StackStatus": "CREATE_IN_PROGRESS"}]}

        adapter.ensure_karpenter_stack("modern-engineering", "us-west-2")

        clients["cloudformation"].get_waiter.assert_called_once_with("stack_create_complete")
        clients["cloudformation"].create_stack.assert_not_called()

    def test_broken_stack_fails(self, adapter, clients):
        """Test a stack in a failed state stops provisioning."""
        clients["cloudformation"].describe_stacks.return_value = {"Stacks": [{"StackStatus": "ROLLBACK_COMPLETE"}]}

        with pytest.raises(ProvisionFailedError, match="ROLLBACK_COMPLETE"):
            adapter.ensure_karpenter_stack("modern-engineering", "us-west-2")

    def test_template_download_failure(self, adapter, clients):
        """Test HTTP errors fetching the template fail the cluster stage."""
        _stack_missing(clients)
        adapter._http_client.get.side_effect = httpx.ConnectError("offline")

        with pytest.raises(ProvisionFailedError, match="Could not download Karpenter template"):
            adapter.ensure_karpenter_stack("modern-engineering", "us-west-2")


class TestKubeconfig:
    """Tests for write_kubeconfig."""

    def test_update_kubeconfig(self, adapter, mock_run, tmp_path):
        """Test aws eks update-kubeconfig targets the given file with owner-only mode."""
        path = tmp_path / "kube" / "main.yaml"

        def fake_update(cmd, **kwargs):
            path.write_text("apiVersion: v1\n")
            return _completed()

        mock_run.side_effect = fake_update

        assert adapter.write_kubeconfig("modern-engineering", "us-west-2", path) == path

        cmd = mock_run.call_args.args[0]
        assert cmd[:3] == ["aws", "eks", "update-kubeconfig"]
        assert cmd[cmd.index("--kubeconfig") + 1] == str(path)
        assert path.stat().st_mode & 0o777 == 0o600


class TestDeleteCluster:
    """Tests for delete_cluster."""

    def test_absent_cluster_and_stack(self, adapter, clients, mock_run):
        """Test deleting nothing reports not_found and issues no deletes."""
        clients["eks"].describe_cluster.side_effect = _client_error("ResourceNotFoundException")
        _stack_missing(clients)

        result = adapter.delete_cluster("modern-engineering", "us-west-2")

        assert result.not_found is True
        assert result.ok is True
        mock_run.assert_not_called()
        clients["cloudformation"].delete_stack.assert_not_called()

    def test_deletes_cluster_and_stack(self, adapter, clients, mock_run):
        """Test eksctl delete is followed by the stack deletion."""
        clients["eks"].describe_cluster.return_value = {"cluster": {"status": "ACTIVE"}}
        clients["cloudformation"].describe_stacks.return_value = {"Stacks": [{"StackStatus": "CREATE_COMPLETE"}]}

        result = adapter.delete_cluster("modern-engineering", "us-west-2")

        assert result.deleted is True
        assert result.ok is True
        assert mock_run.call_args.args[0][:3] == ["eksctl", "delete", "cluster"]
        clients["cloudformation"].delete_stack.assert_called_once_with(StackName="Karpenter-modern-engineering")

    def test_errors_are_collected(self, adapter, clients, mock_run):
        """Test a failed eksctl delete is recorded and the stack is still removed."""
        clients["eks"].describe_cluster.return_value = {"cluster": {"status": "ACTIVE"}}
        clients["cloudformation"].describe_stacks.return_value = {"Stacks": [{"StackStatus": "CREATE_COMPLETE"}]}
        mock_run.side_effect = CommandFailedError(["eksctl", "delete"], 1, "boom")

        result = adapter.delete_cluster("modern-engineering", "us-west-2")

        assert result.deleted is False
        assert not result.ok
        assert "eksctl delete cluster" in result.errors[0]
        clients["cloudformation"].delete_stack.assert_called_once()

    def test_hints_name_cluster(self, adapter):
        """Test troubleshooting hints mention the cluster and stack."""
        hints = adapter.troubleshooting_hints("c", "us-west-2")

        assert any("Karpenter-c" in hint for hint in hints)
        assert hints[0] == "eksctl get cluster --name c --region us-west-2"


class TestClose:
    """Tests for close."""

    def test_closes_cached_clients(self, adapter, clients):
        """Test every boto3 client created so far is closed and forgotten."""
        clients["sts"].get_caller_identity.return_value = {"Account": "123456789012"}
        adapter.verify_credentials()

        adapter.close()

        clients["sts"].close.assert_called_once()
        assert adapter._clients == {}
