"""Tests for the helm-backed chart installer."""

import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from kplat_lib.any.protocols import ChartInstaller
from kplat_lib.cluster.helm import HelmChartInstaller
from kplat_lib.config.schemas import ComponentSpec

KUBECONFIG = Path("/tmp/main.yaml")


def _result(returncode: int = 0, stderr: str = "", stdout: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def _status(status: str) -> subprocess.CompletedProcess:
    return _result(stdout=json.dumps({"name": "istiod", "info": {"status": status}}))


@pytest.fixture
def mock_run():
    with patch("kplat_lib.cluster.helm.run_command") as run:
        run.return_value = _result()
        yield run


@pytest.fixture
def installer():
    return HelmChartInstaller()


def _commands(mock_run) -> list[list[str]]:
    return [c.args[0] for c in mock_run.call_args_list]


class TestHelmChartInstaller:
    """Tests for HelmChartInstaller."""

    def test_protocol_compliance(self, installer):
        """Test HelmChartInstaller satisfies ChartInstaller."""
        assert isinstance(installer, ChartInstaller)

    def test_install_minimal_chart(self, installer, mock_run):
        """Test a chart without repo, version or values is a single upgrade --install."""
        component = ComponentSpec(name="kubecost", kind="chart", release="kubecost", chart="oci://x/kc", namespace="kc")

        installer.install(component, KUBECONFIG)

        assert _commands(mock_run) == [
            ["helm", "upgrade", "--install", "kubecost", "oci://x/kc", "--namespace", "kc", "--create-namespace"]
        ]
        assert mock_run.call_args.kwargs["env"] == {"KUBECONFIG": "/tmp/main.yaml"}

    def test_install_full_chart(self, installer, mock_run):
        """Test repo, version, wait, timeout and values are all passed to helm."""
        component = ComponentSpec(
            name="istiod",
            kind="chart",
            release="istiod",
            chart="istio/istiod",
            repo_name="istio",
            repo_url="https://istio-release.storage.googleapis.com/charts",
            version="1.26.1",
            namespace="istio-system",
            values={"pilot": {"replicaCount": 1}},
            wait=True,
            timeout="10m",
        )

        installer.install(component, KUBECONFIG)

        commands = _commands(mock_run)
        assert commands[0][:3] == ["helm", "repo", "add"]
        assert commands[1] == ["helm", "repo", "update", "istio"]
        upgrade = commands[2]
        assert upgrade[upgrade.index("--version") + 1] == "1.26.1"
        assert "--wait" in upgrade
        assert upgrade[upgrade.index("--timeout") + 1] == "10m"
        assert yaml.safe_load(mock_run.call_args.kwargs["input_text"]) == {"pilot": {"replicaCount": 1}}

    def test_registry_logout_failure_is_ignored(self, installer, mock_run):
        """Test a failed registry logout does not stop the install."""
        component = ComponentSpec(
            name="kc", kind="chart", release="kc", chart="oci://r/kc", namespace="kc", registry_logout="public.ecr.aws"
        )
        mock_run.side_effect = [_result(returncode=1, stderr="not logged in"), _result()]

        installer.install(component, KUBECONFIG)

        commands = _commands(mock_run)
        assert commands[0] == ["helm", "registry", "logout", "public.ecr.aws"]
        assert commands[1][:2] == ["helm", "upgrade"]

    @pytest.mark.parametrize(
        "result,expected",
        [
            (_status("deployed"), True),
            (_status("failed"), False),
            (_status("pending-install"), False),
            (_result(returncode=1, stderr="Error: release: not found"), False),
        ],
    )
    def test_release_exists(self, installer, mock_run, result, expected):
        """Test only a deployed release counts as installed."""
        mock_run.return_value = result

        assert installer.release_exists("istiod", "istio-system", KUBECONFIG) is expected
        assert mock_run.call_args.args[0][-2:] == ["--output", "json"]

    def test_uninstall_missing_release(self, installer, mock_run):
        """Test uninstalling an absent release is a no-op."""
        mock_run.return_value = _result(returncode=1)

        assert installer.uninstall("istiod", "istio-system", KUBECONFIG) is False
        assert len(mock_run.call_args_list) == 1

    def test_uninstall(self, installer, mock_run):
        """Test uninstalling an installed release."""
        mock_run.return_value = _status("deployed")

        assert installer.uninstall("istiod", "istio-system", KUBECONFIG) is True
        assert _commands(mock_run)[-1] == ["helm", "uninstall", "istiod", "--namespace", "istio-system", "--wait"]

    def test_uninstall_failed_release(self, installer, mock_run):
        """Test a release left in failed state by a timed-out install is still removed."""
        mock_run.return_value = _status("failed")

        assert installer.uninstall("istiod", "istio-system", KUBECONFIG) is True
        assert _commands(mock_run)[-1][:2] == ["helm", "uninstall"]
