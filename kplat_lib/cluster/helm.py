"""
Chart installer over the Helm CLI.

Charts are installed with ``helm upgrade --install`` keyed by release name, so a
second install of the same component upgrades in place instead of duplicating it.
"""

import json
from pathlib import Path

import structlog
import yaml

from kplat_lib.any.utils import run_command
from kplat_lib.config.schemas import ComponentSpec

LOGGER = structlog.get_logger("kplat_lib.cluster.helm")


class HelmChartInstaller:
    """ChartInstaller implementation backed by the helm CLI."""

    def __init__(self, helm: str = "helm"):
        self._helm = helm

    def _run(self, args: list[str], kubeconfig: Path, check: bool = True, input_text: str | None = None):
        return run_command([self._helm, *args], check=check, env={"KUBECONFIG": str(kubeconfig)}, input_text=input_text)

    def release_status(self, release: str, namespace: str, kubeconfig: Path) -> str | None:
        """Helm status of ``release`` (``deployed``, ``failed``, ``pending-install``...), or None when absent."""
        result = self._run(["status", release, "--namespace", namespace, "--output", "json"], kubeconfig, check=False)
        if result.returncode != 0:
            return None
        return json.loads(result.stdout or "{}").get("info", {}).get("status")

    def release_exists(self, release: str, namespace: str, kubeconfig: Path) -> bool:
        """Whether ``release`` is deployed in ``namespace``; a failed or pending release is not."""
        return self.release_status(release, namespace, kubeconfig) == "deployed"

    def install(self, component: ComponentSpec, kubeconfig: Path) -> None:
        """
        Install or upgrade a chart component.

        Args:
        ----
            component: Manifest entry with ``kind: chart``
            kubeconfig: Kubeconfig of the target cluster

        Raises:
        ------
            CommandFailedError: If helm fails

        """
        if component.registry_logout:
            # Stale registry credentials break anonymous OCI pulls; not being logged in is fine.
            result = self._run(["registry", "logout", component.registry_logout], kubeconfig, check=False)
            if result.returncode != 0:
                LOGGER.debug(f"helm registry logout {component.registry_logout}: {(result.stderr or '').strip()}")

        if component.repo_name and component.repo_url:
            self._run(["repo", "add", component.repo_name, component.repo_url, "--force-update"], kubeconfig)
            self._run(["repo", "update", component.repo_name], kubeconfig)

        args = [
            "upgrade",
            "--install",
            component.release,
            component.chart,
            "--namespace",
            component.namespace,
            "--create-namespace",
        ]
        if component.version:
            args += ["--version", component.version]
        if component.wait:
            args.append("--wait")
        if component.timeout:
            args += ["--timeout", component.timeout]

        values_yaml = None
        if component.values:
            args += ["--values", "-"]
            values_yaml = yaml.safe_dump(component.values, sort_keys=False)

        LOGGER.info(f"Installing chart {component.chart} as release {component.release} in {component.namespace}")
        self._run(args, kubeconfig, input_text=values_yaml)

    def uninstall(self, release: str, namespace: str, kubeconfig: Path) -> bool:
        """Uninstall ``release`` in any state; False when it was not installed."""
        if self.release_status(release, namespace, kubeconfig) is None:
            return False
        self._run(["uninstall", release, "--namespace", namespace, "--wait"], kubeconfig)
        return True
