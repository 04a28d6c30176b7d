"""Virtual-cluster engine over the vcluster CLI."""

import json
from pathlib import Path

import structlog

from kplat_lib.any.exceptions import CommandFailedError
from kplat_lib.any.utils import run_command

LOGGER = structlog.get_logger("kplat_lib.cluster.vcluster")

_NOT_FOUND_MARKERS = ("couldn't find", "could not find", "not found", "notfound")


class VClusterCLI:
    """VClusterEngine implementation backed by the vcluster CLI."""

    def __init__(self, vcluster: str = "vcluster"):
        self._vcluster = vcluster

    def _run(self, args: list[str], kubeconfig: Path, check: bool = True):
        return run_command([self._vcluster, *args], check=check, env={"KUBECONFIG": str(kubeconfig)})

    def create(self, name: str, namespace: str, version: str, kubeconfig: Path) -> None:
        """
        Create the virtual cluster in ``namespace``.

        ``--connect=false`` keeps the operator's kubeconfig untouched; the
        kubeconfig is captured separately with :meth:`kubeconfig`.
        """
        LOGGER.info(f"Creating vcluster {name} in namespace {namespace}")
        self._run(
            [
                "create",
                name,
                "--namespace",
                namespace,
                "--chart-version",
                version,
                "--connect=false",
                "--upgrade",
            ],
            kubeconfig,
        )

    def exists(self, name: str, namespace: str, kubeconfig: Path) -> bool:
        """Whether ``vcluster list`` reports ``name`` in ``namespace``."""
        result = self._run(["list", "--namespace", namespace, "--output", "json"], kubeconfig)
        return any(item.get("Name") == name for item in json.loads(result.stdout or "[]"))

    def delete(self, name: str, namespace: str, kubeconfig: Path) -> bool:
        """Delete the virtual cluster; False when it was already gone."""
        result = self._run(["delete", name, "--namespace", namespace], kubeconfig, check=False)
        if result.returncode == 0:
            return True

        stderr = result.stderr or ""
        if any(marker in stderr.lower() for marker in _NOT_FOUND_MARKERS):
            return False
        raise CommandFailedError([self._vcluster, "delete", name, "--namespace", namespace], result.returncode, stderr)

    def kubeconfig(self, name: str, namespace: str, kubeconfig: Path) -> bytes:
        """Print a kubeconfig for the virtual cluster (waits until it serves requests)."""
        result = self._run(["connect", name, "--namespace", namespace, "--print"], kubeconfig)
        return result.stdout.encode("utf-8")
