"""
Kubernetes cluster API over kubectl.

Every call runs kubectl with ``KUBECONFIG`` pointing at the target cluster, so
the same instance serves the host cluster and every virtual cluster.
"""

import base64
import json
from pathlib import Path
from typing import Any

import structlog
import yaml

from kplat_lib.any.exceptions import CommandFailedError
from kplat_lib.any.utils import run_command

LOGGER = structlog.get_logger("kplat_lib.cluster.kubectl")


def _kube_env(kubeconfig: Path) -> dict[str, str]:
    return {"KUBECONFIG": str(kubeconfig)}


def _namespace_args(namespace: str | None) -> list[str]:
    return ["--namespace", namespace] if namespace else []


class KubectlClusterAPI:
    """ClusterAPI implementation backed by the kubectl CLI."""

    def __init__(self, kubectl: str = "kubectl"):
        self._kubectl = kubectl

    def _run(self, args: list[str], kubeconfig: Path, check: bool = True, input_text: str | None = None):
        return run_command([self._kubectl, *args], check=check, env=_kube_env(kubeconfig), input_text=input_text)

    def namespace_exists(self, namespace: str, kubeconfig: Path) -> bool:
        """Whether ``namespace`` exists."""
        return self._run(["get", "namespace", namespace], kubeconfig, check=False).returncode == 0

    def ensure_namespace(self, namespace: str, kubeconfig: Path) -> None:
        """Create ``namespace`` if missing; applying an existing namespace is a no-op."""
        manifest = yaml.safe_dump({"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": namespace}})
        self._run(["apply", "-f", "-"], kubeconfig, input_text=manifest)

    def delete_namespace(self, namespace: str, kubeconfig: Path) -> bool:
        """Delete ``namespace``; False when it was already gone."""
        if not self.namespace_exists(namespace, kubeconfig):
            return False
        self._run(["delete", "namespace", namespace, "--ignore-not-found", "--wait=true"], kubeconfig)
        return True

    def resource_exists(self, resource: str, kubeconfig: Path, namespace: str | None = None) -> bool:
        """Whether ``resource`` (``kind/name``) exists."""
        result = self._run(["get", resource, *_namespace_args(namespace)], kubeconfig, check=False)
        return result.returncode == 0

    def apply_urls(self, urls: list[str], kubeconfig: Path, namespace: str | None = None) -> None:
        """Apply remote manifests in order."""
        for url in urls:
            LOGGER.debug(f"Applying {url}")
            self._run(["apply", *_namespace_args(namespace), "-f", url], kubeconfig)

    def apply_documents(self, documents: list[dict[str, Any]], kubeconfig: Path, namespace: str | None = None) -> None:
        """Apply inline documents as one multi-document YAML stream."""
        stream = yaml.safe_dump_all(documents, sort_keys=False)
        self._run(["apply", *_namespace_args(namespace), "-f", "-"], kubeconfig, input_text=stream)

    def delete_urls(self, urls: list[str], kubeconfig: Path, namespace: str | None = None) -> None:
        """Delete remote manifests in reverse order, ignoring objects already gone."""
        for url in reversed(urls):
            self._run(["delete", *_namespace_args(namespace), "--ignore-not-found", "-f", url], kubeconfig)

    def delete_documents(self, documents: list[dict[str, Any]], kubeconfig: Path, namespace: str | None = None) -> None:
        """Delete inline documents, ignoring objects already gone."""
        stream = yaml.safe_dump_all(list(reversed(documents)), sort_keys=False)
        self._run(
            ["delete", *_namespace_args(namespace), "--ignore-not-found", "-f", "-"], kubeconfig, input_text=stream
        )

    def load_balancer_host(self, kubeconfig: Path) -> str | None:
        """Hostname (or IP) of the first LoadBalancer service that has an ingress address."""
        result = self._run(["get", "services", "--all-namespaces", "--output", "json"], kubeconfig)
        for item in json.loads(result.stdout or "{}").get("items", []):
            if item.get("spec", {}).get("type") != "LoadBalancer":
                continue
            for ingress in item.get("status", {}).get("loadBalancer", {}).get("ingress", []) or []:
                host = ingress.get("hostname") or ingress.get("ip")
                if host:
                    return host
        return None

    def read_secret_field(self, namespace: str, secret: str, field: str, kubeconfig: Path) -> bytes | None:
        """Decoded ``data[field]`` of a Kubernetes secret, or None when secret or field is absent."""
        try:
            result = self._run(["get", "secret", secret, "--namespace", namespace, "--output", "json"], kubeconfig)
        except CommandFailedError as e:
            if e.not_found:
                return None
            raise

        encoded = json.loads(result.stdout or "{}").get("data", {}).get(field)
        if not encoded:
            return None
        return base64.b64decode(encoded)
