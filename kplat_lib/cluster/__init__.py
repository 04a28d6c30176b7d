"""Kubernetes-side collaborators: cluster API, chart installer, virtual-cluster engine."""

from kplat_lib.cluster.helm import HelmChartInstaller
from kplat_lib.cluster.kubectl import KubectlClusterAPI
from kplat_lib.cluster.vcluster import VClusterCLI

__all__ = ["KubectlClusterAPI", "HelmChartInstaller", "VClusterCLI"]
