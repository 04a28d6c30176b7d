"""Managed-Kubernetes provider adapters (one module per cloud)."""

from kplat_lib.cal.adapters.aws_eks import EKSProviderAdapter
from kplat_lib.cal.adapters.azure_aks import AKSProviderAdapter

__all__ = ["EKSProviderAdapter", "AKSProviderAdapter"]
