"""
KPlat Cloud Abstraction Layer (CAL).

This module provides provider-agnostic access to managed Kubernetes:
- ProviderAdapter protocol (ensure/describe/delete a cluster)
- EKS and AKS adapters
- Factory selecting the adapter for the configured cloud

Example:
-------
    >>> from kplat_lib.cal import create_provider_adapter
    >>> adapter = create_provider_adapter(config)
    >>> endpoint = adapter.ensure_cluster(config.cluster_name, config.region, config.versions.kubernetes)

"""

from kplat_lib.cal.adapters import AKSProviderAdapter, EKSProviderAdapter
from kplat_lib.cal.factory import UnsupportedProviderError, create_provider_adapter
from kplat_lib.cal.protocols import DeleteResult, Endpoint, ProviderAdapter

__all__ = [
    "ProviderAdapter",
    "Endpoint",
    "DeleteResult",
    "EKSProviderAdapter",
    "AKSProviderAdapter",
    "UnsupportedProviderError",
    "create_provider_adapter",
]
