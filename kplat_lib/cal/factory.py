"""
Provider Adapter Factory.

This module provides the factory function for creating the managed-Kubernetes
adapter for the configured cloud.

Usage:
------
    >>> from kplat_lib.cal.factory import create_provider_adapter
    >>> from kplat_lib.config import load_platform_config
    >>>
    >>> config = load_platform_config({"cloud": "azure"})
    >>> adapter = create_provider_adapter(config)
    >>> adapter.cluster_exists(config.cluster_name, config.region)

"""

from kplat_lib.any.exceptions import KPlatError
from kplat_lib.cal.adapters.aws_eks import EKSProviderAdapter
from kplat_lib.cal.adapters.azure_aks import AKSProviderAdapter
from kplat_lib.cal.protocols import ProviderAdapter
from kplat_lib.config.schemas import PlatformConfig
from kplat_lib.types import KPlatCloud


class UnsupportedProviderError(KPlatError):
    """Raised when attempting to use an unsupported cloud provider."""

    pass


def create_provider_adapter(config: PlatformConfig) -> ProviderAdapter:
    """
    Create the provider adapter for ``config.cloud``.

    Args:
    ----
        config: Platform configuration

    Returns:
    -------
        ProviderAdapter: EKS adapter for AWS, AKS adapter for Azure

    Raises:
    ------
        UnsupportedProviderError: If the cloud has no adapter

    """
    if config.cloud == KPlatCloud.AWS:
        return EKSProviderAdapter(config)
    elif config.cloud == KPlatCloud.AZURE:
        return AKSProviderAdapter(config)
    else:
        raise UnsupportedProviderError(
            f"Unknown cloud provider: {config.cloud}. " f"Supported clouds: {', '.join(c.value for c in KPlatCloud)}"
        )
