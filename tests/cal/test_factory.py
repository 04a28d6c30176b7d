"""Tests for the provider adapter factory."""

from unittest.mock import MagicMock

import pytest

from kplat_lib.cal.adapters.aws_eks import EKSProviderAdapter
from kplat_lib.cal.adapters.azure_aks import AKSProviderAdapter
from kplat_lib.cal.factory import UnsupportedProviderError, create_provider_adapter
from kplat_lib.config.schemas import PlatformConfig


class TestCreateProviderAdapter:
    """Tests for create_provider_adapter."""

    def test_aws(self):
        """Test AWS config yields the EKS adapter."""
        assert isinstance(create_provider_adapter(PlatformConfig(cloud="aws")), EKSProviderAdapter)

    def test_azure(self):
        """Test Azure config yields the AKS adapter."""
        assert isinstance(create_provider_adapter(PlatformConfig(cloud="azure")), AKSProviderAdapter)

    def test_unknown_cloud(self):
        """Test an unsupported cloud raises."""
        config = MagicMock(cloud="gcp")

        with pytest.raises(UnsupportedProviderError, match="Unknown cloud provider: gcp"):
            create_provider_adapter(config)
