"""
KPlat Library - Multi-cloud Kubernetes platform provisioning.

This library provisions and tears down an engineering platform:
- Cloud Abstraction Layer (CAL): EKS and AKS provider adapters
- Pipeline: ordered, idempotent stages driven by an orchestrator
- Secret store: Vault with SSM Parameter Store fallback, local kubeconfig backups
- Contexts: named kubeconfigs for the host cluster and its virtual clusters
"""

from importlib.metadata import PackageNotFoundError, version

# ============================================================================
# CORE EXPORTS (from any/)
# ============================================================================

from kplat_lib.any.exceptions import (
    KPlatConfigurationError as ConfigurationError,
)
from kplat_lib.any.exceptions import (
    KPlatError,
    PreconditionFailedError,
    ProvisionFailedError,
    TeardownPartialError,
)
from kplat_lib.any.utils import run_command

try:
    __version__ = version("kplat-lib")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"

__all__ = [
    # Exceptions
    "KPlatError",
    "ConfigurationError",
    "PreconditionFailedError",
    "ProvisionFailedError",
    "TeardownPartialError",
    # Utils
    "run_command",
    # Version
    "__version__",
]
