"""
Any - Cloud-agnostic building blocks for KPlat.

Exceptions, collaborator protocols and utilities used throughout kplat-lib.
The IoC container lives in kplat_lib.any.container and is imported from there.
"""

from kplat_lib.any.exceptions import (
    CommandFailedError,
    ContextNotFoundError,
    KPlatConfigurationError,
    KPlatError,
    PreconditionFailedError,
    ProvisionFailedError,
    SecretBackendUnavailableError,
    SecretFormatError,
    SecretNotFoundError,
    TeardownPartialError,
)
from kplat_lib.any.protocols import ChartInstaller, ClusterAPI, SecretBackend, VClusterEngine
from kplat_lib.any.utils import run_command

__all__ = [
    # Exceptions
    "KPlatError",
    "KPlatConfigurationError",
    "PreconditionFailedError",
    "ProvisionFailedError",
    "TeardownPartialError",
    "SecretNotFoundError",
    "SecretBackendUnavailableError",
    "SecretFormatError",
    "ContextNotFoundError",
    "CommandFailedError",
    # Protocols
    "SecretBackend",
    "ClusterAPI",
    "ChartInstaller",
    "VClusterEngine",
    # Utils
    "run_command",
]
