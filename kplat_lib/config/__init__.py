"""KPlat configuration management."""

from kplat_lib.config.loaders import load_manifest, load_platform_config, template_context
from kplat_lib.config.schemas import (
    ComponentSpec,
    ContextSpec,
    CredentialRef,
    PlatformConfig,
    PlatformManifest,
    VaultSettings,
    VClusterSpec,
    VersionPins,
)

__all__ = [
    "PlatformConfig",
    "PlatformManifest",
    "VersionPins",
    "VaultSettings",
    "ContextSpec",
    "ComponentSpec",
    "VClusterSpec",
    "CredentialRef",
    "load_platform_config",
    "load_manifest",
    "template_context",
]
