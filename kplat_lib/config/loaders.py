"""
Configuration loading functions for platform provisioning.

This module provides functions to build and parse configuration:
- Platform configuration (environment variables + CLI overrides)
- Platform manifest (config/data/platform.yaml or a user-supplied file)

Features:
- Template variable resolution (e.g., {{versions.karpenter}}, {{cluster_name}})
- Validation via Pydantic models
"""

import os
import re
from collections.abc import Mapping
from importlib import resources
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from kplat_lib.any.exceptions import KPlatConfigurationError
from kplat_lib.config.schemas import PlatformConfig, PlatformManifest

LOGGER = structlog.get_logger("kplat_lib.config.loaders")

# Environment variable -> dotted PlatformConfig field
ENVIRONMENT_FIELDS: dict[str, str] = {
    "CLOUD_PROVIDER": "cloud",
    "REGION": "region",
    "CLUSTER_NAME": "cluster_name",
    "K8S_VERSION": "versions.kubernetes",
    "KARPENTER_VERSION": "versions.karpenter",
    "VCLUSTER_VERSION": "versions.vcluster",
    "ISTIO_VERSION": "versions.istio",
    "KNATIVE_SERVING_VERSION": "versions.knative_serving",
    "KNATIVE_EVENTING_VERSION": "versions.knative_eventing",
    "NODE_POOL_API_VERSION": "versions.node_pool_api",
    "NODE_CLASS_API_VERSION": "versions.node_class_api",
    "AZURE_NETWORK_DATAPLANE": "azure_network_dataplane",
    "VAULT_ENABLED": "vault.enabled",
    "VAULT_ADDR": "vault.address",
    "VAULT_TOKEN": "vault.token",
    "VAULT_MOUNT": "vault.mount",
    "VAULT_PATH_PREFIX": "vault.kubeconfig_prefix",
    "SSM_PARAMETER_PREFIX": "parameter_prefix",
    "KPLAT_STATE_DIR": "state_dir",
    "KPLAT_MANIFEST": "manifest_path",
}

_TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")


def _set_dotted(data: dict[str, Any], dotted: str, value: Any) -> None:
    """Set ``a.b.c`` inside nested dicts, creating intermediate levels."""
    *parents, leaf = dotted.split(".")
    current = data
    for part in parents:
        current = current.setdefault(part, {})
    current[leaf] = value


def load_platform_config(
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> PlatformConfig:
    """
    Build the immutable platform configuration.

    Precedence: ``overrides`` (CLI flags) > environment variables > defaults.
    ``None`` values in ``overrides`` are ignored so unset CLI flags fall through.

    Args:
    ----
        overrides: Dotted field names to values (e.g. ``{"cloud": "azure", "versions.karpenter": "1.5.1"}``)
        environ: Environment mapping (defaults to os.environ)

    Returns:
    -------
        Validated PlatformConfig

    Raises:
    ------
        KPlatConfigurationError: If any value fails validation

    """
    environ = os.environ if environ is None else environ
    data: dict[str, Any] = {}

    for env_name, dotted in ENVIRONMENT_FIELDS.items():
        value = environ.get(env_name)
        if value not in (None, ""):
            _set_dotted(data, dotted, value)

    for dotted, value in (overrides or {}).items():
        if value is not None:
            _set_dotted(data, dotted, value)

    try:
        config = PlatformConfig(**data)
    except (ValidationError, ValueError) as e:
        raise KPlatConfigurationError(f"Invalid platform configuration: {e}") from e

    LOGGER.debug(
        f"Platform config: cloud={config.cloud.value} region={config.region} "
        f"cluster={config.cluster_name} vault_enabled={config.vault.enabled}"
    )
    return config


def _resolve_template_variables(value: str, context: dict[str, Any]) -> str:
    """
    Resolve template variables in a string.

    Template syntax: {{variable.path}}

    Examples:
    --------
        {{cluster_name}} → modern-engineering
        {{versions.knative_serving}} → 1.18.0

    Raises:
    ------
        KPlatConfigurationError: If a variable is referenced but not in context

    """
    matches = _TEMPLATE_PATTERN.findall(value)

    if not matches:
        return value

    result = value
    for var_path in matches:
        parts = var_path.strip().split(".")

        current: Any = context
        try:
            for part in parts:
                current = current[part]
        except (KeyError, TypeError):
            raise KPlatConfigurationError(
                f"Template variable '{var_path.strip()}' not found in context. " f"Available: {list(context.keys())}"
            )

        result = result.replace(f"{{{{{var_path}}}}}", str(current))

    return result


def _resolve_templates(data: Any, context: dict[str, Any]) -> Any:
    """Recursively resolve template variables in strings, dicts and lists."""
    if isinstance(data, str):
        return _resolve_template_variables(data, context)
    if isinstance(data, dict):
        return {key: _resolve_templates(value, context) for key, value in data.items()}
    if isinstance(data, list):
        return [_resolve_templates(item, context) for item in data]
    return data


def template_context(config: PlatformConfig, account_id: str = "") -> dict[str, Any]:
    """
    Variables available to manifest templates.

    - {{cluster_name}}, {{region}}, {{cloud}}, {{account_id}}
    - {{versions.<pin>}} for every VersionPins field
    """
    return {
        "cluster_name": config.cluster_name,
        "region": config.region,
        "cloud": config.cloud.value,
        "account_id": account_id,
        "versions": config.versions.model_dump(),
    }


def _read_manifest_text(path: Path | None) -> tuple[str, str]:
    """Return (source description, YAML text) for a manifest file or the packaged default."""
    if path is None:
        packaged = resources.files("kplat_lib.config").joinpath("data/platform.yaml")
        return "packaged platform.yaml", packaged.read_text(encoding="utf-8")

    if not path.exists():
        raise KPlatConfigurationError(f"Platform manifest not found: {path}")
    return str(path), path.read_text(encoding="utf-8")


def load_manifest(config: PlatformConfig, account_id: str = "", path: Path | None = None) -> PlatformManifest:
    """
    Load the platform manifest with template resolution.

    Args:
    ----
        config: Platform configuration (supplies template variables)
        account_id: Cloud account/subscription id, known once credentials are verified
        path: Manifest file (defaults to config.manifest_path, then the packaged manifest)

    Returns:
    -------
        Validated PlatformManifest with templates resolved

    Raises:
    ------
        KPlatConfigurationError: If the file is missing, unparsable or invalid

    """
    source, text = _read_manifest_text(path or config.manifest_path)

    try:
        raw_data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise KPlatConfigurationError(f"Failed to parse {source}: {e}") from e

    if not isinstance(raw_data, dict):
        raise KPlatConfigurationError(f"Platform manifest must be a YAML mapping: {source}")

    try:
        resolved_data = _resolve_templates(raw_data, template_context(config, account_id))
    except KPlatConfigurationError as e:
        raise KPlatConfigurationError(f"Template resolution failed in {source}: {e}") from e

    try:
        return PlatformManifest(**resolved_data)
    except ValidationError as e:
        raise KPlatConfigurationError(f"Invalid platform manifest in {source}: {e}") from e
