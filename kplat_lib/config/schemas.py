"""
Configuration schemas for platform provisioning.

This module defines Pydantic models for:
- Platform configuration (environment variables and CLI overrides)
- Platform manifest (config/data/platform.yaml): contexts, components, virtual clusters
"""

import re
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from kplat_lib.types import Criticality, KPlatCloud

_NAME_PATTERN = re.compile(r"^[a-zA-Z][-a-zA-Z0-9]*$")
_REGION_PATTERN = re.compile(r"^[a-z0-9-]+$")


class VersionPins(BaseModel):
    """Component version pins. Every pin can be overridden from the environment."""

    model_config = ConfigDict(frozen=True)

    kubernetes: str = "1.29"
    karpenter: str = "1.5.0"
    vcluster: str = "0.25"
    istio: str = "1.26.1"
    knative_serving: str = "1.18.0"
    knative_eventing: str = "1.18.0"
    node_pool_api: Annotated[
        str, Field(description="apiVersion of the Karpenter NodePool (e.g. karpenter.sh/v1 or karpenter.sh/v1beta1)")
    ] = "karpenter.sh/v1"
    node_class_api: Annotated[
        str, Field(description="apiVersion of the Karpenter EC2NodeClass (e.g. karpenter.k8s.aws/v1)")
    ] = "karpenter.k8s.aws/v1"


class VaultSettings(BaseModel):
    """
    HashiCorp Vault connection settings.

    Example:
    -------
        VAULT_ENABLED=true
        VAULT_ADDR=https://vault.example.com:8200
        VAULT_PATH_PREFIX=kubeconfigs

    """

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    address: str | None = None
    token: Annotated[str | None, Field(default=None, repr=False)] = None
    mount: str = "secret"
    kubeconfig_prefix: str = "kubeconfigs"

    @field_validator("kubeconfig_prefix")
    @classmethod
    def strip_slashes(cls, v: str) -> str:
        """Normalise the prefix to a bare relative path."""
        return v.strip("/")


class PlatformConfig(BaseModel):
    """
    Immutable platform configuration.

    Built once (see kplat_lib.config.loaders.load_platform_config) and handed to every
    component at construction; nothing reads the process environment after that.
    """

    model_config = ConfigDict(frozen=True)

    cloud: KPlatCloud = KPlatCloud.AWS
    region: str = ""
    cluster_name: str = "modern-engineering"
    versions: VersionPins = Field(default_factory=VersionPins)
    vault: VaultSettings = Field(default_factory=VaultSettings)
    parameter_prefix: str = "kplat"
    state_dir: Path = Field(default_factory=lambda: Path.home() / ".kube" / "kplat")
    manifest_path: Path | None = None
    azure_network_dataplane: str = "cilium"

    @model_validator(mode="before")
    @classmethod
    def default_region_for_cloud(cls, data: Any) -> Any:
        """Fill in the cloud's default region when none is given."""
        if isinstance(data, dict) and not data.get("region"):
            cloud = data.get("cloud", KPlatCloud.AWS)
            if not isinstance(cloud, KPlatCloud):
                cloud = KPlatCloud.from_string(str(cloud))
            data = {**data, "region": cloud.default_region}
        return data

    @field_validator("cloud", mode="before")
    @classmethod
    def parse_cloud(cls, v: Any) -> Any:
        """Accept cloud names case-insensitively (``AWS``, ``azure``)."""
        return KPlatCloud.from_string(v) if isinstance(v, str) else v

    @field_validator("cluster_name")
    @classmethod
    def validate_cluster_name(cls, v: str) -> str:
        """Cluster names start with a letter and contain only alphanumerics and hyphens."""
        if not _NAME_PATTERN.match(v) or len(v) > 100:
            raise ValueError(
                f"Invalid cluster name: '{v}'. Must start with a letter, contain only "
                "alphanumeric characters and hyphens, and be at most 100 characters long"
            )
        return v

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        """Regions contain only lowercase letters, numbers and hyphens."""
        if not _REGION_PATTERN.match(v):
            raise ValueError(f"Invalid region format: '{v}'")
        return v

    @field_validator("parameter_prefix")
    @classmethod
    def strip_parameter_prefix(cls, v: str) -> str:
        """Normalise the SSM prefix to a bare relative path."""
        return v.strip("/")

    @property
    def kubeconfig_dir(self) -> Path:
        """Directory holding one kubeconfig per logical context."""
        return self.state_dir / "kubeconfigs"

    @property
    def backup_dir(self) -> Path:
        """Sibling directory holding timestamped kubeconfig snapshots."""
        return self.state_dir / "backups"

    @property
    def active_context_file(self) -> Path:
        """File holding the active context pointer."""
        return self.state_dir / "active-context"

    def kubeconfig_secret_path(self, target: str) -> str:
        """Secret-store path of the kubeconfig for a cluster or virtual cluster."""
        return f"{self.vault.kubeconfig_prefix}/{target}"


class ContextSpec(BaseModel):
    """
    A logical execution context (manifest ``contexts`` entry).

    Example:
    -------
        - name: dev
          vcluster: modernengg-dev
          aliases: [vd]

    """

    name: str
    vcluster: str | None = Field(default=None, description="Virtual cluster backing this context; None for the host")
    aliases: list[str] = Field(default_factory=list)
    default: bool = False
    description: str | None = None

    @property
    def is_host(self) -> bool:
        """Whether this context points at the physical cluster."""
        return self.vcluster is None


class ComponentSpec(BaseModel):
    """
    A platform component installed by a pipeline stage.

    ``kind: chart`` components are installed with ``helm upgrade --install`` and probed by
    release name. ``kind: manifests`` components apply remote URLs and/or inline documents
    and are probed by a resource they create (``probe: deployment/argocd-server``).
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    kind: Literal["chart", "manifests"]
    clouds: list[KPlatCloud] = Field(default_factory=list, description="Empty means every cloud")
    criticality: Criticality = Criticality.FATAL
    namespace: str | None = None

    # kind: chart
    release: str | None = None
    chart: str | None = None
    repo_name: str | None = None
    repo_url: str | None = None
    version: str | None = None
    values: dict[str, Any] = Field(default_factory=dict)
    wait: bool = False
    timeout: str | None = None
    registry_logout: str | None = Field(default=None, description="OCI registry to log out of before pulling")

    # kind: manifests
    urls: list[str] = Field(default_factory=list)
    documents: list[dict[str, Any]] = Field(default_factory=list)
    apply_in_namespace: bool = Field(default=False, description="Pass -n <namespace> when applying")
    probe: str | None = Field(default=None, description="kind/name of a resource whose presence means installed")

    @model_validator(mode="after")
    def validate_kind_fields(self) -> "ComponentSpec":
        """Validate that each kind carries the fields it needs."""
        if self.kind == "chart":
            if not self.release or not self.chart:
                raise ValueError(f"Chart component '{self.name}' needs both 'release' and 'chart'")
            if not self.namespace:
                raise ValueError(f"Chart component '{self.name}' needs a 'namespace'")
        else:
            if not self.urls and not self.documents:
                raise ValueError(f"Manifest component '{self.name}' needs 'urls' or 'documents'")
            if not self.probe:
                raise ValueError(f"Manifest component '{self.name}' needs a 'probe' resource (kind/name)")
        return self

    def applies_to(self, cloud: KPlatCloud) -> bool:
        """Whether this component is installed on ``cloud``."""
        return not self.clouds or cloud in self.clouds


class VClusterSpec(BaseModel):
    """A virtual cluster hosted in its own namespace on the physical cluster."""

    name: str
    namespace: str = ""

    @model_validator(mode="after")
    def default_namespace(self) -> "VClusterSpec":
        """Virtual clusters live in ``vcluster-<name>`` unless told otherwise."""
        if not self.namespace:
            self.namespace = f"vcluster-{self.name}"
        return self


class CredentialRef(BaseModel):
    """A Kubernetes secret field captured into ``platform/credentials/<key>``."""

    key: str
    context: str
    namespace: str
    secret: str
    field: str


class PlatformManifest(BaseModel):
    """
    Data-defined description of the platform (config/data/platform.yaml).

    Adding a virtual cluster or an application is a manifest change; the pipeline and the
    context manager consume the lists generically.
    """

    contexts: Annotated[list[ContextSpec], Field(min_length=1)]
    host_components: list[ComponentSpec] = Field(default_factory=list)
    vclusters: list[VClusterSpec] = Field(default_factory=list)
    vcluster_applications: list[ComponentSpec] = Field(default_factory=list)
    platform_urls: Annotated[
        dict[str, str], Field(default_factory=dict, description="URL patterns; {host} is the ingress load balancer")
    ]
    platform_credentials: list[CredentialRef] = Field(default_factory=list)

    description: str | None = None

    @model_validator(mode="after")
    def validate_contexts(self) -> "PlatformManifest":
        """Validate context names, aliases and the vcluster/context pairing."""
        names: set[str] = set()
        for ctx in self.contexts:
            for label in [ctx.name, *ctx.aliases]:
                if label in names:
                    raise ValueError(f"Duplicate context name or alias: '{label}'")
                names.add(label)

        hosts = [ctx for ctx in self.contexts if ctx.is_host]
        if len(hosts) != 1:
            raise ValueError(f"Exactly one host context is required, found {len(hosts)}")

        if sum(1 for ctx in self.contexts if ctx.default) > 1:
            raise ValueError("At most one context can be marked default")

        vcluster_names = {v.name for v in self.vclusters}
        backed = {ctx.vcluster for ctx in self.contexts if ctx.vcluster}
        unknown = backed - vcluster_names
        if unknown:
            raise ValueError(f"Contexts reference undeclared vclusters: {sorted(unknown)}")
        unbacked = vcluster_names - backed
        if unbacked:
            raise ValueError(f"vclusters without a context: {sorted(unbacked)}")

        for ref in self.platform_credentials:
            if ref.context not in {ctx.name for ctx in self.contexts}:
                raise ValueError(f"Credential '{ref.key}' references unknown context '{ref.context}'")
        return self

    def host_context(self) -> ContextSpec:
        """The context pointing at the physical cluster."""
        return next(ctx for ctx in self.contexts if ctx.is_host)

    def default_context(self) -> ContextSpec:
        """The context used when no pointer has been set."""
        return next((ctx for ctx in self.contexts if ctx.default), self.host_context())

    def context_for_vcluster(self, vcluster: str) -> ContextSpec:
        """The context backed by ``vcluster``."""
        return next(ctx for ctx in self.contexts if ctx.vcluster == vcluster)

    def host_components_for(self, cloud: KPlatCloud) -> list[ComponentSpec]:
        """Host components installed on ``cloud``, in manifest order."""
        return [c for c in self.host_components if c.applies_to(cloud)]

    def vcluster_applications_for(self, cloud: KPlatCloud) -> list[ComponentSpec]:
        """Per-vcluster applications installed on ``cloud``, in manifest order."""
        return [c for c in self.vcluster_applications if c.applies_to(cloud)]
