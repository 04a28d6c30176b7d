"""
Dependency injection container for KPlat.

Wires the provider adapter, the Kubernetes-side collaborators, the secret
store, the context manager and the orchestrator from one PlatformConfig.
Uses dependency-injector with singletons; adapters are imported lazily so
that importing the container never pulls in cloud SDK modules it does not use.
"""

from dependency_injector import containers, providers

from kplat_lib.config.schemas import PlatformConfig
from kplat_lib.types import KPlatCloud


def _ssm_region(config: PlatformConfig) -> str:
    """SSM lives in AWS; Azure deployments fall back to the default AWS region."""
    return config.region if config.cloud == KPlatCloud.AWS else KPlatCloud.AWS.default_region


def _vault_backend(config: PlatformConfig):
    if not config.vault.enabled:
        return None
    return __import__("kplat_lib.security.vault", fromlist=["VaultSecretBackend"]).VaultSecretBackend(config.vault)


class KPlatIoCContainer(containers.DeclarativeContainer):
    """
    Inversion of Control (IoC) container for KPlat.

    Example:
    -------
        ```python
        from kplat_lib.any.container import create_container
        from kplat_lib.config import load_platform_config

        container = create_container(load_platform_config({"cloud": "azure"}))

        # Same orchestrator instance on every call
        orchestrator = container.orchestrator()
        orchestrator.create()

        # Override collaborators in tests
        container.cluster_api.override(fake_cluster_api)
        ```

    """

    # Configuration input (dependency)
    config = providers.Dependency(instance_of=PlatformConfig)

    # Singleton: provider adapter for config.cloud (EKS or AKS)
    provider_adapter = providers.Singleton(
        providers.Callable(
            lambda config: __import__(
                "kplat_lib.cal.factory",
                fromlist=["create_provider_adapter"],
            ).create_provider_adapter(config),
            config=config,
        )
    )

    # Singletons: secret backends (Vault is None unless enabled)
    vault_backend = providers.Singleton(providers.Callable(_vault_backend, config=config))

    parameter_store = providers.Singleton(
        providers.Callable(
            lambda config: __import__(
                "kplat_lib.security.parameter_store",
                fromlist=["ParameterStoreBackend"],
            ).ParameterStoreBackend(prefix=config.parameter_prefix, region=_ssm_region(config)),
            config=config,
        )
    )

    credential_backups = providers.Singleton(
        providers.Callable(
            lambda config: __import__(
                "kplat_lib.security.backup",
                fromlist=["CredentialBackups"],
            ).CredentialBackups(config.backup_dir),
            config=config,
        )
    )

    # Singleton: secret store facade (Vault first, SSM fallback)
    secret_store = providers.Singleton(
        providers.Callable(
            lambda config, primary, fallback, backups: __import__(
                "kplat_lib.security.store",
                fromlist=["SecretStore"],
            ).SecretStore(
                primary=primary,
                fallback=fallback,
                credential_dir=config.kubeconfig_dir,
                backups=backups,
            ),
            config=config,
            primary=vault_backend,
            fallback=parameter_store,
            backups=credential_backups,
        )
    )

    # Singletons: Kubernetes-side collaborators
    cluster_api = providers.Singleton(
        providers.Factory(
            lambda: __import__("kplat_lib.cluster.kubectl", fromlist=["KubectlClusterAPI"]).KubectlClusterAPI()
        )
    )

    chart_installer = providers.Singleton(
        providers.Factory(
            lambda: __import__("kplat_lib.cluster.helm", fromlist=["HelmChartInstaller"]).HelmChartInstaller()
        )
    )

    vcluster_engine = providers.Singleton(
        providers.Factory(lambda: __import__("kplat_lib.cluster.vcluster", fromlist=["VClusterCLI"]).VClusterCLI())
    )

    # Singleton: manifest as seen before credentials are verified (contexts only)
    context_manifest = providers.Singleton(
        providers.Callable(
            lambda config: __import__("kplat_lib.config.loaders", fromlist=["load_manifest"]).load_manifest(config),
            config=config,
        )
    )

    # Singleton: context manager
    context_manager = providers.Singleton(
        providers.Callable(
            lambda config, manifest, store, provider: __import__(
                "kplat_lib.contexts.manager",
                fromlist=["ContextManager"],
            ).ContextManager(config, manifest, store=store, auth_exec_hint=provider.auth_exec_hint),
            config=config,
            manifest=context_manifest,
            store=secret_store,
            provider=provider_adapter,
        )
    )

    # Singleton: live view of the platform (leftovers after teardown)
    resource_registry = providers.Singleton(
        providers.Callable(
            lambda config, manifest, provider, cluster_api, contexts: __import__(
                "kplat_lib.pipeline.registry",
                fromlist=["ResourceRegistry"],
            ).ResourceRegistry(config, manifest, provider, cluster_api, contexts.host_entry().path),
            config=config,
            manifest=context_manifest,
            provider=provider_adapter,
            cluster_api=cluster_api,
            contexts=context_manager,
        )
    )

    # Singleton: stage builder handed to the orchestrator
    stage_builder = providers.Singleton(
        providers.Callable(
            lambda config, provider, cluster_api, charts, vclusters, contexts, store: __import__(
                "kplat_lib.pipeline.stages",
                fromlist=["PlatformStageBuilder"],
            ).PlatformStageBuilder(config, provider, cluster_api, charts, vclusters, contexts, store),
            config=config,
            provider=provider_adapter,
            cluster_api=cluster_api,
            charts=chart_installer,
            vclusters=vcluster_engine,
            contexts=context_manager,
            store=secret_store,
        )
    )

    # Singleton: orchestrator
    orchestrator = providers.Singleton(
        providers.Callable(
            lambda config, provider, builder: __import__(
                "kplat_lib.pipeline.orchestrator",
                fromlist=["Orchestrator"],
            ).Orchestrator(provider, builder, cluster_name=config.cluster_name, region=config.region),
            config=config,
            provider=provider_adapter,
            builder=stage_builder,
        )
    )


def create_container(config: PlatformConfig) -> containers.DynamicContainer:
    """
    Create a KPlat IoC container for ``config``.

    Args:
    ----
        config: Platform configuration

    Returns:
    -------
        Configured container (instantiating a DeclarativeContainer yields a DynamicContainer)

    """
    container = KPlatIoCContainer()
    container.config.override(config)
    return container
