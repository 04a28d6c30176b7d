"""
Named execution contexts.

A context maps a logical name (``main``, ``dev``, ``prod``, ``management``) or
one of its aliases to a kubeconfig file under ``<state_dir>/kubeconfigs``.
Exactly one context is active at a time; the pointer lives in
``<state_dir>/active-context`` so separate CLI invocations agree on it.
"""

from dataclasses import dataclass
from pathlib import Path

import structlog

from kplat_lib.any.exceptions import ContextNotFoundError, SecretBackendUnavailableError
from kplat_lib.any.utils import write_private_file
from kplat_lib.config.schemas import ContextSpec, PlatformConfig, PlatformManifest
from kplat_lib.security.store import SecretStore

LOGGER = structlog.get_logger("kplat_lib.contexts.manager")


@dataclass(frozen=True)
class ContextEntry:
    """A logical context and where its kubeconfig lives."""

    name: str
    path: Path
    auth_exec_hint: str
    secret_path: str
    aliases: tuple[str, ...] = ()
    vcluster: str | None = None

    @property
    def kind(self) -> str:
        """``host`` for the physical cluster, ``virtual`` for a vcluster."""
        return "host" if self.vcluster is None else "virtual"


class ContextManager:
    """
    Switch between, list and restore named kubeconfig contexts.

    Example:
    -------
        ```python
        manager = ContextManager(config, manifest, store)
        manager.switch("vd")        # alias for "dev"
        manager.current()           # "dev"
        manager.env()               # {"KUBECONFIG": ".../kubeconfigs/dev.yaml"}
        ```

    """

    def __init__(
        self,
        config: PlatformConfig,
        manifest: PlatformManifest,
        store: SecretStore | None = None,
        auth_exec_hint: str = "",
    ):
        self._config = config
        self._manifest = manifest
        self._store = store
        self._auth_exec_hint = auth_exec_hint

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _spec(self, name: str) -> ContextSpec:
        for spec in self._manifest.contexts:
            if name == spec.name or name in spec.aliases:
                return spec
        known = ", ".join(self.list())
        raise ContextNotFoundError(f"Unknown context '{name}'. Known contexts: {known}")

    def _to_entry(self, spec: ContextSpec) -> ContextEntry:
        target = self._config.cluster_name if spec.is_host else f"vcluster-{spec.vcluster}"
        return ContextEntry(
            name=spec.name,
            path=self._config.kubeconfig_dir / f"{spec.name}.yaml",
            auth_exec_hint=self._auth_exec_hint,
            secret_path=self._config.kubeconfig_secret_path(target),
            aliases=tuple(spec.aliases),
            vcluster=spec.vcluster,
        )

    def entry(self, name: str) -> ContextEntry:
        """Resolve a context name or alias (raises ContextNotFoundError)."""
        return self._to_entry(self._spec(name))

    def entries(self) -> list[ContextEntry]:
        """All contexts in manifest order."""
        return [self._to_entry(spec) for spec in self._manifest.contexts]

    def host_entry(self) -> ContextEntry:
        """Context pointing at the physical cluster."""
        return self._to_entry(self._manifest.host_context())

    def vcluster_entry(self, vcluster: str) -> ContextEntry:
        """Context backed by ``vcluster``."""
        return self._to_entry(self._manifest.context_for_vcluster(vcluster))

    def list(self) -> list[str]:
        """Context names, in manifest order."""
        return [spec.name for spec in self._manifest.contexts]

    # ------------------------------------------------------------------
    # Active pointer
    # ------------------------------------------------------------------

    def _read_pointer(self) -> str | None:
        pointer = self._config.active_context_file
        if not pointer.exists():
            return None
        name = pointer.read_text(encoding="utf-8").strip()
        return name if name in self.list() else None

    def current(self) -> str:
        """Active context, or the manifest default when none has been switched to."""
        return self._read_pointer() or self._manifest.default_context().name

    def switch(self, name: str) -> ContextEntry:
        """
        Make ``name`` the active context.

        Raises
        ------
            ContextNotFoundError: If the name is unknown or its kubeconfig is missing;
                the active context is left unchanged

        """
        entry = self.entry(name)
        if not entry.path.exists():
            raise ContextNotFoundError(
                f"No kubeconfig for context '{entry.name}' at {entry.path}. "
                f"Run 'kplat context restore {entry.name}' first."
            )

        write_private_file(self._config.active_context_file, f"{entry.name}\n".encode("utf-8"))
        LOGGER.info(f"✓ Switched to context {entry.name}")
        return entry

    def env(self, name: str | None = None) -> dict[str, str]:
        """Environment that points kubectl at a context (the active one by default)."""
        entry = self.entry(name or self.current())
        return {"KUBECONFIG": str(entry.path)}

    # ------------------------------------------------------------------
    # Kubeconfig files
    # ------------------------------------------------------------------

    def save_kubeconfig(self, name: str, content: bytes, source: str = "kplat") -> Path:
        """
        Write a context's kubeconfig (mode 0600) and record it in the secret store.

        A secret store that cannot be reached is logged; the local file is still written.
        """
        entry = self.entry(name)
        write_private_file(entry.path, content)
        LOGGER.info(f"✓ Kubeconfig for {entry.name} written to {entry.path}")

        if self._store is not None:
            try:
                self._store.put(entry.secret_path, content, source=source)
            except SecretBackendUnavailableError as e:
                LOGGER.warning(f"✗ Could not store kubeconfig for {entry.name}: {e}")
        return entry.path

    def restore(self, name: str) -> Path:
        """
        Pull a context's kubeconfig from the secret store if the local file is absent.

        Raises
        ------
            ContextNotFoundError: If the name is unknown
            SecretNotFoundError: If the secret store has no kubeconfig for it

        """
        entry = self.entry(name)
        if entry.path.exists():
            LOGGER.info(f"Kubeconfig for {entry.name} already present at {entry.path}, skipping restore")
            return entry.path
        if self._store is None:
            raise SecretBackendUnavailableError("No secret store configured for restore")

        content = self._store.get(entry.secret_path)
        write_private_file(entry.path, content)
        LOGGER.info(f"✓ Restored kubeconfig for {entry.name} from {self._store.backend_name}")
        return entry.path

    def forget(self, name: str) -> None:
        """Remove a context's local kubeconfig and release the pointer if it is active."""
        entry = self.entry(name)
        entry.path.unlink(missing_ok=True)
        if self._read_pointer() == entry.name:
            self._config.active_context_file.unlink(missing_ok=True)
        LOGGER.info(f"Released context {entry.name}")
