"""
Secret store facade.

Callers read and write secrets through :class:`SecretStore` without knowing
which backend is active. Vault is preferred; when it is disabled or unreachable
the store falls back to SSM Parameter Store and logs a warning. The choice is
made once, on first use, and kept for the lifetime of the instance.
"""

from pathlib import Path

import structlog

from kplat_lib.any.exceptions import SecretBackendUnavailableError
from kplat_lib.any.protocols import SecretBackend
from kplat_lib.security.backup import CredentialBackups
from kplat_lib.security.records import SecretMetadata, SecretRecord, category_prefix, normalize_path

LOGGER = structlog.get_logger("kplat_lib.security.store")


class SecretStore:
    """
    Key/value store for kubeconfigs and platform secrets.

    Example:
    -------
        ```python
        store = SecretStore(primary=vault, fallback=ssm, credential_dir=dir, backups=backups)
        store.put("platform/credentials/argocd_admin_password", b"s3cret", source="kplat-provision")
        store.get("platform/credentials/argocd_admin_password")  # b"s3cret"
        ```

    """

    def __init__(
        self,
        primary: SecretBackend | None,
        fallback: SecretBackend | None,
        credential_dir: Path,
        backups: CredentialBackups,
    ):
        """
        Initialize the store.

        Args:
        ----
            primary: Preferred backend (Vault), or None when not configured
            fallback: Backend used when the primary is unavailable (SSM)
            credential_dir: Local kubeconfig directory covered by backup/restore
            backups: Snapshot manager for ``credential_dir``

        """
        self._primary = primary
        self._fallback = fallback
        self._credential_dir = credential_dir
        self._backups = backups
        self._backend: SecretBackend | None = None

    @property
    def backend(self) -> SecretBackend:
        """
        Active backend, selected on first access.

        Raises
        ------
            SecretBackendUnavailableError: If neither backend is usable

        """
        if self._backend is not None:
            return self._backend

        if self._primary is not None and self._primary.is_available():
            self._backend = self._primary
        elif self._fallback is not None:
            if self._primary is not None:
                LOGGER.warning(f"{self._primary.name} unavailable, falling back to {self._fallback.name}")
            self._backend = self._fallback
        else:
            raise SecretBackendUnavailableError("No secret backend is available")

        LOGGER.debug(f"Secret backend: {self._backend.name}")
        return self._backend

    @property
    def backend_name(self) -> str:
        """Name of the active backend (``vault`` or ``ssm``)."""
        return self.backend.name

    def put(
        self,
        path: str,
        value: bytes | str,
        source: str = "kplat",
        metadata: SecretMetadata | None = None,
    ) -> SecretRecord:
        """
        Create or overwrite the secret at ``path``.

        Value and metadata are written together in one backend call.

        Args:
        ----
            path: Hierarchical key (``platform/urls/argocd``)
            value: Secret value; str values are UTF-8 encoded
            source: Provenance recorded in metadata when ``metadata`` is not given
            metadata: Explicit metadata

        Returns:
        -------
            The record as written

        """
        path = normalize_path(path)
        data = value.encode("utf-8") if isinstance(value, str) else bytes(value)
        record = SecretRecord(path=path, value=data, metadata=metadata or SecretMetadata(source=source))
        self.backend.write(path, record.to_envelope())
        LOGGER.info(f"✓ Stored secret {path} in {self.backend.name}")
        return record

    def get_record(self, path: str) -> SecretRecord:
        """
        Read the record at ``path``.

        Raises
        ------
            SecretNotFoundError: If nothing is stored at ``path``

        """
        path = normalize_path(path)
        return SecretRecord.from_envelope(path, self.backend.read(path))

    def get(self, path: str) -> bytes:
        """Read the value at ``path`` (raises SecretNotFoundError when missing)."""
        return self.get_record(path).value

    def dump(self, category: str) -> dict[str, str]:
        """
        Return ``{key: value}`` for a platform category (``urls``, ``credentials``, ``ssh``, ``api-keys``).

        Values that are not valid UTF-8 are shown base64-encoded by the record envelope.
        """
        prefix = category_prefix(category)
        values: dict[str, str] = {}
        for path in self.list(prefix):
            record = self.get_record(path)
            key = path[len(prefix) + 1 :]
            try:
                values[key] = record.value.decode("utf-8")
            except UnicodeDecodeError:
                values[key] = record.to_envelope()["value"]
        return values

    def backup(self, path: Path | None = None) -> str:
        """
        Snapshot a local credential directory.

        Args:
        ----
            path: Directory to snapshot (defaults to the kubeconfig directory)

        Returns:
        -------
            Snapshot id

        """
        return self._backups.backup(path or self._credential_dir)

    def snapshots(self) -> list[str]:
        """Existing snapshot ids, oldest first."""
        return self._backups.snapshots()

    def restore(self, snapshot_id: str, name: str | None = None, target: Path | None = None) -> list[Path]:
        """Restore files from a snapshot into ``target`` (defaults to the kubeconfig directory)."""
        return self._backups.restore(snapshot_id, target or self._credential_dir, name=name)

    def list(self, prefix: str = "") -> list[str]:
        """List secret paths under ``prefix``."""
        prefix = normalize_path(prefix) if prefix.strip("/") else ""
        return self.backend.list(prefix)
