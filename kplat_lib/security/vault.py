"""
HashiCorp Vault secret backend (KV v2).

Records live at ``<mount>/data/<path>``; each record is one KV version holding
the envelope mapping from :mod:`kplat_lib.security.records`.
"""

from pathlib import Path
from typing import Any

import hvac
import requests
import structlog
from hvac.exceptions import Forbidden, InvalidPath, Unauthorized, VaultError

from kplat_lib.any.exceptions import SecretBackendUnavailableError, SecretNotFoundError
from kplat_lib.config.schemas import VaultSettings

LOGGER = structlog.get_logger("kplat_lib.security.vault")

TOKEN_FILE = Path.home() / ".vault-token"


def _resolve_token(settings: VaultSettings, token_file: Path) -> str | None:
    """VAULT_TOKEN wins; otherwise the token left behind by ``vault login``."""
    if settings.token:
        return settings.token
    if token_file.exists():
        return token_file.read_text(encoding="utf-8").strip() or None
    return None


class VaultSecretBackend:
    """SecretBackend implementation for HashiCorp Vault KV v2."""

    name = "vault"

    def __init__(self, settings: VaultSettings, client: Any = None, token_file: Path = TOKEN_FILE):
        """
        Initialize the Vault backend.

        Args:
        ----
            settings: Vault address, token and mount
            client: Optional pre-built hvac client (tests)
            token_file: Fallback token file when no token is configured

        """
        self._settings = settings
        self._token_file = token_file
        self._client = client

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client

        self._client = hvac.Client(url=self._settings.address, token=_resolve_token(self._settings, self._token_file))
        return self._client

    def is_available(self) -> bool:
        """Vault is usable when enabled, addressed, and the token authenticates."""
        if not self._settings.enabled:
            LOGGER.debug("Vault disabled (VAULT_ENABLED is not set)")
            return False
        if not self._settings.address:
            LOGGER.debug("Vault enabled but VAULT_ADDR is not set")
            return False

        try:
            authenticated = bool(self._get_client().is_authenticated())
        except (VaultError, requests.exceptions.RequestException) as e:
            LOGGER.debug(f"Vault at {self._settings.address} unreachable: {e}")
            return False

        if not authenticated:
            LOGGER.debug(f"Vault at {self._settings.address} rejected the token")
        return authenticated

    def write(self, path: str, envelope: dict[str, str]) -> None:
        """Create or overwrite the record at ``path`` (one new KV version)."""
        try:
            self._get_client().secrets.kv.v2.create_or_update_secret(
                path=path, secret=envelope, mount_point=self._settings.mount
            )
        except (VaultError, requests.exceptions.RequestException) as e:
            raise SecretBackendUnavailableError(f"Vault write to '{path}' failed: {e}") from e

    def read(self, path: str) -> dict[str, str]:
        """Read the latest version of the record at ``path``."""
        try:
            response = self._get_client().secrets.kv.v2.read_secret_version(
                path=path, mount_point=self._settings.mount, raise_on_deleted_version=True
            )
        except InvalidPath as e:
            raise SecretNotFoundError(f"Secret not found in Vault: {path}") from e
        except (Forbidden, Unauthorized) as e:
            raise SecretBackendUnavailableError(f"Vault denied access to '{path}': {e}") from e
        except (VaultError, requests.exceptions.RequestException) as e:
            raise SecretBackendUnavailableError(f"Vault read of '{path}' failed: {e}") from e

        data = (response or {}).get("data", {}).get("data")
        if not data:
            raise SecretNotFoundError(f"Secret not found in Vault: {path}")
        return data

    def list(self, prefix: str) -> list[str]:
        """List record paths under ``prefix``, descending into sub-folders."""
        prefix = prefix.strip("/")
        try:
            response = self._get_client().secrets.kv.v2.list_secrets(path=prefix, mount_point=self._settings.mount)
        except InvalidPath:
            return []
        except (VaultError, requests.exceptions.RequestException) as e:
            raise SecretBackendUnavailableError(f"Vault list of '{prefix}' failed: {e}") from e

        paths: list[str] = []
        for key in (response or {}).get("data", {}).get("keys", []):
            child = f"{prefix}/{key}" if prefix else key
            if key.endswith("/"):
                paths.extend(self.list(child.rstrip("/")))
            else:
                paths.append(child)
        return sorted(paths)
