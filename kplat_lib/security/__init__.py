"""Secret storage: Vault and SSM backends, the store facade, and local kubeconfig backups."""

from kplat_lib.security.backup import CredentialBackups, SnapshotNotFoundError
from kplat_lib.security.parameter_store import ParameterStoreBackend
from kplat_lib.security.records import CATEGORIES, SecretMetadata, SecretRecord
from kplat_lib.security.store import SecretStore
from kplat_lib.security.vault import VaultSecretBackend

__all__ = [
    "SecretStore",
    "SecretRecord",
    "SecretMetadata",
    "CATEGORIES",
    "VaultSecretBackend",
    "ParameterStoreBackend",
    "CredentialBackups",
    "SnapshotNotFoundError",
]
