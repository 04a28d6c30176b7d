"""
Secret record model and its storage envelope.

A record is stored as a single flat mapping so value and metadata are written
in one backend call:

    {"value": "<base64>", "encoding": "base64",
     "created_at": "...", "created_by": "...", "source": "..."}
"""

import base64
import binascii

from pydantic import BaseModel, ConfigDict, Field

from kplat_lib.any.exceptions import SecretFormatError
from kplat_lib.any.utils import current_user, utc_timestamp

ENCODING = "base64"

# Platform secret categories under ``platform/``
CATEGORIES = ("urls", "credentials", "ssh", "api-keys")


class SecretMetadata(BaseModel):
    """Provenance of a secret value."""

    model_config = ConfigDict(frozen=True)

    created_at: str = Field(default_factory=utc_timestamp)
    created_by: str = Field(default_factory=current_user)
    source: str = "kplat"


class SecretRecord(BaseModel):
    """A secret value at a hierarchical path, plus its metadata."""

    model_config = ConfigDict(frozen=True)

    path: str
    value: bytes
    metadata: SecretMetadata = Field(default_factory=SecretMetadata)

    def to_envelope(self) -> dict[str, str]:
        """Flatten the record into the mapping written to the backend."""
        return {
            "value": base64.b64encode(self.value).decode("ascii"),
            "encoding": ENCODING,
            "created_at": self.metadata.created_at,
            "created_by": self.metadata.created_by,
            "source": self.metadata.source,
        }

    @classmethod
    def from_envelope(cls, path: str, envelope: dict[str, str]) -> "SecretRecord":
        """
        Rebuild a record from a backend envelope.

        Kubeconfig entries written by the earlier shell tooling keep the payload
        under ``kubeconfig`` instead of ``value``; both are accepted.

        Raises
        ------
            SecretFormatError: If the envelope carries no value or the value is not valid base64

        """
        if "value" in envelope:
            encoded, encoding = envelope["value"], envelope.get("encoding", ENCODING)
        elif "kubeconfig" in envelope:
            encoded, encoding = envelope["kubeconfig"], ENCODING
        else:
            raise SecretFormatError(f"Secret at '{path}' has no value field")

        if encoding == ENCODING:
            try:
                value = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError) as e:
                raise SecretFormatError(f"Secret at '{path}' is not valid base64: {e}") from e
        else:
            value = encoded.encode("utf-8")

        metadata = SecretMetadata(
            created_at=envelope.get("created_at", ""),
            created_by=envelope.get("created_by", ""),
            source=envelope.get("source", ""),
        )
        return cls(path=path, value=value, metadata=metadata)


def normalize_path(path: str) -> str:
    """
    Normalise a secret path to ``segment/segment/...``.

    Raises
    ------
        ValueError: If the path is empty or contains ``.``/``..`` segments

    """
    segments = [segment for segment in path.strip().split("/") if segment]
    if not segments:
        raise ValueError("Secret path must not be empty")
    if any(segment in (".", "..") for segment in segments):
        raise ValueError(f"Secret path must not contain relative segments: '{path}'")
    return "/".join(segments)


def category_prefix(category: str) -> str:
    """Secret prefix for a platform category (``urls`` -> ``platform/urls``)."""
    if category not in CATEGORIES:
        raise ValueError(f"Unknown secret category '{category}'. Valid categories: {', '.join(CATEGORIES)}")
    return f"platform/{category}"
