"""
AWS SSM Parameter Store secret backend.

Fallback used when Vault is disabled or unreachable. Each record is one
``SecureString`` parameter named ``/<prefix>/<path>`` whose value is the JSON
envelope. Intelligent-Tiering lets kubeconfigs larger than 4 KB fit.
"""

import json
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from kplat_lib.any.exceptions import SecretBackendUnavailableError, SecretNotFoundError

LOGGER = structlog.get_logger("kplat_lib.security.parameter_store")


class ParameterStoreBackend:
    """SecretBackend implementation for AWS SSM Parameter Store."""

    name = "ssm"

    def __init__(self, prefix: str, region: str, client: Any = None):
        """
        Initialize the Parameter Store backend.

        Args:
        ----
            prefix: Parameter name prefix (``kplat`` -> ``/kplat/<path>``)
            region: AWS region holding the parameters
            client: Optional pre-built boto3 SSM client (tests)

        """
        self._prefix = prefix.strip("/")
        self._region = region
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = boto3.client(service_name="ssm", region_name=self._region)
        return self._client

    def _parameter_name(self, path: str) -> str:
        return f"/{self._prefix}/{path.strip('/')}"

    def is_available(self) -> bool:
        """Parameter Store is usable when the credentials can describe parameters."""
        try:
            self._get_client().describe_parameters(MaxResults=1)
            return True
        except (ClientError, BotoCoreError) as e:
            LOGGER.debug(f"SSM Parameter Store unavailable in {self._region}: {e}")
            return False

    def write(self, path: str, envelope: dict[str, str]) -> None:
        """Create or overwrite the parameter for ``path``."""
        try:
            self._get_client().put_parameter(
                Name=self._parameter_name(path),
                Value=json.dumps(envelope, sort_keys=True),
                Type="SecureString",
                Overwrite=True,
                Tier="Intelligent-Tiering",
            )
        except (ClientError, BotoCoreError) as e:
            raise SecretBackendUnavailableError(f"SSM write to '{path}' failed: {e}") from e

    def read(self, path: str) -> dict[str, str]:
        """
        Read the envelope for ``path``.

        Parameters written by other tools hold a bare value rather than a JSON
        envelope; those are returned as a plain-encoded envelope.
        """
        try:
            response = self._get_client().get_parameter(Name=self._parameter_name(path), WithDecryption=True)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ParameterNotFound":
                raise SecretNotFoundError(f"Secret not found in SSM: {path}") from e
            raise SecretBackendUnavailableError(f"SSM read of '{path}' failed: {e}") from e
        except BotoCoreError as e:
            raise SecretBackendUnavailableError(f"SSM read of '{path}' failed: {e}") from e

        raw = response["Parameter"]["Value"]
        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError:
            envelope = None
        if not isinstance(envelope, dict):
            return {"value": raw, "encoding": "plain", "source": "ssm"}
        return envelope

    def list(self, prefix: str) -> list[str]:
        """List record paths under ``prefix`` (recursive)."""
        root = f"/{self._prefix}/"
        search = self._parameter_name(prefix) if prefix.strip("/") else root.rstrip("/")

        paths: list[str] = []
        try:
            paginator = self._get_client().get_paginator("get_parameters_by_path")
            for page in paginator.paginate(Path=search, Recursive=True, WithDecryption=False):
                for parameter in page.get("Parameters", []):
                    name = parameter["Name"]
                    if name.startswith(root):
                        paths.append(name[len(root) :])
        except (ClientError, BotoCoreError) as e:
            raise SecretBackendUnavailableError(f"SSM list of '{prefix}' failed: {e}") from e
        return sorted(paths)
