"""
KPlat exception classes.

This module defines custom exceptions for KPlat to avoid masking built-in Python errors
and to provide clear, specific error handling for the provisioning and credential paths.

All KPlat exceptions follow the naming convention *Error and inherit from KPlatError.
"""


class KPlatError(Exception):
    """
    Base exception for all KPlat errors.

    All KPlat exceptions inherit from this, allowing callers to catch all KPlat-specific
    errors with a single except clause while not catching unrelated Python errors.
    """

    pass


class KPlatConfigurationError(KPlatError):
    """
    Raised when there is an error in KPlat configuration.

    This includes malformed platform manifests, invalid environment overrides,
    and unresolved template variables.
    """

    pass


class PreconditionFailedError(KPlatError):
    """
    Raised when a required external tool or credential is missing.

    Always raised before any mutating call is issued.

    Example:
    -------
        >>> orchestrator.create()
        PreconditionFailedError: Required tool(s) not installed: eksctl, vcluster

    """

    pass


class ProvisionFailedError(KPlatError):
    """
    Raised when a Fatal stage fails during a forward (create) run.

    The failing stage name is kept on the exception so operators can see where
    the run stopped. Nothing is rolled back automatically.
    """

    def __init__(self, stage: str, cause: BaseException | str):
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage '{stage}' failed: {cause}")


class TeardownPartialError(KPlatError):
    """
    Aggregate of BestEffort reverse-action failures.

    Teardown still reports success; this error only summarises what was left behind.
    """

    def __init__(self, failures: dict[str, str]):
        self.failures = dict(failures)
        details = "; ".join(f"{stage}: {reason}" for stage, reason in self.failures.items())
        super().__init__(f"{len(self.failures)} teardown step(s) failed: {details}")


class SecretNotFoundError(KPlatError):
    """
    Raised when a secret path does not exist in the active backend.

    The secret store never substitutes an empty value for a missing path.
    """

    pass


class SecretBackendUnavailableError(KPlatError):
    """Raised when the secret backend cannot be reached or rejects the request."""

    pass


class ContextNotFoundError(KPlatError):
    """
    Raised when a context name is unknown or has no kubeconfig on disk.

    The active context pointer is left unchanged.
    """

    pass


class CommandFailedError(KPlatError):
    """Raised when an external collaborator CLI (kubectl, helm, eksctl, az, vcluster) fails."""

    def __init__(self, cmd: list[str], returncode: int, stderr: str | None = None):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        message = f"Command '{' '.join(self.cmd)}' exited with {returncode}"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)

    @property
    def not_found(self) -> bool:
        """Whether the collaborator reported the target as missing."""
        lowered = self.stderr.lower()
        return "notfound" in lowered or "not found" in lowered


class SecretFormatError(KPlatError):
    """Raised when a stored secret cannot be decoded (missing value field or invalid base64)."""

    pass
