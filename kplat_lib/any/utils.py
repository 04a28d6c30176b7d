"""Utility functions for kplat-lib."""

import getpass
import os
import shutil
import subprocess
from datetime import datetime, timezone
from pathlib import Path

import structlog

from kplat_lib.any.exceptions import CommandFailedError

LOGGER = structlog.get_logger("kplat_lib.utils")


def run_command(
    cmd: list[str],
    check: bool = True,
    capture: bool = True,
    env: dict[str, str] | None = None,
    timeout: int | None = None,
    input_text: str | None = None,
) -> subprocess.CompletedProcess:
    """
    Run an external collaborator command with consistent handling.

    Args:
    ----
        cmd: Command and arguments as a list
        check: If True, raise CommandFailedError on non-zero exit
        capture: If True, capture stdout/stderr
        env: Optional environment variables (merged with os.environ)
        timeout: Optional timeout in seconds
        input_text: Optional text piped to the command's stdin

    Returns:
    -------
        CompletedProcess instance with returncode, stdout, stderr

    Raises:
    ------
        CommandFailedError: If check=True and the command fails or is not installed
        subprocess.TimeoutExpired: If timeout is exceeded

    Example:
    -------
        ```python
        from kplat_lib.any.utils import run_command

        result = run_command(["kubectl", "get", "ns"], env={"KUBECONFIG": "/tmp/dev.yaml"})
        print(result.stdout)

        # Don't raise on failure
        result = run_command(["kubectl", "get", "ns", "missing"], check=False)
        if result.returncode != 0:
            print(f"Command failed: {result.stderr}")
        ```

    """
    command_env = os.environ.copy()
    if env:
        command_env.update(env)

    LOGGER.debug(f"Running command: {' '.join(cmd)}")

    try:
        return subprocess.run(
            cmd,
            capture_output=capture,
            text=True,
            check=check,
            env=command_env,
            timeout=timeout,
            input=input_text,
        )
    except subprocess.CalledProcessError as e:
        raise CommandFailedError(cmd, e.returncode, e.stderr) from e
    except FileNotFoundError as e:
        if not check:
            raise
        raise CommandFailedError(cmd, 127, f"{cmd[0]}: command not found") from e


def missing_tools(tools: list[str] | tuple[str, ...]) -> list[str]:
    """Return the subset of ``tools`` that are not on PATH."""
    return [tool for tool in tools if shutil.which(tool) is None]


def utc_timestamp() -> str:
    """Current UTC time in the ``%Y-%m-%dT%H:%M:%SZ`` form used for secret metadata."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def current_user() -> str:
    """Best-effort operator name for ``created_by`` metadata."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def write_private_file(path: Path, content: bytes) -> Path:
    """
    Write ``content`` to ``path`` with owner-only permissions.

    The file is written next to its destination and moved into place, so readers
    never observe a half-written kubeconfig.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(content)
    os.chmod(tmp_path, 0o600)
    os.replace(tmp_path, path)
    return path
