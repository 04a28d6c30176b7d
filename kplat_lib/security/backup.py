"""
Point-in-time backups of the local kubeconfig directory.

Snapshots are sibling directories named ``YYYYmmdd_HHMMSS`` (``-N`` appended when
two snapshots land in the same second). Taking a snapshot never removes an
earlier one; restoring is always an explicit call.
"""

import os
import shutil
from datetime import datetime
from pathlib import Path

import structlog

from kplat_lib.any.exceptions import KPlatError

LOGGER = structlog.get_logger("kplat_lib.security.backup")

SNAPSHOT_FORMAT = "%Y%m%d_%H%M%S"


class SnapshotNotFoundError(KPlatError):
    """Raised when a snapshot id (or a file inside it) does not exist."""

    pass


class CredentialBackups:
    """Timestamped copies of a credential directory."""

    def __init__(self, backup_root: Path, clock=datetime.now):
        """
        Initialize the backup manager.

        Args:
        ----
            backup_root: Directory holding one sub-directory per snapshot
            clock: Callable returning the current datetime

        """
        self._root = backup_root
        self._clock = clock

    @property
    def root(self) -> Path:
        return self._root

    def _new_snapshot_dir(self) -> Path:
        base = self._clock().strftime(SNAPSHOT_FORMAT)
        candidate = self._root / base
        suffix = 1
        while candidate.exists():
            candidate = self._root / f"{base}-{suffix}"
            suffix += 1
        return candidate

    def backup(self, source_dir: Path) -> str:
        """
        Copy every file in ``source_dir`` into a new snapshot.

        Args:
        ----
            source_dir: Credential directory (one kubeconfig per context)

        Returns:
        -------
            Snapshot id (directory name under the backup root)

        """
        self._root.mkdir(parents=True, exist_ok=True)
        os.chmod(self._root, 0o700)
        snapshot_dir = self._new_snapshot_dir()
        snapshot_dir.mkdir(mode=0o700)

        copied = 0
        if source_dir.is_dir():
            for source in sorted(source_dir.iterdir()):
                if source.is_file() and not source.name.startswith("."):
                    target = snapshot_dir / source.name
                    shutil.copy2(source, target)
                    os.chmod(target, 0o600)
                    copied += 1

        LOGGER.info(f"✓ Backed up {copied} kubeconfig(s) to {snapshot_dir}")
        return snapshot_dir.name

    def snapshots(self) -> list[str]:
        """Existing snapshot ids, oldest first."""
        if not self._root.is_dir():
            return []
        return sorted(entry.name for entry in self._root.iterdir() if entry.is_dir())

    def restore(self, snapshot_id: str, target_dir: Path, name: str | None = None) -> list[Path]:
        """
        Copy files from a snapshot back into ``target_dir`` with mode 0600.

        Args:
        ----
            snapshot_id: Snapshot to restore from
            target_dir: Credential directory to restore into
            name: Restore only this file (e.g. ``dev.yaml``); all files when None

        Returns:
        -------
            Restored file paths

        Raises:
        ------
            SnapshotNotFoundError: If the snapshot or the named file does not exist

        """
        snapshot_dir = self._root / snapshot_id
        if not snapshot_id or not snapshot_dir.is_dir() or snapshot_dir.parent != self._root:
            raise SnapshotNotFoundError(f"Snapshot not found: {snapshot_id}")

        if name is not None:
            sources = [snapshot_dir / name]
            if not sources[0].is_file():
                raise SnapshotNotFoundError(f"'{name}' not found in snapshot {snapshot_id}")
        else:
            sources = sorted(path for path in snapshot_dir.iterdir() if path.is_file())

        target_dir.mkdir(parents=True, exist_ok=True)
        restored = []
        for source in sources:
            target = target_dir / source.name
            shutil.copy2(source, target)
            os.chmod(target, 0o600)
            restored.append(target)

        LOGGER.info(f"✓ Restored {len(restored)} file(s) from snapshot {snapshot_id}")
        return restored
