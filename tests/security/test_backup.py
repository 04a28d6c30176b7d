"""Tests for local kubeconfig backups."""

import stat
from datetime import datetime

import pytest

from kplat_lib.security.backup import CredentialBackups, SnapshotNotFoundError

FIXED = datetime(2026, 3, 1, 12, 30, 45)


@pytest.fixture
def source(tmp_path):
    directory = tmp_path / "kubeconfigs"
    directory.mkdir()
    (directory / "main.yaml").write_text("target: host\n")
    (directory / "dev.yaml").write_text("target: modernengg-dev\n")
    (directory / ".main.yaml.tmp").write_text("partial")
    return directory


@pytest.fixture
def backups(tmp_path):
    return CredentialBackups(tmp_path / "backups", clock=lambda: FIXED)


class TestCredentialBackups:
    """Tests for CredentialBackups."""

    def test_backup_copies_files(self, backups, source):
        """Test a snapshot holds every kubeconfig, owner-only, without temp files."""
        snapshot_id = backups.backup(source)

        snapshot = backups.root / snapshot_id
        assert snapshot_id == "20260301_123045"
        assert sorted(p.name for p in snapshot.iterdir()) == ["dev.yaml", "main.yaml"]
        assert stat.S_IMODE((snapshot / "main.yaml").stat().st_mode) == 0o600
        assert stat.S_IMODE(snapshot.stat().st_mode) == 0o700

    def test_backup_is_additive(self, backups, source):
        """Test snapshots in the same second never overwrite each other."""
        first = backups.backup(source)
        second = backups.backup(source)
        third = backups.backup(source)

        assert [first, second, third] == ["20260301_123045", "20260301_123045-1", "20260301_123045-2"]
        assert backups.snapshots() == [first, second, third]

    def test_backup_of_missing_directory(self, backups, tmp_path):
        """Test backing up a directory that does not exist yields an empty snapshot."""
        snapshot_id = backups.backup(tmp_path / "missing")

        assert list((backups.root / snapshot_id).iterdir()) == []

    def test_restore_all(self, backups, source, tmp_path):
        """Test restoring every file into a target directory."""
        snapshot_id = backups.backup(source)
        target = tmp_path / "restored"

        restored = backups.restore(snapshot_id, target)

        assert sorted(p.name for p in restored) == ["dev.yaml", "main.yaml"]
        assert (target / "dev.yaml").read_text() == "target: modernengg-dev\n"
        assert stat.S_IMODE((target / "dev.yaml").stat().st_mode) == 0o600

    def test_restore_one(self, backups, source):
        """Test restoring a single file overwrites only that file."""
        snapshot_id = backups.backup(source)
        (source / "main.yaml").write_text("changed")
        (source / "dev.yaml").write_text("changed")

        backups.restore(snapshot_id, source, name="main.yaml")

        assert (source / "main.yaml").read_text() == "target: host\n"
        assert (source / "dev.yaml").read_text() == "changed"

    def test_restore_unknown_snapshot(self, backups, tmp_path):
        """Test unknown snapshot ids are rejected."""
        with pytest.raises(SnapshotNotFoundError):
            backups.restore("19990101_000000", tmp_path)

    def test_restore_rejects_escaping_id(self, backups, source, tmp_path):
        """Test snapshot ids cannot point outside the backup root."""
        backups.backup(source)

        with pytest.raises(SnapshotNotFoundError):
            backups.restore("../kubeconfigs", tmp_path / "out")

    def test_restore_unknown_file(self, backups, source, tmp_path):
        """Test a file missing from the snapshot is reported."""
        snapshot_id = backups.backup(source)

        with pytest.raises(SnapshotNotFoundError, match="prod.yaml"):
            backups.restore(snapshot_id, tmp_path, name="prod.yaml")
