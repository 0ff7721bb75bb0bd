"""Tests for backup artifacts: naming, restore selection, pruning."""

from __future__ import annotations

from datetime import datetime

import pytest

from rampart.core.backup_manager import BackupManager, backup_path, is_backup_artifact
from rampart.core.filesystem import LocalFilesystem, MemoryFilesystem


def _fixed(moment):
    return lambda: moment


def test_backup_path_format():
    stamp = datetime(2024, 5, 1, 9, 3, 7)
    assert backup_path("/etc/login.defs", stamp) == "/etc/login.defs.bak_2024-05-01_09:03:07"


def test_artifact_detection():
    assert is_backup_artifact("/etc/login.defs.bak_2024-05-01_09:03:07")
    assert not is_backup_artifact("/etc/login.defs")
    assert not is_backup_artifact("/etc/login.defs.bak")


def test_backup_copies_bytes_and_mode(tmp_path):
    fs = LocalFilesystem(tmp_path)
    fs.write_bytes("/etc/securetty", b"console\r\ntty1\n")
    fs.chmod("/etc/securetty", 0o600)
    manager = BackupManager(fs, clock=_fixed(datetime(2024, 5, 1, 12, 0, 0)))

    handle = manager.backup("/etc/securetty")

    assert handle is not None
    assert handle.artifact == "/etc/securetty.bak_2024-05-01_12:00:00"
    assert (tmp_path / "etc" / "securetty.bak_2024-05-01_12:00:00").read_bytes() == b"console\r\ntty1\n"
    assert fs.mode(handle.artifact) == 0o600


def test_backup_of_missing_file_is_noop(fs, clock):
    manager = BackupManager(fs, clock=clock)
    assert manager.backup("/tmp/pwquality.conf") is None
    assert fs.listdir("/tmp") == []


def test_backup_artifact_is_never_backed_up(fs, clock):
    fs.write_text("/etc/issue.bak_2024-05-01_12:00:00", "old")
    manager = BackupManager(fs, clock=clock)

    assert manager.backup("/etc/issue.bak_2024-05-01_12:00:00") is None
    assert fs.listdir("/etc") == ["issue.bak_2024-05-01_12:00:00"]


def test_restore_without_backup_leaves_file(fs, clock):
    fs.write_text("/tmp/pwquality.conf", "minlen = 8\n")
    manager = BackupManager(fs, clock=clock)

    assert manager.restore("/tmp/pwquality.conf") is None
    assert fs.read_text("/tmp/pwquality.conf") == "minlen = 8\n"


def test_backup_then_restore_reproduces_bytes(fs, clock):
    original = b"retry = 1\r\n\x00binary\xff"
    fs.write_bytes("/etc/security/pwquality.conf", original)
    manager = BackupManager(fs, clock=clock)

    manager.backup("/etc/security/pwquality.conf")
    fs.write_text("/etc/security/pwquality.conf", "something else\n")
    manager.restore("/etc/security/pwquality.conf")

    assert fs.read_bytes("/etc/security/pwquality.conf") == original


def test_restore_uses_latest_backup(fs, clock):
    fs.write_text("/etc/motd", "first\n")
    manager = BackupManager(fs, clock=clock)
    manager.backup("/etc/motd")
    fs.write_text("/etc/motd", "second\n")
    manager.backup("/etc/motd")
    fs.write_text("/etc/motd", "third\n")

    handle = manager.restore("/etc/motd")

    assert handle.artifact == "/etc/motd.bak_2024-05-01_12:00:01"
    assert fs.read_text("/etc/motd") == "second\n"


def test_same_second_backup_overwrites(fs):
    fs.write_text("/etc/motd", "first\n")
    manager = BackupManager(fs, clock=_fixed(datetime(2024, 5, 1, 12, 0, 0, 500)))
    manager.backup("/etc/motd")
    fs.write_text("/etc/motd", "second\n")
    manager.backup("/etc/motd")

    backups = manager.list_backups("/etc/motd")
    assert len(backups) == 1
    assert fs.read_text(backups[0].artifact) == "second\n"


def test_list_backups_ignores_unrelated_names(fs):
    fs.write_text("/etc/login.defs", "")
    fs.write_text("/etc/login.defs.bak_garbage", "")
    fs.write_text("/etc/login.defs.orig", "")
    fs.write_text("/etc/login.defs.bak_2024-01-02_03:04:05", "")
    fs.write_text("/etc/login.defs2.bak_2024-01-02_03:04:05", "")
    manager = BackupManager(fs)

    backups = manager.list_backups("/etc/login.defs")

    assert [b.artifact for b in backups] == ["/etc/login.defs.bak_2024-01-02_03:04:05"]
    assert backups[0].timestamp == datetime(2024, 1, 2, 3, 4, 5)


def test_prune_keeps_newest(fs, clock):
    fs.write_text("/etc/issue", "x")
    manager = BackupManager(fs, clock=clock)
    for _ in range(4):
        manager.backup("/etc/issue")

    removed = manager.prune("/etc/issue", keep=1)

    assert len(removed) == 3
    assert [b.artifact for b in manager.list_backups("/etc/issue")] == ["/etc/issue.bak_2024-05-01_12:00:03"]


def test_prune_rejects_negative_keep(fs):
    with pytest.raises(ValueError):
        BackupManager(fs).prune("/etc/issue", keep=-1)


def test_dry_run_backup_writes_nothing(clock):
    fs = MemoryFilesystem({"/etc/issue": "banner\n"})
    manager = BackupManager(fs, clock=clock, dry_run=True)

    handle = manager.backup("/etc/issue")

    assert handle is not None
    assert not fs.exists(handle.artifact)
    assert fs.listdir("/etc") == ["issue"]
