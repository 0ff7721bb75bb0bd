"""Tests for the rooted and in-memory filesystems."""

from __future__ import annotations

import os

import pytest

from rampart.core.filesystem import LocalFilesystem, MemoryFilesystem


def test_local_paths_stay_under_root(tmp_path):
    fs = LocalFilesystem(tmp_path)

    fs.write_text("/etc/motd", "hi\n")

    assert (tmp_path / "etc" / "motd").read_text(encoding="utf-8") == "hi\n"
    assert fs.host_path("/etc/../etc/motd") == tmp_path / "etc" / "motd"
    assert fs.host_path("/../../outside") == tmp_path / "outside"


def test_relative_paths_rejected(tmp_path):
    with pytest.raises(ValueError):
        LocalFilesystem(tmp_path).exists("etc/motd")


def test_local_exists_is_for_files(tmp_path):
    fs = LocalFilesystem(tmp_path)
    fs.write_text("/etc/xinetd.d/telnet", "")

    assert fs.exists("/etc/xinetd.d/telnet")
    assert not fs.exists("/etc/xinetd.d")
    assert fs.is_dir("/etc/xinetd.d")


def test_local_find_skips_symlinks(tmp_path):
    fs = LocalFilesystem(tmp_path)
    fs.write_text("/home/alice/.netrc", "machine x")
    fs.write_text("/secrets/.rhosts", "+ +")
    os.symlink(tmp_path / "secrets" / ".rhosts", tmp_path / "home" / "alice" / ".rhosts")

    assert fs.find("/home", [".netrc", ".rhosts"]) == ["/home/alice/.netrc"]
    assert fs.find("/missing", [".netrc"]) == []


def test_local_listdir_and_mode(tmp_path):
    fs = LocalFilesystem(tmp_path)
    fs.write_text("/etc/b", "")
    fs.write_text("/etc/a", "")
    fs.chmod("/etc/a", 0o600)

    assert fs.listdir("/etc") == ["a", "b"]
    assert fs.listdir("/nope") == []
    assert fs.mode("/etc/a") == 0o600


def test_memory_filesystem():
    fs = MemoryFilesystem({"/etc/authselect/custom/p/system-auth": "auth\n", "/etc/motd": b"bytes"})

    assert fs.is_dir("/etc/authselect/custom/p")
    assert fs.listdir("/etc") == ["authselect", "motd"]
    assert fs.read_bytes("/etc/motd") == b"bytes"

    fs.chmod("/etc/motd", 0o600)
    fs.copy("/etc/motd", "/etc/motd.copy")
    assert fs.mode("/etc/motd.copy") == 0o600

    fs.rmtree("/etc/authselect/custom/p")
    assert not fs.is_dir("/etc/authselect/custom/p")

    with pytest.raises(FileNotFoundError):
        fs.remove("/etc/absent")
