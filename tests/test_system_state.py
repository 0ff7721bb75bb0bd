"""Tests for the read-only host queries."""

from __future__ import annotations

import pytest

from rampart.core import system_state
from rampart.core.errors import ResourceMissing


def test_service_state(runner):
    runner.respond(["systemctl", "is-enabled", "sshd"], stdout="enabled\n")
    runner.respond(["systemctl", "is-active", "sshd"], stdout="active\n")

    state = system_state.service_state(runner, "sshd")

    assert state.is_enabled and state.is_active
    assert runner.calls == []


def test_static_unit_is_not_enabled(runner):
    runner.respond(["systemctl", "is-enabled", "rpc-sprayd"], stdout="static\n")
    runner.respond(["systemctl", "is-active", "rpc-sprayd"], stdout="inactive\n", exit_code=3)

    state = system_state.service_state(runner, "rpc-sprayd")

    assert not state.is_enabled
    assert not state.is_active


@pytest.mark.parametrize("stdout", ["", "not-found\n"])
def test_unknown_service(runner, stdout):
    runner.respond(["systemctl", "is-enabled", "ghost"], stdout=stdout, exit_code=1)
    with pytest.raises(ResourceMissing):
        system_state.service_state(runner, "ghost")


def test_accounts_with_shell(fs):
    fs.write_text(
        "/etc/passwd",
        "root:x:0:0:root:/root:/bin/bash\n"
        "daemon:x:2:2:daemon:/sbin:/sbin/nologin\n"
        "broken-line\n"
        "nobody:x:65534:65534:Kernel Overflow User:/:/usr/sbin/nologin\n",
    )

    assert system_state.accounts_with_shell(fs, ["/sbin/nologin", "/usr/sbin/nologin"]) == ["daemon", "nobody"]


def test_accounts_without_passwd(fs):
    with pytest.raises(ResourceMissing):
        system_state.accounts_with_shell(fs, ["/sbin/nologin"])


@pytest.mark.parametrize("status, locked", [("L", True), ("LK", True), ("PS", False), ("NP", False)])
def test_account_locked(runner, status, locked):
    runner.respond(["passwd", "-S", "svc1"], stdout=f"svc1 {status} 2024-01-01 0 99999 7 -1\n")
    assert system_state.account_locked(runner, "svc1") is locked


def test_current_authselect_profile(runner):
    runner.respond(["authselect", "current"], stdout="Profile ID: custom/custom-hardening\nEnabled features:\n")
    assert system_state.current_authselect_profile(runner) == "custom/custom-hardening"


def test_no_current_authselect_profile(runner):
    runner.respond(["authselect", "current"], stdout="No existing configuration detected.\n")
    with pytest.raises(ResourceMissing):
        system_state.current_authselect_profile(runner)


def test_authselect_profile_exists(runner):
    runner.respond(["authselect", "list"], stdout="- sssd  SSSD\n- custom/custom-ssh-root  Custom\n")

    assert system_state.authselect_profile_exists(runner, "custom-ssh-root")
    assert not system_state.authselect_profile_exists(runner, "custom-hardening")


def test_package_installed(runner):
    runner.respond(["dnf", "list", "installed", "telnet-server"], exit_code=1)
    assert not system_state.package_installed(runner, "telnet-server")
    assert system_state.package_installed(runner, "rsyslog")
