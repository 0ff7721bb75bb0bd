"""Read-only queries used by the toggle operations."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List

from rampart.core.commands import CommandRunner
from rampart.core.errors import ResourceMissing
from rampart.core.filesystem import Filesystem


logger = logging.getLogger(__name__)

ENABLED_STATES = {"enabled", "enabled-runtime", "alias", "indirect", "generated"}
LOCKED_STATUSES = {"L", "LK"}


@dataclass(frozen=True)
class ServiceState:
    name: str
    enabled: str
    active: str

    @property
    def is_enabled(self) -> bool:
        return self.enabled in ENABLED_STATES

    @property
    def is_active(self) -> bool:
        return self.active in {"active", "activating", "reloading"}


def service_state(runner: CommandRunner, name: str) -> ServiceState:
    """Query systemd for ``name``; raise :class:`ResourceMissing` for unknown units."""

    enabled = runner.run(["systemctl", "is-enabled", name], check=False, mutating=False)
    state = enabled.stdout.strip()
    if not state or state == "not-found":
        raise ResourceMissing(name, f"Service {name} not found")

    active = runner.run(["systemctl", "is-active", name], check=False, mutating=False)
    return ServiceState(name=name, enabled=state, active=active.stdout.strip() or "unknown")


def accounts_with_shell(fs: Filesystem, shells: Iterable[str]) -> List[str]:
    """Return account names from ``/etc/passwd`` whose login shell is in ``shells``."""

    if not fs.exists("/etc/passwd"):
        raise ResourceMissing("/etc/passwd")

    wanted = set(shells)
    accounts: List[str] = []
    for line in fs.read_text("/etc/passwd").splitlines():
        if not line or line.startswith("#"):
            continue
        fields = line.split(":")
        if len(fields) < 7:
            logger.debug("Ignoring malformed passwd entry %r", line)
            continue
        if fields[6].strip() in wanted:
            accounts.append(fields[0])
    return accounts


def account_locked(runner: CommandRunner, user: str) -> bool:
    """Return ``True`` when ``passwd -S`` reports the password as locked."""

    result = runner.run(["passwd", "-S", user], mutating=False)
    fields = result.stdout.split()
    return len(fields) > 1 and fields[1] in LOCKED_STATUSES


def package_installed(runner: CommandRunner, package: str) -> bool:
    result = runner.run(["dnf", "list", "installed", package], check=False, mutating=False)
    return result.succeeded


def current_authselect_profile(runner: CommandRunner) -> str:
    """Return the profile id reported by ``authselect current``."""

    result = runner.run(["authselect", "current"], mutating=False)
    for line in result.stdout.splitlines():
        if line.startswith("Profile ID:"):
            return line.split(":", 1)[1].strip()
    raise ResourceMissing("authselect", "No authselect profile is currently selected")


def authselect_profile_exists(runner: CommandRunner, profile: str) -> bool:
    result = runner.run(["authselect", "list"], mutating=False)
    wanted = f"custom/{profile}"
    return any(wanted in line.split() for line in result.stdout.splitlines())


__all__ = [
    "ServiceState",
    "account_locked",
    "accounts_with_shell",
    "authselect_profile_exists",
    "current_authselect_profile",
    "package_installed",
    "service_state",
]
