"""Utilities for detecting host operating system metadata."""
from __future__ import annotations

import logging
import platform
from functools import lru_cache
from typing import Dict, Iterable

import distro


logger = logging.getLogger(__name__)

# distro ids that the RHEL profile also accepts
RHEL_COMPATIBLE = {"rhel", "centos", "rocky", "almalinux", "ol"}


@lru_cache(maxsize=1)
def get_os_info() -> Dict[str, str | None]:
    """Return a dictionary describing the current operating system.

    The result is cached because this information is static for the lifetime of
    the process. Missing fields are set to ``None`` rather than omitted.
    """

    system = platform.system()
    os_info: Dict[str, str | None] = {
        "system": system,
        "release": platform.release(),
        "distro_name": None,
        "distro_version": None,
        "distro_id": None,
        "distro_like": None,
    }

    if system == "Linux":
        os_info["distro_name"] = distro.name(pretty=True) or None
        os_info["distro_version"] = distro.major_version() or None
        os_info["distro_id"] = distro.id() or None
        os_info["distro_like"] = distro.like() or None

    return os_info


def is_platform_compatible(target_os: str, versions: Iterable[str], os_info: Dict[str, str | None] | None = None) -> bool:
    """Return ``True`` when the host matches ``target_os`` and one of ``versions``."""

    info = os_info if os_info is not None else get_os_info()
    if (info.get("system") or "").lower() != "linux":
        return False

    target = target_os.lower()
    distro_id = (info.get("distro_id") or "").lower()
    like = (info.get("distro_like") or "").lower().split()

    if target == "rhel":
        matches_os = distro_id in RHEL_COMPATIBLE or "rhel" in like
    else:
        matches_os = distro_id == target or target in like

    if not matches_os:
        logger.info("Host distribution %r does not match profile target %r", distro_id, target)
        return False

    wanted = {str(v) for v in versions}
    if wanted and (info.get("distro_version") or "") not in wanted:
        logger.info("Host version %r not in supported versions %s", info.get("distro_version"), sorted(wanted))
        return False
    return True


__all__ = ["get_os_info", "is_platform_compatible"]
