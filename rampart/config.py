"""Runtime defaults and environment variable names."""
from __future__ import annotations

from pathlib import Path


PACKAGE_ROOT = Path(__file__).resolve().parent
PROFILES_DIR = PACKAGE_ROOT / "profiles"

DEFAULT_PROFILE = "rhel9"
DEFAULT_ROOT = "/"
DEFAULT_LOG_DIR = Path.home() / ".rampart" / "logs"
DEFAULT_COMMAND_TIMEOUT = 300.0

ENV_PROFILE = "RAMPART_PROFILE"
ENV_PLANS_FILE = "RAMPART_PLANS_FILE"
ENV_ROOT = "RAMPART_ROOT"
ENV_LOG_DIR = "RAMPART_LOG_DIR"
ENV_COMMAND_TIMEOUT = "RAMPART_COMMAND_TIMEOUT"


def profile_path(name: str) -> Path:
    """Return the path of the packaged profile called ``name``."""

    return PROFILES_DIR / f"{name}.json"


def available_profiles() -> list[str]:
    return sorted(p.stem for p in PROFILES_DIR.glob("*.json"))


__all__ = [
    "DEFAULT_COMMAND_TIMEOUT",
    "DEFAULT_LOG_DIR",
    "DEFAULT_PROFILE",
    "DEFAULT_ROOT",
    "ENV_COMMAND_TIMEOUT",
    "ENV_LOG_DIR",
    "ENV_PLANS_FILE",
    "ENV_PROFILE",
    "ENV_ROOT",
    "available_profiles",
    "profile_path",
]
