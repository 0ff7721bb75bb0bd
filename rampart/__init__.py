"""Rampart: backup-first RHEL 9 hardening applier."""

__version__ = "0.1.0"
