"""Execution context handed to every operation."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from rampart.core.backup_manager import BackupManager
from rampart.core.commands import CommandRunner
from rampart.core.errors import PermissionDenied
from rampart.core.filesystem import Filesystem, LocalFilesystem


def _print(message: str) -> None:
    print(message)


@dataclass
class ExecutionContext:
    """Everything an operation may touch, made explicit.

    ``fs`` decides where resources live (the live host or a target root),
    ``runner`` executes external commands and ``backups`` owns backup
    artifacts. ``echo`` receives operator-facing progress lines.
    """

    fs: Filesystem
    runner: CommandRunner
    backups: BackupManager
    dry_run: bool = False
    privileged: bool = False
    echo: Callable[[str], None] = field(default=_print)

    @classmethod
    def create(
        cls,
        root: str | Path = "/",
        *,
        dry_run: bool = False,
        timeout: float = 300.0,
        clock: Callable[[], datetime] = datetime.now,
        echo: Callable[[str], None] = _print,
    ) -> "ExecutionContext":
        fs = LocalFilesystem(root)
        return cls(
            fs=fs,
            runner=CommandRunner(timeout=timeout, dry_run=dry_run),
            backups=BackupManager(fs, clock=clock, dry_run=dry_run),
            dry_run=dry_run,
            privileged=hasattr(os, "geteuid") and os.geteuid() == 0,
            echo=echo,
        )

    @property
    def root(self) -> str:
        return self.fs.root

    @property
    def targets_host(self) -> bool:
        """``True`` when files and external commands act on the same system.

        External commands always run against the live host, so only a
        filesystem rooted at ``/`` matches them.
        """

        return self.fs.root == "/"

    def require_privilege(self) -> None:
        """Abort unless the process may mutate the host.

        Dry runs only read state and are allowed for any user.
        """

        if self.dry_run:
            return
        if not self.privileged:
            raise PermissionDenied("This tool must be run as root (or use --dry-run).")


__all__ = ["ExecutionContext"]
