"""Timestamped backup artifacts stored next to the resources they protect."""
from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from rampart.core.filesystem import Filesystem


logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak_"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H:%M:%S"

# Any path carrying a backup date is an artifact and is never backed up again.
BACKUP_MARKER = re.compile(r"\.bak_\d{4}-\d{2}-\d{2}")
_TIMESTAMP = re.compile(r"^\d{4}-\d{2}-\d{2}_\d{2}:\d{2}:\d{2}$")


def is_backup_artifact(path: str) -> bool:
    """Return ``True`` when ``path`` names a backup artifact."""

    return BACKUP_MARKER.search(path) is not None


def backup_path(resource: str, timestamp: datetime) -> str:
    return f"{resource}{BACKUP_SUFFIX}{timestamp.strftime(TIMESTAMP_FORMAT)}"


@dataclass(frozen=True)
class BackupHandle:
    """A backup artifact of ``resource`` taken at ``timestamp``."""

    resource: str
    artifact: str
    timestamp: datetime


class BackupManager:
    """Create, locate, restore and prune backup artifacts."""

    def __init__(
        self,
        fs: Filesystem,
        *,
        clock: Callable[[], datetime] = datetime.now,
        dry_run: bool = False,
    ) -> None:
        self._fs = fs
        self._clock = clock
        self.dry_run = dry_run

    # ------------------------------------------------------------------
    # Public API
    def backup(self, resource: str) -> Optional[BackupHandle]:
        """Snapshot ``resource`` and return the handle, or ``None`` for a no-op.

        Nothing is written when the resource is missing or is itself a backup
        artifact. A second backup within the same second replaces the first.
        """

        if is_backup_artifact(resource):
            logger.debug("Refusing to back up backup artifact %s", resource)
            return None

        if not self._fs.exists(resource):
            logger.debug("Skipping backup of missing resource %s", resource)
            return None

        timestamp = self._clock().replace(microsecond=0)
        handle = BackupHandle(resource=resource, artifact=backup_path(resource, timestamp), timestamp=timestamp)

        if self.dry_run:
            logger.info("Dry-run: would back up %s to %s", resource, handle.artifact)
            return handle

        if self._fs.exists(handle.artifact):
            logger.debug("Overwriting same-second backup %s", handle.artifact)
        self._fs.copy(resource, handle.artifact)
        logger.info("Backed up %s to %s", resource, handle.artifact)
        return handle

    def restore(self, resource: str) -> Optional[BackupHandle]:
        """Copy the latest backup over ``resource``; ``None`` when there is none."""

        latest = self.latest_backup(resource)
        if latest is None:
            logger.warning("No backup found for %s; cannot restore", resource)
            return None

        if self.dry_run:
            logger.info("Dry-run: would restore %s from %s", resource, latest.artifact)
            return latest

        self._fs.copy(latest.artifact, resource)
        logger.info("Restored %s from %s", resource, latest.artifact)
        return latest

    def latest_backup(self, resource: str) -> Optional[BackupHandle]:
        backups = self.list_backups(resource)
        return backups[-1] if backups else None

    def list_backups(self, resource: str) -> List[BackupHandle]:
        """Return the backups of ``resource`` sorted from oldest to newest."""

        directory, name = posixpath.split(resource)
        prefix = f"{name}{BACKUP_SUFFIX}"

        handles: List[BackupHandle] = []
        for entry in self._fs.listdir(directory or "/"):
            if not entry.startswith(prefix):
                continue
            stamp = entry[len(prefix):]
            if not _TIMESTAMP.match(stamp):
                continue
            artifact = posixpath.join(directory, entry)
            if not self._fs.exists(artifact):
                continue
            handles.append(
                BackupHandle(
                    resource=resource,
                    artifact=artifact,
                    timestamp=datetime.strptime(stamp, TIMESTAMP_FORMAT),
                )
            )

        # The timestamp format sorts lexically in chronological order.
        return sorted(handles, key=lambda handle: handle.artifact)

    def prune(self, resource: str, keep: int) -> List[BackupHandle]:
        """Delete all but the newest ``keep`` backups and return the removed ones."""

        if keep < 0:
            raise ValueError("keep must not be negative")

        backups = self.list_backups(resource)
        doomed = backups[: max(len(backups) - keep, 0)]
        for handle in doomed:
            if self.dry_run:
                logger.info("Dry-run: would delete backup %s", handle.artifact)
                continue
            self._fs.remove(handle.artifact)
            logger.info("Deleted backup %s", handle.artifact)
        return doomed


__all__ = ["BackupHandle", "BackupManager", "backup_path", "is_backup_artifact"]
