"""Structured logging management for Rampart runs."""
from __future__ import annotations

import json
import logging
import logging.handlers
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel

from rampart.config import DEFAULT_LOG_DIR


OPERATIONS_LOG = "rampart-operations.jsonl"


class LogEntry(BaseModel):
    """Structured log entry for one engine event."""

    timestamp: str
    level: str
    plan: Optional[str] = None
    operation: Optional[str] = None
    action: Optional[str] = None  # apply, revert, backup, restore, command
    resource: Optional[str] = None
    artifact: Optional[str] = None
    status: str  # changed, unchanged, skipped, warning, failure, success
    cmd: Optional[str] = None
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    exit_code: Optional[int] = None
    dry_run: bool = False
    user: Optional[str] = None
    session_id: str
    message: str


class LoggingManager:
    """Operation log written as JSON lines with rotation."""

    def __init__(self, log_dir: Optional[Path] = None, *, dry_run: bool = False):
        self.log_dir = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.session_id = str(uuid.uuid4())
        self.user = os.getenv("SUDO_USER") or os.getenv("USER") or "unknown"
        self.dry_run = dry_run

        self.structured_logger = self._setup_structured_logger()

    @property
    def log_file(self) -> Path:
        return self.log_dir / OPERATIONS_LOG

    def _setup_structured_logger(self) -> logging.Logger:
        """Set up JSON structured logger with rotation."""
        logger = logging.getLogger("rampart.structured")
        logger.setLevel(logging.INFO)

        # Clear any existing handlers to avoid duplicates
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)

        json_handler = logging.handlers.RotatingFileHandler(
            self.log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8"
        )
        json_handler.setLevel(logging.INFO)
        json_handler.setFormatter(JsonFormatter())

        logger.addHandler(json_handler)
        logger.propagate = False

        return logger

    def log_event(
        self,
        level: str = "INFO",
        *,
        status: str = "info",
        message: str = "",
        plan: Optional[str] = None,
        operation: Optional[str] = None,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        artifact: Optional[str] = None,
        cmd: Optional[str] = None,
        stdout: Optional[str] = None,
        stderr: Optional[str] = None,
        exit_code: Optional[int] = None,
        **kwargs: Any
    ) -> None:
        """Log a structured engine event."""

        entry = LogEntry(
            timestamp=datetime.now(tz=timezone.utc).isoformat(),
            level=level,
            plan=plan,
            operation=operation,
            action=action,
            resource=resource,
            artifact=artifact,
            status=status,
            cmd=cmd,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            dry_run=self.dry_run,
            user=self.user,
            session_id=self.session_id,
            message=message
        )

        log_data = entry.model_dump(exclude_none=True)
        log_data.update(kwargs)

        self.structured_logger.info("", extra={"structured_data": log_data})

    def log_step(self, plan: str, operation: str, mode: str, status: str, message: str = "") -> None:
        """Log the outcome of one plan step."""
        self.log_event(
            "WARNING" if status in {"warning", "failure"} else "INFO",
            plan=plan,
            operation=operation,
            action=mode,
            status=status,
            message=message or f"{mode} of '{operation}' in plan {plan}: {status}"
        )

    def log_backup_created(self, resource: str, artifact: str) -> None:
        self.log_event(
            action="backup",
            resource=resource,
            artifact=artifact,
            status="success",
            message=f"Backed up {resource} to {artifact}"
        )

    def log_restore(self, resource: str, artifact: Optional[str]) -> None:
        """Log a restore attempt; ``artifact`` is ``None`` when no backup existed."""
        found = artifact is not None
        self.log_event(
            "INFO" if found else "WARNING",
            action="restore",
            resource=resource,
            artifact=artifact,
            status="success" if found else "not_found",
            message=f"Restored {resource} from {artifact}" if found else f"No backup found for {resource}"
        )

    def log_command(self, argv: List[str], stdout: str, stderr: str, exit_code: int) -> None:
        """Log execution of a mutating external command."""
        cmd = " ".join(argv)
        self.log_event(
            action="command",
            status="success" if exit_code == 0 else "failure",
            cmd=cmd,
            stdout=stdout.strip()[:200] if stdout else None,
            stderr=stderr.strip()[:200] if stderr else None,
            exit_code=exit_code,
            message=f"Command '{cmd}' completed with exit code {exit_code}"
        )

    def read_session(self) -> list[dict[str, Any]]:
        """Return the entries written during this session."""
        entries: list[dict[str, Any]] = []
        if not self.log_file.exists():
            return entries

        with open(self.log_file, "r", encoding="utf-8") as f:
            for line in f:
                try:
                    entry = json.loads(line.strip())
                except json.JSONDecodeError:
                    continue
                if entry.get("session_id") == self.session_id:
                    entries.append(entry)
        return entries


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record):
        if hasattr(record, 'structured_data'):
            return json.dumps(record.structured_data, ensure_ascii=False)

        # Fallback for non-structured log records
        return json.dumps({
            'timestamp': datetime.now(tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }, ensure_ascii=False)


# Global logging manager instance
_logging_manager: Optional[LoggingManager] = None


def get_logging_manager() -> LoggingManager:
    """Get the global logging manager instance."""
    global _logging_manager
    if _logging_manager is None:
        _logging_manager = LoggingManager()
    return _logging_manager


def setup_logging(log_dir: Optional[Path] = None, *, dry_run: bool = False) -> LoggingManager:
    """Set up the global logging manager."""
    global _logging_manager
    _logging_manager = LoggingManager(log_dir, dry_run=dry_run)
    return _logging_manager


__all__ = ["JsonFormatter", "LogEntry", "LoggingManager", "get_logging_manager", "setup_logging"]
