"""Bounded execution of external commands."""
from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Sequence

from rampart.core.errors import ExternalCommandFailure
from rampart.core.logging_manager import get_logging_manager


logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Lightweight container for command execution results."""

    exit_code: int
    stdout: str
    stderr: str

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    """Run argv lists with a timeout.

    Commands flagged as mutating are skipped in dry-run mode; queries always
    run because the toggles need the current state to decide anything.
    """

    def __init__(self, *, timeout: float = 300.0, dry_run: bool = False) -> None:
        self.timeout = timeout
        self.dry_run = dry_run

    def run(self, argv: Sequence[str], *, check: bool = True, mutating: bool = True) -> CommandResult:
        """Execute ``argv`` and return its result.

        With ``check`` a non-zero exit raises :class:`ExternalCommandFailure`.
        A missing executable or a timeout always raises.
        """

        argv = list(argv)
        if self.dry_run and mutating:
            logger.info("Dry-run: would run %s", " ".join(argv))
            return CommandResult(exit_code=0, stdout="", stderr="")

        logger.debug("Running %s", " ".join(argv))
        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            logger.error("Command not found: %s", argv[0])
            raise ExternalCommandFailure(argv, 127, str(exc)) from exc
        except subprocess.TimeoutExpired as exc:
            logger.error("Command timed out after %ss: %s", self.timeout, " ".join(argv))
            raise ExternalCommandFailure(argv, -1, timed_out=True) from exc

        result = CommandResult(exit_code=completed.returncode, stdout=completed.stdout, stderr=completed.stderr)
        if mutating:
            get_logging_manager().log_command(argv, result.stdout, result.stderr, result.exit_code)

        if check and not result.succeeded:
            raise ExternalCommandFailure(argv, result.exit_code, result.stderr)
        return result


__all__ = ["CommandResult", "CommandRunner"]
