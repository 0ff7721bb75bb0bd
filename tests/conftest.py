"""Shared test fixtures for Rampart tests."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Sequence, Tuple

import pytest

from rampart.core.backup_manager import BackupManager
from rampart.core.commands import CommandResult
from rampart.core.context import ExecutionContext
from rampart.core.errors import ExternalCommandFailure
from rampart.core.filesystem import MemoryFilesystem
from rampart.core.logging_manager import setup_logging


class FakeRunner:
    """Stand-in for CommandRunner that answers from a table.

    Mutating commands are recorded in ``calls``; queries are not. Unknown
    commands succeed with empty output.
    """

    def __init__(self, *, dry_run: bool = False) -> None:
        self.dry_run = dry_run
        self.timeout = 300.0
        self.responses: Dict[Tuple[str, ...], CommandResult] = {}
        self.calls: List[List[str]] = []

    def respond(self, argv: Sequence[str], stdout: str = "", exit_code: int = 0, stderr: str = "") -> None:
        self.responses[tuple(argv)] = CommandResult(exit_code=exit_code, stdout=stdout, stderr=stderr)

    def run(self, argv: Sequence[str], *, check: bool = True, mutating: bool = True) -> CommandResult:
        argv = list(argv)
        if mutating:
            if self.dry_run:
                return CommandResult(exit_code=0, stdout="", stderr="")
            self.calls.append(argv)

        result = self.responses.get(tuple(argv), CommandResult(exit_code=0, stdout="", stderr=""))
        if check and not result.succeeded:
            raise ExternalCommandFailure(argv, result.exit_code, result.stderr)
        return result


class TickingClock:
    """Clock that advances one second per reading."""

    def __init__(self, start: datetime = datetime(2024, 5, 1, 12, 0, 0)) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


@pytest.fixture(autouse=True)
def structured_log(tmp_path):
    """Keep the structured operation log inside the test's temp dir."""
    return setup_logging(tmp_path / "logs")


@pytest.fixture
def fs() -> MemoryFilesystem:
    return MemoryFilesystem()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def messages() -> List[str]:
    return []


@pytest.fixture
def context(fs, runner, clock, messages) -> ExecutionContext:
    return ExecutionContext(
        fs=fs,
        runner=runner,
        backups=BackupManager(fs, clock=clock),
        privileged=True,
        echo=messages.append,
    )


@pytest.fixture
def dry_context(fs, clock, messages) -> ExecutionContext:
    return ExecutionContext(
        fs=fs,
        runner=FakeRunner(dry_run=True),
        backups=BackupManager(fs, clock=clock, dry_run=True),
        dry_run=True,
        echo=messages.append,
    )
