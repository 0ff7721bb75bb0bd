"""Error taxonomy for Rampart runs."""
from __future__ import annotations

from typing import Sequence


class RampartError(Exception):
    """Base class for every error raised by the engine."""


class ResourceMissing(RampartError):
    """A target file, service or account does not exist."""

    def __init__(self, resource: str, message: str | None = None) -> None:
        self.resource = resource
        super().__init__(message or f"Resource not found: {resource}")


class ExternalCommandFailure(RampartError):
    """An external command exited non-zero, was not found or timed out."""

    def __init__(
        self,
        argv: Sequence[str],
        exit_code: int,
        stderr: str = "",
        *,
        timed_out: bool = False,
    ) -> None:
        self.argv = list(argv)
        self.exit_code = exit_code
        self.stderr = stderr
        self.timed_out = timed_out

        cmd = " ".join(self.argv)
        if timed_out:
            message = f"Command timed out: {cmd}"
        else:
            message = f"Command failed with exit code {exit_code}: {cmd}"
        detail = stderr.strip()
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class PermissionDenied(RampartError):
    """The process lacks the privilege required to mutate the host."""


class PlanError(RampartError):
    """A profile could not be loaded or a plan selection is invalid."""


class OperationFailed(RampartError):
    """A plan step failed; the remaining steps were not executed."""

    def __init__(self, plan: str, step: int, operation: str, cause: BaseException) -> None:
        self.plan = plan
        self.step = step
        self.operation = operation
        self.cause = cause
        super().__init__(f"Step {step} of plan '{plan}' failed ({operation}): {cause}")


__all__ = [
    "ExternalCommandFailure",
    "OperationFailed",
    "PermissionDenied",
    "PlanError",
    "RampartError",
    "ResourceMissing",
]
