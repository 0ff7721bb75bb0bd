"""Profile loading and fail-fast plan execution."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from pydantic import ValidationError

from rampart.core.context import ExecutionContext
from rampart.core.errors import OperationFailed, PlanError
from rampart.core.logging_manager import LoggingManager, get_logging_manager
from rampart.core.operations import Operation, build_operation
from rampart.models.plans import ProfileSpec


logger = logging.getLogger(__name__)

APPLY = "apply"
REVERT = "revert"

RULE = "-" * 53


@dataclass
class Plan:
    """An ordered list of operations forming one hardening section."""

    name: str
    title: str
    operations: List[Operation]
    description: str = ""
    auxiliary: bool = False


@dataclass
class Profile:
    """Plans loaded from one profile file."""

    name: str
    os: str
    versions: List[str]
    plans: List[Plan]
    description: str = ""
    source: Optional[Path] = None

    def plan(self, name: str) -> Plan:
        for plan in self.plans:
            if plan.name == name:
                return plan
        raise PlanError(f"Unknown plan '{name}'. Available plans: {', '.join(p.name for p in self.plans)}")

    def select(self, names: Sequence[str] = (), *, include_auxiliary: bool = False) -> List[Plan]:
        """Return the named plans in declared order, or the default set.

        Without names, auxiliary plans are only included when
        ``include_auxiliary`` is set.
        """

        if not names:
            return [p for p in self.plans if include_auxiliary or not p.auxiliary]

        wanted = set(names)
        for name in names:
            self.plan(name)
        return [p for p in self.plans if p.name in wanted]

    def resources(self) -> List[str]:
        """Return every file the profile backs up, in first-seen order."""

        seen: List[str] = []
        for plan in self.plans:
            for operation in plan.operations:
                for resource in operation.resources:
                    if resource not in seen:
                        seen.append(resource)
        return seen


def load_profile(path: str | Path) -> Profile:
    """Read and validate the profile at ``path``."""

    source = Path(path)
    if not source.exists():
        raise PlanError(f"Profile file not found at {source}")

    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise PlanError(f"Failed to parse profile file {source}: {exc}") from exc

    try:
        document = ProfileSpec.model_validate(payload)
    except ValidationError as exc:
        raise PlanError(f"Invalid profile definition in {source}: {exc}") from exc

    plans = [
        Plan(
            name=plan_document.name,
            title=plan_document.title,
            description=plan_document.description,
            auxiliary=plan_document.auxiliary,
            operations=[build_operation(op) for op in plan_document.operations],
        )
        for plan_document in document.plans
    ]
    logger.info("Loaded profile %s with %s plans from %s", document.name, len(plans), source)
    return Profile(
        name=document.name,
        os=document.os,
        versions=list(document.versions),
        description=document.description,
        plans=plans,
        source=source,
    )


@dataclass
class StepResult:
    plan: str
    operation: str
    outcome: str


@dataclass
class RunReport:
    mode: str
    steps: List[StepResult] = field(default_factory=list)

    def count(self, outcome: str) -> int:
        return sum(1 for step in self.steps if step.outcome == outcome)


class PlanRunner:
    """Execute plans top to bottom, stopping at the first failure.

    Already applied steps are never rolled back automatically; reverting is
    a separate run of the revert bodies.
    """

    def __init__(self, context: ExecutionContext, *, logging_manager: LoggingManager | None = None) -> None:
        self.context = context
        self.logging_manager = logging_manager or get_logging_manager()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def apply(self, plans: Iterable[Plan]) -> RunReport:
        return self._run(list(plans), APPLY)

    def revert(self, plans: Iterable[Plan]) -> RunReport:
        return self._run(list(plans), REVERT)

    def run_auxiliary(self, plan: Plan) -> RunReport:
        """Apply a single auxiliary plan as a one-off action."""
        if not plan.auxiliary:
            raise PlanError(f"Plan '{plan.name}' is not an auxiliary plan")
        return self._run([plan], APPLY)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _run(self, plans: List[Plan], mode: str) -> RunReport:
        echo = self.context.echo
        report = RunReport(mode=mode)
        total = sum(len(plan.operations) for plan in plans)
        if total == 0:
            logger.warning("No operations selected; nothing to %s", mode)
            return report
        self._check_target(plans)

        verb = "hardening" if mode == APPLY else "rollback"
        dry = " (dry-run)" if self.context.dry_run else ""
        echo(f"Starting {verb} of {len(plans)} plan(s){dry}...")
        echo(RULE)
        self.logging_manager.log_event(status="started", action=mode, message=f"Starting {mode} of {len(plans)} plans")

        index = 0
        for plan in plans:
            echo(f"{plan.title}...")
            for operation in plan.operations:
                index += 1
                report.steps.append(self._run_step(plan, operation, mode, index, total))
            echo("")

        echo(RULE)
        if mode == APPLY:
            echo("Hardening completed successfully!")
        else:
            echo("Rollback completed successfully!")
        echo("A reboot may be required for some changes to take full effect.")
        self.logging_manager.log_event(status="success", action=mode, message=f"Completed {mode} of {len(plans)} plans")
        return report

    def _check_target(self, plans: List[Plan]) -> None:
        """Refuse plans whose commands would hit the live host while files go elsewhere."""

        if self.context.targets_host or self.context.dry_run:
            return
        bound = [plan.name for plan in plans if any(op.host_bound for op in plan.operations)]
        if bound:
            raise PlanError(
                f"Plans {', '.join(bound)} run commands on the live host and cannot target "
                f"{self.context.root}. Use --dry-run or select file-only plans."
            )

    def _run_step(self, plan: Plan, operation: Operation, mode: str, index: int, total: int) -> StepResult:
        body = operation.apply if mode == APPLY else operation.revert
        try:
            outcome = body(self.context)
        except Exception as exc:
            logger.error("Step %s/%s (%s: %s) failed: %s", index, total, plan.name, operation.name, exc)
            self.logging_manager.log_step(plan.name, operation.name, mode, "failure", str(exc))
            self.context.echo(f"[{index}/{total}] {plan.name}: {operation.name} ... FAILED")
            raise OperationFailed(plan.name, index, operation.name, exc) from exc

        self.context.echo(f"[{index}/{total}] {plan.name}: {operation.name} ... {outcome}")
        self.logging_manager.log_step(plan.name, operation.name, mode, outcome)
        return StepResult(plan=plan.name, operation=operation.name, outcome=outcome)


__all__ = ["APPLY", "Plan", "PlanRunner", "Profile", "REVERT", "RunReport", "StepResult", "load_profile"]
