"""Console entrypoint for the Rampart hardening applier."""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import click

from rampart.config import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_PROFILE,
    DEFAULT_ROOT,
    ENV_COMMAND_TIMEOUT,
    ENV_LOG_DIR,
    ENV_PLANS_FILE,
    ENV_PROFILE,
    ENV_ROOT,
    available_profiles,
    profile_path,
)
from rampart.core.context import ExecutionContext
from rampart.core.errors import PlanError, RampartError
from rampart.core.logging_manager import setup_logging
from rampart.core.os_detect import get_os_info, is_platform_compatible
from rampart.core.operations import CHANGED, SKIPPED, UNCHANGED, WARNING
from rampart.core.plan_runner import PlanRunner, Profile, RunReport, load_profile


SSH_ROOT_PLAN = "ssh-root-access"


@dataclass
class Settings:
    profile: str
    plans_file: Optional[Path]
    root: Path
    dry_run: bool
    timeout: float
    ignore_platform: bool


def _reports_errors(func):
    """Turn engine errors into a message on stderr and exit status 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except RampartError as exc:
            raise click.ClickException(str(exc)) from exc

    return wrapper


def _absolute_paths(ctx: click.Context, param: click.Parameter, value: Tuple[str, ...]) -> Tuple[str, ...]:
    for path in value:
        if not path.startswith("/"):
            raise click.BadParameter(f"{path} is not an absolute path", ctx=ctx, param=param)
    return value


def _load(settings: Settings) -> Profile:
    if settings.plans_file is not None:
        return load_profile(settings.plans_file)

    if settings.profile not in available_profiles():
        raise PlanError(
            f"Unknown profile '{settings.profile}'. Available profiles: {', '.join(available_profiles())}"
        )
    return load_profile(profile_path(settings.profile))


def _check_platform(profile: Profile, settings: Settings) -> None:
    # Only the live host can be checked; an alternate root is trusted as given.
    if settings.ignore_platform or str(settings.root) != DEFAULT_ROOT:
        return

    if not is_platform_compatible(profile.os, profile.versions):
        host = get_os_info().get("distro_name") or get_os_info().get("system")
        raise PlanError(
            f"Profile '{profile.name}' targets {profile.os} {', '.join(profile.versions)} "
            f"but this host is {host}. Use --ignore-platform to override."
        )


def _prepare(settings: Settings, *, mutating: bool = True) -> Tuple[Profile, ExecutionContext]:
    profile = _load(settings)
    context = ExecutionContext.create(
        settings.root,
        dry_run=settings.dry_run,
        timeout=settings.timeout,
        echo=click.echo,
    )
    if mutating:
        _check_platform(profile, settings)
        context.require_privilege()
    return profile, context


def _summarize(report: RunReport) -> None:
    if not report.steps:
        click.echo("Nothing to do.")
        return
    counts = ", ".join(f"{report.count(outcome)} {outcome}" for outcome in (CHANGED, UNCHANGED, SKIPPED, WARNING))
    click.echo(f"Summary: {counts}")


@click.group(invoke_without_command=True)
@click.option(
    "--profile",
    envvar=ENV_PROFILE,
    default=DEFAULT_PROFILE,
    show_default=True,
    help="Name of the packaged hardening profile.",
)
@click.option(
    "--plans-file",
    envvar=ENV_PLANS_FILE,
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to a profile JSON file; overrides --profile.",
)
@click.option(
    "--root",
    envvar=ENV_ROOT,
    type=click.Path(path_type=Path, file_okay=False),
    default=DEFAULT_ROOT,
    show_default=True,
    help="Root directory that holds the files to harden. Plans that run commands need / unless --dry-run is set.",
)
@click.option("--dry-run", is_flag=True, help="Report what would change without touching anything.")
@click.option(
    "--timeout",
    envvar=ENV_COMMAND_TIMEOUT,
    type=click.FloatRange(min=1),
    default=DEFAULT_COMMAND_TIMEOUT,
    show_default=True,
    help="Timeout in seconds for each external command.",
)
@click.option(
    "--log-dir",
    envvar=ENV_LOG_DIR,
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory for the structured operation log.",
)
@click.option("--ignore-platform", is_flag=True, help="Skip the operating system compatibility check.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(
    ctx: click.Context,
    profile: str,
    plans_file: Optional[Path],
    root: Path,
    dry_run: bool,
    timeout: float,
    log_dir: Optional[Path],
    ignore_platform: bool,
    verbose: bool,
) -> None:
    """Rampart: backup-first RHEL 9 hardening."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(2)

    setup_logging(log_dir, dry_run=dry_run)
    ctx.obj = Settings(
        profile=profile,
        plans_file=plans_file,
        root=root,
        dry_run=dry_run,
        timeout=timeout,
        ignore_platform=ignore_platform,
    )


@cli.command()
@click.argument("plans", nargs=-1)
@click.pass_obj
@_reports_errors
def apply(settings: Settings, plans: Tuple[str, ...]) -> None:
    """Apply the hardening plans (all non-auxiliary plans by default)."""

    profile, context = _prepare(settings)
    selected = profile.select(plans)
    _summarize(PlanRunner(context).apply(selected))


@cli.command()
@click.argument("plans", nargs=-1)
@click.pass_obj
@_reports_errors
def revert(settings: Settings, plans: Tuple[str, ...]) -> None:
    """Restore files from their latest backups and undo the toggles."""

    profile, context = _prepare(settings)
    selected = profile.select(plans, include_auxiliary=True)
    _summarize(PlanRunner(context).revert(selected))


@cli.command("enable-ssh-root")
@click.pass_obj
@_reports_errors
def enable_ssh_root(settings: Settings) -> None:
    """Allow key-based root login over SSH."""

    profile, context = _prepare(settings)
    _summarize(PlanRunner(context).run_auxiliary(profile.plan(SSH_ROOT_PLAN)))


@cli.command("plans")
@click.pass_obj
@_reports_errors
def list_plans(settings: Settings) -> None:
    """List the plans of the selected profile."""

    profile = _load(settings)
    click.echo(f"Profile {profile.name} ({profile.os} {', '.join(profile.versions)})")
    if profile.description:
        click.echo(profile.description)
    for plan in profile.plans:
        marker = " (auxiliary)" if plan.auxiliary else ""
        click.echo(f"  {plan.name}{marker} - {plan.title}")
        if plan.description:
            click.echo(f"      {plan.description}")


@cli.command()
@click.argument("paths", nargs=-1, callback=_absolute_paths)
@click.pass_obj
@_reports_errors
def backups(settings: Settings, paths: Tuple[str, ...]) -> None:
    """List backup artifacts, for the given files or every profile file."""

    profile, context = _prepare(settings, mutating=False)
    found = False
    for resource in paths or profile.resources():
        for handle in context.backups.list_backups(resource):
            found = True
            click.echo(f"{handle.artifact} @ {handle.timestamp.isoformat(sep=' ')}")

    if not found:
        click.echo("No backups available.")


@cli.command()
@click.option("--keep", type=click.IntRange(min=0), required=True, help="Number of newest backups to keep per file.")
@click.argument("paths", nargs=-1, callback=_absolute_paths)
@click.pass_obj
@_reports_errors
def prune(settings: Settings, keep: int, paths: Tuple[str, ...]) -> None:
    """Delete all but the newest backups of each file."""

    profile, context = _prepare(settings)
    verb = "Would delete" if settings.dry_run else "Deleted"
    removed = 0
    for resource in paths or profile.resources():
        for handle in context.backups.prune(resource, keep):
            click.echo(f"{verb} {handle.artifact}")
            removed += 1
    click.echo(f"Pruned {removed} backup(s).")


if __name__ == "__main__":
    cli()
