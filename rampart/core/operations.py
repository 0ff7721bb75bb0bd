"""Operations: named, idempotent units of change with apply and revert bodies."""
from __future__ import annotations

import logging
import posixpath
from typing import Callable, Dict, List, Optional, Sequence

from rampart.core import system_state
from rampart.core.config_editor import SEPARATORS, LineEditLike, edit_file, set_config
from rampart.core.context import ExecutionContext
from rampart.core.errors import ExternalCommandFailure, PlanError, ResourceMissing
from rampart.core.logging_manager import get_logging_manager
from rampart.models.plans import (
    AuthselectProfileSpec,
    CommandSpec,
    EditLinesSpec,
    LockAccountsSpec,
    PackagesAbsentSpec,
    RemoveFilesSpec,
    ServiceSpec,
    SetConfigSpec,
    WriteFileSpec,
)


logger = logging.getLogger(__name__)

CHANGED = "changed"
UNCHANGED = "unchanged"
SKIPPED = "skipped"
WARNING = "warning"


def _merge(outcomes: Sequence[str]) -> str:
    for candidate in (WARNING, CHANGED, UNCHANGED):
        if candidate in outcomes:
            return candidate
    return SKIPPED


class Operation:
    """Base class for all operations.

    Subclasses implement :meth:`_apply` and :meth:`_revert`. Both return one
    of the outcome constants and raise on failure. Revert bodies must cope
    with apply never having run.
    """

    kind = "operation"
    # Operations that run external commands against the live host.
    host_bound = False

    def __init__(self, name: str, *, when_exists: Optional[str] = None) -> None:
        self.name = name
        self.when_exists = when_exists

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"

    @property
    def resources(self) -> List[str]:
        """Files whose backups this operation creates or restores."""
        return []

    def apply(self, ctx: ExecutionContext) -> str:
        return self._execute(self._apply, ctx)

    def revert(self, ctx: ExecutionContext) -> str:
        return self._execute(self._revert, ctx)

    def _execute(self, body: Callable[[ExecutionContext], str], ctx: ExecutionContext) -> str:
        if self._guarded(ctx):
            return SKIPPED

        if self.host_bound and not ctx.targets_host:
            if not ctx.dry_run:
                raise PlanError(f"{self.name} runs host commands and cannot target {ctx.root}")
            ctx.echo(f"  Host commands are not run against {ctx.root}. Skipping.")
            return SKIPPED

        try:
            return body(ctx)
        except (ExternalCommandFailure, PermissionError) as exc:
            # A dry run only reads, and some state is readable by root alone.
            if not ctx.dry_run:
                raise
            logger.warning("Dry-run could not inspect %s: %s", self.name, exc)
            ctx.echo(f"  warning: could not inspect current state: {exc}")
            return WARNING

    def _guarded(self, ctx: ExecutionContext) -> bool:
        if self.when_exists is None:
            return False
        if ctx.fs.exists(self.when_exists) or ctx.fs.is_dir(self.when_exists):
            return False
        ctx.echo(f"  {self.when_exists} not found. Skipping.")
        return True

    def _apply(self, ctx: ExecutionContext) -> str:
        raise NotImplementedError

    def _revert(self, ctx: ExecutionContext) -> str:
        raise NotImplementedError


class BestEffort(Operation):
    """Downgrade command failures and missing resources to warnings.

    Anything else, notably :class:`OSError` and :class:`PermissionError`,
    still propagates and fails the plan.
    """

    def __init__(self, inner: Operation) -> None:
        super().__init__(inner.name)
        self.inner = inner
        self.kind = inner.kind

    def __repr__(self) -> str:
        return f"<BestEffort {self.inner!r}>"

    @property
    def host_bound(self) -> bool:
        return self.inner.host_bound

    @property
    def resources(self) -> List[str]:
        return self.inner.resources

    def apply(self, ctx: ExecutionContext) -> str:
        return self._tolerate(self.inner.apply, ctx)

    def revert(self, ctx: ExecutionContext) -> str:
        return self._tolerate(self.inner.revert, ctx)

    def _tolerate(self, body: Callable[[ExecutionContext], str], ctx: ExecutionContext) -> str:
        try:
            return body(ctx)
        except (ExternalCommandFailure, ResourceMissing) as exc:
            logger.warning("Best-effort operation %s did not complete: %s", self.name, exc)
            ctx.echo(f"  warning: {exc}")
            return WARNING


# ----------------------------------------------------------------------
# Backup helpers
# ----------------------------------------------------------------------
def backup_resource(ctx: ExecutionContext, path: str) -> None:
    handle = ctx.backups.backup(path)
    if handle is None:
        return
    ctx.echo(f"  Backed up {path}")
    if not ctx.dry_run:
        get_logging_manager().log_backup_created(path, handle.artifact)


def restore_resource(ctx: ExecutionContext, path: str, on_missing: str = "warn") -> str:
    """Restore ``path`` from its latest backup, applying ``on_missing`` otherwise."""

    handle = ctx.backups.restore(path)
    get_logging_manager().log_restore(path, handle.artifact if handle else None)
    if handle is not None:
        ctx.echo(f"  Restored {path} from {handle.artifact}")
        return CHANGED

    if on_missing == "fail":
        raise ResourceMissing(path, f"No backup found for {path}")

    if on_missing == "clear":
        if not ctx.dry_run:
            ctx.fs.write_text(path, "")
        ctx.echo(f"  Warning: No backup found for {path}. File has been cleared.")
        return WARNING

    if on_missing == "remove":
        if ctx.fs.exists(path):
            if not ctx.dry_run:
                ctx.fs.remove(path)
            ctx.echo(f"  Warning: No backup found for {path}. File has been removed.")
        return WARNING

    ctx.echo(f"  Warning: No backup found for {path}. Cannot restore.")
    return WARNING


# ----------------------------------------------------------------------
# File operations
# ----------------------------------------------------------------------
class SetConfigOperation(Operation):
    """Back up a file, then set key/value pairs in it."""

    kind = "set_config"

    def __init__(
        self,
        name: str,
        path: str,
        settings: Dict[str, str],
        *,
        separator: str = "equals",
        match_commented: bool = False,
        create_missing: bool = False,
        on_missing_backup: str = "warn",
        when_exists: Optional[str] = None,
    ) -> None:
        super().__init__(name, when_exists=when_exists)
        self.path = path
        self.settings = dict(settings)
        self.separator = SEPARATORS[separator]
        self.match_commented = match_commented
        self.create_missing = create_missing
        self.on_missing_backup = on_missing_backup

    @property
    def resources(self) -> List[str]:
        return [self.path]

    def _apply(self, ctx: ExecutionContext) -> str:
        if not ctx.fs.exists(self.path) and not self.create_missing:
            raise ResourceMissing(self.path)

        backup_resource(ctx, self.path)
        outcomes = []
        for key, value in self.settings.items():
            status = set_config(
                ctx.fs,
                self.path,
                key,
                value,
                self.separator,
                match_commented=self.match_commented,
                create_missing=self.create_missing,
                dry_run=ctx.dry_run,
            )
            if status == "added":
                ctx.echo(f"  Added '{key}' to {self.path}")
            elif status == "updated":
                ctx.echo(f"  Updated '{key}' in {self.path}")
            outcomes.append(UNCHANGED if status == "unchanged" else CHANGED)
        return _merge(outcomes)

    def _revert(self, ctx: ExecutionContext) -> str:
        return restore_resource(ctx, self.path, self.on_missing_backup)


class WriteFileOperation(Operation):
    """Back up files, then overwrite them with fixed content."""

    kind = "write_file"

    def __init__(
        self,
        name: str,
        paths: Sequence[str],
        content: str,
        *,
        mode: Optional[int] = None,
        revert: str = "restore",
        on_missing_backup: str = "warn",
        when_exists: Optional[str] = None,
    ) -> None:
        super().__init__(name, when_exists=when_exists)
        self.paths = list(paths)
        self.content = content
        self.mode = mode
        self.revert_strategy = revert
        self.on_missing_backup = on_missing_backup

    @property
    def resources(self) -> List[str]:
        return list(self.paths)

    def _apply(self, ctx: ExecutionContext) -> str:
        outcomes = []
        for path in self.paths:
            backup_resource(ctx, path)
            current_ok = ctx.fs.exists(path) and ctx.fs.read_text(path) == self.content
            mode_ok = self.mode is None or (ctx.fs.exists(path) and ctx.fs.mode(path) == self.mode)
            if current_ok and mode_ok:
                outcomes.append(UNCHANGED)
                continue

            if not ctx.dry_run:
                ctx.fs.write_text(path, self.content)
                if self.mode is not None:
                    ctx.fs.chmod(path, self.mode)
            ctx.echo(f"  Wrote {path}")
            outcomes.append(CHANGED)
        return _merge(outcomes)

    def _revert(self, ctx: ExecutionContext) -> str:
        outcomes = []
        for path in self.paths:
            if self.revert_strategy == "restore":
                outcomes.append(restore_resource(ctx, path, self.on_missing_backup))
                continue

            if ctx.fs.exists(path):
                if not ctx.dry_run:
                    ctx.fs.remove(path)
                ctx.echo(f"  Removed {path}")
                outcomes.append(CHANGED)
            else:
                ctx.echo(f"  {path} not found; nothing to remove.")
                outcomes.append(UNCHANGED)
        return _merge(outcomes)


class EditLinesOperation(Operation):
    """Back up files, then apply sed-style line edits to them."""

    kind = "edit_lines"

    def __init__(
        self,
        name: str,
        paths: Sequence[str],
        edits: Sequence[LineEditLike],
        *,
        skip_missing: bool = False,
        on_missing_backup: str = "warn",
        when_exists: Optional[str] = None,
    ) -> None:
        super().__init__(name, when_exists=when_exists)
        self.paths = list(paths)
        self.edits = list(edits)
        self.skip_missing = skip_missing
        self.on_missing_backup = on_missing_backup

    @property
    def resources(self) -> List[str]:
        return list(self.paths)

    def _apply(self, ctx: ExecutionContext) -> str:
        outcomes = []
        for path in self.paths:
            if not ctx.fs.exists(path):
                if self.skip_missing:
                    continue
                raise ResourceMissing(path)
            backup_resource(ctx, path)
            changed = edit_file(ctx.fs, path, self.edits, dry_run=ctx.dry_run)
            if changed:
                ctx.echo(f"  Edited {path}")
            outcomes.append(CHANGED if changed else UNCHANGED)
        return _merge(outcomes)

    def _revert(self, ctx: ExecutionContext) -> str:
        paths = [p for p in self.paths if not self.skip_missing or ctx.fs.exists(p)]
        return _merge([restore_resource(ctx, path, self.on_missing_backup) for path in paths])


class RemoveFilesOperation(Operation):
    """Delete every file named one of ``names`` below ``top``. Not reversible."""

    kind = "remove_files"

    def __init__(self, name: str, top: str, names: Sequence[str], *, when_exists: Optional[str] = None) -> None:
        super().__init__(name, when_exists=when_exists)
        self.top = top
        self.names = list(names)

    def _apply(self, ctx: ExecutionContext) -> str:
        found = ctx.fs.find(self.top, self.names)
        for path in found:
            if not ctx.dry_run:
                ctx.fs.remove(path)
            ctx.echo(f"  Removing {path}")
        return CHANGED if found else UNCHANGED

    def _revert(self, ctx: ExecutionContext) -> str:
        ctx.echo(f"  Note: removal of {', '.join(self.names)} is not reversible.")
        return SKIPPED


# ----------------------------------------------------------------------
# Command and toggle operations
# ----------------------------------------------------------------------
class CommandOperation(Operation):
    """Run fixed argv lists in each direction."""

    kind = "command"
    host_bound = True

    def __init__(
        self,
        name: str,
        apply: Sequence[Sequence[str]] = (),
        revert: Sequence[Sequence[str]] = (),
        *,
        when_exists: Optional[str] = None,
    ) -> None:
        super().__init__(name, when_exists=when_exists)
        self.apply_commands = [list(argv) for argv in apply]
        self.revert_commands = [list(argv) for argv in revert]

    def _run_all(self, ctx: ExecutionContext, commands: List[List[str]]) -> str:
        for argv in commands:
            ctx.runner.run(argv)
        return CHANGED if commands else SKIPPED

    def _apply(self, ctx: ExecutionContext) -> str:
        return self._run_all(ctx, self.apply_commands)

    def _revert(self, ctx: ExecutionContext) -> str:
        return self._run_all(ctx, self.revert_commands)


_INVERSE_STATE = {"enabled": "disabled", "disabled": "enabled", "restarted": "restarted"}


class ServiceOperation(Operation):
    """Enable, disable or restart systemd units, acting only when needed."""

    kind = "service"
    host_bound = True

    def __init__(
        self,
        name: str,
        units: Sequence[str],
        state: str,
        *,
        now: bool = True,
        revert_state: Optional[str] = None,
        when_exists: Optional[str] = None,
    ) -> None:
        super().__init__(name, when_exists=when_exists)
        self.units = list(units)
        self.state = state
        self.now = now
        self.revert_state = revert_state or _INVERSE_STATE[state]

    def _bring(self, ctx: ExecutionContext, unit: str, state: str) -> bool:
        if state == "restarted":
            ctx.runner.run(["systemctl", "restart", unit])
            ctx.echo(f"  Restarted {unit}")
            return True

        current = system_state.service_state(ctx.runner, unit)
        if state == "disabled":
            needed = current.is_enabled or (self.now and current.is_active)
            verb = "disable"
        else:
            needed = not current.is_enabled or (self.now and not current.is_active)
            verb = "enable"

        if not needed:
            logger.debug("Service %s already %s", unit, state)
            return False

        argv = ["systemctl", verb] + (["--now"] if self.now else []) + [unit]
        ctx.runner.run(argv)
        ctx.echo(f"  {state.capitalize()} {unit}")
        return True

    def _apply(self, ctx: ExecutionContext) -> str:
        return _merge([CHANGED if self._bring(ctx, unit, self.state) else UNCHANGED for unit in self.units])

    def _revert(self, ctx: ExecutionContext) -> str:
        if self.revert_state == "unchanged":
            return SKIPPED
        return _merge([CHANGED if self._bring(ctx, unit, self.revert_state) else UNCHANGED for unit in self.units])


class PackagesAbsentOperation(Operation):
    """Remove installed packages. Package removal is not reversible."""

    kind = "packages_absent"
    host_bound = True

    def __init__(self, name: str, packages: Sequence[str], *, when_exists: Optional[str] = None) -> None:
        super().__init__(name, when_exists=when_exists)
        self.packages = list(packages)

    def _apply(self, ctx: ExecutionContext) -> str:
        outcomes = []
        for package in self.packages:
            if not system_state.package_installed(ctx.runner, package):
                outcomes.append(UNCHANGED)
                continue
            ctx.runner.run(["dnf", "remove", "-y", package])
            ctx.echo(f"  Removed package: {package}")
            outcomes.append(CHANGED)
        return _merge(outcomes)

    def _revert(self, ctx: ExecutionContext) -> str:
        ctx.echo(f"  Note: removal of {', '.join(self.packages)} is not reversible.")
        return SKIPPED


class LockAccountsOperation(Operation):
    """Lock passwords of accounts whose login shell is in ``shells``.

    Revert unlocks them again, except accounts whose shadow entry holds no
    password hash at all; ``passwd -u`` refuses those and they were never
    usable with a password anyway.
    """

    kind = "lock_accounts"
    host_bound = True

    def __init__(self, name: str, shells: Sequence[str], *, when_exists: Optional[str] = None) -> None:
        super().__init__(name, when_exists=when_exists)
        self.shells = list(shells)

    def _apply(self, ctx: ExecutionContext) -> str:
        outcomes = []
        for user in system_state.accounts_with_shell(ctx.fs, self.shells):
            if system_state.account_locked(ctx.runner, user):
                outcomes.append(UNCHANGED)
                continue
            ctx.runner.run(["passwd", "-l", user])
            ctx.echo(f"  Locked password for system account: {user}")
            outcomes.append(CHANGED)
        return _merge(outcomes)

    def _revert(self, ctx: ExecutionContext) -> str:
        hashes = self._shadow_hashes(ctx)
        outcomes = []
        for user in system_state.accounts_with_shell(ctx.fs, self.shells):
            if not system_state.account_locked(ctx.runner, user):
                outcomes.append(UNCHANGED)
                continue
            if hashes.get(user, "!x").lstrip("!") in {"", "*"}:
                logger.debug("Account %s has no password to unlock", user)
                outcomes.append(UNCHANGED)
                continue
            ctx.runner.run(["passwd", "-u", user])
            ctx.echo(f"  Unlocked password for system account: {user}")
            outcomes.append(CHANGED)
        return _merge(outcomes)

    @staticmethod
    def _shadow_hashes(ctx: ExecutionContext) -> Dict[str, str]:
        if not ctx.fs.exists("/etc/shadow"):
            return {}
        hashes: Dict[str, str] = {}
        for line in ctx.fs.read_text("/etc/shadow").splitlines():
            fields = line.split(":")
            if len(fields) > 1:
                hashes[fields[0]] = fields[1]
        return hashes


class AuthselectProfileOperation(Operation):
    """Manage a custom authselect profile carrying the PAM hardening."""

    kind = "authselect_profile"
    host_bound = True

    def __init__(
        self,
        name: str,
        profile: str,
        *,
        base: Optional[str] = None,
        features: Sequence[str] = (),
        files: Sequence[str] = ("system-auth", "password-auth"),
        edits: Sequence[LineEditLike] = (),
        fallback_profile: str = "sssd",
        when_exists: Optional[str] = None,
    ) -> None:
        super().__init__(name, when_exists=when_exists)
        self.profile = profile
        self.base = base
        self.features = list(features)
        self.files = list(files)
        self.edits = list(edits)
        self.fallback_profile = fallback_profile

    @property
    def profile_dir(self) -> str:
        return posixpath.join("/etc/authselect/custom", self.profile)

    @property
    def resources(self) -> List[str]:
        if not self.edits:
            return []
        return [posixpath.join(self.profile_dir, name) for name in self.files]

    def _apply(self, ctx: ExecutionContext) -> str:
        runner = ctx.runner
        if system_state.authselect_profile_exists(runner, self.profile):
            ctx.echo(f"  Custom authselect profile '{self.profile}' already exists. Proceeding to modify it.")
        else:
            base = self.base or system_state.current_authselect_profile(runner)
            ctx.echo(f"  Creating custom authselect profile '{self.profile}' from '{base}'...")
            runner.run(["authselect", "create-profile", self.profile, "-b", base, "--symlink-meta"])

        runner.run(["authselect", "select", f"custom/{self.profile}", "--force"])
        for feature in self.features:
            runner.run(["authselect", "enable-feature", feature])

        for path in self.resources:
            if not ctx.fs.exists(path):
                if ctx.dry_run:
                    ctx.echo(f"  Would edit {path} once the profile exists.")
                    continue
                raise ResourceMissing(path)
            backup_resource(ctx, path)
            if edit_file(ctx.fs, path, self.edits, dry_run=ctx.dry_run):
                ctx.echo(f"  Edited {path}")

        runner.run(["authselect", "apply-changes", "-b"])
        return CHANGED

    def _revert(self, ctx: ExecutionContext) -> str:
        runner = ctx.runner
        for feature in self.features:
            result = runner.run(["authselect", "disable-feature", feature], check=False)
            if not result.succeeded:
                logger.warning("Could not disable authselect feature %s: %s", feature, result.stderr.strip())
        runner.run(["authselect", "select", self.fallback_profile, "--force"])
        if ctx.fs.is_dir(self.profile_dir):
            if not ctx.dry_run:
                ctx.fs.rmtree(self.profile_dir)
            ctx.echo(f"  Custom authselect profile '{self.profile}' deleted.")
        runner.run(["authselect", "apply-changes", "-b"])
        return CHANGED


# ----------------------------------------------------------------------
# Construction from profile models
# ----------------------------------------------------------------------
def build_operation(model) -> Operation:
    """Turn a validated operation model into an :class:`Operation`."""

    common = {"when_exists": model.when_exists}

    if isinstance(model, SetConfigSpec):
        operation: Operation = SetConfigOperation(
            model.name,
            model.path,
            model.settings,
            separator=model.separator,
            match_commented=model.match_commented,
            create_missing=model.create_missing,
            on_missing_backup=model.on_missing_backup,
            **common,
        )
    elif isinstance(model, WriteFileSpec):
        operation = WriteFileOperation(
            model.name,
            model.paths,
            model.content,
            mode=int(model.mode, 8) if model.mode is not None else None,
            revert=model.revert,
            on_missing_backup=model.on_missing_backup,
            **common,
        )
    elif isinstance(model, EditLinesSpec):
        operation = EditLinesOperation(
            model.name,
            model.paths,
            model.edits,
            skip_missing=model.skip_missing,
            on_missing_backup=model.on_missing_backup,
            **common,
        )
    elif isinstance(model, RemoveFilesSpec):
        operation = RemoveFilesOperation(model.name, model.top, model.names, **common)
    elif isinstance(model, CommandSpec):
        operation = CommandOperation(model.name, model.apply, model.revert, **common)
    elif isinstance(model, ServiceSpec):
        operation = ServiceOperation(
            model.name, model.units, model.state, now=model.now, revert_state=model.revert_state, **common
        )
    elif isinstance(model, PackagesAbsentSpec):
        operation = PackagesAbsentOperation(model.name, model.packages, **common)
    elif isinstance(model, LockAccountsSpec):
        operation = LockAccountsOperation(model.name, model.shells, **common)
    elif isinstance(model, AuthselectProfileSpec):
        operation = AuthselectProfileOperation(
            model.name,
            model.profile,
            base=model.base,
            features=model.features,
            files=model.files,
            edits=model.edits,
            fallback_profile=model.fallback_profile,
            **common,
        )
    else:
        raise TypeError(f"Unsupported operation model: {type(model).__name__}")

    return BestEffort(operation) if model.best_effort else operation


__all__ = [
    "AuthselectProfileOperation",
    "BestEffort",
    "CHANGED",
    "CommandOperation",
    "EditLinesOperation",
    "LockAccountsOperation",
    "Operation",
    "PackagesAbsentOperation",
    "RemoveFilesOperation",
    "SKIPPED",
    "ServiceOperation",
    "SetConfigOperation",
    "UNCHANGED",
    "WARNING",
    "WriteFileOperation",
    "backup_resource",
    "build_operation",
    "restore_resource",
]
