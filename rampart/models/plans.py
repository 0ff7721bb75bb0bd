"""
Pydantic Models for Hardening Profile Validation
"""
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

MissingBackupPolicy = Literal["warn", "clear", "remove", "fail"]


class LineEdit(BaseModel):
    """A single sed-style edit applied to every line of a file."""
    action: Literal["substitute", "delete", "insert_before", "insert_after", "append_if_missing"]
    pattern: Optional[str] = None
    replacement: str = ""
    line: Optional[str] = None
    within: Optional[str] = None
    unless: Optional[str] = None

    @model_validator(mode="after")
    def _check_fields(self) -> "LineEdit":
        if self.action in {"substitute", "delete", "insert_before", "insert_after"} and self.pattern is None:
            raise ValueError(f"'{self.action}' edits need a pattern")
        if self.action in {"insert_before", "insert_after", "append_if_missing"} and self.line is None:
            raise ValueError(f"'{self.action}' edits need a line")
        return self


class OperationBase(BaseModel):
    """Fields shared by every operation."""
    name: str
    best_effort: bool = False
    when_exists: Optional[str] = None


class SetConfigSpec(OperationBase):
    """Set key/value pairs in a line-oriented configuration file."""
    kind: Literal["set_config"]
    path: str
    settings: Dict[str, str]
    separator: Literal["equals", "whitespace"] = "equals"
    match_commented: bool = False
    create_missing: bool = False
    on_missing_backup: MissingBackupPolicy = "warn"


class WriteFileSpec(OperationBase):
    """Overwrite whole files with fixed content."""
    kind: Literal["write_file"]
    paths: List[str] = Field(min_length=1)
    content: str
    mode: Optional[str] = None
    revert: Literal["restore", "remove"] = "restore"
    on_missing_backup: MissingBackupPolicy = "warn"

    @field_validator("mode")
    @classmethod
    def _octal_mode(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            int(value, 8)
        return value


class EditLinesSpec(OperationBase):
    """Apply line edits to one or more files."""
    kind: Literal["edit_lines"]
    paths: List[str] = Field(min_length=1)
    edits: List[LineEdit] = Field(min_length=1)
    skip_missing: bool = False
    on_missing_backup: MissingBackupPolicy = "warn"


class RemoveFilesSpec(OperationBase):
    """Delete files with the given names below a directory (irreversible)."""
    kind: Literal["remove_files"]
    top: str
    names: List[str] = Field(min_length=1)


class CommandSpec(OperationBase):
    """Run external commands; each command is an argv list."""
    kind: Literal["command"]
    apply: List[List[str]] = Field(default_factory=list)
    revert: List[List[str]] = Field(default_factory=list)


class ServiceSpec(OperationBase):
    """Bring systemd units to a desired state."""
    kind: Literal["service"]
    units: List[str] = Field(min_length=1)
    state: Literal["enabled", "disabled", "restarted"]
    now: bool = True
    revert_state: Optional[Literal["enabled", "disabled", "restarted", "unchanged"]] = None


class PackagesAbsentSpec(OperationBase):
    """Remove packages when they are installed (irreversible)."""
    kind: Literal["packages_absent"]
    packages: List[str] = Field(min_length=1)


class LockAccountsSpec(OperationBase):
    """Lock the passwords of accounts that use a non-login shell."""
    kind: Literal["lock_accounts"]
    shells: List[str] = Field(default_factory=lambda: ["/sbin/nologin", "/usr/sbin/nologin"])


class AuthselectProfileSpec(OperationBase):
    """Create, customise and select a custom authselect profile."""
    kind: Literal["authselect_profile"]
    profile: str
    base: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    files: List[str] = Field(default_factory=lambda: ["system-auth", "password-auth"])
    edits: List[LineEdit] = Field(default_factory=list)
    fallback_profile: str = "sssd"


OperationSpec = Annotated[
    Union[
        SetConfigSpec,
        WriteFileSpec,
        EditLinesSpec,
        RemoveFilesSpec,
        CommandSpec,
        ServiceSpec,
        PackagesAbsentSpec,
        LockAccountsSpec,
        AuthselectProfileSpec,
    ],
    Field(discriminator="kind"),
]


class PlanSpec(BaseModel):
    """An ordered list of operations forming one hardening section."""
    name: str
    title: str
    description: str = ""
    auxiliary: bool = False
    operations: List[OperationSpec] = Field(min_length=1)


class ProfileSpec(BaseModel):
    """A named set of plans for one platform."""
    name: str
    os: str
    versions: List[str] = Field(default_factory=list)
    description: str = ""
    plans: List[PlanSpec]

    @model_validator(mode="after")
    def _unique_plan_names(self) -> "ProfileSpec":
        seen = set()
        for plan in self.plans:
            if plan.name in seen:
                raise ValueError(f"Duplicate plan name '{plan.name}'")
            seen.add(plan.name)
        return self
