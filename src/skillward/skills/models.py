"""
Skill models for Skillward.

Defines the data structures produced by discovery, uninstall, and update.
Failures are values, not exceptions: every orchestrator call returns either
a result model or a failure model carrying one of the typed errors below.
"""

from enum import IntEnum
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from skillward.storage.enumerator import FileInfo

Scope = Literal["project", "personal"]


# =============================================================================
# Discovery
# =============================================================================


class ScopeInfo(BaseModel):
    """A resolved scope root."""

    type: Scope
    path: Path


class SkillFound(BaseModel):
    type: Literal["found"] = "found"
    path: Path
    has_skill_md: bool = False


class SkillMissing(BaseModel):
    type: Literal["not-found"] = "not-found"
    searched_path: Path


class SkillCaseMismatch(BaseModel):
    """The on-disk directory differs from the requested name only in case."""

    type: Literal["case-mismatch"] = "case-mismatch"
    expected_name: str
    actual_name: str
    actual_path: Path


DiscoveryResult = SkillFound | SkillMissing | SkillCaseMismatch


class SkillInfo(BaseModel):
    """Live snapshot of an installed skill, rebuilt on every invocation."""

    name: str
    path: Path
    files: list[FileInfo] = Field(default_factory=list)
    total_size: int = 0
    has_skill_md: bool = False
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# Errors
# =============================================================================

SecurityReason = Literal[
    "path-traversal",
    "symlink-escape",
    "hard-link-detected",
    "containment-violation",
    "case-mismatch",
]


class SkillNotFoundError(BaseModel):
    type: Literal["skill-not-found"] = "skill-not-found"
    skill_name: str
    searched_path: Path


class InvalidInputError(BaseModel):
    """Bad name or scope, or a force-gated condition without --force."""

    type: Literal["validation-error"] = "validation-error"
    field: str
    message: str


class FileSystemError(BaseModel):
    type: Literal["filesystem-error"] = "filesystem-error"
    operation: str
    path: Path
    message: str


class OperationTimeoutError(BaseModel):
    type: Literal["timeout"] = "timeout"
    operation_name: str
    timeout_seconds: float
    files_removed: int = 0


class PartialRemovalError(BaseModel):
    type: Literal["partial-removal"] = "partial-removal"
    skill_name: str
    files_removed: int
    files_remaining: int
    last_error: str


class SecurityError(BaseModel):
    type: Literal["security-error"] = "security-error"
    reason: SecurityReason
    details: str


class PackageError(BaseModel):
    """The update package is malformed or does not match the installed skill."""

    type: Literal["package-error"] = "package-error"
    package_path: Path
    message: str


class BackupError(BaseModel):
    type: Literal["backup-error"] = "backup-error"
    path: Path
    message: str


UninstallError = Annotated[
    SkillNotFoundError
    | InvalidInputError
    | FileSystemError
    | OperationTimeoutError
    | PartialRemovalError
    | SecurityError,
    Field(discriminator="type"),
]

UpdateError = Annotated[
    SkillNotFoundError
    | InvalidInputError
    | FileSystemError
    | OperationTimeoutError
    | SecurityError
    | PackageError
    | BackupError,
    Field(discriminator="type"),
]


AnyError = (
    SkillNotFoundError
    | InvalidInputError
    | FileSystemError
    | OperationTimeoutError
    | PartialRemovalError
    | SecurityError
    | PackageError
    | BackupError
)


def describe_error(error: AnyError) -> str:
    """Render an error as a one-line human-readable message."""
    if isinstance(error, SkillNotFoundError):
        return f"Skill '{error.skill_name}' not found (searched: {error.searched_path})"
    if isinstance(error, InvalidInputError):
        return error.message
    if isinstance(error, FileSystemError):
        return f"File system error during {error.operation} at {error.path}: {error.message}"
    if isinstance(error, OperationTimeoutError):
        return (
            f"{error.operation_name} timed out after {error.timeout_seconds:g}s "
            f"({error.files_removed} items already removed; manual cleanup may be needed)"
        )
    if isinstance(error, PartialRemovalError):
        return (
            f"Partially removed '{error.skill_name}': {error.files_removed} removed, "
            f"{error.files_remaining} remaining. Last error: {error.last_error}"
        )
    if isinstance(error, SecurityError):
        return f"Security error ({error.reason}): {error.details}"
    if isinstance(error, PackageError):
        return f"Invalid package {error.package_path}: {error.message}"
    return f"Backup failed at {error.path}: {error.message}"


# =============================================================================
# Uninstall results
# =============================================================================


class UninstallResult(BaseModel):
    """A skill that was fully removed."""

    success: Literal[True] = True
    skill_name: str
    path: Path
    files_removed: int
    bytes_freed: int
    warnings: list[str] = Field(default_factory=list)


class UninstallFailure(BaseModel):
    success: Literal[False] = False
    skill_name: str
    error: UninstallError


class DryRunPreview(BaseModel):
    """What an uninstall would remove. Produced without touching the disk."""

    type: Literal["dry-run-preview"] = "dry-run-preview"
    skill_name: str
    path: Path
    files: list[FileInfo]
    total_size: int
    warnings: list[str] = Field(default_factory=list)


class MultiUninstallResult(BaseModel):
    succeeded: list[UninstallResult] = Field(default_factory=list)
    failed: list[UninstallFailure] = Field(default_factory=list)
    total_files_removed: int = 0
    total_bytes_freed: int = 0


class UninstallOptions(BaseModel):
    scope: str | None = "project"
    force: bool = False
    dry_run: bool = False
    timeout_seconds: float = 300.0
    max_files: int = 10_000
    max_size_bytes: int = 1024 * 1024 * 1024
    locked_retry_delay: float = 0.1
    cwd: Path | None = None
    home: Path | None = None


# =============================================================================
# Update results
# =============================================================================


class UpdateComparison(BaseModel):
    """File-level difference between the installed skill and a package."""

    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    size_change: int = 0


class UpdateSuccess(BaseModel):
    type: Literal["update-success"] = "update-success"
    skill_name: str
    path: Path
    previous_file_count: int
    current_file_count: int
    previous_size: int
    current_size: int
    backup_path: Path | None = None
    backup_removed: bool = False
    warnings: list[str] = Field(default_factory=list)


class UpdateDryRunPreview(BaseModel):
    type: Literal["update-dry-run-preview"] = "update-dry-run-preview"
    skill_name: str
    path: Path
    package_path: Path
    comparison: UpdateComparison
    backup_path: Path | None = None
    warnings: list[str] = Field(default_factory=list)


class UpdateRolledBack(BaseModel):
    """The update failed and the previous version was restored."""

    type: Literal["update-rolled-back"] = "update-rolled-back"
    skill_name: str
    path: Path
    backup_path: Path
    failure_reason: str


class UpdateRollbackFailed(BaseModel):
    """The update failed and the previous version could not be restored."""

    type: Literal["update-rollback-failed"] = "update-rollback-failed"
    skill_name: str
    path: Path
    backup_path: Path | None
    failure_reason: str
    rollback_error: str
    recovery_instructions: list[str] = Field(default_factory=list)


class UpdateFailure(BaseModel):
    type: Literal["update-failure"] = "update-failure"
    skill_name: str
    error: UpdateError


class UpdateOptions(BaseModel):
    scope: str | None = "project"
    force: bool = False
    dry_run: bool = False
    keep_backup: bool = False
    no_backup: bool = False
    timeout_seconds: float = 300.0
    lock_stale_seconds: int = 300
    max_files: int = 10_000
    max_size_bytes: int = 1024 * 1024 * 1024
    locked_retry_delay: float = 0.1
    backup_base_dir: Path | None = None
    cwd: Path | None = None
    home: Path | None = None


UpdateOutcome = (
    UpdateSuccess | UpdateDryRunPreview | UpdateRolledBack | UpdateRollbackFailed | UpdateFailure
)


# =============================================================================
# Exit codes
# =============================================================================


class UninstallExitCode(IntEnum):
    SUCCESS = 0
    NOT_FOUND = 1
    FILESYSTEM_ERROR = 2
    CANCELLED = 3
    PARTIAL_FAILURE = 4
    SECURITY_ERROR = 5


class UpdateExitCode(IntEnum):
    SUCCESS = 0
    NOT_FOUND = 1
    FILESYSTEM_ERROR = 2
    CANCELLED = 3
    INVALID_PACKAGE = 4
    SECURITY_ERROR = 5
    ROLLED_BACK = 6
    ROLLBACK_FAILED = 7


# Validation of these fields guards against traversal and maps to a security exit
_SECURITY_VALIDATED_FIELDS = {"name", "scope"}


def exit_code_for(failure: UninstallFailure) -> UninstallExitCode:
    """Map an uninstall failure onto exactly one exit code."""
    error = failure.error
    if isinstance(error, SkillNotFoundError):
        return UninstallExitCode.NOT_FOUND
    if isinstance(error, SecurityError):
        return UninstallExitCode.SECURITY_ERROR
    if isinstance(error, InvalidInputError):
        if error.field in _SECURITY_VALIDATED_FIELDS:
            return UninstallExitCode.SECURITY_ERROR
        return UninstallExitCode.FILESYSTEM_ERROR
    if isinstance(error, PartialRemovalError):
        return UninstallExitCode.PARTIAL_FAILURE
    return UninstallExitCode.FILESYSTEM_ERROR


def update_exit_code_for(outcome: UpdateOutcome) -> UpdateExitCode:
    """Map an update outcome onto exactly one exit code."""
    if isinstance(outcome, (UpdateSuccess, UpdateDryRunPreview)):
        return UpdateExitCode.SUCCESS
    if isinstance(outcome, UpdateRolledBack):
        return UpdateExitCode.ROLLED_BACK
    if isinstance(outcome, UpdateRollbackFailed):
        return UpdateExitCode.ROLLBACK_FAILED

    error = outcome.error
    if isinstance(error, SkillNotFoundError):
        return UpdateExitCode.NOT_FOUND
    if isinstance(error, SecurityError):
        return UpdateExitCode.SECURITY_ERROR
    if isinstance(error, PackageError):
        return UpdateExitCode.INVALID_PACKAGE
    if isinstance(error, InvalidInputError) and error.field in _SECURITY_VALIDATED_FIELDS:
        return UpdateExitCode.SECURITY_ERROR
    return UpdateExitCode.FILESYSTEM_ERROR


# =============================================================================
# SKILL.md
# =============================================================================


class SkillFrontmatter(BaseModel):
    """Frontmatter parsed from SKILL.md.

    Only the fields the package manager relies on are declared; anything else
    in the frontmatter is kept but not interpreted.
    """

    model_config = ConfigDict(extra="allow")

    name: str = Field(..., description="Skill name (must match the directory name)")
    description: str = Field(default="", description="Short description")
