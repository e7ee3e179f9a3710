"""
Uninstall orchestration.

Composes validation, discovery, pre-removal checks, security checks, and
the verified deletion engine into a single call that returns a result value
and writes exactly one audit line per terminal outcome (dry runs write none).

States, in order::

    name/scope validated -> discovered -> pre-removal checked
        -> security checked -> dry-run preview | removal executed
"""

import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from pathlib import Path

from skillward.audit.logger import (
    AuditLogger,
    AuditStatus,
    failure_entry,
    partial_entry,
    success_entry,
)
from skillward.security.checker import (
    SymlinkCheckError,
    SymlinkEscape,
    check_symlink_safety,
    detect_hard_link_warnings,
    get_symlink_summary,
)
from skillward.security.safe_delete import (
    ROOT_RELATIVE_PATH,
    DeleteError,
    DeleteSuccess,
    safe_recursive_delete,
)
from skillward.skills.discovery import discover_skill, get_scope_path, resolve_scope
from skillward.skills.models import (
    DryRunPreview,
    FileSystemError,
    InvalidInputError,
    MultiUninstallResult,
    OperationTimeoutError,
    PartialRemovalError,
    Scope,
    SecurityError,
    SkillCaseMismatch,
    SkillInfo,
    SkillMissing,
    SkillNotFoundError,
    UninstallFailure,
    UninstallOptions,
    UninstallResult,
)
from skillward.skills.pre_removal import detect_unexpected_files, validate_before_removal
from skillward.skills.validators import validate_skill_name, validate_uninstall_scope
from skillward.storage.enumerator import (
    check_resource_limits,
    collect_skill_files,
    get_skill_summary,
)

logger = logging.getLogger(__name__)

DEFAULT_UNINSTALL_TIMEOUT = 300.0

__all__ = [
    "DEFAULT_UNINSTALL_TIMEOUT",
    "RemovalError",
    "RemovalPartial",
    "RemovalProgress",
    "RemovalSuccess",
    "RemovalTimeout",
    "execute_removal",
    "generate_dry_run_preview",
    "get_scope_path",
    "is_dry_run_preview",
    "stream_removal_progress",
    "uninstall_multiple_skills",
    "uninstall_skill",
]


@dataclass(frozen=True)
class RemovalSuccess:
    files_removed: int
    bytes_freed: int


@dataclass(frozen=True)
class RemovalPartial:
    files_removed: int
    files_remaining: int
    last_error: str


@dataclass(frozen=True)
class RemovalTimeout:
    files_removed: int


@dataclass(frozen=True)
class RemovalError:
    message: str


RemovalOutcome = RemovalSuccess | RemovalPartial | RemovalTimeout | RemovalError


@dataclass(frozen=True)
class RemovalProgress:
    """Simplified progress event for display."""

    current_path: Path
    relative_path: str
    success: bool
    error_message: str | None
    processed_count: int
    total_count: int


class _Run:
    """Per-call context: who is being removed where, and where to audit it."""

    def __init__(self, skill_name: str, scope: str, audit_logger: AuditLogger) -> None:
        self.skill_name = skill_name
        self.scope = scope
        self.audit_logger = audit_logger

    def fail(
        self,
        error,
        status: AuditStatus,
        details: str,
        skill_path: Path | None = None,
    ) -> UninstallFailure:
        self.audit_logger.log_uninstall(
            failure_entry(
                self.skill_name,
                self.scope,
                status,
                details,
                str(skill_path) if skill_path else None,
            )
        )
        return UninstallFailure(skill_name=self.skill_name, error=error)


async def uninstall_skill(
    skill_name: str,
    options: UninstallOptions | None = None,
    audit_logger: AuditLogger | None = None,
) -> UninstallResult | UninstallFailure | DryRunPreview:
    """
    Uninstall a single skill.

    Never raises for expected failures: every outcome is returned as a
    value. Name and scope problems never touch the filesystem. A symlinked
    skill root escaping its scope and a case-only name mismatch are refused
    even with ``force``; missing SKILL.md, unexpected files, oversized
    skills, and hard links are refused unless ``force`` is set.

    Args:
        skill_name: Name of the skill directory to remove
        options: Scope, force, dry-run, limits, and test overrides
        audit_logger: Audit sink (default: the user's audit log)

    Returns:
        UninstallResult, UninstallFailure, or DryRunPreview (dry run only)
    """
    options = options or UninstallOptions()
    audit_logger = audit_logger or AuditLogger()

    scope_check = validate_uninstall_scope(options.scope)
    run = _Run(skill_name, scope_check.scope or str(options.scope), audit_logger)

    if not scope_check.valid:
        message = scope_check.error or "Invalid scope"
        error = InvalidInputError(field="scope", message=message)
        return run.fail(error, AuditStatus.FAILED, message)

    name_check = validate_skill_name(skill_name)
    if not name_check.valid:
        message = name_check.error or "Invalid skill name"
        error = InvalidInputError(field="name", message=message)
        return run.fail(error, AuditStatus.FAILED, message)

    scope: Scope = "personal" if scope_check.scope == "personal" else "project"
    scope_info = resolve_scope(scope, cwd=options.cwd, home=options.home)

    discovery = await discover_skill(skill_name, scope_info)

    if isinstance(discovery, SkillMissing):
        return run.fail(
            SkillNotFoundError(skill_name=skill_name, searched_path=discovery.searched_path),
            AuditStatus.NOT_FOUND,
            f"Not found at {discovery.searched_path}",
        )

    if isinstance(discovery, SkillCaseMismatch):
        return run.fail(
            SecurityError(
                reason="case-mismatch",
                details=(
                    f'Expected "{discovery.expected_name}" but found "{discovery.actual_name}". '
                    "This may indicate a security issue on case-insensitive filesystems."
                ),
            ),
            AuditStatus.SECURITY_BLOCKED,
            f"case_mismatch:{discovery.actual_name}",
        )

    skill_path = discovery.path
    files = await collect_skill_files(skill_path)
    summary = await get_skill_summary(skill_path)

    skill_info = SkillInfo(
        name=skill_name,
        path=skill_path,
        files=files,
        total_size=sum(f.size for f in files if not f.is_directory),
        has_skill_md=discovery.has_skill_md,
    )

    pre_removal = await validate_before_removal(skill_path)
    skill_info.warnings.extend(pre_removal.warnings)

    unexpected = await detect_unexpected_files(skill_path)
    if unexpected.found:
        skill_info.warnings.extend(unexpected.warnings)
        if not options.force:
            return run.fail(
                InvalidInputError(
                    field="files",
                    message=(
                        "Skill contains unexpected files. Use --force to proceed anyway. "
                        + " ".join(unexpected.warnings)
                    ),
                ),
                AuditStatus.FAILED,
                "unexpected_files_require_force",
            )

    if not skill_info.has_skill_md:
        if not options.force:
            return run.fail(
                InvalidInputError(
                    field="skill_md",
                    message=(
                        "SKILL.md not found. This directory may not be a valid skill. "
                        "Use --force to proceed anyway."
                    ),
                ),
                AuditStatus.FAILED,
                "missing_skill_md",
            )
        skill_info.warnings.append("SKILL.md not found; removing anyway (--force).")

    limits = check_resource_limits(summary, options.max_files, options.max_size_bytes)
    if limits.exceeded:
        skill_info.warnings.extend(limits.warnings)
        if not options.force:
            return run.fail(
                InvalidInputError(
                    field="resources",
                    message=(
                        "Resource limits exceeded. Use --force to proceed anyway. "
                        + " ".join(limits.warnings)
                    ),
                ),
                AuditStatus.FAILED,
                "resource_limits_exceeded",
            )

    symlink_safety = await check_symlink_safety(skill_path, scope_info.path)
    if isinstance(symlink_safety, SymlinkEscape):
        return run.fail(
            SecurityError(
                reason="symlink-escape",
                details=(
                    "Skill directory is a symlink pointing outside scope: "
                    f"{symlink_safety.target_path}. "
                    "Refusing to proceed to prevent unintended file deletion."
                ),
            ),
            AuditStatus.SECURITY_BLOCKED,
            f"symlink_escape={symlink_safety.target_path}",
        )
    if isinstance(symlink_safety, SymlinkCheckError):
        return run.fail(
            FileSystemError(operation="stat", path=skill_path, message=symlink_safety.message),
            AuditStatus.FAILED,
            symlink_safety.message,
        )

    hard_links = await detect_hard_link_warnings(skill_path)
    if hard_links is not None:
        skill_info.warnings.append(hard_links.message)
        if not options.force:
            return run.fail(
                SecurityError(reason="hard-link-detected", details=hard_links.message),
                AuditStatus.FAILED,
                f"hard_links_detected={hard_links.count}",
            )

    symlink_summary = await get_symlink_summary(skill_path)
    if symlink_summary.warning:
        skill_info.warnings.append(symlink_summary.warning)

    if options.dry_run:
        return generate_dry_run_preview(skill_info)

    outcome = await execute_removal(
        skill_info, options.timeout_seconds, options.locked_retry_delay
    )

    if isinstance(outcome, RemovalSuccess):
        logger.info(f"Removed {skill_name} ({outcome.files_removed} items) from {skill_path}")
        audit_logger.log_uninstall(
            success_entry(
                skill_name, run.scope, outcome.files_removed, outcome.bytes_freed, str(skill_path)
            )
        )
        return UninstallResult(
            skill_name=skill_name,
            path=skill_path,
            files_removed=outcome.files_removed,
            bytes_freed=outcome.bytes_freed,
            warnings=skill_info.warnings,
        )

    if isinstance(outcome, RemovalPartial):
        audit_logger.log_uninstall(
            partial_entry(
                skill_name,
                run.scope,
                outcome.files_removed,
                outcome.files_remaining,
                outcome.last_error,
                str(skill_path),
            )
        )
        return UninstallFailure(
            skill_name=skill_name,
            error=PartialRemovalError(
                skill_name=skill_name,
                files_removed=outcome.files_removed,
                files_remaining=outcome.files_remaining,
                last_error=outcome.last_error,
            ),
        )

    if isinstance(outcome, RemovalTimeout):
        return run.fail(
            OperationTimeoutError(
                operation_name="uninstall",
                timeout_seconds=options.timeout_seconds,
                files_removed=outcome.files_removed,
            ),
            AuditStatus.TIMEOUT,
            f"Operation timed out after {options.timeout_seconds:g}s",
            skill_path,
        )

    return run.fail(
        FileSystemError(operation="delete", path=skill_path, message=outcome.message),
        AuditStatus.FAILED,
        outcome.message,
        skill_path,
    )


async def uninstall_multiple_skills(
    skill_names: list[str],
    options: UninstallOptions | None = None,
    audit_logger: AuditLogger | None = None,
    should_stop: Callable[[], bool] | None = None,
) -> MultiUninstallResult:
    """
    Uninstall several skills one after another.

    Failures do not stop the batch. ``should_stop`` is polled before each
    skill so an interrupt can prevent further skills from starting; it
    cannot abort a skill already being removed. Dry-run previews are not
    collected here; preview skills one at a time with uninstall_skill().

    Args:
        skill_names: Names to remove, processed in order
        options: Shared options for every skill
        audit_logger: Audit sink shared by every skill
        should_stop: Optional interrupt check

    Returns:
        MultiUninstallResult with per-skill outcomes and totals
    """
    options = options or UninstallOptions()
    audit_logger = audit_logger or AuditLogger()
    result = MultiUninstallResult()

    for skill_name in skill_names:
        if should_stop is not None and should_stop():
            logger.info(f"Stopping batch before {skill_name}: interrupted")
            break

        outcome = await uninstall_skill(skill_name, options, audit_logger)

        if is_dry_run_preview(outcome):
            continue
        if isinstance(outcome, UninstallResult):
            result.succeeded.append(outcome)
        elif isinstance(outcome, UninstallFailure):
            result.failed.append(outcome)

    result.total_files_removed = sum(r.files_removed for r in result.succeeded)
    result.total_bytes_freed = sum(r.bytes_freed for r in result.succeeded)
    return result


async def execute_removal(
    skill_info: SkillInfo,
    timeout_seconds: float = DEFAULT_UNINSTALL_TIMEOUT,
    retry_delay: float = 0.1,
) -> RemovalOutcome:
    """
    Run the deletion stream under a cooperative wall-clock budget.

    The deadline is checked between items, so a single slow syscall can run
    past it. The root is the last item, so reaching it is never a timeout.
    ``files_removed`` counts every successfully removed entry
    (directories and the root included); ``bytes_freed`` counts regular
    files only.

    Args:
        skill_info: Skill to remove
        timeout_seconds: Budget for the whole deletion
        retry_delay: Delay before retrying a locked file

    Returns:
        RemovalSuccess, RemovalPartial, RemovalTimeout, or RemovalError
    """
    deadline = time.monotonic() + timeout_seconds
    files_removed = 0
    bytes_freed = 0
    errors = 0
    last_error = ""

    try:
        async for progress in safe_recursive_delete(skill_info.path, retry_delay):
            result = progress.result
            if isinstance(result, DeleteSuccess):
                files_removed += 1
                if result.path_type == "file":
                    bytes_freed += result.size
            elif isinstance(result, DeleteError):
                errors += 1
                last_error = result.message
                logger.warning(f"Failed to remove {progress.relative_path}: {result.message}")

            if progress.relative_path != ROOT_RELATIVE_PATH and time.monotonic() > deadline:
                logger.warning(f"Removal of {skill_info.path} exceeded {timeout_seconds:g}s")
                return RemovalTimeout(files_removed=files_removed)
    except OSError as e:
        return RemovalError(message=str(e))

    if errors:
        expected_total = len(skill_info.files) + 1
        return RemovalPartial(
            files_removed=files_removed,
            files_remaining=max(expected_total - files_removed, 0),
            last_error=last_error,
        )

    return RemovalSuccess(files_removed=files_removed, bytes_freed=bytes_freed)


async def stream_removal_progress(
    skill_info: SkillInfo, retry_delay: float = 0.1
) -> AsyncIterator[RemovalProgress]:
    """Delete a skill while yielding display-friendly progress events."""
    total = len(skill_info.files) + 1
    processed = 0

    async for progress in safe_recursive_delete(skill_info.path, retry_delay):
        processed += 1
        result = progress.result
        yield RemovalProgress(
            current_path=progress.current_path,
            relative_path=progress.relative_path,
            success=isinstance(result, DeleteSuccess),
            error_message=result.message if isinstance(result, DeleteError) else None,
            processed_count=processed,
            total_count=total,
        )


def generate_dry_run_preview(skill_info: SkillInfo) -> DryRunPreview:
    return DryRunPreview(
        skill_name=skill_info.name,
        path=skill_info.path,
        files=skill_info.files,
        total_size=skill_info.total_size,
        warnings=skill_info.warnings,
    )


def is_dry_run_preview(result: object) -> bool:
    return isinstance(result, DryRunPreview)
