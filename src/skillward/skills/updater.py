"""
Skill update engine.

Replaces an installed skill with the contents of a ``.skill`` package (a zip
whose entries live under ``<name>/``). The installed tree is backed up, removed
with the same verified deletion engine used by uninstall, and the package is
extracted in its place. If anything fails after the old tree starts to go,
the partial install is removed and the backup restored.

Phases::

    validate -> discover -> inspect package -> security checks
        -> dry-run preview | lock -> backup -> replace -> (rollback) -> release
"""

import asyncio
import json
import logging
import os
import stat
import time
import zipfile
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from skillward.audit.logger import (
    AuditLogger,
    UpdateAuditLogEntry,
    update_failed_entry,
    update_rollback_failed_entry,
    update_rolled_back_entry,
    update_success_entry,
)
from skillward.security.checker import (
    SymlinkCheckError,
    SymlinkEscape,
    check_symlink_safety,
    detect_hard_link_warnings,
)
from skillward.security.safe_delete import execute_skill_deletion
from skillward.skills.backup import (
    ArchiveEntryError,
    BackupFailed,
    BackupManagerError,
    check_archive_entry,
    cleanup_backup,
    create_backup,
    extract_archive,
    restore_from_backup,
)
from skillward.skills.discovery import discover_skill, resolve_scope
from skillward.skills.models import (
    BackupError,
    FileSystemError,
    InvalidInputError,
    PackageError,
    Scope,
    SecurityError,
    SkillCaseMismatch,
    SkillMissing,
    SkillNotFoundError,
    UpdateComparison,
    UpdateDryRunPreview,
    UpdateFailure,
    UpdateOptions,
    UpdateOutcome,
    UpdateRollbackFailed,
    UpdateRolledBack,
    UpdateSuccess,
    describe_error,
)
from skillward.skills.parser import SKILL_MD, SkillParseError, parse_skill_md
from skillward.skills.validators import validate_skill_name, validate_uninstall_scope
from skillward.storage.enumerator import (
    FileInfo,
    collect_skill_files,
    format_file_size,
    get_skill_summary,
)

logger = logging.getLogger(__name__)

UPDATE_LOCK_EXTENSION = ".updating"
DEFAULT_LOCK_STALE_SECONDS = 300


# =============================================================================
# Locking
# =============================================================================


@dataclass(frozen=True)
class LockAcquired:
    lock_path: Path


@dataclass(frozen=True)
class LockFailed:
    lock_path: Path
    message: str
    details: list[str] = field(default_factory=list)


LockResult = LockAcquired | LockFailed


def get_lock_path(skill_path: Path) -> Path:
    return skill_path.parent / f"{skill_path.name}{UPDATE_LOCK_EXTENSION}"


def acquire_update_lock(
    skill_path: Path,
    package_path: Path,
    stale_seconds: float = DEFAULT_LOCK_STALE_SECONDS,
) -> LockResult:
    """
    Take the per-skill update lock ``<scope>/<name>.updating``.

    The lock file is created exclusively. A lock older than
    ``stale_seconds`` is assumed abandoned and replaced.

    Args:
        skill_path: Installed skill directory
        package_path: Package being installed (recorded in the lock)
        stale_seconds: Age after which an existing lock is ignored

    Returns:
        LockAcquired or LockFailed
    """
    lock_path = get_lock_path(skill_path)
    skill_name = skill_path.name

    try:
        age = time.time() - os.stat(lock_path).st_mtime
    except FileNotFoundError:
        age = None
    except OSError as e:
        return LockFailed(lock_path, f"Failed to acquire update lock: {e}")

    if age is not None:
        if age <= stale_seconds:
            info: dict = {}
            try:
                info = json.loads(lock_path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.debug(f"Unreadable lock file {lock_path}: {e}")
            return LockFailed(
                lock_path,
                f'Skill "{skill_name}" is currently being updated by another process '
                f"(PID: {info.get('pid', 'unknown')})",
                [
                    f"Lock acquired: {info.get('timestamp', 'unknown')}",
                    "If the previous update was interrupted, remove the lock file:",
                    f'  rm "{lock_path}"',
                ],
            )
        logger.warning(f"Removing stale update lock {lock_path} ({age:.0f}s old)")
        try:
            os.unlink(lock_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            return LockFailed(lock_path, f"Failed to remove stale lock: {e}")

    content = json.dumps(
        {
            "pid": os.getpid(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "operationType": "update",
            "skillPath": str(skill_path),
            "packagePath": str(package_path),
        }
    )

    try:
        fd = os.open(lock_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError:
        return LockFailed(
            lock_path, f'Skill "{skill_name}" is currently being updated by another process'
        )
    except OSError as e:
        return LockFailed(lock_path, f"Failed to acquire update lock: {e}")

    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)

    return LockAcquired(lock_path)


def release_update_lock(lock_path: Path) -> None:
    """Remove the lock file. A lock that is already gone is fine."""
    try:
        os.unlink(lock_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to release update lock {lock_path}: {e}")


def has_update_lock(skill_path: Path, stale_seconds: float = DEFAULT_LOCK_STALE_SECONDS) -> bool:
    try:
        age = time.time() - os.stat(get_lock_path(skill_path)).st_mtime
    except OSError:
        return False
    return age <= stale_seconds


# =============================================================================
# Package inspection
# =============================================================================


@dataclass
class PackageContents:
    """What a package would install, keyed by path relative to the skill root."""

    skill_name: str
    files: dict[str, zipfile.ZipInfo] = field(default_factory=dict)
    total_size: int = 0

    @property
    def file_count(self) -> int:
        return len(self.files)


class PackageInvalid(Exception):
    """The package cannot be installed as the named skill."""

    def __init__(self, message: str, security_reason: str | None = None):
        self.security_reason = security_reason
        super().__init__(message)


def inspect_package(
    package_path: Path,
    skill_name: str,
    max_files: int,
    max_size: int,
    force: bool = False,
) -> PackageContents:
    """
    Open a package and check that it installs exactly ``skill_name``.

    Every entry must live under ``<name>/``, must not be absolute, contain a
    ``..`` segment, or be a symlink. ``<name>/SKILL.md`` must exist and
    declare the same name. Oversized packages are refused unless ``force``.

    Raises:
        PackageInvalid: With ``security_reason`` set for unsafe entries
    """
    try:
        zf = zipfile.ZipFile(package_path)
    except (OSError, zipfile.BadZipFile) as e:
        raise PackageInvalid(f"Not a valid skill package: {e}") from e

    prefix = f"{skill_name}/"
    contents = PackageContents(skill_name=skill_name)

    with zf:
        for info in zf.infolist():
            reason = check_archive_entry(info.filename)
            if reason:
                raise PackageInvalid(reason, security_reason="path-traversal")
            name = info.filename.replace("\\", "/")
            if not name.startswith(prefix):
                raise PackageInvalid(
                    f"Package contains entry outside root directory: {info.filename}",
                    security_reason="containment-violation",
                )
            if stat.S_ISLNK(info.external_attr >> 16):
                raise PackageInvalid(
                    f"Package contains symlink entry: {info.filename}",
                    security_reason="symlink-escape",
                )
            if info.is_dir():
                continue
            contents.files[name[len(prefix) :]] = info
            contents.total_size += info.file_size

        skill_md = contents.files.get(SKILL_MD)
        if skill_md is None:
            raise PackageInvalid(f"Package is missing {prefix}{SKILL_MD}")
        try:
            frontmatter, _ = parse_skill_md(zf.read(skill_md).decode("utf-8"))
        except (SkillParseError, UnicodeDecodeError) as e:
            raise PackageInvalid(f"Invalid {SKILL_MD} in package: {e}") from e

    if frontmatter.name != skill_name:
        raise PackageInvalid(
            f"Package is for skill '{frontmatter.name}', not '{skill_name}'"
        )

    problems = []
    if contents.file_count > max_files:
        problems.append(f"File count ({contents.file_count}) exceeds limit ({max_files})")
    if contents.total_size > max_size:
        problems.append(
            f"Package size ({format_file_size(contents.total_size)}) exceeds limit "
            f"({format_file_size(max_size)})"
        )
    if problems and not force:
        raise PackageInvalid(
            f"Resource limits exceeded. {'. '.join(problems)}. Use --force to bypass."
        )

    return contents


def _crc32(path: Path) -> int:
    crc = 0
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(64 * 1024), b""):
            crc = zlib.crc32(chunk, crc)
    return crc


def compare_versions(installed: list[FileInfo], package: PackageContents) -> UpdateComparison:
    """
    Diff the installed regular files against the package.

    A file counts as modified when its size or CRC-32 differs.
    """
    current = {
        Path(f.relative_path).as_posix(): f
        for f in installed
        if not f.is_directory and not f.is_symlink
    }

    comparison = UpdateComparison(
        added=sorted(set(package.files) - set(current)),
        removed=sorted(set(current) - set(package.files)),
    )

    for rel in sorted(set(current) & set(package.files)):
        old, new = current[rel], package.files[rel]
        if old.size != new.file_size:
            comparison.modified.append(rel)
            continue
        try:
            if _crc32(old.absolute_path) != new.CRC:
                comparison.modified.append(rel)
        except OSError as e:
            logger.debug(f"Cannot read {old.absolute_path}: {e}")
            comparison.modified.append(rel)

    comparison.size_change = package.total_size - sum(f.size for f in current.values())
    return comparison


def _install_package(package_path: Path, scope_path: Path) -> int:
    with zipfile.ZipFile(package_path) as zf:
        return extract_archive(zf, scope_path)


# =============================================================================
# Orchestration
# =============================================================================


class _UpdateRun:
    """Per-call context shared by the phases of one update."""

    def __init__(
        self,
        skill_name: str,
        scope: str,
        package_path: Path,
        options: UpdateOptions,
        audit_logger: AuditLogger,
    ) -> None:
        self.skill_name = skill_name
        self.scope = scope
        self.package_path = package_path
        self.options = options
        self.audit_logger = audit_logger

    def audit(self, entry: UpdateAuditLogEntry) -> None:
        self.audit_logger.log_update(entry)

    def fail(self, error) -> UpdateFailure:
        self.audit(
            update_failed_entry(
                self.skill_name, self.scope, str(self.package_path), describe_error(error)
            )
        )
        return UpdateFailure(skill_name=self.skill_name, error=error)


async def update_skill(
    skill_name: str,
    package_path: str | Path,
    options: UpdateOptions | None = None,
    audit_logger: AuditLogger | None = None,
) -> UpdateOutcome:
    """
    Update an installed skill from a package.

    Never raises for expected failures. Writes exactly one UPDATE audit
    line per call, except for dry runs which write none. The backup is
    kept whenever the update did not succeed.

    Args:
        skill_name: Installed skill to replace
        package_path: ``.skill`` package to install
        options: Scope, force, dry-run, backup, and limit settings
        audit_logger: Audit sink (default: the user's audit log)

    Returns:
        UpdateSuccess, UpdateDryRunPreview, UpdateRolledBack,
        UpdateRollbackFailed, or UpdateFailure
    """
    options = options or UpdateOptions()
    audit_logger = audit_logger or AuditLogger()
    package_path = Path(os.path.abspath(Path(package_path).expanduser()))

    scope_check = validate_uninstall_scope(options.scope)
    run = _UpdateRun(
        skill_name, scope_check.scope or str(options.scope), package_path, options, audit_logger
    )

    if not scope_check.valid:
        message = scope_check.error or "Invalid scope"
        return run.fail(InvalidInputError(field="scope", message=message))

    name_check = validate_skill_name(skill_name)
    if not name_check.valid:
        message = name_check.error or "Invalid skill name"
        return run.fail(InvalidInputError(field="name", message=message))

    if not await asyncio.to_thread(os.path.isfile, package_path):
        return run.fail(
            PackageError(package_path=package_path, message="Package file not found")
        )

    scope: Scope = "personal" if scope_check.scope == "personal" else "project"
    scope_info = resolve_scope(scope, cwd=options.cwd, home=options.home)

    discovery = await discover_skill(skill_name, scope_info)
    if isinstance(discovery, SkillMissing):
        return run.fail(
            SkillNotFoundError(skill_name=skill_name, searched_path=discovery.searched_path)
        )
    if isinstance(discovery, SkillCaseMismatch):
        return run.fail(
            SecurityError(
                reason="case-mismatch",
                details=(
                    f'Expected "{discovery.expected_name}" but found "{discovery.actual_name}". '
                    "This may indicate a security issue on case-insensitive filesystems."
                ),
            )
        )

    skill_path = discovery.path

    try:
        package = await asyncio.to_thread(
            inspect_package,
            package_path,
            skill_name,
            options.max_files,
            options.max_size_bytes,
            options.force,
        )
    except PackageInvalid as e:
        if e.security_reason:
            return run.fail(SecurityError(reason=e.security_reason, details=str(e)))
        return run.fail(PackageError(package_path=package_path, message=str(e)))

    warnings: list[str] = []

    symlink_safety = await check_symlink_safety(skill_path, scope_info.path)
    if isinstance(symlink_safety, SymlinkEscape):
        return run.fail(
            SecurityError(
                reason="symlink-escape",
                details=(
                    "Skill directory is a symlink pointing outside scope: "
                    f"{symlink_safety.target_path}"
                ),
            )
        )
    if isinstance(symlink_safety, SymlinkCheckError):
        return run.fail(
            FileSystemError(operation="stat", path=skill_path, message=symlink_safety.message)
        )
    if symlink_safety.is_symlink:
        return run.fail(
            SecurityError(
                reason="symlink-escape",
                details=f"Refusing to update a symlinked skill directory: {skill_path}",
            )
        )

    hard_links = await detect_hard_link_warnings(skill_path)
    if hard_links is not None:
        if not options.force:
            return run.fail(SecurityError(reason="hard-link-detected", details=hard_links.message))
        warnings.append(hard_links.message)

    installed = await collect_skill_files(skill_path)
    comparison = await asyncio.to_thread(compare_versions, installed, package)

    if options.dry_run:
        return UpdateDryRunPreview(
            skill_name=skill_name,
            path=skill_path,
            package_path=package_path,
            comparison=comparison,
            warnings=warnings,
        )

    lock = await asyncio.to_thread(
        acquire_update_lock, skill_path, package_path, options.lock_stale_seconds
    )
    if isinstance(lock, LockFailed):
        message = " ".join([lock.message, *lock.details])
        return run.fail(FileSystemError(operation="lock", path=lock.lock_path, message=message))

    try:
        return await _replace_skill(
            run, skill_path, scope_info.path, package, installed, warnings
        )
    finally:
        await asyncio.to_thread(release_update_lock, lock.lock_path)


async def _replace_skill(
    run: _UpdateRun,
    skill_path: Path,
    scope_path: Path,
    package: PackageContents,
    installed: list[FileInfo],
    warnings: list[str],
) -> UpdateOutcome:
    options = run.options
    previous_files = sum(1 for f in installed if not f.is_directory)
    previous_size = sum(f.size for f in installed if not f.is_directory)

    backup_path: Path | None = None
    if not options.no_backup:
        backup = await create_backup(skill_path, run.skill_name, options.backup_base_dir)
        if isinstance(backup, BackupFailed):
            return run.fail(BackupError(path=skill_path, message=backup.error))
        backup_path = backup.path

    deadline = time.monotonic() + options.timeout_seconds
    failure = await _swap_in_package(run, skill_path, scope_path, deadline)

    if failure is not None:
        return await _roll_back(run, skill_path, scope_path, backup_path, failure)

    summary = await get_skill_summary(skill_path)
    backup_removed = False
    if backup_path is not None and not options.keep_backup:
        try:
            await asyncio.to_thread(cleanup_backup, backup_path, options.backup_base_dir)
            backup_removed = True
        except (OSError, BackupManagerError) as e:
            warnings.append(f"Could not remove backup {backup_path}: {e}")

    run.audit(
        update_success_entry(
            run.skill_name,
            run.scope,
            str(run.package_path),
            str(backup_path) if backup_path else None,
            previous_files,
            summary.file_count,
        )
    )
    logger.info(f"Updated {run.skill_name} from {run.package_path}")

    return UpdateSuccess(
        skill_name=run.skill_name,
        path=skill_path,
        previous_file_count=previous_files,
        current_file_count=summary.file_count,
        previous_size=previous_size,
        current_size=summary.total_size,
        backup_path=backup_path,
        backup_removed=backup_removed,
        warnings=warnings,
    )


async def _swap_in_package(
    run: _UpdateRun, skill_path: Path, scope_path: Path, deadline: float
) -> str | None:
    """Remove the installed tree and extract the package. Returns a failure reason or None."""
    options = run.options

    deletion = await execute_skill_deletion(skill_path, options.locked_retry_delay)
    if deletion.errors or not deletion.skill_directory_deleted:
        detail = "; ".join(deletion.error_messages) or "skill directory was not removed"
        return f"Failed to remove installed version: {detail}"

    if time.monotonic() > deadline:
        return f"update timed out after {options.timeout_seconds:g}s"

    try:
        written = await asyncio.to_thread(_install_package, run.package_path, scope_path)
    except (OSError, zipfile.BadZipFile, ArchiveEntryError) as e:
        return f"Failed to extract package: {e}"

    logger.debug(f"Extracted {written} files into {skill_path}")
    return None


def _recovery_instructions(
    skill_path: Path, scope_path: Path, backup_path: Path | None
) -> list[str]:
    steps = [f"Remove any partially installed files: {skill_path}"]
    if backup_path is not None:
        steps.append(f"The previous version is preserved at: {backup_path}")
        steps.append(f'Restore it manually: unzip -o "{backup_path}" -d "{scope_path}"')
    else:
        steps.append("No backup was created (--no-backup). Reinstall the skill from its source.")
    return steps


async def _roll_back(
    run: _UpdateRun,
    skill_path: Path,
    scope_path: Path,
    backup_path: Path | None,
    failure_reason: str,
) -> UpdateOutcome:
    logger.warning(f"Update of {run.skill_name} failed, rolling back: {failure_reason}")
    rollback_error: str | None = None

    if await asyncio.to_thread(os.path.lexists, skill_path):
        cleanup = await execute_skill_deletion(skill_path, run.options.locked_retry_delay)
        if cleanup.errors:
            rollback_error = "Failed to remove partial install: " + "; ".join(
                cleanup.error_messages
            )

    if rollback_error is None:
        if backup_path is None:
            rollback_error = "No backup available to restore"
        else:
            restored = await restore_from_backup(
                backup_path, scope_path, run.options.backup_base_dir
            )
            if not restored.success:
                rollback_error = f"Failed to restore backup: {restored.error}"

    if rollback_error is not None or backup_path is None:
        rollback_error = rollback_error or "No backup available to restore"
        run.audit(
            update_rollback_failed_entry(
                run.skill_name,
                run.scope,
                str(run.package_path),
                str(backup_path) if backup_path else None,
                f"{failure_reason}; {rollback_error}",
            )
        )
        return UpdateRollbackFailed(
            skill_name=run.skill_name,
            path=skill_path,
            backup_path=backup_path,
            failure_reason=failure_reason,
            rollback_error=rollback_error,
            recovery_instructions=_recovery_instructions(skill_path, scope_path, backup_path),
        )

    run.audit(
        update_rolled_back_entry(
            run.skill_name, run.scope, str(run.package_path), str(backup_path), failure_reason
        )
    )
    return UpdateRolledBack(
        skill_name=run.skill_name,
        path=skill_path,
        backup_path=backup_path,
        failure_reason=failure_reason,
    )
