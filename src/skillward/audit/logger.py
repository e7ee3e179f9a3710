"""
Audit logging for Skillward operations.

Every terminal outcome of an uninstall or update is appended as a single
line to ``<base_dir>/audit.log``::

    [2026-01-01T12:34:56.789Z] UNINSTALL my-skill project SUCCESS removed=4 size=7800 path=/p
    [2026-01-01T12:35:00.000Z] UPDATE my-skill personal ROLLED_BACK {"packagePath":"/pkg.skill"}

Uninstall lines carry ``key=value`` pairs while update lines carry a single
JSON object, so each operation has its own formatter. Writing is best-effort:
failures are reported on the diagnostic logger and never raised to callers.
"""

import json
import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from skillward.storage.paths import ensure_directory, get_audit_log_path, get_skillward_home

logger = logging.getLogger(__name__)

DATA_DIR_PERMISSIONS = 0o700
AUDIT_LOG_PERMISSIONS = 0o600
MAX_ERROR_DETAILS_LENGTH = 200


class AuditOperation(str, Enum):
    """Operations recorded in the audit log."""

    UNINSTALL = "UNINSTALL"
    UPDATE = "UPDATE"


class AuditStatus(str, Enum):
    """Terminal statuses of an uninstall."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"
    CANCELLED = "CANCELLED"
    SECURITY_BLOCKED = "SECURITY_BLOCKED"
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"


class UpdateAuditStatus(str, Enum):
    """Terminal statuses of an update."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"


class AuditLogEntry(BaseModel):
    """A single uninstall audit record."""

    operation: AuditOperation = AuditOperation.UNINSTALL
    skill_name: str
    scope: str
    status: AuditStatus
    files_removed: int | None = None
    bytes_freed: int | None = None
    error_details: str | None = None
    skill_path: str | None = None


class UpdateAuditLogEntry(BaseModel):
    """A single update audit record."""

    skill_name: str
    scope: str
    status: UpdateAuditStatus
    package_path: str
    backup_path: str | None = None
    previous_files: int | None = None
    current_files: int | None = None
    error: str | None = None
    no_backup: bool = False


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _is_separator(ch: str) -> bool:
    return ch.isspace() or ord(ch) < 32 or ord(ch) == 127


def _sanitize_field(value: str) -> str:
    """Collapse a value into one space-free token so it cannot split or add lines."""
    return "".join("_" if _is_separator(ch) else ch for ch in value) or "-"


def format_uninstall_entry(entry: AuditLogEntry) -> str:
    """
    Format an uninstall entry as a single ``key=value`` log line.

    Skill name and scope have whitespace and control characters replaced by
    ``_``. Spaces in the path are escaped as ``\\ `` and its other separators
    replaced; error details are sanitized like the name and truncated to 200
    characters.

    Args:
        entry: The audit entry to format

    Returns:
        The formatted line, without a trailing newline
    """
    parts = [
        f"[{_timestamp()}]",
        entry.operation.value,
        _sanitize_field(entry.skill_name),
        _sanitize_field(entry.scope),
        entry.status.value,
    ]

    if entry.files_removed is not None:
        parts.append(f"removed={entry.files_removed}")

    if entry.bytes_freed is not None:
        parts.append(f"size={entry.bytes_freed}")

    if entry.skill_path:
        escaped_path = "".join(
            "\\ " if ch == " " else "_" if _is_separator(ch) else ch for ch in entry.skill_path
        )
        parts.append(f"path={escaped_path}")

    if entry.error_details:
        escaped_details = _sanitize_field(entry.error_details)
        parts.append(f"error={escaped_details[:MAX_ERROR_DETAILS_LENGTH]}")

    return " ".join(parts)


def format_update_entry(entry: UpdateAuditLogEntry) -> str:
    """
    Format an update entry as a log line ending in a JSON details object.

    Args:
        entry: The update audit entry to format

    Returns:
        The formatted line, without a trailing newline
    """
    details: dict[str, Any] = {"packagePath": entry.package_path}

    if entry.backup_path:
        details["backupPath"] = entry.backup_path
    if entry.previous_files is not None:
        details["previousFiles"] = entry.previous_files
    if entry.current_files is not None:
        details["currentFiles"] = entry.current_files
    if entry.error:
        details["error"] = entry.error
    if entry.no_backup:
        details["noBackup"] = True

    parts = [
        f"[{_timestamp()}]",
        AuditOperation.UPDATE.value,
        _sanitize_field(entry.skill_name),
        _sanitize_field(entry.scope),
        entry.status.value,
        json.dumps(details, separators=(",", ":")),
    ]
    return " ".join(parts)


class AuditLogger:
    """
    Append-only audit log writer.

    The base directory is passed in explicitly; tests point it at a
    temporary directory instead of patching any global state.
    """

    def __init__(self, base_dir: str | Path | None = None, enable: bool = True) -> None:
        """
        Initialize audit logger.

        Args:
            base_dir: Directory holding audit.log (default: Skillward home)
            enable: Whether logging is enabled
        """
        self.base_dir = Path(base_dir).expanduser() if base_dir else get_skillward_home()
        self.log_path = get_audit_log_path(self.base_dir)
        self.enable = enable

    @classmethod
    def from_config(cls, config: Any) -> "AuditLogger":
        """
        Create audit logger from configuration.

        Args:
            config: AuditLogConfig instance

        Returns:
            Configured AuditLogger
        """
        return cls(base_dir=config.base_dir, enable=config.enable)

    def _append_line(self, line: str) -> None:
        if not self.enable:
            return

        try:
            ensure_directory(self.base_dir, mode=DATA_DIR_PERMISSIONS)
            fd = os.open(
                self.log_path,
                os.O_WRONLY | os.O_APPEND | os.O_CREAT,
                AUDIT_LOG_PERMISSIONS,
            )
            with os.fdopen(fd, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.warning(f"Failed to write audit log {self.log_path}: {e}")

    def log_uninstall(self, entry: AuditLogEntry) -> None:
        """Record an uninstall outcome. Never raises."""
        self._append_line(format_uninstall_entry(entry))

    def log_update(self, entry: UpdateAuditLogEntry) -> None:
        """Record an update outcome. Never raises."""
        self._append_line(format_update_entry(entry))

    def read_entries(self, limit: int | None = None) -> list[str]:
        """
        Read raw audit lines, oldest first.

        Args:
            limit: Only return the last ``limit`` lines

        Returns:
            List of log lines (empty if the log does not exist or is unreadable)
        """
        try:
            content = self.log_path.read_text(encoding="utf-8")
        except OSError:
            return []

        lines = [line for line in content.splitlines() if line.strip()]
        if limit and len(lines) > limit:
            return lines[-limit:]
        return lines


# Convenience constructors for common entries


def success_entry(
    skill_name: str, scope: str, files_removed: int, bytes_freed: int, skill_path: str
) -> AuditLogEntry:
    """Create an entry for a completed uninstall."""
    return AuditLogEntry(
        skill_name=skill_name,
        scope=scope,
        status=AuditStatus.SUCCESS,
        files_removed=files_removed,
        bytes_freed=bytes_freed,
        skill_path=skill_path,
    )


def failure_entry(
    skill_name: str,
    scope: str,
    status: AuditStatus,
    error_details: str,
    skill_path: str | None = None,
) -> AuditLogEntry:
    """Create an entry for an uninstall that removed nothing."""
    return AuditLogEntry(
        skill_name=skill_name,
        scope=scope,
        status=status,
        error_details=error_details,
        skill_path=skill_path,
    )


def partial_entry(
    skill_name: str,
    scope: str,
    files_removed: int,
    files_remaining: int,
    error_details: str,
    skill_path: str,
) -> AuditLogEntry:
    """Create an entry for an uninstall that left files behind."""
    return AuditLogEntry(
        skill_name=skill_name,
        scope=scope,
        status=AuditStatus.PARTIAL,
        files_removed=files_removed,
        error_details=f"{files_remaining} files remaining: {error_details}",
        skill_path=skill_path,
    )


def update_success_entry(
    skill_name: str,
    scope: str,
    package_path: str,
    backup_path: str | None,
    previous_files: int,
    current_files: int,
) -> UpdateAuditLogEntry:
    return UpdateAuditLogEntry(
        skill_name=skill_name,
        scope=scope,
        status=UpdateAuditStatus.SUCCESS,
        package_path=package_path,
        backup_path=backup_path,
        previous_files=previous_files,
        current_files=current_files,
        no_backup=backup_path is None,
    )


def update_failed_entry(
    skill_name: str, scope: str, package_path: str, error: str
) -> UpdateAuditLogEntry:
    return UpdateAuditLogEntry(
        skill_name=skill_name,
        scope=scope,
        status=UpdateAuditStatus.FAILED,
        package_path=package_path,
        error=error,
    )


def update_rolled_back_entry(
    skill_name: str, scope: str, package_path: str, backup_path: str, error: str
) -> UpdateAuditLogEntry:
    return UpdateAuditLogEntry(
        skill_name=skill_name,
        scope=scope,
        status=UpdateAuditStatus.ROLLED_BACK,
        package_path=package_path,
        backup_path=backup_path,
        error=error,
    )


def update_rollback_failed_entry(
    skill_name: str,
    scope: str,
    package_path: str,
    backup_path: str | None,
    error: str,
) -> UpdateAuditLogEntry:
    return UpdateAuditLogEntry(
        skill_name=skill_name,
        scope=scope,
        status=UpdateAuditStatus.ROLLBACK_FAILED,
        package_path=package_path,
        backup_path=backup_path,
        error=error,
    )
