"""
Audit logging for Skillward.

This package records the outcome of every uninstall and update in an
append-only, owner-only log file.
"""

from skillward.audit.logger import (
    AuditLogEntry,
    AuditLogger,
    AuditOperation,
    AuditStatus,
    UpdateAuditLogEntry,
    UpdateAuditStatus,
    failure_entry,
    format_uninstall_entry,
    format_update_entry,
    partial_entry,
    success_entry,
    update_failed_entry,
    update_rollback_failed_entry,
    update_rolled_back_entry,
    update_success_entry,
)

__all__ = [
    "AuditLogEntry",
    "AuditLogger",
    "AuditOperation",
    "AuditStatus",
    "UpdateAuditLogEntry",
    "UpdateAuditStatus",
    "failure_entry",
    "format_uninstall_entry",
    "format_update_entry",
    "partial_entry",
    "success_entry",
    "update_failed_entry",
    "update_rollback_failed_entry",
    "update_rolled_back_entry",
    "update_success_entry",
]
