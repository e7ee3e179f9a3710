"""
Security primitives for Skillward.

This package provides path containment verification, symlink and hard-link
checks, and the verified deletion engine used by uninstall and update.
"""

from skillward.security.checker import (
    HardLinkInfo,
    HardLinkWarning,
    SymlinkCheckError,
    SymlinkCheckResult,
    SymlinkEscape,
    SymlinkInfo,
    SymlinkSafe,
    SymlinkSummary,
    check_directory_symlinks,
    check_hard_links,
    check_symlink_safety,
    detect_hard_link_warnings,
    get_symlink_summary,
)
from skillward.security.path_verifier import (
    ContainmentResult,
    ContainmentValid,
    ContainmentViolation,
    VerifiedPath,
    VerifyError,
    VerifyFailed,
    VerifyOk,
    VerifyResult,
    create_verified_path,
    is_dangerous_path,
    is_path_within,
    is_valid_scope_path,
    verify_before_deletion,
    verify_containment,
)
from skillward.security.safe_delete import (
    DeleteError,
    DeleteProgress,
    DeleteSkipped,
    DeleteSuccess,
    DeleteSummary,
    SafeDeleteResult,
    execute_skill_deletion,
    safe_recursive_delete,
    safe_unlink,
)

__all__ = [
    "ContainmentResult",
    "ContainmentValid",
    "ContainmentViolation",
    "DeleteError",
    "DeleteProgress",
    "DeleteSkipped",
    "DeleteSuccess",
    "DeleteSummary",
    "HardLinkInfo",
    "HardLinkWarning",
    "SafeDeleteResult",
    "SymlinkCheckError",
    "SymlinkCheckResult",
    "SymlinkEscape",
    "SymlinkInfo",
    "SymlinkSafe",
    "SymlinkSummary",
    "VerifiedPath",
    "VerifyError",
    "VerifyFailed",
    "VerifyOk",
    "VerifyResult",
    "check_directory_symlinks",
    "check_hard_links",
    "check_symlink_safety",
    "create_verified_path",
    "detect_hard_link_warnings",
    "execute_skill_deletion",
    "get_symlink_summary",
    "is_dangerous_path",
    "is_path_within",
    "is_valid_scope_path",
    "safe_recursive_delete",
    "safe_unlink",
    "verify_before_deletion",
    "verify_containment",
]
