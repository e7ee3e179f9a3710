"""
Skillward skill lifecycle.

Installed skills live in one of two scopes:
- project: <cwd>/.claude/skills/<name>
- personal: ~/.claude/skills/<name>

Usage:
    from skillward.skills import UninstallOptions, uninstall_skill, update_skill

    # Preview what would be removed
    preview = await uninstall_skill("docs-helper", UninstallOptions(dry_run=True))

    # Remove it for real
    result = await uninstall_skill("docs-helper")

    # Replace it with a newer package
    outcome = await update_skill("docs-helper", "docs-helper-2.0.skill")
"""

# Models
from skillward.skills.models import (
    DryRunPreview,
    FileSystemError,
    InvalidInputError,
    MultiUninstallResult,
    OperationTimeoutError,
    PackageError,
    PartialRemovalError,
    Scope,
    ScopeInfo,
    SecurityError,
    SkillCaseMismatch,
    SkillFound,
    SkillFrontmatter,
    SkillInfo,
    SkillMissing,
    SkillNotFoundError,
    UninstallExitCode,
    UninstallFailure,
    UninstallOptions,
    UninstallResult,
    UpdateComparison,
    UpdateDryRunPreview,
    UpdateExitCode,
    UpdateFailure,
    UpdateOptions,
    UpdateRollbackFailed,
    UpdateRolledBack,
    UpdateSuccess,
    describe_error,
    exit_code_for,
    update_exit_code_for,
)

# Validation and discovery
from skillward.skills.validators import validate_skill_name, validate_uninstall_scope
from skillward.skills.discovery import discover_skill, get_scope_path, resolve_scope

# Parser
from skillward.skills.parser import (
    SkillParseError,
    SkillValidationError,
    parse_skill_md,
    parse_yaml_frontmatter,
    validate_skill_directory,
)

# Pre-removal checks
from skillward.skills.pre_removal import detect_unexpected_files, validate_before_removal

# Uninstall
from skillward.skills.uninstaller import (
    execute_removal,
    generate_dry_run_preview,
    is_dry_run_preview,
    stream_removal_progress,
    uninstall_multiple_skills,
    uninstall_skill,
)

# Backups and update
from skillward.skills.backup import (
    BackupManagerError,
    cleanup_backup,
    create_backup,
    list_backups,
    restore_from_backup,
)
from skillward.skills.updater import (
    acquire_update_lock,
    compare_versions,
    inspect_package,
    release_update_lock,
    update_skill,
)

__all__ = [
    # Models
    "DryRunPreview",
    "FileSystemError",
    "InvalidInputError",
    "MultiUninstallResult",
    "OperationTimeoutError",
    "PackageError",
    "PartialRemovalError",
    "Scope",
    "ScopeInfo",
    "SecurityError",
    "SkillCaseMismatch",
    "SkillFound",
    "SkillFrontmatter",
    "SkillInfo",
    "SkillMissing",
    "SkillNotFoundError",
    "UninstallExitCode",
    "UninstallFailure",
    "UninstallOptions",
    "UninstallResult",
    "UpdateComparison",
    "UpdateDryRunPreview",
    "UpdateExitCode",
    "UpdateFailure",
    "UpdateOptions",
    "UpdateRollbackFailed",
    "UpdateRolledBack",
    "UpdateSuccess",
    "describe_error",
    "exit_code_for",
    "update_exit_code_for",
    # Validation and discovery
    "discover_skill",
    "get_scope_path",
    "resolve_scope",
    "validate_skill_name",
    "validate_uninstall_scope",
    # Parser
    "SkillParseError",
    "SkillValidationError",
    "parse_skill_md",
    "parse_yaml_frontmatter",
    "validate_skill_directory",
    # Pre-removal
    "detect_unexpected_files",
    "validate_before_removal",
    # Uninstall
    "execute_removal",
    "generate_dry_run_preview",
    "is_dry_run_preview",
    "stream_removal_progress",
    "uninstall_multiple_skills",
    "uninstall_skill",
    # Backups and update
    "BackupManagerError",
    "acquire_update_lock",
    "cleanup_backup",
    "compare_versions",
    "create_backup",
    "inspect_package",
    "list_backups",
    "release_update_lock",
    "restore_from_backup",
    "update_skill",
]
