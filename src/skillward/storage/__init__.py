"""Storage utilities for Skillward."""

from skillward.storage.enumerator import (
    MAX_FILES,
    MAX_SIZE_BYTES,
    FileInfo,
    ResourceLimitCheck,
    SkillSummary,
    check_resource_limits,
    collect_skill_files,
    enumerate_skill_files,
    format_file_size,
    get_skill_summary,
)
from skillward.storage.paths import (
    SKILLS_SUBPATH,
    ensure_directory,
    find_project_config,
    get_audit_log_path,
    get_backups_dir,
    get_global_config_path,
    get_personal_skills_dir,
    get_project_skills_dir,
    get_skillward_home,
)

__all__ = [
    "MAX_FILES",
    "MAX_SIZE_BYTES",
    "SKILLS_SUBPATH",
    "FileInfo",
    "ResourceLimitCheck",
    "SkillSummary",
    "check_resource_limits",
    "collect_skill_files",
    "ensure_directory",
    "enumerate_skill_files",
    "find_project_config",
    "format_file_size",
    "get_audit_log_path",
    "get_backups_dir",
    "get_global_config_path",
    "get_personal_skills_dir",
    "get_project_skills_dir",
    "get_skill_summary",
    "get_skillward_home",
]
