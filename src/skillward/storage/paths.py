"""
Path utilities for Skillward.

Provides consistent path resolution for the data directory, the audit log,
backups, and the two sanctioned skill scopes.
"""

import os
from pathlib import Path

# Directory (relative to cwd or home) that holds installed skills
SKILLS_SUBPATH = Path(".claude") / "skills"


def get_skillward_home() -> Path:
    """
    Get the Skillward home directory.

    Resolution order:
    1. SKILLWARD_HOME environment variable
    2. Default: ~/.skillward

    Returns:
        Path to the Skillward home directory.
    """
    env_home = os.environ.get("SKILLWARD_HOME")
    if env_home:
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".skillward"


def get_global_config_path() -> Path:
    """
    Get the path to the global configuration file.

    Returns:
        Path to ~/.skillward/config.yaml
    """
    return get_skillward_home() / "config.yaml"


def get_audit_log_path(base_dir: Path | None = None) -> Path:
    """
    Get the audit log path.

    Args:
        base_dir: Directory holding the log. Defaults to the Skillward home.

    Returns:
        Path to ~/.skillward/audit.log
    """
    return (base_dir or get_skillward_home()) / "audit.log"


def get_backups_dir(base_dir: Path | None = None) -> Path:
    """
    Get the directory used for update backups.

    Returns:
        Path to ~/.skillward/backups/
    """
    return (base_dir or get_skillward_home()) / "backups"


def get_project_skills_dir(cwd: Path | None = None) -> Path:
    """
    Get the project-scope skills directory.

    Args:
        cwd: Working directory override. Defaults to the process cwd.

    Returns:
        Path to <cwd>/.claude/skills
    """
    base = Path(cwd) if cwd is not None else Path.cwd()
    return Path(os.path.abspath(base / SKILLS_SUBPATH))


def get_personal_skills_dir(home: Path | None = None) -> Path:
    """
    Get the personal-scope skills directory.

    Args:
        home: Home directory override. Defaults to the user's home.

    Returns:
        Path to ~/.claude/skills
    """
    base = Path(home) if home is not None else Path.home()
    return Path(os.path.abspath(base / SKILLS_SUBPATH))


def find_project_config(start_path: Path | None = None) -> Path | None:
    """
    Find the project configuration file by traversing up the directory tree.

    Looks for .skillward.yaml starting from the given path
    (or current directory) and moving up to the root.

    Args:
        start_path: Starting directory to search from. Defaults to cwd.

    Returns:
        Path to the project config if found, None otherwise.
    """
    if start_path is None:
        start_path = Path.cwd()
    else:
        start_path = Path(start_path).resolve()

    current = start_path
    while current != current.parent:
        project_config = current / ".skillward.yaml"
        if project_config.exists():
            return project_config
        current = current.parent

    # Check root as well
    project_config = current / ".skillward.yaml"
    if project_config.exists():
        return project_config

    return None


def ensure_directory(path: Path, mode: int = 0o755) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    The mode is re-applied when the directory already exists, since
    ``mkdir`` ignores it in that case and is subject to the umask otherwise.

    Args:
        path: Directory path.
        mode: Permission mode for the directory.

    Returns:
        The path (for chaining).
    """
    path.mkdir(parents=True, exist_ok=True, mode=mode)
    os.chmod(path, mode)
    return path
