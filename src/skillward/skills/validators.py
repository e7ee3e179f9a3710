"""
Input validation for skill names and scopes.

Skill names come straight from the command line and end up joined onto a
scope root, so anything that could steer that join elsewhere is rejected
before the filesystem is touched.
"""

import re
from dataclasses import dataclass

MAX_NAME_LENGTH = 64
NAME_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
VALID_SCOPES = ("project", "personal")
DEFAULT_SCOPE = "project"


@dataclass(frozen=True)
class NameValidation:
    valid: bool
    error: str | None = None


@dataclass(frozen=True)
class ScopeValidation:
    valid: bool
    scope: str | None = None
    error: str | None = None


def _has_control_characters(name: str) -> bool:
    return any(ord(ch) <= 0x1F or ord(ch) == 0x7F for ch in name)


def _is_path_traversal(name: str) -> bool:
    return name in (".", "..") or "../" in name or "..\\" in name


def _is_absolute_path(name: str) -> bool:
    return name.startswith("/") or re.match(r"^[a-zA-Z]:", name) is not None


def validate_skill_name(name: str | None) -> NameValidation:
    """
    Validate a skill name supplied for uninstall or update.

    Security checks run before format checks so that the most relevant
    message is reported for hostile input.

    Args:
        name: Raw skill name

    Returns:
        NameValidation with an error message when invalid
    """
    if not name or not name.strip():
        return NameValidation(False, "Skill name cannot be empty")

    if _has_control_characters(name):
        return NameValidation(False, "Skill name contains invalid control characters")

    if not name.isascii():
        return NameValidation(False, "Skill name must contain only ASCII characters")

    if "/" in name or "\\" in name:
        return NameValidation(False, "Skill name cannot contain path separators (/ or \\)")

    if _is_path_traversal(name):
        return NameValidation(
            False, 'Skill name cannot be "." or ".." (path traversal not allowed)'
        )

    if _is_absolute_path(name):
        return NameValidation(False, "Skill name cannot be an absolute path")

    if len(name) > MAX_NAME_LENGTH:
        return NameValidation(
            False, f"Skill name must be {MAX_NAME_LENGTH} characters or less (got {len(name)})"
        )

    if not NAME_PATTERN.match(name):
        if any(ch.isupper() for ch in name):
            return NameValidation(False, "Skill name must be lowercase")
        if name.startswith("-"):
            return NameValidation(False, "Skill name cannot start with a hyphen")
        if name.endswith("-"):
            return NameValidation(False, "Skill name cannot end with a hyphen")
        if "--" in name:
            return NameValidation(False, "Skill name cannot contain consecutive hyphens")
        return NameValidation(
            False,
            "Skill name must contain only lowercase letters, numbers, and hyphens. "
            f'Example: "my-skill-name" (got "{name}")',
        )

    return NameValidation(True)


def validate_uninstall_scope(scope: str | None) -> ScopeValidation:
    """
    Validate a scope token. Missing or empty defaults to ``project``.

    Matching is case-sensitive; custom paths are never accepted.
    """
    if scope is None or scope == "":
        return ScopeValidation(True, DEFAULT_SCOPE)

    if scope in VALID_SCOPES:
        return ScopeValidation(True, scope)

    return ScopeValidation(
        False,
        error=f"Invalid scope \"{scope}\". Only 'project' or 'personal' are supported.",
    )
