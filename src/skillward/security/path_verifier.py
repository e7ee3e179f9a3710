"""
Path containment verification.

Every destructive operation goes through ``verify_before_deletion`` right
before it mutates the filesystem. Results are never cached: a path that was
valid when the tree was enumerated may have been swapped or removed since.
"""

import asyncio
import errno
import os
import stat
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from skillward.storage.paths import SKILLS_SUBPATH

PathType = Literal["file", "directory", "symlink"]
VerifyFailureReason = Literal["not-exists", "containment-violation", "verification-failed"]

# Well-known system roots that a skill path must never resolve into
DANGEROUS_PREFIXES = (
    "/etc",
    "/usr",
    "/bin",
    "/sbin",
    "/var",
    "/boot",
    "/root",
    "/lib",
    "/opt",
    "/sys",
    "/proc",
    "/dev",
    "c:\\windows",
    "c:\\program files",
    "c:\\programdata",
    "c:\\users\\public",
)


@dataclass(frozen=True)
class ContainmentValid:
    """The candidate lies at or under the base."""

    normalized_path: Path


@dataclass(frozen=True)
class ContainmentViolation:
    """The candidate lies outside the base."""

    target_path: Path
    base_path: Path
    reason: str


ContainmentResult = ContainmentValid | ContainmentViolation


@dataclass(frozen=True)
class VerifyOk:
    """The path exists, is contained, and may be deleted now."""

    path_type: PathType
    size: int


@dataclass(frozen=True)
class VerifyFailed:
    """The path must not be deleted; the caller should skip it."""

    reason: VerifyFailureReason
    message: str


@dataclass(frozen=True)
class VerifyError:
    """The path could not be inspected."""

    message: str


VerifyResult = VerifyOk | VerifyFailed | VerifyError


@dataclass(frozen=True)
class VerifiedPath:
    """A path that passed verification, with the time it was checked."""

    path: Path
    skill_path: Path
    path_type: PathType
    verified_at: float = field(default_factory=time.monotonic)


def _normalize(path: str | Path) -> Path:
    # Lexical only: a symlink inside the tree must be judged by where it
    # sits, not by where it points.
    return Path(os.path.abspath(os.fspath(path)))


def verify_containment(base_path: str | Path, target_path: str | Path) -> ContainmentResult:
    """
    Check that a path equals or is nested under a base directory.

    Comparison is segment-wise, so ``/base-evil`` is not under ``/base``.

    Args:
        base_path: Directory that must contain the target
        target_path: Path to check

    Returns:
        ContainmentValid or ContainmentViolation
    """
    base = _normalize(base_path)
    target = _normalize(target_path)

    if target == base or base in target.parents:
        return ContainmentValid(normalized_path=target)

    if ".." in Path(os.fspath(target_path)).parts:
        reason = "Path contains parent directory traversal (..)"
    elif os.path.isabs(os.fspath(target_path)):
        reason = "Absolute path outside base directory"
    else:
        reason = f"Path resolves outside base directory: {target}"

    return ContainmentViolation(target_path=target, base_path=base, reason=reason)


def is_path_within(target_path: str | Path, base_path: str | Path) -> bool:
    """Lexical, segment-wise check that target equals or is nested under base."""
    return isinstance(verify_containment(base_path, target_path), ContainmentValid)


def _parent_resolves_within(base_path: str | Path, target_path: str | Path) -> bool:
    # A directory swapped for a symlink after enumeration passes the lexical
    # check but would redirect the delete elsewhere.
    real_base = Path(os.path.realpath(base_path))
    real_parent = Path(os.path.realpath(os.path.dirname(_normalize(target_path))))
    return real_parent == real_base or real_base in real_parent.parents


async def verify_before_deletion(skill_path: str | Path, file_path: str | Path) -> VerifyResult:
    """
    Re-verify a path immediately before deleting it.

    Containment is checked first, then the path is ``lstat``-ed so a final
    symlink is reported as a symlink rather than followed.

    Args:
        skill_path: Skill directory the path must stay inside
        file_path: Path about to be deleted

    Returns:
        VerifyOk, VerifyFailed, or VerifyError
    """
    containment = verify_containment(skill_path, file_path)
    if isinstance(containment, ContainmentViolation):
        return VerifyFailed(
            reason="containment-violation",
            message=f"Path escapes skill directory: {containment.reason}",
        )

    if not await asyncio.to_thread(_parent_resolves_within, skill_path, file_path):
        return VerifyFailed(
            reason="containment-violation",
            message="Path escapes skill directory: parent directory resolves outside base",
        )

    try:
        st = await asyncio.to_thread(os.lstat, file_path)
    except FileNotFoundError:
        return VerifyFailed(
            reason="not-exists",
            message="File no longer exists (may have been deleted by another process)",
        )
    except OSError as e:
        if e.errno == errno.ENOTDIR:
            return VerifyFailed(
                reason="not-exists",
                message="File no longer exists (a parent was replaced by a non-directory)",
            )
        return VerifyError(message=f"Failed to verify file: {e}")

    path_type: PathType
    if stat.S_ISLNK(st.st_mode):
        path_type = "symlink"
    elif stat.S_ISDIR(st.st_mode):
        path_type = "directory"
    else:
        path_type = "file"

    return VerifyOk(path_type=path_type, size=st.st_size)


async def create_verified_path(
    skill_path: str | Path, file_path: str | Path
) -> VerifiedPath | VerifyError:
    """Verify a path and wrap it as a VerifiedPath, folding failures into VerifyError."""
    result = await verify_before_deletion(skill_path, file_path)

    if isinstance(result, VerifyOk):
        return VerifiedPath(
            path=Path(file_path),
            skill_path=Path(skill_path),
            path_type=result.path_type,
        )
    if isinstance(result, VerifyFailed):
        return VerifyError(message=result.message)
    return result


def is_dangerous_path(target_path: str | Path) -> bool:
    """
    Check whether a path is, or lies under, a well-known system directory.

    Args:
        target_path: Path to check

    Returns:
        True if the path falls under a denylisted system root
    """
    normalized = os.path.abspath(os.fspath(target_path)).lower()

    for prefix in DANGEROUS_PREFIXES:
        separator = "\\" if "\\" in prefix else "/"
        if normalized == prefix or normalized.startswith(prefix + separator):
            return True
    return False


def is_valid_scope_path(scope_path: str | Path) -> bool:
    """Check that a scope root ends with ``.claude/skills``."""
    normalized = _normalize(scope_path)
    return normalized.parts[-len(SKILLS_SUBPATH.parts) :] == SKILLS_SUBPATH.parts
