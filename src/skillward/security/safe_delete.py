"""
TOCTOU-safe deletion of skill directories.

The tree is enumerated exactly once. Each entry is then re-verified
immediately before its own delete call, so the window between check and use
is a single item wide. Files and symlinks go first, then real directories
deepest-first, then the skill root. Only non-recursive primitives are used
(``unlink`` and ``rmdir``), so nothing outside the verified entry can ever be
removed, and a directory symlink is unlinked as a leaf rather than followed.
"""

import asyncio
import errno
import logging
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from skillward.security.path_verifier import (
    ContainmentViolation,
    PathType,
    VerifyError,
    VerifyFailed,
    verify_before_deletion,
    verify_containment,
)
from skillward.storage.enumerator import FileInfo, enumerate_skill_files

logger = logging.getLogger(__name__)

LOCKED_FILE_RETRY_DELAY = 0.1
MAX_ERROR_MESSAGES = 10
ROOT_RELATIVE_PATH = "."

SkipReason = Literal["verification-failed", "not-exists", "containment-violation", "not-empty"]

_LOCKED_ERRNOS = {errno.EBUSY, errno.ETXTBSY}
_NOT_EMPTY_ERRNOS = {errno.ENOTEMPTY, errno.EEXIST}


@dataclass(frozen=True)
class DeleteSuccess:
    path: Path
    path_type: PathType
    size: int


@dataclass(frozen=True)
class DeleteSkipped:
    path: Path
    reason: SkipReason
    message: str


@dataclass(frozen=True)
class DeleteError:
    path: Path
    message: str


SafeDeleteResult = DeleteSuccess | DeleteSkipped | DeleteError


@dataclass(frozen=True)
class DeleteProgress:
    """One step of a recursive deletion."""

    current_path: Path
    relative_path: str
    result: SafeDeleteResult
    processed_count: int
    total_count: int


@dataclass
class DeleteSummary:
    """Aggregated outcome of a recursive deletion."""

    files_deleted: int = 0
    directories_deleted: int = 0
    symlinks_deleted: int = 0
    bytes_freed: int = 0
    skipped: int = 0
    errors: int = 0
    error_messages: list[str] = field(default_factory=list)
    skill_directory_deleted: bool = False


def _remove(path: Path, path_type: PathType) -> None:
    if path_type == "directory":
        os.rmdir(path)
    else:
        os.unlink(path)


async def safe_unlink(
    base_path: str | Path,
    file_path: str | Path,
    retry_delay: float = LOCKED_FILE_RETRY_DELAY,
) -> SafeDeleteResult:
    """
    Verify a single path and delete it if it is still safe to do so.

    Directories are removed only when empty. A file locked by another
    process is retried once after ``retry_delay`` seconds and then skipped,
    so one locked file never aborts a whole uninstall.

    Args:
        base_path: Directory the path must be contained in
        file_path: Path to delete
        retry_delay: Seconds to wait before retrying a locked file

    Returns:
        DeleteSuccess, DeleteSkipped, or DeleteError
    """
    path = Path(file_path)
    verification = await verify_before_deletion(base_path, path)

    if isinstance(verification, VerifyError):
        return DeleteError(path=path, message=verification.message)

    if isinstance(verification, VerifyFailed):
        return DeleteSkipped(path=path, reason=verification.reason, message=verification.message)

    size = verification.size if verification.path_type == "file" else 0

    for attempt in range(2):
        try:
            await asyncio.to_thread(_remove, path, verification.path_type)
            return DeleteSuccess(path=path, path_type=verification.path_type, size=size)
        except FileNotFoundError:
            return DeleteSkipped(
                path=path,
                reason="not-exists",
                message="File no longer exists (may have been deleted by another process)",
            )
        except OSError as e:
            if verification.path_type == "directory" and e.errno in _NOT_EMPTY_ERRNOS:
                return DeleteSkipped(
                    path=path,
                    reason="not-empty",
                    message="Directory is not empty (will be retried after contents are deleted)",
                )
            if e.errno not in _LOCKED_ERRNOS:
                return DeleteError(path=path, message=f"Failed to delete: {e}")
            if attempt == 0:
                logger.debug(f"{path} is locked, retrying in {retry_delay}s")
                await asyncio.sleep(retry_delay)

    return DeleteSkipped(
        path=path,
        reason="verification-failed",
        message="File is locked by another process. Skipping after retry.",
    )


async def safe_recursive_delete(
    skill_path: str | Path,
    retry_delay: float = LOCKED_FILE_RETRY_DELAY,
) -> AsyncIterator[DeleteProgress]:
    """
    Delete a skill directory bottom-up, one verified item at a time.

    The sequence is lazy and single-pass; the tree is never re-enumerated
    while deleting.

    Args:
        skill_path: Skill directory to remove
        retry_delay: Seconds to wait before retrying a locked file

    Yields:
        DeleteProgress for every entry, ending with the skill root (".")
    """
    root = Path(os.path.abspath(skill_path))
    leaves: list[FileInfo] = []
    directories: list[FileInfo] = []

    # A symlinked root is unlinked on its own; its target is never walked
    if not await asyncio.to_thread(os.path.islink, root):
        async for info in enumerate_skill_files(root):
            if info.is_directory and not info.is_symlink:
                directories.append(info)
            else:
                leaves.append(info)

    directories.sort(key=lambda d: d.depth, reverse=True)

    total = len(leaves) + len(directories) + 1
    processed = 0

    for info in [*leaves, *directories]:
        result = await safe_unlink(root, info.absolute_path, retry_delay)
        processed += 1
        yield DeleteProgress(
            current_path=info.absolute_path,
            relative_path=info.relative_path,
            result=result,
            processed_count=processed,
            total_count=total,
        )

    parent = root.parent
    root_result: SafeDeleteResult
    if isinstance(verify_containment(parent, root), ContainmentViolation):
        root_result = DeleteSkipped(
            path=root,
            reason="containment-violation",
            message="Skill directory path failed containment check",
        )
    else:
        root_result = await safe_unlink(parent, root, retry_delay)
        if isinstance(root_result, DeleteSkipped) and root_result.reason == "not-empty":
            root_result = DeleteError(
                path=root,
                message="Failed to delete skill directory: directory is not empty",
            )

    processed += 1
    yield DeleteProgress(
        current_path=root,
        relative_path=ROOT_RELATIVE_PATH,
        result=root_result,
        processed_count=processed,
        total_count=total,
    )


async def execute_skill_deletion(
    skill_path: str | Path,
    retry_delay: float = LOCKED_FILE_RETRY_DELAY,
) -> DeleteSummary:
    """
    Run a full recursive deletion and aggregate the results.

    Only regular files contribute to ``bytes_freed``.

    Args:
        skill_path: Skill directory to remove
        retry_delay: Seconds to wait before retrying a locked file

    Returns:
        DeleteSummary
    """
    summary = DeleteSummary()

    async for progress in safe_recursive_delete(skill_path, retry_delay):
        result = progress.result

        if isinstance(result, DeleteSuccess):
            if result.path_type == "directory":
                summary.directories_deleted += 1
                if progress.relative_path == ROOT_RELATIVE_PATH:
                    summary.skill_directory_deleted = True
            elif result.path_type == "symlink":
                summary.symlinks_deleted += 1
                if progress.relative_path == ROOT_RELATIVE_PATH:
                    summary.skill_directory_deleted = True
            else:
                summary.files_deleted += 1
                summary.bytes_freed += result.size
        elif isinstance(result, DeleteSkipped):
            summary.skipped += 1
        else:
            summary.errors += 1
            if len(summary.error_messages) < MAX_ERROR_MESSAGES:
                summary.error_messages.append(f"{progress.relative_path}: {result.message}")

    return summary
