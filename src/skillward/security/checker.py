"""
Symlink and hard-link checks for skill directories.

A skill root that is itself a symlink leading out of its scope is refused
outright. Symlinks inside the tree are only reported: deletion unlinks them
without touching their targets. Hard-linked files are reported so the
caller can require --force, because deleting one name leaves the data
reachable through the others.
"""

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path

from skillward.security.path_verifier import is_path_within
from skillward.storage.enumerator import enumerate_skill_files

logger = logging.getLogger(__name__)

MAX_REPORTED_HARD_LINKS = 10
UNREADABLE_TARGET = "<unreadable>"


@dataclass(frozen=True)
class SymlinkSafe:
    """The skill root is not a symlink, or is one that stays inside its scope."""

    is_symlink: bool
    resolved_path: Path | None = None


@dataclass(frozen=True)
class SymlinkEscape:
    """The skill root is a symlink whose target lies outside the scope."""

    target_path: Path
    scope_boundary: Path


@dataclass(frozen=True)
class SymlinkCheckError:
    message: str


SymlinkCheckResult = SymlinkSafe | SymlinkEscape | SymlinkCheckError


@dataclass(frozen=True)
class SymlinkInfo:
    """A symlink found inside a skill directory."""

    relative_path: str
    absolute_path: Path
    is_directory_symlink: bool
    target_path: str
    escapes_scope: bool
    loop_risk: bool
    warning: str


@dataclass(frozen=True)
class HardLinkInfo:
    relative_path: str
    absolute_path: Path
    link_count: int


@dataclass
class HardLinkWarning:
    """Files in the tree that have more than one directory entry."""

    count: int
    files: list[HardLinkInfo]
    message: str


@dataclass
class SymlinkSummary:
    """Informational overview of the symlinks inside a skill directory."""

    total_symlinks: int = 0
    escaping_symlinks: int = 0
    directory_symlinks: int = 0
    loop_risks: int = 0
    escaping_paths: list[SymlinkInfo] = field(default_factory=list)
    warning: str | None = None

    @property
    def has_security_concerns(self) -> bool:
        return self.escaping_symlinks > 0 or self.loop_risks > 0


async def check_symlink_safety(
    skill_path: str | Path, scope_path: str | Path
) -> SymlinkCheckResult:
    """
    Check whether the skill directory itself is a symlink escaping its scope.

    Args:
        skill_path: The skill directory
        scope_path: The scope root the skill must stay inside

    Returns:
        SymlinkSafe, SymlinkEscape, or SymlinkCheckError
    """
    try:
        is_link = await asyncio.to_thread(os.path.islink, skill_path)
        if not is_link:
            # islink() is False for a missing path too; make that an error
            await asyncio.to_thread(os.lstat, skill_path)
            return SymlinkSafe(is_symlink=False)

        target = Path(await asyncio.to_thread(os.path.realpath, skill_path))
        scope_real = Path(await asyncio.to_thread(os.path.realpath, scope_path))
    except OSError as e:
        return SymlinkCheckError(message=f"Failed to check symlink safety: {e}")

    if not is_path_within(target, scope_real):
        logger.warning(f"Skill path {skill_path} is a symlink escaping {scope_path}: {target}")
        return SymlinkEscape(target_path=target, scope_boundary=Path(scope_path))

    return SymlinkSafe(is_symlink=True, resolved_path=target)


async def check_directory_symlinks(skill_path: str | Path) -> AsyncIterator[SymlinkInfo]:
    """
    Describe every symlink inside a skill directory.

    A directory symlink that resolves to the skill root or one of its
    ancestors is flagged as a loop risk: a naive recursive walker following
    it would never terminate.

    Args:
        skill_path: The skill directory

    Yields:
        SymlinkInfo per symlink found
    """
    root = Path(os.path.abspath(skill_path))
    real_root = Path(await asyncio.to_thread(os.path.realpath, root))

    async for info in enumerate_skill_files(root):
        if not info.is_symlink:
            continue

        is_directory_symlink = False
        loop_risk = False
        try:
            link_target = await asyncio.to_thread(os.readlink, info.absolute_path)
            target_path = os.path.normpath(os.path.join(info.absolute_path.parent, link_target))
            is_directory_symlink = await asyncio.to_thread(os.path.isdir, info.absolute_path)
            if is_directory_symlink:
                real_target = Path(await asyncio.to_thread(os.path.realpath, info.absolute_path))
                loop_risk = real_target == real_root or real_target in real_root.parents
        except OSError as e:
            logger.debug(f"Cannot read symlink {info.absolute_path}: {e}")
            target_path = UNREADABLE_TARGET

        escapes_scope = target_path != UNREADABLE_TARGET and not is_path_within(target_path, root)

        if loop_risk:
            warning = (
                f"Directory symlink points at the skill directory or one of its parents: "
                f"{target_path}. It will be unlinked, never descended into."
            )
        elif escapes_scope:
            warning = (
                f"Symlink points outside skill directory: {target_path}. "
                "This symlink will be removed but its target will NOT be deleted."
            )
        elif is_directory_symlink:
            warning = "Directory symlink will be removed as a file, not descended into."
        else:
            warning = "Symlink will be removed (target file is preserved)."

        yield SymlinkInfo(
            relative_path=info.relative_path,
            absolute_path=info.absolute_path,
            is_directory_symlink=is_directory_symlink,
            target_path=target_path,
            escapes_scope=escapes_scope,
            loop_risk=loop_risk,
            warning=warning,
        )


async def check_hard_links(skill_path: str | Path) -> AsyncIterator[HardLinkInfo]:
    """Yield regular files in the tree whose link count is above one."""
    async for info in enumerate_skill_files(skill_path):
        if info.is_directory or info.is_symlink:
            continue
        if info.link_count > 1:
            yield HardLinkInfo(
                relative_path=info.relative_path,
                absolute_path=info.absolute_path,
                link_count=info.link_count,
            )


async def detect_hard_link_warnings(skill_path: str | Path) -> HardLinkWarning | None:
    """
    Summarise hard-linked files in a skill directory.

    Args:
        skill_path: The skill directory

    Returns:
        None if no file has more than one link, else a HardLinkWarning
        listing at most the first ten files
    """
    files: list[HardLinkInfo] = []
    count = 0

    async for hard_link in check_hard_links(skill_path):
        count += 1
        if len(files) < MAX_REPORTED_HARD_LINKS:
            files.append(hard_link)

    if count == 0:
        return None

    files_word = "file has" if count == 1 else "files have"
    more_text = (
        f" (showing first {MAX_REPORTED_HARD_LINKS})" if count > MAX_REPORTED_HARD_LINKS else ""
    )
    message = (
        f"Warning: {count} {files_word} multiple hard links{more_text}. "
        "These files exist in other locations and removing them here will not delete the data. "
        "Use --force to proceed."
    )
    return HardLinkWarning(count=count, files=files, message=message)


async def get_symlink_summary(skill_path: str | Path) -> SymlinkSummary:
    """
    Count symlinks in a skill directory and build an informational warning.

    Never refuses anything; callers attach the warning to their output.
    """
    summary = SymlinkSummary()

    async for symlink in check_directory_symlinks(skill_path):
        summary.total_symlinks += 1
        if symlink.is_directory_symlink:
            summary.directory_symlinks += 1
        if symlink.loop_risk:
            summary.loop_risks += 1
        if symlink.escapes_scope:
            summary.escaping_symlinks += 1
            summary.escaping_paths.append(symlink)

    messages = []
    if summary.escaping_symlinks:
        messages.append(
            f"Found {summary.escaping_symlinks} symlink(s) pointing outside the skill directory. "
            "These symlinks will be removed but their targets will NOT be deleted."
        )
    if summary.loop_risks:
        messages.append(
            f"Found {summary.loop_risks} directory symlink(s) pointing at the skill directory "
            "or a parent. They will be unlinked without being followed."
        )
    if messages:
        summary.warning = " ".join(messages)

    return summary
