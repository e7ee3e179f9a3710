"""
Directory tree enumeration for skill directories.

Walks a tree with ``lstat`` so symlinks are reported as leaves and never
followed. Entries that disappear or cannot be read during the walk are
skipped rather than aborting the enumeration.
"""

import asyncio
import logging
import os
import stat
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

MAX_FILES = 10_000
MAX_SIZE_BYTES = 1024 * 1024 * 1024


@dataclass(frozen=True)
class FileInfo:
    """A single entry found while walking a skill directory."""

    absolute_path: Path
    relative_path: str
    size: int
    is_directory: bool
    is_symlink: bool
    link_count: int = 1

    @property
    def depth(self) -> int:
        """Number of path segments below the skill root."""
        return len(Path(self.relative_path).parts)


@dataclass
class SkillSummary:
    """Aggregate counts for a skill directory."""

    file_count: int = 0
    directory_count: int = 0
    total_size: int = 0
    symlink_count: int = 0
    hard_link_count: int = 0


@dataclass
class ResourceLimitCheck:
    """Result of comparing a summary against resource limits."""

    exceeded: bool
    warnings: list[str] = field(default_factory=list)


async def enumerate_skill_files(skill_path: str | Path) -> AsyncIterator[FileInfo]:
    """
    Lazily walk a skill directory.

    Uses an explicit stack rather than recursion. Real directories are
    descended into; symlinks (including symlinks to directories) are
    yielded once and never followed.

    Args:
        skill_path: Root of the tree to walk

    Yields:
        FileInfo for every entry below the root (the root itself excluded)
    """
    root = Path(skill_path)
    stack: list[tuple[Path, str]] = [(root, "")]

    while stack:
        current, relative = stack.pop()

        try:
            names = await asyncio.to_thread(os.listdir, current)
        except OSError as e:
            logger.debug(f"Skipping unreadable directory {current}: {e}")
            continue

        for name in sorted(names):
            absolute = current / name
            relative_path = os.path.join(relative, name) if relative else name

            try:
                st = await asyncio.to_thread(os.lstat, absolute)
            except OSError as e:
                logger.debug(f"Skipping unreadable entry {absolute}: {e}")
                continue

            is_symlink = stat.S_ISLNK(st.st_mode)
            is_directory = stat.S_ISDIR(st.st_mode)

            yield FileInfo(
                absolute_path=absolute,
                relative_path=relative_path,
                size=0 if is_directory else st.st_size,
                is_directory=is_directory,
                is_symlink=is_symlink,
                link_count=st.st_nlink,
            )

            if is_directory and not is_symlink:
                stack.append((absolute, relative_path))


async def collect_skill_files(skill_path: str | Path) -> list[FileInfo]:
    """Collect the whole enumeration into a list."""
    return [info async for info in enumerate_skill_files(skill_path)]


async def get_skill_summary(skill_path: str | Path) -> SkillSummary:
    """
    Count files, directories, symlinks, and hard-linked files in a tree.

    Symlinks count as files (they are unlinked, not descended into).

    Args:
        skill_path: Root of the tree

    Returns:
        SkillSummary with aggregate counts
    """
    summary = SkillSummary()

    async for info in enumerate_skill_files(skill_path):
        if info.is_symlink:
            summary.symlink_count += 1

        if info.is_directory:
            summary.directory_count += 1
        else:
            summary.file_count += 1
            summary.total_size += info.size
            if not info.is_symlink and info.link_count > 1:
                summary.hard_link_count += 1

    return summary


def check_resource_limits(
    summary: SkillSummary,
    max_files: int = MAX_FILES,
    max_size: int = MAX_SIZE_BYTES,
) -> ResourceLimitCheck:
    """
    Check whether a skill is unusually large.

    Oversized skills usually contain content that was never part of the
    skill (node_modules, build output), so removal requires --force.

    Args:
        summary: Summary from get_skill_summary()
        max_files: Maximum file count
        max_size: Maximum total size in bytes

    Returns:
        ResourceLimitCheck with one warning per exceeded limit
    """
    warnings: list[str] = []

    if summary.file_count > max_files:
        warnings.append(
            f"Skill contains {summary.file_count:,} files (limit: {max_files:,}). "
            "This may indicate unexpected content like node_modules."
        )

    if summary.total_size > max_size:
        warnings.append(
            f"Skill size is {format_file_size(summary.total_size)} "
            f"(limit: {format_file_size(max_size)}). "
            "This may indicate large binaries or unexpected content."
        )

    return ResourceLimitCheck(exceeded=bool(warnings), warnings=warnings)


def format_file_size(size: int) -> str:
    """
    Format a size in bytes as a human-readable string.

    Examples:
        >>> format_file_size(0)
        '0 B'
        >>> format_file_size(1536)
        '1.50 KB'
    """
    if size <= 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    index = 0
    value = float(size)
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1

    if index == 0:
        return f"{size} B"
    return f"{value:.2f} {units[index]}"
