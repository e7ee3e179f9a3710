"""
Pre-removal inspection of a skill directory.

Looks for content that suggests the directory is not a plain installed
skill (a development checkout, vendored dependencies, editor droppings).
Such content blocks removal unless --force is given.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from skillward.skills.parser import validate_skill_directory
from skillward.storage.enumerator import FileInfo, enumerate_skill_files

logger = logging.getLogger(__name__)

LARGE_BINARY_THRESHOLD = 10 * 1024 * 1024
MAX_RECORDED_PER_KIND = 5

TEMP_FILE_PATTERNS = [
    re.compile(r"\.swp$"),
    re.compile(r"\.swo$"),
    re.compile(r"~$"),
    re.compile(r"^\.DS_Store$"),
    re.compile(r"^Thumbs\.db$"),
    re.compile(r"\.tmp$"),
    re.compile(r"\.temp$"),
]

UnexpectedKind = Literal["git-directory", "node-modules", "large-binary", "temp-file"]


@dataclass(frozen=True)
class UnexpectedFile:
    kind: UnexpectedKind
    path: str
    size: int | None = None


@dataclass
class UnexpectedFilesReport:
    """Unexpected content found in a skill directory."""

    detected: list[UnexpectedFile] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.detected)

    @property
    def requires_force(self) -> bool:
        return self.found


@dataclass
class PreRemovalReport:
    """Informational validation result; never blocks removal on its own."""

    valid: bool
    warnings: list[str] = field(default_factory=list)


def _name(info: FileInfo) -> str:
    return Path(info.relative_path).name


def _is_temp_file(info: FileInfo) -> bool:
    name = _name(info)
    return any(pattern.search(name) for pattern in TEMP_FILE_PATTERNS)


async def detect_unexpected_files(skill_path: str | Path) -> UnexpectedFilesReport:
    """
    Scan a skill directory for content that should not be in an installed skill.

    Args:
        skill_path: The skill directory

    Returns:
        UnexpectedFilesReport; ``found`` is False when nothing was detected
    """
    report = UnexpectedFilesReport()
    has_git = False
    has_node_modules = False
    large_count = 0
    temp_count = 0

    async for info in enumerate_skill_files(skill_path):
        real_dir = info.is_directory and not info.is_symlink

        if not has_git and real_dir and _name(info) == ".git":
            has_git = True
            report.detected.append(UnexpectedFile("git-directory", info.relative_path))

        if not has_node_modules and real_dir and _name(info) == "node_modules":
            has_node_modules = True
            report.detected.append(UnexpectedFile("node-modules", info.relative_path))

        if not info.is_directory and not info.is_symlink and info.size > LARGE_BINARY_THRESHOLD:
            large_count += 1
            if large_count <= MAX_RECORDED_PER_KIND:
                report.detected.append(
                    UnexpectedFile("large-binary", info.relative_path, info.size)
                )

        if not info.is_directory and _is_temp_file(info):
            temp_count += 1
            if temp_count <= MAX_RECORDED_PER_KIND:
                report.detected.append(UnexpectedFile("temp-file", info.relative_path))

    if has_git:
        report.warnings.append(
            "Skill contains a .git directory. "
            "This may be a development repository rather than an installed skill."
        )
    if has_node_modules:
        report.warnings.append(
            "Skill contains node_modules directory. "
            "This may indicate development dependencies that should be removed first."
        )
    if large_count:
        report.warnings.append(
            f"Skill contains {large_count} file(s) larger than 10 MB. "
            "These may be bundled assets or build artifacts."
        )
    if temp_count:
        report.warnings.append(
            f"Skill contains {temp_count} temporary file(s). "
            "These should typically be cleaned up before distribution."
        )

    return report


async def validate_before_removal(skill_path: str | Path) -> PreRemovalReport:
    """
    Run the SKILL.md checks and turn any issue into a warning.

    A broken skill can still be uninstalled; the warnings only explain what
    was wrong with it.
    """
    issues = await asyncio.to_thread(validate_skill_directory, Path(skill_path))
    return PreRemovalReport(
        valid=not issues,
        warnings=[f"Validation: {issue}" for issue in issues],
    )
