"""
Scope resolution and installed-skill discovery.

Maps ``project``/``personal`` to their ``.claude/skills`` roots and finds a
skill directory inside one, refusing names that only match on-disk entries
case-insensitively.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from skillward.skills.models import (
    DiscoveryResult,
    Scope,
    ScopeInfo,
    SkillCaseMismatch,
    SkillFound,
    SkillMissing,
)
from skillward.storage.paths import get_personal_skills_dir, get_project_skills_dir

logger = logging.getLogger(__name__)

SKILL_MD = "SKILL.md"


def resolve_scope(scope: Scope, cwd: Path | None = None, home: Path | None = None) -> ScopeInfo:
    """
    Resolve a scope token to its absolute root.

    Args:
        scope: "project" or "personal"
        cwd: Working directory override (project scope)
        home: Home directory override (personal scope)

    Returns:
        ScopeInfo with the absolute scope root
    """
    if scope == "personal":
        return ScopeInfo(type="personal", path=get_personal_skills_dir(home))
    return ScopeInfo(type="project", path=get_project_skills_dir(cwd))


def get_scope_path(scope: Scope, cwd: Path | None = None, home: Path | None = None) -> Path:
    """Shortcut for ``resolve_scope(...).path``."""
    return resolve_scope(scope, cwd=cwd, home=home).path


@dataclass(frozen=True)
class CaseCheck:
    """Outcome of comparing a requested name with the on-disk entry."""

    matches: bool
    actual_name: str | None = None
    error: str | None = None


async def verify_case_sensitivity(skill_path: Path, expected_name: str) -> CaseCheck:
    """
    Compare the requested name with the exact on-disk directory name.

    On case-insensitive filesystems ``My-Skill`` and ``my-skill`` resolve to
    the same directory; only an exact match is accepted.
    """
    try:
        entries = await asyncio.to_thread(os.listdir, skill_path.parent)
    except OSError as e:
        return CaseCheck(matches=False, error=f"Cannot read {skill_path.parent}: {e}")

    if expected_name in entries:
        return CaseCheck(matches=True, actual_name=expected_name)

    lowered = expected_name.lower()
    for entry in entries:
        if entry.lower() == lowered:
            return CaseCheck(matches=False, actual_name=entry)

    return CaseCheck(matches=False, error=f"Entry not found in parent directory: {expected_name}")


async def verify_skill_md(skill_path: Path) -> bool:
    """Check whether a regular SKILL.md file exists in the skill directory."""
    return await asyncio.to_thread(os.path.isfile, skill_path / SKILL_MD)


async def discover_skill(skill_name: str, scope_info: ScopeInfo) -> DiscoveryResult:
    """
    Locate an installed skill inside a scope.

    Any error while probing is treated as not-found so that nothing is ever
    deleted on the strength of an ambiguous lookup.

    Args:
        skill_name: Validated skill name
        scope_info: Resolved scope

    Returns:
        SkillFound, SkillMissing, or SkillCaseMismatch
    """
    skill_path = scope_info.path / skill_name

    try:
        is_dir = await asyncio.to_thread(os.path.isdir, skill_path)
    except OSError as e:
        logger.debug(f"Cannot stat {skill_path}: {e}")
        is_dir = False

    if not is_dir:
        return SkillMissing(searched_path=skill_path)

    case = await verify_case_sensitivity(skill_path, skill_name)
    if case.error is not None:
        logger.debug(case.error)
        return SkillMissing(searched_path=skill_path)

    if not case.matches and case.actual_name is not None:
        return SkillCaseMismatch(
            expected_name=skill_name,
            actual_name=case.actual_name,
            actual_path=scope_info.path / case.actual_name,
        )

    return SkillFound(path=skill_path, has_skill_md=await verify_skill_md(skill_path))
