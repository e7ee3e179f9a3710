"""
SKILL.md parser for Skillward.

Parses the YAML frontmatter of SKILL.md files. Used informationally before
removal and to check that an update package matches the installed skill.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from skillward.skills.models import SkillFrontmatter

SKILL_MD = "SKILL.md"


class SkillParseError(Exception):
    """Error parsing a skill."""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(f"{message}" + (f" (at {path})" if path else ""))


class SkillValidationError(SkillParseError):
    """Error validating skill structure or content."""

    pass


def parse_yaml_frontmatter(content: str) -> tuple[dict[str, Any] | None, str]:
    """Parse YAML frontmatter from a markdown file.

    Frontmatter is delimited by --- at the start and end.

    Args:
        content: The full markdown content.

    Returns:
        Tuple of (frontmatter dict or None, remaining content).
    """
    if not content.startswith("---"):
        return None, content

    lines = content.split("\n")
    end_index = None

    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            end_index = i
            break

    if end_index is None:
        return None, content

    frontmatter_text = "\n".join(lines[1:end_index])
    remaining_content = "\n".join(lines[end_index + 1 :]).strip()

    try:
        frontmatter = yaml.safe_load(frontmatter_text)
    except yaml.YAMLError:
        return None, content

    if not isinstance(frontmatter, dict):
        return None, content
    return frontmatter, remaining_content


def parse_skill_md(content: str, path: Path | None = None) -> tuple[SkillFrontmatter, str]:
    """Parse a SKILL.md file.

    Args:
        content: The SKILL.md file content.
        path: Optional path for error messages.

    Returns:
        Tuple of (frontmatter model, instructions content).

    Raises:
        SkillValidationError: If the frontmatter is missing or lacks a name.
        SkillParseError: If the frontmatter fields are invalid.
    """
    frontmatter_dict, instructions = parse_yaml_frontmatter(content)

    if frontmatter_dict is None:
        raise SkillValidationError("SKILL.md has no YAML frontmatter", path)

    if "name" not in frontmatter_dict:
        raise SkillValidationError("SKILL.md frontmatter missing required 'name' field", path)

    try:
        return SkillFrontmatter(**frontmatter_dict), instructions
    except ValidationError as e:
        raise SkillParseError(f"Invalid SKILL.md frontmatter: {e}", path) from e


def validate_skill_directory(skill_dir: Path) -> list[str]:
    """Validate a skill directory and return any issues.

    Checks that SKILL.md exists, that its frontmatter parses, and that the
    declared name matches the directory name.

    Args:
        skill_dir: Path to the skill directory.

    Returns:
        List of validation issues (empty if valid).
    """
    skill_dir = Path(skill_dir)

    if not skill_dir.is_dir():
        return [f"Not a directory: {skill_dir}"]

    skill_md_path = skill_dir / SKILL_MD
    if not skill_md_path.is_file():
        return [f"Missing required file: {SKILL_MD}"]

    try:
        content = skill_md_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return [f"Cannot read {SKILL_MD}: {e}"]

    try:
        frontmatter, _ = parse_skill_md(content, skill_md_path)
    except SkillParseError as e:
        return [str(e)]

    if frontmatter.name != skill_dir.name:
        return [
            f"Name mismatch: {SKILL_MD} declares '{frontmatter.name}', "
            f"directory is '{skill_dir.name}'"
        ]

    return []
