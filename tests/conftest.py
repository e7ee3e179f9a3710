"""
Pytest configuration and fixtures for skillward tests.
"""

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from skillward.audit import AuditLogger


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def mock_skillward_home(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Provide a mock ~/.skillward directory and point SKILLWARD_HOME at it."""
    home = temp_dir / ".skillward"
    home.mkdir()
    monkeypatch.setenv("SKILLWARD_HOME", str(home))
    return home


@pytest.fixture
def mock_project_dir(temp_dir: Path) -> Path:
    """Provide a project directory with an empty .claude/skills scope."""
    project_dir = temp_dir / "test-project"
    (project_dir / ".claude" / "skills").mkdir(parents=True)
    return project_dir


@pytest.fixture
def project_scope(mock_project_dir: Path) -> Path:
    """The project-scope skills directory."""
    return mock_project_dir / ".claude" / "skills"


@pytest.fixture
def audit_logger(mock_skillward_home: Path) -> AuditLogger:
    """Audit logger writing into the mock home."""
    return AuditLogger(base_dir=mock_skillward_home)


@pytest.fixture
def sample_skill_md() -> Callable[[str], str]:
    """Provide SKILL.md content for a given skill name."""

    def _make(name: str = "test-skill") -> str:
        return f"""---
name: {name}
description: A test skill for unit tests
---

# Test Skill

This is a test skill for unit testing.

## Instructions

1. Do something
2. Do something else
"""

    return _make


@pytest.fixture
def make_skill(project_scope: Path, sample_skill_md: Callable[[str], str]):
    """Create an installed skill in the project scope.

    Returns a factory taking the skill name and a mapping of relative path to
    file content (str or bytes). SKILL.md is written unless ``with_skill_md``
    is False.
    """

    def _make(
        name: str,
        files: dict[str, str | bytes] | None = None,
        with_skill_md: bool = True,
        scope: Path | None = None,
    ) -> Path:
        skill_dir = (scope or project_scope) / name
        skill_dir.mkdir(parents=True)
        if with_skill_md:
            (skill_dir / "SKILL.md").write_text(sample_skill_md(name))
        for rel, content in (files or {}).items():
            path = skill_dir / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content)
        return skill_dir

    return _make
