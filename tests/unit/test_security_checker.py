"""Tests for symlink and hard-link checks."""

import os
from pathlib import Path

import pytest

from skillward.security.checker import (
    SymlinkCheckError,
    SymlinkEscape,
    SymlinkSafe,
    check_directory_symlinks,
    check_symlink_safety,
    detect_hard_link_warnings,
    get_symlink_summary,
)


@pytest.fixture
def scope(temp_dir: Path) -> Path:
    path = temp_dir / ".claude" / "skills"
    path.mkdir(parents=True)
    return path


class TestSymlinkSafety:
    """Test the skill-root symlink check."""

    @pytest.mark.asyncio
    async def test_plain_directory(self, scope: Path) -> None:
        """A real directory is safe and not a symlink."""
        (scope / "plain").mkdir()
        result = await check_symlink_safety(scope / "plain", scope)
        assert isinstance(result, SymlinkSafe)
        assert result.is_symlink is False

    @pytest.mark.asyncio
    async def test_symlink_within_scope(self, scope: Path) -> None:
        """A symlink to another directory in the same scope is allowed."""
        (scope / "real").mkdir()
        os.symlink(scope / "real", scope / "alias")

        result = await check_symlink_safety(scope / "alias", scope)

        assert isinstance(result, SymlinkSafe)
        assert result.is_symlink is True
        assert result.resolved_path == Path(os.path.realpath(scope / "real"))

    @pytest.mark.asyncio
    async def test_symlink_escaping_scope(self, temp_dir: Path, scope: Path) -> None:
        """A symlink to a directory outside the scope escapes."""
        outside = temp_dir / "elsewhere"
        outside.mkdir()
        os.symlink(outside, scope / "evil")

        result = await check_symlink_safety(scope / "evil", scope)

        assert isinstance(result, SymlinkEscape)
        assert result.target_path == Path(os.path.realpath(outside))

    @pytest.mark.asyncio
    async def test_missing_path(self, scope: Path) -> None:
        """A missing skill path is an error, not a safe result."""
        result = await check_symlink_safety(scope / "missing", scope)
        assert isinstance(result, SymlinkCheckError)


class TestDirectorySymlinks:
    """Test symlink inventory inside a skill."""

    @pytest.mark.asyncio
    async def test_escaping_and_internal_links(self, temp_dir: Path, scope: Path) -> None:
        """Escaping links are flagged; internal links are not."""
        skill = scope / "skill"
        skill.mkdir()
        (skill / "inner.txt").write_text("x")
        os.symlink(skill / "inner.txt", skill / "internal")
        os.symlink("/etc/hostname", skill / "external")

        found = {s.relative_path: s async for s in check_directory_symlinks(skill)}

        assert set(found) == {"internal", "external"}
        assert found["external"].escapes_scope is True
        assert found["internal"].escapes_scope is False
        assert "will NOT be deleted" in found["external"].warning

    @pytest.mark.asyncio
    async def test_loop_risk(self, scope: Path) -> None:
        """A directory symlink back to the skill root is a loop risk."""
        skill = scope / "loopy"
        (skill / "sub").mkdir(parents=True)
        os.symlink(skill, skill / "sub" / "back")

        links = [s async for s in check_directory_symlinks(skill)]

        assert len(links) == 1
        assert links[0].is_directory_symlink is True
        assert links[0].loop_risk is True

    @pytest.mark.asyncio
    async def test_summary(self, scope: Path) -> None:
        """The summary counts and explains escaping links."""
        skill = scope / "skill"
        skill.mkdir()
        os.symlink("/etc", skill / "etc-link")

        summary = await get_symlink_summary(skill)

        assert summary.total_symlinks == 1
        assert summary.directory_symlinks == 1
        assert summary.escaping_symlinks == 1
        assert summary.has_security_concerns
        assert summary.warning is not None

    @pytest.mark.asyncio
    async def test_summary_without_symlinks(self, scope: Path) -> None:
        """No symlinks means no warning."""
        skill = scope / "skill"
        skill.mkdir()
        (skill / "a.txt").write_text("a")

        summary = await get_symlink_summary(skill)

        assert summary.total_symlinks == 0
        assert summary.warning is None
        assert not summary.has_security_concerns


class TestHardLinks:
    """Test hard-link detection."""

    @pytest.mark.asyncio
    async def test_no_hard_links(self, scope: Path) -> None:
        """Plain files produce no warning."""
        skill = scope / "skill"
        skill.mkdir()
        (skill / "a.txt").write_text("a")
        assert await detect_hard_link_warnings(skill) is None

    @pytest.mark.asyncio
    async def test_hard_link_detected(self, temp_dir: Path, scope: Path) -> None:
        """A file linked from outside the skill is reported."""
        skill = scope / "skill"
        skill.mkdir()
        outside = temp_dir / "shared.txt"
        outside.write_text("shared data")
        os.link(outside, skill / "shared.txt")

        warning = await detect_hard_link_warnings(skill)

        assert warning is not None
        assert warning.count == 1
        assert warning.files[0].link_count == 2
        assert "1 file has multiple hard links" in warning.message

    @pytest.mark.asyncio
    async def test_reported_files_capped(self, temp_dir: Path, scope: Path) -> None:
        """At most ten hard-linked files are listed."""
        skill = scope / "skill"
        skill.mkdir()
        for i in range(12):
            source = temp_dir / f"src-{i}.txt"
            source.write_text(str(i))
            os.link(source, skill / f"f{i}.txt")

        warning = await detect_hard_link_warnings(skill)

        assert warning is not None
        assert warning.count == 12
        assert len(warning.files) == 10
        assert "showing first 10" in warning.message
