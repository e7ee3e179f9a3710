"""Tests for path containment and pre-deletion verification."""

import os
from pathlib import Path

import pytest

from skillward.security.path_verifier import (
    ContainmentValid,
    ContainmentViolation,
    VerifiedPath,
    VerifyError,
    VerifyFailed,
    VerifyOk,
    create_verified_path,
    is_dangerous_path,
    is_path_within,
    is_valid_scope_path,
    verify_before_deletion,
    verify_containment,
)


class TestVerifyContainment:
    """Test lexical containment checks."""

    def test_nested_path_is_contained(self) -> None:
        """A path below the base is valid."""
        result = verify_containment("/a/b", "/a/b/c/d.txt")
        assert isinstance(result, ContainmentValid)
        assert result.normalized_path == Path("/a/b/c/d.txt")

    def test_base_itself_is_contained(self) -> None:
        """The base is contained in itself."""
        assert isinstance(verify_containment("/a/b", "/a/b"), ContainmentValid)

    def test_sibling_prefix_is_not_contained(self) -> None:
        """Comparison is by segment, not by string prefix."""
        result = verify_containment("/a/b", "/a/b-evil/file")
        assert isinstance(result, ContainmentViolation)

    def test_parent_traversal_reported(self) -> None:
        """A target escaping through .. names the traversal."""
        result = verify_containment("/a/b", "/a/b/../c")
        assert isinstance(result, ContainmentViolation)
        assert ".." in result.reason

    def test_traversal_that_stays_inside(self) -> None:
        """A .. that normalizes back inside the base is fine."""
        assert isinstance(verify_containment("/a/b", "/a/b/c/../d"), ContainmentValid)

    def test_absolute_outside(self) -> None:
        """An absolute path elsewhere is rejected."""
        result = verify_containment("/a/b", "/etc/passwd")
        assert isinstance(result, ContainmentViolation)
        assert "Absolute path" in result.reason

    def test_relative_target_resolved_against_cwd(self, temp_dir: Path, monkeypatch) -> None:
        """Relative targets are resolved against the working directory."""
        monkeypatch.chdir(temp_dir)
        assert isinstance(verify_containment(temp_dir, "child/file"), ContainmentValid)

    def test_is_path_within(self) -> None:
        """Boolean helper mirrors verify_containment."""
        assert is_path_within("/a/b/c", "/a/b")
        assert not is_path_within("/a/bc", "/a/b")


class TestVerifyBeforeDeletion:
    """Test re-verification immediately before delete."""

    @pytest.mark.asyncio
    async def test_regular_file(self, temp_dir: Path) -> None:
        """A contained regular file reports its type and size."""
        target = temp_dir / "file.txt"
        target.write_text("hello")

        result = await verify_before_deletion(temp_dir, target)

        assert isinstance(result, VerifyOk)
        assert result.path_type == "file"
        assert result.size == 5

    @pytest.mark.asyncio
    async def test_directory(self, temp_dir: Path) -> None:
        """Directories are reported as directories."""
        (temp_dir / "sub").mkdir()
        result = await verify_before_deletion(temp_dir, temp_dir / "sub")
        assert isinstance(result, VerifyOk)
        assert result.path_type == "directory"

    @pytest.mark.asyncio
    async def test_symlink_is_not_followed(self, temp_dir: Path) -> None:
        """A symlink to a directory is reported as a symlink."""
        outside = temp_dir / "outside"
        outside.mkdir()
        skill = temp_dir / "skill"
        skill.mkdir()
        os.symlink(outside, skill / "link")

        result = await verify_before_deletion(skill, skill / "link")

        assert isinstance(result, VerifyOk)
        assert result.path_type == "symlink"

    @pytest.mark.asyncio
    async def test_missing_path(self, temp_dir: Path) -> None:
        """A path that vanished is skipped as not-exists."""
        result = await verify_before_deletion(temp_dir, temp_dir / "gone.txt")
        assert isinstance(result, VerifyFailed)
        assert result.reason == "not-exists"

    @pytest.mark.asyncio
    async def test_outside_base(self, temp_dir: Path) -> None:
        """A path outside the skill is a containment violation."""
        skill = temp_dir / "skill"
        skill.mkdir()
        (temp_dir / "other.txt").write_text("x")

        result = await verify_before_deletion(skill, temp_dir / "other.txt")

        assert isinstance(result, VerifyFailed)
        assert result.reason == "containment-violation"

    @pytest.mark.asyncio
    async def test_parent_swapped_for_symlink(self, temp_dir: Path) -> None:
        """A directory replaced by a symlink after enumeration is caught."""
        outside = temp_dir / "outside"
        outside.mkdir()
        (outside / "victim.txt").write_text("keep me")
        skill = temp_dir / "skill"
        skill.mkdir()
        os.symlink(outside, skill / "sub")

        result = await verify_before_deletion(skill, skill / "sub" / "victim.txt")

        assert isinstance(result, VerifyFailed)
        assert result.reason == "containment-violation"
        assert (outside / "victim.txt").exists()

    @pytest.mark.asyncio
    async def test_create_verified_path(self, temp_dir: Path) -> None:
        """Successful verification yields a VerifiedPath."""
        target = temp_dir / "a.txt"
        target.write_text("a")

        verified = await create_verified_path(temp_dir, target)

        assert isinstance(verified, VerifiedPath)
        assert verified.path_type == "file"
        missing = await create_verified_path(temp_dir, temp_dir / "missing")
        assert isinstance(missing, VerifyError)


class TestPathHelpers:
    """Test denylist and scope shape helpers."""

    @pytest.mark.parametrize("path", ["/etc", "/etc/passwd", "/usr/local/bin", "/proc/1"])
    def test_dangerous_paths(self, path: str) -> None:
        """System roots and their children are dangerous."""
        assert is_dangerous_path(path)

    @pytest.mark.parametrize("path", ["/etcetera", "/home/user/.claude/skills", "/usrlocal"])
    def test_safe_paths(self, path: str) -> None:
        """Matching is by segment."""
        assert not is_dangerous_path(path)

    def test_valid_scope_path(self) -> None:
        """Scope roots must end in .claude/skills."""
        assert is_valid_scope_path("/home/user/.claude/skills")
        assert not is_valid_scope_path("/home/user/.claude")
        assert not is_valid_scope_path("/home/user/skills")
