"""Tests for skill tree enumeration and size helpers."""

import os
from pathlib import Path

import pytest

from skillward.storage.enumerator import (
    SkillSummary,
    check_resource_limits,
    collect_skill_files,
    format_file_size,
    get_skill_summary,
)


class TestEnumeration:
    """Test the lazy tree walk."""

    @pytest.mark.asyncio
    async def test_lists_nested_entries(self, temp_dir: Path) -> None:
        """Files and directories at every level are listed, root excluded."""
        (temp_dir / "a" / "b").mkdir(parents=True)
        (temp_dir / "top.txt").write_text("top")
        (temp_dir / "a" / "b" / "deep.txt").write_text("deep")

        files = await collect_skill_files(temp_dir)
        by_path = {f.relative_path: f for f in files}

        assert set(by_path) == {
            "a",
            os.path.join("a", "b"),
            os.path.join("a", "b", "deep.txt"),
            "top.txt",
        }
        assert by_path["a"].is_directory
        assert by_path["a"].size == 0
        assert by_path["top.txt"].size == 3
        assert by_path[os.path.join("a", "b", "deep.txt")].depth == 3

    @pytest.mark.asyncio
    async def test_symlinks_not_followed(self, temp_dir: Path) -> None:
        """A directory symlink is reported once and never descended into."""
        target = temp_dir / "target"
        target.mkdir()
        (target / "inside.txt").write_text("x")
        skill = temp_dir / "skill"
        skill.mkdir()
        os.symlink(target, skill / "link")

        files = await collect_skill_files(skill)

        assert [f.relative_path for f in files] == ["link"]
        assert files[0].is_symlink
        assert not files[0].is_directory

    @pytest.mark.asyncio
    async def test_missing_root_yields_nothing(self, temp_dir: Path) -> None:
        """An unreadable root produces an empty walk."""
        assert await collect_skill_files(temp_dir / "missing") == []

    @pytest.mark.asyncio
    async def test_summary(self, temp_dir: Path) -> None:
        """The summary counts files, directories, symlinks, and hard links."""
        (temp_dir / "sub").mkdir()
        (temp_dir / "a.txt").write_text("aa")
        (temp_dir / "sub" / "b.txt").write_text("bbb")
        os.link(temp_dir / "a.txt", temp_dir / "a-link.txt")
        os.symlink(temp_dir / "a.txt", temp_dir / "sym")

        summary = await get_skill_summary(temp_dir)

        assert summary.directory_count == 1
        assert summary.symlink_count == 1
        assert summary.hard_link_count == 2
        assert summary.file_count == 4


class TestResourceLimits:
    """Test the oversized-skill gate."""

    def test_within_limits(self) -> None:
        """Small skills pass."""
        result = check_resource_limits(SkillSummary(file_count=3, total_size=100))
        assert not result.exceeded
        assert result.warnings == []

    def test_too_many_files(self) -> None:
        """File count above the limit is reported."""
        result = check_resource_limits(SkillSummary(file_count=11, total_size=10), max_files=10)
        assert result.exceeded
        assert "11 files (limit: 10)" in result.warnings[0]

    def test_too_large(self) -> None:
        """Total size above the limit is reported."""
        result = check_resource_limits(SkillSummary(file_count=1, total_size=2048), max_size=1024)
        assert result.exceeded
        assert "2.00 KB" in result.warnings[0]


class TestFormatFileSize:
    """Test human-readable sizes."""

    @pytest.mark.parametrize(
        "size,expected",
        [
            (0, "0 B"),
            (512, "512 B"),
            (1536, "1.50 KB"),
            (1024 * 1024, "1.00 MB"),
            (1024**3, "1.00 GB"),
        ],
    )
    def test_format(self, size: int, expected: str) -> None:
        """Sizes use binary units with two decimals above bytes."""
        assert format_file_size(size) == expected
