"""Tests for the uninstall orchestrator."""

import errno
import itertools
import os
from pathlib import Path
from types import SimpleNamespace

import pytest

from skillward.audit import AuditLogger
from skillward.skills import uninstaller
from skillward.skills.models import (
    DryRunPreview,
    FileSystemError,
    InvalidInputError,
    OperationTimeoutError,
    PartialRemovalError,
    SecurityError,
    SkillInfo,
    SkillNotFoundError,
    UninstallExitCode,
    UninstallFailure,
    UninstallOptions,
    UninstallResult,
    exit_code_for,
)
from skillward.skills.uninstaller import (
    RemovalSuccess,
    RemovalTimeout,
    execute_removal,
    is_dry_run_preview,
    stream_removal_progress,
    uninstall_multiple_skills,
    uninstall_skill,
)
from skillward.storage.enumerator import collect_skill_files


@pytest.fixture
def options(mock_project_dir: Path) -> UninstallOptions:
    return UninstallOptions(cwd=mock_project_dir, home=mock_project_dir / "home")


def padded_skill_md(name: str, size: int) -> str:
    content = f"---\nname: {name}\ndescription: padded\n---\n\n"
    return content + "x" * (size - len(content))


class TestUninstallSkill:
    """Test single-skill removal."""

    @pytest.mark.asyncio
    async def test_removes_skill_and_audits(
        self, make_skill, options: UninstallOptions, audit_logger: AuditLogger
    ) -> None:
        """Four files totalling 7800 bytes remove five entries and free 7800 bytes."""
        skill = make_skill(
            "docs-helper",
            {
                "SKILL.md": padded_skill_md("docs-helper", 1000),
                "guide.md": "g" * 2000,
                "reference.md": "r" * 2400,
                "notes.txt": "n" * 2400,
            },
            with_skill_md=False,
        )

        result = await uninstall_skill("docs-helper", options, audit_logger)

        assert isinstance(result, UninstallResult)
        assert result.files_removed == 5
        assert result.bytes_freed == 7800
        assert not skill.exists()

        lines = audit_logger.read_entries()
        assert len(lines) == 1
        assert (
            f"UNINSTALL docs-helper project SUCCESS removed=5 size=7800 path={skill}"
            in lines[0]
        )

    @pytest.mark.asyncio
    async def test_nested_directories_counted(
        self, make_skill, options: UninstallOptions, audit_logger: AuditLogger
    ) -> None:
        """Directories count towards files_removed but not bytes_freed."""
        make_skill("nested", {"a/b/c.txt": "ccc"})

        result = await uninstall_skill("nested", options, audit_logger)

        assert isinstance(result, UninstallResult)
        # SKILL.md, a, a/b, a/b/c.txt, root
        assert result.files_removed == 5

    @pytest.mark.asyncio
    async def test_not_found(self, options: UninstallOptions, audit_logger: AuditLogger) -> None:
        """A missing skill is reported and audited as NOT_FOUND."""
        result = await uninstall_skill("ghost", options, audit_logger)

        assert isinstance(result, UninstallFailure)
        assert isinstance(result.error, SkillNotFoundError)
        assert exit_code_for(result) == UninstallExitCode.NOT_FOUND
        assert " ghost project NOT_FOUND " in audit_logger.read_entries()[0]

    @pytest.mark.asyncio
    async def test_invalid_name_touches_nothing(
        self, project_scope: Path, options: UninstallOptions, audit_logger: AuditLogger
    ) -> None:
        """Traversal in the name is rejected before any lookup."""
        (project_scope.parent / "settings.json").write_text("{}")

        result = await uninstall_skill("../settings.json", options, audit_logger)

        assert isinstance(result, UninstallFailure)
        assert isinstance(result.error, InvalidInputError)
        assert result.error.field == "name"
        assert exit_code_for(result) == UninstallExitCode.SECURITY_ERROR
        assert (project_scope.parent / "settings.json").exists()

    @pytest.mark.asyncio
    async def test_invalid_scope(self, mock_project_dir: Path, audit_logger: AuditLogger) -> None:
        """Custom scopes are rejected."""
        result = await uninstall_skill(
            "a", UninstallOptions(scope="/tmp", cwd=mock_project_dir), audit_logger
        )

        assert isinstance(result, UninstallFailure)
        assert result.error.field == "scope"
        assert exit_code_for(result) == UninstallExitCode.SECURITY_ERROR

    @pytest.mark.asyncio
    async def test_missing_skill_md_requires_force(
        self, make_skill, options: UninstallOptions, audit_logger: AuditLogger
    ) -> None:
        """Without SKILL.md the directory is only removed with --force."""
        skill = make_skill("bare", {"readme.txt": "hi"}, with_skill_md=False)

        refused = await uninstall_skill("bare", options, audit_logger)

        assert isinstance(refused, UninstallFailure)
        assert "SKILL.md not found" in refused.error.message
        assert exit_code_for(refused) == UninstallExitCode.FILESYSTEM_ERROR
        assert skill.exists()
        assert "error=missing_skill_md" in audit_logger.read_entries()[-1]

        forced = await uninstall_skill(
            "bare", options.model_copy(update={"force": True}), audit_logger
        )

        assert isinstance(forced, UninstallResult)
        assert not skill.exists()

    @pytest.mark.asyncio
    async def test_dry_run_changes_nothing(
        self, make_skill, options: UninstallOptions, audit_logger: AuditLogger
    ) -> None:
        """A dry run previews without deleting or auditing."""
        skill = make_skill("preview-me", {"a.txt": "aaaa"})

        result = await uninstall_skill(
            "preview-me", options.model_copy(update={"dry_run": True}), audit_logger
        )

        assert isinstance(result, DryRunPreview)
        assert is_dry_run_preview(result)
        assert sorted(f.relative_path for f in result.files) == ["SKILL.md", "a.txt"]
        assert result.total_size == (skill / "SKILL.md").stat().st_size + 4
        assert skill.exists()
        assert audit_logger.read_entries() == []

    @pytest.mark.asyncio
    async def test_unexpected_files_require_force(
        self, make_skill, options: UninstallOptions, audit_logger: AuditLogger
    ) -> None:
        """A .git directory blocks removal unless forced."""
        skill = make_skill("dev-checkout", {".git/HEAD": "ref: main", "notes.swp": "x"})

        refused = await uninstall_skill("dev-checkout", options, audit_logger)

        assert isinstance(refused, UninstallFailure)
        assert "unexpected files" in refused.error.message
        assert skill.exists()

        forced = await uninstall_skill(
            "dev-checkout", options.model_copy(update={"force": True}), audit_logger
        )

        assert isinstance(forced, UninstallResult)
        assert any(".git directory" in w for w in forced.warnings)

    @pytest.mark.asyncio
    async def test_resource_limits_require_force(
        self, make_skill, options: UninstallOptions, audit_logger: AuditLogger
    ) -> None:
        """Skills above the configured file limit need --force."""
        make_skill("big", {f"f{i}.txt": "x" for i in range(5)})

        result = await uninstall_skill(
            "big", options.model_copy(update={"max_files": 3}), audit_logger
        )

        assert isinstance(result, UninstallFailure)
        assert "Resource limits exceeded" in result.error.message

    @pytest.mark.asyncio
    async def test_hard_links_require_force(
        self, make_skill, temp_dir: Path, options: UninstallOptions, audit_logger: AuditLogger
    ) -> None:
        """Hard-linked files block removal without --force and survive it with."""
        skill = make_skill("linked")
        shared = temp_dir / "shared.txt"
        shared.write_text("shared")
        os.link(shared, skill / "shared.txt")

        refused = await uninstall_skill("linked", options, audit_logger)

        assert isinstance(refused, UninstallFailure)
        assert isinstance(refused.error, SecurityError)
        assert refused.error.reason == "hard-link-detected"
        assert "hard_links_detected=1" in audit_logger.read_entries()[-1]

        forced = await uninstall_skill(
            "linked", options.model_copy(update={"force": True}), audit_logger
        )

        assert isinstance(forced, UninstallResult)
        assert shared.read_text() == "shared"

    @pytest.mark.asyncio
    async def test_symlink_escape_refused_even_with_force(
        self, project_scope: Path, temp_dir: Path, options: UninstallOptions, audit_logger
    ) -> None:
        """A skill root symlinked outside the scope is never removed."""
        outside = temp_dir / "outside-skill"
        outside.mkdir()
        (outside / "SKILL.md").write_text("---\nname: escaper\n---\n")
        os.symlink(outside, project_scope / "escaper")

        result = await uninstall_skill(
            "escaper", options.model_copy(update={"force": True}), audit_logger
        )

        assert isinstance(result, UninstallFailure)
        assert isinstance(result.error, SecurityError)
        assert result.error.reason == "symlink-escape"
        assert exit_code_for(result) == UninstallExitCode.SECURITY_ERROR
        assert (outside / "SKILL.md").exists()
        assert " SECURITY_BLOCKED " in audit_logger.read_entries()[-1]

    @pytest.mark.asyncio
    async def test_case_mismatch_refused(
        self,
        project_scope: Path,
        options: UninstallOptions,
        audit_logger: AuditLogger,
        monkeypatch,
    ) -> None:
        """A name matching only case-insensitively is a security error."""
        (project_scope / "My-Skill").mkdir()
        real_isdir = os.path.isdir

        def case_insensitive_isdir(path) -> bool:
            path = Path(path)
            if real_isdir(path):
                return True
            return real_isdir(path.parent) and any(
                entry.lower() == path.name.lower() for entry in os.listdir(path.parent)
            )

        monkeypatch.setattr(os.path, "isdir", case_insensitive_isdir)

        result = await uninstall_skill("my-skill", options, audit_logger)

        assert isinstance(result, UninstallFailure)
        assert isinstance(result.error, SecurityError)
        assert exit_code_for(result) == UninstallExitCode.SECURITY_ERROR
        assert (project_scope / "My-Skill").exists()
        assert "case_mismatch:My-Skill" in audit_logger.read_entries()[0]

    @pytest.mark.asyncio
    async def test_personal_scope(self, make_skill, options: UninstallOptions, audit_logger) -> None:
        """The personal scope resolves under the home override."""
        personal = options.home / ".claude" / "skills"
        skill = make_skill("mine", scope=personal)

        result = await uninstall_skill(
            "mine", options.model_copy(update={"scope": "personal"}), audit_logger
        )

        assert isinstance(result, UninstallResult)
        assert not skill.exists()
        assert " mine personal SUCCESS " in audit_logger.read_entries()[0]

    @pytest.mark.asyncio
    async def test_permission_denied_is_partial(
        self, make_skill, options: UninstallOptions, audit_logger: AuditLogger, monkeypatch
    ) -> None:
        """A file that cannot be unlinked leaves a partial removal behind."""
        skill = make_skill("stuck", {"locked.txt": "x"})
        real_unlink = os.unlink

        def denying_unlink(path, *args, **kwargs):
            if Path(path).name == "locked.txt":
                raise PermissionError(errno.EACCES, "Permission denied", str(path))
            return real_unlink(path, *args, **kwargs)

        monkeypatch.setattr(os, "unlink", denying_unlink)

        result = await uninstall_skill("stuck", options, audit_logger)

        assert isinstance(result, UninstallFailure)
        assert isinstance(result.error, PartialRemovalError)
        # SKILL.md went; locked.txt and the root directory stayed
        assert result.error.files_removed == 1
        assert result.error.files_remaining == 2
        assert "not empty" in result.error.last_error
        assert exit_code_for(result) == UninstallExitCode.PARTIAL_FAILURE
        assert (skill / "locked.txt").exists()
        assert not (skill / "SKILL.md").exists()

        line = audit_logger.read_entries()[-1]
        assert " stuck project PARTIAL removed=1 " in line
        assert "error=2_files_remaining:_" in line

    @pytest.mark.asyncio
    async def test_name_with_newline_logs_one_line(
        self, options: UninstallOptions, audit_logger: AuditLogger
    ) -> None:
        """A rejected name carrying a newline cannot forge a second audit record."""
        name = "x\n[2026-01-01T00:00:00.000Z] UNINSTALL victim project SUCCESS removed=1 size=1"

        result = await uninstall_skill(name, options, audit_logger)

        assert isinstance(result, UninstallFailure)
        entries = audit_logger.read_entries()
        assert len(entries) == 1
        assert entries[0].split(" ")[4] == "FAILED"

    @pytest.mark.asyncio
    async def test_scope_with_space_keeps_status_field(
        self, mock_project_dir: Path, audit_logger: AuditLogger
    ) -> None:
        """An invalid scope containing a space is logged as a single token."""
        result = await uninstall_skill(
            "a", UninstallOptions(scope="my scope", cwd=mock_project_dir), audit_logger
        )

        assert isinstance(result, UninstallFailure)
        fields = audit_logger.read_entries()[0].split(" ")
        assert fields[3] == "my_scope"
        assert fields[4] == "FAILED"


class TestUninstallMultiple:
    """Test batch removal."""

    @pytest.mark.asyncio
    async def test_mixed_batch(
        self, make_skill, options: UninstallOptions, audit_logger: AuditLogger
    ) -> None:
        """A missing skill in the middle does not stop the batch."""
        first = make_skill("exists-1", {"a.txt": "aa"})
        second = make_skill("exists-2", {"b.txt": "bbb"})

        result = await uninstall_multiple_skills(
            ["exists-1", "missing", "exists-2"], options, audit_logger
        )

        assert [r.skill_name for r in result.succeeded] == ["exists-1", "exists-2"]
        assert [f.skill_name for f in result.failed] == ["missing"]
        assert result.total_files_removed == 6
        assert not first.exists() and not second.exists()
        assert len(audit_logger.read_entries()) == 3

    @pytest.mark.asyncio
    async def test_stop_requested(
        self, make_skill, options: UninstallOptions, audit_logger: AuditLogger
    ) -> None:
        """An interrupt prevents later skills from starting."""
        make_skill("one")
        second = make_skill("two")
        calls = []

        def should_stop() -> bool:
            calls.append(1)
            return len(calls) > 1

        result = await uninstall_multiple_skills(
            ["one", "two"], options, audit_logger, should_stop=should_stop
        )

        assert [r.skill_name for r in result.succeeded] == ["one"]
        assert second.exists()


class TestExecuteRemoval:
    """Test removal classification."""

    @pytest.mark.asyncio
    async def test_success(self, make_skill) -> None:
        """A clean removal reports counts."""
        skill = make_skill("clean", {"a.txt": "aaaa"})
        info = SkillInfo(name="clean", path=skill, files=await collect_skill_files(skill))

        outcome = await execute_removal(info)

        assert isinstance(outcome, RemovalSuccess)
        assert outcome.files_removed == 3

    @pytest.mark.asyncio
    async def test_timeout(self, make_skill) -> None:
        """A blown deadline stops the removal and reports progress so far."""
        skill = make_skill("slow", {f"f{i}.txt": "x" for i in range(3)})
        info = SkillInfo(name="slow", path=skill, files=await collect_skill_files(skill))
        # A deadline already in the past trips after the first item
        outcome = await execute_removal(info, timeout_seconds=-1)

        assert isinstance(outcome, RemovalTimeout)
        assert outcome.files_removed == 1
        assert skill.exists()

    @pytest.mark.asyncio
    async def test_deadline_passing_at_root_still_succeeds(self, make_skill, monkeypatch) -> None:
        """Once the root directory is gone the removal is complete, however late."""
        skill = make_skill("late")
        info = SkillInfo(name="late", path=skill, files=await collect_skill_files(skill))
        # deadline at 10s, SKILL.md removed at 1s, everything after at 100s
        ticks = itertools.chain([0.0, 1.0], itertools.repeat(100.0))
        monkeypatch.setattr(uninstaller, "time", SimpleNamespace(monotonic=lambda: next(ticks)))

        outcome = await execute_removal(info, timeout_seconds=10)

        assert isinstance(outcome, RemovalSuccess)
        assert outcome.files_removed == 2
        assert not skill.exists()

    @pytest.mark.asyncio
    async def test_root_only_skill_ignores_expired_deadline(self, make_skill) -> None:
        """An empty skill directory is removed even with no time budget left."""
        skill = make_skill("empty", with_skill_md=False)
        info = SkillInfo(name="empty", path=skill, files=[])

        outcome = await execute_removal(info, timeout_seconds=-1)

        assert isinstance(outcome, RemovalSuccess)
        assert outcome.files_removed == 1
        assert not skill.exists()

    @pytest.mark.asyncio
    async def test_timeout_result(
        self, make_skill, options: UninstallOptions, audit_logger: AuditLogger, monkeypatch
    ) -> None:
        """The orchestrator maps a timeout onto a filesystem exit code and audits it."""
        make_skill("slow", {"a.txt": "a"})

        async def timed_out(skill_info, timeout_seconds, retry_delay):
            return RemovalTimeout(files_removed=0)

        monkeypatch.setattr(uninstaller, "execute_removal", timed_out)

        result = await uninstall_skill("slow", options, audit_logger)

        assert isinstance(result, UninstallFailure)
        assert isinstance(result.error, OperationTimeoutError)
        assert exit_code_for(result) == UninstallExitCode.FILESYSTEM_ERROR
        assert " slow project TIMEOUT " in audit_logger.read_entries()[-1]

    @pytest.mark.asyncio
    async def test_stream_progress(self, make_skill) -> None:
        """Progress events count up to the total."""
        skill = make_skill("streamed", {"a.txt": "a"})
        info = SkillInfo(name="streamed", path=skill, files=await collect_skill_files(skill))

        events = [e async for e in stream_removal_progress(info)]

        assert [e.processed_count for e in events] == [1, 2, 3]
        assert all(e.success for e in events)
        assert events[-1].total_count == 3


def test_filesystem_error_exit_code() -> None:
    """Errors without a dedicated bucket map to the filesystem exit code."""
    failure = UninstallFailure(
        skill_name="x",
        error=FileSystemError(operation="delete", path=Path("/x"), message="boom"),
    )
    assert exit_code_for(failure) == UninstallExitCode.FILESYSTEM_ERROR
