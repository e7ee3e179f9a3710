"""
Backup management for skill updates.

Before an update replaces an installed skill, the skill is archived to
``<home>/backups/<name>-YYYYMMDD-HHMMSS-<8hex>.skill``. The archive is a
plain zip whose entries live under ``<name>/`` so that it can be restored by
extracting it into the scope root. Only regular files are archived; symlinks
are never followed or stored.

Archives are also how update packages arrive, so the hardened extraction
routine used for restores lives here too.
"""

import asyncio
import logging
import os
import re
import secrets
import shutil
import stat
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from skillward.security.path_verifier import ContainmentViolation, verify_containment
from skillward.storage.enumerator import enumerate_skill_files
from skillward.storage.paths import ensure_directory, get_backups_dir, get_skillward_home

logger = logging.getLogger(__name__)

DIRECTORY_MODE = 0o700
FILE_MODE = 0o600
MAX_COLLISION_RETRIES = 3
MAX_SUFFIX_ATTEMPTS = 100
BACKUP_EXTENSION = ".skill"


class BackupManagerError(Exception):
    """Backup directory or archive could not be used safely."""

    pass


class ArchiveEntryError(BackupManagerError):
    """An archive entry would be written outside its target directory."""

    pass


@dataclass(frozen=True)
class BackupCreated:
    path: Path
    size: int
    file_count: int


@dataclass(frozen=True)
class BackupFailed:
    error: str


BackupResult = BackupCreated | BackupFailed


@dataclass(frozen=True)
class RestoreResult:
    success: bool
    file_count: int = 0
    error: str | None = None


@dataclass(frozen=True)
class BackupInfo:
    path: Path
    timestamp: str
    size: int


def _refuse_symlink(path: Path) -> None:
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return
    if stat.S_ISLNK(st.st_mode):
        raise BackupManagerError(f"Security error: {path} is a symlink")


def get_backup_directory(base_dir: Path | None = None) -> Path:
    """
    Return the backups directory, creating it with mode 0700.

    Refuses to use the data directory or the backups directory when either
    is a symlink.

    Raises:
        BackupManagerError: If either directory is a symlink
    """
    home = Path(base_dir) if base_dir else get_skillward_home()
    backups_dir = get_backups_dir(home)

    _refuse_symlink(home)
    ensure_directory(home, mode=DIRECTORY_MODE)
    _refuse_symlink(backups_dir)
    ensure_directory(backups_dir, mode=DIRECTORY_MODE)

    return backups_dir


def generate_backup_filename(skill_name: str, now: datetime | None = None) -> str:
    """Build ``<name>-YYYYMMDD-HHMMSS-<8hex>.skill``."""
    now = now or datetime.now()
    return f"{skill_name}-{now:%Y%m%d-%H%M%S}-{secrets.token_hex(4)}{BACKUP_EXTENSION}"


def verify_backup_containment(backup_path: str | Path, backups_dir: str | Path) -> bool:
    """Check that a backup path sits strictly inside the backups directory."""
    result = verify_containment(backups_dir, backup_path)
    if isinstance(result, ContainmentViolation):
        return False
    return result.normalized_path != Path(os.path.abspath(backups_dir))


def generate_unique_backup_path(skill_name: str, backups_dir: Path) -> Path:
    """
    Pick a backup path that does not exist yet.

    A few random names are tried first; after that a numeric suffix is
    appended to one more random name.

    Raises:
        BackupManagerError: If no free name could be found
    """
    for _ in range(MAX_COLLISION_RETRIES):
        candidate = backups_dir / generate_backup_filename(skill_name)
        if not os.path.lexists(candidate):
            return candidate
        logger.warning(f"Backup filename collision: {candidate.name}, retrying...")

    base = generate_backup_filename(skill_name)[: -len(BACKUP_EXTENSION)]
    for suffix in range(1, MAX_SUFFIX_ATTEMPTS + 1):
        candidate = backups_dir / f"{base}-{suffix}{BACKUP_EXTENSION}"
        if not os.path.lexists(candidate):
            logger.warning(f"Using suffixed backup path: {candidate.name}")
            return candidate

    raise BackupManagerError(
        f"Unable to generate unique backup filename after {MAX_SUFFIX_ATTEMPTS}+ attempts"
    )


def _write_archive(skill_name: str, members: list[tuple[Path, str]], backup_path: Path) -> None:
    # O_EXCL: never overwrite or follow anything already at the backup path
    fd = os.open(backup_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
    with os.fdopen(fd, "wb") as f, zipfile.ZipFile(f, "w", zipfile.ZIP_DEFLATED) as zf:
        for absolute_path, relative_path in members:
            zf.write(absolute_path, arcname=f"{skill_name}/{relative_path}")
    os.chmod(backup_path, FILE_MODE)


async def create_backup(
    skill_path: str | Path,
    skill_name: str,
    base_dir: Path | None = None,
) -> BackupResult:
    """
    Archive an installed skill into the backups directory.

    Args:
        skill_path: Installed skill directory
        skill_name: Name used for the archive prefix and filename
        base_dir: Data directory override (default: Skillward home)

    Returns:
        BackupCreated or BackupFailed
    """
    skill_path = Path(skill_path)

    try:
        st = await asyncio.to_thread(os.lstat, skill_path)
        if not stat.S_ISDIR(st.st_mode):
            return BackupFailed(f"Skill path is not a directory: {skill_path}")

        backups_dir = await asyncio.to_thread(get_backup_directory, base_dir)
        backup_path = await asyncio.to_thread(generate_unique_backup_path, skill_name, backups_dir)
        if not verify_backup_containment(backup_path, backups_dir):
            return BackupFailed("Security error: Generated backup path escapes backup directory")

        members: list[tuple[Path, str]] = []
        async for info in enumerate_skill_files(skill_path):
            if info.is_directory or info.is_symlink:
                continue
            members.append((info.absolute_path, Path(info.relative_path).as_posix()))

        await asyncio.to_thread(_write_archive, skill_name, members, backup_path)
        size = (await asyncio.to_thread(os.stat, backup_path)).st_size
    except (OSError, zipfile.BadZipFile, BackupManagerError) as e:
        return BackupFailed(str(e))

    logger.info(f"Backed up {skill_name} ({len(members)} files) to {backup_path}")
    return BackupCreated(path=backup_path, size=size, file_count=len(members))


def _is_symlink_entry(info: zipfile.ZipInfo) -> bool:
    return stat.S_ISLNK(info.external_attr >> 16)


def check_archive_entry(name: str) -> str | None:
    """
    Return a reason an archive entry name is unsafe, or None.

    Rejects absolute names, drive letters, ``..`` segments, and NUL bytes.
    """
    if "\0" in name:
        return f"Archive contains null byte in path: {name!r}"
    normalized = name.replace("\\", "/")
    if normalized.startswith("/") or re.match(r"^[a-zA-Z]:", normalized):
        return f"Archive contains absolute path: {name}"
    if ".." in normalized.split("/"):
        return f"Archive contains path traversal: {name}"
    return None


def extract_archive(zf: zipfile.ZipFile, target_dir: Path) -> int:
    """
    Extract every entry of an open archive into ``target_dir``.

    Each destination is checked for containment before it is written, and
    symlink entries are refused. Existing files are never followed: the
    parent directory of each entry is re-checked with ``realpath``.

    Returns:
        Number of regular files written

    Raises:
        ArchiveEntryError: On the first unsafe entry
    """
    target_dir = Path(os.path.abspath(target_dir))
    real_target = os.path.realpath(target_dir)
    written = 0

    for info in zf.infolist():
        reason = check_archive_entry(info.filename)
        if reason:
            raise ArchiveEntryError(reason)
        if _is_symlink_entry(info):
            raise ArchiveEntryError(f"Archive contains symlink entry: {info.filename}")

        destination = target_dir / info.filename.replace("\\", "/")
        containment = verify_containment(target_dir, destination)
        if isinstance(containment, ContainmentViolation):
            raise ArchiveEntryError(
                f"Archive entry escapes target directory: {info.filename} ({containment.reason})"
            )

        if info.is_dir():
            destination.mkdir(parents=True, exist_ok=True)
            continue

        destination.parent.mkdir(parents=True, exist_ok=True)
        real_parent = os.path.realpath(destination.parent)
        if real_parent != real_target and not real_parent.startswith(real_target + os.sep):
            raise ArchiveEntryError(f"Archive entry resolves outside target: {info.filename}")

        fd = os.open(destination, os.O_WRONLY | os.O_CREAT | os.O_TRUNC | os.O_NOFOLLOW, 0o644)
        with zf.open(info) as src, os.fdopen(fd, "wb") as dst:
            shutil.copyfileobj(src, dst)
        written += 1

    return written


def _restore(backup_path: Path, target_dir: Path) -> int:
    with zipfile.ZipFile(backup_path) as zf:
        return extract_archive(zf, target_dir)


async def restore_from_backup(
    backup_path: str | Path,
    target_dir: str | Path,
    base_dir: Path | None = None,
) -> RestoreResult:
    """
    Restore a backup by extracting it into the scope root.

    The archive holds ``<name>/...`` entries, so ``target_dir`` is the
    parent of the skill directory.

    Args:
        backup_path: Archive created by create_backup()
        target_dir: Scope root to extract into
        base_dir: Data directory override (default: Skillward home)

    Returns:
        RestoreResult
    """
    backup_path = Path(backup_path)

    try:
        backups_dir = await asyncio.to_thread(get_backup_directory, base_dir)
        if not verify_backup_containment(backup_path, backups_dir):
            return RestoreResult(
                False, error=f"Security error: Backup path escapes backup directory: {backup_path}"
            )

        st = await asyncio.to_thread(os.lstat, backup_path)
        if stat.S_ISLNK(st.st_mode):
            return RestoreResult(
                False, error=f"Security error: Backup file is a symlink: {backup_path}"
            )
        if not stat.S_ISREG(st.st_mode):
            return RestoreResult(
                False, error=f"Backup file not found or is not a regular file: {backup_path}"
            )

        file_count = await asyncio.to_thread(_restore, backup_path, Path(target_dir))
    except (OSError, zipfile.BadZipFile, BackupManagerError) as e:
        return RestoreResult(False, error=str(e))

    logger.info(f"Restored {file_count} files from {backup_path}")
    return RestoreResult(True, file_count=file_count)


def cleanup_backup(backup_path: str | Path, base_dir: Path | None = None) -> None:
    """
    Delete a backup archive.

    Raises:
        BackupManagerError: If the path is outside the backups directory
            or is not a regular file
        OSError: If the unlink itself fails
    """
    backup_path = Path(backup_path)
    backups_dir = get_backup_directory(base_dir)

    if not verify_backup_containment(backup_path, backups_dir):
        raise BackupManagerError(
            f"Security error: Cannot delete file outside backup directory: {backup_path}"
        )

    st = os.lstat(backup_path)
    if stat.S_ISLNK(st.st_mode):
        raise BackupManagerError(f"Security error: Cannot delete symlink: {backup_path}")
    if not stat.S_ISREG(st.st_mode):
        raise BackupManagerError(f"Cannot delete: {backup_path} is not a regular file")

    os.unlink(backup_path)


def list_backups(skill_name: str, base_dir: Path | None = None) -> list[Path]:
    """List backups for a skill, newest first."""
    backups_dir = get_backup_directory(base_dir)
    pattern = re.compile(rf"^{re.escape(skill_name)}-\d{{8}}-\d{{6}}-[a-f0-9]+(-\d+)?\.skill$")

    try:
        entries = os.listdir(backups_dir)
    except OSError as e:
        logger.debug(f"Cannot list {backups_dir}: {e}")
        return []

    return [backups_dir / name for name in sorted(filter(pattern.match, entries), reverse=True)]


def get_backup_info(backup_path: str | Path) -> BackupInfo:
    """Read size and creation time of a backup; the time comes from its filename."""
    backup_path = Path(backup_path)
    st = os.stat(backup_path)

    match = re.search(r"(\d{8})-(\d{6})", backup_path.name)
    if match:
        d, t = match.groups()
        timestamp = f"{d[:4]}-{d[4:6]}-{d[6:]}T{t[:2]}:{t[2:4]}:{t[4:]}"
    else:
        timestamp = datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat()

    return BackupInfo(path=backup_path, timestamp=timestamp, size=st.st_size)
