"""
skillward update - Replace an installed skill with a newer package.

Usage:
    skillward update docs-helper ./docs-helper-2.0.skill
    skillward update docs-helper ./docs-helper-2.0.skill --dry-run
    skillward update docs-helper ./docs-helper-2.0.skill --keep-backup --yes
"""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from skillward.audit import AuditLogger
from skillward.cli.output import (
    console,
    print_error,
    print_update_outcome,
    print_update_preview,
)
from skillward.config import Config, ConfigurationError, load_config
from skillward.skills import (
    UpdateDryRunPreview,
    UpdateExitCode,
    UpdateFailure,
    UpdateOptions,
    describe_error,
    update_exit_code_for,
    update_skill,
)


def build_options(
    config: Config,
    scope: str | None,
    force: bool,
    dry_run: bool,
    no_backup: bool,
    keep_backup: bool,
) -> UpdateOptions:
    """Merge command-line flags over configured defaults."""
    return UpdateOptions(
        scope=scope if scope is not None else config.general.default_scope,
        force=force,
        dry_run=dry_run,
        no_backup=no_backup,
        keep_backup=keep_backup or config.update.keep_backup,
        timeout_seconds=config.update.timeout_seconds,
        lock_stale_seconds=config.update.lock_stale_seconds,
        max_files=config.uninstall.max_files,
        max_size_bytes=config.uninstall.max_size_bytes,
        locked_retry_delay=config.uninstall.locked_retry_delay,
        backup_base_dir=Path(config.audit.base_dir).expanduser() if config.audit.base_dir else None,
    )


def update(
    name: Annotated[
        str,
        typer.Argument(
            help="Installed skill to update.",
        ),
    ],
    package: Annotated[
        Path,
        typer.Argument(
            help="Path to the .skill package.",
        ),
    ],
    scope: Annotated[
        str | None,
        typer.Option(
            "--scope",
            "-s",
            help="Scope of the installed skill: project or personal.",
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Proceed despite hard links or oversized packages.",
        ),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            "-n",
            help="Show what would change without changing anything.",
        ),
    ] = False,
    no_backup: Annotated[
        bool,
        typer.Option(
            "--no-backup",
            help="Do not back up the installed version (rollback becomes impossible).",
        ),
    ] = False,
    keep_backup: Annotated[
        bool,
        typer.Option(
            "--keep-backup",
            help="Keep the backup after a successful update.",
        ),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Skip confirmation.",
        ),
    ] = False,
) -> None:
    """Update an installed skill from a package."""
    try:
        config = load_config()
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(UpdateExitCode.FILESYSTEM_ERROR)

    audit_logger = AuditLogger.from_config(config.audit)

    if not dry_run and not yes:
        console.print(f"[yellow]This will replace '{name}' with the contents of {package}[/yellow]")
        if no_backup:
            console.print(
                "[yellow]No backup will be made; a failed update cannot be rolled back.[/yellow]"
            )
        if not typer.confirm("Are you sure?"):
            console.print("[dim]Cancelled.[/dim]")
            raise typer.Exit(UpdateExitCode.CANCELLED)

    options = build_options(config, scope, force, dry_run, no_backup, keep_backup)
    outcome = asyncio.run(update_skill(name, package, options, audit_logger))

    if isinstance(outcome, UpdateDryRunPreview):
        print_update_preview(outcome)
    elif isinstance(outcome, UpdateFailure):
        print_error(f"{name}: {describe_error(outcome.error)}")
    else:
        print_update_outcome(outcome)

    raise typer.Exit(update_exit_code_for(outcome))
