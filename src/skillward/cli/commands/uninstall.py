"""
skillward uninstall - Remove installed skills.

Usage:
    skillward uninstall docs-helper
    skillward uninstall docs-helper code-review --scope personal --yes
    skillward uninstall docs-helper --dry-run
"""

import asyncio
import signal
from typing import Annotated

import typer

from skillward.audit import AuditLogger, AuditStatus, failure_entry
from skillward.cli.output import (
    console,
    print_dry_run_preview,
    print_error,
    print_info,
    print_uninstall_failure,
    print_uninstall_result,
    print_warning,
)
from skillward.config import Config, ConfigurationError, load_config
from skillward.skills import (
    DryRunPreview,
    MultiUninstallResult,
    UninstallExitCode,
    UninstallFailure,
    UninstallOptions,
    exit_code_for,
    uninstall_multiple_skills,
    uninstall_skill,
)
from skillward.storage import format_file_size


def build_options(
    config: Config,
    scope: str | None,
    force: bool,
    dry_run: bool,
) -> UninstallOptions:
    """Merge command-line flags over configured defaults."""
    return UninstallOptions(
        scope=scope if scope is not None else config.general.default_scope,
        force=force,
        dry_run=dry_run,
        timeout_seconds=config.uninstall.timeout_seconds,
        max_files=config.uninstall.max_files,
        max_size_bytes=config.uninstall.max_size_bytes,
        locked_retry_delay=config.uninstall.locked_retry_delay,
    )


def batch_exit_code(result: MultiUninstallResult, interrupted: bool = False) -> UninstallExitCode:
    """
    Collapse a batch into one exit code.

    A batch where everything failed the same way reports that failure;
    any mix of outcomes is a partial failure.
    """
    if interrupted:
        return UninstallExitCode.CANCELLED
    if not result.failed:
        return UninstallExitCode.SUCCESS

    codes = {exit_code_for(failure) for failure in result.failed}
    if not result.succeeded and len(codes) == 1:
        return codes.pop()
    return UninstallExitCode.PARTIAL_FAILURE


def _load_config() -> Config:
    try:
        return load_config()
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(UninstallExitCode.FILESYSTEM_ERROR)


def _preview(names: list[str], options: UninstallOptions, audit_logger: AuditLogger) -> int:
    result = MultiUninstallResult()

    for name in names:
        outcome = asyncio.run(uninstall_skill(name, options, audit_logger))
        if isinstance(outcome, DryRunPreview):
            print_dry_run_preview(outcome)
        elif isinstance(outcome, UninstallFailure):
            print_uninstall_failure(outcome)
            result.failed.append(outcome)

    if result.failed and len(result.failed) < len(names):
        return UninstallExitCode.PARTIAL_FAILURE
    return batch_exit_code(result)


def uninstall(
    names: Annotated[
        list[str],
        typer.Argument(
            help="Skill name(s) to remove.",
        ),
    ],
    scope: Annotated[
        str | None,
        typer.Option(
            "--scope",
            "-s",
            help="Scope to remove from: project or personal.",
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option(
            "--force",
            "-f",
            help="Remove even if the skill looks unusual (missing SKILL.md, hard links, ...).",
        ),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            "-n",
            help="Show what would be removed without removing anything.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Only print errors.",
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
    """Remove one or more installed skills."""
    config = _load_config()
    options = build_options(config, scope, force, dry_run)
    audit_logger = AuditLogger.from_config(config.audit)

    if dry_run:
        raise typer.Exit(_preview(names, options, audit_logger))

    if not yes:
        console.print(
            f"[yellow]This will permanently remove {', '.join(names)} "
            f"from the {options.scope} scope.[/yellow]"
        )
        if not typer.confirm("Are you sure?"):
            for name in names:
                audit_logger.log_uninstall(
                    failure_entry(
                        name, str(options.scope), AuditStatus.CANCELLED, "Cancelled by user"
                    )
                )
            console.print("[dim]Cancelled.[/dim]")
            raise typer.Exit(UninstallExitCode.CANCELLED)

    interrupted = False

    def _on_interrupt(signum, frame) -> None:
        nonlocal interrupted
        interrupted = True
        print_warning("Interrupted. Finishing the current skill before stopping.")

    previous_handler = signal.signal(signal.SIGINT, _on_interrupt)
    try:
        result = asyncio.run(
            uninstall_multiple_skills(names, options, audit_logger, should_stop=lambda: interrupted)
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    for outcome in result.succeeded:
        if not quiet:
            print_uninstall_result(outcome)
    for failure in result.failed:
        print_uninstall_failure(failure)

    if not quiet and len(names) > 1:
        print_info(
            f"{len(result.succeeded)} removed, {len(result.failed)} failed "
            f"({result.total_files_removed} items, "
            f"{format_file_size(result.total_bytes_freed)} freed)"
        )

    stopped_early = interrupted and len(result.succeeded) + len(result.failed) < len(names)
    raise typer.Exit(batch_exit_code(result, interrupted=stopped_early))
