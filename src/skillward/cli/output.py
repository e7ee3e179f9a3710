"""
Output formatting utilities for the CLI.

Provides consistent output formatting across all CLI commands.
"""

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from skillward.skills.models import (
    DryRunPreview,
    UninstallFailure,
    UninstallResult,
    UpdateDryRunPreview,
    UpdateRollbackFailed,
    UpdateRolledBack,
    UpdateSuccess,
    describe_error,
)
from skillward.storage.enumerator import format_file_size

# Global console instance
console = Console()

# Dry-run file listings are cut off after this many entries
MAX_PREVIEW_FILES = 50


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]i[/blue] {message}")


def print_panel(content: str, title: str | None = None) -> None:
    """Print content in a panel."""
    console.print(Panel(content, title=title))


def print_table(
    headers: list[str],
    rows: list[list[Any]],
    title: str | None = None,
) -> None:
    """Print a table."""
    table = Table(title=title)

    for header in headers:
        table.add_column(header)

    for row in rows:
        table.add_row(*[str(cell) for cell in row])

    console.print(table)


def print_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        print_warning(warning)


def print_dry_run_preview(preview: DryRunPreview) -> None:
    """Show what an uninstall would remove."""
    rows = [
        [
            f.relative_path + ("/" if f.is_directory else ""),
            "symlink" if f.is_symlink else ("dir" if f.is_directory else "file"),
            "" if f.is_directory else format_file_size(f.size),
        ]
        for f in preview.files[:MAX_PREVIEW_FILES]
    ]
    print_table(
        ["Path", "Type", "Size"],
        rows,
        title=f"Dry run: {preview.skill_name} ({preview.path})",
    )
    if len(preview.files) > MAX_PREVIEW_FILES:
        console.print(f"[dim]... and {len(preview.files) - MAX_PREVIEW_FILES} more[/dim]")

    console.print(
        f"Would remove [bold]{len(preview.files) + 1}[/bold] items, "
        f"freeing [bold]{format_file_size(preview.total_size)}[/bold]"
    )
    print_warnings(preview.warnings)


def print_uninstall_result(result: UninstallResult) -> None:
    print_warnings(result.warnings)
    print_success(
        f"Uninstalled [bold]{result.skill_name}[/bold] "
        f"({result.files_removed} items, {format_file_size(result.bytes_freed)} freed)"
    )


def print_uninstall_failure(failure: UninstallFailure) -> None:
    print_error(f"{failure.skill_name}: {describe_error(failure.error)}")


def print_update_preview(preview: UpdateDryRunPreview) -> None:
    """Show the file-level difference an update would make."""
    comparison = preview.comparison
    rows = (
        [["added", path] for path in comparison.added]
        + [["removed", path] for path in comparison.removed]
        + [["modified", path] for path in comparison.modified]
    )
    print_table(
        ["Change", "Path"],
        rows,
        title=f"Dry run: update {preview.skill_name} from {preview.package_path}",
    )
    sign = "+" if comparison.size_change >= 0 else "-"
    console.print(f"Size change: {sign}{format_file_size(abs(comparison.size_change))}")
    print_warnings(preview.warnings)


def print_update_outcome(
    outcome: UpdateSuccess | UpdateRolledBack | UpdateRollbackFailed,
) -> None:
    if isinstance(outcome, UpdateSuccess):
        print_warnings(outcome.warnings)
        print_success(
            f"Updated [bold]{outcome.skill_name}[/bold] "
            f"({outcome.previous_file_count} → {outcome.current_file_count} files)"
        )
        if outcome.backup_path is not None and not outcome.backup_removed:
            print_info(f"Backup kept at {outcome.backup_path}")
    elif isinstance(outcome, UpdateRolledBack):
        print_error(f"Update failed: {outcome.failure_reason}")
        print_warning(
            f"Previous version of {outcome.skill_name} restored from {outcome.backup_path}"
        )
    else:
        print_error(f"Update failed: {outcome.failure_reason}")
        print_error(f"Rollback failed: {outcome.rollback_error}")
        print_panel(
            "\n".join(outcome.recovery_instructions),
            title="[red]Manual recovery required[/red]",
        )
