"""
skillward audit - Audit log access commands.

Usage:
    skillward audit tail
    skillward audit tail -n 50
    skillward audit path
"""

from typing import Annotated

import typer
from rich.console import Console

from skillward.audit import AuditLogger
from skillward.config import ConfigurationError, load_config

app = typer.Typer(
    name="audit",
    help="Audit log access.",
)

console = Console()


def _get_logger() -> AuditLogger:
    try:
        return AuditLogger.from_config(load_config().audit)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(2)


@app.command()
def tail(
    lines: Annotated[
        int,
        typer.Option(
            "--lines",
            "-n",
            help="Number of lines to show.",
        ),
    ] = 20,
) -> None:
    """View recent uninstall and update records."""
    entries = _get_logger().read_entries(limit=lines)

    if not entries:
        console.print("[dim]No audit entries yet.[/dim]")
        return

    for line in entries:
        # Audit lines carry paths with brackets; print them verbatim
        console.print(line, markup=False, highlight=False, soft_wrap=True)


@app.command()
def path() -> None:
    """Show the audit log location."""
    console.print(str(_get_logger().log_path), markup=False, highlight=False, soft_wrap=True)
