"""
Main Typer application for skillward CLI.

This module defines the root CLI application and registers all commands.
"""

import logging
import os
from typing import Annotated

import typer

from skillward import __version__
from skillward.cli.commands import audit, uninstall, update
from skillward.cli.output import print_info

# Create the main Typer app
app = typer.Typer(
    name="skillward",
    help="Safely uninstall and update Claude skills.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        print_info(f"skillward version [green]{__version__}[/green]")
        raise typer.Exit()


def configure_logging(debug: bool = False) -> None:
    """Route diagnostics to stderr; DEBUG when requested or SKILLWARD_DEBUG is set."""
    if debug or os.environ.get("SKILLWARD_DEBUG"):
        level = logging.DEBUG
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


# noinspection PyUnusedLocal
@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option(
            "--debug",
            help="Enable debug logging.",
        ),
    ] = False,
) -> None:
    """
    [bold blue]skillward[/bold blue] - skill package manager

    Removes and replaces installed skills in the project
    ([bold].claude/skills[/bold]) and personal ([bold]~/.claude/skills[/bold])
    scopes, verifying every path before it is deleted.
    """
    configure_logging(debug)


# Register commands
app.command("uninstall")(uninstall.uninstall)
app.command("update")(update.update)
app.add_typer(audit.app, name="audit")


if __name__ == "__main__":
    app()
