"""CLI command modules."""

from skillward.cli.commands import audit, uninstall, update

__all__ = ["audit", "uninstall", "update"]
