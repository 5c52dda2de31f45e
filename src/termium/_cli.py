"""Shared Typer helpers for termium command-line tools."""

from __future__ import annotations

from collections.abc import Callable

import typer
from rich.console import Console

__all__ = ["console", "create_cli", "version_callback"]

# stdout console for user-facing CLI output
console = Console()


def create_cli(name: str, help_text: str, *, no_args_is_help: bool = False) -> typer.Typer:
    """Create a Typer app with termium's common settings."""
    return typer.Typer(
        name=name,
        help=help_text,
        no_args_is_help=no_args_is_help,
        add_completion=False,
        pretty_exceptions_show_locals=False,
    )


def version_callback(name: str, version: str) -> Callable[[bool | None], None]:
    """Build an eager ``--version`` callback that prints and exits."""

    def _callback(value: bool | None) -> None:
        if value:
            console.print(f"{name} {version}")
            raise typer.Exit()

    return _callback
