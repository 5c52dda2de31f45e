"""Serve CLI entry point for the termium browser-control server."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape

import termium
from termium._cli import create_cli, version_callback
from termium.logging import configure_logging

app = create_cli(
    "termium-serve",
    "termium server - remote control for a single browser session.",
)

# Console for stderr output (stdout stays clean for scripts)
_stderr_console = Console(stderr=True)


def _print_startup_banner(address: str, browser: str | None) -> None:
    """Print startup message to stderr."""
    _stderr_console.print(f"[bold cyan]termium server[/bold cyan] [dim]v{termium.__version__}[/dim]")
    _stderr_console.print(f"Listening on [bold]{address}[/bold]. Press [bold yellow]Ctrl+C[/bold yellow] to stop.")
    if browser:
        _stderr_console.print(f"[dim]Attaching to browser at {browser} on first tab[/dim]")
    else:
        _stderr_console.print("[dim]Launching a headless browser on first tab[/dim]")


@app.command("validate")
def validate(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to termium.yaml (default: normal config resolution).",
    ),
) -> None:
    """Validate the configuration file and print the effective settings."""
    from termium_browse.config import config_source, load_config

    logger.remove()

    try:
        source = config_source(config)
        server_config = load_config(config)
    except (FileNotFoundError, ValueError) as e:
        _stderr_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(1) from e

    if source is None:
        _stderr_console.print("No configuration file found, using built-in defaults")
    else:
        _stderr_console.print(f"[green]Configuration is valid:[/green] {escape(str(source))}")
    for key, value in server_config.model_dump().items():
        _stderr_console.print(f"  {key}: [cyan]{escape(str(value))}[/cyan]")


@app.callback(invoke_without_command=True)
def serve(
    ctx: typer.Context,
    _version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback("termium-serve", termium.__version__),
        is_eager=True,
        help="Show version and exit.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to termium.yaml configuration file.",
        exists=True,
        readable=True,
    ),
    browser: str | None = typer.Option(
        None,
        "--browser",
        "-b",
        help="Attach to an existing browser at host:port instead of launching one.",
    ),
    tcp: str | None = typer.Option(
        None,
        "--tcp",
        help="Listen on TCP host:port instead of the Unix socket.",
    ),
    socket_path: str | None = typer.Option(
        None,
        "--socket",
        help="Unix socket path to listen on.",
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging."),
    log_file: Path | None = typer.Option(None, "--log-file", help="Write logs to this file."),
) -> None:
    """Run the browser-control server.

    Examples:
        termium-serve
        termium-serve --tcp 127.0.0.1:50051
        termium-serve --browser 127.0.0.1:9222 --debug
    """
    if ctx.invoked_subcommand is not None:
        return

    from termium_browse.config import load_config
    from termium_browse.server import BrowserControlServer

    try:
        server_config = load_config(config)
        overrides: dict[str, object] = {}
        if browser:
            overrides["browser_address"] = browser
        if tcp:
            overrides["tcp"] = tcp
        if socket_path:
            overrides["socket_path"] = socket_path
        if debug:
            overrides["log_level"] = "DEBUG"
        if log_file:
            overrides["log_file"] = str(log_file)
        if overrides:
            server_config = server_config.model_validate({**server_config.model_dump(), **overrides})
    except (FileNotFoundError, ValueError) as e:
        _stderr_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(1) from e

    configure_logging(log_name="serve", level=server_config.log_level, log_file=server_config.log_file)

    server = BrowserControlServer(server_config)
    _print_startup_banner(server_config.tcp or server_config.socket_path, server_config.browser_address)

    try:
        asyncio.run(server.run())
    except OSError as e:
        _stderr_console.print(f"[red]✗ Cannot listen: {escape(str(e))}[/red]")
        raise typer.Exit(1) from e

    _stderr_console.print("[dim]Server stopped[/dim]")


def cli() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    cli()
