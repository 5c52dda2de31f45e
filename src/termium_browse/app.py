"""termium-browse - drive a running termium server from the command line."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

import termium
from termium._cli import console
from termium.logging import LogSpan, configure_logging
from termium.paths import DEFAULT_SOCKET_PATH

from .client import BrowserControlClient, RemoteError

APP_NAME = "termium-browse"


def parse_viewport(value: str) -> tuple[int, int]:
    """Parse ``WIDTHxHEIGHT`` (e.g. ``1280x720``)."""
    width, sep, height = value.lower().partition("x")
    if not sep or not width.isdigit() or not height.isdigit() or not int(width) or not int(height):
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {value!r}")
    return int(width), int(height)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=APP_NAME, description="Control a termium browser session")
    parser.add_argument("url", nargs="?", help="URL to open in a new tab")
    parser.add_argument("--viewport", type=parse_viewport, metavar="WxH", help="Viewport size, e.g. 1280x720")
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=Path("screenshot.png"),
        help="Where to write the screenshot (default: screenshot.png)",
    )
    parser.add_argument("--stream-fps", type=int, metavar="N", help="Stream frames at N fps instead of one screenshot")
    parser.add_argument(
        "--duration",
        type=float,
        default=5.0,
        metavar="S",
        help="Seconds to stream for (default: 5)",
    )
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--tcp", metavar="HOST:PORT", help="Connect over TCP")
    target.add_argument(
        "--socket",
        default=DEFAULT_SOCKET_PATH,
        metavar="PATH",
        help=f"Connect over a Unix socket (default: {DEFAULT_SOCKET_PATH})",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


async def _collect_stream(client: BrowserControlClient, fps: int, duration: float) -> tuple[int, int]:
    """Stream for ``duration`` seconds; return (frames, bytes)."""
    frames = 0
    total = 0
    subscription = await client.stream_screenshots(fps=fps)

    async def _consume() -> None:
        nonlocal frames, total
        async for frame in subscription:
            frames += 1
            total += len(frame)

    consumer = asyncio.create_task(_consume())
    try:
        await asyncio.wait_for(asyncio.shield(consumer), timeout=duration)
    except TimeoutError:
        await subscription.cancel()
        await consumer
    return frames, total


async def run(args: argparse.Namespace) -> int:
    """Execute the requested actions; returns an exit code."""
    async with BrowserControlClient(tcp=args.tcp, socket_path=args.socket) as client:
        steps = Table(show_header=False, box=None, padding=(0, 1))

        with LogSpan(span="browse.session", url=args.url) as s:
            if args.url:
                steps.add_row("[green]✓[/green]", await client.open_tab())
                steps.add_row("[green]✓[/green]", await client.navigate_to_url(args.url))
            if args.viewport:
                steps.add_row("[green]✓[/green]", await client.set_viewport(*args.viewport))

            if args.stream_fps is not None:
                frames, total = await _collect_stream(client, args.stream_fps, args.duration)
                s.add(frames=frames, bytes=total)
                rate = frames / args.duration if args.duration else 0.0
                steps.add_row(
                    "[green]✓[/green]",
                    f"Streamed {frames} frames ({total / 1024:.1f} KiB, {rate:.1f} fps)",
                )
            else:
                frame = await client.take_screenshot()
                args.output.parent.mkdir(parents=True, exist_ok=True)
                args.output.write_bytes(frame.data)
                s.add(output=str(args.output), bytes=len(frame))
                steps.add_row("[green]✓[/green]", f"Screenshot saved to {args.output} ({len(frame)} bytes)")

        console.print(steps)
    return 0


def _print_banner(target: str) -> None:
    lines = Text()
    lines.append("termium browse", style="bold cyan")
    lines.append(f" v{termium.__version__}\n", style="dim")
    lines.append(f"server: {target}", style="dim")
    console.print(Panel(lines, border_style="blue", padding=(0, 1)))


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    configure_logging(log_name="browse", level="DEBUG" if args.debug else "WARNING")
    _print_banner(args.tcp or args.socket)

    try:
        code = asyncio.run(run(args))
    except RemoteError as e:
        console.print(f"[red]✗ {escape(e.message)}[/red] [dim]({e.code})[/dim]")
        code = 1
    except OSError as e:
        console.print(f"[red]✗ Cannot reach server at {args.tcp or args.socket}: {escape(str(e))}[/red]")
        code = 1
    except KeyboardInterrupt:
        console.print("[dim]Interrupted[/dim]")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
