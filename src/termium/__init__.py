"""termium - remote control for a single browser session.

Features:
- One shared browser page driven over a WebSocket protocol
- One-shot commands: open tab, viewport, click, type, navigate, screenshot
- Cancellable, backpressure-aware screenshot streaming

Usage:
    # Start the server on the default Unix socket
    termium-serve

    # Attach to a running browser and listen on TCP
    termium-serve --browser 127.0.0.1:9222 --tcp 127.0.0.1:50051

    # Drive it from the command line
    termium-browse https://example.com --output page.png
"""

from importlib.metadata import version

__version__ = version("termium")

__all__ = ["__version__"]
