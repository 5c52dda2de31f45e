"""Browser control package.

Provides the browser session, the one-shot command dispatcher and the
screenshot stream engine, all driven through Playwright.
"""

from __future__ import annotations

from .actions import COMMANDS, CommandDispatcher, failure_message
from .capture import FrameSink, ScreenshotStream, capture_frame, frame_interval_ms
from .core import BrowserSessionManager, resolve_cdp_endpoint

__all__ = [
    "COMMANDS",
    "BrowserSessionManager",
    "CommandDispatcher",
    "FrameSink",
    "ScreenshotStream",
    "capture_frame",
    "failure_message",
    "frame_interval_ms",
    "resolve_cdp_endpoint",
]
