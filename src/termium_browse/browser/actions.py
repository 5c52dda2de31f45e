"""Command dispatcher - one-shot browser actions against the active page.

Every command follows the same shape: require an active page, make exactly
one driver call, and report the outcome as a ``Result``. Driver failures
are converted at this boundary; nothing is retried or rolled back.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from termium.logging import LogSpan
from termium_browse.browser.capture import capture_frame
from termium_browse.errors import BrowserError, CaptureFailure, CommandFailure, NoActiveSession
from termium_browse.result import Result

if TYPE_CHECKING:
    from playwright.async_api import Page

    from termium_browse.browser.core import BrowserSessionManager
    from termium_browse.state import Frame


@dataclass(frozen=True)
class CommandSpec:
    """Acknowledgement and failure wording for one command."""

    name: str
    ack: str
    failure: str


COMMANDS: dict[str, CommandSpec] = {
    spec.name: spec
    for spec in (
        CommandSpec("open_tab", "New tab opened", "Failed to open a new tab"),
        CommandSpec("set_viewport", "Viewport set", "Failed to set viewport"),
        CommandSpec("click_mouse", "Mouse clicked", "Failed to click mouse"),
        CommandSpec("send_keyboard_input", "Keyboard input sent", "Failed to send keyboard input"),
        CommandSpec("navigate_to_url", "Navigated to URL", "Failed to navigate to URL"),
        CommandSpec("take_screenshot", "Screenshot taken", "Failed to take screenshot"),
        CommandSpec("stream_screenshots", "Stream ended", "Failed to stream screenshots"),
    )
}


def failure_message(command: str, error: BrowserError) -> str:
    """Human-readable failure text, e.g. ``Failed to click mouse: No active page``."""
    return f"{COMMANDS[command].failure}: {error.message}"


class CommandDispatcher:
    """Runs one-shot commands against the session's active page."""

    def __init__(self, session: BrowserSessionManager) -> None:
        self.session = session

    async def open_tab(self) -> Result[str]:
        """Open a new tab and make it the active page."""
        try:
            await self.session.open_tab()
        except BrowserError as e:
            return Result.failure(e)
        return Result.success(COMMANDS["open_tab"].ack)

    async def set_viewport(self, width: int, height: int) -> Result[str]:
        return await self._dispatch(
            "set_viewport",
            lambda page: page.set_viewport_size({"width": width, "height": height}),
            width=width,
            height=height,
        )

    async def click_mouse(self, x: float, y: float) -> Result[str]:
        return await self._dispatch("click_mouse", lambda page: page.mouse.click(x, y), x=x, y=y)

    async def send_keyboard_input(self, content: str) -> Result[str]:
        return await self._dispatch(
            "send_keyboard_input",
            lambda page: page.keyboard.type(content),
            length=len(content),
        )

    async def navigate_to_url(self, url: str) -> Result[str]:
        return await self._dispatch("navigate_to_url", lambda page: page.goto(url), url=url)

    async def take_screenshot(self) -> Result[Frame]:
        """Capture the active page as a single image."""
        config = self.session.config
        with LogSpan(span="browser.take_screenshot", format=config.screenshot_format) as s:
            page = self.session.current_page()
            if page is None:
                s.add("error", "no active page")
                return Result.failure(NoActiveSession())
            try:
                frame = await capture_frame(
                    self.session,
                    page,
                    image_format=config.screenshot_format,
                    quality=config.stream_quality if config.screenshot_format == "jpeg" else None,
                )
            except CaptureFailure as e:
                s.add("error", e.message)
                return Result.failure(e)
            s.add("bytes", len(frame))
            return Result.success(frame)

    async def _dispatch(
        self,
        command: str,
        action: Callable[[Page], Awaitable[Any]],
        **attrs: Any,
    ) -> Result[str]:
        """Check the active page, run one driver call, convert the outcome."""
        with LogSpan(span=f"browser.{command}", **attrs) as s:
            page = self.session.current_page()
            if page is None:
                s.add("error", "no active page")
                return Result.failure(NoActiveSession())

            try:
                await self.session.call_driver(action(page))
            except Exception as e:
                error = CommandFailure.from_exception(e)
                s.add("error", error.message)
                return Result.failure(error)

            return Result.success(COMMANDS[command].ack)
