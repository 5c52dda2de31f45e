"""Browser session manager - connection lifecycle and the active page.

Owns the single browser connection (launched here or attached over CDP) and
the single active page that every command and stream targets.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Coroutine
from typing import TYPE_CHECKING, Any, TypeVar

from loguru import logger
from playwright.async_api import async_playwright

from termium.logging import LogSpan
from termium_browse.config import ServerConfig
from termium_browse.errors import BrowserUnavailable
from termium_browse.state import BrowserState, ConnectionMode, ConnectionState

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page

T = TypeVar("T")


def resolve_cdp_endpoint(address: str) -> str:
    """Turn ``host:port`` into a CDP discovery URL; full URLs pass through."""
    if "://" in address:
        return address
    return f"http://{address}"


class BrowserSessionManager:
    """The browser connection and its active page.

    One instance is shared by the dispatcher and every stream. ``open_tab``
    is deliberately unlocked: when calls overlap, the page whose creation
    completes last becomes the active page.
    """

    def __init__(self, config: ServerConfig | None = None, state: BrowserState | None = None) -> None:
        self.config = config or ServerConfig()
        self.state = state or BrowserState()
        self._connect_lock = asyncio.Lock()
        self._background: set[asyncio.Task[None]] = set()

    @property
    def connected(self) -> bool:
        return self.state.browser is not None and self.state.connection == ConnectionState.CONNECTED

    def current_page(self) -> Page | None:
        """Return the active page, or None when no tab is open."""
        return self.state.page

    async def call_driver(self, awaitable: Awaitable[T], *, timeout: float | None = None) -> T:
        """Await a driver call under the configured deadline.

        Raises:
            TimeoutError: If the call outlives ``driver_timeout`` seconds
        """
        limit = self.config.driver_timeout if timeout is None else timeout
        if not limit:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=limit)

    async def ensure_browser(self, address: str | None = None) -> Browser:
        """Connect to the browser if not already connected.

        Attaches to ``address`` (or the configured ``browser_address``) when
        given, otherwise launches a new browser that this process owns.

        Raises:
            BrowserUnavailable: If the attach or launch fails
        """
        if self.connected:
            return self.state.browser  # type: ignore[return-value]

        async with self._connect_lock:
            if self.connected:
                return self.state.browser  # type: ignore[return-value]

            address = address or self.config.browser_address
            mode = ConnectionMode.ATTACHED if address else ConnectionMode.OWNED
            browser_state = self.state
            browser_state.connection = ConnectionState.CONNECTING
            browser_state.error = None

            with LogSpan(span="browser.connect", mode=mode.value, address=address) as s:
                try:
                    if browser_state.playwright is None:
                        browser_state.playwright = await self.call_driver(async_playwright().start())
                    chromium = browser_state.playwright.chromium

                    if address:
                        browser = await self.call_driver(
                            chromium.connect_over_cdp(resolve_cdp_endpoint(address))
                        )
                    else:
                        browser = await self.call_driver(
                            chromium.launch(
                                headless=self.config.headless,
                                args=list(self.config.browser_args),
                            )
                        )
                except Exception as e:
                    browser_state.connection = ConnectionState.ERROR
                    browser_state.error = str(e) or type(e).__name__
                    action = f"attach to browser at {address}" if address else "launch browser"
                    raise BrowserUnavailable(f"Could not {action}: {browser_state.error}") from e

                browser_state.browser = browser
                browser_state.mode = mode
                browser_state.connection = ConnectionState.CONNECTED
                browser.on("disconnected", self._on_browser_disconnected)
                s.add("version", browser.version)

            return browser

    async def open_tab(self) -> Page:
        """Open a new page and make it the active page.

        The previous active page is dropped; it is closed in the background
        when ``close_replaced_pages`` is set.

        Raises:
            BrowserUnavailable: If no browser is reachable or the page
                cannot be created
        """
        with LogSpan(span="browser.tab.open") as s:
            browser = await self.ensure_browser()
            try:
                page = await self.call_driver(self._new_page(browser))
            except Exception as e:
                raise BrowserUnavailable(f"Could not open page: {str(e) or type(e).__name__}") from e

            previous = self.state.page
            self.state.page = page
            self.state.tabs_opened += 1
            page.on("close", self._on_page_close)
            s.add(mode=self.state.mode.value if self.state.mode else None, tabs=self.state.tabs_opened)

            if previous is not None and previous is not page and self.config.close_replaced_pages:
                self._spawn(self._close_replaced(previous))
                s.add("closedPrevious", True)

            return page

    async def _new_page(self, browser: Browser) -> Page:
        # Attached browsers already have a default context with the user's state
        if self.state.mode is ConnectionMode.ATTACHED and browser.contexts:
            return await browser.contexts[0].new_page()
        return await browser.new_page()

    async def _close_replaced(self, page: Page) -> None:
        try:
            await self.call_driver(page.close())
        except Exception as e:
            logger.debug(f"Closing replaced page failed: {e}")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _on_page_close(self, page: Page) -> None:
        """Forget the active page when it is closed from elsewhere."""
        if self.state.page is page:
            self.state.page = None
            logger.debug("Active page closed")

    def _on_browser_disconnected(self, browser: Browser) -> None:
        """Drop the connection and page when the browser goes away."""
        if self.state.browser is browser:
            self.state.browser = None
            self.state.page = None
            self.state.mode = None
            self.state.connection = ConnectionState.DISCONNECTED
            logger.debug("Browser disconnected")

    async def shutdown(self) -> None:
        """Close an owned browser, or disconnect from an attached one."""
        browser_state = self.state
        mode = browser_state.mode

        with LogSpan(span="browser.shutdown", mode=mode.value if mode else None):
            if self._background:
                await asyncio.gather(*self._background, return_exceptions=True)

            browser = browser_state.browser
            browser_state.page = None
            browser_state.browser = None
            browser_state.mode = None
            browser_state.connection = ConnectionState.DISCONNECTED

            # For CDP-attached browsers close() only disconnects
            if browser is not None:
                try:
                    await self.call_driver(browser.close())
                except Exception as e:
                    logger.warning(f"Browser close failed: {e}")

            playwright = browser_state.playwright
            browser_state.playwright = None
            if playwright is not None:
                await playwright.stop()
