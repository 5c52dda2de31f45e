"""Playwright stand-ins shared by the browse and serve unit tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from termium_browse.browser import BrowserSessionManager
from termium_browse.config import ServerConfig
from termium_browse.errors import TransportFailure
from termium_browse.state import ConnectionMode, ConnectionState, Frame

PNG = b"\x89PNG\r\n\x1a\nfake-png"
JPEG = b"\xff\xd8\xff\xe0fake-jpeg"


class _Emitter:
    def __init__(self) -> None:
        self.handlers: dict[str, list[Callable[..., Any]]] = {}

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def emit(self, event: str) -> None:
        for handler in self.handlers.get(event, []):
            handler(self)


class FakeMouse:
    def __init__(self) -> None:
        self.clicks: list[tuple[float, float]] = []
        self.error: Exception | None = None

    async def click(self, x: float, y: float) -> None:
        if self.error:
            raise self.error
        self.clicks.append((x, y))


class FakeKeyboard:
    def __init__(self) -> None:
        self.typed: list[str] = []

    async def type(self, text: str) -> None:
        self.typed.append(text)


class FakePage(_Emitter):
    """Records every driver call; ``errors`` maps method name -> exception."""

    def __init__(self) -> None:
        super().__init__()
        self.mouse = FakeMouse()
        self.keyboard = FakeKeyboard()
        self.viewport: dict[str, int] | None = None
        self.urls: list[str] = []
        self.closed = False
        self.errors: dict[str, Exception] = {}
        self.screenshots: list[dict[str, Any]] = []
        self.screenshot_delay = 0.0
        self.on_screenshot: Callable[[FakePage], None] | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    def _check(self, name: str) -> None:
        if name in self.errors:
            raise self.errors[name]

    async def set_viewport_size(self, size: dict[str, int]) -> None:
        self._check("set_viewport_size")
        self.viewport = size

    async def goto(self, url: str) -> None:
        self._check("goto")
        self.urls.append(url)

    async def screenshot(self, **options: Any) -> bytes:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.screenshots.append(options)
            if self.screenshot_delay:
                await asyncio.sleep(self.screenshot_delay)
            if self.closed:
                raise RuntimeError("Target page, context or browser has been closed")
            self._check("screenshot")
            if self.on_screenshot is not None:
                self.on_screenshot(self)
            return JPEG if options.get("type") == "jpeg" else PNG
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True
        self.emit("close")


class FakeContext:
    def __init__(self) -> None:
        self.pages: list[FakePage] = []

    async def new_page(self) -> FakePage:
        page = FakePage()
        self.pages.append(page)
        return page


class FakeBrowser(_Emitter):
    version = "120.0.6099.0"

    def __init__(self, contexts: list[FakeContext] | None = None) -> None:
        super().__init__()
        self.contexts = contexts or []
        self.pages: list[FakePage] = []
        self.closed = False
        self.new_page_error: Exception | None = None

    async def new_page(self) -> FakePage:
        if self.new_page_error:
            raise self.new_page_error
        page = FakePage()
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True


class FakeChromium:
    def __init__(self) -> None:
        self.browser = FakeBrowser()
        self.launches: list[dict[str, Any]] = []
        self.attaches: list[str] = []
        self.error: Exception | None = None

    async def launch(self, **options: Any) -> FakeBrowser:
        if self.error:
            raise self.error
        self.launches.append(options)
        return self.browser

    async def connect_over_cdp(self, endpoint: str) -> FakeBrowser:
        if self.error:
            raise self.error
        self.attaches.append(endpoint)
        return self.browser


class FakePlaywright:
    def __init__(self) -> None:
        self.chromium = FakeChromium()
        self.stopped = False

    async def stop(self) -> None:
        self.stopped = True


class FakePlaywrightStarter:
    """What ``async_playwright()`` returns: ``await starter.start()``."""

    def __init__(self, playwright: FakePlaywright) -> None:
        self.playwright = playwright
        self.starts = 0

    async def start(self) -> FakePlaywright:
        self.starts += 1
        return self.playwright


class FakeSink:
    """Collects frames; ``on_send`` runs after each delivered frame."""

    def __init__(self, on_send: Callable[[FakeSink], None] | None = None) -> None:
        self.frames: list[Frame] = []
        self.on_send = on_send
        self.is_congested = False
        self.drains = 0
        self.fail_with: Exception | None = None

    def congested(self) -> bool:
        return self.is_congested

    async def drain(self) -> None:
        self.drains += 1
        self.is_congested = False

    async def send(self, frame: Frame) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.frames.append(frame)
        if self.on_send is not None:
            self.on_send(self)


@pytest.fixture
def fakes() -> Any:
    """Namespace of the fake classes, for tests that build their own."""

    class _Fakes:
        Page = FakePage
        Browser = FakeBrowser
        Context = FakeContext
        Playwright = FakePlaywright
        Starter = FakePlaywrightStarter
        Sink = FakeSink
        TransportFailure = TransportFailure
        png = PNG
        jpeg = JPEG

    return _Fakes


@pytest.fixture
def config() -> ServerConfig:
    # High frame rates keep stream tests fast
    return ServerConfig(default_fps=50, max_fps=100, driver_timeout=2)


@pytest.fixture
def session(config: ServerConfig) -> BrowserSessionManager:
    """A session with no browser and no page."""
    return BrowserSessionManager(config)


@pytest.fixture
def connected_session(config: ServerConfig) -> BrowserSessionManager:
    """A session already connected to a fake owned browser, with no page."""
    manager = BrowserSessionManager(config)
    manager.state.browser = FakeBrowser()  # type: ignore[assignment]
    manager.state.mode = ConnectionMode.OWNED
    manager.state.connection = ConnectionState.CONNECTED
    return manager


@pytest.fixture
def page(session: BrowserSessionManager) -> FakePage:
    """Install a fake active page on ``session``."""
    fake = FakePage()
    session.state.page = fake  # type: ignore[assignment]
    return fake
