"""State for the browser-control session and its screenshot streams."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page, Playwright

    from termium_browse.errors import BrowserError


class ConnectionState(Enum):
    """Browser connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ConnectionMode(Enum):
    """Who owns the browser process."""

    OWNED = "owned"  # launched here, closed on shutdown
    ATTACHED = "attached"  # external browser, only disconnected from


class StreamState(Enum):
    """Screenshot stream lifecycle. CLOSED is terminal."""

    STARTING = "starting"
    STREAMING = "streaming"
    CLOSED = "closed"


class StreamOutcome(Enum):
    """Why a stream reached CLOSED."""

    PAGE_GONE = "page_gone"  # clean end
    CANCELLED = "cancelled"  # clean end
    FAILED = "failed"  # capture or transport failure


@dataclass
class BrowserState:
    """The single browser connection and its active page."""

    connection: ConnectionState = ConnectionState.DISCONNECTED
    mode: ConnectionMode | None = None
    error: str | None = None

    # Playwright objects (None when disconnected)
    playwright: Playwright | None = None
    browser: Browser | None = None
    page: Page | None = None

    tabs_opened: int = 0


@dataclass(frozen=True)
class Frame:
    """One captured image."""

    data: bytes
    format: str
    seq: int = 0

    def __len__(self) -> int:
        return len(self.data)


@dataclass
class StreamSummary:
    """How a screenshot stream ended."""

    outcome: StreamOutcome
    frames_sent: int = 0
    frames_dropped: int = 0
    error: BrowserError | None = None
    reason: str = ""

    @property
    def clean(self) -> bool:
        return self.outcome is not StreamOutcome.FAILED