"""Frame capture and the screenshot stream engine.

A ``ScreenshotStream`` turns periodic page captures into frames pushed onto
a ``FrameSink``. Its lifecycle is ``STARTING -> STREAMING -> CLOSED``:

- each tick resolves the active page; no page means a clean end
- a capture failure on a page that was replaced or closed meanwhile is
  treated like that page change, not as an error
- any other capture or transport failure ends the stream with that error
- ``cancel()`` wakes the ticker at once and no further frame is written

Captures within one stream never overlap: a tick waits for its capture
before the next tick is scheduled, and ticks missed by a slow capture are
skipped rather than replayed.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Protocol

from loguru import logger

from termium.logging import LogSpan
from termium_browse.errors import BrowserError, CaptureFailure, TransportFailure
from termium_browse.state import Frame, StreamOutcome, StreamState, StreamSummary

if TYPE_CHECKING:
    from playwright.async_api import Page

    from termium_browse.browser.core import BrowserSessionManager
    from termium_browse.config import ServerConfig


def frame_interval_ms(fps: int) -> float:
    """Milliseconds between ticks for a frame rate."""
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")
    return 1000 / fps


async def capture_frame(
    session: BrowserSessionManager,
    page: Page,
    *,
    image_format: str = "png",
    quality: int | None = None,
    seq: int = 0,
) -> Frame:
    """Capture the page's current viewport.

    Raises:
        CaptureFailure: If the driver call fails or times out
    """
    options: dict[str, Any] = {"type": image_format}
    if image_format == "jpeg" and quality is not None:
        options["quality"] = quality

    try:
        data = await session.call_driver(page.screenshot(**options))
    except Exception as e:
        raise CaptureFailure.from_exception(e) from e
    return Frame(data=data, format=image_format, seq=seq)


class FrameSink(Protocol):
    """Where a stream writes its frames."""

    def congested(self) -> bool:
        """True while the transport cannot take more without buffering."""
        ...

    async def drain(self) -> None:
        """Wait until everything written so far has been delivered."""
        ...

    async def send(self, frame: Frame) -> None:
        """Write one frame. Raises TransportFailure if the stream is gone."""
        ...


class ScreenshotStream:
    """One streaming call: periodic captures from the active page."""

    def __init__(
        self,
        session: BrowserSessionManager,
        sink: FrameSink,
        fps: int | None = None,
        *,
        config: ServerConfig | None = None,
        stream_id: Any = None,
    ) -> None:
        self.session = session
        self.sink = sink
        self.config = config or session.config
        self.stream_id = stream_id
        self.fps = self.config.resolve_fps(fps)
        self.interval_ms = frame_interval_ms(self.fps)
        self.state = StreamState.STARTING

        self.frames_captured = 0
        self.frames_sent = 0
        self.frames_dropped = 0

        self._cancelled = asyncio.Event()
        self._cancel_reason = ""
        self._target: weakref.ref[Page] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self, reason: str = "client") -> None:
        """Stop producing frames. Safe to call from any task, any number of times."""
        if self._cancelled.is_set():
            return
        self._cancel_reason = reason
        self._cancelled.set()
        logger.debug(f"Stream {self.stream_id} cancelled ({reason})")

    async def run(self) -> StreamSummary:
        """Stream until the page disappears, a failure occurs, or cancel()."""
        if self.state is not StreamState.STARTING:
            raise RuntimeError(f"Stream {self.stream_id} already {self.state.value}")

        self.state = StreamState.STREAMING
        if self.config.stream_pin_page:
            page = self.session.current_page()
            self._target = weakref.ref(page) if page is not None else None

        with LogSpan(
            span="browser.stream",
            stream=self.stream_id,
            fps=self.fps,
            backpressure=self.config.stream_backpressure,
        ) as s:
            try:
                summary = await self._loop()
            finally:
                self.state = StreamState.CLOSED
            s.add(
                outcome=summary.outcome.value,
                framesSent=summary.frames_sent,
                framesDropped=summary.frames_dropped,
            )
            if summary.reason:
                s.add("reason", summary.reason)
            if summary.error is not None:
                s.add("error", f"{type(summary.error).__name__}: {summary.error.message}")

        return summary

    async def _loop(self) -> StreamSummary:
        async with self._ticker() as ticks:
            async for _tick in ticks:
                page = self._resolve_page()
                if page is None:
                    return self._summary(StreamOutcome.PAGE_GONE, reason="no active page")

                try:
                    frame = await capture_frame(
                        self.session,
                        page,
                        image_format=self.config.stream_format,
                        quality=self.config.stream_quality,
                        seq=self.frames_captured,
                    )
                except CaptureFailure as e:
                    # A page replaced or closed under the capture is not a failure
                    current = self._resolve_page()
                    if current is page:
                        return self._summary(StreamOutcome.FAILED, error=e)
                    if self.cancelled:
                        break
                    if current is None:
                        return self._summary(StreamOutcome.PAGE_GONE, reason="page closed during capture")
                    logger.debug(f"Stream {self.stream_id} page replaced during capture, following new page")
                    continue
                self.frames_captured += 1

                # A capture already in flight when cancel() arrived is discarded
                if self.cancelled:
                    break

                try:
                    if not await self._admit(frame):
                        continue
                    await self.sink.send(frame)
                except Exception as e:
                    error = TransportFailure.from_exception(e)
                    self.cancel("transport")
                    return self._summary(StreamOutcome.FAILED, error=error)
                self.frames_sent += 1

        return self._summary(StreamOutcome.CANCELLED, reason=self._cancel_reason)

    def _resolve_page(self) -> Page | None:
        page = self.session.current_page()
        if self.config.stream_pin_page:
            target = self._target() if self._target is not None else None
            if page is None or page is not target:
                return None
        return page

    async def _admit(self, frame: Frame) -> bool:
        """Apply the backpressure policy; False means drop this frame."""
        if not self.sink.congested():
            return True

        policy = self.config.stream_backpressure
        if policy == "drop":
            self.frames_dropped += 1
            logger.debug(f"Stream {self.stream_id} congested, dropped frame {frame.seq}")
            return False
        if policy == "pause":
            logger.debug(f"Stream {self.stream_id} congested, waiting for drain")
            await self.sink.drain()
            return not self.cancelled

        logger.debug(f"Stream {self.stream_id} backpressure detected")
        return True

    @asynccontextmanager
    async def _ticker(self) -> AsyncIterator[AsyncIterator[int]]:
        """Arm the tick schedule for the duration of the block."""
        ticks = self._ticks()
        try:
            yield ticks
        finally:
            await ticks.aclose()

    async def _ticks(self) -> AsyncIterator[int]:
        loop = asyncio.get_running_loop()
        interval = self.interval_ms / 1000
        deadline = loop.time()
        tick = 0

        while not self._cancelled.is_set():
            deadline += interval
            now = loop.time()
            if deadline < now:
                missed = int((now - deadline) // interval) + 1
                deadline += missed * interval
            try:
                await asyncio.wait_for(self._cancelled.wait(), timeout=max(0.0, deadline - loop.time()))
            except TimeoutError:
                tick += 1
                yield tick

    def _summary(
        self,
        outcome: StreamOutcome,
        *,
        error: BrowserError | None = None,
        reason: str = "",
    ) -> StreamSummary:
        return StreamSummary(
            outcome=outcome,
            frames_sent=self.frames_sent,
            frames_dropped=self.frames_dropped,
            error=error,
            reason=reason,
        )
