"""Async client for the browser-control service.

Example:
    >>> async with BrowserControlClient(tcp="127.0.0.1:50051") as client:
    ...     await client.open_tab()
    ...     await client.navigate_to_url("https://example.com")
    ...     frame = await client.take_screenshot()
    ...     frames = await client.stream_screenshots(fps=5)
    ...     async with frames:
    ...         async for frame in frames:
    ...             ...
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from loguru import logger
from websockets.asyncio.client import ClientConnection, connect, unix_connect
from websockets.exceptions import ConnectionClosed

from termium.paths import DEFAULT_SOCKET_PATH
from termium_browse.config import parse_host_port
from termium_browse.protocol import (
    ProtocolError,
    call_message,
    cancel_message,
    decode_message,
    frame_from_message,
)
from termium_browse.state import Frame

# Sentinel pushed onto a subscription queue when the connection goes away
_CLOSED: dict[str, Any] = {"type": "error", "code": "UNAVAILABLE", "message": "connection closed"}


class RemoteError(Exception):
    """An error reply from the server."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class ScreenshotSubscription:
    """Frames from one StreamScreenshots call.

    Iteration ends when the server sends ``end`` and raises ``RemoteError``
    on ``error``. ``cancel()`` asks the server to stop; frames already in
    flight are discarded.
    """

    def __init__(self, client: BrowserControlClient, request_id: int) -> None:
        self.client = client
        self.request_id = request_id
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.frames_received = 0
        self._done = False
        self._cancel_sent = False

    def __aiter__(self) -> AsyncIterator[Frame]:
        return self

    async def __anext__(self) -> Frame:
        while not self._done:
            message = await self.queue.get()
            kind = message["type"]
            if kind == "frame":
                if self._cancel_sent:
                    continue
                self.frames_received += 1
                return frame_from_message(message)
            self._finish()
            if kind == "error":
                raise RemoteError(message.get("code", "UNKNOWN"), message.get("message", ""))
        raise StopAsyncIteration

    async def cancel(self) -> None:
        if self._done or self._cancel_sent:
            return
        self._cancel_sent = True
        await self.client._send(cancel_message(self.request_id))

    async def aclose(self) -> None:
        """Cancel and wait for the server to acknowledge the end of the stream."""
        await self.cancel()
        while not self._done:
            message = await self.queue.get()
            if message["type"] != "frame":
                self._finish()

    async def __aenter__(self) -> ScreenshotSubscription:
        return self

    async def __aexit__(self, *exc: object) -> None:
        try:
            await self.aclose()
        except ConnectionClosed:
            self._finish()

    def _finish(self) -> None:
        self._done = True
        self.client._subscriptions.pop(self.request_id, None)


class BrowserControlClient:
    """Connects to a termium server over a Unix socket or TCP."""

    def __init__(self, *, tcp: str | None = None, socket_path: str | Path | None = None) -> None:
        self.tcp = tcp
        self.socket_path = str(socket_path or DEFAULT_SOCKET_PATH)
        self._ws: ClientConnection | None = None
        self._reader: asyncio.Task[None] | None = None
        self._ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[dict[str, Any]]] = {}
        self._subscriptions: dict[int, ScreenshotSubscription] = {}

    async def connect(self) -> None:
        if self.tcp:
            host, port = parse_host_port(self.tcp)
            self._ws = await connect(f"ws://{host}:{port}", max_size=None)
        else:
            self._ws = await unix_connect(self.socket_path, max_size=None)
        self._reader = asyncio.create_task(self._read_loop())

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
        if self._reader is not None:
            await self._reader
            self._reader = None
        self._ws = None

    async def __aenter__(self) -> BrowserControlClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def open_tab(self) -> str:
        return await self._call_text("OpenTab")

    async def set_viewport(self, width: int, height: int) -> str:
        return await self._call_text("SetViewport", width=width, height=height)

    async def click_mouse(self, x: float, y: float) -> str:
        return await self._call_text("ClickMouse", x=x, y=y)

    async def send_keyboard_input(self, content: str) -> str:
        return await self._call_text("SendKeyboardInput", content=content)

    async def navigate_to_url(self, url: str) -> str:
        return await self._call_text("NavigateToUrl", url=url)

    async def take_screenshot(self) -> Frame:
        return frame_from_message(await self._call("TakeScreenshot"))

    async def stream_screenshots(self, fps: int | None = None) -> ScreenshotSubscription:
        """Start a stream; iterate the returned subscription for frames."""
        request_id = next(self._ids)
        subscription = ScreenshotSubscription(self, request_id)
        self._subscriptions[request_id] = subscription
        await self._send(call_message(request_id, "StreamScreenshots", fps=fps))
        return subscription

    async def _call_text(self, method: str, **params: Any) -> str:
        message = await self._call(method, **params)
        return message["result"]["text"]

    async def _call(self, method: str, **params: Any) -> dict[str, Any]:
        request_id = next(self._ids)
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._send(call_message(request_id, method, **params))
            message = await future
        finally:
            self._pending.pop(request_id, None)

        if message["type"] == "error":
            raise RemoteError(message.get("code", "UNKNOWN"), message.get("message", ""))
        return message

    async def _send(self, message: str) -> None:
        if self._ws is None:
            raise RuntimeError("Client is not connected")
        await self._ws.send(message)

    async def _read_loop(self) -> None:
        if self._ws is None:
            raise RuntimeError("Client is not connected")
        try:
            async for raw in self._ws:
                try:
                    message = decode_message(raw)
                except ProtocolError as e:
                    logger.warning(f"Ignoring server message: {e}")
                    continue
                self._route(message)
        except ConnectionClosed:
            pass
        finally:
            self._fail_all()

    def _route(self, message: dict[str, Any]) -> None:
        request_id = message.get("id")
        subscription = self._subscriptions.get(request_id)  # type: ignore[arg-type]
        if subscription is not None:
            subscription.queue.put_nowait(message)
            return

        future = self._pending.get(request_id)  # type: ignore[arg-type]
        if future is not None and not future.done():
            future.set_result(message)
        elif message["type"] == "error":
            logger.warning(f"Uncorrelated server error {message.get('code')}: {message.get('message')}")

    def _fail_all(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_result(dict(_CLOSED))
        for subscription in self._subscriptions.values():
            subscription.queue.put_nowait(dict(_CLOSED))
