"""WebSocket front for the browser-control service.

Accepts ``call``/``cancel`` messages, runs each call as its own task against
the shared session, and writes results, frames and errors back on the same
connection. Bound to one address: a Unix socket or a TCP ``host:port``.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Awaitable, Callable, Coroutine
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel
from websockets.asyncio.server import Server, ServerConnection, serve, unix_serve
from websockets.exceptions import ConnectionClosed

from termium.logging import LogSpan
from termium_browse.browser import (
    BrowserSessionManager,
    CommandDispatcher,
    ScreenshotStream,
    failure_message,
)
from termium_browse.config import ServerConfig, parse_host_port
from termium_browse.errors import CommandFailure, ErrorKind, TransportFailure
from termium_browse.protocol import (
    INTERNAL,
    MethodSpec,
    ProtocolError,
    Request,
    decode_params,
    decode_request,
    end_message,
    error_message,
    frame_message,
    result_message,
)
from termium_browse.result import Result
from termium_browse.state import Frame

# Frames are base64 JPEG/PNG; let the transport carry any size
MAX_MESSAGE_SIZE = None


class WebSocketFrameSink:
    """Writes one stream's frames onto a WebSocket connection."""

    def __init__(self, websocket: ServerConnection, request_id: Any, high_water: int) -> None:
        self.websocket = websocket
        self.request_id = request_id
        self.high_water = high_water

    def congested(self) -> bool:
        if not self.high_water:
            return False
        transport = self.websocket.transport
        return transport is not None and transport.get_write_buffer_size() > self.high_water

    async def drain(self) -> None:
        # A pong arrives only after everything queued before the ping is delivered
        try:
            pong = await self.websocket.ping()
            await pong
        except ConnectionClosed as e:
            raise TransportFailure(f"connection closed: {e}") from e

    async def send(self, frame: Frame) -> None:
        try:
            await self.websocket.send(frame_message(self.request_id, frame))
        except ConnectionClosed as e:
            raise TransportFailure(f"connection closed: {e}") from e


class _Connection:
    """Per-client bookkeeping: open streams and in-flight call tasks."""

    def __init__(self, websocket: ServerConnection) -> None:
        self.websocket = websocket
        self.streams: dict[Any, ScreenshotStream] = {}
        self.tasks: set[asyncio.Task[None]] = set()
        address = websocket.remote_address
        self.peer = f"{address[0]}:{address[1]}" if isinstance(address, tuple) else "unix"

    def spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    async def send(self, message: str) -> None:
        try:
            await self.websocket.send(message)
        except ConnectionClosed:
            logger.debug(f"Dropped reply to {self.peer}: connection closed")

    async def close(self, reason: str) -> None:
        for stream in list(self.streams.values()):
            stream.cancel(reason)
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)


class BrowserControlServer:
    """Serves the browser-control protocol for one shared browser session."""

    def __init__(
        self,
        config: ServerConfig | None = None,
        session: BrowserSessionManager | None = None,
    ) -> None:
        self.config = config or ServerConfig()
        self.session = session or BrowserSessionManager(self.config)
        self.dispatcher = CommandDispatcher(self.session)

        self.handlers: dict[str, Callable[..., Awaitable[Result[Any]]]] = {
            "open_tab": self.dispatcher.open_tab,
            "set_viewport": self.dispatcher.set_viewport,
            "click_mouse": self.dispatcher.click_mouse,
            "send_keyboard_input": self.dispatcher.send_keyboard_input,
            "navigate_to_url": self.dispatcher.navigate_to_url,
            "take_screenshot": self.dispatcher.take_screenshot,
        }

        self._server: Server | None = None
        self._socket_path: Path | None = None
        self._connections: set[_Connection] = set()
        self._stop: asyncio.Event | None = None

    @property
    def bound_address(self) -> str | None:
        """``host:port`` or the socket path the server listens on."""
        if self._server is None:
            return None
        if self._socket_path is not None:
            return str(self._socket_path)
        host, port = self._server.sockets[0].getsockname()[:2]
        return f"{host}:{port}"

    @property
    def port(self) -> int | None:
        if self._server is None or self._socket_path is not None:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self, tcp: str | None = None, socket_path: str | Path | None = None) -> None:
        """Bind and start accepting connections.

        TCP wins when an address is given (argument or config); otherwise the
        Unix socket is used, replacing any stale socket file.
        """
        tcp = tcp or self.config.tcp
        with LogSpan(span="server.start", transport="tcp" if tcp else "unix") as s:
            if tcp:
                host, port = parse_host_port(tcp)
                self._server = await serve(self.handle_connection, host, port, max_size=MAX_MESSAGE_SIZE)
            else:
                path = Path(socket_path or self.config.socket_path).expanduser()
                if path.exists() or path.is_symlink():
                    path.unlink()
                    s.add("staleSocketRemoved", True)
                self._server = await unix_serve(self.handle_connection, str(path), max_size=MAX_MESSAGE_SIZE)
                self._socket_path = path
            s.add("address", self.bound_address)

    async def run(self, tcp: str | None = None, socket_path: str | Path | None = None) -> None:
        """Start, serve until SIGINT/SIGTERM (or stop()), then shut down."""
        self._stop = asyncio.Event()
        await self.start(tcp=tcp, socket_path=socket_path)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._stop.set)
        try:
            await self._stop.wait()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            await self.stop()

    async def stop(self) -> None:
        """Cancel streams, close the listener and release the browser."""
        with LogSpan(span="server.stop", connections=len(self._connections)):
            for conn in list(self._connections):
                await conn.close("shutdown")

            if self._server is not None:
                self._server.close()
                await self._server.wait_closed()
                self._server = None

            await self.session.shutdown()

            if self._socket_path is not None:
                self._socket_path.unlink(missing_ok=True)
                self._socket_path = None

    async def handle_connection(self, websocket: ServerConnection) -> None:
        conn = _Connection(websocket)
        self._connections.add(conn)
        logger.info(f"Client connected: {conn.peer}")
        try:
            async for raw in websocket:
                await self._on_message(conn, raw)
        except ConnectionClosed:
            pass
        finally:
            await conn.close("disconnected")
            self._connections.discard(conn)
            logger.info(f"Client disconnected: {conn.peer}")

    async def _on_message(self, conn: _Connection, raw: str | bytes) -> None:
        try:
            request = decode_request(raw)
            if request.type == "cancel":
                self._cancel(conn, request)
                return
            if request.id in conn.streams:
                raise ProtocolError(f"Id already in use: {request.id}", request_id=request.id)
            spec, params = decode_params(request)
        except ProtocolError as e:
            logger.debug(f"Rejected message from {conn.peer}: {e.message}")
            await conn.send(error_message(e.request_id, e.code, e.message))
            return

        if not spec.streaming:
            conn.spawn(self._handle_call(conn, request.id, spec, params))
            return

        # Visible to cancel and the duplicate-id check before the task runs
        sink = WebSocketFrameSink(conn.websocket, request.id, self.config.backpressure_high_water)
        stream = ScreenshotStream(
            self.session, sink, params.model_dump().get("fps"), config=self.config, stream_id=request.id
        )
        conn.streams[request.id] = stream
        conn.spawn(self._handle_stream(conn, request.id, stream))

    def _cancel(self, conn: _Connection, request: Request) -> None:
        stream = conn.streams.get(request.id)
        if stream is None:
            logger.debug(f"Cancel for unknown stream {request.id} ignored")
            return
        stream.cancel("client")

    async def _handle_call(self, conn: _Connection, request_id: Any, spec: MethodSpec, params: BaseModel) -> None:
        try:
            result = await self.handlers[spec.command](**params.model_dump())
            if result.ok:
                await conn.send(result_message(request_id, result.value))
            else:
                await conn.send(
                    error_message(request_id, INTERNAL, failure_message(spec.command, result.error))
                )
        except Exception as e:
            logger.exception(f"Unhandled error in {spec.command}")
            error = CommandFailure.from_exception(e)
            await conn.send(error_message(request_id, INTERNAL, failure_message(spec.command, error)))

    async def _handle_stream(self, conn: _Connection, request_id: Any, stream: ScreenshotStream) -> None:
        try:
            summary = await stream.run()
        except Exception as e:
            logger.exception("Unhandled error in stream_screenshots")
            error = CommandFailure.from_exception(e)
            await conn.send(error_message(request_id, INTERNAL, failure_message("stream_screenshots", error)))
            return
        finally:
            if conn.streams.get(request_id) is stream:
                del conn.streams[request_id]

        if summary.clean:
            await conn.send(end_message(request_id))
        elif summary.error is not None and summary.error.kind is not ErrorKind.TRANSPORT_FAILURE:
            await conn.send(
                error_message(
                    request_id,
                    INTERNAL,
                    failure_message("stream_screenshots", summary.error),
                )
            )

