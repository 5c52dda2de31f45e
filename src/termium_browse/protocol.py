"""Wire protocol for the browser-control service.

Messages are JSON text frames. A client sends ``call`` and ``cancel``
messages; the server answers with ``result``, ``frame``, ``end`` and
``error`` messages carrying the id of the call they belong to.

Example:
    >>> call_message(1, "NavigateToUrl", url="https://example.com")
    '{"type": "call", "id": 1, "method": "NavigateToUrl", "params": {"url": "https://example.com"}}'
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from termium_browse.state import Frame

# Status codes carried by error messages
INTERNAL = "INTERNAL"
INVALID_ARGUMENT = "INVALID_ARGUMENT"
UNIMPLEMENTED = "UNIMPLEMENTED"


class ProtocolError(ValueError):
    """A message that cannot be accepted."""

    def __init__(self, message: str, *, code: str = INVALID_ARGUMENT, request_id: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.request_id = request_id


class Request(BaseModel):
    """An inbound client message."""

    type: Literal["call", "cancel"]
    id: int | str
    method: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)


# Parameter models, one per request shape


class Empty(BaseModel):
    pass


class ViewportSize(BaseModel):
    width: int = Field(gt=0)
    height: int = Field(gt=0)


class Coordinate(BaseModel):
    x: float
    y: float


class Text(BaseModel):
    content: str


class Url(BaseModel):
    url: str = Field(min_length=1)


class ScreenshotRequest(BaseModel):
    fps: int | None = None


@dataclass(frozen=True)
class MethodSpec:
    """Parameter model and dispatcher command behind one wire method."""

    params: type[BaseModel]
    command: str
    streaming: bool = False


METHODS: dict[str, MethodSpec] = {
    "OpenTab": MethodSpec(Empty, "open_tab"),
    "SetViewport": MethodSpec(ViewportSize, "set_viewport"),
    "ClickMouse": MethodSpec(Coordinate, "click_mouse"),
    "SendKeyboardInput": MethodSpec(Text, "send_keyboard_input"),
    "NavigateToUrl": MethodSpec(Url, "navigate_to_url"),
    "TakeScreenshot": MethodSpec(Empty, "take_screenshot"),
    "StreamScreenshots": MethodSpec(ScreenshotRequest, "stream_screenshots", streaming=True),
}


def decode_request(raw: str | bytes) -> Request:
    """Parse and validate a client message.

    Raises:
        ProtocolError: If the message is not valid JSON or not a known shape
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError("Message must be a JSON object")

    try:
        request = Request.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(_first_error(e), request_id=data.get("id")) from e

    if request.type == "call" and not request.method:
        raise ProtocolError("Call is missing a method", request_id=request.id)
    return request


def decode_params(request: Request) -> tuple[MethodSpec, BaseModel]:
    """Look up the method and validate its parameters.

    Raises:
        ProtocolError: UNIMPLEMENTED for unknown methods, INVALID_ARGUMENT
            for bad parameters
    """
    spec = METHODS.get(request.method or "")
    if spec is None:
        raise ProtocolError(
            f"Unknown method: {request.method}", code=UNIMPLEMENTED, request_id=request.id
        )
    try:
        params = spec.params.model_validate(request.params)
    except ValidationError as e:
        raise ProtocolError(
            f"Invalid {request.method} params: {_first_error(e)}", request_id=request.id
        ) from e
    return spec, params


def decode_message(raw: str | bytes) -> dict[str, Any]:
    """Parse a server message (client side)."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict) or "type" not in data:
        raise ProtocolError("Server message must be an object with a type")
    return data


def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    loc = ".".join(str(part) for part in first["loc"])
    return f"{loc}: {first['msg']}" if loc else first["msg"]


def encode(message: dict[str, Any]) -> str:
    return json.dumps(message)


def encode_image(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_image(data: str) -> bytes:
    return base64.b64decode(data)


def call_message(request_id: int | str, method: str, **params: Any) -> str:
    return encode({"type": "call", "id": request_id, "method": method, "params": params})


def cancel_message(request_id: int | str) -> str:
    return encode({"type": "cancel", "id": request_id})


def result_message(request_id: Any, result: str | Frame) -> str:
    """Confirmation text, or an image for TakeScreenshot."""
    if isinstance(result, Frame):
        body: dict[str, Any] = {"data": encode_image(result.data), "format": result.format}
    else:
        body = {"text": result}
    return encode({"type": "result", "id": request_id, "result": body})


def frame_message(request_id: Any, frame: Frame) -> str:
    return encode(
        {
            "type": "frame",
            "id": request_id,
            "seq": frame.seq,
            "format": frame.format,
            "data": encode_image(frame.data),
        }
    )


def end_message(request_id: Any) -> str:
    return encode({"type": "end", "id": request_id})


def error_message(request_id: Any, code: str, message: str) -> str:
    return encode({"type": "error", "id": request_id, "code": code, "message": message})


def frame_from_message(message: dict[str, Any]) -> Frame:
    """Rebuild a Frame from a ``frame`` or image ``result`` message."""
    body = message.get("result", message)
    return Frame(
        data=decode_image(body["data"]),
        format=body.get("format", "png"),
        seq=message.get("seq", 0),
    )
