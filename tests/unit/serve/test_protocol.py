"""Unit tests for the WebSocket wire protocol."""

from __future__ import annotations

import json

import pytest

from termium_browse.config import ServerConfig
from termium_browse.protocol import (
    INVALID_ARGUMENT,
    METHODS,
    UNIMPLEMENTED,
    Coordinate,
    ProtocolError,
    ViewportSize,
    call_message,
    decode_message,
    decode_params,
    decode_request,
    error_message,
    frame_from_message,
    frame_message,
    result_message,
)
from termium_browse.state import Frame


@pytest.mark.unit
@pytest.mark.serve
def test_decode_call() -> None:
    request = decode_request(call_message(3, "ClickMouse", x=10, y=20.5))

    assert request.type == "call"
    assert request.id == 3
    spec, params = decode_params(request)
    assert spec.command == "click_mouse"
    assert params == Coordinate(x=10, y=20.5)


@pytest.mark.unit
@pytest.mark.serve
def test_decode_cancel() -> None:
    request = decode_request('{"type": "cancel", "id": "stream-1"}')

    assert request.type == "cancel"
    assert request.id == "stream-1"


@pytest.mark.unit
@pytest.mark.serve
@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2]",
        '{"type": "call"}',
        '{"type": "subscribe", "id": 1}',
        '{"type": "call", "id": 1}',
    ],
)
def test_malformed_messages_are_invalid_argument(raw: str) -> None:
    with pytest.raises(ProtocolError) as exc_info:
        decode_request(raw)

    assert exc_info.value.code == INVALID_ARGUMENT


@pytest.mark.unit
@pytest.mark.serve
def test_unknown_method_is_unimplemented() -> None:
    request = decode_request(call_message(9, "GoBack"))

    with pytest.raises(ProtocolError) as exc_info:
        decode_params(request)

    assert exc_info.value.code == UNIMPLEMENTED
    assert exc_info.value.request_id == 9


@pytest.mark.unit
@pytest.mark.serve
@pytest.mark.parametrize(
    ("method", "params"),
    [
        ("SetViewport", {"width": 0, "height": 600}),
        ("SetViewport", {"width": 800}),
        ("ClickMouse", {"x": "left", "y": 1}),
        ("NavigateToUrl", {"url": ""}),
        ("SendKeyboardInput", {}),
    ],
)
def test_bad_params_are_invalid_argument(method: str, params: dict) -> None:
    request = decode_request(call_message(1, method, **params))

    with pytest.raises(ProtocolError) as exc_info:
        decode_params(request)

    assert exc_info.value.code == INVALID_ARGUMENT
    assert method in exc_info.value.message


@pytest.mark.unit
@pytest.mark.serve
def test_stream_fps_defaults_to_unset() -> None:
    spec, params = decode_params(decode_request(call_message(1, "StreamScreenshots")))

    assert spec.streaming
    assert params.fps is None


@pytest.mark.unit
@pytest.mark.serve
def test_stream_accepts_null_fps() -> None:
    raw = '{"type": "call", "id": 1, "method": "StreamScreenshots", "params": {"fps": null}}'

    _spec, params = decode_params(decode_request(raw))

    assert params.fps is None
    assert ServerConfig().resolve_fps(params.fps) == 10


@pytest.mark.unit
@pytest.mark.serve
def test_every_method_maps_to_a_command() -> None:
    assert {spec.command for spec in METHODS.values()} == {
        "open_tab",
        "set_viewport",
        "click_mouse",
        "send_keyboard_input",
        "navigate_to_url",
        "take_screenshot",
        "stream_screenshots",
    }
    assert [name for name, spec in METHODS.items() if spec.streaming] == ["StreamScreenshots"]


@pytest.mark.unit
@pytest.mark.serve
def test_viewport_accepts_positive_sizes() -> None:
    assert ViewportSize(width=1, height=1).width == 1


@pytest.mark.unit
@pytest.mark.serve
def test_result_message_text() -> None:
    message = json.loads(result_message(4, "Mouse clicked"))

    assert message == {"type": "result", "id": 4, "result": {"text": "Mouse clicked"}}


@pytest.mark.unit
@pytest.mark.serve
def test_result_message_image() -> None:
    message = decode_message(result_message(5, Frame(data=b"\x89PNG", format="png")))

    assert message["result"] == {"data": "iVBORw==", "format": "png"}
    assert frame_from_message(message) == Frame(data=b"\x89PNG", format="png")


@pytest.mark.unit
@pytest.mark.serve
def test_frame_message_carries_sequence() -> None:
    message = decode_message(frame_message(2, Frame(data=b"\xff\xd8", format="jpeg", seq=12)))

    assert message["type"] == "frame"
    assert message["id"] == 2
    assert frame_from_message(message) == Frame(data=b"\xff\xd8", format="jpeg", seq=12)


@pytest.mark.unit
@pytest.mark.serve
def test_error_message() -> None:
    message = json.loads(error_message(1, "INTERNAL", "Failed to click mouse: No active page"))

    assert message == {
        "type": "error",
        "id": 1,
        "code": "INTERNAL",
        "message": "Failed to click mouse: No active page",
    }


@pytest.mark.unit
@pytest.mark.serve
def test_decode_message_requires_type() -> None:
    with pytest.raises(ProtocolError):
        decode_message('{"id": 1}')
