"""Unit tests for the command dispatcher."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from termium_browse.browser import COMMANDS, CommandDispatcher, failure_message
from termium_browse.errors import BrowserUnavailable, CommandFailure, ErrorKind, NoActiveSession


@pytest.mark.unit
@pytest.mark.browse
@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("command", "args"),
    [
        ("set_viewport", (1280, 720)),
        ("click_mouse", (10, 20)),
        ("send_keyboard_input", ("hello",)),
        ("navigate_to_url", ("https://example.com",)),
        ("take_screenshot", ()),
    ],
)
async def test_commands_without_page_fail_without_driver_call(session, command, args) -> None:
    """No active page means NoActiveSession and no driver call at all."""
    dispatcher = CommandDispatcher(session)

    with patch.object(session, "call_driver", new=AsyncMock()) as call_driver:
        result = await getattr(dispatcher, command)(*args)

    assert not result.ok
    assert isinstance(result.error, NoActiveSession)
    assert result.kind is ErrorKind.NO_ACTIVE_SESSION
    assert failure_message(command, result.error) == f"{COMMANDS[command].failure}: No active page"
    call_driver.assert_not_called()


@pytest.mark.unit
@pytest.mark.browse
@pytest.mark.asyncio
async def test_click_mouse_clicks_once(session, page) -> None:
    result = await CommandDispatcher(session).click_mouse(10, 20.5)

    assert result.ok
    assert result.value == "Mouse clicked"
    assert page.mouse.clicks == [(10, 20.5)]


@pytest.mark.unit
@pytest.mark.browse
@pytest.mark.asyncio
async def test_set_viewport(session, page) -> None:
    result = await CommandDispatcher(session).set_viewport(1280, 720)

    assert result.unwrap() == "Viewport set"
    assert page.viewport == {"width": 1280, "height": 720}


@pytest.mark.unit
@pytest.mark.browse
@pytest.mark.asyncio
async def test_send_keyboard_input_types_verbatim(session, page) -> None:
    result = await CommandDispatcher(session).send_keyboard_input("héllo\tworld")

    assert result.unwrap() == "Keyboard input sent"
    assert page.keyboard.typed == ["héllo\tworld"]


@pytest.mark.unit
@pytest.mark.browse
@pytest.mark.asyncio
async def test_navigate_to_url(session, page) -> None:
    result = await CommandDispatcher(session).navigate_to_url("https://example.com")

    assert result.unwrap() == "Navigated to URL"
    assert page.urls == ["https://example.com"]


@pytest.mark.unit
@pytest.mark.browse
@pytest.mark.asyncio
async def test_driver_error_becomes_command_failure(session, page) -> None:
    page.errors["goto"] = RuntimeError("net::ERR_NAME_NOT_RESOLVED")

    result = await CommandDispatcher(session).navigate_to_url("https://nope.invalid")

    assert isinstance(result.error, CommandFailure)
    assert result.kind is ErrorKind.COMMAND_FAILURE
    assert failure_message("navigate_to_url", result.error) == (
        "Failed to navigate to URL: net::ERR_NAME_NOT_RESOLVED"
    )
    with pytest.raises(CommandFailure):
        result.unwrap()


@pytest.mark.unit
@pytest.mark.browse
@pytest.mark.asyncio
async def test_failed_click_is_not_retried(session, page) -> None:
    page.mouse.error = RuntimeError("Element is detached")

    result = await CommandDispatcher(session).click_mouse(1, 2)

    assert not result.ok
    assert page.mouse.clicks == []


@pytest.mark.unit
@pytest.mark.browse
@pytest.mark.asyncio
async def test_stalled_driver_call_times_out(session, page) -> None:
    session.config.driver_timeout = 0.01

    async def _stall(_size):
        await asyncio.sleep(1)

    page.set_viewport_size = _stall
    result = await CommandDispatcher(session).set_viewport(800, 600)

    assert isinstance(result.error, CommandFailure)
    assert "driver call timed out" in result.error.message


@pytest.mark.unit
@pytest.mark.browse
@pytest.mark.asyncio
async def test_take_screenshot_returns_png(session, page, fakes) -> None:
    result = await CommandDispatcher(session).take_screenshot()

    frame = result.unwrap()
    assert frame.format == "png"
    assert frame.data == fakes.png
    assert page.screenshots == [{"type": "png"}]


@pytest.mark.unit
@pytest.mark.browse
@pytest.mark.asyncio
async def test_take_screenshot_failure(session, page) -> None:
    page.errors["screenshot"] = RuntimeError("Page crashed")

    result = await CommandDispatcher(session).take_screenshot()

    assert result.kind is ErrorKind.CAPTURE_FAILURE
    assert failure_message("take_screenshot", result.error) == "Failed to take screenshot: Page crashed"


@pytest.mark.unit
@pytest.mark.browse
@pytest.mark.asyncio
async def test_open_tab_acknowledges(session) -> None:
    with patch.object(session, "open_tab", new=AsyncMock()) as open_tab:
        result = await CommandDispatcher(session).open_tab()

    assert result.unwrap() == "New tab opened"
    open_tab.assert_awaited_once()


@pytest.mark.unit
@pytest.mark.browse
@pytest.mark.asyncio
async def test_open_tab_failure(session) -> None:
    error = BrowserUnavailable("Could not launch browser: no chromium")
    with patch.object(session, "open_tab", new=AsyncMock(side_effect=error)):
        result = await CommandDispatcher(session).open_tab()

    assert result.error is error
    assert failure_message("open_tab", error) == "Failed to open a new tab: Could not launch browser: no chromium"
