"""Error taxonomy for browser control.

Every failure the service can report is a ``BrowserError`` subclass tagged
with an ``ErrorKind``. The wire protocol flattens them all into one
``INTERNAL`` status; the kind stays available to in-process callers.
"""

from __future__ import annotations

from enum import Enum

__all__ = [
    "BrowserError",
    "BrowserUnavailable",
    "CaptureFailure",
    "CommandFailure",
    "ErrorKind",
    "NoActiveSession",
    "TransportFailure",
]


class ErrorKind(Enum):
    BROWSER_UNAVAILABLE = "browser_unavailable"
    NO_ACTIVE_SESSION = "no_active_session"
    COMMAND_FAILURE = "command_failure"
    CAPTURE_FAILURE = "capture_failure"
    TRANSPORT_FAILURE = "transport_failure"


class BrowserError(Exception):
    """Base class for browser-control failures."""

    kind: ErrorKind = ErrorKind.COMMAND_FAILURE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @classmethod
    def from_exception(cls, error: BaseException) -> BrowserError:
        """Wrap a driver exception, keeping its message."""
        if isinstance(error, BrowserError):
            return error
        if isinstance(error, TimeoutError):
            return cls(f"driver call timed out: {error}" if str(error) else "driver call timed out")
        return cls(str(error) or type(error).__name__)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class BrowserUnavailable(BrowserError):
    """The browser could not be launched or attached to."""

    kind = ErrorKind.BROWSER_UNAVAILABLE


class NoActiveSession(BrowserError):
    """A command needed a page but none is open."""

    kind = ErrorKind.NO_ACTIVE_SESSION

    def __init__(self, message: str = "No active page") -> None:
        super().__init__(message)


class CommandFailure(BrowserError):
    """A driver action failed on an existing page."""

    kind = ErrorKind.COMMAND_FAILURE


class CaptureFailure(BrowserError):
    """Frame capture failed."""

    kind = ErrorKind.CAPTURE_FAILURE


class TransportFailure(BrowserError):
    """The outbound stream failed independently of capture."""

    kind = ErrorKind.TRANSPORT_FAILURE
