"""Structured logging for termium.

All output goes through loguru. ``configure_logging`` installs the sinks once
per process; ``LogSpan`` records one named operation with its attributes and
elapsed time.

Example:
    >>> configure_logging(log_name="serve", level="DEBUG")
    >>> with LogSpan(span="browser.tab.open") as s:
    ...     page = await session.open_tab()
    ...     s.add("mode", "owned")
"""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Any

from loguru import logger

__all__ = ["LogSpan", "configure_logging", "logger"]

_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <7}</level> | "
    "<cyan>{extra[log_name]}</cyan> | "
    "{message}"
)


def configure_logging(
    log_name: str = "termium",
    level: str = "INFO",
    log_file: Path | str | None = None,
) -> None:
    """Replace loguru's default handler with termium's sinks.

    Args:
        log_name: Component name shown on every line (e.g. "serve", "browse")
        level: Minimum level for the primary sink
        log_file: When set, records at ``level`` go to this file and stderr
            only carries warnings and errors
    """
    logger.remove()
    logger.configure(extra={"log_name": log_name})

    stderr_level = "WARNING" if log_file else level
    logger.add(sys.stderr, level=stderr_level, format=_FORMAT)

    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(path, level=level, format=_FORMAT, colorize=False)


class LogSpan:
    """A timed, attributed log record for one operation.

    Emitted once on exit: INFO on success, ERROR when an exception escaped
    the block or an ``error`` attribute was added.
    """

    def __init__(self, span: str, **attrs: Any) -> None:
        self.span = span
        self.attrs: dict[str, Any] = dict(attrs)
        self.error: str | None = None
        self._start = time.monotonic()

    def add(self, key: str | None = None, value: Any = None, **attrs: Any) -> LogSpan:
        """Add attributes, positionally (``add("k", v)``) or as keywords."""
        if key is not None:
            self.attrs[key] = value
        self.attrs.update(attrs)
        return self

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self._start) * 1000

    def __enter__(self) -> LogSpan:
        self._start = time.monotonic()
        return self

    def __exit__(self, exc_type: Any, exc: BaseException | None, _tb: Any) -> bool:
        if exc is not None and self.error is None:
            self.error = f"{type(exc).__name__}: {exc}"
        self._emit()
        return False

    def _emit(self) -> None:
        fields = {**self.attrs, "elapsed_ms": round(self.elapsed_ms, 2)}
        error = self.error or fields.pop("error", None)
        if error:
            fields["error"] = error

        summary = " ".join(f"{k}={v}" for k, v in fields.items())
        level = "ERROR" if error else "INFO"
        logger.bind(span=self.span, **fields).log(level, f"{self.span} {summary}")
