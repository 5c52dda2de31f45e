"""Result type returned by dispatched commands."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from termium_browse.errors import BrowserError, ErrorKind

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a success value or a tagged ``BrowserError``.

    Example:
        >>> result = await dispatcher.click_mouse(10, 20)
        >>> if result.ok:
        ...     print(result.value)
        ... else:
        ...     print(result.kind, result.error.message)
    """

    value: T | None = None
    error: BrowserError | None = None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: BrowserError) -> Result[T]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
