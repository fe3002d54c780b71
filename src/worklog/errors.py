"""Exception types shared across the worklog package."""

from __future__ import annotations

from typing import Iterable, Optional


class TrackerError(Exception):
    """Base class for every error raised by worklog."""


class ParseError(TrackerError):
    """A defect in one line of log notation.

    The compiler collects these instead of letting them escape, so a single
    pass over a document reports every broken line at once.
    """

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None) -> None:
        self.message = message
        self.line = line
        self.column = column
        super().__init__(str(self))

    def __str__(self) -> str:
        pieces = [self.message]
        if self.line is not None:
            pieces.append(f" at line {self.line}")
            if self.column is not None:
                pieces.append(f", column {self.column}")
        return "".join(pieces)

    def __repr__(self) -> str:
        return f"ParseError({self.message!r}, line={self.line!r}, column={self.column!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParseError):
            return NotImplemented
        return (self.message, self.line, self.column) == (other.message, other.line, other.column)

    def __hash__(self) -> int:
        return hash((self.message, self.line, self.column))


class StorageError(TrackerError):
    """Raised when the session store cannot complete an operation."""


class ValidationError(TrackerError):
    """Raised when a batch is rejected before anything is written."""

    def __init__(self, message: str, errors: Iterable[ParseError] = ()) -> None:
        super().__init__(message)
        self.errors = list(errors)


class OverlapConflictError(ValidationError):
    """Imported sessions collide with sessions that are already stored."""

    def __init__(self, session_ids: Iterable[int]) -> None:
        self.session_ids = sorted(set(session_ids))
        super().__init__(
            f"Sessions would overlap with {len(self.session_ids)} existing session(s)"
        )


class ConfigError(TrackerError):
    """Raised for unreadable or malformed user configuration."""


__all__ = [
    "ConfigError",
    "OverlapConflictError",
    "ParseError",
    "StorageError",
    "TrackerError",
    "ValidationError",
]
