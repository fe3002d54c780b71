"""Data structures passed between the compiler, the timeline and storage."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple, Union

from .errors import ParseError


# ╭──────────────────────────────────────────────────────────────╮
# │ States and markers                                           │
# ╰──────────────────────────────────────────────────────────────╯


class SessionState(str, Enum):
    WORKING = "working"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class Marker(str, Enum):
    """Reserved notation that closes open sessions without creating one.

    The values double as the sentinel descriptions ``__END__``,
    ``__PAUSE__`` and ``__ABANDON__``.
    """

    END = "__END__"
    PAUSE = "__PAUSE__"
    ABANDON = "__ABANDON__"

    @property
    def state(self) -> SessionState:
        return _MARKER_STATES[self]

    @property
    def keyword(self) -> str:
        return self.name.lower()

    @classmethod
    def from_keyword(cls, keyword: str) -> "Marker":
        return cls[keyword.upper()]


_MARKER_STATES = {
    Marker.END: SessionState.COMPLETED,
    Marker.PAUSE: SessionState.PAUSED,
    Marker.ABANDON: SessionState.ABANDONED,
}


# ╭──────────────────────────────────────────────────────────────╮
# │ Parsed lines                                                 │
# ╰──────────────────────────────────────────────────────────────╯


@dataclass(frozen=True)
class LogEntry:
    """One line of log notation that describes a unit of work."""

    timestamp: datetime
    description: str = ""
    project: Optional[str] = None
    tags: Tuple[str, ...] = ()
    estimate_minutes: Optional[int] = None
    explicit_duration_minutes: Optional[int] = None
    remark: Optional[str] = None
    state_suffix: Optional[SessionState] = None
    resume_marker: Optional[str] = None
    indent_level: int = 0
    line_number: int = 1

    @property
    def display_name(self) -> str:
        """Description, falling back to the first tag and then the project."""

        if self.description:
            return self.description
        if self.tags:
            return self.tags[0]
        return self.project or ""


@dataclass(frozen=True)
class StateMarker:
    """An ``@end``, ``@pause`` or ``@abandon`` line."""

    marker: Marker
    timestamp: datetime
    indent_level: int = 0
    line_number: int = 1
    remark: Optional[str] = None

    @property
    def description(self) -> str:
        return self.marker.value

    @property
    def state(self) -> SessionState:
        return self.marker.state


TimelineEvent = Union[LogEntry, StateMarker]


@dataclass
class ParseResult:
    """Everything a compile pass produced, including what went wrong."""

    entries: List[TimelineEvent] = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def sessions(self) -> List[LogEntry]:
        return [entry for entry in self.entries if isinstance(entry, LogEntry)]


# ╭──────────────────────────────────────────────────────────────╮
# │ Reconstructed timeline                                       │
# ╰──────────────────────────────────────────────────────────────╯


@dataclass(frozen=True)
class ReconstructedEntry(LogEntry):
    """A :class:`LogEntry` placed on the timeline.

    ``parent_index`` and ``continues_index`` index into the list returned by
    :func:`worklog.timeline.reconstruct`, which never contains markers.
    ``continues_session_id`` is only set by storage-backed resume
    resolution.
    """

    end_time: Optional[datetime] = None
    state: SessionState = SessionState.WORKING
    parent_index: Optional[int] = None
    continues_index: Optional[int] = None
    continues_session_id: Optional[int] = None

    @classmethod
    def from_entry(cls, entry: LogEntry, **extra: object) -> "ReconstructedEntry":
        values = {item.name: getattr(entry, item.name) for item in fields(LogEntry)}
        values.update(extra)
        return cls(**values)

    @property
    def is_top_level(self) -> bool:
        return self.parent_index is None

    @property
    def duration(self) -> Optional[timedelta]:
        if self.end_time is None:
            return None
        return self.end_time - self.timestamp


# ╭──────────────────────────────────────────────────────────────╮
# │ Persisted sessions                                           │
# ╰──────────────────────────────────────────────────────────────╯


@dataclass(frozen=True)
class SessionRecord:
    """A session as the store returns it."""

    id: int
    start_time: datetime
    description: str
    state: SessionState
    end_time: Optional[datetime] = None
    project: Optional[str] = None
    tags: Tuple[str, ...] = ()
    estimate_minutes: Optional[int] = None
    explicit_duration_minutes: Optional[int] = None
    remark: Optional[str] = None
    parent_session_id: Optional[int] = None
    continues_session_id: Optional[int] = None


@dataclass(frozen=True)
class NewSession:
    """Values for a session that has not been stored yet."""

    start_time: datetime
    description: str
    state: SessionState
    end_time: Optional[datetime] = None
    project: Optional[str] = None
    tags: Tuple[str, ...] = ()
    estimate_minutes: Optional[int] = None
    explicit_duration_minutes: Optional[int] = None
    remark: Optional[str] = None
    parent_session_id: Optional[int] = None
    continues_session_id: Optional[int] = None


__all__ = [
    "LogEntry",
    "Marker",
    "NewSession",
    "ParseResult",
    "ReconstructedEntry",
    "SessionRecord",
    "SessionState",
    "StateMarker",
    "TimelineEvent",
]
