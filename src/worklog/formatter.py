"""Render entries and stored sessions back into log notation."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from .duration import format_duration
from .errors import ParseError
from .models import LogEntry, Marker, SessionRecord, SessionState, StateMarker, TimelineEvent
from .storage import SessionStore

ERROR_PREFIX = "# ERROR:"
INDENT = "  "

_CLOSING_MARKERS = {
    SessionState.PAUSED: Marker.PAUSE,
    SessionState.ABANDONED: Marker.ABANDON,
}


def format_timestamp(value: datetime, full_date: bool = False) -> str:
    clock = "%H:%M:%S" if value.second else "%H:%M"
    return value.strftime(f"%Y-%m-%d {clock}" if full_date else clock)


def format_entry(entry: TimelineEvent, full_date: bool = False) -> str:
    """Serialise one entry or marker as a single line of notation."""

    parts = [format_timestamp(entry.timestamp, full_date)]
    if isinstance(entry, StateMarker):
        parts.append(f"@{entry.marker.keyword}")
    else:
        parts.extend(_fields(entry))
    if entry.remark:
        parts.append(f"# {entry.remark}")
    return " " * entry.indent_level + " ".join(parts)


def _fields(entry: LogEntry) -> List[str]:
    parts: List[str] = []
    if entry.resume_marker:
        parts.append(f"@{entry.resume_marker}")
    if entry.description:
        parts.append(entry.description)
    if entry.project:
        parts.append(f"@{entry.project}")
    parts.extend(f"+{tag}" for tag in entry.tags)
    if entry.estimate_minutes:
        parts.append(f"~{format_duration(entry.estimate_minutes)}")
    if entry.explicit_duration_minutes:
        parts.append(f"({format_duration(entry.explicit_duration_minutes)})")
    if entry.state_suffix:
        parts.append(f"->{SessionState(entry.state_suffix).value}")
    return parts


# ╭──────────────────────────────────────────────────────────────╮
# │ Export of stored sessions                                    │
# ╰──────────────────────────────────────────────────────────────╯


class _Exporter:
    def __init__(self, store: SessionStore) -> None:
        self.store = store
        self.lines: List[str] = []
        self.current_date: Optional[date] = None

    def stamp(self, value: datetime) -> str:
        full = value.date() != self.current_date
        self.current_date = value.date()
        return format_timestamp(value, full_date=full)

    def line(self, depth: int, value: datetime, fields: Iterable[str], remark: Optional[str] = None) -> None:
        parts = [self.stamp(value), *fields]
        if remark:
            parts.append(f"# {remark}")
        self.lines.append(INDENT * depth + " ".join(parts))

    def session(self, record: SessionRecord, depth: int, closed_by_next: bool) -> None:
        explicit = record.explicit_duration_minutes
        if depth and not explicit and record.end_time is not None:
            explicit = _minutes_between(record.start_time, record.end_time) or None

        # Markers close every open scope, so only top-level sessions get one.
        needs_marker = (
            depth == 0 and record.end_time is not None and not explicit and not closed_by_next
        )
        suffix = None
        if record.state in (SessionState.PAUSED, SessionState.ABANDONED) and not needs_marker:
            suffix = record.state

        entry = LogEntry(
            timestamp=record.start_time,
            description=record.description,
            project=record.project,
            tags=record.tags,
            estimate_minutes=record.estimate_minutes,
            explicit_duration_minutes=explicit,
            state_suffix=suffix,
        )
        self.line(depth, record.start_time, _fields(entry), record.remark)

        for child in self.store.get_child_sessions(record.id):
            self.session(child, depth + 1, closed_by_next=False)

        if needs_marker:
            marker = _CLOSING_MARKERS.get(record.state, Marker.END)
            self.line(depth, record.end_time, [f"@{marker.keyword}"])


def format_sessions(sessions: Sequence[SessionRecord], store: SessionStore) -> str:
    """Export top-level *sessions* (ordered by start) with their interruptions.

    The output compiles back to the same timeline: interruptions carry their
    duration explicitly, and a closing marker is written whenever a session
    does not end exactly where the next one starts.
    """

    exporter = _Exporter(store)
    for index, record in enumerate(sessions):
        following = sessions[index + 1] if index + 1 < len(sessions) else None
        closed_by_next = (
            following is not None
            and record.end_time is not None
            and _same_minute(record.end_time, following.start_time)
        )
        exporter.session(record, 0, closed_by_next)
    return "\n".join(exporter.lines) + ("\n" if exporter.lines else "")


def _same_minute(first: datetime, second: datetime) -> bool:
    return first.replace(second=0, microsecond=0) == second.replace(second=0, microsecond=0)


def _minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start) // timedelta(minutes=1))


# ╭──────────────────────────────────────────────────────────────╮
# │ Error annotations for the edit loop                          │
# ╰──────────────────────────────────────────────────────────────╯


def annotate_errors(text: str, errors: Sequence[ParseError]) -> str:
    """Insert ``# ERROR:`` comments above the lines that failed.

    Annotations left over from a previous round are dropped first. Errors
    without a line number are listed at the top.
    """

    by_line: dict = {}
    for error in errors:
        by_line.setdefault(error.line or 0, []).append(error)

    output = [f"{ERROR_PREFIX} {error.message}" for error in by_line.get(0, [])]
    for number, line in enumerate(text.splitlines(), start=1):
        for error in by_line.get(number, []):
            where = f" (column {error.column})" if error.column else ""
            output.append(f"{ERROR_PREFIX} {error.message}{where}")
        if line.lstrip().startswith(ERROR_PREFIX):
            continue
        output.append(line)
    return "\n".join(output) + "\n"


def strip_annotations(text: str) -> str:
    return "\n".join(
        line for line in text.splitlines() if not line.lstrip().startswith(ERROR_PREFIX)
    ) + "\n"


__all__ = [
    "annotate_errors",
    "format_entry",
    "format_sessions",
    "format_timestamp",
    "strip_annotations",
]
