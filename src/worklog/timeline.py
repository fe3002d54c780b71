"""Rebuild the session timeline from a compiled sequence of events.

The functions here turn the flat, indentation-annotated output of
:func:`worklog.grammar.compile_log` into entries that know their end time,
their final state, their parent (the session they interrupt) and the
earlier paused session they continue.

Reconstruction itself is pure. Resume markers that refer to persisted work
(``@resume`` and ``@prev``) are resolved separately against a session store
so the in-memory part stays easy to test.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence, Tuple

from .models import LogEntry, ReconstructedEntry, SessionState, StateMarker, TimelineEvent

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .storage import SessionStore

logger = logging.getLogger(__name__)


def build_parent_map(entries: Sequence[LogEntry]) -> Tuple[Optional[int], ...]:
    """Return the parent index of every entry, derived from indentation.

    A parent is the nearest preceding entry with a strictly smaller indent.
    The stack holds the currently open ancestor chain.
    """

    stack: List[int] = []
    parents: List[Optional[int]] = []
    for index, entry in enumerate(entries):
        while stack and entries[stack[-1]].indent_level >= entry.indent_level:
            stack.pop()
        parents.append(stack[-1] if stack else None)
        stack.append(index)
    return tuple(parents)


def _closing_event(events: Sequence[TimelineEvent], position: int) -> Optional[TimelineEvent]:
    """Find the event that ends ``events[position]``.

    Deeper-indented descendants are skipped. State markers close every open
    scope, whatever their own indentation.
    """

    indent = events[position].indent_level
    for event in events[position + 1 :]:
        if isinstance(event, StateMarker) or event.indent_level <= indent:
            return event
    return None


def infer_end_time(
    events: Sequence[TimelineEvent], position: int
) -> Tuple[Optional[datetime], SessionState]:
    """Return ``(end_time, state)`` for the regular entry at *position*."""

    entry = events[position]
    assert isinstance(entry, LogEntry)
    suffix = entry.state_suffix

    if entry.explicit_duration_minutes:
        end_time = entry.timestamp + timedelta(minutes=entry.explicit_duration_minutes)
        return end_time, suffix or SessionState.COMPLETED

    closing = _closing_event(events, position)
    if isinstance(closing, StateMarker):
        return closing.timestamp, suffix or closing.state
    if closing is not None:
        return closing.timestamp, suffix or SessionState.COMPLETED
    return None, suffix or SessionState.WORKING


def reconstruct(events: Iterable[TimelineEvent]) -> List[ReconstructedEntry]:
    """Place every regular entry on the timeline.

    Markers are consumed for end times but do not appear in the result, so
    ``parent_index`` and ``continues_index`` refer to positions in the
    returned list. Numeric resume markers (``@N``) are resolved here against
    the N-th entry of the same batch; other resume markers are left for
    :func:`resolve_resume_markers`.
    """

    timeline = list(events)
    positions = [index for index, event in enumerate(timeline) if isinstance(event, LogEntry)]
    regular = [timeline[index] for index in positions]
    parents = build_parent_map(regular)

    rebuilt: List[ReconstructedEntry] = []
    for index, position in enumerate(positions):
        entry = regular[index]
        end_time, state = infer_end_time(timeline, position)
        rebuilt.append(
            ReconstructedEntry.from_entry(
                entry,
                end_time=end_time,
                state=state,
                parent_index=parents[index],
                continues_index=_batch_continuation(entry, index, rebuilt),
            )
        )

    logger.debug("Reconstructed %d entries from %d events", len(rebuilt), len(timeline))
    return rebuilt


def interruption_warnings(entries: Sequence[ReconstructedEntry]) -> List[str]:
    """Flag interruptions that start once their parent has already ended.

    This happens when an indented state marker closes the parent while
    later lines stay indented under it.
    """

    warnings: List[str] = []
    for entry in entries:
        if entry.parent_index is None:
            continue
        parent = entries[entry.parent_index]
        if parent.end_time is not None and entry.timestamp >= parent.end_time:
            warnings.append(
                f"Line {entry.line_number}: Interruption starts after its parent "
                f"(line {parent.line_number}) ended"
            )
    return warnings


def _batch_continuation(
    entry: LogEntry, index: int, earlier: Sequence[ReconstructedEntry]
) -> Optional[int]:
    marker = entry.resume_marker
    if not marker or not marker.isdigit():
        return None

    target = int(marker) - 1
    if not 0 <= target < index or earlier[target].state is not SessionState.PAUSED:
        logger.debug("Line %d: @%s does not name a paused entry", entry.line_number, marker)
        return None

    root = earlier[target].continues_index
    return target if root is None else root


# ╭──────────────────────────────────────────────────────────────╮
# │ Storage-backed resume markers                                │
# ╰──────────────────────────────────────────────────────────────╯


def resolve_resume_marker(entry: ReconstructedEntry, store: "SessionStore") -> ReconstructedEntry:
    """Link an ``@resume``/``@prev`` entry to the chain root it continues.

    A bare ``@resume`` also inherits description, project and tags from the
    paused session. When nothing matches the entry is returned unchanged.
    """

    marker = entry.resume_marker
    if marker not in ("resume", "prev"):
        return entry

    inherit = marker == "resume" and not (entry.description or entry.project or entry.tags)
    if marker == "resume" and not inherit:
        session = store.find_most_recently_paused_session(
            description=entry.description or None,
            project=entry.project,
            tag=entry.tags[0] if entry.tags else None,
        )
    else:
        session = store.find_most_recently_paused_session()

    if session is None:
        logger.debug("Line %d: no paused session to continue", entry.line_number)
        return entry

    root = store.get_chain_root(session.id) or session
    if inherit:
        return replace(
            entry,
            description=session.description,
            project=session.project,
            tags=session.tags,
            continues_session_id=root.id,
        )
    return replace(entry, continues_session_id=root.id)


def resolve_resume_markers(
    entries: Iterable[ReconstructedEntry], store: "SessionStore"
) -> List[ReconstructedEntry]:
    """Apply :func:`resolve_resume_marker` to every entry."""

    return [resolve_resume_marker(entry, store) for entry in entries]
