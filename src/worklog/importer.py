"""Validate a compiled log against storage and write it as sessions.

Importing happens in two steps. :func:`plan_import` compiles the text,
rebuilds the timeline and runs every overlap check without touching the
store. :func:`commit_import` then persists a clean plan inside a single
transaction, so a failure half way leaves storage as it was.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Set, Union

from .errors import OverlapConflictError, ParseError, ValidationError
from .grammar import compile_log
from .models import NewSession, ParseResult, ReconstructedEntry, SessionState
from .overlap import find_overlapping_persisted, validate_self_overlap
from .storage import SessionStore
from .timeline import interruption_warnings, reconstruct, resolve_resume_marker

logger = logging.getLogger(__name__)


@dataclass
class ImportPlan:
    """Everything learned about a log before anything is written."""

    text: str
    result: ParseResult
    entries: List[ReconstructedEntry] = field(default_factory=list)
    overlap_errors: List[ParseError] = field(default_factory=list)
    conflicting_ids: Set[int] = field(default_factory=set)

    @property
    def errors(self) -> List[ParseError]:
        return sorted(
            [*self.result.errors, *self.overlap_errors],
            key=lambda error: error.line if error.line is not None else 0,
        )

    @property
    def warnings(self) -> List[str]:
        return self.result.warnings

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class ImportReport:
    sessions: int = 0
    interruptions: int = 0
    deleted: int = 0
    session_ids: List[int] = field(default_factory=list)


def plan_import(
    text: str,
    store: SessionStore,
    initial_date: Optional[Union[date, datetime]] = None,
) -> ImportPlan:
    """Compile *text* and collect every reason it cannot be imported as is.

    Only read queries are issued against *store*.
    """

    result = compile_log(text, initial_date)
    entries = reconstruct(result.entries)
    result.warnings.extend(interruption_warnings(entries))
    plan = ImportPlan(
        text=text,
        result=result,
        entries=entries,
        overlap_errors=validate_self_overlap(entries),
    )
    plan.conflicting_ids = find_overlapping_persisted(entries, store)
    logger.debug(
        "Planned import of %d entries: %d error(s), %d conflict(s)",
        len(entries),
        len(plan.errors),
        len(plan.conflicting_ids),
    )
    return plan


def commit_import(plan: ImportPlan, store: SessionStore, overwrite: bool = False) -> ImportReport:
    """Persist *plan*.

    Raises :class:`ValidationError` when the plan has errors and
    :class:`OverlapConflictError` when it collides with stored sessions,
    unless *overwrite* is set, in which case the colliding sessions and
    their interruptions are deleted first.
    """

    if not plan.ok:
        raise ValidationError(f"Log contains {len(plan.errors)} error(s)", plan.errors)
    if plan.conflicting_ids and not overwrite:
        raise OverlapConflictError(plan.conflicting_ids)

    report = ImportReport()
    with store.transaction():
        for session_id in sorted(plan.conflicting_ids):
            if store.get_session(session_id) is None:
                continue
            report.deleted += 1 + store.count_descendants(session_id)
            store.delete_session(session_id)

        for entry in plan.entries:
            session_id = store.insert_session(_new_session(entry, report.session_ids, store))
            report.session_ids.append(session_id)
            if entry.is_top_level:
                report.sessions += 1
            else:
                report.interruptions += 1

    logger.info(
        "Imported %d session(s) and %d interruption(s), deleted %d",
        report.sessions,
        report.interruptions,
        report.deleted,
    )
    return report


def import_log(
    text: str,
    store: SessionStore,
    initial_date: Optional[Union[date, datetime]] = None,
    overwrite: bool = False,
) -> ImportReport:
    """Plan and commit in one call."""

    return commit_import(plan_import(text, store, initial_date), store, overwrite=overwrite)


def _new_session(entry: ReconstructedEntry, inserted: List[int], store: SessionStore) -> NewSession:
    # Resolved here rather than during planning so paused sessions inserted
    # earlier in the same batch are candidates.
    entry = resolve_resume_marker(entry, store)

    continues = entry.continues_session_id
    if entry.continues_index is not None:
        target = inserted[entry.continues_index]
        if store.get_session_state(target) is SessionState.PAUSED:
            root = store.get_chain_root(target)
            continues = root.id if root is not None else target

    return NewSession(
        start_time=entry.timestamp,
        end_time=entry.end_time,
        description=entry.display_name,
        state=entry.state,
        project=entry.project,
        tags=entry.tags,
        estimate_minutes=entry.estimate_minutes,
        explicit_duration_minutes=entry.explicit_duration_minutes,
        remark=entry.remark,
        parent_session_id=inserted[entry.parent_index] if entry.parent_index is not None else None,
        continues_session_id=continues,
    )


__all__ = ["ImportPlan", "ImportReport", "commit_import", "import_log", "plan_import"]
