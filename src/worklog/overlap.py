"""Detect sessions that claim the same stretch of time."""

from __future__ import annotations

import logging
from datetime import datetime
from itertools import combinations
from typing import TYPE_CHECKING, Iterable, List, Optional, Set

from .errors import ParseError
from .models import ReconstructedEntry

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .storage import SessionStore

logger = logging.getLogger(__name__)


def ranges_overlap(
    start1: datetime,
    end1: Optional[datetime],
    start2: datetime,
    end2: Optional[datetime],
) -> bool:
    """Half-open interval test where a missing end means "still running"."""

    return (end2 is None or start1 < end2) and (end1 is None or start2 < end1)


def validate_self_overlap(entries: Iterable[ReconstructedEntry]) -> List[ParseError]:
    """Report every pair of top-level entries whose time ranges intersect.

    Interruptions are exempt since they happen inside their parent by
    definition.
    """

    top_level = [entry for entry in entries if entry.is_top_level]
    errors: List[ParseError] = []
    for first, second in combinations(top_level, 2):
        if ranges_overlap(first.timestamp, first.end_time, second.timestamp, second.end_time):
            errors.append(
                ParseError(
                    f'Sessions overlap: "{first.display_name}" (line {first.line_number}) '
                    f'and "{second.display_name}" (line {second.line_number})',
                    max(first.line_number, second.line_number),
                )
            )
    if errors:
        logger.debug("Found %d overlapping pair(s) in batch", len(errors))
    return errors


def find_overlapping_persisted(entries: Iterable[ReconstructedEntry], store: "SessionStore") -> Set[int]:
    """Collect ids of stored sessions that collide with top-level entries."""

    conflicting: Set[int] = set()
    for entry in entries:
        if not entry.is_top_level:
            continue
        for session in store.get_sessions_overlapping(entry.timestamp, entry.end_time):
            conflicting.add(session.id)
    logger.debug("Found %d persisted session(s) overlapping the batch", len(conflicting))
    return conflicting
