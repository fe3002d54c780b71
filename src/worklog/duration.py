"""Duration strings such as ``2h``, ``45m`` and ``1h30m``."""

from __future__ import annotations

import re

from .errors import ParseError

DURATION_PATTERN = re.compile(r"^(?:(\d+)h)?(?:(\d+)m)?$")


def parse_duration(text: str) -> int:
    """Return the number of minutes described by *text*.

    Hours and minutes may be combined (``1h30m``) but the minutes part must
    stay below 60, so ``90m`` is rejected in favour of ``1h30m``.
    """

    if not isinstance(text, str) or not text.strip():
        raise ParseError("Duration cannot be empty")

    cleaned = text.strip()
    match = DURATION_PATTERN.match(cleaned)
    if not match:
        raise ParseError(f'Invalid duration format: "{text}"')

    hours = int(match.group(1)) if match.group(1) else 0
    minutes = int(match.group(2)) if match.group(2) else 0

    if hours == 0 and minutes == 0:
        raise ParseError(f'Duration must specify hours and/or minutes: "{text}"')
    if minutes >= 60:
        raise ParseError(f'Minutes must be less than 60: "{text}"')

    return hours * 60 + minutes


def format_duration(minutes: int) -> str:
    """Render *minutes* the way :func:`parse_duration` reads it back."""

    if minutes < 0:
        raise ValueError("Minutes cannot be negative")

    hours, mins = divmod(int(minutes), 60)
    if hours and mins:
        return f"{hours}h{mins}m"
    if hours:
        return f"{hours}h"
    return f"{mins}m"
