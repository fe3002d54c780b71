"""Turn tokenized lines into log entries and compile whole documents."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple, Union

from .duration import parse_duration
from .errors import ParseError
from .models import LogEntry, Marker, ParseResult, SessionState, StateMarker, TimelineEvent
from .tokenizer import LexedLine, Token, TokenKind, tokenize_line

logger = logging.getLogger(__name__)

# ╭──────────────────────────────────────────────────────────────╮
# │ Timestamp formats and warning thresholds                    │
# ╰──────────────────────────────────────────────────────────────╯
DATED_TIMESTAMP = re.compile(r"(\d{4})-(\d{2})-(\d{2})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?$")
TIME_ONLY_TIMESTAMP = re.compile(r"(\d{1,2}):(\d{2})(?::(\d{2}))?$")
LARGE_GAP = timedelta(hours=8)

_SINGLE_KINDS = {
    TokenKind.PROJECT: "Multiple projects",
    TokenKind.ESTIMATE: "Multiple estimates",
    TokenKind.EXPLICIT_DURATION: "Multiple explicit durations",
    TokenKind.STATE_SUFFIX: "Multiple state suffixes",
    TokenKind.RESUME_MARKER: "Multiple resume markers",
    TokenKind.STATE_MARKER: "Multiple state markers",
}


class EntryAssembler:
    """Build :class:`LogEntry` and :class:`StateMarker` values line by line.

    The assembler carries the file context between lines: the date that
    time-only timestamps inherit and the previous timestamp, which is used to
    detect midnight roll-over and suspicious gaps. Non-fatal findings are
    appended to ``warnings``.
    """

    def __init__(
        self,
        initial_date: Optional[Union[date, datetime]] = None,
        warnings: Optional[List[str]] = None,
    ) -> None:
        if isinstance(initial_date, datetime):
            initial_date = initial_date.date()
        self.current_date: date = initial_date or date.today()
        self.last_timestamp: Optional[datetime] = None
        self.warnings: List[str] = warnings if warnings is not None else []

    def assemble(self, lexed: LexedLine) -> TimelineEvent:
        line = lexed.line_number
        for kind, message in _SINGLE_KINDS.items():
            repeated = lexed.all(kind)
            if len(repeated) > 1:
                raise ParseError(message, line, repeated[1].column)

        remark_token = lexed.first(TokenKind.REMARK)
        remark = remark_token.text if remark_token else None

        marker_token = lexed.first(TokenKind.STATE_MARKER)
        if marker_token is not None:
            for token in lexed.tokens:
                if token.kind not in (TokenKind.TIMESTAMP, TokenKind.STATE_MARKER, TokenKind.REMARK):
                    raise ParseError(
                        f"@{marker_token.text} cannot be combined with other fields", line, token.column
                    )
            timestamp = self._commit_timestamp(lexed)
            return StateMarker(
                marker=Marker.from_keyword(marker_token.text),
                timestamp=timestamp,
                indent_level=lexed.indent_level,
                line_number=line,
                remark=remark,
            )

        description_token = lexed.first(TokenKind.DESCRIPTION)
        project_token = lexed.first(TokenKind.PROJECT)
        resume_token = lexed.first(TokenKind.RESUME_MARKER)
        suffix_token = lexed.first(TokenKind.STATE_SUFFIX)
        tags = self._unique_tags(lexed)

        description = description_token.text if description_token else ""
        if not description and not tags and project_token is None and resume_token is None:
            raise ParseError("Missing description or tags", line)

        estimate = self._minutes(lexed.first(TokenKind.ESTIMATE), "estimate", line)
        duration = self._minutes(lexed.first(TokenKind.EXPLICIT_DURATION), "duration", line)

        timestamp = self._commit_timestamp(lexed)
        return LogEntry(
            timestamp=timestamp,
            description=description,
            project=project_token.text if project_token else None,
            tags=tags,
            estimate_minutes=estimate,
            explicit_duration_minutes=duration,
            remark=remark,
            state_suffix=SessionState(suffix_token.text) if suffix_token else None,
            resume_marker=resume_token.text if resume_token else None,
            indent_level=lexed.indent_level,
            line_number=line,
        )

    # ╭──────────────────────────────────────────────────────────╮
    # │ Field helpers                                            │
    # ╰──────────────────────────────────────────────────────────╯

    def _unique_tags(self, lexed: LexedLine) -> Tuple[str, ...]:
        tags: List[str] = []
        for token in lexed.all(TokenKind.TAG):
            if token.text in tags:
                self.warnings.append(f'Line {lexed.line_number}: Duplicate tag "+{token.text}" ignored')
                continue
            tags.append(token.text)
        return tuple(tags)

    @staticmethod
    def _minutes(token: Optional[Token], label: str, line: int) -> Optional[int]:
        if token is None:
            return None
        try:
            return parse_duration(token.text)
        except ParseError as exc:
            raise ParseError(f"Invalid {label}: {exc.message}", line, token.column) from exc

    def _commit_timestamp(self, lexed: LexedLine) -> datetime:
        """Resolve the line's timestamp and advance the file context."""

        token = lexed.tokens[0]
        line = lexed.line_number
        text = token.text

        dated = DATED_TIMESTAMP.match(text)
        if dated:
            year, month, day = (int(value) for value in dated.group(1, 2, 3))
            clock = _clock(dated.group(4), dated.group(5), dated.group(6), text, line, token.column)
            try:
                day_value = date(year, month, day)
            except ValueError as exc:
                raise ParseError(f'Invalid timestamp: "{text}"', line, token.column) from exc
            timestamp = datetime.combine(day_value, clock)
            self.current_date = day_value
            self.last_timestamp = timestamp
            return timestamp

        match = TIME_ONLY_TIMESTAMP.match(text)
        if not match:
            raise ParseError(f'Invalid time format: "{text}"', line, token.column)
        clock = _clock(match.group(1), match.group(2), match.group(3), text, line, token.column)
        timestamp = datetime.combine(self.current_date, clock)

        previous = self.last_timestamp
        if previous is not None and timestamp < previous:
            try:
                next_day = self.current_date + timedelta(days=1)
            except OverflowError as exc:
                raise ParseError(f'Date out of range after "{text}"', line, token.column) from exc
            self.current_date = next_day
            timestamp = datetime.combine(next_day, clock)
            self.warnings.append(f"Line {line}: Time went backward ({text}), assuming next day")
        if previous is not None and timestamp - previous > LARGE_GAP:
            hours = int((timestamp - previous).total_seconds() // 3600)
            self.warnings.append(f"Line {line}: Large time gap detected ({hours} hours)")

        self.last_timestamp = timestamp
        return timestamp


def _clock(hours: str, minutes: str, seconds: Optional[str], text: str, line: int, column: int) -> time:
    hour, minute, second = int(hours), int(minutes), int(seconds or 0)
    if hour > 23 or minute > 59 or second > 59:
        raise ParseError(f'Invalid time values: "{text}"', line, column)
    return time(hour, minute, second)


# ╭──────────────────────────────────────────────────────────────╮
# │ Document compiler                                            │
# ╰──────────────────────────────────────────────────────────────╯


def compile_log(text: str, initial_date: Optional[Union[date, datetime]] = None) -> ParseResult:
    """Compile a whole document of log notation.

    Every broken line contributes one :class:`ParseError` and compilation
    carries on with the next line, so the result lists all defects at once
    next to the entries that did parse.
    """

    result = ParseResult()
    assembler = EntryAssembler(initial_date, warnings=result.warnings)

    for number, line in enumerate(text.splitlines(), start=1):
        try:
            lexed = tokenize_line(line, number)
            if lexed is None:
                continue
            result.entries.append(assembler.assemble(lexed))
        except ParseError as exc:
            result.errors.append(exc)

    logger.debug(
        "Compiled %d entries with %d error(s) and %d warning(s)",
        len(result.entries),
        len(result.errors),
        len(result.warnings),
    )
    return result
