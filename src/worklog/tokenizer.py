"""Split individual lines of log notation into typed tokens."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .errors import ParseError

# ╭──────────────────────────────────────────────────────────────╮
# │ Token patterns                                               │
# ╰──────────────────────────────────────────────────────────────╯
TIMESTAMP_PATTERN = re.compile(r"(?:\d{4}-\d{2}-\d{2}\s+)?\d{1,2}:\d{2}(?::\d{2})?(?=\s|$)")
FRAGMENT_PATTERN = re.compile(r"\S+")

STATE_MARKER_PATTERN = re.compile(r"@(end|pause|abandon)$")
RESUME_MARKER_PATTERN = re.compile(r"@(resume|prev|[1-9]\d*)$")
NUMERIC_MARKER_PATTERN = re.compile(r"@\d+$")
PROJECT_PATTERN = re.compile(r"@([A-Za-z0-9_-]+)$")
TAG_PATTERN = re.compile(r"\+([A-Za-z0-9_-]+)$")
ESTIMATE_PATTERN = re.compile(r"~([0-9hm]+)$")
EXPLICIT_DURATION_PATTERN = re.compile(r"\(([0-9hm]+)\)$")

STATE_SUFFIXES = ("paused", "completed", "abandoned")


class TokenKind(str, Enum):
    TIMESTAMP = "timestamp"
    DESCRIPTION = "description"
    PROJECT = "project"
    TAG = "tag"
    ESTIMATE = "estimate"
    EXPLICIT_DURATION = "explicit_duration"
    REMARK = "remark"
    STATE_SUFFIX = "state_suffix"
    RESUME_MARKER = "resume_marker"
    STATE_MARKER = "state_marker"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    column: int = 1


@dataclass(frozen=True)
class LexedLine:
    """Tokens of one non-blank, non-comment line."""

    tokens: Tuple[Token, ...]
    indent_level: int
    line_number: int
    raw: str

    def first(self, kind: TokenKind) -> Optional[Token]:
        for token in self.tokens:
            if token.kind is kind:
                return token
        return None

    def all(self, kind: TokenKind) -> List[Token]:
        return [token for token in self.tokens if token.kind is kind]


# ╭──────────────────────────────────────────────────────────────╮
# │ Line helpers                                                 │
# ╰──────────────────────────────────────────────────────────────╯


def indent_level(line: str) -> int:
    """Count leading whitespace characters; a tab counts as one."""

    return len(line) - len(line.lstrip())


def is_blank(line: str) -> bool:
    return not line.strip()


def is_comment(line: str) -> bool:
    return line.lstrip().startswith("#")


def tokenize_line(line: str, line_number: int) -> Optional[LexedLine]:
    """Tokenize *line*, returning ``None`` for blank and comment lines.

    Raises :class:`ParseError` when the line is malformed. Only the shape of
    the timestamp is checked here; out-of-range values are left to the
    entry assembler.
    """

    if is_blank(line) or is_comment(line):
        return None

    indent = indent_level(line)
    body = line.strip()

    timestamp = TIMESTAMP_PATTERN.match(body)
    if not timestamp:
        raise ParseError("Missing or invalid timestamp", line_number, indent + 1)

    tokens: List[Token] = [Token(TokenKind.TIMESTAMP, timestamp.group(0), indent + 1)]
    words: List[str] = []
    words_column = 0
    description_open = True

    def flush_description() -> None:
        if words:
            tokens.append(Token(TokenKind.DESCRIPTION, " ".join(words), words_column))
            words.clear()

    for fragment in FRAGMENT_PATTERN.finditer(body, timestamp.end()):
        text = fragment.group(0)
        column = indent + fragment.start() + 1

        # A "#" must be followed by whitespace wherever it appears; it then
        # ends the word it is attached to and starts the remark.
        hash_at = text.find("#")
        if hash_at != -1 and hash_at < len(text) - 1:
            raise ParseError("Remark must have space after #", line_number, column + hash_at)
        word = text if hash_at == -1 else text[:hash_at]

        if word:
            token = _classify(word, line_number, column)
            if token is None:
                if not description_open:
                    raise ParseError(f'Unexpected text "{word}"', line_number, column)
                if not words:
                    words_column = column
                words.append(word)
            else:
                flush_description()
                tokens.append(token)
                # A leading resume marker may be followed by the task it resumes.
                if not (token.kind is TokenKind.RESUME_MARKER and len(tokens) == 2):
                    description_open = False

        if hash_at != -1:
            remark = body[fragment.end():].strip()
            if not remark:
                raise ParseError("Remark must not be empty", line_number, column + hash_at)
            flush_description()
            tokens.append(Token(TokenKind.REMARK, remark, column + hash_at))
            break

    flush_description()
    return LexedLine(tuple(tokens), indent, line_number, line)


def _classify(text: str, line_number: int, column: int) -> Optional[Token]:
    """Return the sigil token for *text*, or ``None`` for a plain word."""

    if text.startswith("@"):
        for pattern, kind in (
            (STATE_MARKER_PATTERN, TokenKind.STATE_MARKER),
            (RESUME_MARKER_PATTERN, TokenKind.RESUME_MARKER),
        ):
            match = pattern.match(text)
            if match:
                return Token(kind, match.group(1), column)
        if NUMERIC_MARKER_PATTERN.match(text):
            raise ParseError("Resume marker must be a positive number", line_number, column)
        match = PROJECT_PATTERN.match(text)
        if match:
            return Token(TokenKind.PROJECT, match.group(1), column)
        raise ParseError("Invalid project format", line_number, column)

    if text.startswith("+"):
        match = TAG_PATTERN.match(text)
        if not match:
            raise ParseError("Invalid tag format", line_number, column)
        return Token(TokenKind.TAG, match.group(1), column)

    if text.startswith("~"):
        match = ESTIMATE_PATTERN.match(text)
        if not match:
            raise ParseError("Invalid estimate format", line_number, column)
        return Token(TokenKind.ESTIMATE, match.group(1), column)

    if text.startswith("("):
        match = EXPLICIT_DURATION_PATTERN.match(text)
        if not match:
            raise ParseError("Invalid explicit duration format", line_number, column)
        return Token(TokenKind.EXPLICIT_DURATION, match.group(1), column)

    if text.startswith("->"):
        state = text[2:]
        if state not in STATE_SUFFIXES:
            raise ParseError(f'Invalid state suffix "{text}"', line_number, column)
        return Token(TokenKind.STATE_SUFFIX, state, column)

    return None

