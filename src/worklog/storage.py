"""Session storage backed by SQLite."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Protocol, Sequence, Union

from .errors import StorageError
from .models import NewSession, SessionRecord, SessionState

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  start_time TEXT NOT NULL,
  end_time TEXT,
  description TEXT NOT NULL,
  project TEXT,
  estimate_minutes INTEGER,
  explicit_duration_minutes INTEGER,
  remark TEXT,
  state TEXT NOT NULL DEFAULT 'working',
  parent_session_id INTEGER,
  continues_session_id INTEGER,
  created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
  FOREIGN KEY (parent_session_id) REFERENCES sessions(id) ON DELETE CASCADE,
  FOREIGN KEY (continues_session_id) REFERENCES sessions(id) ON DELETE SET NULL,
  CHECK (state IN ('working', 'paused', 'completed', 'abandoned')),
  CHECK (end_time IS NULL OR end_time >= start_time)
);

CREATE TABLE IF NOT EXISTS session_tags (
  session_id INTEGER NOT NULL,
  tag TEXT NOT NULL,
  PRIMARY KEY (session_id, tag),
  FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_sessions_start_time ON sessions(start_time);
CREATE INDEX IF NOT EXISTS idx_sessions_state ON sessions(state);
CREATE INDEX IF NOT EXISTS idx_sessions_parent ON sessions(parent_session_id);
CREATE INDEX IF NOT EXISTS idx_sessions_continues ON sessions(continues_session_id);
CREATE INDEX IF NOT EXISTS idx_session_tags_tag ON session_tags(tag);
"""


class SessionStore(Protocol):
    """What the compiler core and the importer need from storage."""

    def find_most_recently_paused_session(
        self,
        description: Optional[str] = None,
        project: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Optional[SessionRecord]: ...

    def get_chain_root(self, session_id: int) -> Optional[SessionRecord]: ...

    def get_sessions_overlapping(
        self, start: datetime, end: Optional[datetime]
    ) -> List[SessionRecord]: ...

    def get_session_state(self, session_id: int) -> Optional[SessionState]: ...

    def get_session(self, session_id: int) -> Optional[SessionRecord]: ...

    def insert_session(self, session: NewSession) -> int: ...

    def delete_session(self, session_id: int) -> None: ...

    def count_descendants(self, session_id: int) -> int: ...

    def transaction(self): ...


def _to_text(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(sep=" ", timespec="seconds") if value is not None else None


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SqliteSessionStore:
    """:class:`SessionStore` implementation on top of :mod:`sqlite3`.

    Writes are committed immediately unless they happen inside
    :meth:`transaction`, in which case the whole block commits or rolls back
    together.
    """

    def __init__(self, path: Union[str, Path] = ":memory:") -> None:
        self.path = str(path)
        try:
            self._conn = sqlite3.connect(self.path)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to open database {self.path}: {exc}") from exc
        self._depth = 0
        logger.debug("Opened session store at %s", self.path)

    def __enter__(self) -> "SqliteSessionStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator["SqliteSessionStore"]:
        """Group several writes into one atomic unit."""

        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._conn.rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            self._conn.commit()

    # ╭──────────────────────────────────────────────────────────╮
    # │ Low level helpers                                        │
    # ╰──────────────────────────────────────────────────────────╯

    def _query(self, sql: str, params: Sequence[object] = ()) -> List[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Query failed: {exc}") from exc

    def _write(self, sql: str, params: Sequence[object] = ()) -> sqlite3.Cursor:
        try:
            cursor = self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            if self._depth == 0:
                self._conn.rollback()
            raise StorageError(f"Write failed: {exc}") from exc
        if self._depth == 0:
            self._conn.commit()
        return cursor

    def _tags(self, session_id: int) -> tuple[str, ...]:
        rows = self._query(
            "SELECT tag FROM session_tags WHERE session_id = ? ORDER BY rowid", (session_id,)
        )
        return tuple(row["tag"] for row in rows)

    def _record(self, row: sqlite3.Row) -> SessionRecord:
        return SessionRecord(
            id=row["id"],
            start_time=_from_text(row["start_time"]),
            end_time=_from_text(row["end_time"]),
            description=row["description"],
            project=row["project"],
            tags=self._tags(row["id"]),
            estimate_minutes=row["estimate_minutes"],
            explicit_duration_minutes=row["explicit_duration_minutes"],
            remark=row["remark"],
            state=SessionState(row["state"]),
            parent_session_id=row["parent_session_id"],
            continues_session_id=row["continues_session_id"],
        )

    def _records(self, sql: str, params: Sequence[object] = ()) -> List[SessionRecord]:
        return [self._record(row) for row in self._query(sql, params)]

    # ╭──────────────────────────────────────────────────────────╮
    # │ Writes                                                   │
    # ╰──────────────────────────────────────────────────────────╯

    def insert_session(self, session: NewSession) -> int:
        with self.transaction():
            cursor = self._write(
                """
                INSERT INTO sessions (
                  start_time, end_time, description, project,
                  estimate_minutes, explicit_duration_minutes, remark, state,
                  parent_session_id, continues_session_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    _to_text(session.start_time),
                    _to_text(session.end_time),
                    session.description,
                    session.project,
                    session.estimate_minutes,
                    session.explicit_duration_minutes,
                    session.remark,
                    SessionState(session.state).value,
                    session.parent_session_id,
                    session.continues_session_id,
                ),
            )
            session_id = int(cursor.lastrowid)
            for tag in dict.fromkeys(session.tags):
                self._write(
                    "INSERT INTO session_tags (session_id, tag) VALUES (?, ?)", (session_id, tag)
                )
        logger.debug("Inserted session %d (%s)", session_id, session.description)
        return session_id

    def delete_session(self, session_id: int) -> None:
        """Delete a session; interruptions nested under it go with it."""

        self._write("DELETE FROM sessions WHERE id = ?", (session_id,))
        logger.debug("Deleted session %d", session_id)

    # ╭──────────────────────────────────────────────────────────╮
    # │ Reads                                                    │
    # ╰──────────────────────────────────────────────────────────╯

    def get_session(self, session_id: int) -> Optional[SessionRecord]:
        records = self._records("SELECT * FROM sessions WHERE id = ?", (session_id,))
        return records[0] if records else None

    def get_session_state(self, session_id: int) -> Optional[SessionState]:
        rows = self._query("SELECT state FROM sessions WHERE id = ?", (session_id,))
        return SessionState(rows[0]["state"]) if rows else None

    def get_child_sessions(self, parent_session_id: int) -> List[SessionRecord]:
        return self._records(
            "SELECT * FROM sessions WHERE parent_session_id = ? ORDER BY start_time, id",
            (parent_session_id,),
        )

    def count_descendants(self, session_id: int) -> int:
        rows = self._query(
            """
            WITH RECURSIVE descendants(id) AS (
              SELECT id FROM sessions WHERE parent_session_id = ?
              UNION ALL
              SELECT s.id FROM sessions s JOIN descendants d ON s.parent_session_id = d.id
            )
            SELECT COUNT(*) AS total FROM descendants
            """,
            (session_id,),
        )
        return int(rows[0]["total"])

    def get_sessions_in_range(
        self, start: datetime, end: datetime, *, roots_only: bool = False
    ) -> List[SessionRecord]:
        sql = "SELECT * FROM sessions WHERE start_time >= ? AND start_time < ?"
        if roots_only:
            sql += " AND parent_session_id IS NULL"
        return self._records(sql + " ORDER BY start_time, id", (_to_text(start), _to_text(end)))

    def get_sessions_overlapping(
        self, start: datetime, end: Optional[datetime]
    ) -> List[SessionRecord]:
        """Top-level sessions that intersect ``[start, end)``.

        ``end=None`` stands for a session that is still running.
        """

        if end is None:
            return self._records(
                """
                SELECT * FROM sessions
                WHERE parent_session_id IS NULL
                  AND (end_time IS NULL OR end_time > ?)
                ORDER BY start_time, id
                """,
                (_to_text(start),),
            )
        return self._records(
            """
            SELECT * FROM sessions
            WHERE parent_session_id IS NULL
              AND start_time < ?
              AND (end_time IS NULL OR end_time > ?)
            ORDER BY start_time, id
            """,
            (_to_text(end), _to_text(start)),
        )

    def find_most_recently_paused_session(
        self,
        description: Optional[str] = None,
        project: Optional[str] = None,
        tag: Optional[str] = None,
    ) -> Optional[SessionRecord]:
        """Latest paused session matching every filter that is given.

        Candidates are ordered by start time, then by id, so the newest
        match wins when several sessions fit.
        """

        sql = "SELECT * FROM sessions s WHERE s.state = 'paused'"
        params: List[object] = []
        if description:
            sql += " AND s.description = ?"
            params.append(description)
        if project:
            sql += " AND s.project = ?"
            params.append(project)
        if tag:
            sql += " AND EXISTS (SELECT 1 FROM session_tags t WHERE t.session_id = s.id AND t.tag = ?)"
            params.append(tag)
        records = self._records(sql + " ORDER BY s.start_time DESC, s.id DESC LIMIT 1", params)
        return records[0] if records else None

    def get_chain_root(self, session_id: int) -> Optional[SessionRecord]:
        """Follow ``continues_session_id`` links back to the first session."""

        current = self.get_session(session_id)
        seen = set()
        while current is not None and current.continues_session_id is not None:
            if current.id in seen:
                raise StorageError(f"Continuation cycle detected at session {current.id}")
            seen.add(current.id)
            previous = self.get_session(current.continues_session_id)
            if previous is None:
                break
            current = previous
        return current


__all__ = ["SessionStore", "SqliteSessionStore"]
