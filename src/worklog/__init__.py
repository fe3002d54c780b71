"""Plain-text work session logging."""

from .errors import (
    ConfigError,
    OverlapConflictError,
    ParseError,
    StorageError,
    TrackerError,
    ValidationError,
)
from .formatter import annotate_errors, format_entry, format_sessions
from .grammar import EntryAssembler, compile_log
from .importer import ImportPlan, ImportReport, commit_import, import_log, plan_import
from .models import (
    LogEntry,
    Marker,
    NewSession,
    ParseResult,
    ReconstructedEntry,
    SessionRecord,
    SessionState,
    StateMarker,
)
from .overlap import find_overlapping_persisted, ranges_overlap, validate_self_overlap
from .storage import SessionStore, SqliteSessionStore
from .timeline import interruption_warnings, reconstruct, resolve_resume_markers

__all__ = [
    "ConfigError",
    "EntryAssembler",
    "ImportPlan",
    "ImportReport",
    "LogEntry",
    "Marker",
    "NewSession",
    "OverlapConflictError",
    "ParseError",
    "ParseResult",
    "ReconstructedEntry",
    "SessionRecord",
    "SessionState",
    "SessionStore",
    "SqliteSessionStore",
    "StateMarker",
    "StorageError",
    "TrackerError",
    "ValidationError",
    "annotate_errors",
    "commit_import",
    "compile_log",
    "find_overlapping_persisted",
    "format_entry",
    "format_sessions",
    "import_log",
    "interruption_warnings",
    "plan_import",
    "ranges_overlap",
    "reconstruct",
    "resolve_resume_markers",
    "validate_self_overlap",
]
