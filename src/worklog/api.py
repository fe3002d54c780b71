"""FastAPI application exposing the log compiler and importer."""

from __future__ import annotations

from datetime import date
from typing import Any, Callable

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .config import load_config
from .errors import OverlapConflictError, ParseError, TrackerError, ValidationError
from .grammar import compile_log
from .importer import commit_import, plan_import
from .models import ReconstructedEntry
from .overlap import validate_self_overlap
from .storage import SqliteSessionStore
from .timeline import interruption_warnings, reconstruct

StoreFactory = Callable[[], SqliteSessionStore]


class CompileRequest(BaseModel):
    """Request payload for the ``/compile`` endpoint."""

    text: str
    initial_date: date | None = None


class ImportRequest(CompileRequest):
    """Request payload for the ``/import`` endpoint."""

    overwrite: bool = False


app = FastAPI(title="Worklog API", version="0.1.0")


def _default_store() -> SqliteSessionStore:
    config = load_config()
    config.ensure_data_dir()
    return SqliteSessionStore(config.database_path)


_store_factory: StoreFactory = _default_store


def set_store_factory(func: StoreFactory) -> None:
    """Override how the session store is opened. Primarily used for tests."""

    global _store_factory
    _store_factory = func


def _error_payload(error: ParseError) -> dict[str, Any]:
    return {"message": error.message, "line": error.line, "column": error.column}


def _entry_payload(entry: ReconstructedEntry) -> dict[str, Any]:
    return {
        "line": entry.line_number,
        "start": entry.timestamp.isoformat(),
        "end": entry.end_time.isoformat() if entry.end_time else None,
        "state": entry.state.value,
        "description": entry.display_name,
        "project": entry.project,
        "tags": list(entry.tags),
        "estimate_minutes": entry.estimate_minutes,
        "explicit_duration_minutes": entry.explicit_duration_minutes,
        "remark": entry.remark,
        "indent_level": entry.indent_level,
        "parent_index": entry.parent_index,
        "continues_index": entry.continues_index,
        "resume_marker": entry.resume_marker,
    }


@app.post("/compile")
def compile_endpoint(request: CompileRequest) -> dict[str, Any]:
    """Compile log notation and return the reconstructed timeline."""

    result = compile_log(request.text, request.initial_date)
    entries = reconstruct(result.entries)
    result.warnings.extend(interruption_warnings(entries))
    errors = sorted(
        [*result.errors, *validate_self_overlap(entries)],
        key=lambda error: error.line if error.line is not None else 0,
    )
    return {
        "entries": [_entry_payload(entry) for entry in entries],
        "errors": [_error_payload(error) for error in errors],
        "warnings": result.warnings,
    }


@app.post("/import")
def import_endpoint(request: ImportRequest) -> dict[str, Any]:
    """Store the sessions described by ``text``."""

    try:
        store = _store_factory()
    except TrackerError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    try:
        plan = plan_import(request.text, store, request.initial_date)
        report = commit_import(plan, store, overwrite=request.overwrite)
    except OverlapConflictError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "session_ids": exc.session_ids},
        ) from exc
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": str(exc), "errors": [_error_payload(error) for error in exc.errors]},
        ) from exc
    except TrackerError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    finally:
        store.close()

    return {
        "sessions": report.sessions,
        "interruptions": report.interruptions,
        "deleted": report.deleted,
        "session_ids": report.session_ids,
        "warnings": plan.warnings,
    }


__all__ = ["app", "set_store_factory"]
