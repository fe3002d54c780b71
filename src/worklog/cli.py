"""Command line interface for worklog."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, List, Optional

import click
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import TrackerConfig, load_config
from .errors import ConfigError, ParseError, TrackerError
from .formatter import annotate_errors, format_sessions, format_timestamp, strip_annotations
from .grammar import compile_log
from .importer import ImportPlan, commit_import, plan_import
from .models import ReconstructedEntry
from .overlap import validate_self_overlap
from .storage import SqliteSessionStore
from .timeline import interruption_warnings, reconstruct

app = typer.Typer(add_completion=False, help="Plain-text work session log")
console = Console()
err_console = Console(stderr=True)

DATE_FORMATS = ["%Y-%m-%d"]


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback()
def _main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output on stderr."),
) -> None:
    configure_logging(verbose)


# ╭──────────────────────────────────────────────────────────────╮
# │ Shared helpers                                               │
# ╰──────────────────────────────────────────────────────────────╯


def _load_config() -> TrackerConfig:
    try:
        return load_config()
    except ConfigError as exc:
        err_console.print(f"[bold red]Configuration error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc


def _open_store(db: Optional[Path]) -> SqliteSessionStore:
    if db is None:
        config = _load_config()
        config.ensure_data_dir()
        db = config.database_path
    try:
        return SqliteSessionStore(db)
    except TrackerError as exc:
        err_console.print(f"[bold red]Failed to open database:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc


def _read_source(file: Optional[Path]) -> str:
    if file is None or str(file) == "-":
        return typer.get_text_stream("stdin").read()
    return file.read_text(encoding="utf-8")


def _print_errors(errors: Iterable[ParseError]) -> None:
    for error in errors:
        err_console.print(f"[bold red]✗[/bold red] {escape(str(error))}")


def _print_warnings(warnings: Iterable[str]) -> None:
    for warning in warnings:
        err_console.print(f"[yellow]![/yellow] {escape(warning)}")


def _print_conflicts(plan: ImportPlan, store: SqliteSessionStore) -> None:
    table = Table(title="Conflicting sessions", title_style="bold red")
    table.add_column("ID", justify="right")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Description")
    for session_id in sorted(plan.conflicting_ids):
        record = store.get_session(session_id)
        if record is None:
            continue
        end = format_timestamp(record.end_time, full_date=True) if record.end_time else "running"
        table.add_row(
            str(record.id),
            format_timestamp(record.start_time, full_date=True),
            end,
            escape(record.description),
        )
    err_console.print(table)


def _entries_table(entries: List[ReconstructedEntry]) -> Table:
    table = Table(title="Timeline")
    table.add_column("#", justify="right")
    table.add_column("Line", justify="right")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("State")
    table.add_column("Description")
    table.add_column("Project")
    table.add_column("Tags")
    table.add_column("Parent", justify="right")
    table.add_column("Continues", justify="right")
    for index, entry in enumerate(entries, start=1):
        table.add_row(
            str(index),
            str(entry.line_number),
            format_timestamp(entry.timestamp, full_date=True),
            format_timestamp(entry.end_time, full_date=True) if entry.end_time else "-",
            entry.state.value,
            ("  " if entry.parent_index is not None else "") + escape(entry.display_name),
            escape(entry.project or ""),
            escape(" ".join(f"+{tag}" for tag in entry.tags)),
            str(entry.parent_index + 1) if entry.parent_index is not None else "",
            f"@{entry.continues_index + 1}" if entry.continues_index is not None else (entry.resume_marker or ""),
        )
    return table


# ╭──────────────────────────────────────────────────────────────╮
# │ Commands                                                     │
# ╰──────────────────────────────────────────────────────────────╯


@app.command("log")
def log_command(
    file: Optional[Path] = typer.Argument(
        None, dir_okay=False, help="Log file to import. Reads stdin when omitted or '-'."
    ),
    initial_date: Optional[datetime] = typer.Option(
        None, "--date", "-d", formats=DATE_FORMATS, help="Date for entries without one (default: today)."
    ),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace stored sessions that overlap."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask before overwriting."),
    edit: bool = typer.Option(False, "--edit", "-e", help="Fix errors in your editor until the log compiles."),
    db: Optional[Path] = typer.Option(None, "--db", help="Database file (default: $TT_DATA_DIR/tt.db)."),
) -> None:
    """Import sessions written in log notation."""

    if file is not None and str(file) != "-" and not file.exists():
        raise typer.BadParameter(f"File not found: {file}", param_hint="FILE")

    text = _read_source(file)
    with _open_store(db) as store:
        plan = plan_import(text, store, initial_date)

        if edit and not plan.ok:
            editor = _load_config().editor
            while not plan.ok:
                _print_errors(plan.errors)
                edited = click.edit(annotate_errors(text, plan.errors), editor=editor, extension=".log")
                if edited is None:
                    err_console.print("[bold red]Aborted:[/bold red] the file was not saved.")
                    raise typer.Exit(code=1)
                text = strip_annotations(edited)
                plan = plan_import(text, store, initial_date)

        _print_warnings(plan.warnings)
        if not plan.ok:
            _print_errors(plan.errors)
            err_console.print(f"[bold red]{len(plan.errors)} error(s); nothing was imported.[/bold red]")
            raise typer.Exit(code=1)

        if plan.conflicting_ids:
            _print_conflicts(plan, store)
            if not overwrite:
                err_console.print("Use [bold]--overwrite[/bold] to replace the sessions listed above.")
                raise typer.Exit(code=1)
            if not yes and not typer.confirm(
                f"Delete {len(plan.conflicting_ids)} session(s) and their interruptions?"
            ):
                raise typer.Exit(code=1)

        try:
            report = commit_import(plan, store, overwrite=overwrite)
        except TrackerError as exc:
            err_console.print(f"[bold red]Import failed:[/bold red] {escape(str(exc))}")
            raise typer.Exit(code=1) from exc

    summary = f"Logged [bold]{report.sessions}[/bold] session(s) and [bold]{report.interruptions}[/bold] interruption(s)"
    if report.deleted:
        summary += f", replaced [bold]{report.deleted}[/bold] stored session(s)"
    console.print(Panel.fit(summary, title="Success"))


@app.command("check")
def check_command(
    file: Optional[Path] = typer.Argument(
        None, dir_okay=False, help="Log file to check. Reads stdin when omitted or '-'."
    ),
    initial_date: Optional[datetime] = typer.Option(
        None, "--date", "-d", formats=DATE_FORMATS, help="Date for entries without one (default: today)."
    ),
) -> None:
    """Compile a log and show the reconstructed timeline without storing it."""

    if file is not None and str(file) != "-" and not file.exists():
        raise typer.BadParameter(f"File not found: {file}", param_hint="FILE")

    result = compile_log(_read_source(file), initial_date)
    entries = reconstruct(result.entries)
    result.warnings.extend(interruption_warnings(entries))
    errors = sorted(
        [*result.errors, *validate_self_overlap(entries)],
        key=lambda error: error.line if error.line is not None else 0,
    )

    if entries:
        console.print(_entries_table(entries))
    _print_warnings(result.warnings)
    if errors:
        _print_errors(errors)
        raise typer.Exit(code=1)
    console.print(Panel.fit(f"{len(entries)} entries, no errors", title="OK"))


@app.command("export")
def export_command(
    since: Optional[datetime] = typer.Option(
        None, "--since", formats=DATE_FORMATS, help="First day to export (default: today)."
    ),
    until: Optional[datetime] = typer.Option(
        None, "--until", formats=DATE_FORMATS, help="Last day to export, inclusive (default: --since)."
    ),
    db: Optional[Path] = typer.Option(None, "--db", help="Database file (default: $TT_DATA_DIR/tt.db)."),
) -> None:
    """Print stored sessions as log notation."""

    start = since or datetime.combine(datetime.now().date(), datetime.min.time())
    end = (until or start) + timedelta(days=1)
    if end <= start:
        raise typer.BadParameter("--until must not be before --since", param_hint="--until")

    with _open_store(db) as store:
        sessions = store.get_sessions_in_range(start, end, roots_only=True)
        if not sessions:
            err_console.print("No sessions found.")
            return
        typer.echo(format_sessions(sessions, store), nl=False)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
