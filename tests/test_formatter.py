from datetime import date, datetime

import pytest

from worklog.formatter import annotate_errors, format_entry, format_sessions, strip_annotations
from worklog.grammar import compile_log
from worklog.importer import import_log
from worklog.timeline import reconstruct


@pytest.mark.parametrize(
    "line",
    [
        "09:00 Fix login bug @webapp +bug +urgent ~1h (30m) ->paused # needs review",
        "09:00 @resume Write report @docs",
        "  09:15 Phone call (15m)",
        "09:00 +meeting",
        "09:00:30 Precise start",
        "10:00 @end # wrapped up",
    ],
)
def test_format_entry_round_trips(day, line):
    (entry,) = compile_log(line, day).entries

    assert format_entry(entry) == line


def test_format_entry_with_full_date(day):
    (entry,) = compile_log("09:00 Task", day).entries

    assert format_entry(entry, full_date=True) == "2025-03-02 09:00 Task"


def test_format_sessions_exports_compilable_notation(store, day):
    source = "09:00 Task @proj\n  09:15 Call (15m)\n10:00 Next ->paused\n11:00 @end\n13:00 Lunch talk (45m)\n"
    import_log(source, store, day)

    sessions = store.get_sessions_in_range(datetime(2025, 3, 2), datetime(2025, 3, 3), roots_only=True)
    exported = format_sessions(sessions, store)

    assert exported == (
        "2025-03-02 09:00 Task @proj\n"
        "  09:15 Call (15m)\n"
        "10:00 Next\n"
        "11:00 @pause\n"
        "13:00 Lunch talk (45m)\n"
    )
    original = [(e.timestamp, e.end_time, e.state) for e in reconstruct(compile_log(source, day).entries)]
    again = [(e.timestamp, e.end_time, e.state) for e in reconstruct(compile_log(exported).entries)]
    assert again == original


def test_format_sessions_writes_dates_when_the_day_changes(store):
    import_log("09:00 Monday\n10:00 @end", store, date(2025, 3, 3))
    import_log("09:00 Tuesday\n10:00 @end", store, date(2025, 3, 4))

    sessions = store.get_sessions_in_range(datetime(2025, 3, 3), datetime(2025, 3, 5))

    assert format_sessions(sessions, store) == (
        "2025-03-03 09:00 Monday\n10:00 @end\n2025-03-04 09:00 Tuesday\n10:00 @end\n"
    )


def test_format_sessions_of_nothing_is_empty(store):
    assert format_sessions([], store) == ""


def test_annotate_errors_marks_the_broken_lines(day):
    text = "09:00 Task\nbroken line\n10:00 @end"
    result = compile_log(text, day)

    annotated = annotate_errors(text, result.errors)

    assert annotated == (
        "09:00 Task\n"
        "# ERROR: Missing or invalid timestamp (column 1)\n"
        "broken line\n"
        "10:00 @end\n"
    )
    assert compile_log(annotated, day).errors[0].message == "Missing or invalid timestamp"
    assert strip_annotations(annotated) == text + "\n"


def test_annotate_errors_replaces_previous_annotations(day):
    text = "# ERROR: old problem\n09:00 Task\n10:00 @end"

    assert annotate_errors(text, []) == "09:00 Task\n10:00 @end\n"
