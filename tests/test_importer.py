from datetime import date, datetime

import pytest

from worklog.errors import OverlapConflictError, ValidationError
from worklog.importer import commit_import, import_log, plan_import
from worklog.models import SessionState


def at(hour, minute=0, day=2):
    return datetime(2025, 3, day, hour, minute)


def _all(store):
    return store.get_sessions_in_range(at(0, day=1), at(0, day=10))


def test_import_stores_sessions_and_interruptions(store, day):
    report = import_log("09:00 Task @proj +focus\n  09:15 Call (15m)\n10:00 @end", store, day)

    assert (report.sessions, report.interruptions, report.deleted) == (1, 1, 0)
    task_id, call_id = report.session_ids
    task = store.get_session(task_id)
    call = store.get_session(call_id)
    assert (task.start_time, task.end_time, task.state) == (at(9), at(10), SessionState.COMPLETED)
    assert task.project == "proj"
    assert task.tags == ("focus",)
    assert call.parent_session_id == task_id
    assert call.end_time == at(9, 30)
    assert call.explicit_duration_minutes == 15


def test_plan_import_does_not_write(store, day):
    plan = plan_import("09:00 Task\n10:00 @end", store, day)

    assert plan.ok
    assert len(plan.entries) == 1
    assert _all(store) == []


def test_plan_warns_about_interruptions_after_their_parent_ended(store, day):
    plan = plan_import("09:00 A\n  09:10 B\n  09:20 @pause\n  09:40 C\n10:00 @end", store, day)

    assert plan.ok
    assert plan.warnings == ["Line 4: Interruption starts after its parent (line 1) ended"]


def test_parse_errors_block_the_import(store, day):
    plan = plan_import("09:00 Task\nbroken\n10:00 @end", store, day)

    with pytest.raises(ValidationError) as excinfo:
        commit_import(plan, store)

    assert [error.line for error in excinfo.value.errors] == [2]
    assert _all(store) == []


def test_self_overlap_blocks_the_import(store, day):
    plan = plan_import("09:00 Deploy (1h)\n09:30 Review (1h)", store, day)

    assert [error.message for error in plan.errors] == [
        'Sessions overlap: "Deploy" (line 1) and "Review" (line 2)'
    ]
    with pytest.raises(ValidationError):
        commit_import(plan, store)


def test_conflicts_with_stored_sessions_need_overwrite(store, day):
    first = import_log("09:00 Original\n10:00 @end", store, day)

    plan = plan_import("09:30 Replacement\n10:30 @end", store, day)
    with pytest.raises(OverlapConflictError) as excinfo:
        commit_import(plan, store)

    assert excinfo.value.session_ids == first.session_ids
    assert [record.description for record in _all(store)] == ["Original"]


def test_overwrite_deletes_conflicts_with_their_interruptions(store, day):
    import_log("09:00 Original\n  09:10 Call (5m)\n10:00 @end", store, day)

    report = import_log("09:30 Replacement\n10:30 @end", store, day, overwrite=True)

    assert report.deleted == 2
    assert [record.description for record in _all(store)] == ["Replacement"]


def test_resume_within_the_same_batch(store, day):
    report = import_log("09:00 Write report\n10:00 @pause\n11:00 @resume\n12:00 @end", store, day)

    first_id, second_id = report.session_ids
    second = store.get_session(second_id)
    assert store.get_session_state(first_id) is SessionState.PAUSED
    assert second.continues_session_id == first_id
    assert second.description == "Write report"


def test_numeric_resume_links_to_the_stored_chain_root(store, day):
    report = import_log(
        "09:00 Write\n10:00 @pause\n11:00 @1 Write\n12:00 @pause\n13:00 @2 Write\n14:00 @end",
        store,
        day,
    )

    root, second, third = report.session_ids
    assert store.get_session(second).continues_session_id == root
    assert store.get_session(third).continues_session_id == root


def test_resume_across_imports(store):
    first = import_log("09:00 Write report\n10:00 @pause", store, date(2025, 3, 1))
    second = import_log("09:00 @resume\n10:00 @end", store, date(2025, 3, 2))

    (resumed_id,) = second.session_ids
    assert store.get_session(resumed_id).continues_session_id == first.session_ids[0]


def test_sessions_without_description_use_tag_then_project(store, day):
    report = import_log("09:00 +review @webapp\n10:00 @webapp\n11:00 @end", store, day)

    assert [store.get_session(session_id).description for session_id in report.session_ids] == [
        "review",
        "webapp",
    ]
