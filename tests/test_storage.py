from datetime import datetime

import pytest

from worklog.errors import StorageError
from worklog.models import NewSession, SessionState
from worklog.storage import SqliteSessionStore


def at(hour, minute=0, day=2):
    return datetime(2025, 3, day, hour, minute)


def _session(start, end=None, description="Work", state=SessionState.COMPLETED, **extra):
    return NewSession(start_time=start, end_time=end, description=description, state=state, **extra)


def test_insert_and_fetch_session(store):
    session_id = store.insert_session(
        _session(
            at(9),
            at(10),
            "Fix bug",
            project="webapp",
            tags=("bug", "urgent"),
            estimate_minutes=60,
            explicit_duration_minutes=None,
            remark="tricky",
        )
    )

    record = store.get_session(session_id)
    assert record.id == session_id
    assert record.start_time == at(9)
    assert record.end_time == at(10)
    assert record.description == "Fix bug"
    assert record.project == "webapp"
    assert record.tags == ("bug", "urgent")
    assert record.estimate_minutes == 60
    assert record.remark == "tricky"
    assert record.state is SessionState.COMPLETED
    assert store.get_session_state(session_id) is SessionState.COMPLETED
    assert store.get_session(session_id + 100) is None
    assert store.get_session_state(session_id + 100) is None


def test_deleting_a_session_removes_its_interruptions(store):
    parent = store.insert_session(_session(at(9), at(11), "Parent"))
    child = store.insert_session(_session(at(9, 15), at(9, 30), "Child", parent_session_id=parent))
    store.insert_session(_session(at(9, 20), at(9, 25), "Grandchild", parent_session_id=child))

    assert [record.description for record in store.get_child_sessions(parent)] == ["Child"]
    assert store.count_descendants(parent) == 2

    store.delete_session(parent)

    assert store.get_session(parent) is None
    assert store.get_session(child) is None
    assert store.get_sessions_in_range(at(0), at(23)) == []


def test_overlap_query_returns_root_sessions_only(store):
    parent = store.insert_session(_session(at(9), at(11), "Parent"))
    store.insert_session(_session(at(9, 15), at(9, 30), "Child", parent_session_id=parent))
    store.insert_session(_session(at(11), at(12), "Touching"))

    assert [record.id for record in store.get_sessions_overlapping(at(9, 20), at(9, 25))] == [parent]
    assert store.get_sessions_overlapping(at(12), at(13)) == []
    assert [record.description for record in store.get_sessions_overlapping(at(10), None)] == [
        "Parent",
        "Touching",
    ]


def test_running_sessions_overlap_everything_after_their_start(store):
    running = store.insert_session(_session(at(9), None, "Running", state=SessionState.WORKING))

    assert [record.id for record in store.get_sessions_overlapping(at(15), at(16))] == [running]


def test_find_most_recently_paused_session_applies_filters(store):
    store.insert_session(_session(at(9), at(10), "Write", state=SessionState.PAUSED, tags=("docs",)))
    newest = store.insert_session(_session(at(13), at(14), "Code", state=SessionState.PAUSED, project="api"))
    store.insert_session(_session(at(15), at(16), "Done", state=SessionState.COMPLETED))

    assert store.find_most_recently_paused_session().id == newest
    assert store.find_most_recently_paused_session(description="Write").description == "Write"
    assert store.find_most_recently_paused_session(project="api").id == newest
    assert store.find_most_recently_paused_session(tag="docs").description == "Write"
    assert store.find_most_recently_paused_session(description="Done") is None


def test_paused_sessions_with_same_start_prefer_highest_id(store):
    store.insert_session(_session(at(9), at(10), "Write", state=SessionState.PAUSED))
    second = store.insert_session(_session(at(9), at(10), "Write", state=SessionState.PAUSED))

    assert store.find_most_recently_paused_session(description="Write").id == second


def test_get_chain_root_follows_continuations(store):
    root = store.insert_session(_session(at(9), at(10), state=SessionState.PAUSED))
    middle = store.insert_session(_session(at(11), at(12), state=SessionState.PAUSED, continues_session_id=root))
    last = store.insert_session(_session(at(13), at(14), continues_session_id=middle))

    assert store.get_chain_root(last).id == root
    assert store.get_chain_root(root).id == root
    assert store.get_chain_root(9999) is None


def test_transaction_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert_session(_session(at(9), at(10)))
            raise RuntimeError("boom")

    assert store.get_sessions_in_range(at(0), at(23)) == []


def test_driver_failures_become_storage_errors(store):
    with pytest.raises(StorageError):
        store.insert_session(_session(at(10), at(9), "Ends before it starts"))

    assert store.get_sessions_in_range(at(0), at(23)) == []


def test_sessions_in_range_can_skip_interruptions(store):
    parent = store.insert_session(_session(at(9), at(11), "Parent"))
    store.insert_session(_session(at(9, 15), at(9, 30), "Child", parent_session_id=parent))
    store.insert_session(_session(at(9, day=3), at(10, day=3), "Tomorrow"))

    assert [r.description for r in store.get_sessions_in_range(at(0), at(23, 59))] == ["Parent", "Child"]
    assert [r.description for r in store.get_sessions_in_range(at(0), at(23, 59), roots_only=True)] == ["Parent"]


def test_store_persists_to_disk(tmp_path):
    path = tmp_path / "tt.db"
    with SqliteSessionStore(path) as first:
        session_id = first.insert_session(_session(at(9), at(10), "Saved", tags=("x",)))

    with SqliteSessionStore(path) as second:
        assert second.get_session(session_id).tags == ("x",)
