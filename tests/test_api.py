import pytest

fastapi = pytest.importorskip("fastapi")
from fastapi.testclient import TestClient

from worklog import api
from worklog.storage import SqliteSessionStore


@pytest.fixture()
def client(tmp_path, monkeypatch):
    db = tmp_path / "tt.db"
    monkeypatch.setattr(api, "_store_factory", lambda: SqliteSessionStore(db))
    return TestClient(api.app)


def test_compile_endpoint_returns_timeline_and_errors(client):
    response = client.post(
        "/compile",
        json={"text": "09:00 Deploy (1h)\n09:30 Review (1h)\n", "initial_date": "2025-03-02"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert [entry["start"] for entry in payload["entries"]] == ["2025-03-02T09:00:00", "2025-03-02T09:30:00"]
    assert payload["entries"][0]["end"] == "2025-03-02T10:00:00"
    assert payload["errors"] == [
        {"message": 'Sessions overlap: "Deploy" (line 1) and "Review" (line 2)', "line": 2, "column": None}
    ]


def test_import_endpoint_stores_sessions(client):
    response = client.post(
        "/import",
        json={"text": "09:00 Task\n  09:15 Call (15m)\n10:00 @end\n", "initial_date": "2025-03-02"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert (payload["sessions"], payload["interruptions"], payload["deleted"]) == (1, 1, 0)


def test_import_endpoint_rejects_invalid_logs(client):
    response = client.post("/import", json={"text": "09:00 Task\nnonsense\n", "initial_date": "2025-03-02"})

    assert response.status_code == 400
    assert response.json()["detail"]["errors"][0]["line"] == 2


def test_import_endpoint_reports_conflicts(client):
    first = client.post("/import", json={"text": "09:00 Task\n10:00 @end\n", "initial_date": "2025-03-02"})
    stored_ids = first.json()["session_ids"]

    conflict = client.post("/import", json={"text": "09:30 Other\n10:30 @end\n", "initial_date": "2025-03-02"})
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["session_ids"] == stored_ids

    replaced = client.post(
        "/import",
        json={"text": "09:30 Other\n10:30 @end\n", "initial_date": "2025-03-02", "overwrite": True},
    )
    assert replaced.status_code == 200
    assert replaced.json()["deleted"] == 1
