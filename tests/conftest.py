from datetime import date

import pytest

from worklog.storage import SqliteSessionStore

DAY = date(2025, 3, 2)


@pytest.fixture()
def store():
    session_store = SqliteSessionStore()
    yield session_store
    session_store.close()


@pytest.fixture()
def day():
    return DAY
