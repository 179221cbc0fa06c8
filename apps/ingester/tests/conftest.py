from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from ingester.api import create_app
from ingester.config import get_settings
from ingester.store import SqlRecordStore
from ingester.tracker import SqlStatusTracker


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+pysqlite:///{tmp_path / 'ingester-tests.db'}"


@pytest.fixture
def store(database_url: str) -> Iterator[SqlRecordStore]:
    record_store = SqlRecordStore.open(database_url, collection="posts")
    yield record_store
    record_store.close()


@pytest.fixture
def tracker(database_url: str) -> Iterator[SqlStatusTracker]:
    status_tracker = SqlStatusTracker.open(database_url)
    yield status_tracker
    status_tracker.close()


@pytest.fixture
def client(store: SqlRecordStore, tracker: SqlStatusTracker) -> Iterator[TestClient]:
    with TestClient(create_app(store, tracker)) as test_client:
        yield test_client
