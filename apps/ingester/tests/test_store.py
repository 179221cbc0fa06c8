from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import inspect

from ingester.errors import InvalidIdError, NotFoundError, StoreError
from ingester.store import SqlRecordStore, is_document_id
from ingester.types import EnrichedRecord

INGESTED_AT = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _record(item_id: int, *, title: str = "Test Title") -> EnrichedRecord:
    return EnrichedRecord(
        source_user_id=1,
        source_item_id=item_id,
        title=title,
        body="Test Body",
        ingested_at=INGESTED_AT,
        source="test_source",
    )


def test_open_creates_collection_table(store: SqlRecordStore) -> None:
    table_names = inspect(store._engine).get_table_names()

    assert "posts" in table_names
    assert store.count() == 0


def test_write_assigns_ids_and_persists_batch(store: SqlRecordStore) -> None:
    stored = store.write([_record(1), _record(2, title="Another")])

    assert len(stored) == 2
    assert all(record.id is not None and is_document_id(record.id) for record in stored)
    assert len({record.id for record in stored}) == 2
    assert store.count() == 2

    records = store.read_all()
    assert [record.source_item_id for record in records] == [1, 2]
    assert records[1].title == "Another"
    assert records[0].ingested_at == INGESTED_AT
    assert records[0].source == "test_source"


def test_write_empty_batch_is_a_noop(store: SqlRecordStore) -> None:
    store.write([_record(1)])

    assert store.write([]) == []
    assert store.count() == 1


def test_read_by_id_returns_matching_record(store: SqlRecordStore) -> None:
    first, second = store.write([_record(1), _record(2, title="Wanted")])

    found = store.read_by_id(second.id)

    assert found == second
    assert found != first


def test_read_by_id_unknown_id_raises_not_found(store: SqlRecordStore) -> None:
    store.write([_record(1)])

    with pytest.raises(NotFoundError):
        store.read_by_id("0" * 32)


@pytest.mark.parametrize("record_id", ["invalid-id", "5f50c31f5dc4b6d5c8456e77", "Z" * 32, ""])
def test_read_by_id_malformed_id_raises_invalid_id(store: SqlRecordStore, record_id: str) -> None:
    with pytest.raises(InvalidIdError):
        store.read_by_id(record_id)


def test_lookup_errors_are_store_errors() -> None:
    assert issubclass(NotFoundError, StoreError)
    assert issubclass(InvalidIdError, StoreError)


def test_open_fails_with_store_error_when_database_is_unreachable(tmp_path: Path) -> None:
    missing_dir = tmp_path / "does-not-exist"

    with pytest.raises(StoreError, match="failed to connect"):
        SqlRecordStore.open(f"sqlite+pysqlite:///{missing_dir / 'x.db'}", collection="posts")


def test_write_wraps_unencodable_text_in_store_error(store: SqlRecordStore) -> None:
    with pytest.raises(StoreError, match="failed to insert records"):
        store.write([_record(1, title="bad \ud800 title")])

    assert store.count() == 0


def test_write_raises_store_error_when_table_is_missing(store: SqlRecordStore) -> None:
    with store._engine.begin() as connection:
        store._table.drop(connection)

    with pytest.raises(StoreError, match="failed to insert records"):
        store.write([_record(1)])


def test_collections_are_isolated(database_url: str, store: SqlRecordStore) -> None:
    other = SqlRecordStore.open(database_url, collection="comments")
    try:
        other.write([_record(9)])

        assert other.count() == 1
        assert store.count() == 0
    finally:
        other.close()
