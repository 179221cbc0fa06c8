from __future__ import annotations

from dataclasses import replace
import logging
from typing import Any, Protocol, Sequence
from uuid import uuid4

from sqlalchemy import func, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ingester.db import build_engine, ping
from ingester.errors import InvalidIdError, NotFoundError, StoreError
from ingester.models import build_records_table
from ingester.timeutil import as_utc
from ingester.types import EnrichedRecord

logger = logging.getLogger(__name__)

_HEX_DIGITS = frozenset("0123456789abcdef")


class RecordStore(Protocol):
    def write(self, records: Sequence[EnrichedRecord]) -> list[EnrichedRecord]: ...

    def read_all(self) -> list[EnrichedRecord]: ...

    def read_by_id(self, record_id: str) -> EnrichedRecord: ...

    def close(self) -> None: ...


def new_document_id() -> str:
    return uuid4().hex


def is_document_id(value: str) -> bool:
    return len(value) == 32 and set(value) <= _HEX_DIGITS


class SqlRecordStore:
    def __init__(self, engine: Engine, *, collection: str) -> None:
        self._engine = engine
        self._table = build_records_table(collection)

    @classmethod
    def open(cls, database_url: str, *, collection: str, echo: bool = False) -> SqlRecordStore:
        try:
            engine = build_engine(database_url, echo=echo)
        except SQLAlchemyError as exc:
            raise StoreError(f"invalid database URL: {exc}") from exc
        store = cls(engine, collection=collection)
        try:
            store.ensure_ready()
        except StoreError:
            engine.dispose()
            raise
        return store

    @property
    def collection(self) -> str:
        return self._table.name

    def ensure_ready(self) -> None:
        try:
            ping(self._engine)
            self._table.metadata.create_all(self._engine, tables=[self._table])
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to connect to record store: {exc}") from exc

    def close(self) -> None:
        self._engine.dispose()

    def write(self, records: Sequence[EnrichedRecord]) -> list[EnrichedRecord]:
        if not records:
            return []

        stored = [replace(record, id=new_document_id()) for record in records]
        try:
            with self._engine.begin() as connection:
                connection.execute(insert(self._table), [_to_row(record) for record in stored])
        except (SQLAlchemyError, UnicodeError) as exc:
            raise StoreError(f"failed to insert records: {exc}") from exc

        logger.debug("records inserted collection=%s count=%d", self.collection, len(stored))
        return stored

    def read_all(self) -> list[EnrichedRecord]:
        stmt = select(self._table).order_by(
            self._table.c.ingested_at.asc(),
            self._table.c.post_id.asc(),
        )
        try:
            with self._engine.connect() as connection:
                rows = connection.execute(stmt).mappings().all()
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to find records: {exc}") from exc
        return [_from_row(row) for row in rows]

    def read_by_id(self, record_id: str) -> EnrichedRecord:
        if not is_document_id(record_id):
            raise InvalidIdError(f"invalid ID format: {record_id!r}")

        stmt = select(self._table).where(self._table.c.id == record_id)
        try:
            with self._engine.connect() as connection:
                row = connection.execute(stmt).mappings().first()
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to find record: {exc}") from exc

        if row is None:
            raise NotFoundError(f"record not found: {record_id}")
        return _from_row(row)

    def count(self) -> int:
        stmt = select(func.count()).select_from(self._table)
        try:
            with self._engine.connect() as connection:
                return int(connection.execute(stmt).scalar_one())
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to count records: {exc}") from exc


def _to_row(record: EnrichedRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "user_id": record.source_user_id,
        "post_id": record.source_item_id,
        "title": record.title,
        "body": record.body,
        "ingested_at": record.ingested_at,
        "source": record.source,
    }


def _from_row(row: Any) -> EnrichedRecord:
    return EnrichedRecord(
        id=row["id"],
        source_user_id=int(row["user_id"]),
        source_item_id=int(row["post_id"]),
        title=row["title"],
        body=row["body"],
        ingested_at=as_utc(row["ingested_at"]),
        source=row["source"],
    )
