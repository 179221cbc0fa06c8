from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ingester.db import build_engine, ping
from ingester.errors import NoStatusError, TrackerError, TrackerWriteError
from ingester.models import IngestStatusRecord
from ingester.store import new_document_id
from ingester.timeutil import as_utc, utc_now
from ingester.types import IngestStatus

logger = logging.getLogger(__name__)


class StatusTracker(Protocol):
    def record_success(self, count: int) -> IngestStatus: ...

    def record_failure(self, error: BaseException | str) -> IngestStatus: ...

    def get_latest(self) -> IngestStatus: ...

    def close(self) -> None: ...


class SqlStatusTracker:
    """Append-only ingest status log kept in the ``ingest_status`` table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @classmethod
    def open(cls, database_url: str, *, echo: bool = False) -> SqlStatusTracker:
        try:
            engine = build_engine(database_url, echo=echo)
        except SQLAlchemyError as exc:
            raise TrackerError(f"invalid database URL: {exc}") from exc
        tracker = cls(engine)
        try:
            tracker.ensure_ready()
        except TrackerError:
            engine.dispose()
            raise
        return tracker

    def ensure_ready(self) -> None:
        try:
            ping(self._engine)
            IngestStatusRecord.metadata.create_all(
                self._engine,
                tables=[IngestStatusRecord.__table__],
            )
        except SQLAlchemyError as exc:
            raise TrackerError(f"failed to connect to status log: {exc}") from exc

    def close(self) -> None:
        self._engine.dispose()

    def record_success(self, count: int) -> IngestStatus:
        return self._append(
            IngestStatusRecord(
                id=new_document_id(),
                timestamp=utc_now(),
                success=True,
                count=count,
            )
        )

    def record_failure(self, error: BaseException | str) -> IngestStatus:
        return self._append(
            IngestStatusRecord(
                id=new_document_id(),
                timestamp=utc_now(),
                success=False,
                error=_error_text(error),
            )
        )

    def get_latest(self) -> IngestStatus:
        stmt = select(IngestStatusRecord).order_by(IngestStatusRecord.timestamp.desc()).limit(1)
        try:
            with Session(self._engine) as session:
                record = session.scalar(stmt)
                latest = _to_status(record) if record is not None else None
        except SQLAlchemyError as exc:
            raise TrackerError(f"failed to get latest status: {exc}") from exc

        if latest is None:
            raise NoStatusError("no ingestion status found")
        return latest

    def _append(self, record: IngestStatusRecord) -> IngestStatus:
        status = _to_status(record)
        kind = "success" if record.success else "failure"
        try:
            with Session(self._engine) as session:
                session.add(record)
                session.commit()
        except (SQLAlchemyError, UnicodeError) as exc:
            raise TrackerWriteError(f"failed to record {kind}: {exc}") from exc

        logger.debug("status recorded id=%s kind=%s", status.id, kind)
        return status


def _error_text(error: BaseException | str) -> str:
    # lone surrogates cannot be encoded by the database driver
    return str(error).encode("utf-8", "backslashreplace").decode("utf-8")


def _to_status(record: IngestStatusRecord) -> IngestStatus:
    if record.success:
        return IngestStatus(
            id=record.id,
            timestamp=as_utc(record.timestamp),
            success=True,
            count=int(record.count or 0),
        )
    return IngestStatus(
        id=record.id,
        timestamp=as_utc(record.timestamp),
        success=False,
        error=record.error or "",
    )
