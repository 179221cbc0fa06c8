from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Request

from ingester.errors import InvalidIdError, NotFoundError, StoreError, TrackerError
from ingester.store import RecordStore
from ingester.timeutil import to_iso
from ingester.tracker import StatusTracker
from ingester.types import EnrichedRecord, IngestStatus

logger = logging.getLogger(__name__)


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_tracker(request: Request) -> StatusTracker:
    return request.app.state.tracker


def record_payload(record: EnrichedRecord) -> dict[str, Any]:
    return {
        "_id": record.id,
        "userId": record.source_user_id,
        "postId": record.source_item_id,
        "title": record.title,
        "body": record.body,
        "ingested_at": to_iso(record.ingested_at),
        "source": record.source,
    }


def status_payload(status: IngestStatus) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "_id": status.id,
        "timestamp": to_iso(status.timestamp),
        "success": status.success,
    }
    if status.success:
        payload["count"] = status.count
    else:
        payload["error"] = status.error
    return payload


def create_app(store: RecordStore, tracker: StatusTracker) -> FastAPI:
    app = FastAPI(title="Log Ingestion Service", version="0.1.0")
    app.state.store = store
    app.state.tracker = tracker

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/logs")
    def list_logs(record_store: Annotated[RecordStore, Depends(get_store)]) -> list[dict[str, Any]]:
        try:
            records = record_store.read_all()
        except StoreError as exc:
            logger.error("failed to list records error=%s", exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return [record_payload(record) for record in records]

    @app.get("/api/logs/{record_id}")
    def get_log(
        record_id: str,
        record_store: Annotated[RecordStore, Depends(get_store)],
    ) -> dict[str, Any]:
        try:
            record = record_store.read_by_id(record_id)
        except (NotFoundError, InvalidIdError) as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except StoreError as exc:
            logger.error("failed to read record id=%s error=%s", record_id, exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return record_payload(record)

    @app.get("/api/status")
    def get_status(status_tracker: Annotated[StatusTracker, Depends(get_tracker)]) -> dict[str, Any]:
        try:
            status = status_tracker.get_latest()
        except TrackerError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return status_payload(status)

    return app
