from __future__ import annotations

from datetime import datetime
from typing import Callable, Sequence

from ingester.timeutil import utc_now
from ingester.types import EnrichedRecord, RawRecord


class RecordTransformer:
    """Stamps every record of a batch with one ingestion time and the source tag."""

    def __init__(self, source_name: str, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._source_name = source_name
        self._clock = clock

    @property
    def source_name(self) -> str:
        return self._source_name

    def transform(self, records: Sequence[RawRecord]) -> list[EnrichedRecord]:
        ingested_at = self._clock()
        return [
            EnrichedRecord(
                source_user_id=record.source_user_id,
                source_item_id=record.source_item_id,
                title=record.title,
                body=record.body,
                ingested_at=ingested_at,
                source=self._source_name,
            )
            for record in records
        ]
