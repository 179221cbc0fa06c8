from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, MetaData, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column

from ingester.db import Base

STATUS_TABLE_NAME = "ingest_status"


class IngestStatusRecord(Base):
    __tablename__ = STATUS_TABLE_NAME

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)


def build_records_table(collection: str, metadata: MetaData | None = None) -> Table:
    """Records live in a table named after the configured collection."""
    table = Table(
        collection,
        metadata if metadata is not None else MetaData(),
        Column("id", String(32), primary_key=True),
        Column("user_id", Integer, nullable=False),
        Column("post_id", Integer, nullable=False),
        Column("title", Text, nullable=False),
        Column("body", Text, nullable=False),
        Column("ingested_at", DateTime(timezone=True), nullable=False),
        Column("source", String(255), nullable=False),
    )
    Index(f"ix_{collection}_ingested_at", table.c.ingested_at)
    return table
