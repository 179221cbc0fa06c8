from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RawRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    source_user_id: int = Field(default=0, alias="userId")
    source_item_id: int = Field(default=0, alias="id")
    title: str = ""
    body: str = ""

    @field_validator("source_user_id", "source_item_id", mode="before")
    @classmethod
    def _null_as_zero(cls, value: object) -> object:
        return 0 if value is None else value

    @field_validator("title", "body", mode="before")
    @classmethod
    def _null_as_empty(cls, value: object) -> object:
        return "" if value is None else value


@dataclass(frozen=True)
class EnrichedRecord:
    source_user_id: int
    source_item_id: int
    title: str
    body: str
    ingested_at: datetime
    source: str
    id: str | None = None


@dataclass(frozen=True)
class IngestStatus:
    id: str
    timestamp: datetime
    success: bool
    count: int | None = None
    error: str | None = None
