from ingester.types import EnrichedRecord, IngestStatus, RawRecord

__all__ = ["EnrichedRecord", "IngestStatus", "RawRecord"]
