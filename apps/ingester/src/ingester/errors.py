from __future__ import annotations


class IngesterError(RuntimeError):
    pass


class FetchError(IngesterError):
    """Source request failed: timeout, transport, HTTP status or payload decode."""


class TransformError(IngesterError):
    pass


class StoreError(IngesterError):
    pass


class NotFoundError(StoreError):
    pass


class InvalidIdError(StoreError):
    pass


class TrackerError(IngesterError):
    pass


class NoStatusError(TrackerError):
    pass


class TrackerWriteError(TrackerError):
    """Writing an ingest status failed. The ingestion outcome itself is unaffected."""


class ServerBindError(IngesterError):
    pass
