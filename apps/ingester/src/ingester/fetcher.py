from __future__ import annotations

from typing import Protocol

import httpx
from pydantic import TypeAdapter, ValidationError

from ingester.errors import FetchError
from ingester.types import RawRecord

_RECORDS_ADAPTER = TypeAdapter(list[RawRecord])


class RecordFetcher(Protocol):
    def fetch(self) -> list[RawRecord]: ...

    def close(self) -> None: ...


class HttpRecordFetcher:
    def __init__(
        self,
        endpoint: str,
        *,
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._timeout_seconds = timeout_seconds
        self._client = httpx.Client(timeout=timeout_seconds, transport=transport)

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def fetch(self) -> list[RawRecord]:
        try:
            response = self._client.get(self._endpoint, headers={"Accept": "application/json"})
        except httpx.TimeoutException as exc:
            raise FetchError(
                f"request to {self._endpoint} timed out after {self._timeout_seconds:g}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"failed to fetch data: {exc}") from exc

        if not response.is_success:
            raise FetchError(f"unexpected status code: {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchError(f"failed to decode response body: {exc}") from exc

        if not isinstance(payload, list):
            raise FetchError("invalid source payload: expected a JSON array")

        try:
            return _RECORDS_ADAPTER.validate_python(payload)
        except ValidationError as exc:
            raise FetchError(f"invalid source payload: {exc}") from exc

    def close(self) -> None:
        self._client.close()
