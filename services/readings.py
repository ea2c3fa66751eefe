from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional, Protocol

import httpx
from pydantic import TypeAdapter, ValidationError

from app.schemas import ReadingPayload
from models.records import Reading
from settings import get_settings

logger = logging.getLogger(__name__)

_PAYLOAD_LIST = TypeAdapter(list[ReadingPayload])


class ReadingFetchError(RuntimeError):
    """The latest reading for a sensor could not be retrieved."""


class ReadingSource(Protocol):
    def fetch(self, sensor_id: str) -> Reading:
        ...


class HttpReadingSource:
    """Fetches the most recent sample for a sensor from the scraper API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def fetch(self, sensor_id: str) -> Reading:
        try:
            response = self._client.get(
                self.base_url, params={"sensor": sensor_id, "limit": 1}
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ReadingFetchError(
                f"Failed to fetch reading for sensor {sensor_id!r}: {exc}"
            ) from exc

        try:
            payloads = _PAYLOAD_LIST.validate_json(response.content)
        except ValidationError as exc:
            raise ReadingFetchError(
                f"Unexpected reading payload for sensor {sensor_id!r}."
            ) from exc

        if not payloads:
            logger.info("No readings available", extra={"sensor_id": sensor_id})
            return Reading.missing(sensor_id)
        return payloads[0].to_reading(sensor_id)


@lru_cache
def build_default_reading_source() -> HttpReadingSource:
    settings = get_settings()
    return HttpReadingSource(
        base_url=settings.reading_source_url,
        timeout=settings.reading_fetch_timeout,
    )
