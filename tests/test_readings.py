from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from models.records import Position
from services.readings import HttpReadingSource, ReadingFetchError

BASE_URL = "https://scraper.example.com/"


def _source(handler) -> HttpReadingSource:
    return HttpReadingSource(BASE_URL, timeout=1.0, transport=httpx.MockTransport(handler))


def test_fetch_returns_latest_reading() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[
                {
                    "sensor_id": "123",
                    "date": "2019-07-03T23:12:45Z",
                    "voltage": 3.31,
                    "firmware_version": "v2",
                    "coordinates": {"lat": 52.15, "lng": 5.38},
                }
            ],
        )

    reading = _source(handler).fetch("123")

    assert seen[0].url.params["sensor"] == "123"
    assert seen[0].url.params["limit"] == "1"
    assert reading.sensor_id == "123"
    assert reading.timestamp == datetime(2019, 7, 3, 23, 12, 45, tzinfo=timezone.utc)
    assert reading.voltage == pytest.approx(3.31)
    assert reading.firmware == "v2"
    assert reading.position == Position(lat=52.15, lng=5.38)


def test_zero_coordinates_mean_no_gps_fix() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[{"date": "2019-07-03T23:12:45", "voltage": 3.3, "coordinates": {"lat": 0, "lng": 0}}],
        )

    reading = _source(handler).fetch("123")

    assert reading.position is None
    assert reading.sensor_id == "123"
    assert reading.timestamp is not None
    assert reading.timestamp.tzinfo is not None


def test_empty_response_is_explicit_missing_reading() -> None:
    reading = _source(lambda request: httpx.Response(200, json=[])).fetch("123")

    assert reading.has_data is False
    assert reading.voltage is None
    assert reading.position is None


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"unexpected": "shape"}),
    ],
)
def test_fetch_failures_raise_reading_fetch_error(response: httpx.Response) -> None:
    with pytest.raises(ReadingFetchError):
        _source(lambda request: response).fetch("123")


def test_transport_errors_raise_reading_fetch_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(ReadingFetchError):
        _source(handler).fetch("123")
