"""Unit tests for the alarm evaluation rules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from models.records import Alarm, Position, Reading, Sensor
from services.evaluator import DEBOUNCE_WINDOW, OFFLINE_AFTER, evaluate

NOW = datetime(2019, 7, 3, 23, 12, 45, tzinfo=timezone.utc)
OK_POSITION = Position(lat=1.23, lng=3.21)
TEN_HOURS_AGO = NOW - timedelta(hours=10)


def _reading(
    voltage: float = 3.1,
    timestamp: datetime | None = NOW,
    position: Position | None = OK_POSITION,
) -> Reading:
    return Reading(
        sensor_id="123",
        timestamp=timestamp,
        voltage=voltage,
        firmware="v1",
        position=position,
    )


def _sensor(threshold: float | None = 3.0) -> Sensor:
    return Sensor(id="123", email_address="owner@example.com", threshold=threshold)


def test_ok_data_gives_no_alarms() -> None:
    result = evaluate(_sensor(3.0), _reading(), Alarm(), NOW)

    assert result == Alarm()
    assert result.is_clear()


def test_stale_reading_raises_offline_only() -> None:
    result = evaluate(_sensor(3.0), _reading(timestamp=TEN_HOURS_AGO, position=None), Alarm(), NOW)

    assert result == Alarm(offline=NOW)


def test_missing_gps_fix_raises_gps_alarm() -> None:
    result = evaluate(_sensor(3.0), _reading(position=None), Alarm(), NOW)

    assert result == Alarm(gps_missing=NOW)


def test_low_voltage_raises_voltage_alarm() -> None:
    result = evaluate(_sensor(3.0), _reading(voltage=2.9), Alarm(), NOW)

    assert result == Alarm(low_voltage=NOW)


def test_active_offline_alarm_is_not_rechecked() -> None:
    previous = Alarm(offline=TEN_HOURS_AGO)

    result = evaluate(_sensor(3.2), _reading(timestamp=TEN_HOURS_AGO), previous, NOW)

    assert result == Alarm(offline=TEN_HOURS_AGO)


def test_active_offline_alarm_ignores_reading_content() -> None:
    previous = Alarm(offline=NOW - timedelta(hours=23), low_voltage=NOW, gps_missing=NOW)

    result = evaluate(_sensor(3.2), _reading(voltage=1.0, position=None), previous, NOW)

    assert result == Alarm(offline=NOW - timedelta(hours=23))


def test_debounced_voltage_alarm_still_checks_gps() -> None:
    previous = Alarm(low_voltage=TEN_HOURS_AGO)

    result = evaluate(_sensor(3.2), _reading(voltage=3.1, position=None), previous, NOW)

    assert result == Alarm(low_voltage=TEN_HOURS_AGO, gps_missing=NOW)


def test_debounced_voltage_alarm_is_kept_after_recovery() -> None:
    previous = Alarm(low_voltage=TEN_HOURS_AGO)

    result = evaluate(_sensor(3.0), _reading(voltage=3.5), previous, NOW)

    assert result.low_voltage == TEN_HOURS_AGO


def test_debounce_window_is_inclusive() -> None:
    raised_at = NOW - DEBOUNCE_WINDOW
    previous = Alarm(low_voltage=raised_at, gps_missing=raised_at)

    result = evaluate(_sensor(3.0), _reading(voltage=3.5), previous, NOW)

    assert result == Alarm(low_voltage=raised_at, gps_missing=raised_at)


def test_expired_debounce_clears_resolved_faults() -> None:
    expired = NOW - DEBOUNCE_WINDOW - timedelta(seconds=1)
    previous = Alarm(low_voltage=expired, gps_missing=expired)

    result = evaluate(_sensor(3.0), _reading(voltage=3.5), previous, NOW)

    assert result == Alarm()


def test_expired_debounce_reraises_persistent_fault() -> None:
    expired = NOW - timedelta(hours=30)
    previous = Alarm(low_voltage=expired)

    result = evaluate(_sensor(3.0), _reading(voltage=2.5), previous, NOW)

    assert result == Alarm(low_voltage=NOW)


def test_expired_offline_alarm_resolves_when_reading_is_fresh() -> None:
    previous = Alarm(offline=NOW - timedelta(hours=25))

    result = evaluate(_sensor(3.0), _reading(), previous, NOW)

    assert result == Alarm()


def test_reading_exactly_at_offline_limit_is_not_offline() -> None:
    result = evaluate(_sensor(3.0), _reading(timestamp=NOW - OFFLINE_AFTER), Alarm(), NOW)

    assert result.offline is None


def test_newly_offline_discards_previous_voltage_and_gps_state() -> None:
    previous = Alarm(low_voltage=NOW - timedelta(hours=1), gps_missing=NOW - timedelta(hours=2))

    result = evaluate(_sensor(3.0), _reading(timestamp=TEN_HOURS_AGO), previous, NOW)

    assert result == Alarm(offline=NOW)


def test_missing_reading_is_offline() -> None:
    result = evaluate(_sensor(3.0), Reading.missing("123"), Alarm(), NOW)

    assert result == Alarm(offline=NOW)


@pytest.mark.parametrize("threshold", [None, 0.0])
def test_unset_threshold_falls_back_to_default(threshold: float | None) -> None:
    sensor = _sensor(threshold)

    assert evaluate(sensor, _reading(voltage=3.25), Alarm(), NOW) == Alarm(low_voltage=NOW)
    assert evaluate(sensor, _reading(voltage=3.26), Alarm(), NOW) == Alarm()


def test_configured_default_threshold_is_used_for_sensors_without_one() -> None:
    result = evaluate(_sensor(None), _reading(voltage=3.4), Alarm(), NOW, default_threshold=3.5)

    assert result == Alarm(low_voltage=NOW)


def test_voltage_equal_to_threshold_is_not_low() -> None:
    result = evaluate(_sensor(3.0), _reading(voltage=3.0), Alarm(), NOW)

    assert result.low_voltage is None


@pytest.mark.parametrize(
    "voltage, low",
    [(3.2599999, False), (3.26000001, False), (3.2599, True)],
)
def test_voltage_is_compared_in_single_precision(voltage: float, low: bool) -> None:
    result = evaluate(_sensor(None), _reading(voltage=voltage), Alarm(), NOW)

    assert (result.low_voltage is not None) is low


def test_evaluation_is_stable_within_the_debounce_window() -> None:
    sensor = _sensor(3.0)
    first = evaluate(sensor, _reading(voltage=2.5, position=None), Alarm(), NOW)

    later = NOW + timedelta(hours=5)
    faulty = _reading(voltage=2.5, timestamp=later, position=None)
    second = evaluate(sensor, faulty, first, later)
    third = evaluate(sensor, faulty, second, later)

    assert first == Alarm(low_voltage=NOW, gps_missing=NOW)
    assert second == first
    assert third == second
