"""Alarm evaluation for a single sensor reading."""

from __future__ import annotations

import logging
import struct
from datetime import datetime, timedelta
from typing import Optional

from app.schemas import DEFAULT_THRESHOLD
from models.records import Alarm, Reading, Sensor

logger = logging.getLogger(__name__)

DEBOUNCE_WINDOW = timedelta(hours=24)
OFFLINE_AFTER = timedelta(hours=6)

_FLOAT32 = struct.Struct("f")


def _as_float32(value: float) -> float:
    """Round ``value`` to single precision; readings and thresholds are float32."""
    return _FLOAT32.unpack(_FLOAT32.pack(value))[0]


def _debounced(raised_at: Optional[datetime], now: datetime) -> bool:
    return raised_at is not None and now - raised_at <= DEBOUNCE_WINDOW


def evaluate(
    sensor: Sensor,
    reading: Reading,
    previous: Alarm,
    now: datetime,
    default_threshold: float = DEFAULT_THRESHOLD,
) -> Alarm:
    """Compute the new alarm state for ``sensor`` from its latest reading.

    A fault raised less than ``DEBOUNCE_WINDOW`` ago keeps its original
    timestamp, so a persistent fault is reported once per window. Once the
    window has passed the condition is tested again from scratch.

    An offline sensor short-circuits the other checks and their previous
    state is dropped.
    """
    if _debounced(previous.offline, now):
        return Alarm(offline=previous.offline)

    if reading.timestamp is None or now - reading.timestamp > OFFLINE_AFTER:
        logger.info(
            "Sensor is offline",
            extra={"sensor_id": sensor.id, "last_seen": reading.timestamp},
        )
        return Alarm(offline=now)

    threshold = sensor.effective_threshold(default_threshold)
    low_voltage: Optional[datetime] = None
    if _debounced(previous.low_voltage, now):
        low_voltage = previous.low_voltage
    elif reading.voltage is not None and _as_float32(reading.voltage) < _as_float32(threshold):
        logger.info(
            "Voltage is below threshold",
            extra={
                "sensor_id": sensor.id,
                "voltage": reading.voltage,
                "threshold": threshold,
            },
        )
        low_voltage = now

    gps_missing: Optional[datetime] = None
    if _debounced(previous.gps_missing, now):
        gps_missing = previous.gps_missing
    elif reading.position is None:
        logger.info("Sensor is missing GPS lock", extra={"sensor_id": sensor.id})
        gps_missing = now

    return Alarm(offline=None, low_voltage=low_voltage, gps_missing=gps_missing)
