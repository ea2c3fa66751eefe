"""Alarm state persistence keyed by sensor id.

Two storage shapes are supported behind the same ``AlarmStore`` interface: a
separate ``alarms`` collection with one document per sensor id, or the alarm
state embedded in each sensor's registry record.
"""

from __future__ import annotations
from functools import lru_cache
from pathlib import Path
from typing import Optional, Protocol

from app.schemas import AlarmDocument
from datastore.documents import DocumentCollection
from datastore.sensors import SensorCollection, build_default_sensors
from models.records import Alarm
from settings import get_settings


class AlarmStore(Protocol):
    def get(self, sensor_id: str) -> Alarm:
        """Return the current alarm state, all unset when none was stored."""
        ...

    def store(self, sensor_id: str, alarm: Alarm) -> None:
        ...


class AlarmsCollection:

    def __init__(self, collection: DocumentCollection) -> None:
        self.collection = collection

    def get(self, sensor_id: str) -> Alarm:
        document = self.collection.get(sensor_id)
        if document is None:
            return Alarm()
        return AlarmDocument.model_validate(document).to_alarm()

    def store(self, sensor_id: str, alarm: Alarm) -> None:
        self.collection.set(
            sensor_id, AlarmDocument.from_alarm(alarm).model_dump(mode="json")
        )


class EmbeddedAlarmStore:

    def __init__(self, sensors: SensorCollection) -> None:
        self.sensors = sensors

    def get(self, sensor_id: str) -> Alarm:
        sensor = self.sensors.get(sensor_id)
        if sensor is None:
            return Alarm()
        return sensor.alarms

    def store(self, sensor_id: str, alarm: Alarm) -> None:
        self.sensors.store_alarms(sensor_id, alarm)


@lru_cache
def build_default_alarm_store(
    shape: Optional[str] = None,
    path: Optional[str] = None,
) -> AlarmStore:
    settings = get_settings()
    storage_shape = settings.alarm_storage_shape if shape is None else shape
    if storage_shape == "embedded":
        return EmbeddedAlarmStore(build_default_sensors())
    if storage_shape != "separate":
        raise ValueError(f"Unknown alarm storage shape {storage_shape!r}.")
    store_path = settings.alarm_store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return AlarmsCollection(DocumentCollection(name="alarms", persistence_path=persistence))
