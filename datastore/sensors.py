from __future__ import annotations
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

from pydantic import ValidationError

from app.schemas import AlarmDocument, SensorDocument
from datastore.documents import DocumentCollection
from models.records import Alarm, Sensor
from settings import get_settings


class SensorRecordError(ValueError):
    """A registry document could not be decoded into a sensor."""


class SensorCollection:
    """Registry of monitored sensors.

    Every call to ``iterate()`` starts a fresh pass over the registry as it is
    currently stored, so sensors added or edited between cycles are picked up.
    """

    def __init__(self, collection: DocumentCollection) -> None:
        self.collection = collection

    def iterate(self) -> Iterator[Sensor]:
        self.collection.reload()
        for document_id, document in self.collection.scan():
            yield _decode(document_id, document)

    def __iter__(self) -> Iterator[Sensor]:
        return self.iterate()

    def refresh(self) -> None:
        """Pick up registry edits made since the last pass."""
        self.collection.reload()

    def get(self, sensor_id: str) -> Optional[Sensor]:
        """Look up one sensor, decoding only its own record."""
        found = self._find(sensor_id)
        if found is None:
            return None
        return _decode(*found)

    def add(self, sensor: Sensor) -> Sensor:
        document_id = sensor.document_id or sensor.id
        document = SensorDocument.from_sensor(sensor)
        self.collection.set(document_id, document.model_dump(mode="json"))
        return document.to_sensor(document_id=document_id)

    def store_alarms(self, sensor_id: str, alarm: Alarm) -> None:
        """Write ``alarm`` into the ``alarms`` field of the sensor's own record."""
        found = self._find(sensor_id)
        if found is None:
            raise KeyError(f"Sensor {sensor_id!r} is not registered.")
        self.collection.update(
            found[0],
            {"alarms": AlarmDocument.from_alarm(alarm).model_dump(mode="json")},
        )

    def _find(self, sensor_id: str) -> Optional[Tuple[str, Dict[str, Any]]]:
        # records are keyed by sensor id unless registered with another document id
        document = self.collection.get(sensor_id)
        if _holds_sensor(document, sensor_id):
            return sensor_id, document
        for document_id, candidate in self.collection.scan():
            if _holds_sensor(candidate, sensor_id):
                return document_id, candidate
        return None


def _holds_sensor(document: Any, sensor_id: str) -> bool:
    return isinstance(document, dict) and document.get("sensor_id") == sensor_id


def _decode(document_id: str, document: Dict[str, Any]) -> Sensor:
    try:
        record = SensorDocument.model_validate(document)
    except ValidationError as exc:
        raise SensorRecordError(
            f"Sensor document {document_id!r} is malformed: {exc}"
        ) from exc
    return record.to_sensor(document_id=document_id)


@lru_cache
def build_default_sensors(path: Optional[str] = None) -> SensorCollection:
    settings = get_settings()
    store_path = settings.sensor_store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return SensorCollection(DocumentCollection(name="sensors", persistence_path=persistence))
