"""Pydantic schemas for stored documents, upstream payloads, config and the HTTP API.

Sentinel values (zero timestamps, the ``(0, 0)`` position) only exist in this
module; everything past these schemas works with ``None``.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from models.records import Alarm, Position, Reading, Sensor

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
DEFAULT_THRESHOLD = 3.26
DEFAULT_FREQUENCY = timedelta(hours=1)

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _from_stored(value: datetime) -> Optional[datetime]:
    if value.year <= 1:
        return None
    return value


def parse_duration(value: str) -> timedelta:
    """Parse ``"90s"``, ``"30m"``, ``"1h30m"`` style durations."""
    candidate = value.strip().replace(" ", "")
    if not candidate:
        raise ValueError("Duration is empty.")
    position = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(candidate):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(candidate):
        raise ValueError(f"Invalid duration {value!r}.")
    return timedelta(seconds=seconds)


class AlarmDocument(BaseModel):
    """Alarm state as stored in a document, unset fields hold ``ZERO_TIME``."""

    offline: datetime = ZERO_TIME
    gps: datetime = ZERO_TIME
    voltage: datetime = ZERO_TIME

    @field_validator("offline", "gps", "voltage")
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @classmethod
    def from_alarm(cls, alarm: Alarm) -> "AlarmDocument":
        return cls(
            offline=alarm.offline or ZERO_TIME,
            gps=alarm.gps_missing or ZERO_TIME,
            voltage=alarm.low_voltage or ZERO_TIME,
        )

    def to_alarm(self) -> Alarm:
        return Alarm(
            offline=_from_stored(self.offline),
            low_voltage=_from_stored(self.voltage),
            gps_missing=_from_stored(self.gps),
        )


class SensorDocument(BaseModel):
    """A sensor registration record."""

    sensor_id: str = Field(..., min_length=1)
    email_address: str = Field(..., min_length=1)
    threshold: float = 0.0
    owner: str = ""
    alarms: AlarmDocument = Field(default_factory=AlarmDocument)

    @classmethod
    def from_sensor(cls, sensor: Sensor) -> "SensorDocument":
        return cls(
            sensor_id=sensor.id,
            email_address=sensor.email_address,
            threshold=sensor.threshold or 0.0,
            owner=sensor.owner or "",
            alarms=AlarmDocument.from_alarm(sensor.alarms),
        )

    def to_sensor(self, document_id: Optional[str] = None) -> Sensor:
        return Sensor(
            id=self.sensor_id,
            email_address=self.email_address,
            threshold=self.threshold or None,
            owner=self.owner or None,
            alarms=self.alarms.to_alarm(),
            document_id=document_id,
        )


class Coordinates(BaseModel):
    lat: float = 0.0
    lng: float = 0.0


class ReadingPayload(BaseModel):
    """One entry of the reading source's JSON response."""

    sensor_id: str = ""
    date: datetime
    voltage: float
    firmware_version: str = ""
    coordinates: Coordinates = Field(default_factory=Coordinates)

    @field_validator("date")
    @classmethod
    def _normalize_date(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def to_reading(self, sensor_id: str) -> Reading:
        position: Optional[Position] = None
        if self.coordinates.lat != 0 or self.coordinates.lng != 0:
            position = Position(lat=self.coordinates.lat, lng=self.coordinates.lng)
        return Reading(
            sensor_id=self.sensor_id or sensor_id,
            timestamp=self.date,
            voltage=self.voltage,
            firmware=self.firmware_version,
            position=position,
        )


class MailerConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    secret_path: Optional[str] = Field(default=None, alias="secretPath")
    domain: str = "monitoring.meetjescraper.online"
    api_base: str = Field(default="https://api.eu.mailgun.net/v3", alias="apiBase")
    sender: str = "alert@monitoring.meetjescraper.online"

    @field_validator("secret_path")
    @classmethod
    def _blank_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("domain", "api_base", "sender", mode="before")
    @classmethod
    def _blank_is_default(cls, value: object, info: ValidationInfo) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return cls.model_fields[info.field_name].default
        return value


class MonitorConfig(BaseModel):
    """Runtime configuration re-read at the start of every check cycle."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    frequency: timedelta = DEFAULT_FREQUENCY
    threshold: float = Field(default=DEFAULT_THRESHOLD, gt=0)
    notify_new_only: bool = Field(default=False, alias="notifyNewOnly")
    mailer: MailerConfig = Field(default_factory=MailerConfig)

    @field_validator("frequency", mode="before")
    @classmethod
    def _parse_frequency(cls, value: object) -> object:
        if value is None:
            return DEFAULT_FREQUENCY
        if isinstance(value, str):
            return parse_duration(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return timedelta(seconds=value)
        return value

    @field_validator("frequency")
    @classmethod
    def _positive_frequency(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("frequency must be positive")
        return value


class AlarmStatus(BaseModel):
    """Alarm state exposed via the API; unset fields are ``null``."""

    offline: Optional[datetime] = None
    low_voltage: Optional[datetime] = None
    gps_missing: Optional[datetime] = None

    @classmethod
    def from_alarm(cls, alarm: Alarm) -> "AlarmStatus":
        return cls(
            offline=alarm.offline,
            low_voltage=alarm.low_voltage,
            gps_missing=alarm.gps_missing,
        )


class SensorStatus(BaseModel):
    sensor_id: str
    email_address: str
    threshold: Optional[float] = None
    owner: Optional[str] = None
    alarms: AlarmStatus


class CheckFailure(BaseModel):
    sensor_id: str
    reason: str


class CheckSummaryResponse(BaseModel):
    """Outcome of a single check cycle."""

    checked: int = Field(..., ge=0)
    notified: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    failures: List[CheckFailure] = Field(default_factory=list)
