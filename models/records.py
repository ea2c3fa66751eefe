"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional, Tuple


@dataclass(frozen=True, slots=True)
class Position:
    """A GPS coordinate reported by a sensor."""

    lat: float
    lng: float


@dataclass(slots=True)
class Reading:
    """The latest telemetry sample reported by a sensor.

    ``timestamp`` is when the sample was taken, not when it was fetched. A
    ``None`` position means the sensor had no GPS fix.
    """

    sensor_id: str
    timestamp: Optional[datetime]
    voltage: Optional[float]
    firmware: str = ""
    position: Optional[Position] = None

    @classmethod
    def missing(cls, sensor_id: str) -> "Reading":
        """Reading used when the source has no sample at all for a sensor."""
        return cls(sensor_id=sensor_id, timestamp=None, voltage=None)

    @property
    def has_data(self) -> bool:
        return self.timestamp is not None


@dataclass(frozen=True, slots=True)
class Alarm:
    """Per-sensor fault state.

    Each field is either ``None`` (unset) or the moment the fault was first
    observed in its current unresolved streak.
    """

    offline: Optional[datetime] = None
    low_voltage: Optional[datetime] = None
    gps_missing: Optional[datetime] = None

    def is_clear(self) -> bool:
        return self.offline is None and self.low_voltage is None and self.gps_missing is None

    def active(self) -> Iterator[Tuple[str, datetime]]:
        """Yield ``(name, raised_at)`` for set fields in notification order."""
        for name in ("offline", "low_voltage", "gps_missing"):
            value = getattr(self, name)
            if value is not None:
                yield name, value


@dataclass(slots=True)
class Sensor:
    """A monitored device and where its alerts go."""

    id: str
    email_address: str
    threshold: Optional[float] = None
    owner: Optional[str] = None
    alarms: Alarm = field(default_factory=Alarm)
    document_id: Optional[str] = None

    def effective_threshold(self, default: float) -> float:
        # zero is how an unset threshold is stored
        if not self.threshold:
            return default
        return self.threshold
