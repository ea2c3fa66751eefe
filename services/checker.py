"""One pass over every registered sensor."""

from __future__ import annotations

import logging
from contextlib import closing, nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, List

from app.schemas import DEFAULT_THRESHOLD, CheckFailure, CheckSummaryResponse
from datastore.alarms import AlarmStore
from models.records import Sensor
from services.evaluator import evaluate
from services.notifier import Mailer, NotificationError, notify, should_notify
from services.readings import ReadingFetchError, ReadingSource

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CheckSummary:
    """Counters for a finished check cycle."""

    checked: int = 0
    notified: int = 0
    skipped: int = 0
    failures: List[CheckFailure] = field(default_factory=list)

    def skip(self, sensor_id: str, reason: str) -> None:
        self.skipped += 1
        self.failures.append(CheckFailure(sensor_id=sensor_id, reason=reason))

    def to_response(self) -> CheckSummaryResponse:
        return CheckSummaryResponse(
            checked=self.checked,
            notified=self.notified,
            skipped=self.skipped,
            failures=list(self.failures),
        )


def _sensor_iterator(sensors: Iterable[Sensor]) -> Iterator[Sensor]:
    iterate = getattr(sensors, "iterate", None)
    if iterate is not None:
        return iterate()
    return iter(sensors)


def check_sensors(
    sensors: Iterable[Sensor],
    readings: ReadingSource,
    alarms: AlarmStore,
    mailer: Mailer,
    *,
    sender: str,
    default_threshold: float = DEFAULT_THRESHOLD,
    notify_new_only: bool = False,
    clock: Callable[[], datetime] = utcnow,
) -> CheckSummary:
    """Evaluate every sensor once, notify on faults and persist alarm state.

    An alert goes out whenever any fault is set. With ``notify_new_only`` only
    a fault raised by this evaluation triggers one, so a debounced fault stays
    quiet until its window expires.

    Failures for a single sensor are logged and the sensor is skipped until
    the next cycle. Errors raised while enumerating sensors end the cycle
    and propagate to the caller.
    """
    logger.info("Checking sensors")
    summary = CheckSummary()

    iterator = _sensor_iterator(sensors)
    with closing(iterator) if hasattr(iterator, "close") else nullcontext():
        for sensor in iterator:
            context = {"sensor_id": sensor.id}

            try:
                previous = alarms.get(sensor.id)
            except Exception as exc:  # noqa: BLE001
                logger.error("Error getting alarms", extra={**context, "reason": str(exc)})
                summary.skip(sensor.id, f"alarm lookup failed: {exc}")
                continue

            try:
                reading = readings.fetch(sensor.id)
            except ReadingFetchError as exc:
                logger.error(
                    "Error reading sensor, unable to monitor",
                    extra={**context, "reason": str(exc)},
                )
                summary.skip(sensor.id, str(exc))
                continue

            alarm = evaluate(
                sensor,
                reading,
                previous,
                now=clock(),
                default_threshold=default_threshold,
            )
            summary.checked += 1

            if should_notify(alarm, previous if notify_new_only else None):
                try:
                    notify(mailer, sensor, alarm, reading, sender=sender)
                except NotificationError as exc:
                    logger.error("Failed to send alert", extra={**context, "reason": str(exc)})
                    summary.skip(sensor.id, str(exc))
                    continue
                summary.notified += 1

            try:
                alarms.store(sensor.id, alarm)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to store alarm", extra={**context, "reason": str(exc)})
                summary.failures.append(
                    CheckFailure(sensor_id=sensor.id, reason=f"alarm store failed: {exc}")
                )

    logger.info(
        "Done checking",
        extra={
            "checked": summary.checked,
            "notified": summary.notified,
            "skipped": summary.skipped,
        },
    )
    return summary
