"""Wiring for check cycles: config, stores, reading source and mailer."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, List, Optional, Tuple

from app.schemas import MailerConfig, MonitorConfig
from datastore.alarms import AlarmStore, build_default_alarm_store
from datastore.sensors import SensorCollection, build_default_sensors
from models.records import Alarm, Sensor
from services.checker import CheckSummary, check_sensors, utcnow
from services.config_loader import ConfigLoader
from services.notifier import Mailer, NotificationError, build_mailer
from services.readings import ReadingSource, build_default_reading_source
from settings import get_settings

logger = logging.getLogger(__name__)


class CheckInProgress(RuntimeError):
    """Raised when a check is requested while another one is still running."""


class MonitorService:
    """Runs check cycles one at a time against the configured backends."""

    def __init__(
        self,
        config_loader: ConfigLoader,
        sensors: SensorCollection,
        alarms: AlarmStore,
        readings: ReadingSource,
        mailer_factory: Callable[[MailerConfig], Mailer] = build_mailer,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config_loader = config_loader
        self.sensors = sensors
        self.alarms = alarms
        self.readings = readings
        self.mailer_factory = mailer_factory
        self.clock = clock
        self.last_summary: Optional[CheckSummary] = None
        self._cycle_lock = Lock()
        self._mailer: Optional[Mailer] = None
        self._mailer_config: Optional[MailerConfig] = None

    @property
    def config(self) -> MonitorConfig:
        return self.config_loader.current

    def start(self) -> MonitorConfig:
        """Read the config and set up the mailer; failures here are fatal."""
        config = self.config_loader.load()
        self._install_mailer(config.mailer)
        return config

    def run_check(self) -> CheckSummary:
        """Run one full check cycle.

        Raises ``CheckInProgress`` instead of waiting when a cycle is already
        running, so cycles never overlap.
        """
        if not self._cycle_lock.acquire(blocking=False):
            raise CheckInProgress("A check cycle is already running.")
        try:
            config = self.config_loader.reload()
            start_time = time.perf_counter()
            summary = check_sensors(
                self.sensors,
                self.readings,
                self.alarms,
                self._current_mailer(config.mailer),
                sender=config.mailer.sender,
                default_threshold=config.threshold,
                notify_new_only=config.notify_new_only,
                clock=self.clock,
            )
            logger.info(
                "Check cycle finished",
                extra={"duration_ms": int((time.perf_counter() - start_time) * 1000)},
            )
            self.last_summary = summary
            return summary
        finally:
            self._cycle_lock.release()

    def _current_mailer(self, mailer_config: MailerConfig) -> Mailer:
        if self._mailer is None:
            return self._install_mailer(mailer_config)
        if mailer_config != self._mailer_config:
            try:
                return self._install_mailer(mailer_config)
            except NotificationError as exc:
                logger.error("Keeping previous mailer", extra={"reason": str(exc)})
        return self._mailer

    def _install_mailer(self, mailer_config: MailerConfig) -> Mailer:
        mailer = self.mailer_factory(mailer_config)
        previous, self._mailer = self._mailer, mailer
        self._mailer_config = mailer_config
        if previous is not None:
            _close(previous)
        return mailer

    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    def sensor_status(self, sensor_id: str) -> Optional[Tuple[Sensor, Alarm]]:
        self.sensors.refresh()
        sensor = self.sensors.get(sensor_id)
        if sensor is None:
            return None
        return sensor, self.alarms.get(sensor.id)

    def list_status(self) -> List[Tuple[Sensor, Alarm]]:
        return [(sensor, self.alarms.get(sensor.id)) for sensor in self.sensors.iterate()]

    def shutdown(self) -> None:
        _close(self.readings)
        if self._mailer is not None:
            _close(self._mailer)
            self._mailer = None


def _close(resource: object) -> None:
    close = getattr(resource, "close", None)
    if close is not None:
        close()


@lru_cache
def build_default_monitor(
    config_path: Optional[str] = None,
    secret_path: Optional[str] = None,
) -> MonitorService:
    """Factory that wires the monitor with the default backends."""
    settings = get_settings()
    path = Path(config_path or settings.config_path)
    return MonitorService(
        config_loader=ConfigLoader(path, secret_path=secret_path),
        sensors=build_default_sensors(),
        alarms=build_default_alarm_store(),
        readings=build_default_reading_source(),
    )
