"""Periodic execution of check cycles.

The first cycle runs immediately, later ones every ``frequency``. A tick that
fires while a cycle is still running is skipped (``max_instances=1``) and
missed ticks are coalesced into one run.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from services.monitor import CheckInProgress, MonitorService

logger = logging.getLogger(__name__)

JOB_ID = "check_sensors"


def _interval(frequency: timedelta) -> IntervalTrigger:
    return IntervalTrigger(seconds=frequency.total_seconds(), timezone=timezone.utc)


class CheckJob:
    """Scheduled job body: runs a cycle and follows frequency changes."""

    def __init__(self, monitor: MonitorService, scheduler: BaseScheduler) -> None:
        self.monitor = monitor
        self.scheduler = scheduler
        self.frequency = monitor.config.frequency

    def __call__(self) -> None:
        try:
            self.monitor.run_check()
        except CheckInProgress:
            logger.warning("Skipping tick, previous check still running")
        except Exception:
            logger.exception("Check cycle failed, retrying on next tick")
        self._sync_frequency()

    def _sync_frequency(self) -> None:
        frequency = self.monitor.config.frequency
        if frequency == self.frequency:
            return
        logger.info(
            "Check frequency changed",
            extra={"frequency_s": frequency.total_seconds()},
        )
        self.frequency = frequency
        self.scheduler.reschedule_job(JOB_ID, trigger=_interval(frequency))


def build_scheduler(monitor: MonitorService, blocking: bool = True) -> BaseScheduler:
    """Create a scheduler with the check job registered; the caller starts it."""
    scheduler: BaseScheduler
    if blocking:
        scheduler = BlockingScheduler(timezone=timezone.utc)
    else:
        scheduler = BackgroundScheduler(timezone=timezone.utc)

    job = CheckJob(monitor, scheduler)
    scheduler.add_job(
        job,
        trigger=_interval(job.frequency),
        id=JOB_ID,
        name="Check all sensors",
        next_run_time=datetime.now(timezone.utc),
        max_instances=1,
        coalesce=True,
        misfire_grace_time=None,
    )
    logger.info(
        "Scheduled sensor checks",
        extra={"frequency_s": job.frequency.total_seconds()},
    )
    return scheduler
