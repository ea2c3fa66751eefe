"""HTTP route definitions for the monitor's status API."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from app.schemas import AlarmStatus, CheckSummaryResponse, SensorStatus
from models.records import Alarm, Sensor
from services.config_loader import ConfigError
from services.monitor import CheckInProgress, MonitorService, build_default_monitor
from services.notifier import NotificationError

router = APIRouter()


def get_monitor() -> MonitorService:
    return build_default_monitor()


def _to_status(sensor: Sensor, alarm: Alarm) -> SensorStatus:
    return SensorStatus(
        sensor_id=sensor.id,
        email_address=sensor.email_address,
        threshold=sensor.threshold,
        owner=sensor.owner,
        alarms=AlarmStatus.from_alarm(alarm),
    )


@router.get(
    "/sensors",
    response_model=List[SensorStatus],
    summary="List registered sensors with their current alarm state.",
)
def list_sensors(monitor: MonitorService = Depends(get_monitor)) -> List[SensorStatus]:
    return [_to_status(sensor, alarm) for sensor, alarm in monitor.list_status()]


@router.get(
    "/sensors/{sensor_id}/alarms",
    response_model=AlarmStatus,
    summary="Fetch the current alarm state for a sensor.",
)
def get_sensor_alarms(
    sensor_id: str,
    monitor: MonitorService = Depends(get_monitor),
) -> AlarmStatus:
    found = monitor.sensor_status(sensor_id)
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sensor {sensor_id!r} is not registered.",
        )
    _, alarm = found
    return AlarmStatus.from_alarm(alarm)


@router.post(
    "/checks",
    response_model=CheckSummaryResponse,
    summary="Run a check cycle now.",
)
def run_check(monitor: MonitorService = Depends(get_monitor)) -> CheckSummaryResponse:
    try:
        summary = monitor.run_check()
    except CheckInProgress as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except (ConfigError, NotificationError) as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return summary.to_response()


@router.get(
    "/checks/last",
    response_model=CheckSummaryResponse,
    summary="Outcome of the most recent check cycle.",
)
def last_check(monitor: MonitorService = Depends(get_monitor)) -> CheckSummaryResponse:
    if monitor.last_summary is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No check cycle has completed yet.",
        )
    return monitor.last_summary.to_response()


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(monitor: MonitorService = Depends(get_monitor)) -> dict[str, str]:
    return {"status": "ok", "check": "running" if monitor.is_running() else "idle"}
