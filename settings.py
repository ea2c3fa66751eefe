from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_CONFIG_PATH_ENV = "MONITOR_CONFIG_PATH"
_SENSOR_STORE_ENV = "SENSOR_STORE_PATH"
_ALARM_STORE_ENV = "ALARM_STORE_PATH"
_STORAGE_SHAPE_ENV = "ALARM_STORAGE_SHAPE"
_READING_URL_ENV = "READING_SOURCE_URL"
_READING_TIMEOUT_ENV = "READING_FETCH_TIMEOUT"
_RUN_SCHEDULER_ENV = "RUN_SCHEDULER"
_LOG_LEVEL_ENV = "LOG_LEVEL"

STORAGE_SHAPES = ("separate", "embedded")


@dataclass(frozen=True)
class Settings:
    config_path: str
    sensor_store_path: Optional[str]
    alarm_store_path: Optional[str]
    alarm_storage_shape: str
    reading_source_url: str
    reading_fetch_timeout: float
    run_scheduler: bool
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_timeout(default: float) -> float:
    value = os.getenv(_READING_TIMEOUT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_storage_shape(default: str) -> str:
    candidate = _read_str_env(_STORAGE_SHAPE_ENV, default).lower()
    return candidate if candidate in STORAGE_SHAPES else default


def _read_flag(name: str) -> bool:
    value = os.getenv(name)
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        config_path=_read_str_env(_CONFIG_PATH_ENV, "config.yaml"),
        sensor_store_path=_read_optional_env(_SENSOR_STORE_ENV, "./tmp/sensors.json"),
        alarm_store_path=_read_optional_env(_ALARM_STORE_ENV, "./tmp/alarms.json"),
        alarm_storage_shape=_read_storage_shape("separate"),
        reading_source_url=_read_str_env(_READING_URL_ENV, "https://meetjescraper.online/"),
        reading_fetch_timeout=_read_timeout(10.0),
        run_scheduler=_read_flag(_RUN_SCHEDULER_ENV),
        log_level=_read_log_level("INFO"),
    )
