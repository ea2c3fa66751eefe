from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from app.schemas import MonitorConfig

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """The monitor configuration file is missing or malformed."""


def _read_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a YAML mapping at the root.")
    return data


def read_config(path: Path) -> MonitorConfig:
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")
    try:
        raw = _read_yaml(path)
        return MonitorConfig.model_validate(raw)
    except (OSError, yaml.YAMLError, ValidationError) as exc:
        raise ConfigError(f"Invalid config {path}: {exc}") from exc


class ConfigLoader:
    """Loads the monitor config and keeps the last good copy.

    The first ``load()`` must succeed. Later ``reload()`` calls fall back to
    the last good config when the file has become unreadable or invalid.
    """

    def __init__(self, path: Path, secret_path: Optional[str] = None) -> None:
        self.path = path
        self.secret_path = secret_path
        self._current: Optional[MonitorConfig] = None

    @property
    def current(self) -> MonitorConfig:
        if self._current is None:
            raise ConfigError("Config has not been loaded yet.")
        return self._current

    def load(self) -> MonitorConfig:
        self._current = self._apply_overrides(read_config(self.path))
        return self._current

    def reload(self) -> MonitorConfig:
        if self._current is None:
            return self.load()
        try:
            self._current = self._apply_overrides(read_config(self.path))
        except ConfigError as exc:
            logger.error(
                "Keeping previous config",
                extra={"reason": str(exc)},
            )
        return self._current

    def _apply_overrides(self, config: MonitorConfig) -> MonitorConfig:
        if self.secret_path is None:
            return config
        mailer = config.mailer.model_copy(update={"secret_path": self.secret_path})
        return config.model_copy(update={"mailer": mailer})
