"""Alert composition and delivery."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol

import httpx

from app.schemas import MailerConfig
from models.records import Alarm, Reading, Sensor

logger = logging.getLogger(__name__)

_GREETING = "Hi,"
_SIGNATURE = "-- \nRegards,\n\nThe Meetjestad monitoring robot"

_SUBJECTS = {
    "offline": "Meetjestad station is offline",
    "low_voltage": "Meetjestad low battery warning",
    "gps_missing": "Meetjestad station is missing GPS lock",
}


class NotificationError(RuntimeError):
    """An alert could not be delivered."""


class Mailer(Protocol):
    def send(self, to: str, sender: str, subject: str, body: str) -> None:
        ...


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "never"
    return value.astimezone(timezone.utc).strftime("%d %b %y %H:%M UTC")


def newly_raised(alarm: Alarm, previous: Alarm) -> List[str]:
    """Names of faults set in ``alarm`` that were not already debounced in ``previous``."""
    return [
        name for name, raised_at in alarm.active() if getattr(previous, name) != raised_at
    ]


def should_notify(alarm: Alarm, previous: Optional[Alarm] = None) -> bool:
    """Whether ``alarm`` warrants an alert.

    Without ``previous`` any set fault counts. With it, only faults raised by
    this evaluation do, so a debounced fault is not reported again until its
    window expires.
    """
    if previous is None:
        return not alarm.is_clear()
    return bool(newly_raised(alarm, previous))


def compose_subject(sensor: Sensor, alarm: Alarm) -> str:
    faults = [name for name, _ in alarm.active()]
    if len(faults) == 1:
        return _SUBJECTS[faults[0]]
    return f"Meetjestad station {sensor.id} needs attention"


def compose(sensor: Sensor, alarm: Alarm, reading: Reading) -> str:
    """Build the message body listing only the faults set in ``alarm``."""
    lines: List[str] = []
    if alarm.offline is not None:
        lines.append(
            "- The sensor seems to be offline. "
            f"It was last seen at {format_timestamp(reading.timestamp)}."
        )
    if alarm.low_voltage is not None:
        voltage = "unknown" if reading.voltage is None else f"{reading.voltage:.2f}V"
        lines.append(
            f"- The sensor is low on battery, the latest reading was {voltage}.\n"
            "  You should replace the batteries as soon as possible, before\n"
            "  the sensor stops reporting."
        )
    if alarm.gps_missing is not None:
        lines.append(
            "- The sensor is missing GPS lock.\n"
            "  Make sure the station has a clear view of the sky and perhaps\n"
            "  reset it while outdoors."
        )

    return "\n\n".join(
        [
            _GREETING,
            "This is an automated message about your sensor with ID "
            f"{sensor.id}.",
            "\n".join(lines),
            _SIGNATURE,
        ]
    )


def notify(
    mailer: Mailer,
    sensor: Sensor,
    alarm: Alarm,
    reading: Reading,
    sender: str,
) -> None:
    """Send one alert for ``sensor`` covering every fault set in ``alarm``."""
    mailer.send(
        to=sensor.email_address,
        sender=sender,
        subject=compose_subject(sensor, alarm),
        body=compose(sensor, alarm, reading),
    )


class LogMailer:
    """Mailer used when no mail credential is configured; only logs."""

    def send(self, to: str, sender: str, subject: str, body: str) -> None:
        logger.info("Mail not sent (dummy mailer): %s", subject, extra={"recipient": to})
        logger.debug("Mail body:\n%s", body)


class MailgunMailer:

    def __init__(
        self,
        domain: str,
        api_key: str,
        api_base: str = "https://api.eu.mailgun.net/v3",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.domain = domain
        self._client = httpx.Client(
            base_url=api_base.rstrip("/"),
            auth=("api", api_key),
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def send(self, to: str, sender: str, subject: str, body: str) -> None:
        try:
            response = self._client.post(
                f"/{self.domain}/messages",
                data={"from": sender, "to": to, "subject": subject, "text": body},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Failed to send mail to {to}: {exc}") from exc

        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        logger.info("Mail sent: %s", message_id, extra={"recipient": to})


def read_secret(path: str) -> str:
    try:
        secret = Path(path).expanduser().read_text().strip()
    except OSError as exc:
        raise NotificationError(f"Unable to read mailer secret {path}: {exc}") from exc
    if not secret:
        raise NotificationError(f"Mailer secret {path} is empty.")
    return secret


def build_mailer(config: MailerConfig) -> Mailer:
    """Use Mailgun when a secret path is configured, otherwise only log."""
    if config.secret_path is None:
        return LogMailer()
    return MailgunMailer(
        domain=config.domain,
        api_key=read_secret(config.secret_path),
        api_base=config.api_base,
    )
