from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List
from urllib.parse import parse_qs

import httpx
import pytest

from app.schemas import MailerConfig
from models.records import Alarm, Reading, Sensor
from services.notifier import (
    LogMailer,
    MailgunMailer,
    NotificationError,
    build_mailer,
    compose,
    compose_subject,
    newly_raised,
    notify,
    should_notify,
)

TEST_DATE = datetime(2019, 7, 3, 23, 12, 45, tzinfo=timezone.utc)
SENSOR = Sensor(id="123", email_address="owner@example.com")


class RecordingMailer:
    def __init__(self) -> None:
        self.messages: List[dict] = []

    def send(self, to: str, sender: str, subject: str, body: str) -> None:
        self.messages.append({"to": to, "sender": sender, "subject": subject, "body": body})


def _reading(voltage: float | None = 3.25) -> Reading:
    return Reading(sensor_id="123", timestamp=TEST_DATE, voltage=voltage)


def test_body_for_offline_alarm_mentions_last_seen() -> None:
    body = compose(SENSOR, Alarm(offline=TEST_DATE), _reading())

    assert "ID 123" in body
    assert "offline" in body
    assert "03 Jul 19 23:12 UTC" in body
    assert "battery" not in body
    assert "GPS" not in body


def test_body_for_low_battery_mentions_voltage_only() -> None:
    body = compose(SENSOR, Alarm(low_voltage=TEST_DATE), _reading(voltage=3.25))

    assert "3.25V" in body
    assert "low on battery" in body
    assert "offline" not in body
    assert "GPS" not in body


def test_body_for_missing_gps() -> None:
    body = compose(SENSOR, Alarm(gps_missing=TEST_DATE), _reading())

    assert "missing GPS lock" in body
    assert "offline" not in body
    assert "battery" not in body


def test_body_lists_all_alarms_in_fixed_order() -> None:
    alarm = Alarm(offline=TEST_DATE, low_voltage=TEST_DATE, gps_missing=TEST_DATE)

    body = compose(SENSOR, alarm, _reading(voltage=3.2))

    offline_at = body.index("offline")
    battery_at = body.index("low on battery")
    gps_at = body.index("missing GPS lock")
    assert offline_at < battery_at < gps_at
    assert "3.20V" in body
    assert body.startswith("Hi,")
    assert body.rstrip().endswith("The Meetjestad monitoring robot")


def test_offline_body_without_any_reading_says_never() -> None:
    body = compose(SENSOR, Alarm(offline=TEST_DATE), Reading.missing("123"))

    assert "last seen at never" in body


def test_subject_names_single_fault_and_summarizes_several() -> None:
    assert compose_subject(SENSOR, Alarm(offline=TEST_DATE)) == "Meetjestad station is offline"
    assert compose_subject(SENSOR, Alarm(low_voltage=TEST_DATE)) == "Meetjestad low battery warning"
    assert "123" in compose_subject(SENSOR, Alarm(offline=TEST_DATE, gps_missing=TEST_DATE))


def test_should_notify_on_any_set_field_without_history() -> None:
    assert should_notify(Alarm()) is False
    assert should_notify(Alarm(gps_missing=TEST_DATE)) is True


def test_should_notify_only_for_newly_raised_faults() -> None:
    earlier = TEST_DATE - timedelta(hours=3)
    previous = Alarm(low_voltage=earlier)

    assert should_notify(Alarm(low_voltage=earlier), previous) is False
    assert should_notify(Alarm(low_voltage=earlier, gps_missing=TEST_DATE), previous) is True
    assert newly_raised(Alarm(low_voltage=earlier, gps_missing=TEST_DATE), previous) == [
        "gps_missing"
    ]


def test_notify_sends_one_message_to_sensor_owner() -> None:
    mailer = RecordingMailer()
    alarm = Alarm(offline=TEST_DATE, gps_missing=TEST_DATE)

    notify(mailer, SENSOR, alarm, _reading(), sender="alert@example.com")

    assert len(mailer.messages) == 1
    message = mailer.messages[0]
    assert message["to"] == "owner@example.com"
    assert message["sender"] == "alert@example.com"
    assert "offline" in message["body"]
    assert "GPS" in message["body"]


def test_log_mailer_only_logs(caplog) -> None:
    caplog.set_level("INFO")

    LogMailer().send("owner@example.com", "alert@example.com", "Subject", "Body")

    assert "dummy mailer" in caplog.text


def test_mailgun_mailer_posts_message() -> None:
    captured: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"id": "<msg-1>", "message": "Queued"})

    mailer = MailgunMailer(
        domain="monitoring.example.com",
        api_key="key-123",
        api_base="https://api.example.com/v3/",
        transport=httpx.MockTransport(handler),
    )
    mailer.send("owner@example.com", "alert@example.com", "Subject", "Body")
    mailer.close()

    assert len(captured) == 1
    request = captured[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.example.com/v3/monitoring.example.com/messages"
    assert request.headers["Authorization"].startswith("Basic ")
    form = parse_qs(request.content.decode())
    assert form["to"] == ["owner@example.com"]
    assert form["from"] == ["alert@example.com"]
    assert form["subject"] == ["Subject"]
    assert form["text"] == ["Body"]


def test_mailgun_mailer_wraps_http_errors() -> None:
    mailer = MailgunMailer(
        domain="monitoring.example.com",
        api_key="key-123",
        transport=httpx.MockTransport(lambda request: httpx.Response(401, text="Forbidden")),
    )

    with pytest.raises(NotificationError):
        mailer.send("owner@example.com", "alert@example.com", "Subject", "Body")


def test_build_mailer_without_secret_is_log_only() -> None:
    assert isinstance(build_mailer(MailerConfig()), LogMailer)


def test_build_mailer_reads_secret_file(tmp_path) -> None:
    secret = tmp_path / "mailgun.key"
    secret.write_text("key-abc\n")

    mailer = build_mailer(MailerConfig(secretPath=str(secret), domain="example.org"))

    assert isinstance(mailer, MailgunMailer)
    assert mailer.domain == "example.org"
    mailer.close()


@pytest.mark.parametrize("content", [None, "   \n"])
def test_build_mailer_rejects_missing_or_empty_secret(tmp_path, content) -> None:
    secret = tmp_path / "mailgun.key"
    if content is not None:
        secret.write_text(content)

    with pytest.raises(NotificationError):
        build_mailer(MailerConfig(secretPath=str(secret)))
