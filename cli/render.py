from __future__ import annotations

from typing import Any, Iterable, Sequence, Tuple

import typer

from models.records import Alarm, Sensor
from services.checker import CheckSummary
from services.notifier import format_timestamp


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _alarm_pairs(alarm: Alarm) -> list[tuple[str, str]]:
    return [
        ("offline", format_timestamp(alarm.offline) if alarm.offline else "-"),
        ("low_voltage", format_timestamp(alarm.low_voltage) if alarm.low_voltage else "-"),
        ("gps_missing", format_timestamp(alarm.gps_missing) if alarm.gps_missing else "-"),
    ]


def render_summary(summary: CheckSummary) -> None:
    echo_heading("Check Result")
    echo_key_values(
        [
            ("checked", summary.checked),
            ("notified", summary.notified),
            ("skipped", summary.skipped),
        ]
    )

    typer.echo()
    echo_heading("Failures")
    if summary.failures:
        for failure in summary.failures:
            typer.echo(f"  - {failure.sensor_id}: {failure.reason}")
    else:
        typer.echo("No failures recorded.")


def render_alarm(sensor: Sensor, alarm: Alarm) -> None:
    echo_heading(f"Sensor {sensor.id}")
    echo_key_values(
        [
            ("email_address", sensor.email_address),
            ("threshold", sensor.threshold if sensor.threshold else "default"),
            ("owner", sensor.owner or "-"),
        ]
    )
    typer.echo()
    echo_heading("Alarms")
    if alarm.is_clear():
        typer.secho("No active alarms.", fg=typer.colors.GREEN)
        return
    echo_key_values(_alarm_pairs(alarm))


def render_sensors(entries: Sequence[Tuple[Sensor, Alarm]]) -> None:
    echo_heading("Sensors")
    if not entries:
        typer.echo("No sensors registered.")
        return
    for sensor, alarm in entries:
        active = ", ".join(name for name, _ in alarm.active()) or "ok"
        typer.echo(f"  - {sensor.id} ({sensor.email_address}): {active}")
