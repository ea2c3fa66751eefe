from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.render import render_alarm, render_sensors, render_summary
from datastore.sensors import SensorRecordError
from logging_config import configure_logging
from models.records import Alarm, Sensor
from services.config_loader import ConfigError
from services.monitor import MonitorService, build_default_monitor
from services.notifier import NotificationError
from services.scheduler import build_scheduler


@dataclass
class CLIState:
    config_path: Optional[str]
    secret_path: Optional[str]

    def monitor(self) -> MonitorService:
        return build_default_monitor(self.config_path, self.secret_path)


app = typer.Typer(
    help="Monitor remote sensors and send alerts when they need attention.",
    context_settings={"help_option_names": ["-h", "--help"]},
)
sensors_app = typer.Typer(help="Manage the sensor registry.")
app.add_typer(sensors_app, name="sensors")


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.find_object(CLIState)
    if state is None:
        raise typer.Exit(code=1)
    return state


def _fail(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _start(monitor: MonitorService) -> None:
    try:
        monitor.start()
    except (ConfigError, NotificationError) as exc:
        _fail(str(exc))


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to the monitor config (defaults to MONITOR_CONFIG_PATH env or config.yaml).",
    ),
    mailer_secret: Optional[str] = typer.Option(
        None,
        "--mailer-secret",
        "-m",
        help="Path to the file holding the Mailgun API key; without it alerts are only logged.",
    ),
) -> None:
    """Entry point for the CLI."""
    configure_logging()
    ctx.obj = CLIState(
        config_path=str(config) if config is not None else None,
        secret_path=mailer_secret,
    )


@app.command("run")
def run_command(ctx: typer.Context) -> None:
    """Check all sensors now and then on every tick until interrupted."""
    monitor = _get_state(ctx).monitor()
    _start(monitor)
    scheduler = build_scheduler(monitor, blocking=True)
    typer.echo(f"Checking sensors every {monitor.config.frequency}.")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        typer.echo("Stopping.")
    finally:
        monitor.shutdown()


@app.command("check")
def check_command(ctx: typer.Context) -> None:
    """Run a single check cycle and print the outcome."""
    monitor = _get_state(ctx).monitor()
    _start(monitor)
    try:
        summary = monitor.run_check()
    except SensorRecordError as exc:
        _fail(str(exc))
    finally:
        monitor.shutdown()
    render_summary(summary)


@app.command("alarms")
def alarms_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Identifier of a registered sensor."),
) -> None:
    """Show the stored alarm state for a sensor."""
    monitor = _get_state(ctx).monitor()
    found = monitor.sensor_status(sensor_id)
    if found is None:
        _fail(f"Sensor {sensor_id} is not registered.")
    sensor, alarm = found
    render_alarm(sensor, alarm)


@sensors_app.command("add")
def add_sensor_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier used by the reading source."),
    email_address: str = typer.Argument(..., help="Where alerts for this sensor are sent."),
    threshold: Optional[float] = typer.Option(
        None,
        "--threshold",
        "-t",
        min=0.0,
        help="Voltage floor for this sensor (defaults to the configured threshold).",
    ),
    owner: Optional[str] = typer.Option(None, "--owner", help="Owner of the sensor."),
) -> None:
    """Register a sensor or update its registration."""
    monitor = _get_state(ctx).monitor()
    existing = monitor.sensors.get(sensor_id)
    sensor = Sensor(
        id=sensor_id,
        email_address=email_address,
        threshold=threshold,
        owner=owner,
        alarms=existing.alarms if existing else Alarm(),
        document_id=existing.document_id if existing else None,
    )
    monitor.sensors.add(sensor)
    typer.secho(f"Sensor {sensor_id} registered.", fg=typer.colors.GREEN)


@sensors_app.command("list")
def list_sensors_command(ctx: typer.Context) -> None:
    """List registered sensors and their active alarms."""
    monitor = _get_state(ctx).monitor()
    render_sensors(monitor.list_status())
