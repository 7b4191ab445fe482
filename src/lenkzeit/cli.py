#!/usr/bin/env python3
"""Lenkzeit CLI: driving time and break tracking for one driver.

Usage:
    lenkzeit vehicle add "Actros" "B-TR 1234"
    lenkzeit trip start --vehicle <id> --km 120500
    lenkzeit start --variant B
    lenkzeit pause
    lenkzeit resume
    lenkzeit status
    lenkzeit stop
    lenkzeit export --output ~/exports
    lenkzeit history
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .clock import format_minutes, parse_iso, to_iso, truncate_ms
from .config import get_config
from .errors import LenkzeitError
from .export import export_filename, serialize
from .registry import Vehicle, vehicle_plate
from .rules import REMINDER_WINDOW_MIN, PauseVariant, describe_variant
from .store import TimerStore
from .timer import DriveSession

console = Console()
logger = logging.getLogger(__name__)


class AppContext:
    """Per-invocation state shared by the subcommands."""

    def __init__(self, store: TimerStore, now: datetime, export_dir):
        self.store = store
        self.now = now
        self.export_dir = export_dir

    def load_session(self) -> DriveSession:
        return DriveSession.from_timers(self.store.load_timers())

    def save_session(self, session: DriveSession) -> None:
        self.store.save_timers(session.timers())


@contextmanager
def _engine_errors() -> Iterator[None]:
    """Turn engine errors into a CLI error with a readable message."""
    try:
        yield
    except LenkzeitError as exc:
        raise click.ClickException(str(exc)) from exc


def _parse_now(value: str | None) -> datetime:
    if not value:
        return truncate_ms(datetime.now(timezone.utc))
    with _engine_errors():
        return parse_iso(value)


def _local(dt: datetime | None) -> str:
    if dt is None:
        return "-"
    return dt.astimezone().strftime("%Y-%m-%d %H:%M")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--now", "now_text", metavar="ISO", help="Use this time instead of the clock (ISO-8601 with offset).")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx, now_text, verbose):
    """Lenkzeit - EU driving time and break tracking."""
    config = get_config()
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.log_level_value,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )

    store = TimerStore(config.db_path)
    store.init()
    ctx.obj = AppContext(store=store, now=_parse_now(now_text), export_dir=config.export_dir)
    logger.debug("Using database %s", config.db_path)


# ---- Vehicles and trips ----

@cli.group()
def vehicle():
    """Manage vehicles."""


@vehicle.command("add")
@click.argument("name")
@click.argument("plate")
@click.option("--tank", type=float, default=0.0, show_default=True, help="Tank volume in litres.")
@click.pass_obj
def vehicle_add(app: AppContext, name, plate, tank):
    """Register a vehicle with its number plate."""
    record = Vehicle(name=name, plate=plate, tank_volume_l=tank)
    app.store.save_vehicle(record)
    console.print(f"[green]Vehicle added:[/green] {record.name} ({record.plate}) id={record.id}")


@vehicle.command("list")
@click.pass_obj
def vehicle_list(app: AppContext):
    """List registered vehicles."""
    registry = app.store.load_registry()
    if not registry.vehicles:
        console.print("[yellow]No vehicles registered.[/yellow]")
        return
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Plate")
    table.add_column("Tank (l)", justify="right")
    for v in registry.vehicles:
        table.add_row(v.id, v.name, v.plate, f"{v.tank_volume_l:g}")
    console.print(table)


@cli.group()
def trip():
    """Start and end trips."""


@trip.command("start")
@click.option("--vehicle", "vehicle_id", required=True, help="Vehicle id.")
@click.option("--km", type=float, default=0.0, show_default=True, help="Odometer at start.")
@click.pass_obj
def trip_start(app: AppContext, vehicle_id, km):
    """Start a trip with a vehicle."""
    registry = app.store.load_registry()
    with _engine_errors():
        record = registry.start_trip(vehicle_id, app.now, start_km=km)
    app.store.save_trip(record)
    console.print(f"[green]Trip started[/green] id={record.id}")


@trip.command("end")
@click.option("--km", type=float, default=None, help="Odometer at end.")
@click.pass_obj
def trip_end(app: AppContext, km):
    """End the current trip."""
    session = app.load_session()
    if session.active is not None:
        raise click.ClickException("Stop the running drive timer before ending the trip.")
    registry = app.store.load_registry()
    with _engine_errors():
        record = registry.end_trip(app.now, end_km=km)
    app.store.save_trip(record)
    console.print(f"[green]Trip ended[/green] id={record.id}")


# ---- Drive timer ----

@cli.command()
@click.option(
    "--variant",
    type=click.Choice(["A", "B"], case_sensitive=False),
    default="A",
    show_default=True,
    help="A = one 45 min break, B = 15 min then 30 min.",
)
@click.pass_obj
def start(app: AppContext, variant):
    """Start the drive timer for the current trip."""
    current = app.store.load_registry().current_trip()
    if current is None:
        raise click.ClickException("No active trip. Start a trip first: lenkzeit trip start --vehicle <id>")
    session = app.load_session()
    with _engine_errors():
        timer = session.start(current.id, PauseVariant.parse(variant), app.now)
    app.save_session(session)
    console.print(f"[green]Drive timer started[/green] - variant {describe_variant(timer.variant)}")


@cli.command()
@click.pass_obj
def pause(app: AppContext):
    """Start a break."""
    session = app.load_session()
    with _engine_errors():
        session.start_break(app.now)
    app.save_session(session)
    console.print("[yellow]Break started.[/yellow] Driving time is paused.")


@cli.command()
@click.pass_obj
def resume(app: AppContext):
    """End the current break."""
    session = app.load_session()
    with _engine_errors():
        closed = session.end_break(app.now)
    app.save_session(session)
    console.print(f"[green]Break ended[/green] - duration {format_minutes(closed.duration_minutes)}. Driving time resumes.")


@cli.command()
@click.pass_obj
def stop(app: AppContext):
    """End the drive timer (closes an open break)."""
    session = app.load_session()
    with _engine_errors():
        timer = session.end(app.now)
    app.save_session(session)
    console.print(f"[green]Drive ended[/green] - total driving time {format_minutes(timer.driving_minutes_today)}")


@cli.command()
@click.pass_obj
def status(app: AppContext):
    """Show driving time, next break and compliance."""
    session = app.load_session()
    with _engine_errors():
        stats = session.dashboard(app.now)
    timer = session.active
    if timer is None:
        console.print("[dim]No active drive timer.[/dim]")
        return

    console.print(f"Driving time:     {format_minutes(stats.driving_minutes)}")
    console.print(f"Next break in:    {format_minutes(stats.next_break_due)}")
    console.print(f"Variant:          {describe_variant(stats.variant)}")
    console.print(f"Breaks valid:     {'yes' if stats.compliant else 'no'}")
    if stats.in_break:
        console.print(f"[yellow]On break for {format_minutes(stats.open_break_minutes)}[/yellow]")
    if stats.clock_skew:
        console.print("[bold yellow]Clock is earlier than the open break start; break counted as 0 minutes.[/bold yellow]")
    if stats.reminder:
        console.print(f"[bold red]Break due within {REMINDER_WINDOW_MIN} minutes![/bold red]")
    elif stats.next_break_due == 0 and not stats.in_break:
        console.print("[bold red]Break overdue![/bold red]")

    if timer.breaks:
        table = Table(show_header=True, header_style="bold cyan", box=None)
        table.add_column("#", justify="right")
        table.add_column("Start")
        table.add_column("End")
        table.add_column("Minutes", justify="right")
        for index, interval in enumerate(timer.breaks, start=1):
            end = "running" if interval.is_open else _local(interval.end)
            table.add_row(str(index), _local(interval.start), end, str(interval.live_minutes(app.now)))
        console.print(table)


@cli.command()
@click.option("--output", "output_dir", type=click.Path(file_okay=False), default=None, help="Directory for the .cfs file.")
@click.option("--stdout", "to_stdout", is_flag=True, help="Print the record instead of writing a file.")
@click.pass_obj
def export(app: AppContext, output_dir, to_stdout):
    """Export the active (or last) drive timer as a CFS record."""
    session = app.load_session()
    timer = session.latest()
    if timer is None:
        raise click.ClickException("No drive timer to export.")
    trip_record, vehicle_record = app.store.load_registry().resolve(timer.trip_id)
    with _engine_errors():
        text = serialize(timer, trip_record, vehicle_record, reference_time=app.now)

    if to_stdout:
        click.echo(text, nl=False)
        return

    target_dir = Path(output_dir) if output_dir else app.export_dir
    path = target_dir / export_filename(app.now)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.info("Exported timer %s to %s", timer.id, path)
    console.print(f"[green]Exported[/green] {path} ({vehicle_plate(vehicle_record)})")


@cli.command()
@click.pass_obj
def history(app: AppContext):
    """List ended drive timers."""
    session = app.load_session()
    if not session.history:
        console.print("[yellow]No finished drive timers.[/yellow]")
        return
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Start", style="dim")
    table.add_column("End")
    table.add_column("Variant")
    table.add_column("Driving", justify="right")
    table.add_column("Breaks", justify="right")
    table.add_column("Valid")
    for timer in session.history:
        table.add_row(
            _local(timer.start_time),
            _local(timer.end_time),
            timer.variant.value,
            format_minutes(timer.driving_minutes_today),
            str(len(timer.breaks)),
            "yes" if timer.compliant else "no",
        )
    console.print(table)
    logger.debug("Listed %d timers, last ended %s", len(session.history), to_iso(session.history[-1].end_time))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
