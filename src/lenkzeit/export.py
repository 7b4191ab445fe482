"""CFS export: line-oriented KEY=VALUE record of one drive timer.

The record layout is positional for some consumers, so field order and
section headers are fixed:

    # CFS Lenkzeiten Export
    # Datum: 19.10.2026
    # Fahrzeug: B-TR 1234
    # Fahrer: Trucker App

    [DRIVING]
    START=... END=... VARIANT=... TOTAL_MINUTES=... DAILY_LIMIT=540
    WEEKLY_LIMIT=3360 STATUS=ACTIVE|COMPLETED      (one per line)

    [BREAKS]                     (only when the timer has breaks)
    BREAK_1_START=... BREAK_1_END=...|ACTIVE BREAK_1_DURATION=...
    TOTAL_BREAKS=n

    [VALIDATION]
    PAUSES_VALID=true|false NEXT_BREAK_IN=... EXPORT_TIME=... APP_VERSION=...
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

from .calculator import compute_driving_minutes
from .clock import parse_iso, require_aware, to_instant, to_iso
from .errors import ValidationError
from .registry import Trip, Vehicle, vehicle_plate
from .rules import DAILY_LIMIT_MIN, WEEKLY_LIMIT_MIN, PauseVariant, compute_next_break_due, is_compliant

HEADER_TITLE = "# CFS Lenkzeiten Export"
DRIVER_LABEL = "Trucker App"
APP_VERSION = "Trucker_App_v1.0"
OPEN_BREAK_END = "ACTIVE"
STATUS_ACTIVE = "ACTIVE"
STATUS_COMPLETED = "COMPLETED"
FILE_PREFIX = "lenkzeiten_"
FILE_SUFFIX = ".cfs"

SECTIONS = ("DRIVING", "BREAKS", "VALIDATION")
BREAK_KEY_PATTERN = re.compile(r"^BREAK_(?P<index>\d+)_(?P<field>START|END|DURATION)$")


@dataclass
class ExportedBreak:
    start: datetime
    end: datetime | None
    duration_minutes: int

    @property
    def is_open(self) -> bool:
        return self.end is None


@dataclass
class ExportRecord:
    """A parsed CFS record."""

    date_label: str = ""
    plate: str = ""
    driver: str = ""
    start: datetime | None = None
    end: datetime | None = None
    variant: PauseVariant | None = None
    total_minutes: int = 0
    daily_limit: int = DAILY_LIMIT_MIN
    weekly_limit: int = WEEKLY_LIMIT_MIN
    status: str = ""
    breaks: list[ExportedBreak] = field(default_factory=list)
    total_breaks: int = 0
    pauses_valid: bool = False
    next_break_in: int = 0
    export_time: datetime | None = None
    app_version: str = ""


def export_filename(now: datetime) -> str:
    """lenkzeiten_<YYYY-MM-DD>.cfs"""
    return f"{FILE_PREFIX}{require_aware(now, 'now').date().isoformat()}{FILE_SUFFIX}"


def _date_label(dt: datetime) -> str:
    return f"{dt.day}.{dt.month}.{dt.year}"


def serialize(
    timer,
    trip: Trip | None = None,
    vehicle: Vehicle | None = None,
    reference_time: datetime | None = None,
) -> str:
    """Render a timer snapshot as a CFS text record.

    `reference_time` is the export moment. It stands in for the end time
    while the timer is active and drives the live duration of an open break.
    `trip` and `vehicle`, when given, must be the ones the timer belongs to.
    """
    if trip is not None and trip.id != timer.trip_id:
        raise ValidationError(f"Trip {trip.id} does not belong to timer {timer.id}")
    if trip is not None and vehicle is not None and vehicle.id != trip.vehicle_id:
        raise ValidationError(f"Vehicle {vehicle.id} is not the vehicle of trip {trip.id}")
    if reference_time is None:
        if timer.end_time is None:
            raise ValidationError("Exporting an active timer needs a reference time")
        reference_time = timer.end_time
    reference_time = to_instant(reference_time, "reference_time")

    breaks = timer.breaks
    end = timer.end_time if timer.end_time is not None else reference_time
    driving = compute_driving_minutes(timer, end)

    lines = [
        HEADER_TITLE,
        f"# Datum: {_date_label(timer.start_time)}",
        f"# Fahrzeug: {vehicle_plate(vehicle)}",
        f"# Fahrer: {DRIVER_LABEL}",
        "",
        "[DRIVING]",
        f"START={to_iso(timer.start_time)}",
        f"END={to_iso(end)}",
        f"VARIANT={timer.variant.value}",
        f"TOTAL_MINUTES={driving}",
        f"DAILY_LIMIT={DAILY_LIMIT_MIN}",
        f"WEEKLY_LIMIT={WEEKLY_LIMIT_MIN}",
        f"STATUS={STATUS_ACTIVE if timer.is_active else STATUS_COMPLETED}",
        "",
    ]

    if breaks:
        lines.append("[BREAKS]")
        for index, interval in enumerate(breaks, start=1):
            lines.append(f"BREAK_{index}_START={to_iso(interval.start)}")
            if interval.is_open:
                lines.append(f"BREAK_{index}_END={OPEN_BREAK_END}")
            else:
                lines.append(f"BREAK_{index}_END={to_iso(interval.end)}")
            lines.append(f"BREAK_{index}_DURATION={interval.live_minutes(reference_time)}")
        lines.append(f"TOTAL_BREAKS={len(breaks)}")
        lines.append("")

    lines.extend([
        "[VALIDATION]",
        f"PAUSES_VALID={'true' if is_compliant(timer) else 'false'}",
        f"NEXT_BREAK_IN={compute_next_break_due(timer, driving)}",
        f"EXPORT_TIME={to_iso(reference_time)}",
        f"APP_VERSION={APP_VERSION}",
    ])
    return "\n".join(lines) + "\n"


# ---- Parsing ----

def _int(key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise ValidationError(f"{key} is not an integer: {value!r}") from exc


def _bool(key: str, value: str) -> bool:
    if value not in ("true", "false"):
        raise ValidationError(f"{key} is not true/false: {value!r}")
    return value == "true"


def _parse_header(record: ExportRecord, line: str) -> None:
    body = line.lstrip("#").strip()
    label, _, value = body.partition(":")
    value = value.strip()
    if label == "Datum":
        record.date_label = value
    elif label == "Fahrzeug":
        record.plate = value
    elif label == "Fahrer":
        record.driver = value


def _apply_driving(record: ExportRecord, key: str, value: str) -> None:
    if key == "START":
        record.start = parse_iso(value)
    elif key == "END":
        record.end = parse_iso(value)
    elif key == "VARIANT":
        record.variant = PauseVariant.parse(value)
    elif key == "TOTAL_MINUTES":
        record.total_minutes = _int(key, value)
    elif key == "DAILY_LIMIT":
        record.daily_limit = _int(key, value)
    elif key == "WEEKLY_LIMIT":
        record.weekly_limit = _int(key, value)
    elif key == "STATUS":
        if value not in (STATUS_ACTIVE, STATUS_COMPLETED):
            raise ValidationError(f"Unknown STATUS: {value!r}")
        record.status = value
    else:
        raise ValidationError(f"Unknown key in [DRIVING]: {key}")


def _apply_validation(record: ExportRecord, key: str, value: str) -> None:
    if key == "PAUSES_VALID":
        record.pauses_valid = _bool(key, value)
    elif key == "NEXT_BREAK_IN":
        record.next_break_in = _int(key, value)
    elif key == "EXPORT_TIME":
        record.export_time = parse_iso(value)
    elif key == "APP_VERSION":
        record.app_version = value
    else:
        raise ValidationError(f"Unknown key in [VALIDATION]: {key}")


def parse_export(text: str) -> ExportRecord:
    """Read a CFS record produced by serialize() back into its fields."""
    record = ExportRecord()
    raw_breaks: dict[int, dict[str, str]] = {}
    section: str | None = None

    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            continue
        if line.startswith("#"):
            _parse_header(record, line)
            continue
        if line.startswith("[") and line.endswith("]"):
            section = line[1:-1]
            if section not in SECTIONS:
                raise ValidationError(f"Line {number}: unknown section [{section}]")
            continue

        key, sep, value = line.partition("=")
        if not sep or section is None:
            raise ValidationError(f"Line {number}: expected KEY=VALUE inside a section: {raw!r}")

        if section == "DRIVING":
            _apply_driving(record, key, value)
        elif section == "VALIDATION":
            _apply_validation(record, key, value)
        elif key == "TOTAL_BREAKS":
            record.total_breaks = _int(key, value)
        else:
            match = BREAK_KEY_PATTERN.match(key)
            if match is None:
                raise ValidationError(f"Line {number}: unknown key in [BREAKS]: {key}")
            raw_breaks.setdefault(int(match.group("index")), {})[match.group("field")] = value

    for index in sorted(raw_breaks):
        fields = raw_breaks[index]
        missing = {"START", "END", "DURATION"} - fields.keys()
        if missing:
            raise ValidationError(f"BREAK_{index} is missing {', '.join(sorted(missing))}")
        end = None if fields["END"] == OPEN_BREAK_END else parse_iso(fields["END"])
        record.breaks.append(
            ExportedBreak(
                start=parse_iso(fields["START"]),
                end=end,
                duration_minutes=_int(f"BREAK_{index}_DURATION", fields["DURATION"]),
            )
        )

    if record.total_breaks != len(record.breaks):
        raise ValidationError(
            f"TOTAL_BREAKS={record.total_breaks} but {len(record.breaks)} breaks listed"
        )
    if record.start is None or record.variant is None:
        raise ValidationError("Record has no [DRIVING] START/VARIANT")
    return record
