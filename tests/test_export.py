"""CFS export record: exact layout and parsing it back."""

from datetime import datetime, timedelta, timezone

import pytest

from lenkzeit.errors import ValidationError
from lenkzeit.export import export_filename, parse_export, serialize
from lenkzeit.registry import Trip, Vehicle
from lenkzeit.rules import PauseVariant
from lenkzeit.timer import DriveTimer


# ---- Helpers ----

T0 = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)


def at(minutes: int = 0) -> datetime:
    return T0 + timedelta(minutes=minutes)


def split_break_timer() -> DriveTimer:
    timer = DriveTimer("trip-1", PauseVariant.B, at(0), timer_id="timer-1")
    timer.start_break(at(60))
    timer.end_break(at(75))
    timer.start_break(at(150))
    timer.end_break(at(180))
    return timer


VEHICLE = Vehicle(name="Actros", plate="B-TR 1234", tank_volume_l=400, id="veh-1")
TRIP = Trip(vehicle_id="veh-1", start_datetime=T0, id="trip-1")

EXPECTED_ACTIVE = """\
# CFS Lenkzeiten Export
# Datum: 19.10.2026
# Fahrzeug: B-TR 1234
# Fahrer: Trucker App

[DRIVING]
START=2026-10-19T06:00:00.000Z
END=2026-10-19T10:00:00.000Z
VARIANT=B
TOTAL_MINUTES=195
DAILY_LIMIT=540
WEEKLY_LIMIT=3360
STATUS=ACTIVE

[BREAKS]
BREAK_1_START=2026-10-19T07:00:00.000Z
BREAK_1_END=2026-10-19T07:15:00.000Z
BREAK_1_DURATION=15
BREAK_2_START=2026-10-19T08:30:00.000Z
BREAK_2_END=2026-10-19T09:00:00.000Z
BREAK_2_DURATION=30
TOTAL_BREAKS=2

[VALIDATION]
PAUSES_VALID=true
NEXT_BREAK_IN=75
EXPORT_TIME=2026-10-19T10:00:00.000Z
APP_VERSION=Trucker_App_v1.0
"""


class TestSerialize:
    def test_exact_layout(self):
        text = serialize(split_break_timer(), TRIP, VEHICLE, reference_time=at(240))
        assert text == EXPECTED_ACTIVE

    def test_no_breaks_section_without_breaks(self):
        timer = DriveTimer("trip-1", PauseVariant.A, at(0))
        text = serialize(timer, reference_time=at(30))
        assert "[BREAKS]" not in text
        assert "TOTAL_BREAKS" not in text
        assert "TOTAL_MINUTES=30\n" in text
        assert "PAUSES_VALID=false\n" in text
        assert "NEXT_BREAK_IN=240\n" in text

    def test_unknown_vehicle(self):
        timer = DriveTimer("trip-1", PauseVariant.A, at(0))
        text = serialize(timer, reference_time=at(5))
        assert "# Fahrzeug: Unbekannt\n" in text

    def test_open_break_live_duration(self):
        timer = DriveTimer("trip-1", PauseVariant.A, at(0))
        timer.start_break(at(100))
        text = serialize(timer, reference_time=at(112))
        assert "BREAK_1_END=ACTIVE\n" in text
        assert "BREAK_1_DURATION=12\n" in text
        assert "TOTAL_MINUTES=100\n" in text

    def test_completed_timer(self):
        timer = split_break_timer()
        timer.end(at(300))
        text = serialize(timer, TRIP, VEHICLE, reference_time=at(500))
        assert "END=2026-10-19T11:00:00.000Z\n" in text
        assert "STATUS=COMPLETED\n" in text
        assert "TOTAL_MINUTES=255\n" in text
        assert "NEXT_BREAK_IN=15\n" in text
        assert "EXPORT_TIME=2026-10-19T14:20:00.000Z\n" in text

    def test_completed_timer_defaults_to_end_time(self):
        timer = split_break_timer()
        timer.end(at(300))
        assert "EXPORT_TIME=2026-10-19T11:00:00.000Z\n" in serialize(timer)

    def test_trip_must_belong_to_timer(self):
        other = Trip(vehicle_id="veh-1", start_datetime=T0, id="trip-2")
        with pytest.raises(ValidationError):
            serialize(split_break_timer(), other, VEHICLE, reference_time=at(240))

    def test_vehicle_must_belong_to_trip(self):
        other = Vehicle(name="Atego", plate="B-TR 9", id="veh-2")
        with pytest.raises(ValidationError):
            serialize(split_break_timer(), TRIP, other, reference_time=at(240))

    def test_sub_millisecond_reference_is_truncated(self):
        reference = at(240) + timedelta(microseconds=999)
        text = serialize(split_break_timer(), TRIP, VEHICLE, reference_time=reference)
        assert text == serialize(split_break_timer(), TRIP, VEHICLE, reference_time=at(240))

    def test_active_timer_needs_reference(self):
        with pytest.raises(ValidationError):
            serialize(split_break_timer())

    def test_deterministic(self):
        timer = split_break_timer()
        assert serialize(timer, reference_time=at(200)) == serialize(timer, reference_time=at(200))

    def test_filename(self):
        assert export_filename(at(0)) == "lenkzeiten_2026-10-19.cfs"


class TestParseExport:
    def test_round_trip(self):
        timer = split_break_timer()
        record = parse_export(serialize(timer, TRIP, VEHICLE, reference_time=at(240)))
        assert record.start == timer.start_time
        assert record.end == at(240)
        assert record.variant == PauseVariant.B
        assert record.total_minutes == 195
        assert record.status == "ACTIVE"
        assert record.plate == "B-TR 1234"
        assert record.date_label == "19.10.2026"
        assert [(b.start, b.end, b.duration_minutes) for b in record.breaks] == [
            (b.start, b.end, b.duration_minutes) for b in timer.breaks
        ]
        assert record.total_breaks == 2
        assert record.pauses_valid is True
        assert record.next_break_in == 75
        assert record.export_time == at(240)
        assert record.app_version == "Trucker_App_v1.0"

    def test_round_trip_keeps_sub_second_instants(self):
        start = datetime(2026, 10, 19, 8, 0, 0, 123456, tzinfo=timezone.utc)
        timer = DriveTimer("trip-1", PauseVariant.B, start)
        timer.start_break(start + timedelta(minutes=60, microseconds=654321))
        timer.end_break(start + timedelta(minutes=80, microseconds=999))
        timer.end(start + timedelta(hours=4, microseconds=987654))

        record = parse_export(serialize(timer))
        assert record.start == timer.start_time
        assert record.end == timer.end_time
        assert record.export_time == timer.end_time
        assert [(b.start, b.end) for b in record.breaks] == [(b.start, b.end) for b in timer.breaks]

    def test_open_break_parsed_as_open(self):
        timer = DriveTimer("trip-1", PauseVariant.A, at(0))
        timer.start_break(at(100))
        record = parse_export(serialize(timer, reference_time=at(110)))
        assert record.breaks[0].is_open
        assert record.breaks[0].duration_minutes == 10

    def test_unknown_section(self):
        with pytest.raises(ValidationError):
            parse_export("[DRIVING]\nSTART=2026-10-19T06:00:00.000Z\n[EXTRA]\nA=1\n")

    def test_line_outside_section(self):
        with pytest.raises(ValidationError):
            parse_export("START=2026-10-19T06:00:00.000Z\n")

    def test_break_count_mismatch(self):
        text = EXPECTED_ACTIVE.replace("TOTAL_BREAKS=2", "TOTAL_BREAKS=3")
        with pytest.raises(ValidationError):
            parse_export(text)

    def test_incomplete_break(self):
        text = EXPECTED_ACTIVE.replace("BREAK_2_DURATION=30\n", "")
        with pytest.raises(ValidationError):
            parse_export(text)

    def test_bad_boolean(self):
        text = EXPECTED_ACTIVE.replace("PAUSES_VALID=true", "PAUSES_VALID=yes")
        with pytest.raises(ValidationError):
            parse_export(text)
