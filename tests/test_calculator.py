"""Net driving time calculation."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from lenkzeit.calculator import compute_driving_minutes, measure_driving
from lenkzeit.errors import ValidationError
from lenkzeit.rules import PauseVariant
from lenkzeit.timer import DriveTimer

T0 = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)


def at(minutes: int = 0, seconds: int = 0) -> datetime:
    return T0 + timedelta(minutes=minutes, seconds=seconds)


def new_timer() -> DriveTimer:
    return DriveTimer("trip-1", PauseVariant.A, at(0))


class TestDrivingMinutes:
    def test_zero_at_start(self):
        assert compute_driving_minutes(new_timer(), at(0)) == 0

    def test_elapsed_floors_to_minutes(self):
        assert compute_driving_minutes(new_timer(), at(90, seconds=59)) == 90

    def test_closed_breaks_subtracted(self):
        timer = new_timer()
        timer.start_break(at(60))
        timer.end_break(at(75))
        timer.start_break(at(150))
        timer.end_break(at(180))
        assert compute_driving_minutes(timer, at(240)) == 195

    def test_open_break_counts_live(self):
        timer = new_timer()
        timer.start_break(at(100))
        assert compute_driving_minutes(timer, at(130)) == 100

    def test_constant_while_break_open(self):
        timer = new_timer()
        timer.start_break(at(100))
        values = {compute_driving_minutes(timer, at(100 + m, seconds=s)) for m in range(60) for s in (0, 30)}
        assert values == {100}

    def test_monotonic_without_open_break(self):
        timer = new_timer()
        timer.start_break(at(30))
        timer.end_break(at(40))
        previous = 0
        for seconds in range(0, 6 * 3600, 45):
            current = compute_driving_minutes(timer, at(40, seconds=seconds))
            assert current >= previous
            previous = current

    def test_never_negative(self):
        timer = new_timer()
        timer.start_break(at(0, seconds=10))
        timer.end_break(at(0, seconds=40))  # recorded as 1 minute
        assert compute_driving_minutes(timer, at(0, seconds=50)) == 0

    def test_reference_before_start_rejected(self):
        with pytest.raises(ValidationError):
            compute_driving_minutes(new_timer(), at(-1))

    def test_naive_reference_rejected(self):
        with pytest.raises(ValidationError):
            compute_driving_minutes(new_timer(), datetime(2026, 10, 19, 7, 0))

    def test_ended_timer_uses_end_time(self):
        timer = new_timer()
        timer.end(at(120))
        assert compute_driving_minutes(timer) == 120

    def test_active_timer_without_reference_rejected(self):
        with pytest.raises(ValidationError):
            compute_driving_minutes(new_timer())

    def test_reference_before_open_break_is_flagged(self, caplog):
        timer = new_timer()
        timer.start_break(at(100))
        with caplog.at_level(logging.WARNING, logger="lenkzeit.calculator"):
            assert compute_driving_minutes(timer, at(90)) == 90
        assert "precedes open break start" in caplog.text

    def test_clamp_is_reported_to_caller(self):
        timer = new_timer()
        timer.start_break(at(100))
        measure = measure_driving(timer, at(90))
        assert measure.minutes == 90
        assert measure.clamped
        assert not measure_driving(timer, at(110)).clamped

    def test_not_cached(self):
        timer = new_timer()
        assert compute_driving_minutes(timer, at(10)) == 10
        assert compute_driving_minutes(timer, at(20)) == 20
        assert compute_driving_minutes(timer, at(10)) == 10
