"""Drive timer state machine: pure logic, no I/O.

A DriveTimer is one driving shift. It is the only way to mutate its breaks:
start_break / end_break / end run under the timer's lock, so two transitions
never interleave and readers always see a complete break record.

DriveSession holds the single active-timer slot and the ended history.

Time is injected via `now` parameters (aware datetimes) for deterministic
testing.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from .calculator import DrivingMeasure, compute_driving_minutes, measure_driving
from .clock import parse_iso, to_instant, to_iso
from .errors import InvalidState, ValidationError
from .ledger import BreakInterval, BreakLedger
from .rules import (
    DRIVING_LIMIT_MIN,
    PauseVariant,
    compute_next_break_due,
    is_compliant,
    is_reminder_due,
)

logger = logging.getLogger(__name__)


@dataclass
class DashboardStats:
    """What the dashboard shows for the current shift."""

    timer_id: str | None = None
    driving_minutes: int = 0
    next_break_due: int = DRIVING_LIMIT_MIN
    variant: PauseVariant = PauseVariant.A
    in_break: bool = False
    open_break_minutes: int = 0
    compliant: bool = False
    reminder: bool = False
    clock_skew: bool = False


class DriveTimer:
    """One driving shift and its breaks."""

    def __init__(
        self,
        trip_id: str,
        variant: PauseVariant,
        start_time: datetime,
        timer_id: str | None = None,
    ):
        self._id: str = timer_id or str(uuid.uuid4())
        self._trip_id: str = trip_id
        self._start_time: datetime = to_instant(start_time, "start_time")
        self._end_time: datetime | None = None
        self._variant: PauseVariant = PauseVariant.parse(variant)
        self._ledger = BreakLedger()
        self._driving_minutes_today: int = 0
        self._is_active: bool = True
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        state = "active" if self._is_active else "ended"
        return f"<DriveTimer {self._id[:8]} {self._variant.value} {state} breaks={len(self._ledger)}>"

    # ---- Read-only properties ----

    @property
    def id(self) -> str:
        return self._id

    @property
    def trip_id(self) -> str:
        return self._trip_id

    @property
    def start_time(self) -> datetime:
        return self._start_time

    @property
    def end_time(self) -> datetime | None:
        return self._end_time

    @property
    def variant(self) -> PauseVariant:
        return self._variant

    @property
    def breaks(self) -> tuple[BreakInterval, ...]:
        with self._lock:
            return self._ledger.snapshot()

    @property
    def open_break(self) -> BreakInterval | None:
        with self._lock:
            return self._ledger.open_break

    @property
    def in_break(self) -> bool:
        return self.open_break is not None

    @property
    def driving_minutes_today(self) -> int:
        return self._driving_minutes_today

    @property
    def is_active(self) -> bool:
        return self._is_active

    # ---- Transitions ----

    def start_break(self, now: datetime) -> BreakInterval:
        """Open a new break at `now`."""
        with self._lock:
            self._require_active()
            now = self._require_after_start(now)
            interval = self._ledger.open(now)
        logger.info("Timer %s: break %d started at %s", self._id[:8], len(self._ledger), to_iso(now))
        return interval

    def end_break(self, now: datetime) -> BreakInterval:
        """Close the open break at `now` (minimum 1 minute)."""
        with self._lock:
            self._require_active()
            closed = self._ledger.close(now)
        logger.info("Timer %s: break ended after %d min", self._id[:8], closed.duration_minutes)
        return closed

    def end(self, now: datetime) -> int:
        """End the shift at `now`, force-closing an open break first.

        Returns the frozen net driving minutes.
        """
        with self._lock:
            self._require_active()
            now = self._require_after_start(now)
            pending = self._ledger.open_break
            if pending is not None:
                # Validate before mutating anything.
                pending.closed_at(now)
                closed = self._ledger.close(now)
                logger.info(
                    "Timer %s: open break force-closed after %d min",
                    self._id[:8],
                    closed.duration_minutes,
                )
            self._end_time = now
            self._is_active = False
            self._driving_minutes_today = compute_driving_minutes(self, now)
        logger.info(
            "Timer %s ended at %s: %d min driven",
            self._id[:8],
            to_iso(now),
            self._driving_minutes_today,
        )
        return self._driving_minutes_today

    # ---- Queries ----

    def driving_minutes(self, reference_time: datetime | None = None) -> int:
        with self._lock:
            return compute_driving_minutes(self, reference_time)

    def measure(self, reference_time: datetime | None = None) -> DrivingMeasure:
        """Driving minutes plus whether an open break had to be clamped."""
        with self._lock:
            return measure_driving(self, reference_time)

    def next_break_due(self, reference_time: datetime | None = None) -> int:
        with self._lock:
            return compute_next_break_due(self, compute_driving_minutes(self, reference_time))

    @property
    def compliant(self) -> bool:
        with self._lock:
            return is_compliant(self)

    def reminder_due(self, reference_time: datetime | None = None) -> bool:
        with self._lock:
            return is_reminder_due(self, self.next_break_due(reference_time))

    # ---- Serialization ----

    def to_dict(self) -> dict:
        """Serialize state for persistence (snake_case keys)."""
        with self._lock:
            return {
                "id": self._id,
                "trip_id": self._trip_id,
                "start_time": to_iso(self._start_time),
                "end_time": to_iso(self._end_time) if self._end_time else None,
                "pauses": [b.to_dict() for b in self._ledger],
                "pause_variant": self._variant.value,
                "gefahrene_min_heute": self._driving_minutes_today,
                "is_active": self._is_active,
            }

    @classmethod
    def from_dict(cls, data: dict) -> DriveTimer:
        """Restore a timer from its persisted record, checking its invariants."""
        try:
            timer = cls(
                trip_id=data["trip_id"],
                variant=data["pause_variant"],
                start_time=parse_iso(data["start_time"]),
                timer_id=data["id"],
            )
        except KeyError as exc:
            raise ValidationError(f"Timer record missing field {exc.args[0]!r}") from exc

        timer._ledger = BreakLedger(
            [BreakInterval.from_dict(item) for item in data.get("pauses", [])]
        )
        is_active = bool(data.get("is_active", False))
        end_time = parse_iso(data["end_time"]) if data.get("end_time") else None

        if is_active and end_time is not None:
            raise ValidationError(f"Active timer {timer.id} has an end time")
        if not is_active:
            if end_time is None:
                raise ValidationError(f"Ended timer {timer.id} has no end time")
            if end_time < timer.start_time:
                raise ValidationError(f"Timer {timer.id} ends before it starts")
            if timer._ledger.has_open:
                raise ValidationError(f"Ended timer {timer.id} still has an open break")
        for interval in timer._ledger:
            if interval.start < timer.start_time:
                raise ValidationError(f"Timer {timer.id} has a break before its start")

        timer._end_time = end_time
        timer._is_active = is_active
        timer._driving_minutes_today = int(data.get("gefahrene_min_heute", 0))
        return timer

    # ---- Internal ----

    def _require_active(self) -> None:
        if not self._is_active:
            raise InvalidState(f"Timer {self._id} has already ended")

    def _require_after_start(self, now: datetime) -> datetime:
        now = to_instant(now, "now")
        if now < self._start_time:
            raise ValidationError(
                f"{to_iso(now)} is before the timer start {to_iso(self._start_time)}"
            )
        return now


class DriveSession:
    """Owns the single active-timer slot and the ended timers."""

    def __init__(self):
        self._active: DriveTimer | None = None
        self._history: list[DriveTimer] = []
        self._lock = threading.RLock()

    @classmethod
    def from_timers(cls, timers: Iterable[DriveTimer]) -> DriveSession:
        """Rebuild a session from persisted timers."""
        session = cls()
        for timer in sorted(timers, key=lambda t: t.start_time):
            if timer.is_active:
                if session._active is not None:
                    raise InvalidState(
                        f"More than one active timer: {session._active.id}, {timer.id}"
                    )
                session._active = timer
            else:
                session._history.append(timer)
        return session

    @property
    def active(self) -> DriveTimer | None:
        return self._active

    @property
    def history(self) -> tuple[DriveTimer, ...]:
        with self._lock:
            return tuple(self._history)

    def timers(self) -> list[DriveTimer]:
        """All timers in start order, the active one last."""
        with self._lock:
            result = list(self._history)
            if self._active is not None:
                result.append(self._active)
            return result

    def latest(self) -> DriveTimer | None:
        """The active timer, else the most recently ended one."""
        with self._lock:
            if self._active is not None:
                return self._active
            return self._history[-1] if self._history else None

    # ---- Transitions ----

    def start(self, trip_id: str, variant, now: datetime) -> DriveTimer:
        with self._lock:
            if self._active is not None:
                raise InvalidState(f"Timer {self._active.id} is already running")
            timer = DriveTimer(trip_id=trip_id, variant=PauseVariant.parse(variant), start_time=now)
            self._active = timer
        logger.info("Timer %s started for trip %s, variant %s", timer.id[:8], trip_id, timer.variant.value)
        return timer

    def start_break(self, now: datetime) -> BreakInterval:
        with self._lock:
            return self._require_active().start_break(now)

    def end_break(self, now: datetime) -> BreakInterval:
        with self._lock:
            return self._require_active().end_break(now)

    def end(self, now: datetime) -> DriveTimer:
        with self._lock:
            timer = self._require_active()
            timer.end(now)
            self._history.append(timer)
            self._active = None
            return timer

    # ---- Queries ----

    def dashboard(self, now: datetime) -> DashboardStats:
        with self._lock:
            timer = self._active
            if timer is None:
                return DashboardStats()
            measure = timer.measure(now)
            due = compute_next_break_due(timer, measure.minutes)
            open_break = timer.open_break
            return DashboardStats(
                timer_id=timer.id,
                driving_minutes=measure.minutes,
                next_break_due=due,
                variant=timer.variant,
                in_break=open_break is not None,
                open_break_minutes=open_break.live_minutes(now) if open_break else 0,
                compliant=timer.compliant,
                reminder=is_reminder_due(timer, due),
                clock_skew=measure.clamped,
            )

    def _require_active(self) -> DriveTimer:
        if self._active is None:
            raise InvalidState("No active drive timer")
        return self._active
