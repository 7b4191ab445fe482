"""Break ledger: the ordered rest periods of one driving timer.

Breaks are kept in the order they were started. The rule validator depends
on that position (first vs. second break), so the ledger never re-sorts.
At most one break is open (no end) at any time, and it is always the last.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator

from .clock import elapsed_minutes, parse_iso, to_instant, to_iso
from .errors import InvalidState, ValidationError

# Closed breaks never record less than this, so a tap-tap on the pause
# button cannot produce a zero-length fragment.
MIN_BREAK_MINUTES = 1


@dataclass(frozen=True)
class BreakInterval:
    start: datetime
    end: datetime | None = None
    duration_minutes: int = 0

    @property
    def is_open(self) -> bool:
        return self.end is None

    def live_minutes(self, reference: datetime) -> int:
        """Stored duration when closed; elapsed minutes (>= 0) while open."""
        if not self.is_open:
            return self.duration_minutes
        return max(0, elapsed_minutes(self.start, reference))

    def closed_at(self, now: datetime) -> BreakInterval:
        """Return the closed copy of this break, ended at `now`."""
        if not self.is_open:
            raise InvalidState("Break is already closed")
        now = to_instant(now, "now")
        if now < self.start:
            raise ValidationError(
                f"Break cannot end at {to_iso(now)} before it started at {to_iso(self.start)}"
            )
        duration = max(MIN_BREAK_MINUTES, elapsed_minutes(self.start, now))
        return dataclasses.replace(self, end=now, duration_minutes=duration)

    def to_dict(self) -> dict:
        data = {"start": to_iso(self.start), "duration_minutes": self.duration_minutes}
        if self.end is not None:
            data["end"] = to_iso(self.end)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> BreakInterval:
        try:
            start = parse_iso(data["start"])
        except KeyError as exc:
            raise ValidationError("Break record has no start") from exc
        end = parse_iso(data["end"]) if data.get("end") else None
        duration = int(data.get("duration_minutes", 0))
        if end is None:
            duration = 0
        elif end < start:
            raise ValidationError(f"Break ends before it starts: {data!r}")
        elif duration < MIN_BREAK_MINUTES:
            raise ValidationError(f"Closed break shorter than {MIN_BREAK_MINUTES} minute: {data!r}")
        return cls(start=start, end=end, duration_minutes=duration)


class BreakLedger:
    """Ordered sequence of breaks owned by a single timer.

    Not synchronized on its own; the owning DriveTimer serializes access.
    """

    def __init__(self, breaks: list[BreakInterval] | None = None):
        self._breaks: list[BreakInterval] = []
        for interval in breaks or []:
            self._append_restored(interval)

    def __iter__(self) -> Iterator[BreakInterval]:
        return iter(tuple(self._breaks))

    def __len__(self) -> int:
        return len(self._breaks)

    def snapshot(self) -> tuple[BreakInterval, ...]:
        return tuple(self._breaks)

    @property
    def open_break(self) -> BreakInterval | None:
        if self._breaks and self._breaks[-1].is_open:
            return self._breaks[-1]
        return None

    @property
    def has_open(self) -> bool:
        return self.open_break is not None

    def closed(self) -> list[BreakInterval]:
        return [b for b in self._breaks if not b.is_open]

    def closed_minutes(self) -> int:
        return sum(b.duration_minutes for b in self._breaks if not b.is_open)

    def open(self, now: datetime) -> BreakInterval:
        """Append a new open break starting at `now`."""
        now = to_instant(now, "now")
        if self.has_open:
            raise InvalidState("A break is already in progress")
        if self._breaks and now < self._breaks[-1].end:
            raise ValidationError(
                f"Break cannot start at {to_iso(now)} before the previous one ended"
            )
        interval = BreakInterval(start=now)
        self._breaks.append(interval)
        return interval

    def close(self, now: datetime) -> BreakInterval:
        """Close the open break at `now` and return the closed record."""
        current = self.open_break
        if current is None:
            raise InvalidState("No break in progress")
        closed = current.closed_at(now)
        self._breaks[-1] = closed
        return closed

    def _append_restored(self, interval: BreakInterval) -> None:
        if self.has_open:
            raise ValidationError("Only the last break of a timer may be open")
        if self._breaks and interval.start < self._breaks[-1].start:
            raise ValidationError("Breaks must be stored in start order")
        self._breaks.append(interval)
