"""EU break rules for a single shift.

Two patterns are recognised and chosen when the timer starts:

* Variant A: one break of at least 45 minutes.
* Variant B: a split break, first >= 15 minutes and then >= 30 minutes, in
  that order.

Driving may last 4h30 before the break is due. Variant B expects its first
part after 3h15; once any break has closed only the 4h30 cap applies.
"""

from __future__ import annotations

from enum import Enum

from .errors import ValidationError


class PauseVariant(str, Enum):
    A = "A"
    B = "B"

    @classmethod
    def parse(cls, value) -> PauseVariant:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError as exc:
            raise ValidationError(f"Unknown pause variant: {value!r} (expected A or B)") from exc


SINGLE_BREAK_MIN = 45
SPLIT_FIRST_MIN = 15
SPLIT_SECOND_MIN = 30

DRIVING_LIMIT_MIN = 270         # 4h30
SPLIT_FIRST_DUE_MIN = 195       # 3h15
REMINDER_WINDOW_MIN = 15

DAILY_LIMIT_MIN = 540           # 9h
WEEKLY_LIMIT_MIN = 3360         # 56h

VARIANT_LABELS: dict[PauseVariant, str] = {
    PauseVariant.A: "A (45 min)",
    PauseVariant.B: "B (15+30 min)",
}


def describe_variant(variant) -> str:
    return VARIANT_LABELS[PauseVariant.parse(variant)]


def _closed_breaks(timer) -> list:
    return [b for b in timer.breaks if not b.is_open]


def is_compliant(timer) -> bool:
    """Do the closed breaks, in recorded order, satisfy the timer's variant?"""
    closed = _closed_breaks(timer)
    if timer.variant == PauseVariant.A:
        return any(b.duration_minutes >= SINGLE_BREAK_MIN for b in closed)

    if len(closed) < 2:
        return False
    first, second = closed[0], closed[1]
    return first.duration_minutes >= SPLIT_FIRST_MIN and second.duration_minutes >= SPLIT_SECOND_MIN


def compute_next_break_due(timer, driving_minutes: int) -> int:
    """Minutes of driving left before the applicable break threshold."""
    if driving_minutes < 0:
        raise ValidationError(f"Driving minutes cannot be negative: {driving_minutes}")

    if timer.variant == PauseVariant.B and not _closed_breaks(timer):
        return max(0, SPLIT_FIRST_DUE_MIN - driving_minutes)
    return max(0, DRIVING_LIMIT_MIN - driving_minutes)


def is_reminder_due(timer, next_break_due: int) -> bool:
    """True inside the warning window before a break is due, unless already resting."""
    if any(b.is_open for b in timer.breaks):
        return False
    return 0 < next_break_due <= REMINDER_WINDOW_MIN
