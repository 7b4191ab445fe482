"""Net driving time of a timer, derived on demand.

Nothing is cached: each call reflects the reference time it is given, so a
display can re-sample once per second without touching stored state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from .clock import elapsed_minutes, require_aware, to_iso
from .errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrivingMeasure:
    """Net driving minutes at a reference time.

    `clamped` is set when the reference precedes the open break's start and
    that break was counted as 0 minutes instead of a negative span.
    """

    minutes: int
    clamped: bool = False


def resolve_reference(timer, reference_time: datetime | None) -> datetime:
    """Pick the reference time: explicit value, else the timer's end time."""
    if reference_time is not None:
        return require_aware(reference_time, "reference_time")
    if timer.end_time is None:
        raise ValidationError("An active timer needs an explicit reference time")
    return timer.end_time


def measure_driving(timer, reference_time: datetime | None = None) -> DrivingMeasure:
    """Minutes driven from timer start to the reference time, net of breaks.

    Closed breaks count with their recorded duration; an open break counts
    with its elapsed minutes up to the reference time.
    """
    reference = resolve_reference(timer, reference_time)
    if reference < timer.start_time:
        raise ValidationError(
            f"Reference time {to_iso(reference)} precedes timer start {to_iso(timer.start_time)}"
        )

    total_minutes = elapsed_minutes(timer.start_time, reference)
    break_minutes = 0
    clamped = False
    for interval in timer.breaks:
        if not interval.is_open:
            break_minutes += interval.duration_minutes
            continue
        live = elapsed_minutes(interval.start, reference)
        if live < 0:
            logger.warning(
                "Reference %s precedes open break start %s; counting it as 0 minutes",
                to_iso(reference),
                to_iso(interval.start),
            )
            live = 0
            clamped = True
        break_minutes += live

    return DrivingMeasure(minutes=max(0, total_minutes - break_minutes), clamped=clamped)


def compute_driving_minutes(timer, reference_time: datetime | None = None) -> int:
    """Net driving minutes only; see `measure_driving` for the clamp flag."""
    return measure_driving(timer, reference_time).minutes
