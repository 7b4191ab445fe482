"""Time helpers: pure functions, no state.

Every timestamp passed through the engine is a timezone-aware datetime.
The caller supplies "now"; nothing in here reads the wall clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from .errors import ValidationError

MINUTE = timedelta(minutes=1)
SECOND = timedelta(seconds=1)


def require_aware(dt: datetime, name: str = "timestamp") -> datetime:
    """Reject naive datetimes; they cannot be compared safely."""
    if not isinstance(dt, datetime):
        raise ValidationError(f"{name} must be a datetime, got {type(dt).__name__}")
    if dt.tzinfo is None or dt.utcoffset() is None:
        raise ValidationError(f"{name} must be timezone-aware: {dt.isoformat()}")
    return dt


def truncate_ms(dt: datetime) -> datetime:
    """Drop sub-millisecond precision; stored and exported timestamps carry milliseconds."""
    return dt.replace(microsecond=dt.microsecond - dt.microsecond % 1000)


def to_instant(dt: datetime, name: str = "timestamp") -> datetime:
    """Validate an incoming instant and truncate it to stored precision."""
    return truncate_ms(require_aware(dt, name))


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, floored. Negative if end < start."""
    return (end - start) // MINUTE


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds from start to end, floored."""
    return (end - start) // SECOND


def to_iso(dt: datetime) -> str:
    """UTC ISO-8601 with millisecond precision, e.g. 2026-10-19T08:00:00.000Z."""
    utc = require_aware(dt).astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def parse_iso(text: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    value = text.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid timestamp: {text!r}") from exc
    if parsed.tzinfo is None:
        raise ValidationError(f"Timestamp has no UTC offset: {text!r}")
    return parsed.astimezone(timezone.utc)


def format_minutes(minutes: int) -> str:
    """Format minutes as 'Xh YYm'."""
    hours, mins = divmod(max(0, minutes), 60)
    return f"{hours}h {mins:02d}m"


def format_seconds(total_seconds: int) -> str:
    """Format seconds as 'Xh YYm ZZs'."""
    total_seconds = max(0, total_seconds)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours}h {minutes:02d}m {seconds:02d}s"
