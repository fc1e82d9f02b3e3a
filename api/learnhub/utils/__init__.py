"""Small helpers shared across domain modules."""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def round_half_up(value: float | Decimal) -> int:
    """Round to the nearest integer, halves away from zero.

    ``round()`` uses banker's rounding (``round(22.5) == 22``); a student who
    completed 3 of 8 lessons must get 23 of the 60 lesson points.
    """
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


__all__ = ["ensure_utc_aware", "round_half_up", "utc_now"]
