"""Centralized Timezone Utilities - All datetime operations should use these functions."""

from datetime import datetime, timezone

UTC = timezone.utc


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def utc_now_ms() -> datetime:
    """
    Return UTC now truncated to milliseconds.

    BSON datetimes carry millisecond precision; truncating before insert
    keeps the value returned to callers identical to what a later read sees.
    """
    now = utc_now()
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from the driver."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt
