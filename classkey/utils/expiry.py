"""Expiry computation and evaluation under clock skew."""

from datetime import datetime, timedelta, timezone

DEFAULT_TOLERANCE = timedelta(minutes=5)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compute_expiry(issued_at: datetime, lead: timedelta | None) -> datetime | None:
    """Return ``issued_at + lead``, or None when the code never expires."""
    if lead is None:
        return None
    if lead <= timedelta(0):
        raise ValueError("Expiry lead duration must be positive")
    return ensure_utc(issued_at) + lead


def is_expired(
    now: datetime,
    expires_at: datetime | None,
    tolerance: timedelta = DEFAULT_TOLERANCE,
) -> bool:
    """Check whether a code is past its expiry.

    The issuing and redeeming sides may run on different clocks, so a code
    stays usable for ``tolerance`` past its nominal boundary and is rejected
    once ``now`` is beyond ``expires_at + tolerance``.
    """
    if expires_at is None:
        return False
    return ensure_utc(now) - tolerance > ensure_utc(expires_at)
