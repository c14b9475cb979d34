from datetime import datetime, timedelta, timezone

import pytest

from classkey.utils.expiry import DEFAULT_TOLERANCE, compute_expiry, ensure_utc, is_expired

ISSUED = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def test_compute_expiry_adds_lead():
    assert compute_expiry(ISSUED, timedelta(days=7)) == datetime(2026, 3, 9, 9, 0, tzinfo=timezone.utc)


def test_compute_expiry_without_lead_never_expires():
    assert compute_expiry(ISSUED, None) is None


def test_compute_expiry_rejects_non_positive_lead():
    with pytest.raises(ValueError):
        compute_expiry(ISSUED, timedelta(0))


def test_code_without_expiry_is_never_expired():
    assert not is_expired(ISSUED + timedelta(days=3650), None)


def test_grace_window_around_expiry():
    expires_at = compute_expiry(ISSUED, timedelta(days=7))

    assert not is_expired(expires_at - timedelta(minutes=1), expires_at)
    assert not is_expired(expires_at + timedelta(minutes=4), expires_at)
    assert not is_expired(expires_at + DEFAULT_TOLERANCE, expires_at)
    assert is_expired(expires_at + timedelta(minutes=6), expires_at)


def test_zero_tolerance_expires_right_after_boundary():
    expires_at = ISSUED + timedelta(hours=1)
    assert not is_expired(expires_at, expires_at, timedelta(0))
    assert is_expired(expires_at + timedelta(seconds=1), expires_at, timedelta(0))


def test_naive_datetimes_are_treated_as_utc():
    naive = datetime(2026, 3, 2, 9, 0)
    assert ensure_utc(naive) == ISSUED
    assert not is_expired(ISSUED, naive)
