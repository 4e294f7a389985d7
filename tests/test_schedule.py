from datetime import date, datetime, timedelta, timezone

import pytest

from app.core.exceptions import ValidationError
from app.bookings.services.schedule import (
    booking_instant,
    ensure_not_in_past,
    is_past,
)


def test_instant_in_utc():
    instant = booking_instant(date(2025, 1, 10), "09:00", "UTC")
    assert instant == datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)


def test_instant_respects_booking_timezone():
    instant = booking_instant(date(2025, 1, 10), "09:00", "Asia/Kolkata")
    assert instant.astimezone(timezone.utc) == datetime(
        2025, 1, 10, 3, 30, tzinfo=timezone.utc
    )


def test_malformed_time_raises_value_error():
    with pytest.raises(ValueError):
        booking_instant(date(2025, 1, 10), "25:99", "UTC")


def test_is_past_boundaries():
    now = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)
    assert is_past(date(2025, 1, 10), "08:59", now, "UTC")
    assert not is_past(date(2025, 1, 10), "09:00", now, "UTC")
    assert not is_past(date(2025, 1, 10), "09:01", now, "UTC")


def test_past_booking_is_refused():
    now = datetime.now(timezone.utc)
    yesterday = (now - timedelta(days=1)).date().isoformat()

    with pytest.raises(ValidationError) as exc:
        ensure_not_in_past(yesterday, "10:00", now)
    assert exc.value.message == "Past booking not allowed"


def test_future_booking_passes():
    ensure_not_in_past("2099-01-01", "10:00")


def test_malformed_input_is_left_to_creation():
    ensure_not_in_past("not-a-date", "10:00")
    ensure_not_in_past("2000-01-01", "24:00")
