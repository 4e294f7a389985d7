"""Перевод слота бронирования (дата + HH:MM) в абсолютный момент времени"""
from datetime import date, datetime, time, tzinfo
from typing import Optional, Union
from zoneinfo import ZoneInfo

from app.core.config import BOOKING_TIMEZONE
from app.core.exceptions import ValidationError
from app.core.validations import is_valid_time, parse_booking_date
from app.bookings.models.bookings import utcnow


def resolve_timezone(tz: Union[str, tzinfo, None] = None) -> tzinfo:
    """Зона, в которой заданы дата и время бронирований"""
    if tz is None:
        tz = BOOKING_TIMEZONE
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def booking_instant(
    booking_date: date, booking_time: str, tz: Union[str, tzinfo, None] = None
) -> datetime:
    """
    Момент начала бронирования.

    Единственное место, где дата и время слота превращаются в datetime;
    его используют и проверка "в прошлом", и автоотклонение по таймауту.

    Raises:
        ValueError: если время не в формате HH:MM
    """
    if not is_valid_time(booking_time):
        raise ValueError(f"Malformed booking time: {booking_time!r}")

    hours, minutes = booking_time.split(":")
    return datetime.combine(
        booking_date,
        time(int(hours), int(minutes)),
        tzinfo=resolve_timezone(tz),
    )


def is_past(
    booking_date: date,
    booking_time: str,
    now: Optional[datetime] = None,
    tz: Union[str, tzinfo, None] = None,
) -> bool:
    """Начало слота строго раньше текущего момента"""
    now = now or utcnow()
    return booking_instant(booking_date, booking_time, tz) < now


def ensure_not_in_past(
    date_value, time_value: Optional[str], now: Optional[datetime] = None
) -> None:
    """
    Запрещает бронировать уже прошедшее время.

    Некорректные дату или время пропускает: их отклонит создание бронирования
    с подробным описанием поля.
    """
    if not is_valid_time(time_value):
        return
    try:
        booking_date = parse_booking_date(date_value)
    except ValidationError:
        return

    if is_past(booking_date, time_value, now):
        raise ValidationError(
            "Past booking not allowed",
            {"fields": {"time": "Please select a future date and time"}},
        )
