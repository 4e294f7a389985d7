import re
from datetime import date, datetime
from typing import Optional

from app.core.exceptions import ValidationError

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def is_valid_time(value: Optional[str]) -> bool:
    """24-часовой формат HH:MM (ведущий ноль у часов необязателен)"""
    return bool(value) and TIME_PATTERN.fullmatch(value) is not None


def clean_time(value: str) -> str:
    """
    Проверяет строку времени бронирования.
    Возвращает время в виде HH:MM с ведущим нулем ("9:05" -> "09:05").
    """
    if not is_valid_time(value):
        raise ValidationError(
            "Invalid time format",
            {
                "fields": {
                    "time": "Time must be in HH:MM format (24-hour), e.g., 14:30 or 09:15"
                }
            },
        )
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


def parse_booking_date(value) -> date:
    """
    Приводит дату бронирования к календарному дню.
    Принимает date, datetime или ISO-8601 строку (время отбрасывается).
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    if isinstance(value, str) and value.strip():
        raw = value.strip()
        try:
            return date.fromisoformat(raw[:10])
        except ValueError:
            pass

    raise ValidationError(
        "Invalid date format",
        {"fields": {"date": "Please provide a valid date in YYYY-MM-DD format"}},
    )


def clean_place(value: Optional[str], field: str) -> str:
    """Название места: обязательное, без пробелов по краям"""
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(
            "Missing required fields", {"fields": {field: f"{field} is required"}}
        )
    return cleaned


def ensure_distinct_route(from_place: str, destination: str) -> None:
    """Точки отправления и назначения должны различаться"""
    if from_place == destination:
        raise ValidationError(
            "Invalid booking",
            {
                "fields": {
                    "destination": "From and To locations cannot be the same. "
                    "Please select different locations."
                }
            },
        )
