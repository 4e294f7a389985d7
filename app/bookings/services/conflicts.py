"""Проверка занятости маршрута на дату и время"""
from dataclasses import dataclass
from datetime import date
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import SlotConflictError
from app.bookings.crud.bookings import find_active_booking_in_slot


@dataclass(frozen=True)
class SlotAvailability:
    available: bool
    conflicting_id: Optional[int] = None


async def check_conflict(
    session: AsyncSession,
    booking_date: date,
    booking_time: str,
    from_place: str,
    destination: str,
    exclude_id: Optional[int] = None,
) -> SlotAvailability:
    """
    Слот занят, если на ту же дату, время и маршрут (откуда, куда)
    есть незавершенное бронирование. Отклоненные и завершенные слот
    не занимают. Обратный маршрут считается другим.
    """
    existing = await find_active_booking_in_slot(
        session, booking_date, booking_time, from_place, destination, exclude_id
    )
    if existing is None:
        return SlotAvailability(available=True)
    return SlotAvailability(available=False, conflicting_id=existing.id)


async def ensure_slot_available(
    session: AsyncSession,
    booking_date: date,
    booking_time: str,
    from_place: str,
    destination: str,
    exclude_id: Optional[int] = None,
) -> None:
    availability = await check_conflict(
        session, booking_date, booking_time, from_place, destination, exclude_id
    )
    if not availability.available:
        raise SlotConflictError(
            booking_date.isoformat(), booking_time, from_place, destination
        )
