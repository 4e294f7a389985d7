from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import (
    get_current_active_user,
    require_staff,
    require_student,
)
from app.core.limits import limiter
from app.bookings.schemas.bookings import (
    BookingCreate,
    BookingRead,
    BookingStatusUpdate,
)
from app.bookings.services import booking_service
from app.bookings.services.schedule import ensure_not_in_past
from app.locations.schemas.locations import LocationBrief
from app.users.models.users import User

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("/locations/list", response_model=List[LocationBrief])
@limiter.limit("60/minute")
async def get_locations(request: Request, db: AsyncSession = Depends(get_session)):
    """Public list of pickup and drop-off locations."""
    return await booking_service.list_locations(db)


@router.get("", response_model=List[BookingRead])
@limiter.limit("60/minute")
async def get_bookings(
    request: Request,
    on_date: Optional[date] = Query(None, alias="date", description="Only this day"),
    staff: User = Depends(require_staff),
    db: AsyncSession = Depends(get_session),
):
    """
    Bookings in schedule order.

    Admins see all bookings, watchmen do not see rejected ones.
    """
    return await booking_service.list_for_role(db, staff.role, on_date)


@router.get("/my-bookings", response_model=List[BookingRead])
@limiter.limit("60/minute")
async def get_my_bookings(
    request: Request,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_session),
):
    return await booking_service.list_mine(db, current_user.id)


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_booking(
    request: Request,
    data: BookingCreate,
    student: User = Depends(require_student),
    db: AsyncSession = Depends(get_session),
):
    """
    Request a ride.

    The slot (date, time, from, to) must not be held by another pending,
    approved or in-progress booking, and must not be in the past.
    """
    ensure_not_in_past(data.date, data.time)
    return await booking_service.create_booking(db, data, student)


@router.put("/{booking_id}/status", response_model=BookingRead)
@limiter.limit("60/minute")
async def update_booking_status(
    request: Request,
    booking_id: int,
    data: BookingStatusUpdate,
    staff: User = Depends(require_staff),
    db: AsyncSession = Depends(get_session),
):
    return await booking_service.change_status(
        db,
        booking_id,
        data.status,
        staff,
        reason=data.rejection_reason,
        rejection_type=data.rejection_type,
    )
