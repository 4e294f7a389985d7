from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import require_watchman
from app.core.limits import limiter
from app.bookings.schemas.bookings import BookingRead, BookingStatusUpdate
from app.bookings.services import booking_service
from app.users.models.users import User

router = APIRouter(prefix="/watchman", tags=["Watchman Bookings"])


@router.get("/bookings", response_model=List[BookingRead])
@limiter.limit("60/minute")
async def get_watchman_bookings(
    request: Request,
    on_date: Optional[date] = Query(None, alias="date"),
    watchman: User = Depends(require_watchman),
    db: AsyncSession = Depends(get_session),
):
    """Gate view: every booking except rejected ones."""
    return await booking_service.list_for_role(db, watchman.role, on_date)


@router.put("/bookings/{booking_id}/status", response_model=BookingRead)
@limiter.limit("60/minute")
async def update_watchman_booking_status(
    request: Request,
    booking_id: int,
    data: BookingStatusUpdate,
    watchman: User = Depends(require_watchman),
    db: AsyncSession = Depends(get_session),
):
    return await booking_service.change_status(
        db,
        booking_id,
        data.status,
        watchman,
        reason=data.rejection_reason,
        rejection_type=data.rejection_type,
    )
