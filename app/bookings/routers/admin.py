from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import require_admin
from app.core.limits import limiter
from app.bookings.models.bookings import BookingStatus
from app.bookings.schemas.bookings import (
    BookingEdit,
    BookingFilters,
    BookingListResponse,
    BookingRead,
    RejectRequest,
)
from app.bookings.services import booking_service
from app.users.models.users import User

router = APIRouter(prefix="/admin/bookings", tags=["Admin Bookings"])


@router.get("/filter", response_model=BookingListResponse)
@limiter.limit("30/minute")
async def filter_bookings(
    request: Request,
    user_id: Optional[int] = Query(None, alias="userId"),
    watchman_id: Optional[int] = Query(None, alias="watchmanId"),
    booking_status: Optional[str] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Bookings by student, assigned watchman, status and date range."""
    bookings = await booking_service.filter_bookings(
        db,
        admin,
        BookingFilters(
            user_id=user_id,
            watchman_id=watchman_id,
            status=booking_status,
            start_date=start_date,
            end_date=end_date,
        ),
    )
    return BookingListResponse(bookings=bookings, total=len(bookings))


@router.put("/{booking_id}/approve", response_model=BookingRead)
@limiter.limit("60/minute")
async def approve_booking(
    request: Request,
    booking_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return await booking_service.change_status(
        db, booking_id, BookingStatus.approved, admin
    )


@router.put("/{booking_id}/dispatch", response_model=BookingRead)
@limiter.limit("60/minute")
async def dispatch_booking(
    request: Request,
    booking_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return await booking_service.change_status(
        db, booking_id, BookingStatus.in_progress, admin
    )


@router.put("/{booking_id}/complete", response_model=BookingRead)
@limiter.limit("60/minute")
async def complete_booking(
    request: Request,
    booking_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return await booking_service.change_status(
        db, booking_id, BookingStatus.completed, admin
    )


@router.put("/{booking_id}/reject", response_model=BookingRead)
@limiter.limit("60/minute")
async def reject_booking(
    request: Request,
    booking_id: int,
    data: Optional[RejectRequest] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    return await booking_service.change_status(
        db,
        booking_id,
        BookingStatus.rejected,
        admin,
        reason=data.rejection_reason if data else None,
    )


@router.put("/{booking_id}/edit", response_model=BookingRead)
@limiter.limit("30/minute")
async def edit_booking(
    request: Request,
    booking_id: int,
    data: BookingEdit,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Change date, time, route or assigned watchman of an active booking."""
    return await booking_service.edit_booking(db, booking_id, data, admin)


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
async def delete_booking(
    request: Request,
    booking_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    await booking_service.delete_booking(db, booking_id, admin)
