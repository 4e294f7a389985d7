from typing import List
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.dependencies import require_student
from app.core.limits import limiter
from app.bookings.schemas.bookings import BookingCreate, BookingRead
from app.bookings.services import booking_service
from app.bookings.services.schedule import ensure_not_in_past
from app.users.models.users import User

router = APIRouter(prefix="/student", tags=["Student Bookings"])


@router.get("/bookings", response_model=List[BookingRead])
@limiter.limit("60/minute")
async def get_student_bookings(
    request: Request,
    student: User = Depends(require_student),
    db: AsyncSession = Depends(get_session),
):
    return await booking_service.list_mine(db, student.id)


@router.post(
    "/bookings", response_model=BookingRead, status_code=status.HTTP_201_CREATED
)
@limiter.limit("20/minute")
async def create_student_booking(
    request: Request,
    data: BookingCreate,
    student: User = Depends(require_student),
    db: AsyncSession = Depends(get_session),
):
    ensure_not_in_past(data.date, data.time)
    return await booking_service.create_booking(db, data, student)
