from app.core.database import Base
from .bookings import (
    Booking,
    BookingAction,
    BookingStatus,
    RejectionType,
    HistoryAction,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
)

__all__ = [
    "Base",
    "Booking",
    "BookingAction",
    "BookingStatus",
    "RejectionType",
    "HistoryAction",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
]
