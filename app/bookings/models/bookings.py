"""Vehicle Booking Model - a ride request for one route at one time slot"""
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Date,
    DateTime,
    ForeignKey,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from app.core.database import Base


class BookingStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    in_progress = "in-progress"
    completed = "completed"
    rejected = "rejected"


class RejectionType(str, Enum):
    manual = "manual"
    timeout = "timeout"


class HistoryAction(str, Enum):
    created = "created"
    approved = "approved"
    dispatched = "dispatched"
    completed = "completed"
    rejected = "rejected"
    edited = "edited"


# Statuses that occupy a slot
ACTIVE_STATUSES = (
    BookingStatus.pending,
    BookingStatus.approved,
    BookingStatus.in_progress,
)
TERMINAL_STATUSES = frozenset({BookingStatus.completed, BookingStatus.rejected})

_ACTIVE_SLOT_PREDICATE = text("status IN ('pending', 'approved', 'in-progress')")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    # Owner, never reassigned
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    # Slot: calendar day + "HH:MM" + route
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)
    from_place = Column(String(100), nullable=False)
    destination = Column(String(100), nullable=False)

    status = Column(
        String(20), default=BookingStatus.pending.value, nullable=False, index=True
    )

    rejection_reason = Column(Text, nullable=True)
    rejection_type = Column(String(10), nullable=True)

    # Each stamped once by its transition
    approved_by_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    approval_time = Column(DateTime(timezone=True), nullable=True)
    dispatch_time = Column(DateTime(timezone=True), nullable=True)
    completion_time = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
    approved_by = relationship("User", foreign_keys=[approved_by_id])
    action_history = relationship(
        "BookingAction",
        back_populates="booking",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: BookingAction.id,
    )

    __table_args__ = (
        # One non-terminal booking per slot
        Index(
            "uq_bookings_active_slot",
            "date",
            "time",
            "from_place",
            "destination",
            unique=True,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
        ),
        Index("ix_bookings_status_date", "status", "date"),
        Index("ix_bookings_user_date", "user_id", "date"),
    )

    def __repr__(self):
        return (
            f"<Booking(id={self.id}, user_id={self.user_id}, date={self.date}, "
            f"time={self.time}, route={self.from_place}->{self.destination}, "
            f"status={self.status})>"
        )


class BookingAction(Base):
    """Append-only history entry of a booking"""
    __tablename__ = "booking_actions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(
        Integer,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    action = Column(String(20), nullable=False)
    # NULL for the system actor
    performed_by_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    performed_by_role = Column(String(20), nullable=False)
    performed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    details = Column(Text, nullable=True)

    booking = relationship("Booking", back_populates="action_history")
    performed_by = relationship("User", foreign_keys=[performed_by_id])

    def __repr__(self):
        return f"<BookingAction(booking_id={self.booking_id}, action={self.action}, at={self.performed_at})>"
