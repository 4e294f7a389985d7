"""Booking store - persistence of bookings and their history"""
from datetime import date
from typing import Iterable, List, Optional
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database import db_operation
from app.core.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    SlotConflictError,
)
from app.core.logging_utils import log_business_event
from app.audit.crud.audit_logs import record_audit
from app.audit.models.audit_logs import AuditAction
from app.bookings.models.bookings import (
    ACTIVE_STATUSES,
    Booking,
    BookingAction,
    BookingStatus,
    HistoryAction,
)
from app.bookings.schemas.bookings import BookingFilters

AUDIT_ACTIONS = {
    HistoryAction.created: AuditAction.booking_created,
    HistoryAction.approved: AuditAction.booking_approved,
    HistoryAction.dispatched: AuditAction.booking_dispatched,
    HistoryAction.completed: AuditAction.booking_completed,
    HistoryAction.rejected: AuditAction.booking_rejected,
    HistoryAction.edited: AuditAction.booking_updated,
}

SLOT_INDEX_NAME = "uq_bookings_active_slot"


def _booking_query():
    return select(Booking).options(
        selectinload(Booking.user),
        selectinload(Booking.approved_by),
        selectinload(Booking.action_history).selectinload(BookingAction.performed_by),
    )


def _is_slot_violation(error: IntegrityError) -> bool:
    message = str(error.orig)
    # sqlite не сообщает имя индекса, только колонки
    return SLOT_INDEX_NAME in message or "bookings.date, bookings.time" in message


def _active_status_values() -> List[str]:
    return [status.value for status in ACTIVE_STATUSES]


@db_operation
async def get_booking(session: AsyncSession, booking_id: int) -> Booking:
    """Booking with owner, approver and history loaded"""
    result = await session.execute(
        _booking_query()
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking", str(booking_id))
    return booking


async def _get_status(session: AsyncSession, booking_id: int) -> Optional[str]:
    result = await session.execute(
        select(Booking.status).where(Booking.id == booking_id)
    )
    return result.scalar_one_or_none()


@db_operation
async def find_active_booking_in_slot(
    session: AsyncSession,
    booking_date: date,
    booking_time: str,
    from_place: str,
    destination: str,
    exclude_id: Optional[int] = None,
) -> Optional[Booking]:
    conditions = [
        Booking.date == booking_date,
        Booking.time == booking_time,
        Booking.from_place == from_place,
        Booking.destination == destination,
        Booking.status.in_(_active_status_values()),
    ]
    if exclude_id is not None:
        conditions.append(Booking.id != exclude_id)

    result = await session.execute(select(Booking).where(*conditions).limit(1))
    return result.scalar_one_or_none()


@db_operation
async def insert_booking(session: AsyncSession, plan) -> Booking:
    """
    Insert a new booking with its "created" history entry.

    The partial unique index on the slot rejects a concurrent insert
    that passed the conflict check at the same time.
    """
    fields = plan.fields
    booking = Booking(**fields)
    session.add(booking)

    try:
        await session.flush()
    except IntegrityError as e:
        await session.rollback()
        if _is_slot_violation(e):
            raise SlotConflictError(
                fields["date"].isoformat(),
                fields["time"],
                fields["from_place"],
                fields["destination"],
            )
        raise

    session.add(BookingAction(booking_id=booking.id, **plan.history.as_row()))
    record_audit(
        session,
        AuditAction.booking_created,
        user_id=booking.user_id,
        performed_by_id=plan.history.performed_by_id,
        role=plan.history.performed_by_role,
        details=f"Booking #{booking.id}: {plan.history.details}",
    )
    await session.commit()

    log_business_event(
        "booking_created",
        "booking",
        booking.id,
        {
            "user_id": booking.user_id,
            "date": booking.date.isoformat(),
            "time": booking.time,
            "route": f"{booking.from_place} -> {booking.destination}",
        },
    )
    return await get_booking(session, booking.id)


@db_operation
async def apply_change(session: AsyncSession, plan) -> Booking:
    """
    Apply a transition or edit plan atomically.

    The UPDATE only matches while the booking still has the status the plan
    was built from; otherwise nothing is written and InvalidTransitionError
    reports the current status.
    """
    values = dict(plan.updates)
    values["updated_at"] = plan.history.performed_at

    try:
        result = await session.execute(
            update(Booking)
            .where(
                Booking.id == plan.booking_id,
                Booking.status == plan.expected_status.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
    except IntegrityError as e:
        await session.rollback()
        if plan.slot_changed and _is_slot_violation(e):
            slot_date, slot_time, from_place, destination = plan.slot
            raise SlotConflictError(
                slot_date.isoformat(), slot_time, from_place, destination
            )
        raise

    if result.rowcount != 1:
        await session.rollback()
        current = await _get_status(session, plan.booking_id)
        if current is None:
            raise NotFoundError("Booking", str(plan.booking_id))
        requested = plan.updates.get("status", plan.history.action.value)
        raise InvalidTransitionError(current, requested, plan.booking_id)

    session.add(BookingAction(booking_id=plan.booking_id, **plan.history.as_row()))
    booking_owner = await session.execute(
        select(Booking.user_id).where(Booking.id == plan.booking_id)
    )
    record_audit(
        session,
        AUDIT_ACTIONS[plan.history.action],
        user_id=booking_owner.scalar_one(),
        performed_by_id=plan.history.performed_by_id,
        role=plan.history.performed_by_role,
        details=f"Booking #{plan.booking_id}: {plan.history.details}",
        reason=plan.updates.get("rejection_reason"),
    )
    await session.commit()

    log_business_event(
        f"booking_{plan.history.action.value}",
        "booking",
        plan.booking_id,
        {
            "from_status": plan.expected_status.value,
            "to_status": plan.target_status.value,
            "performed_by": plan.history.performed_by_id,
            "role": plan.history.performed_by_role,
        },
    )
    return await get_booking(session, plan.booking_id)


@db_operation
async def get_bookings_for_user(session: AsyncSession, user_id: int) -> List[Booking]:
    """Own bookings, newest date first"""
    result = await session.execute(
        _booking_query()
        .where(Booking.user_id == user_id)
        .order_by(Booking.date.desc(), Booking.created_at.desc(), Booking.id.desc())
    )
    return list(result.scalars().all())


@db_operation
async def get_bookings(
    session: AsyncSession,
    statuses: Optional[Iterable[BookingStatus]] = None,
    on_date: Optional[date] = None,
) -> List[Booking]:
    """Bookings in schedule order: date, then time, newest request first"""
    conditions = []
    if statuses is not None:
        conditions.append(Booking.status.in_([s.value for s in statuses]))
    if on_date is not None:
        conditions.append(Booking.date == on_date)

    result = await session.execute(
        _booking_query()
        .where(*conditions)
        .order_by(Booking.date.asc(), Booking.time.asc(), Booking.created_at.desc())
    )
    return list(result.scalars().all())


@db_operation
async def get_pending_bookings(session: AsyncSession) -> List[Booking]:
    result = await session.execute(
        select(Booking)
        .where(Booking.status == BookingStatus.pending.value)
        .order_by(Booking.date.asc(), Booking.time.asc(), Booking.id.asc())
    )
    return list(result.scalars().all())


@db_operation
async def filter_bookings(
    session: AsyncSession, filters: BookingFilters
) -> List[Booking]:
    conditions = []
    if filters.user_id:
        conditions.append(Booking.user_id == filters.user_id)
    if filters.watchman_id:
        conditions.append(Booking.approved_by_id == filters.watchman_id)
    if filters.status:
        conditions.append(Booking.status == filters.status)
    if filters.start_date:
        conditions.append(Booking.date >= filters.start_date)
    if filters.end_date:
        conditions.append(Booking.date <= filters.end_date)

    result = await session.execute(
        _booking_query()
        .where(*conditions)
        .order_by(Booking.date.desc(), Booking.time.desc(), Booking.id.desc())
    )
    return list(result.scalars().all())


@db_operation
async def delete_booking(
    session: AsyncSession,
    booking: Booking,
    performed_by_id: Optional[int],
    role: str,
) -> None:
    """Remove a booking and its history; the audit log keeps a record of it"""
    booking_id = booking.id
    record_audit(
        session,
        AuditAction.booking_deleted,
        user_id=booking.user_id,
        performed_by_id=performed_by_id,
        role=role,
        details=(
            f"Booking #{booking_id} deleted: {booking.from_place} -> "
            f"{booking.destination} on {booking.date.isoformat()} at {booking.time} "
            f"({booking.status})"
        ),
    )
    await session.delete(booking)
    await session.commit()

    log_business_event(
        "booking_deleted", "booking", booking_id, {"performed_by": performed_by_id}
    )
