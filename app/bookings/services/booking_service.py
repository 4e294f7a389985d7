"""
Booking service - single entry point for booking operations.

Checks who may do what, runs validation and conflict checks, builds a plan
with the lifecycle engine and hands it to the store.
"""
from datetime import date, datetime
from typing import List, Mapping, Optional, Union
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import REQUIRE_KNOWN_LOCATIONS
from app.core.exceptions import (
    AccountInactiveError,
    AuthorizationError,
    ValidationError,
)
from app.core.validations import parse_booking_date
from app.bookings.crud import bookings as store
from app.bookings.models.bookings import Booking, BookingStatus
from app.bookings.schemas.bookings import BookingCreate, BookingEdit, BookingFilters
from app.bookings.services.conflicts import ensure_slot_available
from app.bookings.services.lifecycle import (
    SYSTEM_ACTOR,
    Actor,
    BookingSnapshot,
    plan_creation,
    plan_edit,
    plan_transition,
)
from app.bookings.services.schedule import utcnow
from app.locations.crud.locations import list_locations as _list_locations
from app.locations.crud.locations import location_exists
from app.locations.models.locations import Location
from app.users.crud.users import get_user_by_id
from app.users.models.users import User, UserRole, UserStatus

VIEWABLE_BY_WATCHMAN = (
    BookingStatus.pending,
    BookingStatus.approved,
    BookingStatus.in_progress,
    BookingStatus.completed,
)


def _role_value(role) -> str:
    return getattr(role, "value", role)


def _ensure_active(user: User) -> None:
    if user.status != UserStatus.active:
        raise AccountInactiveError(_role_value(user.status))


def _ensure_role(user: User, roles, message: str) -> None:
    _ensure_active(user)
    if _role_value(user.role) not in {_role_value(r) for r in roles}:
        raise AuthorizationError(message, {"role": _role_value(user.role)})


async def _ensure_known_locations(session: AsyncSession, *names: str) -> None:
    unknown = {}
    for field, name in zip(("from_place", "destination"), names):
        if name and not await location_exists(session, name.strip()):
            unknown[field] = f"Unknown location: {name}"
    if unknown:
        raise ValidationError("Unknown location", {"fields": unknown})


async def list_locations(session: AsyncSession) -> List[Location]:
    return await _list_locations(session)


async def create_booking(
    session: AsyncSession,
    data: Union[BookingCreate, Mapping],
    actor: User,
    now: Optional[datetime] = None,
) -> Booking:
    """Create a pending booking for a student; the slot must be free"""
    _ensure_role(actor, [UserRole.student], "Only students can create bookings")
    if not isinstance(data, BookingCreate):
        data = BookingCreate.model_validate(data)

    plan = plan_creation(
        owner_id=actor.id,
        actor=Actor.from_user(actor),
        now=now or utcnow(),
        booking_date=data.date,
        booking_time=data.time,
        from_place=data.from_place,
        destination=data.destination,
    )
    fields = plan.fields

    if REQUIRE_KNOWN_LOCATIONS:
        await _ensure_known_locations(
            session, fields["from_place"], fields["destination"]
        )

    await ensure_slot_available(
        session,
        fields["date"],
        fields["time"],
        fields["from_place"],
        fields["destination"],
    )
    return await store.insert_booking(session, plan)


async def list_mine(session: AsyncSession, actor_id: int) -> List[Booking]:
    return await store.get_bookings_for_user(session, actor_id)


async def list_for_role(
    session: AsyncSession, role, on_date: Optional[Union[date, str]] = None
) -> List[Booking]:
    """
    Admin sees every booking, watchman sees everything except rejected.
    Other roles are not allowed to list bookings.
    """
    role = _role_value(role)
    day = parse_booking_date(on_date) if on_date else None

    if role == UserRole.admin.value:
        return await store.get_bookings(session, on_date=day)
    if role == UserRole.watchman.value:
        return await store.get_bookings(
            session, statuses=VIEWABLE_BY_WATCHMAN, on_date=day
        )
    raise AuthorizationError("Forbidden", {"role": role})


async def transition_booking(
    session: AsyncSession,
    booking,
    requested_status,
    actor: Actor,
    now: Optional[datetime] = None,
    reason: Optional[str] = None,
    rejection_type: Optional[str] = None,
) -> Booking:
    """Shared path for staff status changes and automatic timeout rejection"""
    plan = plan_transition(
        booking,
        requested_status,
        actor,
        now=now or utcnow(),
        reason=reason,
        rejection_type=rejection_type,
    )
    return await store.apply_change(session, plan)


async def change_status(
    session: AsyncSession,
    booking_id: int,
    requested_status,
    actor: User,
    reason: Optional[str] = None,
    rejection_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    _ensure_role(
        actor,
        [UserRole.admin, UserRole.watchman],
        "Only admins and watchmen can change booking status",
    )
    booking = await store.get_booking(session, booking_id)
    return await transition_booking(
        session,
        BookingSnapshot.from_booking(booking),
        requested_status,
        Actor.from_user(actor),
        now=now,
        reason=reason,
        rejection_type=rejection_type,
    )


async def reject_overdue(
    session: AsyncSession, booking: BookingSnapshot, now: datetime
) -> Booking:
    """Timeout rejection on behalf of the system"""
    return await transition_booking(
        session, booking, BookingStatus.rejected, SYSTEM_ACTOR, now=now
    )


async def edit_booking(
    session: AsyncSession,
    booking_id: int,
    data: Union[BookingEdit, Mapping],
    actor: User,
    now: Optional[datetime] = None,
) -> Booking:
    """
    Admin edit of date, time, route or assigned watchman.

    Writes one "edited" history entry for all changed fields; a request
    that changes nothing returns the booking as is.
    """
    _ensure_role(actor, [UserRole.admin], "Only admins can edit bookings")
    if not isinstance(data, BookingEdit):
        data = BookingEdit.model_validate(data)

    booking = await store.get_booking(session, booking_id)

    assignee_name = None
    if data.assigned_watchman_id is not None:
        assignee = await get_user_by_id(session, data.assigned_watchman_id)
        if (
            not assignee
            or assignee.role != UserRole.watchman
            or assignee.status == UserStatus.deleted
        ):
            raise ValidationError(
                "Invalid watchman",
                {"fields": {"assigned_watchman_id": "Must be an existing watchman"}},
            )
        assignee_name = assignee.display_name

    plan = plan_edit(
        BookingSnapshot.from_booking(booking),
        Actor.from_user(actor),
        now or utcnow(),
        booking_date=data.date,
        booking_time=data.time,
        from_place=data.from_place,
        destination=data.destination,
        assignee_id=data.assigned_watchman_id,
        assignee_name=assignee_name,
    )
    if plan is None:
        return booking

    if plan.slot_changed:
        new_date, new_time, new_from, new_dest = plan.slot
        if REQUIRE_KNOWN_LOCATIONS:
            await _ensure_known_locations(session, new_from, new_dest)
        await ensure_slot_available(
            session, new_date, new_time, new_from, new_dest, exclude_id=booking.id
        )

    return await store.apply_change(session, plan)


async def delete_booking(session: AsyncSession, booking_id: int, actor: User) -> None:
    _ensure_role(actor, [UserRole.admin], "Only admins can delete bookings")
    booking = await store.get_booking(session, booking_id)
    await store.delete_booking(
        session, booking, performed_by_id=actor.id, role=_role_value(actor.role)
    )


async def filter_bookings(
    session: AsyncSession, actor: User, filters: Optional[BookingFilters] = None
) -> List[Booking]:
    _ensure_role(actor, [UserRole.admin], "Only admins can filter bookings")
    filters = filters or BookingFilters()
    if filters.status:
        try:
            BookingStatus(filters.status)
        except ValueError:
            raise ValidationError(
                "Invalid status", {"fields": {"status": "Unknown booking status"}}
            )
    if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
        raise ValidationError(
            "Invalid date range",
            {"fields": {"end_date": "End date must not be before start date"}},
        )
    return await store.filter_bookings(session, filters)
