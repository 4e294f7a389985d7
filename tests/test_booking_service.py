from datetime import date, timedelta

import pytest

from app.core.exceptions import (
    AccountInactiveError,
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    SlotConflictError,
    ValidationError,
)
from app.audit.crud.audit_logs import get_audit_logs
from app.bookings.crud.bookings import get_booking, insert_booking
from app.bookings.schemas.bookings import BookingFilters
from app.bookings.services import booking_service
from app.bookings.services.conflicts import check_conflict
from app.bookings.services.lifecycle import Actor, BookingSnapshot, plan_creation
from app.locations.crud.locations import create_location
from app.locations.schemas.locations import LocationCreate
from app.users.models.users import UserRole, UserStatus
from tests.factories import T0, booking_input, make_user


async def test_create_booking_starts_pending_with_history(session, student):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )

    assert booking.status == "pending"
    assert booking.user.id == student.id
    assert booking.date == date(2025, 1, 10)
    assert booking.time == "09:00"
    assert [entry.action for entry in booking.action_history] == ["created"]
    assert booking.action_history[0].performed_by_id == student.id


async def test_same_slot_conflicts_but_other_destination_is_free(session, student):
    other = await make_user(session, UserRole.student)
    await booking_service.create_booking(session, booking_input(), student, now=T0)

    with pytest.raises(SlotConflictError):
        await booking_service.create_booking(session, booking_input(), other, now=T0)

    booking = await booking_service.create_booking(
        session, booking_input(destination="Auditorium"), other, now=T0
    )
    assert booking.status == "pending"


async def test_reverse_route_is_a_different_slot(session, student):
    await booking_service.create_booking(session, booking_input(), student, now=T0)
    reverse = await booking_service.create_booking(
        session,
        booking_input(from_place="Library", destination="Gate"),
        student,
        now=T0,
    )
    assert reverse.status == "pending"


async def test_rejected_booking_frees_the_slot(session, student, admin):
    first = await booking_service.create_booking(session, booking_input(), student, now=T0)
    await booking_service.change_status(session, first.id, "rejected", admin, now=T0)

    availability = await check_conflict(
        session, date(2025, 1, 10), "09:00", "Gate", "Library"
    )
    assert availability.available

    second = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    assert second.id != first.id


async def test_conflict_check_reports_the_holder(session, student):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )

    availability = await check_conflict(
        session, date(2025, 1, 10), "09:00", "Gate", "Library"
    )
    assert not availability.available
    assert availability.conflicting_id == booking.id

    excluded = await check_conflict(
        session, date(2025, 1, 10), "09:00", "Gate", "Library", exclude_id=booking.id
    )
    assert excluded.available


async def test_unpadded_time_occupies_the_same_slot(session, student):
    await booking_service.create_booking(
        session, booking_input(time="9:00"), student, now=T0
    )
    with pytest.raises(SlotConflictError):
        await booking_service.create_booking(
            session, booking_input(time="09:00"), student, now=T0
        )


@pytest.mark.parametrize("bad_time", ["24:00", "9:60"])
async def test_create_rejects_invalid_time(session, student, bad_time):
    with pytest.raises(ValidationError):
        await booking_service.create_booking(
            session, booking_input(time=bad_time), student, now=T0
        )


async def test_only_active_students_create_bookings(session, watchman):
    with pytest.raises(AuthorizationError):
        await booking_service.create_booking(session, booking_input(), watchman, now=T0)

    inactive = await make_user(session, UserRole.student, UserStatus.inactive)
    with pytest.raises(AccountInactiveError):
        await booking_service.create_booking(session, booking_input(), inactive, now=T0)


async def test_round_trip_stamps_ordered_times(session, student, watchman, admin):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )

    booking = await booking_service.change_status(
        session, booking.id, "approved", watchman, now=T0 + timedelta(minutes=1)
    )
    assert booking.approved_by.id == watchman.id

    booking = await booking_service.change_status(
        session, booking.id, "in-progress", admin, now=T0 + timedelta(minutes=2)
    )
    booking = await booking_service.change_status(
        session, booking.id, "completed", watchman, now=T0 + timedelta(minutes=2)
    )

    assert booking.status == "completed"
    assert booking.approval_time <= booking.dispatch_time <= booking.completion_time
    assert [entry.action for entry in booking.action_history] == [
        "created",
        "approved",
        "dispatched",
        "completed",
    ]
    times = [entry.performed_at for entry in booking.action_history]
    assert times == sorted(times)


@pytest.mark.parametrize("terminal", ["completed", "rejected"])
async def test_terminal_booking_refuses_every_transition(
    session, student, admin, terminal
):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    if terminal == "completed":
        for status in ("approved", "in-progress", "completed"):
            await booking_service.change_status(session, booking.id, status, admin, now=T0)
    else:
        await booking_service.change_status(session, booking.id, "rejected", admin, now=T0)

    for status in ("pending", "approved", "in-progress", "completed", "rejected"):
        with pytest.raises(InvalidTransitionError):
            await booking_service.change_status(session, booking.id, status, admin, now=T0)

    booking = await get_booking(session, booking.id)
    assert booking.status == terminal


async def test_reapproval_is_refused_and_not_restamped(session, student, admin, watchman):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    approved = await booking_service.change_status(
        session, booking.id, "approved", admin, now=T0
    )

    with pytest.raises(InvalidTransitionError):
        await booking_service.change_status(
            session, booking.id, "approved", watchman, now=T0 + timedelta(hours=1)
        )

    booking = await get_booking(session, booking.id)
    assert booking.approved_by_id == admin.id
    assert booking.approval_time == approved.approval_time
    assert len(booking.action_history) == 2


async def test_stale_plan_is_refused_by_the_store(session, student, admin):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    stale = BookingSnapshot.from_booking(booking)
    await booking_service.change_status(session, booking.id, "approved", admin, now=T0)

    with pytest.raises(InvalidTransitionError):
        await booking_service.reject_overdue(session, stale, T0)

    booking = await get_booking(session, booking.id)
    assert booking.status == "approved"
    assert len(booking.action_history) == 2


async def test_human_timeout_rejection_is_refused(session, student, admin):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    with pytest.raises(ValidationError):
        await booking_service.change_status(
            session, booking.id, "rejected", admin, rejection_type="timeout", now=T0
        )


async def test_student_cannot_change_status(session, student):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    with pytest.raises(AuthorizationError):
        await booking_service.change_status(session, booking.id, "approved", student)


async def test_missing_booking_is_not_found(session, admin):
    with pytest.raises(NotFoundError):
        await booking_service.change_status(session, 999, "approved", admin)


async def test_list_mine_newest_date_first(session, student):
    await booking_service.create_booking(
        session, booking_input(date="2025-01-10"), student, now=T0
    )
    await booking_service.create_booking(
        session, booking_input(date="2025-01-12"), student, now=T0
    )

    bookings = await booking_service.list_mine(session, student.id)
    assert [b.date for b in bookings] == [date(2025, 1, 12), date(2025, 1, 10)]


async def test_list_for_role(session, student, admin):
    kept = await booking_service.create_booking(
        session, booking_input(time="10:00"), student, now=T0
    )
    early = await booking_service.create_booking(
        session, booking_input(time="08:00"), student, now=T0
    )
    rejected = await booking_service.create_booking(
        session, booking_input(time="11:00"), student, now=T0
    )
    await booking_service.change_status(session, rejected.id, "rejected", admin, now=T0)

    for_admin = await booking_service.list_for_role(session, UserRole.admin)
    assert [b.id for b in for_admin] == [early.id, kept.id, rejected.id]

    for_watchman = await booking_service.list_for_role(session, "watchman")
    assert [b.id for b in for_watchman] == [early.id, kept.id]

    on_other_day = await booking_service.list_for_role(
        session, "admin", on_date="2025-01-11"
    )
    assert on_other_day == []

    with pytest.raises(AuthorizationError):
        await booking_service.list_for_role(session, "student")


async def test_edit_changes_slot_and_logs_one_entry(session, student, admin, watchman):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )

    edited = await booking_service.edit_booking(
        session,
        booking.id,
        {"time": "10:15", "destination": "Auditorium", "assignedWatchmanId": watchman.id},
        admin,
        now=T0,
    )

    assert edited.time == "10:15"
    assert edited.destination == "Auditorium"
    assert edited.approved_by.id == watchman.id
    assert edited.status == "pending"
    assert [entry.action for entry in edited.action_history] == ["created", "edited"]


async def test_edit_onto_occupied_slot_conflicts(session, student, admin):
    await booking_service.create_booking(session, booking_input(), student, now=T0)
    other = await booking_service.create_booking(
        session, booking_input(time="10:00"), student, now=T0
    )

    with pytest.raises(SlotConflictError):
        await booking_service.edit_booking(
            session, other.id, {"time": "09:00"}, admin, now=T0
        )


async def test_edit_to_same_endpoints_persists_nothing(session, student, admin):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )

    with pytest.raises(ValidationError):
        await booking_service.edit_booking(
            session, booking.id, {"fromPlace": "Library", "time": "11:00"}, admin, now=T0
        )

    booking = await get_booking(session, booking.id)
    assert booking.from_place == "Gate"
    assert booking.time == "09:00"
    assert len(booking.action_history) == 1


async def test_edit_requires_a_watchman_assignee(session, student, admin):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    with pytest.raises(ValidationError):
        await booking_service.edit_booking(
            session, booking.id, {"assignedWatchmanId": student.id}, admin, now=T0
        )


async def test_delete_booking_leaves_audit_trail(session, student, admin):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    await booking_service.delete_booking(session, booking.id, admin)

    with pytest.raises(NotFoundError):
        await get_booking(session, booking.id)

    logs, _ = await get_audit_logs(session, action="booking_deleted")
    assert len(logs) == 1
    assert logs[0].performed_by_id == admin.id


async def test_filter_bookings(session, student, admin, watchman):
    first = await booking_service.create_booking(
        session, booking_input(date="2025-01-10"), student, now=T0
    )
    await booking_service.create_booking(
        session, booking_input(date="2025-01-20"), student, now=T0
    )
    await booking_service.change_status(session, first.id, "approved", watchman, now=T0)

    by_watchman = await booking_service.filter_bookings(
        session, admin, BookingFilters(watchman_id=watchman.id)
    )
    assert [b.id for b in by_watchman] == [first.id]

    in_range = await booking_service.filter_bookings(
        session,
        admin,
        BookingFilters(start_date=date(2025, 1, 15), end_date=date(2025, 1, 31)),
    )
    assert len(in_range) == 1

    with pytest.raises(ValidationError):
        await booking_service.filter_bookings(
            session, admin, BookingFilters(status="lost")
        )


async def test_insert_losing_the_slot_race_conflicts(session, student):
    def plan():
        return plan_creation(
            owner_id=student.id,
            actor=Actor.from_user(student),
            now=T0,
            booking_date="2025-01-10",
            booking_time="09:00",
            from_place="Gate",
            destination="Library",
        )

    # Both requests passed the conflict check before either was written
    await insert_booking(session, plan())
    with pytest.raises(SlotConflictError):
        await insert_booking(session, plan())

    held = await check_conflict(session, date(2025, 1, 10), "09:00", "Gate", "Library")
    assert not held.available


async def test_known_locations_are_required_when_enabled(
    session, student, admin, monkeypatch
):
    monkeypatch.setattr(booking_service, "REQUIRE_KNOWN_LOCATIONS", True)
    for name in ("Gate", "Library"):
        await create_location(session, LocationCreate(name=name), admin.id)

    with pytest.raises(ValidationError) as exc:
        await booking_service.create_booking(
            session, booking_input(destination="Stadium"), student, now=T0
        )
    assert exc.value.details["fields"] == {"destination": "Unknown location: Stadium"}

    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    with pytest.raises(ValidationError):
        await booking_service.edit_booking(
            session, booking.id, {"fromPlace": "Hostel"}, admin, now=T0
        )

    unchanged = await get_booking(session, booking.id)
    assert unchanged.from_place == "Gate"
    assert len(unchanged.action_history) == 1


async def test_unknown_locations_pass_when_check_is_off(session, student, monkeypatch):
    monkeypatch.setattr(booking_service, "REQUIRE_KNOWN_LOCATIONS", False)

    booking = await booking_service.create_booking(
        session, booking_input(from_place="Hostel", destination="Stadium"), student, now=T0
    )
    assert booking.status == "pending"
