from datetime import date, datetime, timezone
from itertools import product

import pytest

from app.core.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    ValidationError,
)
from app.bookings.models.bookings import BookingStatus, HistoryAction
from app.bookings.services.lifecycle import (
    SYSTEM_ACTOR,
    TIMEOUT_REASON,
    TRANSITIONS,
    Actor,
    BookingSnapshot,
    plan_creation,
    plan_edit,
    plan_transition,
)

NOW = datetime(2025, 1, 10, 8, 0, tzinfo=timezone.utc)
ADMIN = Actor(id=1, role="admin", name="Admin")
WATCHMAN = Actor(id=2, role="watchman", name="Gate")
STUDENT = Actor(id=3, role="student", name="Student")

LEGAL = {
    (BookingStatus.pending, BookingStatus.approved),
    (BookingStatus.approved, BookingStatus.in_progress),
    (BookingStatus.in_progress, BookingStatus.completed),
    (BookingStatus.pending, BookingStatus.rejected),
    (BookingStatus.approved, BookingStatus.rejected),
    (BookingStatus.in_progress, BookingStatus.rejected),
}


def snapshot(status=BookingStatus.pending, **overrides):
    fields = dict(
        id=10,
        status=status.value,
        date=date(2025, 1, 10),
        time="09:00",
        from_place="Gate",
        destination="Library",
        approved_by_id=None,
    )
    fields.update(overrides)
    return BookingSnapshot(**fields)


def test_transition_table_is_exactly_the_legal_set():
    assert set(TRANSITIONS) == LEGAL


@pytest.mark.parametrize("current,requested", list(product(BookingStatus, BookingStatus)))
def test_every_status_pair(current, requested):
    booking = snapshot(current)
    if (current, requested) in LEGAL:
        plan = plan_transition(booking, requested, ADMIN, NOW)
        assert plan.expected_status == current
        assert plan.updates["status"] == requested.value
    else:
        with pytest.raises(InvalidTransitionError):
            plan_transition(booking, requested, ADMIN, NOW)


@pytest.mark.parametrize("terminal", [BookingStatus.completed, BookingStatus.rejected])
def test_terminal_statuses_have_no_exits(terminal):
    assert not [pair for pair in TRANSITIONS if pair[0] == terminal]


def test_approve_stamps_approver_and_time():
    plan = plan_transition(snapshot(), "approved", WATCHMAN, NOW)

    assert plan.updates["approved_by_id"] == WATCHMAN.id
    assert plan.updates["approval_time"] == NOW
    assert plan.history.action == HistoryAction.approved
    assert plan.history.performed_by_id == WATCHMAN.id
    assert plan.history.performed_at == NOW


def test_dispatch_and_complete_stamp_their_times():
    dispatch = plan_transition(snapshot(BookingStatus.approved), "in-progress", ADMIN, NOW)
    complete = plan_transition(snapshot(BookingStatus.in_progress), "completed", ADMIN, NOW)

    assert dispatch.updates == {"dispatch_time": NOW, "status": "in-progress"}
    assert dispatch.history.action == HistoryAction.dispatched
    assert complete.updates == {"completion_time": NOW, "status": "completed"}


def test_manual_rejection_defaults_to_manual_type():
    plan = plan_transition(snapshot(), "rejected", ADMIN, NOW, reason="No driver")

    assert plan.updates["rejection_type"] == "manual"
    assert plan.updates["rejection_reason"] == "No driver"
    assert "No driver" in plan.history.details


def test_people_cannot_request_timeout_rejection():
    with pytest.raises(ValidationError):
        plan_transition(snapshot(), "rejected", ADMIN, NOW, rejection_type="timeout")


def test_system_rejection_is_timeout_with_fixed_reason():
    plan = plan_transition(snapshot(), "rejected", SYSTEM_ACTOR, NOW)

    assert plan.updates["rejection_type"] == "timeout"
    assert plan.updates["rejection_reason"] == TIMEOUT_REASON
    assert plan.history.performed_by_id is None
    assert plan.history.performed_by_role == "system"


def test_system_cannot_approve():
    with pytest.raises(AuthorizationError):
        plan_transition(snapshot(), "approved", SYSTEM_ACTOR, NOW)


def test_student_cannot_change_status():
    with pytest.raises(AuthorizationError):
        plan_transition(snapshot(), "rejected", STUDENT, NOW)


def test_unknown_status_is_a_validation_error():
    with pytest.raises(ValidationError):
        plan_transition(snapshot(), "cancelled", ADMIN, NOW)


def test_unknown_rejection_type_is_a_validation_error():
    with pytest.raises(ValidationError):
        plan_transition(snapshot(), "rejected", ADMIN, NOW, rejection_type="later")


@pytest.mark.parametrize("bad_time", ["24:00", "9:60", "noon", "", "09:00\n", " 09:00"])
def test_creation_rejects_bad_time(bad_time):
    with pytest.raises(ValidationError):
        plan_creation(3, STUDENT, NOW, "2025-01-10", bad_time, "Gate", "Library")


@pytest.mark.parametrize("good_time,stored", [("09:00", "09:00"), ("23:59", "23:59"), ("7:05", "07:05")])
def test_creation_accepts_and_pads_time(good_time, stored):
    plan = plan_creation(3, STUDENT, NOW, "2025-01-10", good_time, "Gate", "Library")
    assert plan.fields["time"] == stored
    assert plan.fields["status"] == "pending"
    assert plan.history.action == HistoryAction.created


def test_creation_reports_every_missing_field():
    with pytest.raises(ValidationError) as exc:
        plan_creation(3, STUDENT, NOW, None, "", "Gate", "  ")

    assert exc.value.message == "Missing required fields"
    assert set(exc.value.details["fields"]) == {"date", "time", "destination"}


def test_creation_rejects_same_origin_and_destination():
    with pytest.raises(ValidationError):
        plan_creation(3, STUDENT, NOW, "2025-01-10", "09:00", "Gate", "Gate")


def test_edit_collects_all_changes_in_one_entry():
    plan = plan_edit(
        snapshot(), ADMIN, NOW, booking_time="10:30", destination="Auditorium"
    )

    assert plan.updates == {"time": "10:30", "destination": "Auditorium"}
    assert plan.history.action == HistoryAction.edited
    assert "time 09:00 -> 10:30" in plan.history.details
    assert "destination Library -> Auditorium" in plan.history.details
    assert plan.slot == (date(2025, 1, 10), "10:30", "Gate", "Auditorium")


def test_edit_without_changes_returns_none():
    assert plan_edit(snapshot(), ADMIN, NOW, booking_time="09:00") is None


@pytest.mark.parametrize(
    "changes",
    [{"from_place": "Library"}, {"destination": "Gate"}],
)
def test_edit_to_same_route_endpoints_fails(changes):
    with pytest.raises(ValidationError):
        plan_edit(snapshot(), ADMIN, NOW, **changes)


def test_edit_of_assignee_only_keeps_slot():
    plan = plan_edit(snapshot(), ADMIN, NOW, assignee_id=7, assignee_name="Night Gate")

    assert plan.updates == {"approved_by_id": 7}
    assert not plan.slot_changed
    assert "Night Gate" in plan.history.details


@pytest.mark.parametrize("terminal", [BookingStatus.completed, BookingStatus.rejected])
def test_terminal_bookings_cannot_be_edited(terminal):
    with pytest.raises(InvalidTransitionError):
        plan_edit(snapshot(terminal), ADMIN, NOW, booking_time="10:00")


def test_only_admin_edits():
    with pytest.raises(AuthorizationError):
        plan_edit(snapshot(), WATCHMAN, NOW, booking_time="10:00")
