from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

from app.bookings.crud.bookings import get_booking
from app.bookings.models.bookings import Booking
from app.bookings.services import booking_service
from app.bookings.services import timeout_sweeper as sweeper_module
from app.bookings.services.lifecycle import TIMEOUT_REASON
from app.bookings.services.timeout_sweeper import SWEEP_JOB_ID, BookingTimeoutSweeper
from tests.factories import T0, booking_input

SWEEP_AT = datetime(2025, 1, 10, 9, 1, tzinfo=timezone.utc)


def make_sweeper(session_factory, now=SWEEP_AT):
    return BookingTimeoutSweeper(
        session_factory=session_factory, clock=lambda: now, tz="UTC"
    )


async def test_overdue_pending_is_rejected_and_future_is_untouched(
    session, session_factory, student
):
    overdue = await booking_service.create_booking(
        session, booking_input(time="09:00"), student, now=T0
    )
    upcoming = await booking_service.create_booking(
        session, booking_input(time="09:02"), student, now=T0
    )

    report = await make_sweeper(session_factory).run_once()

    assert report.scanned == 2
    assert report.rejected == 1
    assert report.failed == 0

    async with session_factory() as check:
        rejected = await get_booking(check, overdue.id)
        assert rejected.status == "rejected"
        assert rejected.rejection_type == "timeout"
        assert rejected.rejection_reason == TIMEOUT_REASON
        last = rejected.action_history[-1]
        assert last.action == "rejected"
        assert last.performed_by_id is None
        assert last.performed_by_role == "system"

        untouched = await get_booking(check, upcoming.id)
        assert untouched.status == "pending"


async def test_booking_at_exactly_now_is_not_overdue(session, session_factory, student):
    booking = await booking_service.create_booking(
        session, booking_input(time="09:01"), student, now=T0
    )

    report = await make_sweeper(session_factory).run_once()

    assert report.rejected == 0
    async with session_factory() as check:
        assert (await get_booking(check, booking.id)).status == "pending"


async def test_sweeping_twice_rejects_once(session, session_factory, student):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    sweeper = make_sweeper(session_factory)

    first = await sweeper.run_once()
    second = await sweeper.run_once()

    assert first.rejected == 1
    assert second.scanned == 0
    assert second.rejected == 0
    async with session_factory() as check:
        history = (await get_booking(check, booking.id)).action_history
        assert [entry.action for entry in history] == ["created", "rejected"]


async def test_approved_bookings_are_not_swept(session, session_factory, student, admin):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    await booking_service.change_status(session, booking.id, "approved", admin, now=T0)

    report = await make_sweeper(session_factory).run_once()

    assert report.scanned == 0
    async with session_factory() as check:
        assert (await get_booking(check, booking.id)).status == "approved"


async def test_booking_approved_after_scan_is_skipped(
    session, session_factory, student, admin, monkeypatch
):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    await booking_service.change_status(session, booking.id, "approved", admin, now=T0)

    # The scan still sees the booking as pending
    stale = SimpleNamespace(
        id=booking.id,
        status="pending",
        date=booking.date,
        time=booking.time,
        from_place=booking.from_place,
        destination=booking.destination,
        approved_by_id=None,
    )

    async def stale_scan(session):
        return [stale]

    monkeypatch.setattr(sweeper_module, "get_pending_bookings", stale_scan)

    report = await make_sweeper(session_factory).run_once()

    assert report.skipped == 1
    assert report.rejected == 0
    async with session_factory() as check:
        current = await get_booking(check, booking.id)
        assert current.status == "approved"
        assert len(current.action_history) == 2


async def test_malformed_record_does_not_stop_the_sweep(
    session, session_factory, student
):
    broken = Booking(
        user_id=student.id,
        date=date(2025, 1, 10),
        time="25:99",
        from_place="Hostel",
        destination="Library",
        status="pending",
    )
    session.add(broken)
    await session.commit()
    good = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )

    report = await make_sweeper(session_factory).run_once()

    assert report.failed == 1
    assert report.rejected == 1
    async with session_factory() as check:
        assert (await get_booking(check, good.id)).status == "rejected"
        assert (await get_booking(check, broken.id)).status == "pending"


def test_stop_without_start_is_a_noop():
    sweeper = BookingTimeoutSweeper(session_factory=None, interval_seconds=3600)
    assert not sweeper.running
    sweeper.stop()
    assert not sweeper.running


async def test_edit_during_sweep_keeps_history_in_write_order(
    session, session_factory, student, admin
):
    booking = await booking_service.create_booking(
        session, booking_input(), student, now=T0
    )
    # The admin edit commits with a later timestamp than the sweep clock
    await booking_service.edit_booking(
        session,
        booking.id,
        {"time": "08:30"},
        admin,
        now=SWEEP_AT + timedelta(seconds=2),
    )

    report = await make_sweeper(session_factory).run_once()

    assert report.rejected == 1
    async with session_factory() as check:
        history = (await get_booking(check, booking.id)).action_history
        assert [entry.action for entry in history] == ["created", "edited", "rejected"]


async def test_clock_is_read_for_each_record(session, session_factory, student):
    for slot in ("08:00", "08:30"):
        await booking_service.create_booking(
            session, booking_input(time=slot), student, now=T0
        )
    readings = iter([SWEEP_AT, SWEEP_AT + timedelta(seconds=5)])
    sweeper = BookingTimeoutSweeper(
        session_factory=session_factory, clock=lambda: next(readings), tz="UTC"
    )

    report = await sweeper.run_once()

    assert report.rejected == 2
    async with session_factory() as check:
        stamps = sorted(
            booking.updated_at.replace(tzinfo=timezone.utc)
            if booking.updated_at.tzinfo is None
            else booking.updated_at
            for booking in await booking_service.list_for_role(check, "admin")
        )
    assert stamps == [SWEEP_AT, SWEEP_AT + timedelta(seconds=5)]


async def test_start_and_stop_inside_event_loop(session_factory):
    sweeper = BookingTimeoutSweeper(
        session_factory=session_factory, interval_seconds=3600, clock=lambda: SWEEP_AT
    )

    sweeper.start()
    try:
        assert sweeper.running
        job = sweeper._scheduler.get_job(SWEEP_JOB_ID)
        assert job.max_instances == 1
        assert job.coalesce

        sweeper.start()
        assert len(sweeper._scheduler.get_jobs()) == 1
    finally:
        sweeper.stop()

    assert not sweeper.running
