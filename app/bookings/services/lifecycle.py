"""
Жизненный цикл бронирования.

Чистые функции без доступа к БД: по текущему состоянию бронирования и
запросу актора строят план изменения (поля + запись истории). План
применяется хранилищем атомарно, с проверкой, что статус не изменился.

    pending -> approved -> in-progress -> completed
       \\________\\______________\\______-> rejected
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from app.core.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    ValidationError,
)
from app.core.validations import (
    clean_place,
    clean_time,
    ensure_distinct_route,
    parse_booking_date,
)
from app.bookings.models.bookings import (
    BookingStatus,
    HistoryAction,
    RejectionType,
    TERMINAL_STATUSES,
)

SYSTEM_ROLE = "system"
TIMEOUT_REASON = "Time Out - No approval before scheduled time"

STAFF_ROLES: FrozenSet[str] = frozenset({"admin", "watchman"})


@dataclass(frozen=True)
class Actor:
    """Кто выполняет действие: пользователь или системный процесс"""

    id: Optional[int]
    role: str
    name: str = ""

    @property
    def is_system(self) -> bool:
        return self.role == SYSTEM_ROLE

    @property
    def label(self) -> str:
        if self.is_system:
            return "system"
        return f"{self.name or 'user'} ({self.role})"

    @classmethod
    def from_user(cls, user) -> "Actor":
        role = getattr(user.role, "value", user.role)
        return cls(id=user.id, role=role, name=user.display_name)


SYSTEM_ACTOR = Actor(id=None, role=SYSTEM_ROLE, name="Auto-timeout")


@dataclass(frozen=True)
class BookingSnapshot:
    """Неизменяемый срез бронирования, достаточный для планирования"""

    id: int
    status: str
    date: date
    time: str
    from_place: str
    destination: str
    approved_by_id: Optional[int] = None

    @classmethod
    def from_booking(cls, booking) -> "BookingSnapshot":
        return cls(
            id=booking.id,
            status=booking.status,
            date=booking.date,
            time=booking.time,
            from_place=booking.from_place,
            destination=booking.destination,
            approved_by_id=booking.approved_by_id,
        )


@dataclass(frozen=True)
class HistoryEntry:
    action: HistoryAction
    performed_by_id: Optional[int]
    performed_by_role: str
    performed_at: datetime
    details: str

    def as_row(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "performed_by_id": self.performed_by_id,
            "performed_by_role": self.performed_by_role,
            "performed_at": self.performed_at,
            "details": self.details,
        }


@dataclass(frozen=True)
class ChangePlan:
    """
    Изменение существующего бронирования.

    expected_status: статус, при котором план еще актуален
    updates: новые значения колонок
    """

    booking_id: int
    expected_status: BookingStatus
    updates: Dict[str, Any]
    history: HistoryEntry
    # (date, time, from_place, destination) после правки, если слот меняется
    slot: Optional[Tuple[date, str, str, str]] = None

    @property
    def slot_changed(self) -> bool:
        return self.slot is not None

    @property
    def target_status(self) -> BookingStatus:
        return BookingStatus(self.updates.get("status", self.expected_status.value))


@dataclass(frozen=True)
class CreationPlan:
    fields: Dict[str, Any]
    history: HistoryEntry


# === Таблица переходов ===

TransitionEffect = Callable[
    [BookingSnapshot, Actor, datetime, Optional[str], Optional[str]],
    Tuple[Dict[str, Any], str],
]


@dataclass(frozen=True)
class Transition:
    action: HistoryAction
    effect: TransitionEffect
    allowed_roles: FrozenSet[str] = field(default=STAFF_ROLES)


def _approve(booking, actor, now, reason, rejection_type):
    return (
        {"approved_by_id": actor.id, "approval_time": now},
        f"Booking approved by {actor.label}",
    )


def _dispatch(booking, actor, now, reason, rejection_type):
    return {"dispatch_time": now}, f"Vehicle dispatched by {actor.label}"


def _complete(booking, actor, now, reason, rejection_type):
    return {"completion_time": now}, f"Ride completed, confirmed by {actor.label}"


def _reject(booking, actor, now, reason, rejection_type):
    if actor.is_system:
        kind = RejectionType.timeout
        reason = reason or TIMEOUT_REASON
    else:
        kind = _parse_rejection_type(rejection_type)
        if kind == RejectionType.timeout:
            raise ValidationError(
                "Invalid rejection type",
                {
                    "fields": {
                        "rejection_type": "Timeout rejection is set automatically"
                    }
                },
            )

    reason = (reason or "").strip() or None
    details = f"Booking rejected ({kind.value}) by {actor.label}"
    if reason:
        details = f"{details}: {reason}"
    return {"rejection_reason": reason, "rejection_type": kind.value}, details


_REJECTABLE_BY = STAFF_ROLES | {SYSTEM_ROLE}

TRANSITIONS: Dict[Tuple[BookingStatus, BookingStatus], Transition] = {
    (BookingStatus.pending, BookingStatus.approved): Transition(
        HistoryAction.approved, _approve
    ),
    (BookingStatus.approved, BookingStatus.in_progress): Transition(
        HistoryAction.dispatched, _dispatch
    ),
    (BookingStatus.in_progress, BookingStatus.completed): Transition(
        HistoryAction.completed, _complete
    ),
    (BookingStatus.pending, BookingStatus.rejected): Transition(
        HistoryAction.rejected, _reject, _REJECTABLE_BY
    ),
    (BookingStatus.approved, BookingStatus.rejected): Transition(
        HistoryAction.rejected, _reject, _REJECTABLE_BY
    ),
    (BookingStatus.in_progress, BookingStatus.rejected): Transition(
        HistoryAction.rejected, _reject, _REJECTABLE_BY
    ),
}


def _parse_rejection_type(value: Optional[str]) -> RejectionType:
    if value is None or value == "":
        return RejectionType.manual
    try:
        return RejectionType(value)
    except ValueError:
        raise ValidationError(
            "Invalid rejection type",
            {"fields": {"rejection_type": "Must be one of: manual, timeout"}},
        )


def parse_status(value) -> BookingStatus:
    try:
        return BookingStatus(getattr(value, "value", value))
    except ValueError:
        raise ValidationError(
            "Invalid status",
            {
                "fields": {
                    "status": "Must be one of: "
                    + ", ".join(s.value for s in BookingStatus)
                }
            },
        )


def plan_transition(
    booking,
    requested,
    actor: Actor,
    now: datetime,
    reason: Optional[str] = None,
    rejection_type: Optional[str] = None,
) -> ChangePlan:
    """
    План перехода статуса.

    Raises:
        ValidationError: неизвестный статус или тип отклонения
        InvalidTransitionError: пары (текущий, запрошенный) нет в таблице
        AuthorizationError: роль актора не может выполнить переход
    """
    target = parse_status(requested)
    current = BookingStatus(booking.status)

    transition = TRANSITIONS.get((current, target))
    if transition is None:
        raise InvalidTransitionError(current.value, target.value, booking.id)

    if actor.role not in transition.allowed_roles:
        raise AuthorizationError(
            "You are not allowed to change booking status",
            {"role": actor.role, "requested": target.value},
        )

    updates, details = transition.effect(booking, actor, now, reason, rejection_type)
    updates["status"] = target.value

    return ChangePlan(
        booking_id=booking.id,
        expected_status=current,
        updates=updates,
        history=HistoryEntry(
            action=transition.action,
            performed_by_id=actor.id,
            performed_by_role=actor.role,
            performed_at=now,
            details=details,
        ),
    )


def plan_creation(
    owner_id: int,
    actor: Actor,
    now: datetime,
    booking_date,
    booking_time: Optional[str],
    from_place: Optional[str],
    destination: Optional[str],
) -> CreationPlan:
    """Проверка и нормализация полей нового бронирования"""
    missing = {
        name: f"{name} is required"
        for name, value in (
            ("date", booking_date),
            ("time", booking_time),
            ("from_place", from_place),
            ("destination", destination),
        )
        if value is None or (isinstance(value, str) and not value.strip())
    }
    if missing:
        raise ValidationError("Missing required fields", {"fields": missing})

    day = parse_booking_date(booking_date)
    slot_time = clean_time(booking_time)
    origin = clean_place(from_place, "from_place")
    target = clean_place(destination, "destination")
    ensure_distinct_route(origin, target)

    return CreationPlan(
        fields={
            "user_id": owner_id,
            "date": day,
            "time": slot_time,
            "from_place": origin,
            "destination": target,
            "status": BookingStatus.pending.value,
            "created_at": now,
            "updated_at": now,
        },
        history=HistoryEntry(
            action=HistoryAction.created,
            performed_by_id=actor.id,
            performed_by_role=actor.role,
            performed_at=now,
            details=f"Booking requested: {origin} -> {target} on {day.isoformat()} at {slot_time}",
        ),
    )


def plan_edit(
    booking,
    actor: Actor,
    now: datetime,
    booking_date=None,
    booking_time: Optional[str] = None,
    from_place: Optional[str] = None,
    destination: Optional[str] = None,
    assignee_id: Optional[int] = None,
    assignee_name: Optional[str] = None,
) -> Optional[ChangePlan]:
    """
    План правки даты, времени, маршрута или назначенного охранника.

    None означает, что ни одно поле не меняется.
    Все изменения попадают в одну запись истории.
    """
    current = BookingStatus(booking.status)
    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            current.value,
            HistoryAction.edited.value,
            booking.id,
            message=f"Cannot edit a {current.value} booking",
        )

    if actor.role != "admin":
        raise AuthorizationError("Only admins can edit bookings")

    new_date = parse_booking_date(booking_date) if booking_date is not None else booking.date
    new_time = clean_time(booking_time) if booking_time is not None else booking.time
    new_from = (
        clean_place(from_place, "from_place") if from_place is not None else booking.from_place
    )
    new_dest = (
        clean_place(destination, "destination")
        if destination is not None
        else booking.destination
    )
    ensure_distinct_route(new_from, new_dest)

    updates: Dict[str, Any] = {}
    changes: List[str] = []
    if new_date != booking.date:
        updates["date"] = new_date
        changes.append(f"date {booking.date.isoformat()} -> {new_date.isoformat()}")
    if new_time != booking.time:
        updates["time"] = new_time
        changes.append(f"time {booking.time} -> {new_time}")
    if new_from != booking.from_place:
        updates["from_place"] = new_from
        changes.append(f"from {booking.from_place} -> {new_from}")
    if new_dest != booking.destination:
        updates["destination"] = new_dest
        changes.append(f"destination {booking.destination} -> {new_dest}")
    if assignee_id is not None and assignee_id != booking.approved_by_id:
        updates["approved_by_id"] = assignee_id
        changes.append(f"assigned to {assignee_name or assignee_id}")

    if not changes:
        return None

    slot = None
    if {"date", "time", "from_place", "destination"} & updates.keys():
        slot = (new_date, new_time, new_from, new_dest)

    return ChangePlan(
        booking_id=booking.id,
        expected_status=current,
        updates=updates,
        history=HistoryEntry(
            action=HistoryAction.edited,
            performed_by_id=actor.id,
            performed_by_role=actor.role,
            performed_at=now,
            details=f"Edited by {actor.label}: " + "; ".join(changes),
        ),
        slot=slot,
    )
