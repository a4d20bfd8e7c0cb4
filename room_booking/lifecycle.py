"""Reservation lifecycle: legal status transitions and request validation.

Only four edges exist::

    Pending  -> Approved   (Admin)
    Pending  -> Denied     (Admin)
    Pending  -> Cancelled  (owning requester)
    Approved -> Closed     (owning requester)

Nothing leaves ``Denied``, ``Cancelled`` or ``Closed``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time, timedelta
from enum import StrEnum

import holidays as pyholidays

from .config import Settings
from .errors import AuthorizationError, IllegalStateError, ValidationError
from .models import (
    PURPOSES,
    REMARKS_MAX_LENGTH,
    Actor,
    ActorRole,
    DetailsPatch,
    Reservation,
    ReservationCommand,
    ReservationStatus,
    ScheduleSlot,
    clean_equipments,
    clean_participants,
)
from .timeline import duration, format_24_hour, parse_time


class TransitionActor(StrEnum):
    ADMIN = "admin"
    OWNER = "owner"


@dataclass(frozen=True)
class Transition:
    source: ReservationStatus
    target: ReservationStatus
    actor: TransitionActor
    action: str


TRANSITIONS = {
    (ReservationStatus.PENDING, ReservationStatus.APPROVED): Transition(
        ReservationStatus.PENDING, ReservationStatus.APPROVED, TransitionActor.ADMIN, "approved"
    ),
    (ReservationStatus.PENDING, ReservationStatus.DENIED): Transition(
        ReservationStatus.PENDING, ReservationStatus.DENIED, TransitionActor.ADMIN, "denied"
    ),
    (ReservationStatus.PENDING, ReservationStatus.CANCELLED): Transition(
        ReservationStatus.PENDING, ReservationStatus.CANCELLED, TransitionActor.OWNER, "cancelled"
    ),
    (ReservationStatus.APPROVED, ReservationStatus.CLOSED): Transition(
        ReservationStatus.APPROVED, ReservationStatus.CLOSED, TransitionActor.OWNER, "closed"
    ),
}

FINAL_STATUSES = frozenset(status for status in ReservationStatus if not any(key[0] == status for key in TRANSITIONS))


def allowed_targets(status: ReservationStatus) -> list[ReservationStatus]:
    return [target for source, target in TRANSITIONS if source == status]


def resolve_transition(reservation: Reservation, target: ReservationStatus, actor: Actor) -> Transition:
    """Return the transition for ``reservation -> target`` or raise.

    The state is checked before the actor, so a terminal reservation reports
    ``IllegalStateError`` whoever asks.
    """
    transition = TRANSITIONS.get((reservation.status, target))
    if transition is None:
        raise IllegalStateError(f"Cannot move reservation {reservation.reservation_code} from {reservation.status} to {target}.")

    if transition.actor == TransitionActor.ADMIN and not actor.is_admin:
        raise AuthorizationError(f"Only an Admin may set a reservation to {target}.")
    if transition.actor == TransitionActor.OWNER and actor.user_id != reservation.user_id:
        raise AuthorizationError(f"Only the requester may set a reservation to {target}.")
    return transition


@dataclass(frozen=True)
class ValidatedRequest:
    room_ids: tuple[int, ...]
    purpose: str
    remarks: str
    advisor: str | None
    participants: tuple[str, ...]
    equipments: tuple[str, ...]
    slots: tuple[ScheduleSlot, ...]


def validate_command(command: ReservationCommand, settings: Settings, today: date) -> ValidatedRequest:
    """Check a creation command without touching storage.

    Missing fields are reported first, then the time range, then the booking
    policy for each date.
    """
    _require(command.requester_id, "requester_id")
    _require(command.room_ids, "room_ids")
    purpose = _require_text(command.purpose, "purpose")
    _require(command.dates, "dates")
    _require(command.start_time, "start_time")
    _require(command.end_time, "end_time")
    advisor = _clean_text(command.advisor)
    if advisor is None and command.requester_role != ActorRole.INSTRUCTOR:
        raise ValidationError("advisor", "an advisor is required unless the requester is an Instructor")
    remarks = _require_text(command.remarks, "remarks")

    _check_purpose(purpose)
    _check_remarks(remarks)

    start = parse_time(command.start_time)
    end = parse_time(command.end_time)
    check_time_range(start, end, settings)

    room_ids = tuple(dict.fromkeys(int(room_id) for room_id in command.room_ids))
    dates = tuple(sorted(set(command.dates)))
    for day in dates:
        check_booking_day(day, settings, today)

    return ValidatedRequest(
        room_ids=room_ids,
        purpose=purpose,
        remarks=remarks,
        advisor=advisor,
        participants=clean_participants(command.participants),
        equipments=clean_equipments(command.equipments),
        slots=tuple(ScheduleSlot(day, start, end) for day in dates),
    )


def validate_patch(reservation: Reservation, patch: DetailsPatch) -> DetailsPatch:
    if patch.is_empty():
        raise ValidationError("patch", "nothing to update")

    purpose = patch.purpose
    if purpose is not None:
        purpose = _require_text(purpose, "purpose")
        _check_purpose(purpose)

    remarks = patch.remarks
    if remarks is not None:
        remarks = _require_text(remarks, "remarks")
        _check_remarks(remarks)

    advisor = patch.advisor
    if advisor is not None:
        advisor = _clean_text(advisor)
        if advisor is None and reservation.user_role != ActorRole.INSTRUCTOR:
            raise ValidationError("advisor", "an advisor is required unless the requester is an Instructor")

    return DetailsPatch(
        purpose=purpose,
        advisor=(advisor or "") if patch.advisor is not None else None,
        remarks=remarks,
        participants=(clean_participants(patch.participants) if patch.participants is not None else None),
        equipments=(clean_equipments(patch.equipments) if patch.equipments is not None else None),
    )


def check_time_range(start: time, end: time, settings: Settings) -> None:
    """Reject a start/end pair that the booking grid does not offer.

    Times sit on ``slot_minutes`` steps (half hours by default), within
    operating hours, and last between the configured minimum and maximum.
    """
    hours = duration(start, end)
    if hours <= 0:
        raise ValidationError("end_time", "end time must be after start time")
    for field, value in (("start_time", start), ("end_time", end)):
        if value.minute % settings.slot_minutes:
            raise ValidationError(field, f"times must fall on {settings.slot_minutes}-minute steps (got {format_24_hour(value)})")
    if start < settings.operating_start or end > settings.operating_end:
        raise ValidationError(
            "start_time",
            f"reservations must fall within operating hours "
            f"({format_24_hour(settings.operating_start)}-{format_24_hour(settings.operating_end)})",
        )
    if settings.min_duration_hours is not None and hours < settings.min_duration_hours:
        raise ValidationError("end_time", f"reservations must last at least {settings.min_duration_hours:g} hour(s)")
    if settings.max_duration_hours is not None and hours > settings.max_duration_hours:
        raise ValidationError("end_time", f"reservations may last at most {settings.max_duration_hours:g} hour(s)")


def check_booking_day(day: date, settings: Settings, today: date) -> None:
    if day < today:
        raise ValidationError("dates", f"{day.isoformat()} is in the past")
    if settings.reservation_window_days is not None and day > today + timedelta(days=settings.reservation_window_days):
        raise ValidationError("dates", f"{day.isoformat()} is more than {settings.reservation_window_days} days ahead")
    if day.weekday() in settings.closed_weekdays:
        raise ValidationError("dates", f"rooms are closed on {day:%A}s")
    if settings.holiday_country and is_holiday(day, settings.holiday_country):
        raise ValidationError("dates", f"{day.isoformat()} is a public holiday")


_HOLIDAY_CACHE: dict[tuple[str, int], set[date]] = {}


def is_holiday(target_date: date, country: str) -> bool:
    key = (country.upper(), target_date.year)
    if key not in _HOLIDAY_CACHE:
        holiday_map = pyholidays.country_holidays(key[0], years=[target_date.year])
        _HOLIDAY_CACHE[key] = set(holiday_map.keys())
    return target_date in _HOLIDAY_CACHE[key]


def holidays_between(start: date, end: date, country: str | None) -> list[date]:
    if not country:
        return []
    cursor = start
    found: list[date] = []
    while cursor <= end:
        if is_holiday(cursor, country):
            found.append(cursor)
        cursor += timedelta(days=1)
    return found


def _check_purpose(purpose: str) -> None:
    if purpose not in PURPOSES:
        raise ValidationError("purpose", f"unknown purpose {purpose!r}")


def _check_remarks(remarks: str) -> None:
    if len(remarks) > REMARKS_MAX_LENGTH:
        raise ValidationError("remarks", f"remarks must be at most {REMARKS_MAX_LENGTH} characters")


def _require(value: object, field: str) -> None:
    if isinstance(value, str):
        value = value.strip()
    if value is None or (isinstance(value, (str, tuple, list)) and not value):
        raise ValidationError(field, "this field is required")


def _require_text(value: str | None, field: str) -> str:
    cleaned = _clean_text(value)
    if cleaned is None:
        raise ValidationError(field, "this field is required")
    return cleaned


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None

