from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time
from enum import StrEnum
from typing import Any, Iterable

from .errors import ValidationError
from .timeline import format_24_hour, parse_date, parse_time


class ReservationStatus(StrEnum):
    PENDING = "Pending"
    APPROVED = "Approved"
    DENIED = "Denied"
    CANCELLED = "Cancelled"
    CLOSED = "Closed"


ACTIVE_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.APPROVED})
HISTORY_STATUSES = frozenset({ReservationStatus.DENIED, ReservationStatus.CANCELLED, ReservationStatus.CLOSED})


class ActorRole(StrEnum):
    ADMIN = "Admin"
    INSTRUCTOR = "Instructor"
    STUDENT = "Student"


class RoomStatus(StrEnum):
    AVAILABLE = "Available"
    UNAVAILABLE = "Unavailable"


PURPOSES = (
    "IT Project-Related",
    "Research-Related",
    "Academic Requirement",
    "Thesis / Capstone",
    "Event / Activity",
    "Training / Workshop",
    "Maintenance Work",
    "Administrative Task",
    "Meeting / Consultation",
    "System Testing",
    "Department Request",
    "Facility Use",
    "Other",
)

EQUIPMENT_VOCABULARY = (
    "Laptop",
    "Router",
    "Projector",
    "Extension Cord",
    "HDMI Cable",
    "Arduino",
)

REMARKS_MAX_LENGTH = 30


def parse_status(value: str | ReservationStatus) -> ReservationStatus:
    try:
        return ReservationStatus(str(value).strip().capitalize())
    except ValueError as error:
        raise ValidationError("status", f"unknown reservation status {value!r}") from error


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str
    full_name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


@dataclass(frozen=True)
class Room:
    id: int
    name: str
    room: str = ""
    capacity: int = 0
    status: RoomStatus = RoomStatus.AVAILABLE
    description: str = ""

    @property
    def is_available(self) -> bool:
        return self.status == RoomStatus.AVAILABLE

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "room": self.room,
            "capacity": self.capacity,
            "status": str(self.status),
            "description": self.description,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Room":
        return Room(
            id=int(data["id"]),
            name=str(data["name"]),
            room=str(data.get("room") or ""),
            capacity=int(data.get("capacity") or 0),
            status=RoomStatus(str(data.get("status") or RoomStatus.AVAILABLE)),
            description=str(data.get("description") or ""),
        )


@dataclass(frozen=True)
class ScheduleSlot:
    date: date
    start_time: time
    end_time: time

    def __post_init__(self) -> None:
        if self.start_time >= self.end_time:
            raise ValidationError("end_time", "end time must be after start time")

    @staticmethod
    def build(day: str | date, start: str | time, end: str | time) -> "ScheduleSlot":
        return ScheduleSlot(parse_date(day), parse_time(start), parse_time(end))

    def to_dict(self) -> dict[str, str]:
        return {
            "date": self.date.isoformat(),
            "start_time": format_24_hour(self.start_time),
            "end_time": format_24_hour(self.end_time),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "ScheduleSlot":
        return ScheduleSlot.build(str(data["date"]), str(data["start_time"]), str(data["end_time"]))


@dataclass(frozen=True)
class Reservation:
    id: str
    reservation_code: str
    user_id: str
    room_ids: tuple[int, ...]
    purpose: str
    remarks: str
    status: ReservationStatus
    schedules: tuple[ScheduleSlot, ...]
    created_at: datetime
    updated_at: datetime
    full_name: str = ""
    user_role: str = ActorRole.STUDENT
    advisor: str | None = None
    participants: tuple[str, ...] = ()
    equipments: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.room_ids:
            raise ValidationError("room_ids", "a reservation needs at least one room")
        if not self.schedules:
            raise ValidationError("schedules", "a reservation needs at least one schedule slot")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def with_status(self, status: ReservationStatus, updated_at: datetime) -> "Reservation":
        return replace(self, status=status, updated_at=updated_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "reservation_code": self.reservation_code,
            "user_id": self.user_id,
            "full_name": self.full_name,
            "user_role": str(self.user_role),
            "room_ids": list(self.room_ids),
            "purpose": self.purpose,
            "remarks": self.remarks,
            "advisor": self.advisor,
            "participants": list(self.participants),
            "equipments": list(self.equipments),
            "status": str(self.status),
            "schedules": [slot.to_dict() for slot in self.schedules],
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Reservation":
        return Reservation(
            id=str(data["id"]),
            reservation_code=str(data["reservation_code"]),
            user_id=str(data["user_id"]),
            full_name=str(data.get("full_name") or ""),
            user_role=str(data.get("user_role") or ActorRole.STUDENT),
            room_ids=tuple(int(value) for value in data.get("room_ids") or []),
            purpose=str(data["purpose"]),
            remarks=str(data.get("remarks") or ""),
            advisor=(str(data["advisor"]) if data.get("advisor") else None),
            participants=tuple(str(value) for value in data.get("participants") or []),
            equipments=tuple(str(value) for value in data.get("equipments") or []),
            status=parse_status(str(data["status"])),
            schedules=tuple(ScheduleSlot.from_dict(row) for row in data.get("schedules") or []),
            created_at=datetime.fromisoformat(str(data["created_at"])),
            updated_at=datetime.fromisoformat(str(data["updated_at"])),
        )


@dataclass(frozen=True)
class ReservationCommand:
    """Everything a requester submits to create a reservation.

    One start/end pair is applied to every date in ``dates``.
    """

    requester_id: str
    requester_role: str
    room_ids: tuple[int, ...]
    purpose: str | None
    dates: tuple[date, ...]
    start_time: str | time | None
    end_time: str | time | None
    remarks: str | None
    advisor: str | None = None
    participants: tuple[str, ...] = ()
    equipments: tuple[str, ...] = ()
    requester_name: str | None = None

    @staticmethod
    def from_dict(data: dict[str, Any], actor: Actor) -> "ReservationCommand":
        dates = data.get("dates")
        if dates is None and data.get("date") is not None:
            dates = [data["date"]]
        return ReservationCommand(
            requester_id=actor.user_id,
            requester_role=actor.role,
            requester_name=actor.full_name,
            room_ids=tuple(int(value) for value in _as_list(data.get("room_ids"))),
            purpose=data.get("purpose"),
            dates=tuple(parse_date(value) for value in _as_list(dates)),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            remarks=data.get("remarks"),
            advisor=data.get("advisor"),
            participants=tuple(str(value) for value in _as_list(data.get("participants"))),
            equipments=tuple(str(value) for value in _as_list(data.get("equipments"))),
        )


@dataclass(frozen=True)
class DetailsPatch:
    purpose: str | None = None
    advisor: str | None = None
    remarks: str | None = None
    participants: tuple[str, ...] | None = None
    equipments: tuple[str, ...] | None = None

    def is_empty(self) -> bool:
        return all(value is None for value in (self.purpose, self.advisor, self.remarks, self.participants, self.equipments))

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "DetailsPatch":
        return DetailsPatch(
            purpose=data.get("purpose"),
            advisor=data.get("advisor"),
            remarks=data.get("remarks"),
            participants=(tuple(str(value) for value in _as_list(data["participants"])) if "participants" in data else None),
            equipments=(tuple(str(value) for value in _as_list(data["equipments"])) if "equipments" in data else None),
        )


@dataclass(frozen=True)
class ReservationFilter:
    user_id: str | None = None
    status: ReservationStatus | None = None
    statuses: frozenset[ReservationStatus] | None = None
    code_contains: str | None = None
    name_contains: str | None = None
    room_id: int | None = None
    sort_field: str = "created_at"
    sort_order: str = "desc"
    page: int = 1
    page_size: int | None = None

    def matches(self, reservation: Reservation) -> bool:
        if self.user_id is not None and reservation.user_id != self.user_id:
            return False
        if self.status is not None and reservation.status != self.status:
            return False
        if self.statuses is not None and reservation.status not in self.statuses:
            return False
        if self.code_contains and self.code_contains.lower() not in reservation.reservation_code.lower():
            return False
        if self.name_contains and self.name_contains.lower() not in reservation.full_name.lower():
            return False
        if self.room_id is not None and self.room_id not in reservation.room_ids:
            return False
        return True

    def apply(self, reservations: Iterable[Reservation]) -> list[Reservation]:
        matched = [reservation for reservation in reservations if self.matches(reservation)]
        matched.sort(key=lambda reservation: _sort_key(reservation, self.sort_field), reverse=self.sort_order == "desc")
        if self.page_size is None:
            return matched
        offset = (max(self.page, 1) - 1) * self.page_size
        return matched[offset : offset + self.page_size]


_SORTABLE_FIELDS = {
    "created_at",
    "updated_at",
    "reservation_code",
    "full_name",
    "purpose",
    "status",
    "remarks",
}


def _sort_key(reservation: Reservation, sort_field: str) -> Any:
    if sort_field == "date":
        return min(slot.date for slot in reservation.schedules)
    if sort_field not in _SORTABLE_FIELDS:
        raise ValidationError("sort", f"cannot sort by {sort_field!r}")
    value = getattr(reservation, sort_field)
    return value.lower() if isinstance(value, str) else value


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def clean_participants(participants: Iterable[str]) -> tuple[str, ...]:
    return tuple(name.strip() for name in participants if name and name.strip())


def clean_equipments(equipments: Iterable[str]) -> tuple[str, ...]:
    """Drop blanks and duplicates; vocabulary tags keep their canonical spelling."""
    canonical = {tag.lower(): tag for tag in EQUIPMENT_VOCABULARY}
    cleaned: list[str] = []
    seen: set[str] = set()
    for raw in equipments:
        tag = (raw or "").strip()
        if not tag:
            continue
        key = tag.lower()
        if key in seen:
            continue
        seen.add(key)
        cleaned.append(canonical.get(key, tag))
    return tuple(cleaned)
