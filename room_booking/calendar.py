from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import Any, Iterable

from .config import CALENDAR_END_HOUR, CALENDAR_ROW_HEIGHT, CALENDAR_START_HOUR
from .errors import ValidationError
from .models import ActorRole, Reservation, ReservationStatus
from .timeline import day_index_of, duration, format_12_hour, to_decimal_hours, week_start

COLOR_MINE = "mine"
COLOR_ADMIN = "admin"
COLOR_INSTRUCTOR = "instructor"
COLOR_OTHER = "other"


@dataclass(frozen=True)
class CalendarWindow:
    start_hour: int = CALENDAR_START_HOUR
    end_hour: int = CALENDAR_END_HOUR
    row_height: float = CALENDAR_ROW_HEIGHT

    def __post_init__(self) -> None:
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise ValidationError("window", "calendar window must satisfy 0 <= start_hour < end_hour <= 24")
        if self.row_height <= 0:
            raise ValidationError("row_height", "row height must be positive")

    @property
    def total_half_hours(self) -> int:
        return (self.end_hour - self.start_hour) * 2


@dataclass(frozen=True)
class CalendarSlot:
    """One schedule slot annotated with what the calendar needs to draw it."""

    schedule_id: str
    reservation_id: str
    date: date
    start_time: time
    end_time: time
    owner_id: str
    owner_role: str
    remarks: str = ""
    status: ReservationStatus = ReservationStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "schedule_id": self.schedule_id,
            "reservation_id": self.reservation_id,
            "date": self.date.isoformat(),
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "user_id": self.owner_id,
            "user_type": self.owner_role,
            "remarks": self.remarks,
            "status": str(self.status),
        }


@dataclass(frozen=True)
class CalendarBlock:
    slot: CalendarSlot
    day: int
    top: float
    height: float
    color: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.slot.schedule_id,
            "reservation_id": self.slot.reservation_id,
            "day": self.day,
            "top": self.top,
            "height": self.height,
            "color": self.color,
            "start_time": format_12_hour(self.slot.start_time),
            "end_time": format_12_hour(self.slot.end_time),
            "remarks": self.slot.remarks,
            "status": str(self.slot.status),
        }


@dataclass(frozen=True)
class CalendarWeek:
    week_start: date
    window: CalendarWindow
    days: tuple[date, ...]
    past_days: tuple[bool, ...]
    blocks: tuple[CalendarBlock, ...]

    def blocks_on(self, day: int) -> list[CalendarBlock]:
        return [block for block in self.blocks if block.day == day]

    def to_dict(self) -> dict[str, Any]:
        return {
            "week_start": self.week_start.isoformat(),
            "start_hour": self.window.start_hour,
            "end_hour": self.window.end_hour,
            "row_height": self.window.row_height,
            "total_half_hours": self.window.total_half_hours,
            "days": [
                {"date": day.isoformat(), "is_past": is_past}
                for day, is_past in zip(self.days, self.past_days)
            ],
            "events": [block.to_dict() for block in self.blocks],
        }


def color_bucket(owner_id: str, owner_role: str, viewer_id: str | None) -> str:
    if viewer_id is not None and owner_id == viewer_id:
        return COLOR_MINE
    if owner_role == ActorRole.ADMIN:
        return COLOR_ADMIN
    if owner_role == ActorRole.INSTRUCTOR:
        return COLOR_INSTRUCTOR
    return COLOR_OTHER


def project_slot(
    slot: CalendarSlot,
    window: CalendarWindow,
    week_first_day: date,
    viewer_id: str | None = None,
) -> CalendarBlock | None:
    """Lay out one slot, or return None when it falls outside the week or window.

    Slots are dropped rather than clipped: a slot that only partly leaves the
    window is still drawn at its full height.
    """
    offset = (slot.date - week_first_day).days
    if not 0 <= offset <= 6:
        return None

    start_hours = to_decimal_hours(slot.start_time)
    end_hours = to_decimal_hours(slot.end_time)
    if end_hours <= window.start_hour or start_hours >= window.end_hour:
        return None

    scale = 2 * window.row_height
    return CalendarBlock(
        slot=slot,
        day=day_index_of(slot.date),
        top=(start_hours - window.start_hour) * scale,
        height=duration(slot.start_time, slot.end_time) * scale,
        color=color_bucket(slot.owner_id, slot.owner_role, viewer_id),
    )


def project_week(
    slots: Iterable[CalendarSlot],
    week_of: date,
    window: CalendarWindow | None = None,
    viewer_id: str | None = None,
    today: date | None = None,
) -> CalendarWeek:
    effective_window = window or CalendarWindow()
    first_day = week_start(week_of)
    days = tuple(first_day + timedelta(days=offset) for offset in range(7))

    blocks = [
        block
        for block in (project_slot(slot, effective_window, first_day, viewer_id) for slot in slots)
        if block is not None
    ]
    blocks.sort(key=lambda block: (block.day, block.top, block.slot.schedule_id))

    return CalendarWeek(
        week_start=first_day,
        window=effective_window,
        days=days,
        past_days=tuple(today is not None and day < today for day in days),
        blocks=tuple(blocks),
    )


def calendar_slots(
    room_id: int,
    reservations: Iterable[Reservation],
    start_date: date,
    end_date: date,
    statuses: Iterable[ReservationStatus],
) -> list[CalendarSlot]:
    counted = frozenset(statuses)
    slots: list[CalendarSlot] = []
    for reservation in reservations:
        if reservation.status not in counted or room_id not in reservation.room_ids:
            continue
        for index, slot in enumerate(reservation.schedules):
            if not start_date <= slot.date <= end_date:
                continue
            slots.append(
                CalendarSlot(
                    schedule_id=f"{reservation.id}:{index}",
                    reservation_id=reservation.id,
                    date=slot.date,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    owner_id=reservation.user_id,
                    owner_role=str(reservation.user_role),
                    remarks=reservation.remarks,
                    status=reservation.status,
                )
            )
    slots.sort(key=lambda item: (item.date, item.start_time, item.schedule_id))
    return slots
