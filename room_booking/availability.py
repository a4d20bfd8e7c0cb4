from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from typing import Iterable, Sequence

from .app_logger import get_logger
from .errors import ConflictError, ValidationError
from .models import ACTIVE_STATUSES, Reservation, ReservationStatus, ScheduleSlot

logger = get_logger(__name__)


@dataclass(frozen=True)
class SlotConflict:
    room_id: int
    date: date
    requested_start: time
    requested_end: time
    reservation_id: str
    reservation_code: str
    status: ReservationStatus
    existing_start: time
    existing_end: time

    def to_dict(self) -> dict[str, str | int]:
        return {
            "room_id": self.room_id,
            "date": self.date.isoformat(),
            "requested_start": self.requested_start.strftime("%H:%M"),
            "requested_end": self.requested_end.strftime("%H:%M"),
            "reservation_id": self.reservation_id,
            "reservation_code": self.reservation_code,
            "status": str(self.status),
            "existing_start": self.existing_start.strftime("%H:%M"),
            "existing_end": self.existing_end.strftime("%H:%M"),
        }


@dataclass(frozen=True)
class OccupiedInterval:
    room_id: int
    date: date
    start_time: time
    end_time: time
    reservation_id: str
    status: ReservationStatus


def has_time_overlap(new_start: time, new_end: time, exist_start: time, exist_end: time) -> bool:
    """Return True when two time intervals overlap by even one minute.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 10:00-11:00 and 11:00-12:00) do not overlap.
    """
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")
    if exist_start >= exist_end:
        raise ValueError("exist_start must be earlier than exist_end.")

    return new_start < exist_end and new_end > exist_start


def slots_conflict(first: ScheduleSlot, second: ScheduleSlot) -> bool:
    if first.date != second.date:
        return False
    return has_time_overlap(first.start_time, first.end_time, second.start_time, second.end_time)


def find_conflicts(
    room_ids: Iterable[int],
    slots: Iterable[ScheduleSlot],
    reservations: Iterable[Reservation],
    statuses: Iterable[ReservationStatus] = ACTIVE_STATUSES,
    exclude_id: str | None = None,
) -> list[SlotConflict]:
    """Every overlap between the candidate slots and existing reservations.

    Only reservations whose status is in ``statuses`` count; ``Denied``,
    ``Cancelled`` and ``Closed`` are never considered even if passed in.
    """
    counted = frozenset(statuses) & ACTIVE_STATUSES
    wanted_rooms = set(room_ids)
    candidates = list(slots)

    conflicts: list[SlotConflict] = []
    for reservation in reservations:
        if reservation.id == exclude_id or reservation.status not in counted:
            continue
        shared_rooms = sorted(wanted_rooms.intersection(reservation.room_ids))
        if not shared_rooms:
            continue
        for existing in reservation.schedules:
            for candidate in candidates:
                if not slots_conflict(candidate, existing):
                    continue
                for room_id in shared_rooms:
                    conflicts.append(
                        SlotConflict(
                            room_id=room_id,
                            date=candidate.date,
                            requested_start=candidate.start_time,
                            requested_end=candidate.end_time,
                            reservation_id=reservation.id,
                            reservation_code=reservation.reservation_code,
                            status=reservation.status,
                            existing_start=existing.start_time,
                            existing_end=existing.end_time,
                        )
                    )

    conflicts.sort(key=lambda item: (item.date, item.requested_start, item.room_id, item.existing_start))
    return conflicts


def can_reserve(
    room_ids: Iterable[int],
    slots: Iterable[ScheduleSlot],
    reservations: Iterable[Reservation],
    statuses: Iterable[ReservationStatus] = ACTIVE_STATUSES,
) -> bool:
    return not find_conflicts(room_ids, slots, reservations, statuses)


def ensure_available(
    room_ids: Iterable[int],
    slots: Iterable[ScheduleSlot],
    reservations: Iterable[Reservation],
    statuses: Iterable[ReservationStatus] = ACTIVE_STATUSES,
    exclude_id: str | None = None,
) -> None:
    conflicts = find_conflicts(room_ids, slots, reservations, statuses, exclude_id)
    if conflicts:
        first = conflicts[0]
        logger.debug("Slot conflict on room %s at %s with %s", first.room_id, first.date, first.reservation_code)
        raise ConflictError(
            f"Room {first.room_id} is already booked on {first.date.isoformat()} "
            f"{first.existing_start:%H:%M}-{first.existing_end:%H:%M} ({first.reservation_code}).",
            conflicts,
        )


def occupied_intervals(
    room_id: int,
    reservations: Iterable[Reservation],
    start_date: date,
    end_date: date,
    statuses: Iterable[ReservationStatus] = ACTIVE_STATUSES,
) -> list[OccupiedInterval]:
    """Occupied slots of one room between two dates, both inclusive."""
    if start_date > end_date:
        raise ValidationError("date_range", "start date must not be after end date")

    counted = frozenset(statuses)
    intervals = [
        OccupiedInterval(
            room_id=room_id,
            date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            reservation_id=reservation.id,
            status=reservation.status,
        )
        for reservation in reservations
        if reservation.status in counted and room_id in reservation.room_ids
        for slot in reservation.schedules
        if start_date <= slot.date <= end_date
    ]
    intervals.sort(key=lambda item: (item.date, item.start_time, item.end_time))
    return intervals


def free_intervals(
    room_id: int,
    day: date,
    reservations: Iterable[Reservation],
    opening: time,
    closing: time,
    statuses: Iterable[ReservationStatus] = ACTIVE_STATUSES,
) -> list[tuple[time, time]]:
    """Gaps within ``opening``-``closing`` that no counted reservation occupies."""
    busy: Sequence[OccupiedInterval] = occupied_intervals(room_id, reservations, day, day, statuses)

    gaps: list[tuple[time, time]] = []
    cursor = opening
    for interval in busy:
        if interval.end_time <= cursor:
            continue
        if interval.start_time >= closing:
            break
        if interval.start_time > cursor:
            gaps.append((cursor, interval.start_time))
        cursor = max(cursor, interval.end_time)
    if cursor < closing:
        gaps.append((cursor, closing))
    return gaps
