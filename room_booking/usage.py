from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Iterable

from .models import Reservation, ReservationStatus, Room
from .timeline import duration


@dataclass(frozen=True)
class RoomUsage:
    room_id: int
    room_name: str
    total_hours: float
    reservation_count: int

    def to_dict(self) -> dict[str, object]:
        return {
            "room_id": self.room_id,
            "room_name": self.room_name,
            "total_hours": round(self.total_hours, 2),
            "reservation_count": self.reservation_count,
        }


def reserved_hours(reservation: Reservation) -> float:
    return sum(duration(slot.start_time, slot.end_time) for slot in reservation.schedules)


def room_usage(
    reservations: Iterable[Reservation],
    rooms: Iterable[Room],
    statuses: Iterable[ReservationStatus] = (ReservationStatus.APPROVED,),
) -> list[RoomUsage]:
    """Booked hours and reservation counts per room, busiest room first.

    A reservation spanning several rooms counts its full hours for each room.
    """
    counted = frozenset(statuses)
    hours: dict[int, float] = defaultdict(float)
    counts: Counter[int] = Counter()
    for reservation in reservations:
        if reservation.status not in counted:
            continue
        for room_id in reservation.room_ids:
            hours[room_id] += reserved_hours(reservation)
            counts[room_id] += 1

    usage = [
        RoomUsage(room_id=room.id, room_name=room.name, total_hours=hours.get(room.id, 0.0), reservation_count=counts.get(room.id, 0))
        for room in rooms
    ]
    return sorted(usage, key=lambda row: (-row.total_hours, row.room_id))


def usage_by_purpose(
    reservations: Iterable[Reservation],
    rooms: Iterable[Room],
    statuses: Iterable[ReservationStatus] = (ReservationStatus.APPROVED,),
) -> list[dict[str, object]]:
    counted = frozenset(statuses)
    names = {room.id: room.name for room in rooms}
    hours: dict[tuple[int, str], float] = defaultdict(float)
    for reservation in reservations:
        if reservation.status not in counted:
            continue
        for room_id in reservation.room_ids:
            hours[(room_id, reservation.purpose)] += reserved_hours(reservation)

    return [
        {
            "room_id": room_id,
            "room_name": names.get(room_id, str(room_id)),
            "purpose": purpose,
            "total_hours": round(total, 2),
        }
        for (room_id, purpose), total in sorted(hours.items())
    ]


def monthly_totals(reservations: Iterable[Reservation], status: ReservationStatus, year: int) -> list[int]:
    """Reservations created in each month of ``year`` that currently have ``status``."""
    totals = [0] * 12
    for reservation in reservations:
        if reservation.status == status and reservation.created_at.year == year:
            totals[reservation.created_at.month - 1] += 1
    return totals


def status_counts(reservations: Iterable[Reservation]) -> dict[str, int]:
    counts = Counter(str(reservation.status) for reservation in reservations)
    return {str(status): counts.get(str(status), 0) for status in ReservationStatus}
