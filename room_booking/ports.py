from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol

from .calendar import CalendarSlot
from .models import DetailsPatch, Reservation, ReservationFilter, ReservationStatus, Room, ScheduleSlot


@dataclass(frozen=True)
class ReservationDraft:
    """A validated reservation that the store has not numbered yet."""

    user_id: str
    user_role: str
    full_name: str
    room_ids: tuple[int, ...]
    purpose: str
    remarks: str
    advisor: str | None
    participants: tuple[str, ...]
    equipments: tuple[str, ...]
    schedules: tuple[ScheduleSlot, ...]
    created_at: datetime


class ReservationStore(Protocol):
    """Query/RPC interface the scheduling core needs from persistence."""

    async def list_rooms(self) -> list[Room]: ...

    async def get_room(self, room_id: int) -> Room | None: ...

    async def list_reservations(self, reservation_filter: ReservationFilter | None = None) -> list[Reservation]: ...

    async def get_reservation(self, reservation_id: str) -> Reservation | None: ...

    async def create_reservation(self, draft: ReservationDraft) -> Reservation: ...

    async def update_reservation_status(
        self,
        reservation_id: str,
        status: ReservationStatus,
        expected: ReservationStatus,
        now: datetime,
    ) -> Reservation:
        """Set ``status`` only if the stored status still equals ``expected``.

        Raises ``IllegalStateError`` when another writer changed it first.
        """
        ...

    async def update_reservation_details(self, reservation_id: str, patch: DetailsPatch, now: datetime) -> Reservation: ...

    async def get_room_schedule(self, room_id: int, start_date: date, end_date: date) -> list[CalendarSlot]: ...
