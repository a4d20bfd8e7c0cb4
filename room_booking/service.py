from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Callable

from .app_logger import get_logger
from .availability import ensure_available, find_conflicts, free_intervals
from .calendar import CalendarSlot, CalendarWeek, CalendarWindow, project_week
from .config import Settings
from .errors import AuthorizationError, ConflictError, IllegalStateError, ReservationNotFoundError, ValidationError
from .events import ChangeBus, ChangeHandler, ReservationChanged, Unsubscribe, default_bus
from .lifecycle import resolve_transition, validate_command, validate_patch
from .models import (
    ACTIVE_STATUSES,
    Actor,
    DetailsPatch,
    Reservation,
    ReservationCommand,
    ReservationFilter,
    ReservationStatus,
    parse_status,
)
from .ports import ReservationDraft, ReservationStore
from .timeline import parse_date, week_start

logger = get_logger(__name__)


class ReservationService:
    """Commands and queries of the scheduling core, written against a store port.

    Every successful mutation publishes one ``ReservationChanged`` event on the
    bus. This class is the only writer of a reservation's ``status``.
    """

    def __init__(
        self,
        store: ReservationStore,
        settings: Settings | None = None,
        bus: ChangeBus | None = None,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.bus = bus if bus is not None else default_bus
        self.clock: Callable[[], datetime] = now_provider or datetime.now

    async def list_reservations(self, reservation_filter: ReservationFilter | None = None) -> list[Reservation]:
        return await self.store.list_reservations(reservation_filter)

    async def get_reservation(self, reservation_id: str) -> Reservation:
        reservation = await self.store.get_reservation(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        return reservation

    async def create_reservation(self, command: ReservationCommand) -> Reservation:
        now = self.clock()
        request = validate_command(command, self.settings, now.date())

        for room_id in request.room_ids:
            room = await self.store.get_room(room_id)
            if room is None:
                raise ValidationError("room_ids", f"unknown room {room_id}")
            if not room.is_available:
                raise ValidationError("room_ids", f"{room.name} is not available for booking")

        active = await self.store.list_reservations(ReservationFilter(statuses=ACTIVE_STATUSES))
        if self.settings.reject_conflicts_at_creation:
            ensure_available(request.room_ids, request.slots, active)
        else:
            overlapping = find_conflicts(request.room_ids, request.slots, active)
            if overlapping:
                logger.info(
                    "New request by %s overlaps %d active slot(s); left for approval to resolve",
                    command.requester_id,
                    len(overlapping),
                )

        created = await self.store.create_reservation(
            ReservationDraft(
                user_id=command.requester_id,
                user_role=command.requester_role,
                full_name=(command.requester_name or "").strip(),
                room_ids=request.room_ids,
                purpose=request.purpose,
                remarks=request.remarks,
                advisor=request.advisor,
                participants=request.participants,
                equipments=request.equipments,
                schedules=request.slots,
                created_at=now,
            )
        )
        logger.info("Reservation %s created by %s", created.reservation_code, created.user_id)
        await self._publish(created, "created")
        return created

    async def update_reservation_status(
        self,
        reservation_id: str,
        status: ReservationStatus | str,
        actor: Actor,
    ) -> Reservation:
        target = parse_status(status)
        reservation = await self.get_reservation(reservation_id)
        transition = resolve_transition(reservation, target, actor)

        if target == ReservationStatus.APPROVED:
            await self._ensure_no_approved_conflict(reservation)

        updated = await self.store.update_reservation_status(reservation.id, target, reservation.status, self.clock())

        if target == ReservationStatus.APPROVED:
            await self._verify_approval(updated)

        logger.info("Reservation %s %s by %s", updated.reservation_code, transition.action, actor.user_id)
        await self._publish(updated, transition.action)
        return updated

    async def approve(self, reservation_id: str, actor: Actor) -> Reservation:
        return await self.update_reservation_status(reservation_id, ReservationStatus.APPROVED, actor)

    async def deny(self, reservation_id: str, actor: Actor) -> Reservation:
        return await self.update_reservation_status(reservation_id, ReservationStatus.DENIED, actor)

    async def cancel(self, reservation_id: str, actor: Actor) -> Reservation:
        return await self.update_reservation_status(reservation_id, ReservationStatus.CANCELLED, actor)

    async def close(self, reservation_id: str, actor: Actor) -> Reservation:
        return await self.update_reservation_status(reservation_id, ReservationStatus.CLOSED, actor)

    async def update_reservation_details(self, reservation_id: str, patch: DetailsPatch, actor: Actor) -> Reservation:
        reservation = await self.get_reservation(reservation_id)
        if reservation.status != ReservationStatus.PENDING:
            raise IllegalStateError(f"Reservation {reservation.reservation_code} is {reservation.status}; only Pending reservations can be edited.")
        if actor.user_id != reservation.user_id:
            raise AuthorizationError("Only the requester may edit a reservation.")

        cleaned = validate_patch(reservation, patch)
        updated = await self.store.update_reservation_details(reservation.id, cleaned, self.clock())
        logger.info("Reservation %s details updated by %s", updated.reservation_code, actor.user_id)
        await self._publish(updated, "updated")
        return updated

    async def get_room_schedule(self, room_id: int, start_date: date | str, end_date: date | str) -> list[CalendarSlot]:
        first = parse_date(start_date)
        last = parse_date(end_date)
        if first > last:
            raise ValidationError("date_range", "start date must not be after end date")
        return await self.store.get_room_schedule(room_id, first, last)

    async def get_week_calendar(
        self,
        room_id: int,
        week_of: date | str,
        viewer_id: str | None = None,
        window: CalendarWindow | None = None,
    ) -> CalendarWeek:
        first_day = week_start(week_of)
        slots = await self.get_room_schedule(room_id, first_day, first_day + timedelta(days=6))
        effective_window = window or CalendarWindow(
            self.settings.calendar_start_hour,
            self.settings.calendar_end_hour,
            self.settings.calendar_row_height,
        )
        return project_week(slots, first_day, effective_window, viewer_id, today=self.clock().date())

    async def get_free_intervals(self, room_id: int, day: date | str) -> list[tuple[str, str]]:
        reservations = await self.store.list_reservations(ReservationFilter(statuses=ACTIVE_STATUSES, room_id=room_id))
        gaps = free_intervals(
            room_id,
            parse_date(day),
            reservations,
            self.settings.operating_start,
            self.settings.operating_end,
        )
        return [(start.strftime("%H:%M"), end.strftime("%H:%M")) for start, end in gaps]

    def subscribe_to_changes(self, handler: ChangeHandler) -> Unsubscribe:
        return self.bus.subscribe(handler)

    async def _approved_reservations(self) -> list[Reservation]:
        # Read fresh on every call; approval must not trust an earlier snapshot.
        return await self.store.list_reservations(ReservationFilter(status=ReservationStatus.APPROVED))

    async def _ensure_no_approved_conflict(self, reservation: Reservation) -> None:
        approved = await self._approved_reservations()
        try:
            ensure_available(
                reservation.room_ids,
                reservation.schedules,
                approved,
                statuses={ReservationStatus.APPROVED},
                exclude_id=reservation.id,
            )
        except ConflictError:
            logger.warning("Approval of %s rejected: slot already approved", reservation.reservation_code)
            raise

    async def _verify_approval(self, approved: Reservation) -> None:
        """Roll back an approval that lost a race with another approval."""
        others = await self._approved_reservations()
        conflicts = find_conflicts(
            approved.room_ids,
            approved.schedules,
            others,
            statuses={ReservationStatus.APPROVED},
            exclude_id=approved.id,
        )
        if not conflicts:
            return

        logger.warning("Approval of %s raced with %s; rolling back", approved.reservation_code, conflicts[0].reservation_code)
        await self.store.update_reservation_status(approved.id, ReservationStatus.PENDING, ReservationStatus.APPROVED, self.clock())
        raise ConflictError(
            f"Reservation {approved.reservation_code} conflicts with approved reservation {conflicts[0].reservation_code}.",
            conflicts,
        )

    async def _publish(self, reservation: Reservation, action: str) -> None:
        self.bus.publish(ReservationChanged(reservation_id=reservation.id, status=reservation.status, action=action))
        # Callers such as Flask async views tear their loop down on return.
        await self.bus.drain()
