from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any
import random
import shutil
from uuid import UUID, uuid4

import yaml

from .app_logger import get_logger
from .calendar import CalendarSlot, calendar_slots
from .config import CLOSED_WEEKDAYS, OPERATING_END, OPERATING_START
from .errors import IllegalStateError, ReservationError, ReservationNotFoundError, StorageError
from .models import (
    ACTIVE_STATUSES,
    EQUIPMENT_VOCABULARY,
    PURPOSES,
    ActorRole,
    DetailsPatch,
    Reservation,
    ReservationFilter,
    ReservationStatus,
    Room,
    RoomStatus,
    ScheduleSlot,
)
from .ports import ReservationDraft

logger = get_logger(__name__)

CODE_PREFIX = "RES"

DEFAULT_ROOMS = [
    Room(id=index, name=f"Room {index}", room=label, capacity=capacity)
    for index, label, capacity in [
        (1, "Computer Laboratory A", 40),
        (2, "Computer Laboratory B", 40),
        (3, "Networking Laboratory", 30),
        (4, "Electronics Laboratory", 25),
        (5, "Research Room", 12),
        (6, "Conference Room", 20),
    ]
]


class ReservationYamlRepository:
    """``ReservationStore`` backed by three YAML files in ``base_dir``.

    ``rooms.yaml`` and ``reservations.yaml`` hold the records;
    ``reservation_events.yaml`` is an append-only log of every mutation.
    """

    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.rooms_file = self.base_dir / "rooms.yaml"
        self.reservations_file = self.base_dir / "reservations.yaml"
        self.log_file = self.base_dir / "reservation_events.yaml"
        self._ensure_files()

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        for path in (self.rooms_file, self.reservations_file, self.log_file):
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            else:
                self._log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise StorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            logger.warning("Could not back up corrupted file %s", path)

        logger.error("Recovered corrupted YAML file %s: %s", path.name, error)
        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def _log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or datetime.now()).isoformat(timespec="seconds")
        events = self._read_yaml_list(self.log_file)
        events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
        self._write_yaml_list(self.log_file, events)

    def _load_reservations(self) -> list[Reservation]:
        reservations: list[Reservation] = []
        for index, row in enumerate(self._read_yaml_list(self.reservations_file)):
            try:
                reservations.append(Reservation.from_dict(row))
            except (KeyError, TypeError, ValueError, ReservationError) as error:
                logger.warning("Skipping unreadable reservation row %s: %s", index, error)
        return reservations

    def _save_reservations(self, reservations: list[Reservation]) -> None:
        self._write_yaml_list(self.reservations_file, [reservation.to_dict() for reservation in reservations])

    def _find(self, reservations: list[Reservation], reservation_id: str) -> int:
        for index, reservation in enumerate(reservations):
            if reservation.id == reservation_id:
                return index
        raise ReservationNotFoundError(reservation_id)

    def _next_code(self, reservations: list[Reservation], created_at: datetime) -> str:
        prefix = f"{CODE_PREFIX}-{created_at:%Y%m%d}-"
        used = [
            int(reservation.reservation_code[len(prefix) :])
            for reservation in reservations
            if reservation.reservation_code.startswith(prefix) and reservation.reservation_code[len(prefix) :].isdigit()
        ]
        return f"{prefix}{max(used, default=0) + 1:04d}"

    def get_rooms(self) -> list[Room]:
        return [Room.from_dict(row) for row in self._read_yaml_list(self.rooms_file)]

    def get_reservations(self) -> list[Reservation]:
        return self._load_reservations()

    def get_events(self) -> list[dict[str, Any]]:
        return self._read_yaml_list(self.log_file)

    async def list_rooms(self) -> list[Room]:
        return sorted(self.get_rooms(), key=lambda room: room.id)

    async def get_room(self, room_id: int) -> Room | None:
        for room in self.get_rooms():
            if room.id == room_id:
                return room
        return None

    async def list_reservations(self, reservation_filter: ReservationFilter | None = None) -> list[Reservation]:
        return (reservation_filter or ReservationFilter()).apply(self._load_reservations())

    async def get_reservation(self, reservation_id: str) -> Reservation | None:
        for reservation in self._load_reservations():
            if reservation.id == reservation_id:
                return reservation
        return None

    async def create_reservation(self, draft: ReservationDraft) -> Reservation:
        reservations = self._load_reservations()
        record = Reservation(
            id=str(uuid4()),
            reservation_code=self._next_code(reservations, draft.created_at),
            user_id=draft.user_id,
            full_name=draft.full_name,
            user_role=draft.user_role,
            room_ids=draft.room_ids,
            purpose=draft.purpose,
            remarks=draft.remarks,
            advisor=draft.advisor,
            participants=draft.participants,
            equipments=draft.equipments,
            status=ReservationStatus.PENDING,
            schedules=draft.schedules,
            created_at=draft.created_at,
            updated_at=draft.created_at,
        )
        reservations.append(record)
        self._save_reservations(reservations)

        self._log_event(
            "RESERVATION_CREATED",
            {
                "reservation_id": record.id,
                "reservation_code": record.reservation_code,
                "user_id": record.user_id,
                "room_ids": list(record.room_ids),
                "schedules": [slot.to_dict() for slot in record.schedules],
            },
            draft.created_at,
        )
        return record

    async def update_reservation_status(
        self,
        reservation_id: str,
        status: ReservationStatus,
        expected: ReservationStatus,
        now: datetime,
    ) -> Reservation:
        reservations = self._load_reservations()
        index = self._find(reservations, reservation_id)
        current = reservations[index]
        if current.status != expected:
            raise IllegalStateError(
                f"Reservation {current.reservation_code} is {current.status}, expected {expected}."
            )

        updated = current.with_status(status, now)
        reservations[index] = updated
        self._save_reservations(reservations)

        self._log_event(
            "RESERVATION_STATUS_CHANGED",
            {
                "reservation_id": reservation_id,
                "reservation_code": updated.reservation_code,
                "from": str(expected),
                "to": str(status),
            },
            now,
        )
        return updated

    async def update_reservation_details(self, reservation_id: str, patch: DetailsPatch, now: datetime) -> Reservation:
        reservations = self._load_reservations()
        index = self._find(reservations, reservation_id)
        current = reservations[index]

        changes: dict[str, Any] = {"updated_at": now}
        if patch.purpose is not None:
            changes["purpose"] = patch.purpose
        if patch.remarks is not None:
            changes["remarks"] = patch.remarks
        if patch.advisor is not None:
            changes["advisor"] = patch.advisor or None
        if patch.participants is not None:
            changes["participants"] = patch.participants
        if patch.equipments is not None:
            changes["equipments"] = patch.equipments

        updated = replace(current, **changes)
        reservations[index] = updated
        self._save_reservations(reservations)

        self._log_event(
            "RESERVATION_UPDATED",
            {
                "reservation_id": reservation_id,
                "fields": sorted(key for key in changes if key != "updated_at"),
            },
            now,
        )
        return updated

    async def get_room_schedule(self, room_id: int, start_date: date, end_date: date) -> list[CalendarSlot]:
        return calendar_slots(room_id, self._load_reservations(), start_date, end_date, ACTIVE_STATUSES)

    def seed_rooms(self, rooms: list[Room] | None = None, overwrite: bool = True) -> list[Room]:
        seeded = list(rooms if rooms is not None else DEFAULT_ROOMS)
        existing = [] if overwrite else self.get_rooms()
        known = {room.id for room in existing}
        merged = existing + [room for room in seeded if room.id not in known]
        self._write_yaml_list(self.rooms_file, [room.to_dict() for room in merged])

        self._log_event("ROOMS_SEEDED", {"count": len(seeded), "overwrite": overwrite})
        return merged

    def seed_test_data(self, now: datetime | None = None, overwrite: bool = True) -> list[Reservation]:
        effective_now = now or datetime.now()
        rooms = self.get_rooms() or self.seed_rooms()
        generated = generate_test_reservations(effective_now.date(), [room.id for room in rooms if room.status == RoomStatus.AVAILABLE])

        existing = [] if overwrite else self._load_reservations()
        self._save_reservations(existing + generated)

        self._log_event(
            "TEST_DATA_GENERATED",
            {
                "count": len(generated),
                "rooms": len(rooms),
                "date_window_days": 14,
                "overwrite": overwrite,
            },
            effective_now,
        )
        return generated


def generate_test_reservations(start_date: date, room_ids: list[int]) -> list[Reservation]:
    """Deterministic, non-overlapping sample bookings over the next two weeks.

    The same ``start_date`` and ``room_ids`` always yield the same ids and slots.
    """
    if not room_ids:
        raise ValueError("room_ids must not be empty")

    business_days = _collect_open_days(start_date, start_date + timedelta(days=14))
    if not business_days:
        raise ValueError("No open days available in the next 14 days window.")

    rng = random.Random(f"test:{start_date.isoformat()}")
    owners = [
        ("u-admin", "Facility Office", ActorRole.ADMIN),
        ("u-instructor", "Instructor Reyes", ActorRole.INSTRUCTOR),
        ("u-student-1", "Student Cruz", ActorRole.STUDENT),
        ("u-student-2", "Student Santos", ActorRole.STUDENT),
    ]
    statuses = [ReservationStatus.PENDING, ReservationStatus.APPROVED, ReservationStatus.APPROVED, ReservationStatus.DENIED]
    created_at = datetime.combine(start_date, time(7, 0))

    half_hours = [
        time(hour, minute)
        for hour in range(OPERATING_START.hour, OPERATING_END.hour + 1)
        for minute in (0, 30)
        if OPERATING_START <= time(hour, minute) < OPERATING_END
    ]

    records: list[Reservation] = []
    used: dict[tuple[int, date], list[tuple[time, time]]] = {}
    for index, room_id in enumerate(room_ids * 2):
        day = rng.choice(business_days)
        start_index = rng.randrange(0, len(half_hours) - 1)
        length = rng.choice([2, 3, 4])
        end_index = min(start_index + length, len(half_hours))
        start = half_hours[start_index]
        end = half_hours[end_index] if end_index < len(half_hours) else OPERATING_END

        taken = used.setdefault((room_id, day), [])
        if any(start < existing_end and end > existing_start for existing_start, existing_end in taken):
            continue
        taken.append((start, end))

        user_id, full_name, role = rng.choice(owners)
        records.append(
            Reservation(
                id=str(UUID(int=rng.getrandbits(128), version=4)),
                reservation_code=f"{CODE_PREFIX}-{created_at:%Y%m%d}-{index + 1:04d}",
                user_id=user_id,
                full_name=full_name,
                user_role=role,
                room_ids=(room_id,),
                purpose=rng.choice(PURPOSES),
                remarks=f"Sample booking {index + 1}",
                advisor=None if role != ActorRole.STUDENT else "Instructor Reyes",
                participants=(full_name,),
                equipments=tuple(rng.sample(EQUIPMENT_VOCABULARY, k=rng.randint(0, 2))),
                status=rng.choice(statuses),
                schedules=(ScheduleSlot(day, start, end),),
                created_at=created_at,
                updated_at=created_at,
            )
        )

    return records


def _collect_open_days(start_inclusive: date, end_exclusive: date) -> list[date]:
    cursor = start_inclusive
    open_days: list[date] = []
    while cursor < end_exclusive:
        if cursor.weekday() not in CLOSED_WEEKDAYS:
            open_days.append(cursor)
        cursor += timedelta(days=1)
    return open_days
