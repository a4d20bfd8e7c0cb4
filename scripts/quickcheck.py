from __future__ import annotations

import asyncio
from datetime import date, datetime
from pathlib import Path
import traceback

from room_booking import (
    Actor,
    ActorRole,
    ChangeBus,
    ConflictError,
    ReservationCommand,
    ReservationService,
    ReservationYamlRepository,
)


async def run() -> int:
    print("[INFO] Room Booking Quick Check")
    print("[INFO] Seeding rooms and sample reservations...")

    repo = ReservationYamlRepository("data")
    repo.seed_rooms()
    now = datetime(2025, 11, 17, 8, 0)
    generated = repo.seed_test_data(now=now, overwrite=True)
    print(f"[OK] Sample reservations generated: {len(generated)} records")

    bus = ChangeBus()
    received: list[str] = []
    unsubscribe = bus.subscribe(lambda event: received.append(f"{event.action}:{event.status}"))
    service = ReservationService(repo, bus=bus, now_provider=lambda: now)

    student = Actor("quickcheck-student", ActorRole.STUDENT, "Quick Check Student")
    other = Actor("quickcheck-other", ActorRole.STUDENT, "Second Requester")
    admin = Actor("quickcheck-admin", ActorRole.ADMIN, "Facility Office")

    def command(actor: Actor, start: str, end: str) -> ReservationCommand:
        return ReservationCommand(
            requester_id=actor.user_id,
            requester_role=actor.role,
            requester_name=actor.full_name,
            room_ids=(5,),
            purpose="Research-Related",
            dates=(date(2025, 12, 5),),
            start_time=start,
            end_time=end,
            remarks="Quick check",
            advisor="Instructor Reyes",
        )

    first = await service.create_reservation(command(student, "7:30 AM", "8:30 AM"))
    second = await service.create_reservation(command(other, "8:00 AM", "9:00 AM"))
    print(f"[OK] Created {first.reservation_code} and {second.reservation_code} as {first.status}/{second.status}")

    approved = await service.approve(first.id, admin)
    print(f"[OK] {approved.reservation_code} -> {approved.status}")

    try:
        await service.approve(second.id, admin)
        print("[WARN] Second approval unexpectedly succeeded")
    except ConflictError as error:
        print(f"[OK] Second approval rejected: {error}")

    calendar_week = await service.get_week_calendar(5, date(2025, 12, 5), viewer_id=student.user_id)
    print(f"[OK] Calendar blocks for Room 5: {len(calendar_week.blocks)}")
    unsubscribe()

    print(f"[OK] Change events received: {', '.join(received)}")
    print(f"[OK] Reservations YAML: {Path('data/reservations.yaml').resolve()}")
    print(f"[OK] Event Log YAML: {Path('data/reservation_events.yaml').resolve()}")

    print("[DONE] Quick check completed successfully.")
    return 0


def main() -> int:
    return asyncio.run(run())


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
