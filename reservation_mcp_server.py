from __future__ import annotations

from datetime import date
from typing import Any

from mcp.server.fastmcp import FastMCP

from room_booking import Actor, ReservationCommand, ReservationFilter, ReservationService, ReservationYamlRepository, Settings
from room_booking.app_logger import setup_logging
from room_booking.models import PURPOSES, parse_status
from room_booking.timeline import parse_date

mcp = FastMCP(
    "Room Booking MCP Server",
    instructions="Expose room reservations, week calendars and booking requests from the room_booking core.",
    json_response=True,
)

SETTINGS = Settings.from_env()
REPOSITORY = ReservationYamlRepository(SETTINGS.data_dir)
SERVICE = ReservationService(REPOSITORY, SETTINGS)


@mcp.resource("reservation://rooms")
async def list_rooms() -> list[dict[str, Any]]:
    """List bookable rooms with their capacity and status."""
    return [room.to_dict() for room in await REPOSITORY.list_rooms()]


@mcp.resource("reservation://purposes")
async def list_purposes() -> list[str]:
    """List the fixed reservation purpose categories."""
    return list(PURPOSES)


@mcp.tool()
async def list_reservations(
    status: str | None = None,
    user_id: str | None = None,
    code: str | None = None,
) -> list[dict[str, Any]]:
    """Return reservations, optionally filtered by status, owner or code fragment."""
    reservation_filter = ReservationFilter(
        status=parse_status(status) if status else None,
        user_id=user_id,
        code_contains=code,
    )
    return [reservation.to_dict() for reservation in await SERVICE.list_reservations(reservation_filter)]


@mcp.tool()
async def get_room_calendar(room_id: int, week: str | None = None, viewer_id: str | None = None) -> dict[str, Any]:
    """Return the laid-out week calendar of a room; ``week`` is any ISO date inside that week."""
    calendar_week = await SERVICE.get_week_calendar(room_id, week or date.today().isoformat(), viewer_id)
    return calendar_week.to_dict()


@mcp.tool()
async def request_reservation(
    user_id: str,
    role: str,
    room_ids: list[int],
    purpose: str,
    dates: list[str],
    start_time: str,
    end_time: str,
    remarks: str,
    advisor: str | None = None,
    full_name: str | None = None,
) -> dict[str, Any]:
    """Submit a Pending reservation request for one time window on one or more dates."""
    command = ReservationCommand(
        requester_id=user_id,
        requester_role=role,
        requester_name=full_name,
        room_ids=tuple(room_ids),
        purpose=purpose,
        dates=tuple(parse_date(value) for value in dates),
        start_time=start_time,
        end_time=end_time,
        remarks=remarks,
        advisor=advisor,
    )
    created = await SERVICE.create_reservation(command)
    return created.to_dict()


@mcp.tool()
async def set_reservation_status(reservation_id: str, status: str, user_id: str, role: str) -> dict[str, Any]:
    """Approve, deny, cancel or close a reservation on behalf of the given actor."""
    updated = await SERVICE.update_reservation_status(reservation_id, status, Actor(user_id=user_id, role=role))
    return updated.to_dict()


def main() -> None:
    setup_logging(SETTINGS.log_level)
    mcp.run()


if __name__ == "__main__":
    main()
