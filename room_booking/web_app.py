from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

from .app_logger import get_logger, setup_logging
from .calendar import CalendarWindow
from .config import Settings
from .errors import (
    AuthorizationError,
    ConflictError,
    IllegalStateError,
    ReservationError,
    ReservationNotFoundError,
    StorageError,
    ValidationError,
)
from .events import ChangeBus
from .models import PURPOSES, Actor, DetailsPatch, ReservationCommand, ReservationFilter, ReservationStatus, parse_status
from .service import ReservationService
from .timeline import parse_date, week_options
from .usage import monthly_totals, room_usage, status_counts, usage_by_purpose
from .yaml_store import ReservationYamlRepository

logger = get_logger(__name__)

_ERROR_STATUS = {
    ValidationError: 400,
    AuthorizationError: 403,
    ReservationNotFoundError: 404,
    ConflictError: 409,
    IllegalStateError: 409,
    StorageError: 500,
}


def create_app(
    data_dir: str | Path | None = None,
    now_provider: Callable[[], datetime] | None = None,
    settings: Settings | None = None,
    bus: ChangeBus | None = None,
) -> Flask:
    effective_settings = settings or Settings.from_env()
    setup_logging(effective_settings.log_level)

    app = Flask(__name__)
    repository = ReservationYamlRepository(data_dir if data_dir is not None else effective_settings.data_dir)
    service = ReservationService(repository, effective_settings, bus=bus, now_provider=now_provider)
    app.extensions["room_booking"] = service

    def _actor(required: bool = True) -> Actor | None:
        user_id = request.headers.get("X-User-Id", "").strip()
        role = request.headers.get("X-User-Role", "").strip()
        if not user_id or not role:
            if required:
                raise AuthorizationError("X-User-Id and X-User-Role headers are required.")
            return None
        return Actor(user_id=user_id, role=role, full_name=request.headers.get("X-User-Name"))

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type,X-User-Id,X-User-Role,X-User-Name"
        return response

    @app.errorhandler(ReservationError)
    def handle_reservation_error(error: ReservationError) -> Any:
        status = next((code for kind, code in _ERROR_STATUS.items() if isinstance(error, kind)), 400)
        body: dict[str, Any] = {"ok": False, "error": type(error).__name__, "message": str(error)}
        if isinstance(error, ValidationError):
            body["field"] = error.field
        if isinstance(error, ConflictError):
            body["conflicts"] = [conflict.to_dict() for conflict in error.conflicts]
        if status >= 500:
            logger.error("Request failed: %s", error)
        return jsonify(body), status

    @app.errorhandler(ValueError)
    def handle_bad_value(error: ValueError) -> Any:
        return jsonify({"ok": False, "error": "ValidationError", "message": str(error)}), 400

    @app.get("/api/rooms")
    async def list_rooms() -> Any:
        rooms = await repository.list_rooms()
        return jsonify({"ok": True, "rooms": [room.to_dict() for room in rooms]})

    @app.get("/api/purposes")
    def list_purposes() -> Any:
        return jsonify({"ok": True, "purposes": list(PURPOSES)})

    @app.get("/api/reservations")
    async def list_reservations() -> Any:
        args = request.args
        status = args.get("status")
        page_size = args.get("page_size")
        reservation_filter = ReservationFilter(
            user_id=args.get("user_id") or None,
            status=parse_status(status) if status else None,
            code_contains=args.get("code") or None,
            name_contains=args.get("name") or None,
            room_id=int(args["room_id"]) if args.get("room_id") else None,
            sort_field=args.get("sort", "created_at"),
            sort_order="asc" if args.get("order", "desc").lower() == "asc" else "desc",
            page=int(args.get("page", 1)),
            page_size=int(page_size) if page_size else None,
        )
        reservations = await service.list_reservations(reservation_filter)
        return jsonify({"ok": True, "reservations": [reservation.to_dict() for reservation in reservations]})

    @app.post("/api/reservations")
    async def create_reservation() -> Any:
        payload = request.get_json(silent=True) or {}
        command = ReservationCommand.from_dict(payload, _actor())
        created = await service.create_reservation(command)
        return jsonify({"ok": True, "reservation": created.to_dict()}), 201

    @app.get("/api/reservations/<reservation_id>")
    async def get_reservation(reservation_id: str) -> Any:
        reservation = await service.get_reservation(reservation_id)
        return jsonify({"ok": True, "reservation": reservation.to_dict()})

    @app.patch("/api/reservations/<reservation_id>")
    async def update_reservation(reservation_id: str) -> Any:
        payload = request.get_json(silent=True) or {}
        updated = await service.update_reservation_details(reservation_id, DetailsPatch.from_dict(payload), _actor())
        return jsonify({"ok": True, "reservation": updated.to_dict()})

    @app.post("/api/reservations/<reservation_id>/status")
    async def update_status(reservation_id: str) -> Any:
        payload = request.get_json(silent=True) or {}
        status = str(payload.get("status", "")).strip()
        if not status:
            raise ValidationError("status", "this field is required")
        updated = await service.update_reservation_status(reservation_id, status, _actor())
        return jsonify({"ok": True, "reservation": updated.to_dict()})

    @app.get("/api/rooms/<int:room_id>/schedule")
    async def room_schedule(room_id: int) -> Any:
        start = request.args.get("start", "")
        end = request.args.get("end", start)
        slots = await service.get_room_schedule(room_id, start, end)
        return jsonify({"ok": True, "schedules": [slot.to_dict() for slot in slots]})

    @app.get("/api/rooms/<int:room_id>/calendar")
    async def room_calendar(room_id: int) -> Any:
        week = request.args.get("week") or service.clock().date().isoformat()
        window = None
        if request.args.get("row_height"):
            window = CalendarWindow(
                effective_settings.calendar_start_hour,
                effective_settings.calendar_end_hour,
                float(request.args["row_height"]),
            )
        viewer = _actor(required=False)
        calendar_week = await service.get_week_calendar(room_id, week, viewer.user_id if viewer else None, window)
        return jsonify({"ok": True, "calendar": calendar_week.to_dict()})

    @app.get("/api/rooms/<int:room_id>/free")
    async def room_free_intervals(room_id: int) -> Any:
        day = request.args.get("date") or service.clock().date().isoformat()
        gaps = await service.get_free_intervals(room_id, day)
        return jsonify({"ok": True, "date": day, "free": [{"start": start, "end": end} for start, end in gaps]})

    @app.get("/api/week-options")
    def list_week_options() -> Any:
        week = request.args.get("week") or service.clock().date().isoformat()
        return jsonify({"ok": True, "options": week_options(parse_date(week))})

    @app.get("/api/usage")
    async def usage() -> Any:
        year = int(request.args.get("year") or service.clock().year)
        rooms = await repository.list_rooms()
        reservations = await service.list_reservations()
        return jsonify(
            {
                "ok": True,
                "status_counts": status_counts(reservations),
                "room_usage": [row.to_dict() for row in room_usage(reservations, rooms)],
                "pending_room_usage": [row.to_dict() for row in room_usage(reservations, rooms, (ReservationStatus.PENDING,))],
                "usage_by_purpose": usage_by_purpose(reservations, rooms),
                "monthly": {
                    "approved": monthly_totals(reservations, ReservationStatus.APPROVED, year),
                    "pending": monthly_totals(reservations, ReservationStatus.PENDING, year),
                },
            }
        )

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="127.0.0.1", port=5000, debug=False)
