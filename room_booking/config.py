from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import time
from pathlib import Path

from .timeline import parse_time

OPERATING_START = time(7, 30)
OPERATING_END = time(17, 30)
CALENDAR_START_HOUR = 7
CALENDAR_END_HOUR = 18
CALENDAR_ROW_HEIGHT = 24
RESERVATION_WINDOW_DAYS = 30
SLOT_MINUTES = 30
MIN_DURATION_HOURS = 1.0
MAX_DURATION_HOURS = 2.0
# date.weekday() numbering: Monday is 0, Sunday is 6.
CLOSED_WEEKDAYS = frozenset({6})


@dataclass(frozen=True)
class Settings:
    data_dir: Path = Path("data")
    operating_start: time = OPERATING_START
    operating_end: time = OPERATING_END
    calendar_start_hour: int = CALENDAR_START_HOUR
    calendar_end_hour: int = CALENDAR_END_HOUR
    calendar_row_height: int = CALENDAR_ROW_HEIGHT
    reservation_window_days: int | None = RESERVATION_WINDOW_DAYS
    slot_minutes: int = SLOT_MINUTES
    min_duration_hours: float | None = MIN_DURATION_HOURS
    max_duration_hours: float | None = MAX_DURATION_HOURS
    closed_weekdays: frozenset[int] = field(default_factory=lambda: CLOSED_WEEKDAYS)
    holiday_country: str | None = None
    reject_conflicts_at_creation: bool = False
    log_level: str = "INFO"

    @staticmethod
    def from_env(environ: dict[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        defaults = Settings()

        window_days = defaults.reservation_window_days
        if env.get("ROOM_BOOKING_WINDOW_DAYS"):
            window_days = int(env["ROOM_BOOKING_WINDOW_DAYS"]) or None

        return Settings(
            data_dir=Path(env.get("ROOM_BOOKING_DATA_DIR", str(defaults.data_dir))),
            operating_start=parse_time(env.get("ROOM_BOOKING_OPEN", "07:30")),
            operating_end=parse_time(env.get("ROOM_BOOKING_CLOSE", "17:30")),
            reservation_window_days=window_days,
            min_duration_hours=_optional_hours(env, "ROOM_BOOKING_MIN_HOURS", defaults.min_duration_hours),
            max_duration_hours=_optional_hours(env, "ROOM_BOOKING_MAX_HOURS", defaults.max_duration_hours),
            holiday_country=(env.get("ROOM_BOOKING_HOLIDAY_COUNTRY") or None),
            reject_conflicts_at_creation=env.get("ROOM_BOOKING_STRICT_CREATE", "").lower() in {"1", "true", "yes"},
            log_level=env.get("ROOM_BOOKING_LOG_LEVEL", defaults.log_level).upper(),
        )


def _optional_hours(env: dict[str, str], name: str, default: float | None) -> float | None:
    # 0 turns the bound off
    if not env.get(name):
        return default
    return float(env[name]) or None
