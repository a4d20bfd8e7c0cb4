from .availability import SlotConflict, can_reserve, ensure_available, find_conflicts, free_intervals, occupied_intervals, slots_conflict
from .calendar import CalendarBlock, CalendarSlot, CalendarWeek, CalendarWindow, color_bucket, project_slot, project_week
from .config import Settings
from .errors import (
	AuthorizationError,
	ConflictError,
	IllegalStateError,
	ParseError,
	ReservationError,
	ReservationNotFoundError,
	StorageError,
	ValidationError,
)
from .events import ChangeBus, ReservationChanged, default_bus, subscribe_to_changes
from .lifecycle import TRANSITIONS, allowed_targets, resolve_transition
from .models import (
	Actor,
	ActorRole,
	DetailsPatch,
	Reservation,
	ReservationCommand,
	ReservationFilter,
	ReservationStatus,
	Room,
	RoomStatus,
	ScheduleSlot,
)
from .service import ReservationService
from .timeline import day_index_of, duration, parse_time, to_decimal_hours
from .yaml_store import ReservationYamlRepository

__all__ = [
	"SlotConflict",
	"can_reserve",
	"ensure_available",
	"find_conflicts",
	"free_intervals",
	"occupied_intervals",
	"slots_conflict",
	"CalendarBlock",
	"CalendarSlot",
	"CalendarWeek",
	"CalendarWindow",
	"color_bucket",
	"project_slot",
	"project_week",
	"Settings",
	"AuthorizationError",
	"ConflictError",
	"IllegalStateError",
	"ParseError",
	"ReservationError",
	"ReservationNotFoundError",
	"StorageError",
	"ValidationError",
	"ChangeBus",
	"ReservationChanged",
	"default_bus",
	"subscribe_to_changes",
	"TRANSITIONS",
	"allowed_targets",
	"resolve_transition",
	"Actor",
	"ActorRole",
	"DetailsPatch",
	"Reservation",
	"ReservationCommand",
	"ReservationFilter",
	"ReservationStatus",
	"Room",
	"RoomStatus",
	"ScheduleSlot",
	"ReservationService",
	"day_index_of",
	"duration",
	"parse_time",
	"to_decimal_hours",
	"ReservationYamlRepository",
]
