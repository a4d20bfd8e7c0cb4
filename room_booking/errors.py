from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .availability import SlotConflict


class ReservationError(Exception):
    """Base class for every error raised by the scheduling core."""


class ValidationError(ReservationError):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ParseError(ValidationError):
    def __init__(self, value: object, message: str, field: str = "time") -> None:
        super().__init__(field, f"{message} (got {value!r})")
        self.value = value


class ConflictError(ReservationError):
    def __init__(self, message: str, conflicts: Sequence["SlotConflict"] = ()) -> None:
        super().__init__(message)
        self.conflicts = list(conflicts)


class IllegalStateError(ReservationError):
    pass


class AuthorizationError(ReservationError):
    pass


class ReservationNotFoundError(ReservationError):
    def __init__(self, reservation_id: str) -> None:
        super().__init__(f"Reservation not found: {reservation_id}")
        self.reservation_id = reservation_id


class StorageError(ReservationError):
    pass
