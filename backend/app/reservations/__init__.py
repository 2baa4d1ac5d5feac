from app.reservations.cancel_reservation import cancel_reservation
from app.reservations.conflicts import find_conflicts
from app.reservations.create_reservation import (
    check_booking_preconditions,
    create_reservation,
    current_booking_day,
)
from app.reservations.errors import (
    AlreadyCancelledError,
    BookingError,
    CancelError,
    ForbiddenError,
    InternalError,
    InvalidStateError,
    MinDurationError,
    NotFoundError,
    PastDateError,
    ReservationError,
    RoomNotFoundError,
    RoomUnavailableError,
    SlotConflictError,
)
from app.reservations.notifications import notify_many, write_audit_records
from app.reservations.priority_reservation import create_priority_reservation
from app.reservations.queries import (
    list_all_reservations,
    list_user_reservations,
    reservation_stats,
)
from app.reservations.time_window import TimeWindow, windows_overlap

__all__ = [
    "AlreadyCancelledError",
    "BookingError",
    "CancelError",
    "ForbiddenError",
    "InternalError",
    "InvalidStateError",
    "MinDurationError",
    "NotFoundError",
    "PastDateError",
    "ReservationError",
    "RoomNotFoundError",
    "RoomUnavailableError",
    "SlotConflictError",
    "TimeWindow",
    "cancel_reservation",
    "check_booking_preconditions",
    "create_priority_reservation",
    "create_reservation",
    "current_booking_day",
    "find_conflicts",
    "list_all_reservations",
    "list_user_reservations",
    "notify_many",
    "reservation_stats",
    "windows_overlap",
    "write_audit_records",
]
