class ReservationError(Exception):
    error_code = "RESERVATION_ERROR"
    status_code = 400
    human_message = "Reservation request failed."

    def __init__(self, human_message: str | None = None):
        super().__init__(human_message or self.human_message)
        if human_message:
            self.human_message = human_message

    def to_payload(self) -> dict[str, object]:
        return {
            "ok": False,
            "error_code": self.error_code,
            "human_message": self.human_message,
        }


class BookingError(ReservationError):
    pass


class PastDateError(BookingError):
    error_code = "PAST_DATE"
    human_message = "Cannot book a date in the past."


class MinDurationError(BookingError):
    error_code = "MIN_DURATION"
    human_message = "End time must be at least 1 hour after start time."


class RoomNotFoundError(BookingError):
    error_code = "ROOM_NOT_FOUND"
    status_code = 404
    human_message = "Room not found."


class RoomUnavailableError(BookingError):
    error_code = "ROOM_UNAVAILABLE"
    human_message = "Room is not available."


class SlotConflictError(BookingError):
    error_code = "SLOT_CONFLICT"
    status_code = 409
    human_message = "Time slot is already booked."


class CancelError(ReservationError):
    pass


class NotFoundError(CancelError):
    error_code = "RESERVATION_NOT_FOUND"
    status_code = 404
    human_message = "Reservation not found."


class ForbiddenError(CancelError):
    error_code = "FORBIDDEN"
    status_code = 403
    human_message = "Not allowed to cancel this reservation."


class InvalidStateError(CancelError):
    error_code = "INVALID_STATE"
    status_code = 409
    human_message = "Reservation cannot be changed in its current state."


class AlreadyCancelledError(InvalidStateError):
    error_code = "ALREADY_CANCELLED"
    human_message = "Reservation is already cancelled."


class InternalError(ReservationError):
    error_code = "SYSTEM_DOWN"
    status_code = 500
    human_message = "Temporary issue processing the reservation."
