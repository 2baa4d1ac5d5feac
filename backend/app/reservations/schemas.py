from __future__ import annotations

from datetime import date as calendar_date, datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from app.db.models import ROLE_ADMIN, Reservation, User
from app.reservations.time_window import HHMM_PATTERN, TimeWindow


class Principal(BaseModel):
    id: int
    display_name: str
    phone: str | None = None
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.id, display_name=user.display_name, phone=user.phone, role=user.role)


class CreateReservationArgs(BaseModel):
    room_id: int = Field(gt=0)
    date: calendar_date
    start_time: str = Field(pattern=HHMM_PATTERN)
    end_time: str = Field(pattern=HHMM_PATTERN)
    reason: str | None = Field(default=None, max_length=500)

    def to_window(self) -> TimeWindow:
        return TimeWindow.from_hhmm(self.date, self.start_time, self.end_time)


class CancelReservationArgs(BaseModel):
    reservation_id: int = Field(gt=0)


def parse_create_reservation_args(raw_args: dict[str, Any]) -> CreateReservationArgs:
    return CreateReservationArgs.model_validate(raw_args)


def parse_cancel_reservation_args(raw_args: dict[str, Any]) -> CancelReservationArgs:
    return CancelReservationArgs.model_validate(raw_args)


class ReservationView(BaseModel):
    id: int
    user_id: int
    room_id: int
    date: calendar_date
    start_time: str
    end_time: str
    reason: str | None = None
    status: str
    room_name: str
    room_capacity: int | None = None
    owner_name: str
    owner_phone: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def window(self) -> TimeWindow:
        return TimeWindow.from_hhmm(self.date, self.start_time, self.end_time)

    @classmethod
    def from_row(cls, reservation: Reservation) -> "ReservationView":
        window = TimeWindow.from_times(
            reservation.date, reservation.start_time, reservation.end_time
        )
        start_time, end_time = window.label().split("-")
        return cls(
            id=reservation.id,
            user_id=reservation.user_id,
            room_id=reservation.room_id,
            date=reservation.date,
            start_time=start_time,
            end_time=end_time,
            reason=reservation.reason,
            status=reservation.status,
            room_name=reservation.room.name,
            room_capacity=reservation.room.capacity,
            owner_name=reservation.owner.display_name,
            owner_phone=reservation.owner.phone,
            created_at=reservation.created_at,
            updated_at=reservation.updated_at,
        )


class BookingResult(BaseModel):
    reservation: ReservationView
    notification_ok: bool
    audit_ok: bool
    preempted_count: int = 0
    preempted: list[ReservationView] = Field(default_factory=list)


class CancelResult(BaseModel):
    reservation: ReservationView
    notification_ok: bool
    audit_ok: bool


def serialize_reservation(view: ReservationView, include_phone: bool = False) -> dict[str, Any]:
    if include_phone:
        return view.model_dump(mode="json")
    return view.model_dump(mode="json", exclude={"owner_phone"})


def serialize_booking_result(
    result: BookingResult, include_preemption: bool = False
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "reservation": serialize_reservation(result.reservation),
        "notification_ok": result.notification_ok,
        "audit_ok": result.audit_ok,
    }
    if include_preemption:
        payload["preempted_count"] = result.preempted_count
        payload["preempted_ids"] = [item.id for item in result.preempted]
    return payload


def serialize_cancel_result(result: CancelResult) -> dict[str, Any]:
    return {
        "reservation": serialize_reservation(result.reservation),
        "notification_ok": result.notification_ok,
        "audit_ok": result.audit_ok,
    }


def map_validation_error(error: ValidationError) -> dict[str, str]:
    return {
        "error_code": "INVALID_ARGS",
        "human_message": f"Invalid args: {error.errors()[0]['msg']}",
    }
