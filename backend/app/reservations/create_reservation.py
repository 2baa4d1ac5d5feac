from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import (
    BOOKING_MIN_DURATION_MINUTES,
    BOOKING_SERIALIZATION_RETRIES,
    BOOKING_TIMEZONE,
    NOTIFY_TIMEOUT_SECONDS,
)
from app.db.models import RESERVATION_ACTIVE, ROOM_AVAILABLE, Reservation, Room, User
from app.integrations.sms import Notifier
from app.reservations.conflicts import find_conflicts
from app.reservations.errors import (
    MinDurationError,
    PastDateError,
    RoomNotFoundError,
    RoomUnavailableError,
    SlotConflictError,
)
from app.reservations.notifications import (
    AuditEntry,
    Recipient,
    load_roster,
    notify_many,
    reservation_confirmed_message,
    reservation_created_message,
    write_audit_records,
)
from app.reservations.schemas import BookingResult, Principal, ReservationView
from app.reservations.time_window import TimeWindow
from app.reservations.transactions import run_in_transaction, transaction_scope


logger = logging.getLogger("roombooking.reservations.create")


async def create_reservation(
    session_factory: sessionmaker,
    notifier: Notifier,
    requester: Principal,
    room_id: int,
    window: TimeWindow,
    reason: str | None = None,
    today: date | None = None,
    notify_timeout_seconds: float = NOTIFY_TIMEOUT_SECONDS,
) -> BookingResult:
    booking_day = today or current_booking_day()

    def _book(db: Session) -> ReservationView:
        room = check_booking_preconditions(db=db, room_id=room_id, window=window, today=booking_day)
        if find_conflicts(db=db, room_id=room_id, window=window):
            raise SlotConflictError()
        reservation = insert_reservation(
            db=db, owner_id=requester.id, room=room, window=window, reason=reason
        )
        return ReservationView.from_row(reservation)

    view = await asyncio.to_thread(
        run_in_transaction,
        session_factory,
        _book,
        retries=BOOKING_SERIALIZATION_RETRIES,
        operation="create_reservation",
    )
    logger.info(
        "Reservation created reservation_id=%s room_id=%s user_id=%s window=%s %s",
        view.id,
        view.room_id,
        view.user_id,
        window.day.isoformat(),
        window.label(),
    )

    roster = await asyncio.to_thread(
        _roster_recipients,
        session_factory,
        reservation_created_message(view.room_name, window),
    )
    fanout = await notify_many(notifier, roster, timeout_seconds=notify_timeout_seconds)
    if not fanout.ok:
        logger.warning(
            "Reservation broadcast reached no recipient reservation_id=%s recipients=%s",
            view.id,
            len(roster),
        )

    audit_ok = await asyncio.to_thread(
        write_audit_records,
        session_factory,
        [
            AuditEntry(
                user_id=requester.id,
                reservation_id=view.id,
                message=reservation_confirmed_message(view.room_name, window),
                delivered=fanout.ok,
            )
        ],
    )
    return BookingResult(reservation=view, notification_ok=fanout.ok, audit_ok=audit_ok)


def check_booking_preconditions(
    db: Session,
    room_id: int,
    window: TimeWindow,
    today: date,
) -> Room:
    """Validate date, duration and room state; return the room row, locked."""
    if window.day < today:
        raise PastDateError()

    if window.duration_minutes < BOOKING_MIN_DURATION_MINUTES:
        raise MinDurationError()

    room = db.scalars(select(Room).where(Room.id == room_id).with_for_update()).first()
    if room is None:
        raise RoomNotFoundError()
    if room.status != ROOM_AVAILABLE:
        raise RoomUnavailableError()
    return room


def insert_reservation(
    db: Session,
    owner_id: int,
    room: Room,
    window: TimeWindow,
    reason: str | None,
) -> Reservation:
    now = datetime.now(timezone.utc)
    reservation = Reservation(
        owner=db.get(User, owner_id),
        room=room,
        date=window.day,
        start_time=window.start_time,
        end_time=window.end_time,
        reason=reason,
        status=RESERVATION_ACTIVE,
        created_at=now,
        updated_at=now,
    )
    db.add(reservation)
    db.flush()
    return reservation


def current_booking_day() -> date:
    return datetime.now(ZoneInfo(BOOKING_TIMEZONE)).date()


def _roster_recipients(session_factory: sessionmaker, message: str) -> list[Recipient]:
    try:
        with transaction_scope(session_factory) as db:
            users = load_roster(db)
            return [
                Recipient(
                    user_id=user.id,
                    display_name=user.display_name,
                    address=user.phone,
                    message=message,
                )
                for user in users
            ]
    except SQLAlchemyError:
        logger.exception("Failed loading notification roster")
        return []
