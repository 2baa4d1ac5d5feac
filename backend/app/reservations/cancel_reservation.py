from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.config import BOOKING_SERIALIZATION_RETRIES, NOTIFY_TIMEOUT_SECONDS
from app.db.models import RESERVATION_ACTIVE, RESERVATION_CANCELLED, Reservation
from app.integrations.sms import Notifier
from app.reservations.errors import (
    AlreadyCancelledError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from app.reservations.notifications import (
    AuditEntry,
    Recipient,
    cancelled_message,
    notify_one,
    write_audit_records,
)
from app.reservations.schemas import CancelResult, Principal, ReservationView
from app.reservations.transactions import run_in_transaction


logger = logging.getLogger("roombooking.reservations.cancel")


async def cancel_reservation(
    session_factory: sessionmaker,
    notifier: Notifier,
    requester: Principal,
    reservation_id: int,
    notify_timeout_seconds: float = NOTIFY_TIMEOUT_SECONDS,
) -> CancelResult:
    def _cancel(db: Session) -> ReservationView:
        reservation = db.scalars(
            select(Reservation).where(Reservation.id == reservation_id).with_for_update()
        ).first()
        if reservation is None:
            raise NotFoundError()
        if not requester.is_admin and reservation.user_id != requester.id:
            raise ForbiddenError()
        if reservation.status != RESERVATION_ACTIVE:
            raise AlreadyCancelledError()

        reservation.status = RESERVATION_CANCELLED
        reservation.updated_at = datetime.now(timezone.utc)
        db.flush()
        return ReservationView.from_row(reservation)

    view = await asyncio.to_thread(
        run_in_transaction,
        session_factory,
        _cancel,
        retries=BOOKING_SERIALIZATION_RETRIES,
        operation="cancel_reservation",
        exhausted_error=InvalidStateError,
    )
    logger.info(
        "Reservation cancelled reservation_id=%s by user_id=%s owner_id=%s",
        view.id,
        requester.id,
        view.user_id,
    )

    outcome = await notify_one(
        notifier,
        Recipient(
            user_id=view.user_id,
            display_name=view.owner_name,
            address=view.owner_phone,
            message=cancelled_message(view.owner_name, view.room_name, view.window),
        ),
        timeout_seconds=notify_timeout_seconds,
    )
    audit_ok = await asyncio.to_thread(
        write_audit_records,
        session_factory,
        [
            AuditEntry(
                user_id=view.user_id,
                reservation_id=view.id,
                message=outcome.recipient.message,
                delivered=outcome.delivered,
            )
        ],
    )
    return CancelResult(reservation=view, notification_ok=outcome.delivered, audit_ok=audit_ok)
