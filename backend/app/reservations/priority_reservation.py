from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from app.config import BOOKING_SERIALIZATION_RETRIES, NOTIFY_TIMEOUT_SECONDS
from app.db.models import RESERVATION_ACTIVE, RESERVATION_CANCELLED, Reservation
from app.integrations.sms import Notifier
from app.reservations.conflicts import find_conflicts
from app.reservations.create_reservation import (
    check_booking_preconditions,
    current_booking_day,
    insert_reservation,
)
from app.reservations.notifications import (
    AuditEntry,
    Recipient,
    notify_many,
    notify_one,
    preempted_message,
    priority_confirmed_message,
    write_audit_records,
)
from app.reservations.schemas import BookingResult, Principal, ReservationView
from app.reservations.time_window import TimeWindow
from app.reservations.transactions import run_in_transaction


logger = logging.getLogger("roombooking.reservations.priority")


async def create_priority_reservation(
    session_factory: sessionmaker,
    notifier: Notifier,
    admin: Principal,
    room_id: int,
    window: TimeWindow,
    reason: str | None = None,
    today: date | None = None,
    notify_timeout_seconds: float = NOTIFY_TIMEOUT_SECONDS,
) -> BookingResult:
    """Book ``window`` for an admin, cancelling every overlapping reservation.

    The caller must already be authorized as an admin. Cancellation of the
    conflicting rows and the insert of the new one commit together or not at
    all; owners of the cancelled reservations are notified afterwards.
    """
    booking_day = today or current_booking_day()

    def _book(db: Session) -> tuple[ReservationView, list[ReservationView]]:
        room = check_booking_preconditions(db=db, room_id=room_id, window=window, today=booking_day)
        conflicts = find_conflicts(db=db, room_id=room_id, window=window)
        preempted = [ReservationView.from_row(row) for row in conflicts]
        if conflicts:
            cancel_reservations(db=db, reservation_ids=[row.id for row in conflicts])
            preempted = [
                view.model_copy(update={"status": RESERVATION_CANCELLED}) for view in preempted
            ]
        reservation = insert_reservation(
            db=db, owner_id=admin.id, room=room, window=window, reason=reason
        )
        return ReservationView.from_row(reservation), preempted

    view, preempted = await asyncio.to_thread(
        run_in_transaction,
        session_factory,
        _book,
        retries=BOOKING_SERIALIZATION_RETRIES,
        operation="create_priority_reservation",
    )
    logger.info(
        "Priority reservation created reservation_id=%s room_id=%s preempted_ids=%s",
        view.id,
        view.room_id,
        [item.id for item in preempted],
    )

    owner_recipients = [
        Recipient(
            user_id=item.user_id,
            display_name=item.owner_name,
            address=item.owner_phone,
            message=preempted_message(item.owner_name, item.room_name, item.window),
        )
        for item in preempted
    ]
    owner_fanout = await notify_many(
        notifier, owner_recipients, timeout_seconds=notify_timeout_seconds
    )
    audit_entries = [
        AuditEntry(
            user_id=outcome.recipient.user_id,
            reservation_id=item.id,
            message=outcome.recipient.message,
            delivered=outcome.delivered,
        )
        for item, outcome in zip(preempted, owner_fanout.outcomes)
    ]

    admin_outcome = await notify_one(
        notifier,
        Recipient(
            user_id=admin.id,
            display_name=admin.display_name,
            address=admin.phone,
            message=priority_confirmed_message(view.room_name, window),
        ),
        timeout_seconds=notify_timeout_seconds,
    )
    audit_entries.append(
        AuditEntry(
            user_id=admin.id,
            reservation_id=view.id,
            message=admin_outcome.recipient.message,
            delivered=admin_outcome.delivered,
        )
    )

    notification_ok = owner_fanout.all_delivered and admin_outcome.delivered
    audit_ok = await asyncio.to_thread(write_audit_records, session_factory, audit_entries)
    return BookingResult(
        reservation=view,
        notification_ok=notification_ok,
        audit_ok=audit_ok,
        preempted_count=len(preempted),
        preempted=preempted,
    )


def cancel_reservations(db: Session, reservation_ids: list[int]) -> int:
    """Cancel the given active reservations with one set-oriented UPDATE."""
    if not reservation_ids:
        return 0
    result = db.execute(
        update(Reservation)
        .where(Reservation.id.in_(reservation_ids))
        .where(Reservation.status == RESERVATION_ACTIVE)
        .values(status=RESERVATION_CANCELLED, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount
