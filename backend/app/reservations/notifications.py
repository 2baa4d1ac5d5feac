from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.db.models import DELIVERY_DELIVERED, DELIVERY_FAILED, Notification, User
from app.integrations.sms import DeliveryOutcome, Notifier
from app.reservations.time_window import TimeWindow
from app.reservations.transactions import transaction_scope


logger = logging.getLogger("roombooking.reservations.notifications")


class Recipient(BaseModel):
    user_id: int
    display_name: str
    address: str | None = None
    message: str


class RecipientOutcome(BaseModel):
    recipient: Recipient
    delivered: bool
    reason: str | None = None


class FanoutResult(BaseModel):
    outcomes: list[RecipientOutcome]

    @property
    def ok(self) -> bool:
        return any(outcome.delivered for outcome in self.outcomes)

    @property
    def all_delivered(self) -> bool:
        return all(outcome.delivered for outcome in self.outcomes)


class AuditEntry(BaseModel):
    user_id: int
    reservation_id: int | None = None
    message: str
    delivered: bool


async def notify_many(
    notifier: Notifier,
    recipients: list[Recipient],
    timeout_seconds: float,
) -> FanoutResult:
    """Send every recipient its message concurrently and collect all outcomes.

    Each dispatch is isolated: an exception or a timeout only marks that
    recipient as failed. Nothing is retried.
    """
    async with asyncio.TaskGroup() as group:
        tasks = [
            group.create_task(_dispatch(notifier, recipient, timeout_seconds))
            for recipient in recipients
        ]
    return FanoutResult(outcomes=[task.result() for task in tasks])


async def notify_one(
    notifier: Notifier,
    recipient: Recipient,
    timeout_seconds: float,
) -> RecipientOutcome:
    result = await notify_many(notifier, [recipient], timeout_seconds)
    return result.outcomes[0]


async def _dispatch(
    notifier: Notifier,
    recipient: Recipient,
    timeout_seconds: float,
) -> RecipientOutcome:
    try:
        outcome = await asyncio.wait_for(
            notifier.send(recipient.address or "", recipient.message),
            timeout=timeout_seconds,
        )
    except TimeoutError:
        logger.warning(
            "Notification timed out user_id=%s after %ss",
            recipient.user_id,
            timeout_seconds,
        )
        outcome = DeliveryOutcome.failed("timeout")
    except Exception:
        logger.exception("Notification dispatch failed user_id=%s", recipient.user_id)
        outcome = DeliveryOutcome.failed("dispatch error")

    return RecipientOutcome(
        recipient=recipient,
        delivered=outcome.delivered,
        reason=outcome.reason,
    )


def write_audit_records(session_factory: sessionmaker, entries: list[AuditEntry]) -> bool:
    """Persist one notification record per entry. Returns False on storage failure."""
    if not entries:
        return True

    created_at = datetime.now(timezone.utc)
    try:
        with transaction_scope(session_factory) as session:
            for entry in entries:
                session.add(
                    Notification(
                        user_id=entry.user_id,
                        reservation_id=entry.reservation_id,
                        message=entry.message,
                        delivery_status=DELIVERY_DELIVERED if entry.delivered else DELIVERY_FAILED,
                        is_read=False,
                        created_at=created_at,
                    )
                )
    except SQLAlchemyError:
        logger.exception(
            "Failed writing %s notification record(s) user_ids=%s",
            len(entries),
            [entry.user_id for entry in entries],
        )
        return False
    return True


def load_roster(db: Session) -> list[User]:
    query = select(User).where(User.phone.is_not(None)).order_by(User.id)
    return list(db.scalars(query).all())


def reservation_created_message(room_name: str, window: TimeWindow) -> str:
    return (
        f"New reservation: {room_name} is booked on {window.day.isoformat()} "
        f"from {window.label()}."
    )


def reservation_confirmed_message(room_name: str, window: TimeWindow) -> str:
    return f"Reservation confirmed for {room_name} on {window.day.isoformat()} from {window.label()}."


def priority_confirmed_message(room_name: str, window: TimeWindow) -> str:
    return (
        f"Priority reservation confirmed for {room_name} on {window.day.isoformat()} "
        f"from {window.label()}."
    )


def preempted_message(display_name: str, room_name: str, window: TimeWindow) -> str:
    return (
        f"Hello {display_name}, your reservation for {room_name} on {window.day.isoformat()} "
        f"from {window.label()} was cancelled due to a priority booking."
    )


def cancelled_message(display_name: str, room_name: str, window: TimeWindow) -> str:
    return (
        f"Hello {display_name}, your reservation for {room_name} on {window.day.isoformat()} "
        f"from {window.label()} has been cancelled."
    )
