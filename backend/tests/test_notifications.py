import asyncio

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.db.models import DELIVERY_DELIVERED, DELIVERY_FAILED, Notification
from app.integrations.sms import DeliveryOutcome
from app.reservations.notifications import (
    AuditEntry,
    Recipient,
    notify_many,
    notify_one,
    write_audit_records,
)
from conftest import HangingNotifier, RaisingNotifier, RecordingNotifier


def _recipient(user_id, address):
    return Recipient(
        user_id=user_id,
        display_name=f"user-{user_id}",
        address=address,
        message="Room booked",
    )


class GatedNotifier:
    """Completes only once every expected dispatch has started."""

    def __init__(self, expected):
        self.expected = expected
        self.started = 0
        self.all_started = asyncio.Event()

    async def send(self, address, message):
        self.started += 1
        if self.started == self.expected:
            self.all_started.set()
        await self.all_started.wait()
        return DeliveryOutcome.ok()


class SelectiveNotifier:
    async def send(self, address, message):
        if address == "+boom":
            raise RuntimeError("carrier rejected")
        if address == "+slow":
            await asyncio.sleep(60)
        return DeliveryOutcome.ok()


def test_notify_many_dispatches_concurrently():
    notifier = GatedNotifier(expected=3)
    recipients = [_recipient(1, "+1"), _recipient(2, "+2"), _recipient(3, "+3")]

    result = asyncio.run(notify_many(notifier, recipients, timeout_seconds=2))

    assert result.ok is True
    assert result.all_delivered is True
    assert [outcome.recipient.user_id for outcome in result.outcomes] == [1, 2, 3]


def test_one_failure_does_not_affect_other_recipients():
    recipients = [_recipient(1, "+boom"), _recipient(2, "+slow"), _recipient(3, "+ok")]

    result = asyncio.run(notify_many(SelectiveNotifier(), recipients, timeout_seconds=0.05))

    outcomes = {outcome.recipient.user_id: outcome for outcome in result.outcomes}
    assert outcomes[1].delivered is False
    assert outcomes[1].reason == "dispatch error"
    assert outcomes[2].delivered is False
    assert outcomes[2].reason == "timeout"
    assert outcomes[3].delivered is True
    assert result.ok is True
    assert result.all_delivered is False


def test_aggregate_fails_when_no_recipient_succeeds():
    recipients = [_recipient(1, "+1"), _recipient(2, "+2")]

    result = asyncio.run(notify_many(RaisingNotifier(), recipients, timeout_seconds=1))

    assert result.ok is False
    assert [outcome.delivered for outcome in result.outcomes] == [False, False]


def test_empty_roster_is_not_a_success():
    result = asyncio.run(notify_many(RecordingNotifier(), [], timeout_seconds=1))
    assert result.ok is False
    assert result.outcomes == []


def test_notify_one_reports_single_outcome():
    outcome = asyncio.run(notify_one(HangingNotifier(), _recipient(7, "+7"), timeout_seconds=0.01))
    assert outcome.delivered is False
    assert outcome.reason == "timeout"


def test_recipient_without_address_fails_through_notifier():
    notifier = RecordingNotifier(failing_addresses=[""])
    outcome = asyncio.run(notify_one(notifier, _recipient(8, None), timeout_seconds=1))
    assert outcome.delivered is False
    assert notifier.sent == [("", "Room booked")]


def test_write_audit_records_persists_one_row_per_entry(session_factory, member, other_member):
    ok = write_audit_records(
        session_factory,
        [
            AuditEntry(user_id=member.id, message="sent", delivered=True),
            AuditEntry(user_id=other_member.id, message="not sent", delivered=False),
        ],
    )

    assert ok is True
    with session_factory() as db:
        rows = db.scalars(select(Notification).order_by(Notification.id)).all()
        assert [(row.user_id, row.delivery_status, row.is_read) for row in rows] == [
            (member.id, DELIVERY_DELIVERED, False),
            (other_member.id, DELIVERY_FAILED, False),
        ]
        assert all(row.reservation_id is None for row in rows)


def test_write_audit_records_reports_storage_failure(session_factory, member, monkeypatch):
    class BrokenSession:
        def add(self, _row):
            return None

        def commit(self):
            raise OperationalError("INSERT INTO notifications", {}, Exception("disk full"))

        def rollback(self):
            return None

        def close(self):
            return None

    ok = write_audit_records(
        lambda: BrokenSession(),
        [AuditEntry(user_id=member.id, message="sent", delivered=True)],
    )

    assert ok is False
