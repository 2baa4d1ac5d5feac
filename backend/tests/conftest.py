import asyncio
from datetime import date, time

import pytest

from app.db.base import Base
from app.db.models import (
    RESERVATION_ACTIVE,
    ROLE_ADMIN,
    ROLE_MEMBER,
    ROOM_AVAILABLE,
    Reservation,
    Room,
    User,
)
from app.db.session import build_engine, build_session_factory
from app.integrations.sms import DeliveryOutcome
from app.reservations.schemas import Principal


TODAY = date(2026, 10, 18)


class RecordingNotifier:
    def __init__(self, failing_addresses=(), fail_all=False):
        self.failing_addresses = set(failing_addresses)
        self.fail_all = fail_all
        self.sent = []

    async def send(self, address, message):
        self.sent.append((address, message))
        if self.fail_all or address in self.failing_addresses:
            return DeliveryOutcome.failed("rejected")
        return DeliveryOutcome.ok()


class RaisingNotifier:
    def __init__(self):
        self.calls = 0

    async def send(self, address, message):
        self.calls += 1
        raise RuntimeError("transport exploded")


class HangingNotifier:
    async def send(self, address, message):
        await asyncio.sleep(60)
        return DeliveryOutcome.ok()


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'roombooking.db'}")
    Base.metadata.create_all(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def make_user(session_factory):
    def _make_user(display_name, phone="+15555550100", role=ROLE_MEMBER):
        with session_factory() as db:
            user = User(display_name=display_name, phone=phone, role=role)
            db.add(user)
            db.commit()
            return Principal.from_user(user)

    return _make_user


@pytest.fixture
def make_room(session_factory):
    def _make_room(name="Boardroom", status=ROOM_AVAILABLE, capacity=10):
        with session_factory() as db:
            room = Room(name=name, status=status, capacity=capacity)
            db.add(room)
            db.commit()
            return room.id

    return _make_room


@pytest.fixture
def make_reservation(session_factory):
    def _make_reservation(user_id, room_id, start, end, day=TODAY, status=RESERVATION_ACTIVE):
        with session_factory() as db:
            reservation = Reservation(
                user_id=user_id,
                room_id=room_id,
                date=day,
                start_time=time.fromisoformat(start),
                end_time=time.fromisoformat(end),
                status=status,
            )
            db.add(reservation)
            db.commit()
            return reservation.id

    return _make_reservation


@pytest.fixture
def member(make_user):
    return make_user("Alice", phone="+15555550101")


@pytest.fixture
def other_member(make_user):
    return make_user("Bob", phone="+15555550102")


@pytest.fixture
def admin(make_user):
    return make_user("Admin", phone="+15555550199", role=ROLE_ADMIN)


@pytest.fixture
def room_id(make_room):
    return make_room()
