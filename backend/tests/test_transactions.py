import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.db.models import Room
from app.reservations.errors import InternalError, RoomNotFoundError, SlotConflictError
from app.reservations.transactions import (
    is_serialization_failure,
    run_in_transaction,
    transaction_scope,
)


class FakeDriverError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


def _serialization_failure():
    return OperationalError(
        "SELECT 1",
        {},
        FakeDriverError("could not serialize access due to concurrent update", "40001"),
    )


def _room_names(session_factory):
    with session_factory() as db:
        return [room.name for room in db.scalars(select(Room).order_by(Room.id)).all()]


def test_transaction_scope_commits_on_success(session_factory):
    with transaction_scope(session_factory) as db:
        db.add(Room(name="Atrium", status="available"))

    assert _room_names(session_factory) == ["Atrium"]


def test_transaction_scope_rolls_back_on_error(session_factory):
    with pytest.raises(RuntimeError):
        with transaction_scope(session_factory) as db:
            db.add(Room(name="Atrium", status="available"))
            db.flush()
            raise RuntimeError("boom")

    assert _room_names(session_factory) == []


def test_typed_errors_roll_back_and_propagate(session_factory):
    def _work(db):
        db.add(Room(name="Half-made", status="available"))
        db.flush()
        raise RoomNotFoundError()

    with pytest.raises(RoomNotFoundError):
        run_in_transaction(session_factory, _work, retries=3, operation="test")

    assert _room_names(session_factory) == []


def test_serialization_failure_is_retried(session_factory):
    attempts = []

    def _work(db):
        attempts.append(1)
        if len(attempts) < 3:
            raise _serialization_failure()
        db.add(Room(name="Atrium", status="available"))
        return "done"

    assert run_in_transaction(session_factory, _work, retries=3, operation="test") == "done"
    assert len(attempts) == 3
    assert _room_names(session_factory) == ["Atrium"]


def test_exhausted_retries_surface_as_slot_conflict(session_factory):
    attempts = []

    def _work(_db):
        attempts.append(1)
        raise _serialization_failure()

    with pytest.raises(SlotConflictError):
        run_in_transaction(session_factory, _work, retries=2, operation="test")

    assert len(attempts) == 3


def test_other_storage_errors_become_internal_error(session_factory):
    def _work(_db):
        raise OperationalError("SELECT 1", {}, FakeDriverError("connection refused"))

    with pytest.raises(InternalError) as exc_info:
        run_in_transaction(session_factory, _work, retries=3, operation="test")

    assert "connection refused" not in str(exc_info.value)


def test_is_serialization_failure_matches_deadlock_and_sqlite_lock():
    assert is_serialization_failure(
        OperationalError("UPDATE", {}, FakeDriverError("deadlock detected", "40P01"))
    )
    assert is_serialization_failure(
        OperationalError("BEGIN IMMEDIATE", {}, FakeDriverError("database is locked"))
    )
    assert not is_serialization_failure(
        OperationalError("SELECT 1", {}, FakeDriverError("no such table: rooms"))
    )
