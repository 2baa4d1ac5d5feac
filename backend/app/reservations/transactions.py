from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.reservations.errors import InternalError, ReservationError, SlotConflictError


T = TypeVar("T")
logger = logging.getLogger("roombooking.reservations.transactions")

RETRYABLE_SQLSTATES = {"40001", "40P01"}


@contextmanager
def transaction_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """Yield a session that is committed on normal exit and rolled back otherwise."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()


def run_in_transaction(
    session_factory: sessionmaker,
    work: Callable[[Session], T],
    retries: int,
    operation: str,
    exhausted_error: type[ReservationError] = SlotConflictError,
) -> T:
    """Run ``work`` in its own transaction, retrying on serialization failures.

    Typed reservation errors propagate unchanged. A serialization failure that
    survives every retry is raised as ``exhausted_error`` (a slot conflict by
    default). Any other storage error becomes an ``InternalError`` so driver
    details never reach the caller.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            with transaction_scope(session_factory) as session:
                return work(session)
        except ReservationError:
            raise
        except DBAPIError as exc:
            if not is_serialization_failure(exc):
                logger.exception("Storage failure during %s", operation)
                raise InternalError() from exc
            if attempt > retries:
                logger.warning(
                    "Serialization retries exhausted for %s after %s attempts",
                    operation,
                    attempt,
                )
                raise exhausted_error() from exc
            logger.warning(
                "Serialization failure during %s; retrying attempt=%s",
                operation,
                attempt + 1,
            )
        except SQLAlchemyError as exc:
            logger.exception("Storage failure during %s", operation)
            raise InternalError() from exc


def is_serialization_failure(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    message = str(orig or exc).lower()
    return (
        "could not serialize access" in message
        or "deadlock detected" in message
        or "database is locked" in message
    )
