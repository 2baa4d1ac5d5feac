from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.models import RESERVATION_ACTIVE, Reservation
from app.reservations.time_window import TimeWindow


def find_conflicts(
    db: Session,
    room_id: int,
    window: TimeWindow,
    exclude_reservation_id: int | None = None,
) -> list[Reservation]:
    """Return active reservations of ``room_id`` overlapping ``window``.

    Rows are read ``FOR UPDATE`` on the caller's session so the result stays
    valid until that transaction ends.
    """
    query = (
        select(Reservation)
        .where(Reservation.room_id == room_id)
        .where(Reservation.date == window.day)
        .where(Reservation.status == RESERVATION_ACTIVE)
        .where(Reservation.start_time < window.end_time)
        .where(Reservation.end_time > window.start_time)
    )
    if exclude_reservation_id is not None:
        query = query.where(Reservation.id != exclude_reservation_id)

    query = query.order_by(Reservation.start_time, Reservation.id).with_for_update(of=Reservation)
    return list(db.scalars(query).all())
