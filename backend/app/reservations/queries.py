from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from app.db.models import RESERVATION_ACTIVE, RESERVATION_CANCELLED, Reservation, Room
from app.reservations.schemas import ReservationView


POPULAR_ROOMS_LIMIT = 5


def list_user_reservations(db: Session, user_id: int) -> list[ReservationView]:
    query = (
        select(Reservation)
        .where(Reservation.user_id == user_id)
        .order_by(Reservation.date.desc(), Reservation.start_time.desc())
    )
    return [ReservationView.from_row(row) for row in db.scalars(query).all()]


def list_all_reservations(db: Session) -> list[ReservationView]:
    query = select(Reservation).order_by(Reservation.date.desc(), Reservation.start_time.desc())
    return [ReservationView.from_row(row) for row in db.scalars(query).all()]


def reservation_stats(db: Session, today: date) -> dict[str, Any]:
    totals = db.execute(
        select(
            func.count(Reservation.id),
            func.count(case((Reservation.status == RESERVATION_ACTIVE, 1))),
            func.count(case((Reservation.status == RESERVATION_CANCELLED, 1))),
            func.count(case((Reservation.date >= today, 1))),
            func.count(case((Reservation.date == today, 1))),
        )
    ).one()

    reservation_count = func.count(Reservation.id).label("reservation_count")
    popular_rows = db.execute(
        select(Room.name, reservation_count)
        .outerjoin(Reservation, Reservation.room_id == Room.id)
        .group_by(Room.id, Room.name)
        .order_by(reservation_count.desc(), Room.id)
        .limit(POPULAR_ROOMS_LIMIT)
    ).all()

    return {
        "total_reservations": totals[0],
        "active_reservations": totals[1],
        "cancelled_reservations": totals[2],
        "upcoming_reservations": totals[3],
        "today_reservations": totals[4],
        "popular_rooms": [
            {"room_name": name, "reservation_count": count} for name, count in popular_rows
        ],
    }
