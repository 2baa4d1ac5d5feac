from app.db.base import Base
from app.db.models import (
    Notification,
    Reservation,
    Room,
    User,
)

__all__ = [
    "Base",
    "Notification",
    "Reservation",
    "Room",
    "User",
]
