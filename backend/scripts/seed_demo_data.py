from sqlalchemy import select

from app.db.models import ROLE_ADMIN, ROLE_MEMBER, ROOM_AVAILABLE, Room, User
from app.db.session import SessionLocal


DEMO_USERS = [
    {"display_name": "Demo Admin", "phone": "+15555550100", "role": ROLE_ADMIN},
    {"display_name": "Demo Member", "phone": "+15555550101", "role": ROLE_MEMBER},
]
DEMO_ROOMS = [
    {"name": "Boardroom", "capacity": 12},
    {"name": "Focus Room", "capacity": 4},
]


def seed_demo_data() -> None:
    session = SessionLocal()
    try:
        for values in DEMO_USERS:
            existing = session.scalars(
                select(User).where(User.display_name == values["display_name"])
            ).first()
            if existing is not None:
                print(f"User {values['display_name']!r} already exists with id={existing.id}")
                continue
            user = User(**values)
            session.add(user)
            session.flush()
            print(f"Created user {user.display_name!r} with id={user.id}")

        for values in DEMO_ROOMS:
            existing = session.scalars(select(Room).where(Room.name == values["name"])).first()
            if existing is not None:
                print(f"Room {values['name']!r} already exists with id={existing.id}")
                continue
            room = Room(status=ROOM_AVAILABLE, **values)
            session.add(room)
            session.flush()
            print(f"Created room {room.name!r} with id={room.id}")

        session.commit()
    finally:
        session.close()


if __name__ == "__main__":
    seed_demo_data()
