import logging

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.db.models import User
from app.reservations.schemas import Principal

logger = logging.getLogger("roombooking.security")


def parse_user_id_header(x_user_id: str | None) -> int:
    """Read the caller id set by the upstream authentication gateway."""
    raw = (x_user_id or "").strip()
    if not raw.isdigit() or int(raw) <= 0:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "UNAUTHENTICATED",
                "human_message": "Missing or invalid X-User-Id header.",
            },
        )
    return int(raw)


def load_principal(db: Session, user_id: int) -> Principal:
    user = db.get(User, user_id)
    if user is None:
        logger.warning("Request for unknown user_id=%s", user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "UNKNOWN_USER",
                "human_message": "Authenticated user does not exist.",
            },
        )
    return Principal.from_user(user)


def ensure_admin(principal: Principal) -> Principal:
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error_code": "ADMIN_REQUIRED",
                "human_message": "Admin role required.",
            },
        )
    return principal
