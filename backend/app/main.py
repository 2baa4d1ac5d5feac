import json
import logging
import time
import uuid
from typing import Any

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.db.session import SessionLocal
from app.integrations.sms import build_notifier
from app.reservations import (
    ReservationError,
    cancel_reservation,
    create_priority_reservation,
    create_reservation,
    current_booking_day,
    list_all_reservations,
    list_user_reservations,
    reservation_stats,
)
from app.reservations.schemas import (
    Principal,
    map_validation_error,
    parse_cancel_reservation_args,
    parse_create_reservation_args,
    serialize_booking_result,
    serialize_cancel_result,
    serialize_reservation,
)
from app.security.dependencies import ensure_admin, load_principal, parse_user_id_header


def configure_logging() -> logging.Logger:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    return logging.getLogger("roombooking.backend")


logger = configure_logging()
app = FastAPI(title="Room Booking Backend")
notifier = build_notifier()


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    start_time = time.perf_counter()

    response = await call_next(request)

    duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
    response.headers["x-request-id"] = request_id

    logger.info(
        json.dumps(
            {
                "event": "http_request",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            }
        )
    )
    return response


def current_principal(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> Principal:
    user_id = parse_user_id_header(x_user_id)
    db = SessionLocal()
    try:
        return load_principal(db=db, user_id=user_id)
    finally:
        db.close()


def current_admin(principal: Principal = Depends(current_principal)) -> Principal:
    return ensure_admin(principal)


def _system_down(human_message: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error_code": "SYSTEM_DOWN",
            "human_message": human_message,
        },
    )


@app.get("/health")
async def health():
    return JSONResponse(content={"ok": True})


@app.post("/v1/reservations")
async def create_reservation_route(
    payload: dict[str, Any],
    principal: Principal = Depends(current_principal),
) -> JSONResponse:
    try:
        args = parse_create_reservation_args(payload)
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"ok": False, **map_validation_error(exc)})

    try:
        result = await create_reservation(
            session_factory=SessionLocal,
            notifier=notifier,
            requester=principal,
            room_id=args.room_id,
            window=args.to_window(),
            reason=args.reason,
        )
    except ReservationError as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
    except Exception:
        logger.exception("Unhandled error creating reservation user_id=%s", principal.id)
        return _system_down("Temporary issue creating reservation.")

    return JSONResponse(
        status_code=201,
        content={"ok": True, "data": serialize_booking_result(result)},
    )


@app.post("/v1/reservations/priority")
async def create_priority_reservation_route(
    payload: dict[str, Any],
    admin: Principal = Depends(current_admin),
) -> JSONResponse:
    try:
        args = parse_create_reservation_args(payload)
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"ok": False, **map_validation_error(exc)})

    try:
        result = await create_priority_reservation(
            session_factory=SessionLocal,
            notifier=notifier,
            admin=admin,
            room_id=args.room_id,
            window=args.to_window(),
            reason=args.reason,
        )
    except ReservationError as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
    except Exception:
        logger.exception("Unhandled error creating priority reservation user_id=%s", admin.id)
        return _system_down("Temporary issue creating priority reservation.")

    return JSONResponse(
        status_code=201,
        content={"ok": True, "data": serialize_booking_result(result, include_preemption=True)},
    )


@app.delete("/v1/reservations/{reservation_id}")
async def cancel_reservation_route(
    reservation_id: int,
    principal: Principal = Depends(current_principal),
) -> JSONResponse:
    try:
        args = parse_cancel_reservation_args({"reservation_id": reservation_id})
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"ok": False, **map_validation_error(exc)})

    try:
        result = await cancel_reservation(
            session_factory=SessionLocal,
            notifier=notifier,
            requester=principal,
            reservation_id=args.reservation_id,
        )
    except ReservationError as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
    except Exception:
        logger.exception("Unhandled error cancelling reservation_id=%s", reservation_id)
        return _system_down("Temporary issue cancelling reservation.")

    return JSONResponse(content={"ok": True, "data": serialize_cancel_result(result)})


@app.get("/v1/reservations/mine")
async def my_reservations(principal: Principal = Depends(current_principal)) -> JSONResponse:
    db = SessionLocal()
    try:
        reservations = list_user_reservations(db=db, user_id=principal.id)
    finally:
        db.close()

    return JSONResponse(
        content={
            "ok": True,
            "data": {"reservations": [serialize_reservation(item) for item in reservations]},
        }
    )


@app.get("/v1/reservations/stats")
async def reservations_stats(_admin: Principal = Depends(current_admin)) -> JSONResponse:
    db = SessionLocal()
    try:
        stats = reservation_stats(db=db, today=current_booking_day())
    finally:
        db.close()

    return JSONResponse(content={"ok": True, "data": stats})


@app.get("/v1/reservations")
async def all_reservations(_admin: Principal = Depends(current_admin)) -> JSONResponse:
    db = SessionLocal()
    try:
        reservations = list_all_reservations(db=db)
    finally:
        db.close()

    serialized = [serialize_reservation(item, include_phone=True) for item in reservations]
    return JSONResponse(content={"ok": True, "data": {"reservations": serialized}})
