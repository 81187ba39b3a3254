import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import SQLAlchemyError

from common.config import get_settings
from common.database import Base, SessionLocal, engine
from common.dependencies import allow_roles, get_current_principal, get_reservation_service
from common.errors import register_error_handlers
from common.logging_middleware import add_audit_middleware, configure_logging
from common.models import Reservation, ReservationStatus, RoleEnum
from common.rate_limit import apply_rate_limiter, limiter
from common.reservations import ReservationService
from common.schemas import (
    AvailableSlots,
    CleanupResult,
    ConfirmRequest,
    ConflictCheckRequest,
    ConflictCheckResult,
    ConflictRead,
    Principal,
    RequestedRange,
    ReservationRead,
    ReserveRequest,
    SlotRead,
)
from common.sweeper import ExpirySweeper

settings = get_settings()
logger = logging.getLogger(__name__)
sweeper = ExpirySweeper(SessionLocal, settings)


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    if settings.sweeper_enabled:
        sweeper.start()
    yield
    await sweeper.stop()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Slot Reservations Service", version="0.1.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "reservations")
    register_error_handlers(fastapi_app)
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "reservations"}


@app.get("/slot-reservations", response_model=List[ReservationRead])
@limiter.limit("60/minute")
def list_reservations(
    request: Request,
    status_filter: Optional[ReservationStatus] = Query(None, alias="status"),
    resource_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    principal: Principal = Depends(get_current_principal),
    service: ReservationService = Depends(get_reservation_service),
) -> List[Reservation]:
    return service.list_reservations(principal.subject, status_filter, resource_id, start, end)


@app.post("/slot-reservations/check-conflicts", response_model=ConflictCheckResult)
@limiter.limit("60/minute")
def check_conflicts(
    request: Request,
    payload: ConflictCheckRequest,
    _: Principal = Depends(get_current_principal),
    service: ReservationService = Depends(get_reservation_service),
) -> ConflictCheckResult:
    conflicts = service.find_conflicts(payload.start, payload.end, payload.resource_id, payload.exclude_id)
    return ConflictCheckResult(
        has_conflicts=bool(conflicts),
        conflicts=[ConflictRead.model_validate(c) for c in conflicts],
    )


@app.post("/slot-reservations/reserve", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def reserve_slot(
    request: Request,
    payload: ReserveRequest,
    principal: Principal = Depends(get_current_principal),
    service: ReservationService = Depends(get_reservation_service),
) -> Reservation:
    return service.reserve(
        payload.start,
        payload.end,
        payload.resource_id,
        principal.subject,
        ttl_ms=payload.ttl,
        metadata=payload.metadata,
    )


@app.get("/slot-reservations/available", response_model=AvailableSlots)
@limiter.limit("60/minute")
def available_slots(
    request: Request,
    start: datetime = Query(...),
    end: datetime = Query(...),
    resource_id: str = Query(..., min_length=1),
    duration: int = Query(30, description="Slot length in minutes"),
    step: Optional[int] = Query(None, description="Minutes between candidate starts"),
    _: Principal = Depends(get_current_principal),
    service: ReservationService = Depends(get_reservation_service),
) -> AvailableSlots:
    slots = service.enumerate_slots(start, end, resource_id, duration, step)
    return AvailableSlots(
        available_slots=[SlotRead(start=s.start, end=s.end, duration=duration) for s in slots],
        total_slots=len(slots),
        requested_range=RequestedRange(start=start, end=end),
    )


@app.delete("/slot-reservations/cleanup", response_model=CleanupResult)
@limiter.limit("10/minute")
def cleanup_reservations(
    request: Request,
    older_than_ms: Optional[int] = Query(None, ge=0),
    _: Principal = Depends(allow_roles(RoleEnum.ADMIN)),
    service: ReservationService = Depends(get_reservation_service),
) -> CleanupResult:
    try:
        deleted = service.cleanup_expired(older_than_ms)
    except SQLAlchemyError:
        logger.exception("Reservation cleanup failed")
        return CleanupResult(deleted_count=0, message="Cleanup failed; see service logs")
    return CleanupResult(deleted_count=deleted, message="Expired reservations cleaned up")


@app.get("/slot-reservations/{reservation_id}", response_model=ReservationRead)
@limiter.limit("60/minute")
def get_reservation(
    request: Request,
    reservation_id: int,
    principal: Principal = Depends(get_current_principal),
    service: ReservationService = Depends(get_reservation_service),
) -> Reservation:
    return service.get(reservation_id, principal.subject)


@app.post("/slot-reservations/{reservation_id}/confirm", response_model=ReservationRead)
@limiter.limit("30/minute")
def confirm_reservation(
    request: Request,
    reservation_id: int,
    payload: ConfirmRequest,
    principal: Principal = Depends(get_current_principal),
    service: ReservationService = Depends(get_reservation_service),
) -> Reservation:
    return service.confirm(reservation_id, payload.appointment_id, principal.subject)


@app.post("/slot-reservations/{reservation_id}/cancel", response_model=ReservationRead)
@limiter.limit("30/minute")
def cancel_reservation(
    request: Request,
    reservation_id: int,
    principal: Principal = Depends(get_current_principal),
    service: ReservationService = Depends(get_reservation_service),
) -> Reservation:
    return service.cancel(reservation_id, principal.subject)
