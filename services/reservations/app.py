from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from common.availability import ReservationStatus, booked_days, format_wall_clock
from common.booking import (
    ReservationDraft,
    change_status,
    quote_for_room,
    room_bookable_dates,
    room_slots,
    save_reservation,
)
from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import (
    Membership,
    get_current_membership,
    get_owned_reservation,
    get_owned_room,
    require_manager,
)
from common.errors import register_error_handlers
from common.logging_middleware import add_audit_middleware
from common.models import Property, Reservation, Room
from common.rate_limit import apply_rate_limiter, limiter
from common.schemas import (
    AvailabilityRead,
    BookableDatesRead,
    QuoteRead,
    ReservationCreate,
    ReservationListItem,
    ReservationRead,
    ReservationStatusUpdate,
    ReservationUpdate,
)

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Reservations Service", version="0.3.0", lifespan=lifespan)
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
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "reservations"}


@app.get("/reservations", response_model=List[ReservationListItem])
def list_reservations(
    property_id: Optional[int] = None,
    room_id: Optional[int] = None,
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> List[ReservationListItem]:
    query = (
        db.query(Reservation, Room.name, Property.name)
        .join(Room, Reservation.room_id == Room.id)
        .join(Property, Room.property_id == Property.id)
        .filter(Property.organisation_id == membership.organisation_id)
    )
    if property_id is not None:
        query = query.filter(Property.id == property_id)
    if room_id is not None:
        query = query.filter(Reservation.room_id == room_id)
    if reservation_status is not None:
        query = query.filter(Reservation.status == reservation_status)
    rows = query.order_by(Reservation.created_at.desc(), Reservation.id.desc()).all()
    return [
        ReservationListItem(
            **ReservationRead.model_validate(reservation).model_dump(),
            room_name=room_name,
            property_name=property_name,
        )
        for reservation, room_name, property_name in rows
    ]


@app.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
def create_reservation(
    request: Request,
    reservation_in: ReservationCreate,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Reservation:
    room = get_owned_room(db, membership, reservation_in.room_id)
    return save_reservation(db, room, ReservationDraft.from_payload(reservation_in))


@app.get("/reservations/availability", response_model=AvailabilityRead)
def room_availability(
    room_id: int,
    day: date = Query(..., alias="date"),
    duration: int = Query(1, ge=1, le=8),
    exclude_id: Optional[int] = None,
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> AvailabilityRead:
    get_owned_room(db, membership, room_id)
    slots = room_slots(db, room_id, day, duration, exclude_id)
    return AvailabilityRead(
        room_id=room_id,
        date=day,
        duration=duration,
        slots=[format_wall_clock(slot) for slot in slots],
        fully_reserved=not slots,
    )


@app.get("/reservations/dates", response_model=BookableDatesRead)
def room_dates(
    room_id: int,
    start: date,
    end: date,
    duration: int = Query(1, ge=1, le=8),
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> BookableDatesRead:
    get_owned_room(db, membership, room_id)
    dates = room_bookable_dates(db, room_id, start, end, duration)
    return BookableDatesRead(room_id=room_id, duration=duration, dates=dates)


@app.get("/reservations/quote", response_model=QuoteRead)
def quote_reservation(
    room_id: int,
    start_date: date,
    end_date: date,
    duration: Optional[int] = Query(None, ge=1, le=8),
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> QuoteRead:
    room = get_owned_room(db, membership, room_id)
    total = quote_for_room(room, start_date, end_date, duration)
    return QuoteRead(
        room_id=room.id,
        pricing_type=room.pricing_type,
        days=booked_days(start_date, end_date),
        duration=duration,
        total_price=float(total),
    )


@app.get("/reservations/{reservation_id}", response_model=ReservationRead)
def get_reservation(
    reservation_id: int,
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> Reservation:
    return get_owned_reservation(db, membership, reservation_id)


@app.put("/reservations/{reservation_id}", response_model=ReservationRead)
def update_reservation(
    reservation_id: int,
    reservation_in: ReservationUpdate,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Reservation:
    reservation = get_owned_reservation(db, membership, reservation_id)
    room = get_owned_room(db, membership, reservation_in.room_id)
    draft = ReservationDraft.from_payload(reservation_in, source=reservation.source)
    return save_reservation(db, room, draft, reservation)


@app.patch("/reservations/{reservation_id}/status", response_model=ReservationRead)
def update_reservation_status(
    reservation_id: int,
    payload: ReservationStatusUpdate,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> Reservation:
    reservation = get_owned_reservation(db, membership, reservation_id)
    return change_status(db, reservation, payload.status)


@app.delete("/reservations/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_reservation(
    reservation_id: int,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> None:
    reservation = get_owned_reservation(db, membership, reservation_id)
    db.delete(reservation)
    db.commit()
