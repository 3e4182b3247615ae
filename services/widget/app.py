"""Public booking widget.

Routes are unauthenticated and scoped by organisation id. Nothing here
exposes guest data, and bookings go through the same conflict-checked
write path as the dashboard.
"""
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from common.availability import ReservationStatus, booked_days, format_wall_clock
from common.booking import (
    BookingValidationError,
    ReservationDraft,
    quote_for_room,
    room_bookable_dates,
    room_slots,
    save_reservation,
    validate_draft,
)
from common.config import get_settings
from common.database import Base, engine, get_db
from common.errors import register_error_handlers
from common.logging_middleware import add_audit_middleware
from common.models import Organisation, Property, PropertySettings, Reservation, Room, UserPreferences
from common.rate_limit import apply_rate_limiter, limiter, widget_limit
from common.schemas import (
    AvailabilityRead,
    BookableDatesRead,
    QuoteRead,
    ReservationRead,
    WidgetBookingCreate,
    WidgetBookingRead,
    WidgetReservationRead,
    WidgetRoomRead,
    WidgetRoomsRead,
)

settings = get_settings()

BOOKING_MESSAGE = "Your reservation request has been received and is awaiting confirmation"
# upcoming reservations only
VISIBLE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Booking Widget Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "widget")
    register_error_handlers(fastapi_app)
    return fastapi_app


app = create_app()


def _now() -> datetime:
    return datetime.now()


def _get_organisation(db: Session, org_id: int) -> Organisation:
    organisation = db.get(Organisation, org_id)
    if organisation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organisation not found")
    return organisation


def _property_settings(db: Session, property_id: int) -> Optional[PropertySettings]:
    return db.query(PropertySettings).filter(PropertySettings.property_id == property_id).first()


def _get_public_room(db: Session, org_id: int, room_id: int) -> Tuple[Room, Optional[PropertySettings]]:
    room = (
        db.query(Room)
        .join(Property, Room.property_id == Property.id)
        .filter(Room.id == room_id, Property.organisation_id == org_id)
        .first()
    )
    if room is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    property_settings = _property_settings(db, room.property_id)
    if property_settings is not None and not property_settings.widget_enabled:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Online booking is disabled for this property"
        )
    return room, property_settings


def _earliest_start(property_settings: Optional[PropertySettings], now: datetime) -> datetime:
    """First moment a widget booking may start at."""

    notice = property_settings.min_advance_booking_hours if property_settings is not None else 0
    return now + timedelta(hours=notice or 0)


def _organisation_currency(db: Session, organisation: Organisation) -> str:
    preferences = db.query(UserPreferences).filter(UserPreferences.user_id == organisation.owner_id).first()
    if preferences and preferences.currency:
        return preferences.currency
    return settings.default_currency


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "widget"}


@app.get("/widget/rooms", response_model=WidgetRoomsRead)
def list_widget_rooms(org_id: int, db: Session = Depends(get_db)) -> WidgetRoomsRead:
    organisation = _get_organisation(db, org_id)
    rows = (
        db.query(Room, Property.name)
        .join(Property, Room.property_id == Property.id)
        .outerjoin(PropertySettings, PropertySettings.property_id == Property.id)
        .filter(Property.organisation_id == org_id)
        .filter((PropertySettings.id.is_(None)) | (PropertySettings.widget_enabled.is_(True)))
        .order_by(Property.name.asc(), Room.name.asc())
        .all()
    )
    rooms = [
        WidgetRoomRead(
            id=room.id,
            name=room.name,
            property_name=property_name,
            price_per_night=float(room.price_per_night or 0),
            pricing_type=room.pricing_type,
        )
        for room, property_name in rows
    ]
    return WidgetRoomsRead(
        rooms=rooms,
        currency=_organisation_currency(db, organisation),
        organization_name=organisation.name,
    )


@app.get("/widget/reservations", response_model=List[WidgetReservationRead])
def list_widget_reservations(
    org_id: int,
    room_id: Optional[int] = None,
    db: Session = Depends(get_db),
) -> List[Reservation]:
    query = (
        db.query(Reservation)
        .join(Room, Reservation.room_id == Room.id)
        .join(Property, Room.property_id == Property.id)
        .filter(Property.organisation_id == org_id, Reservation.status.in_(VISIBLE_STATUSES))
    )
    if room_id is not None:
        query = query.filter(Reservation.room_id == room_id)
    return query.order_by(Reservation.starts_at.asc()).all()


@app.get("/widget/availability", response_model=AvailabilityRead)
def widget_availability(
    org_id: int,
    room_id: int,
    day: date = Query(..., alias="date"),
    duration: int = Query(1, ge=1, le=8),
    db: Session = Depends(get_db),
) -> AvailabilityRead:
    _, property_settings = _get_public_room(db, org_id, room_id)
    slots = room_slots(db, room_id, day, duration, not_before=_earliest_start(property_settings, _now()))
    return AvailabilityRead(
        room_id=room_id,
        date=day,
        duration=duration,
        slots=[format_wall_clock(slot) for slot in slots],
        fully_reserved=not slots,
    )


@app.get("/widget/dates", response_model=BookableDatesRead)
def widget_dates(
    org_id: int,
    room_id: int,
    start: date,
    end: date,
    duration: int = Query(1, ge=1, le=8),
    db: Session = Depends(get_db),
) -> BookableDatesRead:
    _, property_settings = _get_public_room(db, org_id, room_id)
    now = _now()
    earliest = _earliest_start(property_settings, now)
    dates = room_bookable_dates(db, room_id, start, end, duration, today=now.date(), not_before=earliest)
    return BookableDatesRead(room_id=room_id, duration=duration, dates=dates)


@app.get("/widget/quote", response_model=QuoteRead)
def widget_quote(
    org_id: int,
    room_id: int,
    start_date: date,
    end_date: date,
    duration: Optional[int] = Query(None, ge=1, le=8),
    db: Session = Depends(get_db),
) -> QuoteRead:
    room, _ = _get_public_room(db, org_id, room_id)
    total = quote_for_room(room, start_date, end_date, duration)
    return QuoteRead(
        room_id=room.id,
        pricing_type=room.pricing_type,
        days=booked_days(start_date, end_date),
        duration=duration,
        total_price=float(total),
    )


@app.post("/widget/booking", response_model=WidgetBookingRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(widget_limit)
def create_widget_booking(
    request: Request,
    booking: WidgetBookingCreate,
    db: Session = Depends(get_db),
) -> WidgetBookingRead:
    room, property_settings = _get_public_room(db, booking.organization_id, booking.room_id)

    # client-side filtering is advisory; status and price are never taken from the caller
    draft = ReservationDraft.from_payload(
        booking,
        status=ReservationStatus.PENDING,
        total_price=None,
        source="widget",
    )
    interval = validate_draft(draft)
    now = _now()
    earliest = _earliest_start(property_settings, now)
    # same-day bookings are checked against the clock, stays against the check-in day
    if draft.start_date == draft.end_date:
        starts_in_past, starts_too_soon = interval.start < now, interval.start < earliest
    else:
        starts_in_past, starts_too_soon = draft.start_date < now.date(), draft.start_date < earliest.date()
    if starts_in_past:
        raise BookingValidationError("Reservations cannot start in the past")
    if starts_too_soon:
        raise BookingValidationError(
            f"Reservations must be made at least {property_settings.min_advance_booking_hours} hours in advance"
        )
    if property_settings is not None:
        horizon = now.date() + timedelta(days=property_settings.max_advance_booking_days)
        if draft.start_date > horizon:
            raise BookingValidationError(
                f"Reservations can be made at most {property_settings.max_advance_booking_days} days in advance"
            )

    reservation = save_reservation(db, room, draft)
    return WidgetBookingRead(reservation=ReservationRead.model_validate(reservation), message=BOOKING_MESSAGE)
