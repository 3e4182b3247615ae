"""Validated, conflict-checked reservation writes.

Dashboard routes and the public widget both persist reservations through
:func:`save_reservation`, so the same sub-day overlap rule and the same
409 response apply whichever path detects a clash.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .availability import (
    BLOCKING_STATUSES,
    Interval,
    ReservationStatus,
    available_slots,
    bookable_dates,
    blocks_availability,
    effective_interval,
    find_conflict,
    quote_price,
    slot_catalog,
)
from .config import get_settings
from .models import Reservation, Room

logger = logging.getLogger(__name__)

CONFLICT_DETAIL = "Reservation conflicts with an existing reservation, please choose another slot"
MAX_DATE_RANGE_DAYS = 366


class BookingError(Exception):
    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class BookingValidationError(BookingError):
    status_code = 400


class BookingConflictError(BookingError):
    status_code = 409

    def __init__(self, detail: str = CONFLICT_DETAIL, conflicting_id: Optional[int] = None) -> None:
        super().__init__(detail)
        self.conflicting_id = conflicting_id


@dataclass
class ReservationDraft:
    guest_name: str
    start_date: date
    end_date: date
    guest_email: Optional[str] = None
    start_time: Optional[str] = None
    duration: Optional[int] = None
    status: ReservationStatus = ReservationStatus.PENDING
    total_price: Optional[Decimal] = None
    notes: Optional[str] = None
    source: str = "dashboard"

    @classmethod
    def from_payload(cls, payload: BaseModel, **overrides) -> "ReservationDraft":
        names = {f.name for f in fields(cls)}
        values = {key: value for key, value in payload.model_dump().items() if key in names}
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_reservation(cls, reservation: Reservation, **overrides) -> "ReservationDraft":
        draft = cls(**{f.name: getattr(reservation, f.name) for f in fields(cls)})
        return replace(draft, **overrides)


def validate_draft(draft: ReservationDraft) -> Interval:
    """Check date ordering and same-day requirements, returning the effective interval."""

    if draft.start_date > draft.end_date:
        raise BookingValidationError("End date must be on or after start date")
    if draft.start_date == draft.end_date and (not draft.start_time or not draft.duration):
        raise BookingValidationError("Same-day reservations require a start time and a duration")
    try:
        return effective_interval(draft.start_date, draft.end_date, draft.start_time, draft.duration)
    except ValueError as exc:
        raise BookingValidationError(str(exc)) from exc


def blocking_reservations(
    db: Session,
    room_id: int,
    window: Optional[Interval] = None,
) -> List[Reservation]:
    """Reservations of ``room_id`` that occupy the room, optionally limited to ``window``."""

    query = db.query(Reservation).filter(
        Reservation.room_id == room_id,
        Reservation.status.in_(BLOCKING_STATUSES),
    )
    if window is not None:
        query = query.filter(Reservation.starts_at < window.end, Reservation.ends_at > window.start)
    return query.order_by(Reservation.starts_at.asc()).all()


def save_reservation(
    db: Session,
    room: Room,
    draft: ReservationDraft,
    reservation: Optional[Reservation] = None,
) -> Reservation:
    """Insert or update a reservation after re-checking availability under a room lock."""

    interval = validate_draft(draft)
    exclude_id = reservation.id if reservation is not None else None
    try:
        # serialises concurrent writers for the same room on databases with row locks
        db.query(Room).filter(Room.id == room.id).with_for_update().one()
        if blocks_availability(draft.status):
            conflict = find_conflict(interval, blocking_reservations(db, room.id, interval), exclude_id)
            if conflict is not None:
                logger.info("Booking conflict on room %s with reservation %s", room.id, conflict.id)
                raise BookingConflictError(conflicting_id=conflict.id)

        total_price = draft.total_price
        if total_price is None and room.price_per_night is not None:
            total_price = quote_price(
                room.price_per_night, room.pricing_type, draft.start_date, draft.end_date, draft.duration
            )

        if reservation is None:
            reservation = Reservation(source=draft.source)
            db.add(reservation)
        reservation.room_id = room.id
        reservation.guest_name = draft.guest_name
        reservation.guest_email = draft.guest_email
        reservation.start_date = draft.start_date
        reservation.end_date = draft.end_date
        reservation.start_time = draft.start_time if draft.start_date == draft.end_date else None
        reservation.duration = draft.duration if draft.start_date == draft.end_date else None
        reservation.starts_at = interval.start
        reservation.ends_at = interval.end
        reservation.status = draft.status
        reservation.total_price = total_price
        reservation.notes = draft.notes
        db.commit()
    except BookingConflictError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Storage rejected reservation on room %s: %s", room.id, exc.orig)
        raise BookingConflictError() from exc
    db.refresh(reservation)
    return reservation


def change_status(db: Session, reservation: Reservation, status: ReservationStatus) -> Reservation:
    """Move a reservation to ``status``; reviving a cancelled one re-checks conflicts."""

    draft = ReservationDraft.from_reservation(reservation, status=status)
    return save_reservation(db, reservation.room, draft, reservation)


def default_catalog() -> List[time]:
    settings = get_settings()
    return slot_catalog(settings.slot_opening_hour, settings.slot_closing_hour, settings.slot_step_minutes)


def _day_window(first: date, last: date) -> Interval:
    return Interval(datetime.combine(first, time.min), datetime.combine(last + timedelta(days=1), time.min))


def room_slots(
    db: Session,
    room_id: int,
    day: date,
    duration: int,
    exclude_id: Optional[int] = None,
    not_before: Optional[datetime] = None,
) -> List[time]:
    """Start times still bookable on ``day`` for a ``duration``-hour stay."""

    existing = blocking_reservations(db, room_id, _day_window(day, day))
    return available_slots(day, duration, existing, default_catalog(), exclude_id, not_before)


def room_bookable_dates(
    db: Session,
    room_id: int,
    first: date,
    last: date,
    duration: int,
    today: Optional[date] = None,
    not_before: Optional[datetime] = None,
) -> List[date]:
    if last < first:
        raise BookingValidationError("Range end must be on or after range start")
    if (last - first).days > MAX_DATE_RANGE_DAYS:
        raise BookingValidationError(f"Date range cannot exceed {MAX_DATE_RANGE_DAYS} days")
    existing = blocking_reservations(db, room_id, _day_window(first, last))
    return bookable_dates(first, last, duration, existing, default_catalog(), today, not_before)


def quote_for_room(
    room: Room,
    start_date: date,
    end_date: date,
    duration: Optional[int] = None,
) -> Decimal:
    if room.price_per_night is None:
        raise BookingValidationError("This room has no price configured")
    try:
        return quote_price(room.price_per_night, room.pricing_type, start_date, end_date, duration)
    except ValueError as exc:
        raise BookingValidationError(str(exc)) from exc
