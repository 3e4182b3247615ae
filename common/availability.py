"""Reservation overlap detection, slot availability and price quotes.

Everything in this module is pure: callers load a room's reservations and
hand them in. Intervals are half-open ``[start, end)`` expressed in the
property's wall-clock time, so two bookings that merely touch never clash.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, List, Optional, Protocol, Sequence, TypeVar, Union

FULL_DAY_DURATION = 8
MIN_DURATION = 1


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class PricingType(str, Enum):
    HOUR = "hour"
    DAY = "day"
    NIGHT = "night"


def blocks_availability(status: Union[ReservationStatus, str]) -> bool:
    """Return whether a reservation in ``status`` occupies its room."""

    status = ReservationStatus(status)
    if status is ReservationStatus.CANCELLED:
        return False
    if status in (ReservationStatus.PENDING, ReservationStatus.CONFIRMED, ReservationStatus.COMPLETED):
        return True
    raise ValueError(f"Unhandled reservation status: {status!r}")


BLOCKING_STATUSES = tuple(status for status in ReservationStatus if blocks_availability(status))


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError("Interval end must be after its start")


class BookedSlot(Protocol):
    id: object
    status: ReservationStatus
    starts_at: datetime
    ends_at: datetime


T = TypeVar("T", bound=BookedSlot)


def parse_wall_clock(value: str) -> time:
    """Parse an ``HH:MM`` string into a :class:`datetime.time`."""

    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM") from exc


def format_wall_clock(value: time) -> str:
    return value.strftime("%H:%M")


def _midnight(day: date) -> datetime:
    return datetime.combine(day, time.min)


def effective_interval(
    start_date: date,
    end_date: date,
    start_time: Union[time, str, None] = None,
    duration: Optional[int] = None,
) -> Interval:
    """Return the span of wall-clock time a booking actually occupies.

    Multi-day bookings occupy ``[start_date, end_date)`` at day granularity.
    Same-day bookings need a start time and a duration in hours; the
    full-day duration blocks the whole calendar day.
    """

    if end_date < start_date:
        raise ValueError("End date must be on or after start date")
    if end_date > start_date:
        return Interval(_midnight(start_date), _midnight(end_date))

    if start_time is None or duration is None:
        raise ValueError("Same-day bookings require a start time and a duration")
    if duration < MIN_DURATION or duration > FULL_DAY_DURATION:
        raise ValueError(f"Duration must be between {MIN_DURATION} and {FULL_DAY_DURATION} hours")
    if duration == FULL_DAY_DURATION:
        return Interval(_midnight(start_date), _midnight(start_date + timedelta(days=1)))

    if isinstance(start_time, str):
        start_time = parse_wall_clock(start_time)
    start = datetime.combine(start_date, start_time)
    return Interval(start, start + timedelta(hours=duration))


def intervals_overlap(a: Interval, b: Interval) -> bool:
    return (
        (a.start <= b.start < a.end)
        or (a.start < b.end <= a.end)
        or (b.start <= a.start and a.end <= b.end)
    )


def find_conflict(candidate: Interval, existing: Iterable[T], exclude_id: object = None) -> Optional[T]:
    """Return the first blocking reservation overlapping ``candidate``, if any."""

    for reservation in existing:
        if exclude_id is not None and reservation.id == exclude_id:
            continue
        if not blocks_availability(reservation.status):
            continue
        if intervals_overlap(candidate, Interval(reservation.starts_at, reservation.ends_at)):
            return reservation
    return None


def slot_catalog(opening_hour: int = 8, closing_hour: int = 18, step_minutes: int = 60) -> List[time]:
    """Build the ordered list of start times offered every day."""

    if closing_hour < opening_hour:
        raise ValueError("Closing hour must not precede opening hour")
    if step_minutes <= 0:
        raise ValueError("Slot step must be positive")
    slots = []
    minute = opening_hour * 60
    while minute <= closing_hour * 60:
        slots.append(time(minute // 60, minute % 60))
        minute += step_minutes
    return slots


def available_slots(
    day: date,
    duration: int,
    existing: Sequence[BookedSlot],
    catalog: Sequence[time],
    exclude_id: object = None,
    not_before: Optional[datetime] = None,
) -> List[time]:
    """Catalog slots on ``day`` where a ``duration``-hour booking fits.

    With ``not_before`` set, slots whose booking would start earlier are dropped.
    """

    slots = []
    for slot in catalog:
        candidate = effective_interval(day, day, slot, duration)
        if not_before is not None and candidate.start < not_before:
            continue
        if find_conflict(candidate, existing, exclude_id) is None:
            slots.append(slot)
    return slots


def is_date_fully_reserved(
    day: date,
    duration: int,
    existing: Sequence[BookedSlot],
    catalog: Sequence[time],
    not_before: Optional[datetime] = None,
) -> bool:
    return not available_slots(day, duration, existing, catalog, not_before=not_before)


def bookable_dates(
    first: date,
    last: date,
    duration: int,
    existing: Sequence[BookedSlot],
    catalog: Sequence[time],
    today: Optional[date] = None,
    not_before: Optional[datetime] = None,
) -> List[date]:
    """Dates in ``[first, last]`` that still offer at least one slot."""

    if last < first:
        raise ValueError("Range end must be on or after range start")
    dates = []
    day = first
    while day <= last:
        if (today is None or day >= today) and not is_date_fully_reserved(
            day, duration, existing, catalog, not_before
        ):
            dates.append(day)
        day += timedelta(days=1)
    return dates


def _round_half_up(value: Decimal) -> Decimal:
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def booked_days(start_date: date, end_date: date) -> int:
    if end_date < start_date:
        raise ValueError("End date must be on or after start date")
    return (end_date - start_date).days


def quote_price(
    base: Union[Decimal, int, float, str],
    pricing_type: Union[PricingType, str],
    start_date: date,
    end_date: date,
    duration: Optional[int] = None,
) -> Decimal:
    """Price a booking from the room's base rate.

    Fractional conversions (day or night rate charged by the hour) are
    rounded half-up to a whole amount.
    """

    base = Decimal(str(base))
    if base < 0:
        raise ValueError("Base price must not be negative")
    pricing_type = PricingType(pricing_type)
    days = booked_days(start_date, end_date)

    if days > 0:
        if pricing_type is PricingType.HOUR:
            return base * FULL_DAY_DURATION * days
        return base * days

    if duration is None or duration < MIN_DURATION:
        raise ValueError("Same-day quotes require a duration of at least one hour")
    if duration >= FULL_DAY_DURATION:
        if pricing_type is PricingType.HOUR:
            return base * FULL_DAY_DURATION
        return base
    if pricing_type is PricingType.HOUR:
        return base * duration
    if pricing_type is PricingType.DAY:
        return _round_half_up(base / FULL_DAY_DURATION * duration)
    return _round_half_up(base / 24 * duration)
