"""Pydantic schemas shared across the services."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from .availability import PricingType, ReservationStatus
from .models import MembershipRole

HEX_COLOR = r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$"
WALL_CLOCK = r"^([01]\d|2[0-3]):[0-5]\d$"
Currency = Literal["EUR", "USD", "XOF"]


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8)


class UserRead(BaseModel):
    id: int
    name: str
    email: EmailStr
    onboarding_completed: bool
    active_organisation_id: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PreferencesUpdate(BaseModel):
    establishment_type: Literal["hotel", "espace"]
    preferred_language: Literal["fr", "en"]
    currency: Currency
    widget_primary_color: Optional[str] = Field(None, pattern=HEX_COLOR)
    widget_button_color: Optional[str] = Field(None, pattern=HEX_COLOR)


class PreferencesRead(BaseModel):
    establishment_type: str
    preferred_language: str
    currency: str
    widget_primary_color: str
    widget_button_color: str

    model_config = {"from_attributes": True}


class LastActivePropertyUpdate(BaseModel):
    property_id: Optional[int] = None


class LastActivePropertyRead(BaseModel):
    property_id: Optional[int] = None


class OrganisationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)


class OrganisationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = Field(None, max_length=2000)


class OrganisationRead(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    owner_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class MembershipRead(BaseModel):
    organisation: OrganisationRead
    role: MembershipRole
    is_active: bool


class MemberRead(BaseModel):
    user_id: int
    name: str
    email: EmailStr
    role: MembershipRole


class InviteRequest(BaseModel):
    email: EmailStr
    role: MembershipRole
    organisation_id: int

    @field_validator("role")
    @classmethod
    def _not_owner(cls, value: MembershipRole) -> MembershipRole:
        if value is MembershipRole.OWNER:
            raise ValueError("Ownership cannot be granted by invitation")
        return value


class SwitchOrganisationRequest(BaseModel):
    organisation_id: int


class PropertyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    address: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    property_type: str = Field("hotel", max_length=30)


class PropertyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    address: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    property_type: Optional[str] = Field(None, max_length=30)


class PropertyRead(BaseModel):
    id: int
    organisation_id: int
    name: str
    address: Optional[str] = None
    description: Optional[str] = None
    property_type: str
    created_at: datetime

    model_config = {"from_attributes": True}


class PropertySettingsUpdate(BaseModel):
    currency: Optional[Currency] = None
    timezone: Optional[str] = Field(None, max_length=64)
    language: Optional[Literal["fr", "en"]] = None
    widget_primary_color: Optional[str] = Field(None, pattern=HEX_COLOR)
    widget_button_color: Optional[str] = Field(None, pattern=HEX_COLOR)
    widget_enabled: Optional[bool] = None
    allow_instant_booking: Optional[bool] = None
    require_approval: Optional[bool] = None
    max_advance_booking_days: Optional[int] = Field(None, ge=1, le=730)
    min_advance_booking_hours: Optional[int] = Field(None, ge=0, le=720)
    default_checkin_time: Optional[str] = Field(None, pattern=WALL_CLOCK)
    default_checkout_time: Optional[str] = Field(None, pattern=WALL_CLOCK)
    email_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None


class PropertySettingsRead(BaseModel):
    property_id: int
    currency: str
    timezone: str
    language: str
    widget_primary_color: str
    widget_button_color: str
    widget_enabled: bool
    allow_instant_booking: bool
    require_approval: bool
    max_advance_booking_days: int
    min_advance_booking_hours: int
    default_checkin_time: str
    default_checkout_time: str
    email_notifications: bool
    sms_notifications: bool

    model_config = {"from_attributes": True}


class RoomCreate(BaseModel):
    property_id: int
    name: str = Field(..., min_length=1, max_length=100)
    capacity: Optional[int] = Field(None, ge=1)
    description: Optional[str] = None
    price_per_night: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    pricing_type: PricingType = PricingType.NIGHT


class RoomUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    capacity: Optional[int] = Field(None, ge=1)
    description: Optional[str] = None
    price_per_night: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    pricing_type: Optional[PricingType] = None


class RoomRead(BaseModel):
    id: int
    property_id: int
    name: str
    capacity: Optional[int] = None
    description: Optional[str] = None
    price_per_night: Optional[float] = None
    pricing_type: PricingType
    created_at: datetime

    model_config = {"from_attributes": True}


class RoomListItem(RoomRead):
    property_name: str
    equipment_count: int
    reservation_count: int


class EquipmentCreate(BaseModel):
    room_id: int
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    icon: Optional[str] = Field(None, max_length=50)


class EquipmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    icon: Optional[str] = Field(None, max_length=50)


class EquipmentRead(BaseModel):
    id: int
    room_id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReservationBase(BaseModel):
    """Fields shared by dashboard and widget bookings; camelCase accepted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    room_id: int
    guest_name: str = Field(..., min_length=1, max_length=150)
    guest_email: Optional[EmailStr] = None
    start_date: date
    end_date: date
    start_time: Optional[str] = Field(None, pattern=WALL_CLOCK)
    duration: Optional[int] = Field(None, ge=1, le=8)
    notes: Optional[str] = Field(None, max_length=2000)


class ReservationCreate(ReservationBase):
    status: ReservationStatus = ReservationStatus.PENDING
    total_price: Optional[Decimal] = Field(None, ge=0)


class ReservationUpdate(ReservationCreate):
    pass


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus


class ReservationRead(BaseModel):
    id: int
    room_id: int
    guest_name: str
    guest_email: Optional[str] = None
    start_date: date
    end_date: date
    start_time: Optional[str] = None
    duration: Optional[int] = None
    starts_at: datetime
    ends_at: datetime
    status: ReservationStatus
    total_price: Optional[float] = None
    notes: Optional[str] = None
    source: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ReservationListItem(ReservationRead):
    room_name: str
    property_name: str


class AvailabilityRead(BaseModel):
    room_id: int
    date: date
    duration: int
    slots: List[str]
    fully_reserved: bool


class BookableDatesRead(BaseModel):
    room_id: int
    duration: int
    dates: List[date]


class QuoteRead(BaseModel):
    room_id: int
    pricing_type: PricingType
    days: int
    duration: Optional[int] = None
    total_price: float


class WidgetRoomRead(BaseModel):
    id: int
    name: str
    property_name: str
    price_per_night: float
    pricing_type: PricingType


class WidgetRoomsRead(BaseModel):
    rooms: List[WidgetRoomRead]
    currency: str
    organization_name: str


class WidgetReservationRead(BaseModel):
    start_date: date
    end_date: date
    starts_at: datetime
    ends_at: datetime

    model_config = {"from_attributes": True}


class WidgetBookingCreate(ReservationBase):
    organization_id: int
    total_price: Optional[Decimal] = Field(None, ge=0)


class WidgetBookingRead(BaseModel):
    reservation: ReservationRead
    message: str


class IntegrationRead(BaseModel):
    id: int
    type: str
    name: str
    is_active: bool
    expires_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AuthorizationUrl(BaseModel):
    authorization_url: str


class CalendarRead(BaseModel):
    id: str
    summary: str
    primary: bool = False
    access_role: Optional[str] = None


class CalendarConfigCreate(BaseModel):
    room_id: int
    calendar_id: str = Field(..., min_length=1, max_length=255)
    calendar_name: Optional[str] = Field(None, max_length=255)


class CalendarConfigRead(BaseModel):
    id: int
    room_id: int
    calendar_id: str
    calendar_name: Optional[str] = None
    is_active: bool

    model_config = {"from_attributes": True}


class Attendee(BaseModel):
    email: str
    name: Optional[str] = None
    response_status: Optional[str] = None


class CalendarEventRead(BaseModel):
    id: str
    title: str
    description: str = ""
    start: str
    end: str
    event_type: Literal["external", "reservation"]
    source: str
    location: str = ""
    calendar_id: Optional[str] = None
    room_id: Optional[int] = None
    status: Optional[ReservationStatus] = None
    attendees: List[Attendee] = Field(default_factory=list)


class CalendarEventsRead(BaseModel):
    events: List[CalendarEventRead]
    calendars_used: List[str]
