"""SQLAlchemy models shared across all services."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .availability import PricingType, ReservationStatus
from .database import Base


class MembershipRole(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    VIEWER = "VIEWER"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255))
    onboarding_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    # re-validated against memberships on every request
    active_organisation_id: Mapped[Optional[int]] = mapped_column(Integer, default=None)
    last_active_property_id: Mapped[Optional[int]] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    memberships: Mapped[List["UserOrganisation"]] = relationship(back_populates="user", cascade="all, delete-orphan")
    preferences: Mapped[Optional["UserPreferences"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", uselist=False
    )
    integrations: Mapped[List["Integration"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class Organisation(Base):
    __tablename__ = "organisations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(150))
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    memberships: Mapped[List["UserOrganisation"]] = relationship(
        back_populates="organisation", cascade="all, delete-orphan"
    )
    properties: Mapped[List["Property"]] = relationship(back_populates="organisation", cascade="all, delete-orphan")


class UserOrganisation(Base):
    __tablename__ = "user_organisations"
    __table_args__ = (UniqueConstraint("user_id", "organisation_id", name="uq_user_organisation"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    organisation_id: Mapped[int] = mapped_column(ForeignKey("organisations.id", ondelete="CASCADE"), index=True)
    role: Mapped[MembershipRole] = mapped_column(SqlEnum(MembershipRole), default=MembershipRole.VIEWER)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    user: Mapped[User] = relationship(back_populates="memberships")
    organisation: Mapped[Organisation] = relationship(back_populates="memberships")


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organisation_id: Mapped[int] = mapped_column(ForeignKey("organisations.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(150))
    address: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    property_type: Mapped[str] = mapped_column(String(30), default="hotel")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    organisation: Mapped[Organisation] = relationship(back_populates="properties")
    rooms: Mapped[List["Room"]] = relationship(back_populates="property", cascade="all, delete-orphan")
    settings: Mapped[Optional["PropertySettings"]] = relationship(
        back_populates="property", cascade="all, delete-orphan", uselist=False
    )


class PropertySettings(Base):
    __tablename__ = "property_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), unique=True)
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    timezone: Mapped[str] = mapped_column(String(64), default="Europe/Paris")
    language: Mapped[str] = mapped_column(String(2), default="fr")
    widget_primary_color: Mapped[str] = mapped_column(String(7), default="#3b82f6")
    widget_button_color: Mapped[str] = mapped_column(String(7), default="#10b981")
    widget_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    allow_instant_booking: Mapped[bool] = mapped_column(Boolean, default=False)
    require_approval: Mapped[bool] = mapped_column(Boolean, default=True)
    max_advance_booking_days: Mapped[int] = mapped_column(Integer, default=365)
    min_advance_booking_hours: Mapped[int] = mapped_column(Integer, default=0)
    default_checkin_time: Mapped[str] = mapped_column(String(5), default="15:00")
    default_checkout_time: Mapped[str] = mapped_column(String(5), default="11:00")
    email_notifications: Mapped[bool] = mapped_column(Boolean, default=True)
    sms_notifications: Mapped[bool] = mapped_column(Boolean, default=False)

    property: Mapped[Property] = relationship(back_populates="settings")


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    capacity: Mapped[Optional[int]] = mapped_column(Integer, default=None)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    price_per_night: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), default=None)
    pricing_type: Mapped[PricingType] = mapped_column(SqlEnum(PricingType), default=PricingType.NIGHT)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    property: Mapped[Property] = relationship(back_populates="rooms")
    equipments: Mapped[List["Equipment"]] = relationship(back_populates="room", cascade="all, delete-orphan")
    reservations: Mapped[List["Reservation"]] = relationship(back_populates="room", cascade="all, delete-orphan")
    calendar_configs: Mapped[List["CalendarConfig"]] = relationship(
        back_populates="room", cascade="all, delete-orphan"
    )


class Equipment(Base):
    __tablename__ = "equipments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    icon: Mapped[Optional[str]] = mapped_column(String(50), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    room: Mapped[Room] = relationship(back_populates="equipments")


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (Index("ix_reservations_room_interval", "room_id", "starts_at", "ends_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    guest_name: Mapped[str] = mapped_column(String(150))
    guest_email: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)
    start_time: Mapped[Optional[str]] = mapped_column(String(5), default=None)
    duration: Mapped[Optional[int]] = mapped_column(Integer, default=None)
    # effective interval, kept in sync by common.booking
    starts_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        SqlEnum(ReservationStatus), default=ReservationStatus.PENDING, index=True
    )
    total_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), default=None)
    notes: Mapped[Optional[str]] = mapped_column(Text, default=None)
    source: Mapped[str] = mapped_column(String(20), default="dashboard")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None, onupdate=datetime.utcnow)

    room: Mapped[Room] = relationship(back_populates="reservations")


class Integration(Base):
    __tablename__ = "integrations"
    __table_args__ = (UniqueConstraint("user_id", "type", name="uq_integration_user_type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(100))
    access_token: Mapped[Optional[str]] = mapped_column(Text, default=None)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, default=None)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    user: Mapped[User] = relationship(back_populates="integrations")
    calendar_configs: Mapped[List["CalendarConfig"]] = relationship(
        back_populates="integration", cascade="all, delete-orphan"
    )


class CalendarConfig(Base):
    __tablename__ = "calendar_configs"
    __table_args__ = (UniqueConstraint("integration_id", "room_id", name="uq_calendar_config_room"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    integration_id: Mapped[int] = mapped_column(ForeignKey("integrations.id", ondelete="CASCADE"), index=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    calendar_id: Mapped[str] = mapped_column(String(255))
    calendar_name: Mapped[Optional[str]] = mapped_column(String(255), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    integration: Mapped[Integration] = relationship(back_populates="calendar_configs")
    room: Mapped[Room] = relationship(back_populates="calendar_configs")


class UserPreferences(Base):
    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True)
    establishment_type: Mapped[str] = mapped_column(String(20), default="hotel")
    preferred_language: Mapped[str] = mapped_column(String(2), default="fr")
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    widget_primary_color: Mapped[str] = mapped_column(String(7), default="#3b82f6")
    widget_button_color: Mapped[str] = mapped_column(String(7), default="#10b981")
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None, onupdate=datetime.utcnow)

    user: Mapped[User] = relationship(back_populates="preferences")
