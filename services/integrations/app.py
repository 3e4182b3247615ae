import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from common.availability import Interval
from common.booking import blocking_reservations
from common.cache import NonceStore
from common.config import get_settings
from common.database import Base, engine, get_db
from common.dependencies import Membership, get_current_membership, get_owned_room, require_manager
from common.errors import register_error_handlers
from common.google_calendar import (
    GOOGLE_CALENDAR_TYPE,
    GoogleCalendarClient,
    GoogleCalendarError,
    ensure_fresh_token,
    merge_feed,
    reservation_event,
    upsert_integration,
)
from common.logging_middleware import add_audit_middleware
from common.models import CalendarConfig, Integration, Property, Room, User
from common.rate_limit import apply_rate_limiter, limiter
from common.schemas import (
    AuthorizationUrl,
    CalendarConfigCreate,
    CalendarConfigRead,
    CalendarEventsRead,
    CalendarRead,
    IntegrationRead,
)

settings = get_settings()
logger = logging.getLogger(__name__)

PRIMARY_CALENDAR = "primary"

# state nonce -> user id, redeemed once by the OAuth callback
oauth_states: NonceStore[int] = NonceStore(ttl=settings.oauth_state_ttl)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Integrations Service", version="0.3.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "integrations")
    register_error_handlers(fastapi_app)
    return fastapi_app


app = create_app()


def get_calendar_client() -> GoogleCalendarClient:
    return GoogleCalendarClient(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_uri,
    )


def _dashboard_redirect(**flags: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"{settings.dashboard_url}/integrations?{urlencode(flags)}",
        status_code=status.HTTP_302_FOUND,
    )


def _google_integration(db: Session, user: User) -> Integration:
    integration = (
        db.query(Integration)
        .filter(
            Integration.user_id == user.id,
            Integration.type == GOOGLE_CALENDAR_TYPE,
            Integration.is_active.is_(True),
        )
        .first()
    )
    if integration is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Google Calendar is not connected")
    return integration


def _organisation_configs(db: Session, integration: Integration, membership: Membership) -> List[CalendarConfig]:
    return (
        db.query(CalendarConfig)
        .join(Room, CalendarConfig.room_id == Room.id)
        .join(Property, Room.property_id == Property.id)
        .filter(
            CalendarConfig.integration_id == integration.id,
            CalendarConfig.is_active.is_(True),
            Property.organisation_id == membership.organisation_id,
        )
        .order_by(CalendarConfig.id.asc())
        .all()
    )


def _check_window(time_min: datetime, time_max: datetime) -> None:
    if time_max <= time_min:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="time_max must be after time_min")


async def _external_events(
    db: Session,
    integration: Integration,
    membership: Membership,
    client: GoogleCalendarClient,
    time_min: datetime,
    time_max: datetime,
    room_id: Optional[int] = None,
) -> CalendarEventsRead:
    if room_id is not None:
        config = next((c for c in _organisation_configs(db, integration, membership) if c.room_id == room_id), None)
        targets = [(config.calendar_id if config else PRIMARY_CALENDAR, room_id)]
    else:
        targets = [(config.calendar_id, config.room_id) for config in _organisation_configs(db, integration, membership)]
    if not targets:
        return CalendarEventsRead(events=[], calendars_used=[])

    access_token = await ensure_fresh_token(db, integration, client)
    events: List[Dict[str, Any]] = []
    calendars_used: List[str] = []
    for calendar_id, target_room in targets:
        for event in await client.list_events(access_token, calendar_id, time_min, time_max):
            event["room_id"] = target_room
            events.append(event)
        if calendar_id not in calendars_used:
            calendars_used.append(calendar_id)
    integration.last_sync_at = datetime.utcnow()
    db.commit()
    return CalendarEventsRead(events=merge_feed(events), calendars_used=calendars_used)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "integrations"}


@app.get("/integrations", response_model=List[IntegrationRead])
def list_integrations(
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> List[Integration]:
    return (
        db.query(Integration)
        .filter(Integration.user_id == membership.user.id)
        .order_by(Integration.created_at.asc())
        .all()
    )


@app.get("/integrations/google-calendar/auth", response_model=AuthorizationUrl)
@limiter.limit("10/minute")
def google_calendar_auth(
    request: Request,
    membership: Membership = Depends(get_current_membership),
    client: GoogleCalendarClient = Depends(get_calendar_client),
) -> AuthorizationUrl:
    if not client.configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google Calendar integration is not configured",
        )
    state = oauth_states.issue(membership.user.id)
    return AuthorizationUrl(authorization_url=client.authorization_url(state))


@app.get("/integrations/google-calendar/callback")
async def google_calendar_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    client: GoogleCalendarClient = Depends(get_calendar_client),
    db: Session = Depends(get_db),
) -> RedirectResponse:
    if error:
        logger.info("Google Calendar authorisation declined: %s", error)
        return _dashboard_redirect(error=error)
    user_id = oauth_states.redeem(state) if state else None
    if user_id is None:
        return _dashboard_redirect(error="invalid_state")
    if not code:
        return _dashboard_redirect(error="missing_code")
    try:
        grant = await client.exchange_code(code)
    except GoogleCalendarError as exc:
        logger.warning("Google Calendar code exchange failed for user %s: %s", user_id, exc.detail)
        return _dashboard_redirect(error="token_exchange_failed")
    upsert_integration(db, user_id, grant)
    return _dashboard_redirect(success=GOOGLE_CALENDAR_TYPE)


@app.delete("/integrations/google-calendar", status_code=status.HTTP_204_NO_CONTENT)
def disconnect_google_calendar(
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> None:
    integration = _google_integration(db, membership.user)
    db.delete(integration)
    db.commit()


@app.get("/integrations/google-calendar/calendars", response_model=List[CalendarRead])
async def list_google_calendars(
    membership: Membership = Depends(get_current_membership),
    client: GoogleCalendarClient = Depends(get_calendar_client),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    integration = _google_integration(db, membership.user)
    access_token = await ensure_fresh_token(db, integration, client)
    return await client.list_calendars(access_token)


@app.get("/integrations/google-calendar/events", response_model=CalendarEventsRead)
async def list_google_events(
    time_min: datetime,
    time_max: datetime,
    room_id: Optional[int] = None,
    membership: Membership = Depends(get_current_membership),
    client: GoogleCalendarClient = Depends(get_calendar_client),
    db: Session = Depends(get_db),
) -> CalendarEventsRead:
    _check_window(time_min, time_max)
    if room_id is not None:
        get_owned_room(db, membership, room_id)
    integration = _google_integration(db, membership.user)
    return await _external_events(db, integration, membership, client, time_min, time_max, room_id)


@app.get("/calendar-config", response_model=List[CalendarConfigRead])
def list_calendar_configs(
    membership: Membership = Depends(get_current_membership),
    db: Session = Depends(get_db),
) -> List[CalendarConfig]:
    integration = _google_integration(db, membership.user)
    return _organisation_configs(db, integration, membership)


@app.post("/calendar-config", response_model=CalendarConfigRead, status_code=status.HTTP_201_CREATED)
def save_calendar_config(
    config_in: CalendarConfigCreate,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> CalendarConfig:
    get_owned_room(db, membership, config_in.room_id)
    integration = _google_integration(db, membership.user)
    config = (
        db.query(CalendarConfig)
        .filter(CalendarConfig.integration_id == integration.id, CalendarConfig.room_id == config_in.room_id)
        .first()
    )
    if config is None:
        config = CalendarConfig(integration_id=integration.id, room_id=config_in.room_id)
        db.add(config)
    config.calendar_id = config_in.calendar_id
    config.calendar_name = config_in.calendar_name
    config.is_active = True
    db.commit()
    db.refresh(config)
    return config


@app.delete("/calendar-config", status_code=status.HTTP_204_NO_CONTENT)
def delete_calendar_config(
    room_id: int,
    membership: Membership = Depends(require_manager),
    db: Session = Depends(get_db),
) -> None:
    get_owned_room(db, membership, room_id)
    integration = _google_integration(db, membership.user)
    config = (
        db.query(CalendarConfig)
        .filter(CalendarConfig.integration_id == integration.id, CalendarConfig.room_id == room_id)
        .first()
    )
    if config is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Calendar configuration not found")
    db.delete(config)
    db.commit()


@app.get("/calendar/feed", response_model=CalendarEventsRead)
async def calendar_feed(
    time_min: datetime,
    time_max: datetime,
    room_id: Optional[int] = None,
    membership: Membership = Depends(get_current_membership),
    client: GoogleCalendarClient = Depends(get_calendar_client),
    db: Session = Depends(get_db),
) -> CalendarEventsRead:
    """Reservations and connected calendar events, merged for display only."""

    _check_window(time_min, time_max)
    window = Interval(time_min, time_max)
    if room_id is not None:
        rooms = [get_owned_room(db, membership, room_id)]
    else:
        rooms = (
            db.query(Room)
            .join(Property, Room.property_id == Property.id)
            .filter(Property.organisation_id == membership.organisation_id)
            .all()
        )
    internal = [
        reservation_event(reservation, room.name)
        for room in rooms
        for reservation in blocking_reservations(db, room.id, window)
    ]

    integration = (
        db.query(Integration)
        .filter(
            Integration.user_id == membership.user.id,
            Integration.type == GOOGLE_CALENDAR_TYPE,
            Integration.is_active.is_(True),
        )
        .first()
    )
    if integration is None:
        return CalendarEventsRead(events=merge_feed(internal), calendars_used=[])
    try:
        external = await _external_events(db, integration, membership, client, time_min, time_max, room_id)
    except GoogleCalendarError as exc:
        logger.warning("Calendar feed for user %s served without Google events: %s", membership.user.id, exc.detail)
        return CalendarEventsRead(events=merge_feed(internal), calendars_used=[])
    return CalendarEventsRead(
        events=merge_feed(internal, [event.model_dump() for event in external.events]),
        calendars_used=external.calendars_used,
    )
