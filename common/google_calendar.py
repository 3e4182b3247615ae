"""
Google Calendar integration.

OAuth code exchange, token refresh and read-only calendar/event listing.
External events are only ever displayed next to reservations; they never
take part in conflict detection.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote, urlencode

import httpx
from sqlalchemy.orm import Session

from .models import Integration, Reservation

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/calendar.events.readonly",
]
GOOGLE_CALENDAR_TYPE = "google_calendar"
TOKEN_REFRESH_MARGIN = timedelta(minutes=5)


class GoogleCalendarError(Exception):
    def __init__(self, detail: str, status_code: int = 502) -> None:
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


@dataclass
class TokenGrant:
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[datetime]

    @classmethod
    def from_response(cls, payload: Dict[str, Any]) -> "TokenGrant":
        access_token = payload.get("access_token")
        if not access_token:
            raise GoogleCalendarError("Invalid token response")
        expires_in = payload.get("expires_in")
        expires_at = datetime.utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None
        return cls(access_token=access_token, refresh_token=payload.get("refresh_token"), expires_at=expires_at)


class GoogleCalendarClient:
    """Thin async wrapper around the Google OAuth and Calendar v3 endpoints."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._transport = transport
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def _send(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            try:
                response = await client.request(method, url, **kwargs)
            except httpx.RequestError as exc:
                logger.error("Google request to %s failed: %s", url, exc)
                raise GoogleCalendarError("Google Calendar is unreachable") from exc
        if response.status_code == 401:
            raise GoogleCalendarError("Google Calendar authorisation expired", status_code=401)
        if response.status_code != 200:
            logger.error("Google responded %s on %s: %s", response.status_code, url, response.text)
            raise GoogleCalendarError(f"Google Calendar request failed ({response.status_code})")
        return response.json()

    async def exchange_code(self, code: str) -> TokenGrant:
        payload = await self._send(
            "POST",
            GOOGLE_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
            },
        )
        return TokenGrant.from_response(payload)

    async def refresh(self, refresh_token: str) -> TokenGrant:
        payload = await self._send(
            "POST",
            GOOGLE_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        grant = TokenGrant.from_response(payload)
        if grant.refresh_token is None:
            grant.refresh_token = refresh_token
        return grant

    async def list_calendars(self, access_token: str) -> List[Dict[str, Any]]:
        payload = await self._send(
            "GET",
            f"{GOOGLE_CALENDAR_API}/users/me/calendarList",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return [
            {
                "id": item["id"],
                "summary": item.get("summaryOverride") or item.get("summary") or item["id"],
                "primary": bool(item.get("primary", False)),
                "access_role": item.get("accessRole"),
            }
            for item in payload.get("items", [])
        ]

    async def list_events(
        self, access_token: str, calendar_id: str, time_min: datetime, time_max: datetime
    ) -> List[Dict[str, Any]]:
        payload = await self._send(
            "GET",
            f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events",
            headers={"Authorization": f"Bearer {access_token}"},
            params={
                "timeMin": _rfc3339(time_min),
                "timeMax": _rfc3339(time_max),
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        return [transform_event(calendar_id, item) for item in payload.get("items", [])]


def _rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        return value.isoformat() + "Z"
    return value.isoformat()


def transform_event(calendar_id: str, event: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a Google event into the shape shared with reservations."""

    start = event.get("start", {})
    end = event.get("end", {})
    return {
        "id": f"{calendar_id}_{event['id']}",
        "title": event.get("summary") or "Untitled",
        "description": event.get("description") or "",
        "start": start.get("dateTime") or start.get("date") or "",
        "end": end.get("dateTime") or end.get("date") or "",
        "event_type": "external",
        "source": GOOGLE_CALENDAR_TYPE,
        "location": event.get("location") or "",
        "calendar_id": calendar_id,
        "attendees": [
            {
                "email": attendee.get("email", ""),
                "name": attendee.get("displayName"),
                "response_status": attendee.get("responseStatus"),
            }
            for attendee in event.get("attendees", [])
        ],
    }


def reservation_event(reservation: Reservation, room_name: str) -> Dict[str, Any]:
    return {
        "id": f"reservation_{reservation.id}",
        "title": f"{reservation.guest_name} - {room_name}",
        "description": reservation.notes or "",
        "start": reservation.starts_at.isoformat(),
        "end": reservation.ends_at.isoformat(),
        "event_type": "reservation",
        "source": reservation.source,
        "location": "",
        "room_id": reservation.room_id,
        "status": reservation.status,
        "attendees": [],
    }


def _sort_key(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.max
    return parsed.replace(tzinfo=None)


def merge_feed(*sources: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Combine event lists into a single list ordered by start."""

    merged = [event for source in sources for event in source]
    return sorted(merged, key=lambda event: (_sort_key(event["start"]), event["id"]))


async def ensure_fresh_token(db: Session, integration: Integration, client: GoogleCalendarClient) -> str:
    """Return a usable access token, refreshing it when close to expiry."""

    if not integration.access_token:
        raise GoogleCalendarError("Google Calendar is not connected", status_code=404)
    expiring = integration.expires_at is not None and integration.expires_at <= datetime.utcnow() + TOKEN_REFRESH_MARGIN
    if not expiring:
        return integration.access_token
    if not integration.refresh_token:
        raise GoogleCalendarError("Google Calendar authorisation expired, reconnect the integration", status_code=401)

    logger.info("Refreshing Google Calendar token for integration %s", integration.id)
    grant = await client.refresh(integration.refresh_token)
    integration.access_token = grant.access_token
    integration.refresh_token = grant.refresh_token
    integration.expires_at = grant.expires_at
    db.commit()
    return grant.access_token


def upsert_integration(db: Session, user_id: int, grant: TokenGrant) -> Integration:
    integration = (
        db.query(Integration)
        .filter(Integration.user_id == user_id, Integration.type == GOOGLE_CALENDAR_TYPE)
        .first()
    )
    if integration is None:
        integration = Integration(user_id=user_id, type=GOOGLE_CALENDAR_TYPE, name="Google Calendar")
        db.add(integration)
    integration.access_token = grant.access_token
    if grant.refresh_token:
        integration.refresh_token = grant.refresh_token
    integration.expires_at = grant.expires_at
    integration.last_sync_at = datetime.utcnow()
    integration.is_active = True
    db.commit()
    db.refresh(integration)
    return integration
