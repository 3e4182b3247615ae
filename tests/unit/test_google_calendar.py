"""Unit tests for the Google Calendar client and event helpers."""
import asyncio
from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from common.google_calendar import (
    GOOGLE_CALENDAR_TYPE,
    GoogleCalendarClient,
    GoogleCalendarError,
    TokenGrant,
    ensure_fresh_token,
    merge_feed,
    transform_event,
    upsert_integration,
)
from common.models import User


def make_client(handler) -> GoogleCalendarClient:
    return GoogleCalendarClient(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://localhost/callback",
        transport=httpx.MockTransport(handler),
    )


def test_authorization_url_carries_state_and_offline_access():
    client = make_client(lambda request: httpx.Response(200, json={}))
    url = urlparse(client.authorization_url("nonce-123"))
    params = parse_qs(url.query)

    assert url.netloc == "accounts.google.com"
    assert params["state"] == ["nonce-123"]
    assert params["access_type"] == ["offline"]
    assert params["redirect_uri"] == ["http://localhost/callback"]


def test_exchange_code_returns_grant():
    def handler(request: httpx.Request) -> httpx.Response:
        assert b"grant_type=authorization_code" in request.content
        return httpx.Response(200, json={"access_token": "at", "refresh_token": "rt", "expires_in": 3600})

    grant = asyncio.run(make_client(handler).exchange_code("the-code"))

    assert grant.access_token == "at"
    assert grant.refresh_token == "rt"
    assert grant.expires_at > datetime.utcnow()


def test_refresh_keeps_previous_refresh_token():
    client = make_client(lambda request: httpx.Response(200, json={"access_token": "new", "expires_in": 60}))
    grant = asyncio.run(client.refresh("old-refresh"))

    assert grant.access_token == "new"
    assert grant.refresh_token == "old-refresh"


def test_unauthorised_response_maps_to_401():
    client = make_client(lambda request: httpx.Response(401, json={"error": "invalid_token"}))
    with pytest.raises(GoogleCalendarError) as excinfo:
        asyncio.run(client.list_calendars("expired"))
    assert excinfo.value.status_code == 401


def test_server_error_maps_to_502():
    client = make_client(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(GoogleCalendarError) as excinfo:
        asyncio.run(client.list_calendars("token"))
    assert excinfo.value.status_code == 502


def test_token_response_without_access_token_is_rejected():
    with pytest.raises(GoogleCalendarError):
        TokenGrant.from_response({"error": "invalid_grant"})


def test_list_events_flattens_google_payload():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer token"
        assert request.url.params["singleEvents"] == "true"
        return httpx.Response(
            200,
            json={
                "items": [
                    {
                        "id": "evt1",
                        "summary": "Maintenance",
                        "start": {"dateTime": "2030-06-03T09:00:00Z"},
                        "end": {"dateTime": "2030-06-03T10:00:00Z"},
                        "attendees": [{"email": "a@example.com", "responseStatus": "accepted"}],
                    }
                ]
            },
        )

    events = asyncio.run(
        make_client(handler).list_events("token", "cal@group", datetime(2030, 6, 3), datetime(2030, 6, 4))
    )

    assert len(events) == 1
    assert events[0]["id"] == "cal@group_evt1"
    assert events[0]["event_type"] == "external"
    assert events[0]["attendees"][0]["response_status"] == "accepted"


def test_transform_event_handles_all_day_events():
    event = transform_event("primary", {"id": "x", "start": {"date": "2030-06-03"}, "end": {"date": "2030-06-04"}})
    assert event["start"] == "2030-06-03"
    assert event["title"] == "Untitled"


def test_merge_feed_orders_by_start():
    late = {"id": "b", "start": "2030-06-03T15:00:00"}
    early = {"id": "a", "start": "2030-06-03T09:00:00Z"}
    assert [event["id"] for event in merge_feed([late], [early])] == ["a", "b"]


def test_ensure_fresh_token_refreshes_when_expiring(db_session):
    user = User(name="Owner", email="owner@example.com", hashed_password="x")
    db_session.add(user)
    db_session.commit()
    integration = upsert_integration(
        db_session,
        user.id,
        TokenGrant(access_token="old", refresh_token="rt", expires_at=datetime.utcnow() + timedelta(minutes=1)),
    )
    assert integration.type == GOOGLE_CALENDAR_TYPE

    client = make_client(lambda request: httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600}))
    token = asyncio.run(ensure_fresh_token(db_session, integration, client))

    assert token == "fresh"
    assert integration.refresh_token == "rt"


def test_ensure_fresh_token_keeps_valid_token(db_session):
    user = User(name="Owner", email="owner@example.com", hashed_password="x")
    db_session.add(user)
    db_session.commit()
    integration = upsert_integration(
        db_session,
        user.id,
        TokenGrant(access_token="valid", refresh_token=None, expires_at=datetime.utcnow() + timedelta(hours=1)),
    )

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    assert asyncio.run(ensure_fresh_token(db_session, integration, make_client(handler))) == "valid"
