import os
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")

from common.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from common.database import Base, SessionLocal, engine  # noqa: E402
from services.integrations.app import app as integrations_app  # noqa: E402
from services.organisations.app import app as organisations_app  # noqa: E402
from services.properties.app import app as properties_app  # noqa: E402
from services.reservations.app import app as reservations_app  # noqa: E402
from services.rooms.app import app as rooms_app  # noqa: E402
from services.users.app import app as users_app  # noqa: E402
from services.widget.app import app as widget_app  # noqa: E402

PASSWORD = "Passw0rd!"


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def users_client() -> Generator[TestClient, None, None]:
    with TestClient(users_app) as client:
        yield client


@pytest.fixture()
def organisations_client() -> Generator[TestClient, None, None]:
    with TestClient(organisations_app) as client:
        yield client


@pytest.fixture()
def properties_client() -> Generator[TestClient, None, None]:
    with TestClient(properties_app) as client:
        yield client


@pytest.fixture()
def rooms_client() -> Generator[TestClient, None, None]:
    with TestClient(rooms_app) as client:
        yield client


@pytest.fixture()
def reservations_client() -> Generator[TestClient, None, None]:
    with TestClient(reservations_app) as client:
        yield client


@pytest.fixture()
def widget_client() -> Generator[TestClient, None, None]:
    with TestClient(widget_app) as client:
        yield client


@pytest.fixture()
def integrations_client() -> Generator[TestClient, None, None]:
    with TestClient(integrations_app, follow_redirects=False) as client:
        yield client


@pytest.fixture()
def register(users_client) -> Callable[..., dict[str, str]]:
    """Register an account and return bearer headers for it."""

    def _register(email: str = "owner@example.com", name: str = "Owner") -> dict[str, str]:
        users_client.post("/users/register", json={"name": name, "email": email, "password": PASSWORD})
        response = users_client.post(
            "/users/login",
            data={"username": email, "password": PASSWORD},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        token = response.json()["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return _register


@pytest.fixture()
def owner_headers(register) -> dict[str, str]:
    return register()


@pytest.fixture()
def make_room(properties_client, rooms_client) -> Callable[..., dict]:
    """Create a property and a priced room for the account behind ``headers``."""

    def _make_room(headers: dict[str, str], price: float = 100.0, pricing_type: str = "night") -> dict:
        prop = properties_client.post("/properties", json={"name": "Villa Sol"}, headers=headers)
        assert prop.status_code == 201
        room = rooms_client.post(
            "/rooms",
            json={
                "property_id": prop.json()["id"],
                "name": "Suite 1",
                "capacity": 2,
                "price_per_night": price,
                "pricing_type": pricing_type,
            },
            headers=headers,
        )
        assert room.status_code == 201
        return room.json()

    return _make_room
