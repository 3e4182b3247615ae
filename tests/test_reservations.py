DAY = "2030-06-03"


def reservation_payload(room_id: int, start_time: str = "10:00", duration: int = 2, **overrides) -> dict:
    payload = {
        "roomId": room_id,
        "guestName": "Alice Martin",
        "guestEmail": "alice@example.com",
        "startDate": DAY,
        "endDate": DAY,
        "startTime": start_time,
        "duration": duration,
    }
    payload.update(overrides)
    return payload


def test_overlapping_reservation_is_rejected(owner_headers, make_room, reservations_client):
    room = make_room(owner_headers)

    first = reservations_client.post("/reservations", json=reservation_payload(room["id"]), headers=owner_headers)
    assert first.status_code == 201
    assert first.json()["starts_at"] == "2030-06-03T10:00:00"
    assert first.json()["ends_at"] == "2030-06-03T12:00:00"

    clash = reservations_client.post(
        "/reservations", json=reservation_payload(room["id"], "10:00", 1), headers=owner_headers
    )
    assert clash.status_code == 409
    assert "conflicts" in clash.json()["detail"]

    adjacent = reservations_client.post(
        "/reservations", json=reservation_payload(room["id"], "12:00", 1), headers=owner_headers
    )
    assert adjacent.status_code == 201


def test_reservation_validation_errors(owner_headers, make_room, reservations_client):
    room = make_room(owner_headers)

    inverted = reservations_client.post(
        "/reservations",
        json=reservation_payload(room["id"], startDate="2030-06-05", endDate="2030-06-03"),
        headers=owner_headers,
    )
    assert inverted.status_code == 400

    missing_time = reservations_client.post(
        "/reservations",
        json=reservation_payload(room["id"], startTime=None),
        headers=owner_headers,
    )
    assert missing_time.status_code == 400

    missing_name = reservations_client.post(
        "/reservations",
        json={"roomId": room["id"], "startDate": DAY, "endDate": DAY},
        headers=owner_headers,
    )
    assert missing_name.status_code == 400
    assert missing_name.json()["detail"] == "Missing or invalid fields"

    bad_status = reservations_client.post(
        "/reservations",
        json=reservation_payload(room["id"], status="PAID"),
        headers=owner_headers,
    )
    assert bad_status.status_code == 400


def test_reservations_are_isolated_per_organisation(register, make_room, reservations_client):
    owner = register("owner@example.com", "Owner")
    other = register("other@example.com", "Other")
    room = make_room(owner)

    foreign = reservations_client.post("/reservations", json=reservation_payload(room["id"]), headers=other)
    assert foreign.status_code == 404

    created = reservations_client.post("/reservations", json=reservation_payload(room["id"]), headers=owner)
    reservation_id = created.json()["id"]
    assert reservations_client.get(f"/reservations/{reservation_id}", headers=other).status_code == 404
    assert reservations_client.get("/reservations", headers=other).json() == []


def test_list_is_flattened_and_filtered(owner_headers, make_room, reservations_client):
    room = make_room(owner_headers)
    reservations_client.post("/reservations", json=reservation_payload(room["id"]), headers=owner_headers)
    reservations_client.post(
        "/reservations",
        json=reservation_payload(room["id"], "14:00", 1, status="CONFIRMED"),
        headers=owner_headers,
    )

    listing = reservations_client.get("/reservations", headers=owner_headers)
    assert listing.status_code == 200
    body = listing.json()
    assert len(body) == 2
    assert body[0]["room_name"] == "Suite 1"
    assert body[0]["property_name"] == "Villa Sol"

    confirmed = reservations_client.get("/reservations?status=CONFIRMED", headers=owner_headers).json()
    assert [item["start_time"] for item in confirmed] == ["14:00"]

    by_room = reservations_client.get(f"/reservations?room_id={room['id']}", headers=owner_headers).json()
    assert len(by_room) == 2


def test_edit_excludes_itself_from_conflicts(owner_headers, make_room, reservations_client):
    room = make_room(owner_headers)
    created = reservations_client.post("/reservations", json=reservation_payload(room["id"]), headers=owner_headers)
    reservation_id = created.json()["id"]
    reservations_client.post(
        "/reservations", json=reservation_payload(room["id"], "14:00", 1), headers=owner_headers
    )

    shifted = reservations_client.put(
        f"/reservations/{reservation_id}",
        json=reservation_payload(room["id"], "11:00", 2, guestName="Alice M."),
        headers=owner_headers,
    )
    assert shifted.status_code == 200
    assert shifted.json()["guest_name"] == "Alice M."
    assert shifted.json()["ends_at"] == "2030-06-03T13:00:00"

    onto_other = reservations_client.put(
        f"/reservations/{reservation_id}",
        json=reservation_payload(room["id"], "13:00", 2),
        headers=owner_headers,
    )
    assert onto_other.status_code == 409


def test_cancelling_frees_the_slot(owner_headers, make_room, reservations_client):
    room = make_room(owner_headers)
    created = reservations_client.post("/reservations", json=reservation_payload(room["id"]), headers=owner_headers)
    reservation_id = created.json()["id"]

    cancel = reservations_client.patch(
        f"/reservations/{reservation_id}/status", json={"status": "CANCELLED"}, headers=owner_headers
    )
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "CANCELLED"

    rebook = reservations_client.post("/reservations", json=reservation_payload(room["id"]), headers=owner_headers)
    assert rebook.status_code == 201

    revive = reservations_client.patch(
        f"/reservations/{reservation_id}/status", json={"status": "CONFIRMED"}, headers=owner_headers
    )
    assert revive.status_code == 409


def test_delete_reservation(owner_headers, make_room, reservations_client):
    room = make_room(owner_headers)
    created = reservations_client.post("/reservations", json=reservation_payload(room["id"]), headers=owner_headers)
    reservation_id = created.json()["id"]

    assert reservations_client.delete(f"/reservations/{reservation_id}", headers=owner_headers).status_code == 204
    assert reservations_client.get(f"/reservations/{reservation_id}", headers=owner_headers).status_code == 404


def test_price_is_computed_when_omitted(owner_headers, make_room, reservations_client):
    room = make_room(owner_headers, price=100, pricing_type="night")

    multi_day = reservations_client.post(
        "/reservations",
        json=reservation_payload(room["id"], startDate="2030-07-01", endDate="2030-07-03"),
        headers=owner_headers,
    )
    assert multi_day.status_code == 201
    assert multi_day.json()["total_price"] == 200
    assert multi_day.json()["start_time"] is None

    explicit = reservations_client.post(
        "/reservations",
        json=reservation_payload(room["id"], "15:00", 1, totalPrice="12.50"),
        headers=owner_headers,
    )
    assert explicit.json()["total_price"] == 12.5


def test_availability_endpoint(owner_headers, make_room, reservations_client):
    room = make_room(owner_headers)
    reservations_client.post(
        "/reservations", json=reservation_payload(room["id"], "11:30", 1), headers=owner_headers
    )

    response = reservations_client.get(
        f"/reservations/availability?room_id={room['id']}&date={DAY}&duration=1", headers=owner_headers
    )
    assert response.status_code == 200
    body = response.json()
    assert "11:00" not in body["slots"]
    assert "12:00" not in body["slots"]
    assert "10:00" in body["slots"]
    assert body["fully_reserved"] is False


def test_full_day_booking_disables_date(owner_headers, make_room, reservations_client):
    room = make_room(owner_headers)
    reservations_client.post("/reservations", json=reservation_payload(room["id"], "08:00", 8), headers=owner_headers)

    availability = reservations_client.get(
        f"/reservations/availability?room_id={room['id']}&date={DAY}", headers=owner_headers
    ).json()
    assert availability["slots"] == []
    assert availability["fully_reserved"] is True

    dates = reservations_client.get(
        f"/reservations/dates?room_id={room['id']}&start={DAY}&end=2030-06-04", headers=owner_headers
    ).json()
    assert dates["dates"] == ["2030-06-04"]


def test_quote_endpoint(owner_headers, make_room, reservations_client):
    room = make_room(owner_headers, price=100, pricing_type="night")

    nightly = reservations_client.get(
        f"/reservations/quote?room_id={room['id']}&start_date=2030-06-03&end_date=2030-06-04",
        headers=owner_headers,
    )
    assert nightly.status_code == 200
    assert nightly.json()["total_price"] == 100
    assert nightly.json()["days"] == 1

    hourly = reservations_client.get(
        f"/reservations/quote?room_id={room['id']}&start_date={DAY}&end_date={DAY}&duration=4",
        headers=owner_headers,
    )
    assert hourly.json()["total_price"] == 17

    no_duration = reservations_client.get(
        f"/reservations/quote?room_id={room['id']}&start_date={DAY}&end_date={DAY}",
        headers=owner_headers,
    )
    assert no_duration.status_code == 400


def test_viewer_cannot_write(register, make_room, organisations_client, reservations_client, users_client):
    owner = register("owner@example.com", "Owner")
    viewer = register("viewer@example.com", "Viewer")
    room = make_room(owner)
    organisation_id = users_client.get("/users/me", headers=owner).json()["active_organisation_id"]
    organisations_client.post(
        "/organisations/invite",
        json={"email": "viewer@example.com", "role": "VIEWER", "organisation_id": organisation_id},
        headers=owner,
    )
    organisations_client.post("/organisations/switch", json={"organisation_id": organisation_id}, headers=viewer)

    assert reservations_client.get("/reservations", headers=viewer).status_code == 200
    denied = reservations_client.post("/reservations", json=reservation_payload(room["id"]), headers=viewer)
    assert denied.status_code == 403


def test_requires_authentication(reservations_client):
    assert reservations_client.get("/reservations").status_code == 401
