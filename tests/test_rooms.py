def create_property(properties_client, headers, name: str = "Villa Sol") -> int:
    response = properties_client.post("/properties", json={"name": name}, headers=headers)
    return response.json()["id"]


def test_room_crud(owner_headers, properties_client, rooms_client):
    property_id = create_property(properties_client, owner_headers)

    create_resp = rooms_client.post(
        "/rooms",
        json={
            "property_id": property_id,
            "name": " Board Room ",
            "capacity": 10,
            "price_per_night": "45.50",
            "pricing_type": "hour",
        },
        headers=owner_headers,
    )
    assert create_resp.status_code == 201
    room = create_resp.json()
    assert room["name"] == "Board Room"
    assert room["price_per_night"] == 45.5

    get_resp = rooms_client.get(f"/rooms/{room['id']}", headers=owner_headers)
    assert get_resp.status_code == 200

    update_resp = rooms_client.put(
        f"/rooms/{room['id']}", json={"capacity": 12, "pricing_type": "day"}, headers=owner_headers
    )
    assert update_resp.status_code == 200
    assert update_resp.json()["capacity"] == 12
    assert update_resp.json()["pricing_type"] == "day"

    null_pricing = rooms_client.put(f"/rooms/{room['id']}", json={"pricing_type": None}, headers=owner_headers)
    assert null_pricing.status_code == 400

    delete_resp = rooms_client.delete(f"/rooms/{room['id']}", headers=owner_headers)
    assert delete_resp.status_code == 204
    assert rooms_client.get(f"/rooms/{room['id']}", headers=owner_headers).status_code == 404


def test_room_list_counts(owner_headers, make_room, rooms_client, reservations_client):
    room = make_room(owner_headers)
    rooms_client.post("/equipments", json={"room_id": room["id"], "name": "Projector"}, headers=owner_headers)
    rooms_client.post("/equipments", json={"room_id": room["id"], "name": "Whiteboard"}, headers=owner_headers)
    reservations_client.post(
        "/reservations",
        json={"roomId": room["id"], "guestName": "Alice", "startDate": "2030-06-03", "endDate": "2030-06-04"},
        headers=owner_headers,
    )
    reservations_client.post(
        "/reservations",
        json={
            "roomId": room["id"],
            "guestName": "Bob",
            "startDate": "2030-06-10",
            "endDate": "2030-06-11",
            "status": "CANCELLED",
        },
        headers=owner_headers,
    )

    listing = rooms_client.get("/rooms", headers=owner_headers)
    assert listing.status_code == 200
    item = listing.json()[0]
    assert item["property_name"] == "Villa Sol"
    assert item["equipment_count"] == 2
    assert item["reservation_count"] == 1

    filtered = rooms_client.get(f"/rooms?property_id={room['property_id'] + 100}", headers=owner_headers)
    assert filtered.json() == []


def test_room_requires_owned_property(register, properties_client, rooms_client):
    owner = register("owner@example.com", "Owner")
    other = register("other@example.com", "Other")
    property_id = create_property(properties_client, owner)

    response = rooms_client.post("/rooms", json={"property_id": property_id, "name": "Room"}, headers=other)
    assert response.status_code == 404


def test_rooms_hidden_from_other_organisations(register, make_room, rooms_client):
    owner = register("owner@example.com", "Owner")
    other = register("other@example.com", "Other")
    room = make_room(owner)

    assert rooms_client.get("/rooms", headers=other).json() == []
    assert rooms_client.get(f"/rooms/{room['id']}", headers=other).status_code == 404
    assert rooms_client.delete(f"/rooms/{room['id']}", headers=other).status_code == 404


def test_equipment_crud(owner_headers, make_room, rooms_client):
    room = make_room(owner_headers)

    create_resp = rooms_client.post(
        "/equipments", json={"room_id": room["id"], "name": "TV", "icon": "tv"}, headers=owner_headers
    )
    assert create_resp.status_code == 201
    equipment_id = create_resp.json()["id"]

    listing = rooms_client.get(f"/equipments?room_id={room['id']}", headers=owner_headers)
    assert [item["name"] for item in listing.json()] == ["TV"]

    update_resp = rooms_client.put(f"/equipments/{equipment_id}", json={"name": "Smart TV"}, headers=owner_headers)
    assert update_resp.json()["name"] == "Smart TV"
    assert update_resp.json()["icon"] == "tv"

    assert rooms_client.delete(f"/equipments/{equipment_id}", headers=owner_headers).status_code == 204
    assert rooms_client.get(f"/equipments/{equipment_id}", headers=owner_headers).status_code == 404


def test_deleting_room_removes_equipment(owner_headers, make_room, rooms_client):
    room = make_room(owner_headers)
    rooms_client.post("/equipments", json={"room_id": room["id"], "name": "TV"}, headers=owner_headers)

    rooms_client.delete(f"/rooms/{room['id']}", headers=owner_headers)

    assert rooms_client.get("/equipments", headers=owner_headers).json() == []
