def test_property_crud(owner_headers, properties_client):
    create_resp = properties_client.post(
        "/properties",
        json={"name": "Villa Sol", "address": "1 Rue du Port", "property_type": "guesthouse"},
        headers=owner_headers,
    )
    assert create_resp.status_code == 201
    property_id = create_resp.json()["id"]

    listing = properties_client.get("/properties", headers=owner_headers)
    assert [item["name"] for item in listing.json()] == ["Villa Sol"]

    update_resp = properties_client.put(
        f"/properties/{property_id}", json={"description": "Sea view"}, headers=owner_headers
    )
    assert update_resp.status_code == 200
    assert update_resp.json()["description"] == "Sea view"
    assert update_resp.json()["address"] == "1 Rue du Port"

    assert properties_client.delete(f"/properties/{property_id}", headers=owner_headers).status_code == 204
    assert properties_client.get(f"/properties/{property_id}", headers=owner_headers).status_code == 404


def test_property_settings_defaults_and_update(owner_headers, properties_client):
    property_id = properties_client.post("/properties", json={"name": "Loft"}, headers=owner_headers).json()["id"]

    defaults = properties_client.get(f"/properties/{property_id}/settings", headers=owner_headers)
    assert defaults.status_code == 200
    assert defaults.json()["currency"] == "EUR"
    assert defaults.json()["widget_enabled"] is True
    assert defaults.json()["max_advance_booking_days"] == 365

    update_resp = properties_client.put(
        f"/properties/{property_id}/settings",
        json={"currency": "XOF", "widget_primary_color": "#112233", "default_checkin_time": "14:00"},
        headers=owner_headers,
    )
    assert update_resp.status_code == 200
    assert update_resp.json()["currency"] == "XOF"
    assert update_resp.json()["default_checkin_time"] == "14:00"

    null_field = properties_client.put(
        f"/properties/{property_id}/settings", json={"currency": None}, headers=owner_headers
    )
    assert null_field.status_code == 400

    bad_color = properties_client.put(
        f"/properties/{property_id}/settings", json={"widget_button_color": "green"}, headers=owner_headers
    )
    assert bad_color.status_code == 400


def test_properties_isolated_between_organisations(register, properties_client):
    owner = register("owner@example.com", "Owner")
    other = register("other@example.com", "Other")
    property_id = properties_client.post("/properties", json={"name": "Villa"}, headers=owner).json()["id"]

    assert properties_client.get("/properties", headers=other).json() == []
    assert properties_client.get(f"/properties/{property_id}", headers=other).status_code == 404
    assert properties_client.put(f"/properties/{property_id}", json={"name": "Mine"}, headers=other).status_code == 404


def test_manager_cannot_delete_property(register, users_client, organisations_client, properties_client):
    owner = register("owner@example.com", "Owner")
    manager = register("manager@example.com", "Manager")
    organisation_id = users_client.get("/users/me", headers=owner).json()["active_organisation_id"]
    organisations_client.post(
        "/organisations/invite",
        json={"email": "manager@example.com", "role": "MANAGER", "organisation_id": organisation_id},
        headers=owner,
    )
    organisations_client.post("/organisations/switch", json={"organisation_id": organisation_id}, headers=manager)

    created = properties_client.post("/properties", json={"name": "Annex"}, headers=manager)
    assert created.status_code == 201

    denied = properties_client.delete(f"/properties/{created.json()['id']}", headers=manager)
    assert denied.status_code == 403


def test_deleting_property_clears_last_active(owner_headers, properties_client, users_client):
    property_id = properties_client.post("/properties", json={"name": "Villa"}, headers=owner_headers).json()["id"]
    users_client.put("/users/me/last-active-property", json={"property_id": property_id}, headers=owner_headers)

    properties_client.delete(f"/properties/{property_id}", headers=owner_headers)

    last_active = users_client.get("/users/me/last-active-property", headers=owner_headers)
    assert last_active.json() == {"property_id": None}
