def active_organisation(users_client, headers) -> int:
    return users_client.get("/users/me", headers=headers).json()["active_organisation_id"]


def invite(organisations_client, headers, organisation_id: int, email: str, role: str = "MANAGER"):
    return organisations_client.post(
        "/organisations/invite",
        json={"email": email, "role": role, "organisation_id": organisation_id},
        headers=headers,
    )


def test_registration_creates_owned_organisation(owner_headers, organisations_client):
    response = organisations_client.get("/organisations", headers=owner_headers)
    assert response.status_code == 200
    memberships = response.json()
    assert len(memberships) == 1
    assert memberships[0]["role"] == "OWNER"
    assert memberships[0]["is_active"] is True
    assert memberships[0]["organisation"]["name"] == "Owner's organisation"


def test_create_update_and_delete_organisation(owner_headers, organisations_client):
    created = organisations_client.post("/organisations", json={"name": "Second Org"}, headers=owner_headers)
    assert created.status_code == 201
    organisation_id = created.json()["id"]

    updated = organisations_client.put(
        f"/organisations/{organisation_id}", json={"description": "Seasonal rentals"}, headers=owner_headers
    )
    assert updated.json()["description"] == "Seasonal rentals"

    assert organisations_client.delete(f"/organisations/{organisation_id}", headers=owner_headers).status_code == 204
    assert organisations_client.get(f"/organisations/{organisation_id}", headers=owner_headers).status_code == 404


def test_invite_and_members(register, users_client, organisations_client):
    owner = register("owner@example.com", "Owner")
    register("jane@example.com", "Jane")
    organisation_id = active_organisation(users_client, owner)

    response = invite(organisations_client, owner, organisation_id, "jane@example.com")
    assert response.status_code == 201
    assert response.json()["role"] == "MANAGER"

    members = organisations_client.get(f"/organisations/{organisation_id}/members", headers=owner).json()
    assert {member["email"] for member in members} == {"owner@example.com", "jane@example.com"}

    duplicate = invite(organisations_client, owner, organisation_id, "jane@example.com")
    assert duplicate.status_code == 400

    unknown = invite(organisations_client, owner, organisation_id, "ghost@example.com")
    assert unknown.status_code == 404

    as_owner = invite(organisations_client, owner, organisation_id, "jane@example.com", role="OWNER")
    assert as_owner.status_code == 400


def test_switch_and_leave(register, users_client, organisations_client):
    owner = register("owner@example.com", "Owner")
    jane = register("jane@example.com", "Jane")
    organisation_id = active_organisation(users_client, owner)
    invite(organisations_client, owner, organisation_id, "jane@example.com", role="VIEWER")

    switched = organisations_client.post(
        "/organisations/switch", json={"organisation_id": organisation_id}, headers=jane
    )
    assert switched.status_code == 200
    assert active_organisation(users_client, jane) == organisation_id

    left = organisations_client.post(f"/organisations/{organisation_id}/leave", headers=jane)
    assert left.status_code == 204
    assert organisations_client.get(f"/organisations/{organisation_id}", headers=jane).status_code == 404

    owner_leave = organisations_client.post(f"/organisations/{organisation_id}/leave", headers=owner)
    assert owner_leave.status_code == 400


def test_non_member_is_rejected(register, users_client, organisations_client):
    owner = register("owner@example.com", "Owner")
    other = register("other@example.com", "Other")
    organisation_id = active_organisation(users_client, owner)

    assert organisations_client.get(f"/organisations/{organisation_id}", headers=other).status_code == 404
    switched = organisations_client.post(
        "/organisations/switch", json={"organisation_id": organisation_id}, headers=other
    )
    assert switched.status_code == 404


def test_viewer_cannot_edit_or_delete(register, users_client, organisations_client):
    owner = register("owner@example.com", "Owner")
    viewer = register("viewer@example.com", "Viewer")
    organisation_id = active_organisation(users_client, owner)
    invite(organisations_client, owner, organisation_id, "viewer@example.com", role="VIEWER")

    edit = organisations_client.put(f"/organisations/{organisation_id}", json={"name": "Mine"}, headers=viewer)
    assert edit.status_code == 403
    delete = organisations_client.delete(f"/organisations/{organisation_id}", headers=viewer)
    assert delete.status_code == 403
