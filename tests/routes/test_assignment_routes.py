"""
HTTP surface: status codes, error bodies and project-role checks.
"""
import pytest

from equiphub.models.models import EquipmentLog


@pytest.fixture
def site(manager_user, reader_user, project_factory, equipment_factory):
    return {
        "north": project_factory("North", managers=[manager_user], members=[reader_user]),
        "south": project_factory("South", managers=[manager_user]),
        "excavator": equipment_factory("Excavator"),
        "generator": equipment_factory("Generator"),
    }


def _assign(client, headers, project, equipment, **body):
    return client.post(f"/projects/{project.id}/equipment", json={"equipment_id": equipment.id, **body}, headers=headers)


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers.get("X-Request-ID")


def test_requires_token(client, site):
    assert client.get("/equipment/available").status_code == 401
    assert _assign(client, {}, site["north"], site["excavator"]).status_code == 401


def test_assign_and_conflict(client, auth_headers, manager_user, site):
    headers = auth_headers(manager_user)

    resp = _assign(client, headers, site["north"], site["excavator"], notes="trenching", authorization_code="IGNORED")
    assert resp.status_code == 201
    created = resp.json()
    assert created["project_id"] == site["north"].id
    assert created["assigned_by"] == manager_user.id
    assert created["is_active"] is True
    assert created["status"] == "assigned"
    assert "authorization_code" not in created

    resp = _assign(client, headers, site["south"], site["excavator"])
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["kind"] == "conflict"
    assert detail["reason"] == "exclusive_conflict"
    assert detail["conflicting_project_id"] == site["north"].id
    assert detail["conflicting_project_name"] == "North"
    assert detail["is_shared"] is False


def test_shared_assignment_flow(client, auth_headers, manager_user, site):
    headers = auth_headers(manager_user)
    resp = _assign(client, headers, site["north"], site["generator"], is_shared=True, authorization_code="GEN-SHARE")
    assert resp.status_code == 201
    assert resp.json()["is_shared"] is True
    assert "authorization_code" not in resp.json()

    resp = _assign(client, headers, site["south"], site["generator"], is_shared=True, authorization_code="gen-share")
    assert resp.status_code == 409
    assert resp.json()["detail"]["reason"] == "shared_code_invalid"

    resp = _assign(client, headers, site["south"], site["generator"], is_shared=True, authorization_code="GEN-SHARE")
    assert resp.status_code == 201

    current = client.get(f"/equipment/{site['generator'].id}/assignments/current", headers=headers)
    assert current.status_code == 200
    assert {a["project_id"] for a in current.json()} == {site["north"].id, site["south"].id}

    available = client.get("/equipment/available", headers=headers).json()
    assert site["generator"].id in {e["id"] for e in available}


def test_shared_without_code_is_422(client, auth_headers, manager_user, site):
    resp = _assign(client, auth_headers(manager_user), site["north"], site["excavator"], is_shared=True)
    assert resp.status_code == 422
    assert resp.json()["detail"]["reason"] == "authorization_code_required"


def test_unknown_equipment_is_404(client, auth_headers, manager_user, site):
    resp = client.post(f"/projects/{site['north'].id}/equipment", json={"equipment_id": 999}, headers=auth_headers(manager_user))
    assert resp.status_code == 404
    assert resp.json()["detail"]["reason"] == "equipment_not_found"


def test_unknown_project_is_404(client, auth_headers, manager_user, site):
    resp = client.post("/projects/999/equipment", json={"equipment_id": site["excavator"].id}, headers=auth_headers(manager_user))
    assert resp.status_code == 404


def test_member_cannot_assign(client, auth_headers, reader_user, user_factory, site):
    assert _assign(client, auth_headers(reader_user), site["north"], site["excavator"]).status_code == 403

    # equipment:assign without managing the project
    outsider = user_factory("outsider", role_name="project_manager")
    assert _assign(client, auth_headers(outsider), site["north"], site["excavator"]).status_code == 403


def test_area_access_false_blocks(client, auth_headers, user_factory, db_session, site):
    blocked = user_factory("blocked", role_name="project_manager", permissions={"equipment:assign": True})
    blocked.permissions_override = {"equipment:access": False}
    db_session.commit()
    assert client.get("/equipment/available", headers=auth_headers(blocked)).status_code == 403


def test_admin_bypasses_project_roles(client, auth_headers, admin_user, site):
    resp = _assign(client, auth_headers(admin_user), site["south"], site["excavator"])
    assert resp.status_code == 201


def test_return_and_reassign(client, auth_headers, manager_user, site, db_session):
    headers = auth_headers(manager_user)
    assignment_id = _assign(client, headers, site["north"], site["excavator"]).json()["id"]

    resp = client.put(f"/project-equipment/{assignment_id}/return", json={"notes": "back in yard"}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "returned"
    assert body["is_active"] is False
    assert body["actual_return_at"] is not None

    resp = client.put(f"/project-equipment/{assignment_id}/return", json={}, headers=headers)
    assert resp.status_code == 409
    assert resp.json()["detail"]["kind"] == "already_closed"

    assert _assign(client, headers, site["south"], site["excavator"]).status_code == 201

    history = client.get(f"/equipment/{site['excavator'].id}/assignments", headers=headers).json()
    assert [h["project_id"] for h in history] == [site["south"].id, site["north"].id]

    log_types = {row.log_type for row in db_session.query(EquipmentLog).all()}
    assert log_types == {"assignment", "return"}


def test_update_assignment(client, auth_headers, manager_user, site):
    headers = auth_headers(manager_user)
    assignment_id = _assign(client, headers, site["north"], site["excavator"]).json()["id"]

    resp = client.put(
        f"/project-equipment/{assignment_id}",
        json={"status": "in_use", "notes": "on site", "expected_return_at": "2030-06-01T00:00:00Z"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "in_use"
    assert resp.json()["notes"] == "on site"

    resp = client.put(f"/project-equipment/{assignment_id}", json={"status": "returned"}, headers=headers)
    assert resp.status_code == 422
    assert resp.json()["detail"]["reason"] == "use_return"


def test_project_listing_and_detail(client, auth_headers, manager_user, reader_user, user_factory, site):
    headers = auth_headers(manager_user)
    assignment_id = _assign(client, headers, site["north"], site["excavator"]).json()["id"]

    reader = auth_headers(reader_user)
    listing = client.get(f"/projects/{site['north'].id}/equipment", headers=reader)
    assert listing.status_code == 200
    assert [a["id"] for a in listing.json()] == [assignment_id]

    detail = client.get(f"/project-equipment/{assignment_id}", headers=reader)
    assert detail.status_code == 200
    assert detail.json()["equipment_id"] == site["excavator"].id

    # reader is not a member of South
    assert client.get(f"/projects/{site['south'].id}/equipment", headers=reader).status_code == 403
    assert client.get("/project-equipment/999", headers=headers).status_code == 404


def test_equipment_detail(client, auth_headers, reader_user, site):
    resp = client.get(f"/equipment/{site['excavator'].id}", headers=auth_headers(reader_user))
    assert resp.status_code == 200
    assert resp.json()["code"] == site["excavator"].code
    assert resp.json()["status"] == "operational"

    missing = client.get("/equipment/999", headers=auth_headers(reader_user))
    assert missing.status_code == 404
    assert missing.json()["detail"]["kind"] == "not_found"


def test_manager_cannot_assign_on_behalf_of_others(client, auth_headers, manager_user, reader_user, site):
    resp = _assign(client, auth_headers(manager_user), site["north"], site["excavator"], assigned_by=reader_user.id)
    assert resp.status_code == 201
    assert resp.json()["assigned_by"] == manager_user.id


def test_admin_can_assign_on_behalf_of_others(client, auth_headers, admin_user, reader_user, site):
    resp = _assign(client, auth_headers(admin_user), site["north"], site["excavator"], assigned_by=reader_user.id)
    assert resp.status_code == 201
    assert resp.json()["assigned_by"] == reader_user.id
