from fleetdesk.db_models import db, User


def new_user(client, **body):
    payload = {"email": "Sam.Driver@Example.com", "name": "Sam Driver", "password": "long-enough", **body}
    return client.post("/api/admin/users", json=payload)


def test_create_user(client):
    res = new_user(client, role="operator")
    assert res.status_code == 201
    user = res.get_json()["user"]
    assert user["email"] == "sam.driver@example.com"
    assert user["role"] == "operator"
    assert db.session.get(User, user["id"]).check_password("long-enough")

    assert new_user(client, email="SAM.DRIVER@example.com").status_code == 409


def test_create_user_validation(client):
    res = new_user(client, email="not-an-email", password="short", role="owner")
    assert res.status_code == 400
    fields = {d["field"] for d in res.get_json()["details"]}
    assert fields == {"email", "password", "role"}


def test_update_user_and_reset_password(client, make_user):
    tech = make_user("technician")
    tech.failed_login_attempts = 4
    db.session.commit()

    res = client.put(f"/api/admin/users/{tech.id}", json={"role": "manager", "password": "brand-new-pass"})
    assert res.get_json()["user"]["role"] == "manager"
    refreshed = db.session.get(User, tech.id)
    assert refreshed.check_password("brand-new-pass")
    assert refreshed.failed_login_attempts == 0


def test_cannot_demote_or_deactivate_self(client, admin):
    assert client.put(f"/api/admin/users/{admin.id}", json={"is_active": False}).status_code == 400
    assert client.put(f"/api/admin/users/{admin.id}", json={"role": "operator"}).status_code == 400
    assert client.put(f"/api/admin/users/{admin.id}", json={"name": "Head Admin"}).status_code == 200


def test_users_are_admin_only(make_user, client_for):
    manager = client_for(make_user("manager"))
    assert manager.get("/api/admin/users").status_code == 403
    assert new_user(manager).status_code == 403


def test_audit_log_records_changes(client, admin):
    user_id = new_user(client).get_json()["user"]["id"]
    client.put(f"/api/admin/users/{user_id}", json={"name": "Samuel Driver"})
    client.post("/api/asset-categories", json={"name": "Trailers"})

    body = client.get("/api/admin/audit-log?entity_type=user").get_json()
    assert body["pagination"]["total"] == 2
    latest = body["data"][0]
    assert latest["action"] == "update"
    assert latest["user_name"] == admin.name
    assert latest["old_values"]["name"] == "Sam Driver"
    assert latest["new_values"]["name"] == "Samuel Driver"

    creates = client.get("/api/admin/audit-log?action=create").get_json()
    assert {e["entity_type"] for e in creates["data"]} == {"user", "asset_category"}
    assert client.get("/api/admin/audit-log?date_from=yesterday").status_code == 400


def test_audit_log_permissions(make_user, client_for):
    assert client_for(make_user("manager")).get("/api/admin/audit-log").status_code == 200
    assert client_for(make_user("technician")).get("/api/admin/audit-log").status_code == 403
