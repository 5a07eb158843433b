import csv
import io

from fleetdesk.db_models import db, AuditLog, Geofence, GeofenceAlertSettings


def create_asset(client, **body):
    return client.post("/api/assets", json={"make": "Volvo", "model": "FH16", **body})


def test_create_assigns_next_fleet_number(client):
    first = create_asset(client)
    assert first.status_code == 201
    assert first.get_json()["asset"]["asset_number"] == "FLT-0001"

    create_asset(client, asset_number="FLT-0010")
    assert create_asset(client).get_json()["asset"]["asset_number"] == "FLT-0011"


def test_duplicate_asset_number_conflicts(client):
    create_asset(client, asset_number="TRK-1")
    res = create_asset(client, asset_number="TRK-1")
    assert res.status_code == 409
    assert res.get_json()["message"] == "An asset with this number already exists"


def test_create_validates_body(client):
    res = create_asset(client, vin="TOO-SHORT", year=1800)
    assert res.status_code == 400
    assert {d["field"] for d in res.get_json()["details"]} == {"vin", "year"}


def test_unknown_category_is_404(client):
    assert create_asset(client, category_id=999).status_code == 404


def test_update_records_audit_diff(client):
    asset_id = create_asset(client, mileage=1000).get_json()["asset"]["id"]
    res = client.put(f"/api/assets/{asset_id}", json={"mileage": 1500, "status": "maintenance"})
    assert res.status_code == 200
    assert res.get_json()["asset"]["status"] == "maintenance"

    audit = db.session.query(AuditLog).filter_by(action="update", entity_type="asset").one()
    assert audit.old_values["mileage"] == 1000
    assert audit.new_values["mileage"] == 1500


def test_archive_hides_asset_and_blocks_edits(client):
    asset_id = create_asset(client).get_json()["asset"]["id"]
    assert client.delete(f"/api/assets/{asset_id}").status_code == 200

    assert client.get("/api/assets").get_json()["pagination"]["total"] == 0
    assert client.get("/api/assets?include_archived=true").get_json()["pagination"]["total"] == 1
    assert client.put(f"/api/assets/{asset_id}", json={"mileage": 5}).status_code == 400
    assert client.delete(f"/api/assets/{asset_id}").status_code == 400


def test_search_and_filters(client):
    create_asset(client, make="Scania", model="R450", year=2019, mileage=120000)
    create_asset(client, make="Volvo", model="FH16", year=2022, mileage=40000, license_plate="AB12 CDE")

    def numbers(query):
        return [a["make"] for a in client.get(f"/api/assets?{query}").get_json()["data"]]

    assert numbers("search=scania") == ["Scania"]
    assert numbers("search=AB12") == ["Volvo"]
    assert numbers("year_min=2020") == ["Volvo"]
    assert numbers("mileage_min=100000") == ["Scania"]


def test_pagination(client):
    for _ in range(3):
        create_asset(client)
    body = client.get("/api/assets?per_page=2&page=2").get_json()
    assert body["pagination"] == {"page": 2, "per_page": 2, "total": 3, "pages": 2}
    assert len(body["data"]) == 1


def test_export_csv(client):
    create_asset(client, license_plate="AB12 CDE")
    res = client.get("/api/assets/export")
    assert res.mimetype == "text/csv"
    rows = list(csv.reader(io.StringIO(res.get_data(as_text=True))))
    assert rows[0][0] == "Asset Number"
    assert rows[1][:6] == ["FLT-0001", "", "Volvo", "FH16", "", "AB12 CDE"]


def test_other_organisations_assets_are_invisible(client, make_user, client_for):
    from fleetdesk.db_models import Organisation

    other_org = Organisation(name="Rival Logistics")
    db.session.add(other_org)
    db.session.commit()
    outsider = client_for(make_user("admin", email="boss@rival.example.com", organisation=other_org))

    asset_id = create_asset(client).get_json()["asset"]["id"]
    assert outsider.get(f"/api/assets/{asset_id}").status_code == 404
    assert outsider.get("/api/assets").get_json()["pagination"]["total"] == 0


def test_location_report_raises_geofence_alerts(client, org):
    geofence = Geofence(
        organisation_id=org.id, name="Depot", geofence_type="circle",
        center_latitude=51.5, center_longitude=-0.12, radius_meters=250,
        alert_settings=GeofenceAlertSettings(),
    )
    db.session.add(geofence)
    db.session.commit()
    asset_id = create_asset(client).get_json()["asset"]["id"]

    first = client.post(f"/api/assets/{asset_id}/location", json={"latitude": 51.5, "longitude": -0.12})
    assert first.status_code == 201
    assert first.get_json()["alerts"] == []

    res = client.post(f"/api/assets/{asset_id}/location", json={"latitude": 51.6, "longitude": -0.12})
    body = res.get_json()
    assert [a["alert_type"] for a in body["alerts"]] == ["exit"]
    assert body["notifications_sent"] == 0

    latest = client.get(f"/api/assets/{asset_id}/location").get_json()["location"]
    assert latest["latitude"] == 51.6


def test_location_requires_valid_coordinates(client):
    asset_id = create_asset(client).get_json()["asset"]["id"]
    res = client.post(f"/api/assets/{asset_id}/location", json={"latitude": 95, "longitude": 0})
    assert res.status_code == 400
    assert client.get(f"/api/assets/{asset_id}/location").status_code == 404
