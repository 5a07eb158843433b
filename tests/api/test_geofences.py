DEPOT = {
    "name": "Main depot",
    "geofence_type": "circle",
    "center_latitude": 51.5,
    "center_longitude": -0.12,
    "radius_meters": 300,
}

YARD_POLYGON = {
    "name": "Yard",
    "geofence_type": "polygon",
    "polygon_coordinates": [
        {"lat": 51.49, "lng": -0.13},
        {"lat": 51.49, "lng": -0.11},
        {"lat": 51.51, "lng": -0.11},
        {"lat": 51.51, "lng": -0.13},
    ],
}


def test_create_circle_and_polygon(client):
    circle = client.post("/api/geofences", json=DEPOT)
    assert circle.status_code == 201
    body = circle.get_json()["geofence"]
    assert body["is_active"] is True
    assert body["alert_settings"]["is_default"] is True

    polygon = client.post("/api/geofences", json=YARD_POLYGON).get_json()["geofence"]
    assert polygon["bounding_box"] == {"min_lat": 51.49, "max_lat": 51.51, "min_lng": -0.13, "max_lng": -0.11}


def test_shape_validation(client):
    assert client.post("/api/geofences", json={**DEPOT, "radius_meters": 0}).status_code == 400
    short = {**YARD_POLYGON, "polygon_coordinates": YARD_POLYGON["polygon_coordinates"][:2]}
    assert client.post("/api/geofences", json=short).status_code == 400
    assert client.post("/api/geofences", json={**DEPOT, "active_start_time": "07:00"}).status_code == 400
    assert client.post("/api/geofences", json={**DEPOT, "active_days": [7]}).status_code == 400


def test_update_revalidates_shape(client):
    geofence_id = client.post("/api/geofences", json=DEPOT).get_json()["geofence"]["id"]
    assert client.put(f"/api/geofences/{geofence_id}", json={"geofence_type": "polygon"}).status_code == 400

    res = client.put(f"/api/geofences/{geofence_id}", json={"radius_meters": 800, "active_days": [5, 1, 1]})
    assert res.status_code == 200
    assert res.get_json()["geofence"]["active_days"] == [1, 5]


def test_check_location(client):
    client.post("/api/geofences", json=DEPOT)
    client.post("/api/geofences", json=YARD_POLYGON)
    res = client.post("/api/geofences/check-location", json={"latitude": 51.5, "longitude": -0.12})
    assert [g["name"] for g in res.get_json()["geofences"]] == ["Main depot", "Yard"]

    far = client.post("/api/geofences/check-location", json={"latitude": 52.0, "longitude": 0.5})
    assert far.get_json()["geofences"] == []


def test_alert_settings_and_acknowledgement(client, make_asset):
    geofence_id = client.post("/api/geofences", json=DEPOT).get_json()["geofence"]["id"]
    res = client.put(f"/api/geofences/{geofence_id}/alert-settings",
                     json={"alert_on_entry": False, "notify_user_ids": [3, 4]})
    settings = res.get_json()["alert_settings"]
    assert settings["alert_on_entry"] is False
    assert settings["alert_on_exit"] is True
    assert settings["notify_user_ids"] == [3, 4]
    assert settings["is_default"] is False

    asset = make_asset()
    client.post(f"/api/assets/{asset.id}/location", json={"latitude": 52.0, "longitude": -0.12})
    # entry alerts are switched off
    entry = client.post(f"/api/assets/{asset.id}/location", json={"latitude": 51.5, "longitude": -0.12})
    assert entry.get_json()["alerts"] == []
    client.post(f"/api/assets/{asset.id}/location", json={"latitude": 52.0, "longitude": -0.12})

    alerts = client.get("/api/geofences/alerts?acknowledged=false").get_json()
    assert alerts["pagination"]["total"] == 1
    alert = alerts["data"][0]
    assert alert["alert_type"] == "exit"
    assert alert["message"] == f"{asset.asset_number} (Volvo FH16) exited Main depot"

    ack = client.post(f"/api/geofences/alerts/{alert['id']}/acknowledge")
    assert ack.get_json()["alert"]["is_acknowledged"] is True
    assert client.post(f"/api/geofences/alerts/{alert['id']}/acknowledge").status_code == 400
    assert client.get("/api/geofences/alerts?acknowledged=false").get_json()["pagination"]["total"] == 0


def test_deactivated_geofence_is_ignored(client):
    geofence_id = client.post("/api/geofences", json=DEPOT).get_json()["geofence"]["id"]
    assert client.delete(f"/api/geofences/{geofence_id}").status_code == 200
    res = client.post("/api/geofences/check-location", json={"latitude": 51.5, "longitude": -0.12})
    assert res.get_json()["geofences"] == []
    assert client.get("/api/geofences?is_active=false").get_json()["data"][0]["id"] == geofence_id
