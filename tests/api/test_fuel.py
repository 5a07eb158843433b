import pytest

from fleetdesk.db_models import db, Asset


@pytest.fixture
def asset(make_asset):
    return make_asset(mileage=10000)


def fill(client, asset_id, **body):
    payload = {"asset_id": asset_id, "quantity": 50, "transaction_date": "2026-04-01", **body}
    return client.post("/api/fuel", json=payload)


def test_create_fills_in_costs_and_bumps_odometer(client, asset):
    res = fill(client, asset.id, unit_cost=1.45, odometer=10400)
    assert res.status_code == 201
    tx = res.get_json()["transaction"]
    assert tx["total_cost"] == 72.5
    assert tx["transaction_date"] == "2026-04-01"
    assert db.session.get(Asset, asset.id).mileage == 10400

    # an older reading never winds the asset back
    fill(client, asset.id, total_cost=60, odometer=9000)
    assert db.session.get(Asset, asset.id).mileage == 10400


def test_unit_cost_derived_from_total(client, asset):
    tx = fill(client, asset.id, quantity=40, total_cost=58).get_json()["transaction"]
    assert tx["unit_cost"] == 1.45


def test_quantity_must_be_positive(client, asset):
    assert fill(client, asset.id, quantity=0).status_code == 400


def test_archived_asset_rejected(client, make_asset):
    archived = make_asset(is_archived=True)
    assert fill(client, archived.id).status_code == 400


def test_consumption_history(client, asset):
    fill(client, asset.id, quantity=60, odometer=10000, transaction_date="2026-04-01")
    fill(client, asset.id, quantity=30, odometer=10100, transaction_date="2026-04-03")
    fill(client, asset.id, quantity=45, odometer=10400, transaction_date="2026-04-08")

    body = client.get(f"/api/fuel/assets/{asset.id}/history").get_json()
    rows = body["data"]
    assert rows[0]["liters_per_100km"] is None
    assert (rows[1]["distance"], rows[1]["liters_per_100km"]) == (100.0, 30.0)
    assert rows[2]["liters_per_100km"] == 15.0
    # 75 litres over 400 km
    assert body["average_liters_per_100km"] == 18.75


def test_summary_groups_by_type_and_asset(client, asset, make_asset):
    other = make_asset()
    fill(client, asset.id, quantity=50, total_cost=75)
    fill(client, asset.id, quantity=20, total_cost=30, fuel_type="petrol")
    fill(client, other.id, quantity=100, total_cost=150)

    body = client.get("/api/fuel/summary").get_json()
    assert body["total_transactions"] == 3
    assert body["total_quantity"] == 170
    assert body["total_cost"] == 255
    by_type = {r["fuel_type"]: r["total_quantity"] for r in body["by_fuel_type"]}
    assert by_type == {"diesel": 150, "petrol": 20}
    assert body["by_asset"][0]["asset_number"] == other.asset_number


def test_date_filters(client, asset):
    fill(client, asset.id, transaction_date="2026-03-01")
    fill(client, asset.id, transaction_date="2026-04-15")
    body = client.get("/api/fuel?date_from=2026-04-01").get_json()
    assert body["pagination"]["total"] == 1
    assert client.get("/api/fuel?date_from=April").status_code == 400


def test_update_recalculates_total(client, asset):
    tx = fill(client, asset.id, quantity=50, unit_cost=1.5).get_json()["transaction"]
    res = client.put(f"/api/fuel/{tx['id']}", json={"quantity": 40})
    assert res.get_json()["transaction"]["total_cost"] == 60.0

    assert client.delete(f"/api/fuel/{tx['id']}").status_code == 200
    assert client.get(f"/api/fuel/{tx['id']}").status_code == 404
