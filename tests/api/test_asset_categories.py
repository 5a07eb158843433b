def create(client, name, parent_id=None):
    return client.post("/api/asset-categories", json={"name": name, "parent_id": parent_id})


def test_tree_nests_children(client):
    vehicles = create(client, "Vehicles").get_json()["category"]
    create(client, "Trucks", vehicles["id"])
    create(client, "Vans", vehicles["id"])
    create(client, "Plant")

    tree = client.get("/api/asset-categories/tree").get_json()["data"]
    assert [n["name"] for n in tree] == ["Plant", "Vehicles"]
    assert [c["name"] for c in tree[1]["children"]] == ["Trucks", "Vans"]


def test_tree_refreshes_after_changes(client):
    trucks_id = create(client, "Trucks").get_json()["category"]["id"]
    assert client.get("/api/asset-categories/tree").get_json()["data"][0]["name"] == "Trucks"

    client.put(f"/api/asset-categories/{trucks_id}", json={"name": "Heavy trucks"})
    assert client.get("/api/asset-categories/tree").get_json()["data"][0]["name"] == "Heavy trucks"


def test_parent_must_exist_and_not_loop(client):
    assert create(client, "Orphan", 999).status_code == 404

    top = create(client, "Vehicles").get_json()["category"]["id"]
    child = create(client, "Trucks", top).get_json()["category"]["id"]
    res = client.put(f"/api/asset-categories/{top}", json={"parent_id": child})
    assert res.status_code == 400
    assert client.put(f"/api/asset-categories/{top}", json={"parent_id": top}).status_code == 400


def test_delete_refuses_categories_in_use(client, make_asset):
    top = create(client, "Vehicles").get_json()["category"]["id"]
    child = create(client, "Trucks", top).get_json()["category"]["id"]
    assert client.delete(f"/api/asset-categories/{top}").status_code == 409

    make_asset(category_id=child)
    assert client.delete(f"/api/asset-categories/{child}").status_code == 409

    spare = create(client, "Spare").get_json()["category"]["id"]
    assert client.delete(f"/api/asset-categories/{spare}").status_code == 200
    assert [c["name"] for c in client.get("/api/asset-categories").get_json()["data"]] == ["Trucks", "Vehicles"]


def test_technician_reads_only(make_user, client_for):
    tech = client_for(make_user("technician"))
    assert tech.get("/api/asset-categories/tree").status_code == 200
    assert create(tech, "Trailers").status_code == 403
