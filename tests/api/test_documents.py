import io
import os
from datetime import date, timedelta


def upload(client, content=b"%PDF-1.4 registration", filename="rego.pdf", **form):
    data = {"file": (io.BytesIO(content), filename), **form}
    return client.post("/api/documents", data=data, content_type="multipart/form-data")


def test_upload_stores_file_and_metadata(client, test_app, make_asset):
    asset = make_asset()
    res = upload(client, name="Registration", category="registration",
                 entity_type="asset", entity_id=str(asset.id))
    assert res.status_code == 201
    doc = res.get_json()["document"]
    assert doc["file_name"] == "rego.pdf"
    assert doc["file_size"] == len(b"%PDF-1.4 registration")
    assert doc["entity_id"] == asset.id

    folder = os.path.join(test_app.config["UPLOAD_FOLDER"], str(asset.organisation_id))
    assert len(os.listdir(folder)) == 1

    download = client.get(f"/api/documents/{doc['id']}/download")
    assert download.status_code == 200
    assert download.data == b"%PDF-1.4 registration"
    assert "rego.pdf" in download.headers["Content-Disposition"]


def test_filenames_are_sanitised(client):
    doc = upload(client, filename="../../etc/passwd").get_json()["document"]
    assert doc["file_name"] == "etc_passwd"


def test_upload_requires_file_and_valid_metadata(client):
    assert client.post("/api/documents", data={"name": "Nothing"}).status_code == 400
    res = upload(client, category="poetry")
    assert res.status_code == 400
    assert res.get_json()["details"][0]["field"] == "category"
    assert upload(client, entity_type="asset").status_code == 400
    assert upload(client, entity_type="asset", entity_id="999").status_code == 404


def test_expiring_and_expired(client):
    today = date.today()
    upload(client, name="Insurance", expiry_date=(today + timedelta(days=10)).isoformat())
    upload(client, name="Old MOT", expiry_date=(today - timedelta(days=1)).isoformat())
    upload(client, name="Manual")

    expiring = client.get("/api/documents/expiring?days=30").get_json()
    assert [d["name"] for d in expiring["data"]] == ["Insurance"]
    assert expiring["data"][0]["days_until_expiry"] == 10

    assert [d["name"] for d in client.get("/api/documents/expired").get_json()["data"]] == ["Old MOT"]
    assert client.get("/api/documents/expiring?days=5").get_json()["data"] == []
    assert client.get("/api/documents/expiring?days=400").status_code == 400


def test_delete_removes_stored_file(client, test_app, org):
    doc = upload(client).get_json()["document"]
    folder = os.path.join(test_app.config["UPLOAD_FOLDER"], str(org.id))
    assert client.delete(f"/api/documents/{doc['id']}").status_code == 200
    assert os.listdir(folder) == []
    assert client.get(f"/api/documents/{doc['id']}").status_code == 404


def test_operator_can_read_but_not_upload(client, make_user, client_for):
    upload(client)
    operator = client_for(make_user("operator"))
    assert upload(operator).status_code == 403
    assert operator.get("/api/documents").get_json()["pagination"]["total"] == 1
