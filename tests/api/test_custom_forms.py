import csv
import io

import pytest

from fleetdesk.db_models import db, CustomFormVersion

DAMAGE_FIELDS = [
    {
        "id": "has_damage",
        "type": "radio",
        "label": "Any damage?",
        "required": True,
        "position": 0,
        "options": [{"label": "Yes", "value": "yes"}, {"label": "No", "value": "no"}],
    },
    {
        "id": "damage_photo",
        "type": "photo",
        "label": "Damage photo",
        "position": 1,
        "conditional_visibility": {"field_id": "has_damage", "operator": "equals", "value": "yes"},
    },
    {
        "id": "damage_notes",
        "type": "textarea",
        "label": "Describe the damage",
        "position": 2,
        "conditional_required": {
            "enabled": True,
            "logic": "and",
            "groups": [{
                "id": "g1",
                "logic": "and",
                "conditions": [{"id": "c1", "field_id": "has_damage", "operator": "equals", "value": "yes"}],
            }],
        },
    },
]


@pytest.fixture
def published_form(client):
    form = client.post("/api/custom-forms", json={"name": "Vehicle damage report", "fields": DAMAGE_FIELDS})
    assert form.status_code == 201
    form_id = form.get_json()["form"]["id"]
    res = client.post(f"/api/custom-forms/{form_id}/publish", json={"changelog": "First release"})
    assert res.status_code == 201
    return form_id


def submit(client, form_id, responses, **extra):
    return client.post("/api/form-submissions", json={"form_id": form_id, "responses": responses, **extra})


def test_create_form_rejects_bad_references(client):
    fields = [{
        "id": "notes",
        "type": "text",
        "label": "Notes",
        "conditional_visibility": {"field_id": "missing", "operator": "equals", "value": "x"},
    }]
    res = client.post("/api/custom-forms", json={"name": "Broken", "fields": fields})
    assert res.status_code == 400
    assert "unknown field 'missing'" in res.get_json()["details"][0]["message"]


def test_create_form_rejects_unknown_operator(client):
    fields = [
        {"id": "a", "type": "text", "label": "A"},
        {"id": "b", "type": "text", "label": "B",
         "conditional_visibility": {"field_id": "a", "operator": "matches", "value": "x"}},
    ]
    assert client.post("/api/custom-forms", json={"name": "Bad", "fields": fields}).status_code == 400


def test_publish_activates_and_lists_versions(client, published_form):
    form = client.get(f"/api/custom-forms/{published_form}").get_json()["form"]
    assert form["status"] == "active"
    assert form["current_version"] == 1

    versions = client.get(f"/api/custom-forms/{published_form}/versions").get_json()
    assert versions["current_version"] == 1
    assert [v["version"] for v in versions["data"]] == [1]
    assert "fields" not in versions["data"][0]

    v1 = client.get(f"/api/custom-forms/{published_form}/versions/1").get_json()["version"]
    assert [f["id"] for f in v1["fields"]] == ["has_damage", "damage_photo", "damage_notes"]
    assert client.get(f"/api/custom-forms/{published_form}/versions/9").status_code == 404


def test_cannot_publish_form_without_fields(client):
    form_id = client.post("/api/custom-forms", json={"name": "Empty"}).get_json()["form"]["id"]
    res = client.post(f"/api/custom-forms/{form_id}/publish", json={})
    assert res.status_code == 400
    assert res.get_json()["message"] == "Cannot publish a form with no fields"


def test_draft_form_cannot_be_activated_before_publishing(client):
    form_id = client.post("/api/custom-forms", json={"name": "Draft"}).get_json()["form"]["id"]
    res = client.put(f"/api/custom-forms/{form_id}", json={"status": "active"})
    assert res.status_code == 400


def test_submission_requires_published_version(client):
    form_id = client.post("/api/custom-forms", json={"name": "Draft", "fields": DAMAGE_FIELDS}).get_json()["form"]["id"]
    res = submit(client, form_id, {"has_damage": "no"})
    assert res.status_code == 400
    assert res.get_json()["message"] == "No published version found for this form"


def test_conditional_required_is_enforced_on_submit(client, published_form):
    res = submit(client, published_form, {"has_damage": "yes"})
    assert res.status_code == 400
    body = res.get_json()
    assert body["details"] == [{"field": "responses", "message": "Describe the damage is required"}]

    assert submit(client, published_form, {"has_damage": "no"}).status_code == 201
    ok = submit(client, published_form, {"has_damage": "yes", "damage_notes": "Dent on rear door"})
    assert ok.status_code == 201
    assert ok.get_json()["submission"]["version"] == 1


def test_drafts_skip_validation_and_stay_pinned(client, published_form):
    draft = submit(client, published_form, {}, status="draft").get_json()["submission"]
    assert draft["submitted_at"] is None

    # publish v2 without the notes field
    client.put(f"/api/custom-forms/{published_form}", json={"fields": DAMAGE_FIELDS[:1]})
    assert client.post(f"/api/custom-forms/{published_form}/publish", json={}).status_code == 201

    # the draft is still checked against v1, where notes are conditionally required
    res = client.put(f"/api/form-submissions/{draft['id']}",
                     json={"responses": {"has_damage": "yes"}, "status": "submitted"})
    assert res.status_code == 400

    res = client.put(f"/api/form-submissions/{draft['id']}",
                     json={"responses": {"has_damage": "yes", "damage_notes": "Scratch"}, "status": "submitted"})
    assert res.status_code == 200
    assert res.get_json()["submission"]["version"] == 1

    detail = client.get(f"/api/form-submissions/{draft['id']}").get_json()["submission"]
    assert [f["id"] for f in detail["fields"]] == ["has_damage", "damage_photo", "damage_notes"]

    # new submissions use the latest version
    assert submit(client, published_form, {"has_damage": "yes"}).get_json()["submission"]["version"] == 2


def test_submitted_responses_cannot_be_edited(client, published_form):
    sub = submit(client, published_form, {"has_damage": "no"}).get_json()["submission"]
    res = client.put(f"/api/form-submissions/{sub['id']}", json={"responses": {"has_damage": "yes"}})
    assert res.status_code == 400


def test_review_flow(client, published_form):
    sub = submit(client, published_form, {"has_damage": "no"}).get_json()["submission"]
    res = client.post(f"/api/form-submissions/{sub['id']}/review",
                      json={"status": "approved", "review_notes": "Looks fine"})
    assert res.status_code == 200
    assert res.get_json()["submission"]["status"] == "approved"
    again = client.post(f"/api/form-submissions/{sub['id']}/review", json={"status": "rejected"})
    assert again.status_code == 400


def test_archived_form_refuses_submissions_and_publish(client, published_form):
    assert client.put(f"/api/custom-forms/{published_form}", json={"status": "archived"}).status_code == 200
    assert submit(client, published_form, {"has_damage": "no"}).status_code == 400
    assert client.post(f"/api/custom-forms/{published_form}/publish", json={}).status_code == 400
    assert client.post(f"/api/custom-forms/{published_form}/rollback",
                       json={"target_version": 1}).status_code == 400


def test_published_form_cannot_be_deleted(client, published_form):
    res = client.delete(f"/api/custom-forms/{published_form}")
    assert res.status_code == 409

    draft_id = client.post("/api/custom-forms", json={"name": "Scratch"}).get_json()["form"]["id"]
    assert client.delete(f"/api/custom-forms/{draft_id}").status_code == 200


def test_simultaneous_publish_loses_with_409(client, published_form, monkeypatch):
    # the other request already took version 1 by the time this one commits
    monkeypatch.setattr("fleetdesk.services.form_versions.next_version_number", lambda form_id: 1)
    res = client.post(f"/api/custom-forms/{published_form}/publish", json={"changelog": "Second try"})
    assert res.status_code == 409
    assert res.get_json()["message"] == "This form was published by someone else at the same time, please retry"

    assert db.session.query(CustomFormVersion).filter_by(form_id=published_form).count() == 1
    assert client.get(f"/api/custom-forms/{published_form}").get_json()["form"]["current_version"] == 1


def test_rollback_publishes_old_definition_as_new_version(client, published_form):
    client.put(f"/api/custom-forms/{published_form}", json={"fields": DAMAGE_FIELDS[:1]})
    client.post(f"/api/custom-forms/{published_form}/publish", json={})

    res = client.post(f"/api/custom-forms/{published_form}/rollback", json={"target_version": 1})
    assert res.status_code == 201
    body = res.get_json()
    assert (body["rolled_back_from"], body["rolled_back_to"]) == (2, 1)
    assert body["version"]["version"] == 3
    assert len(body["form"]["fields"]) == 3
    assert db.session.query(CustomFormVersion).count() == 3

    missing = client.post(f"/api/custom-forms/{published_form}/rollback", json={"target_version": 7})
    assert missing.status_code == 404


def test_evaluate_reports_visibility_and_required(client, published_form):
    res = client.post(f"/api/custom-forms/{published_form}/evaluate", json={"values": {"has_damage": "yes"}})
    fields = res.get_json()["fields"]
    assert fields["damage_photo"] == {"visible": True, "required": False}
    assert fields["damage_notes"] == {"visible": True, "required": True}

    fields = client.post(f"/api/custom-forms/{published_form}/evaluate",
                         json={"values": {"has_damage": "no"}}).get_json()["fields"]
    assert fields["damage_photo"]["visible"] is False
    assert fields["damage_notes"]["required"] is False


def test_condition_sources_exclude_non_source_types(client, published_form):
    res = client.get(f"/api/custom-forms/{published_form}/condition-sources?exclude=damage_notes")
    assert [f["id"] for f in res.get_json()["data"]] == ["has_damage"]


def test_responses_filters_and_export(client, published_form):
    submit(client, published_form, {"has_damage": "yes", "damage_notes": "Cracked mirror"})
    submit(client, published_form, {"has_damage": "no"})
    submit(client, published_form, {}, status="draft")

    res = client.get(f"/api/custom-forms/{published_form}/responses?field_has_damage=yes")
    assert res.get_json()["pagination"]["total"] == 1

    drafts = client.get(f"/api/custom-forms/{published_form}/responses?status=draft").get_json()
    assert drafts["pagination"]["total"] == 1

    export = client.get(f"/api/custom-forms/{published_form}/export?status=submitted")
    assert export.mimetype == "text/csv"
    assert "attachment" in export.headers["Content-Disposition"]
    rows = list(csv.reader(io.StringIO(export.get_data(as_text=True))))
    assert rows[0][-3:] == ["Any damage?", "Damage photo", "Describe the damage"]
    assert len(rows) == 3


def test_stats_endpoint(client, published_form):
    submit(client, published_form, {"has_damage": "yes", "damage_notes": "Dent"})
    submit(client, published_form, {"has_damage": "no"})
    stats = client.get(f"/api/custom-forms/{published_form}/stats").get_json()
    assert stats["total_submissions"] == 2
    assert stats["completion_rate"] == 100
    assert stats["field_stats"][0]["field_id"] == "has_damage"


def test_technician_sees_only_own_submissions(client, published_form, make_user, client_for):
    submit(client, published_form, {"has_damage": "no"})
    tech = client_for(make_user("technician"))
    assert submit(tech, published_form, {"has_damage": "no"}).status_code == 201

    mine = tech.get("/api/form-submissions").get_json()
    assert mine["pagination"]["total"] == 1
    assert client.get("/api/form-submissions").get_json()["pagination"]["total"] == 2
    assert tech.get(f"/api/custom-forms/{published_form}/responses").status_code == 403


def test_operator_metadata(client):
    body = client.get("/api/custom-forms/operators").get_json()
    assert {"value": "greater_than", "label": "is greater than"} in body["operators"]
    assert body["by_field_type"]["checkbox"] == ["equals", "not_equals"]
