from fleetdesk.services.form_validation import validate_responses

FIELDS = [
    {"id": "section_1", "type": "section", "label": "Vehicle"},
    {"id": "odometer", "type": "number", "label": "Odometer", "required": True,
     "validation": {"min": 0, "max": 2000000}},
    {"id": "damaged", "type": "radio", "label": "Any damage?", "required": True,
     "options": [{"label": "Yes", "value": "yes"}, {"label": "No", "value": "no"}]},
    {"id": "damage_notes", "type": "textarea", "label": "Describe the damage",
     "validation": {"min_length": 10},
     "conditional_visibility_advanced": {
         "enabled": True, "logic": "and",
         "groups": [{"id": "g1", "logic": "and", "conditions": [
             {"id": "c1", "field_id": "damaged", "operator": "equals", "value": "yes"}]}],
     },
     "conditional_required": {
         "enabled": True, "logic": "and",
         "groups": [{"id": "g2", "logic": "and", "conditions": [
             {"id": "c2", "field_id": "damaged", "operator": "equals", "value": "yes"}]}],
     }},
    {"id": "contact", "type": "email", "label": "Contact email"},
    {"id": "manual", "type": "url", "label": "Manual link"},
    {"id": "plate", "type": "text", "label": "Plate",
     "validation": {"pattern": "[A-Z]{3}-\\d{3}", "pattern_message": "Plate must look like ABC-123"}},
    {"id": "tags", "type": "multi_select", "label": "Tags",
     "options": [{"label": "Tyres", "value": "tyres"}, {"label": "Body", "value": "body"}]},
]


def test_valid_submission_has_no_errors():
    assert validate_responses(FIELDS, {"odometer": 12000, "damaged": "no"}) == []


def test_required_fields_are_reported():
    errors = validate_responses(FIELDS, {})
    assert "Odometer is required" in errors
    assert "Any damage? is required" in errors
    assert not any("Describe the damage" in e for e in errors)


def test_conditionally_required_field_when_visible():
    errors = validate_responses(FIELDS, {"odometer": 1, "damaged": "yes"})
    assert errors == ["Describe the damage is required"]


def test_hidden_field_is_not_format_checked():
    errors = validate_responses(FIELDS, {"odometer": 1, "damaged": "no", "damage_notes": "short"})
    assert errors == []


def test_visible_field_is_format_checked():
    errors = validate_responses(FIELDS, {"odometer": 1, "damaged": "yes", "damage_notes": "short"})
    assert errors == ["Describe the damage must be at least 10 characters"]


def test_number_bounds_and_type():
    assert validate_responses(FIELDS, {"odometer": -5, "damaged": "no"}) == ["Odometer must be at least 0"]
    assert validate_responses(FIELDS, {"odometer": "lots", "damaged": "no"}) == ["Odometer must be a number"]
    assert validate_responses(FIELDS, {"odometer": "150", "damaged": "no"}) == []


def test_email_url_and_pattern():
    errors = validate_responses(FIELDS, {
        "odometer": 1, "damaged": "no",
        "contact": "not-an-email", "manual": "ftp://example.com", "plate": "abc123",
    })
    assert errors == [
        "Contact email must be a valid email address",
        "Manual link must be a valid URL",
        "Plate must look like ABC-123",
    ]


def test_options_are_enforced():
    errors = validate_responses(FIELDS, {"odometer": 1, "damaged": "maybe", "tags": ["tyres", "engine"]})
    assert errors == ["Any damage? has an invalid option", "Tags has an invalid option"]


def test_section_and_calculated_fields_are_skipped():
    fields = [
        {"id": "s", "type": "section", "label": "Header", "required": True},
        {"id": "total", "type": "calculated", "label": "Total", "required": True,
         "calculated_config": {"formula": "a + b"}},
    ]
    assert validate_responses(fields, {}) == []
