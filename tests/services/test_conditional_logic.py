import pytest

from fleetdesk.services.conditional_logic import (
    OPERATORS,
    condition_source_fields,
    convert_legacy_condition,
    evaluate_condition,
    evaluate_form,
    evaluate_group,
    evaluate_logic,
    is_field_required,
    is_field_visible,
    operators_for_field_type,
    to_number,
)


def cond(field_id, operator, value=None):
    return {"id": f"c-{field_id}-{operator}", "field_id": field_id, "operator": operator, "value": value}


def logic(*groups, top="and", enabled=True):
    return {"enabled": enabled, "logic": top, "groups": list(groups)}


def group(*conditions, op="and"):
    return {"id": "g", "logic": op, "conditions": list(conditions)}


def test_all_fourteen_operators_are_known():
    assert len(OPERATORS) == 14
    assert len(set(OPERATORS)) == 14


@pytest.mark.parametrize("operator,field_value,expected_value,result", [
    ("equals", "yes", "yes", True),
    ("equals", "Yes", "yes", False),
    ("not_equals", "no", "yes", True),
    ("contains", "Front bumper cracked", "BUMPER", True),
    ("contains", ["dent", "scratch"], "scratch", True),
    ("not_contains", "all good", "damage", True),
    ("greater_than", "12.5", 10, True),
    ("less_than", 3, "4", True),
    ("greater_than_or_equals", 10, 10, True),
    ("less_than_or_equals", 11, 10, False),
    ("is_empty", "", None, True),
    ("is_empty", [], None, True),
    ("is_not_empty", "x", None, True),
    ("starts_with", "Hydraulic leak", "hyd", True),
    ("ends_with", "Hydraulic leak", "LEAK", True),
    ("in", "b", ["a", "b"], True),
    ("not_in", "c", ["a", "b"], True),
])
def test_operator_semantics(operator, field_value, expected_value, result):
    assert evaluate_condition(cond("f", operator, expected_value), {"f": field_value}) is result


def test_equality_is_strict_about_types():
    assert evaluate_condition(cond("f", "equals", "5"), {"f": 5}) is False
    assert evaluate_condition(cond("f", "equals", 1), {"f": True}) is False
    assert evaluate_condition(cond("f", "equals", True), {"f": True}) is True
    assert evaluate_condition(cond("f", "equals", 5.0), {"f": 5}) is True


def test_numeric_comparison_with_non_numbers_is_false():
    assert evaluate_condition(cond("f", "greater_than", 5), {"f": "abc"}) is False
    assert evaluate_condition(cond("f", "less_than", 5), {"f": None}) is False
    assert evaluate_condition(cond("f", "greater_than", 5), {"f": True}) is False
    assert evaluate_condition(cond("f", "less_than", "nan"), {"f": 1}) is False


def test_missing_field_is_treated_as_empty():
    assert evaluate_condition(cond("missing", "is_empty"), {}) is True
    assert evaluate_condition(cond("missing", "equals", "x"), {}) is False
    assert evaluate_condition(cond("missing", "not_contains", "x"), {}) is True


def test_in_requires_list_condition_value():
    assert evaluate_condition(cond("f", "in", "a"), {"f": "a"}) is False
    assert evaluate_condition(cond("f", "not_in", "a"), {"f": "a"}) is True


def test_unknown_operator_is_false():
    assert evaluate_condition(cond("f", "matches", "x"), {"f": "x"}) is False


def test_to_number():
    assert to_number(" 42 ") == 42.0
    assert to_number("") is None
    assert to_number(False) is None
    assert to_number([1]) is None


def test_group_and_or():
    values = {"a": "yes", "b": 3}
    assert evaluate_group(group(cond("a", "equals", "yes"), cond("b", "greater_than", 5)), values) is False
    assert evaluate_group(group(cond("a", "equals", "yes"), cond("b", "greater_than", 5), op="or"), values) is True
    assert evaluate_group(group(), values) is True


def test_top_level_logic_combines_groups():
    values = {"a": "no", "b": 10}
    g1 = group(cond("a", "equals", "yes"))
    g2 = group(cond("b", "greater_than", 5))
    assert evaluate_logic(logic(g1, g2), values) is False
    assert evaluate_logic(logic(g1, g2, top="or"), values) is True


def test_disabled_or_empty_logic_passes():
    assert evaluate_logic(None, {}) is True
    assert evaluate_logic(logic(group(cond("a", "equals", "x")), enabled=False), {}) is True
    assert evaluate_logic(logic(), {}) is True


def test_legacy_condition_is_converted():
    converted = convert_legacy_condition({"field_id": "damage", "operator": "equals", "value": "yes"})
    assert converted["enabled"] is True
    assert converted["groups"][0]["conditions"][0]["field_id"] == "damage"

    field = {"id": "details", "type": "textarea",
             "conditional_visibility": {"field_id": "damage", "operator": "equals", "value": "yes"}}
    assert is_field_visible(field, {"damage": "yes"}) is True
    assert is_field_visible(field, {"damage": "no"}) is False


def test_advanced_visibility_wins_over_legacy():
    field = {
        "id": "details",
        "type": "text",
        "conditional_visibility": {"field_id": "damage", "operator": "equals", "value": "yes"},
        "conditional_visibility_advanced": logic(group(cond("damage", "equals", "no"))),
    }
    assert is_field_visible(field, {"damage": "no"}) is True


def test_conditional_required_overrides_static_flag():
    field = {
        "id": "photo_notes",
        "type": "text",
        "required": True,
        "conditional_required": logic(group(cond("severity", "in", ["high", "critical"]))),
    }
    assert is_field_required(field, {"severity": "low"}) is False
    assert is_field_required(field, {"severity": "critical"}) is True


def test_disabled_conditional_required_falls_back_to_static_flag():
    field = {"id": "f", "type": "text", "required": True,
             "conditional_required": logic(group(cond("x", "equals", "y")), enabled=False)}
    assert is_field_required(field, {}) is True
    assert is_field_required({**field, "required": False}, {}) is False
    assert is_field_required({**field, "required": False}, {}) is False


def test_hidden_field_is_never_required():
    field = {"id": "f", "type": "text", "required": True,
             "conditional_visibility_advanced": logic(group(cond("show", "equals", True)))}
    assert is_field_required(field, {"show": False}) is False


def test_evaluate_form_reports_each_field():
    fields = [
        {"id": "damaged", "type": "checkbox"},
        {"id": "details", "type": "textarea", "required": True,
         "conditional_visibility_advanced": logic(group(cond("damaged", "equals", True)))},
    ]
    state = evaluate_form(fields, {"damaged": False})
    assert state == {
        "damaged": {"visible": True, "required": False},
        "details": {"visible": False, "required": False},
    }
    assert evaluate_form(fields, {"damaged": True})["details"] == {"visible": True, "required": True}


def test_operators_for_field_type():
    assert "greater_than" in operators_for_field_type("number")
    assert operators_for_field_type("checkbox") == ["equals", "not_equals"]
    assert "in" in operators_for_field_type("dropdown")
    assert "contains" in operators_for_field_type("multi_select")
    assert "starts_with" in operators_for_field_type("email")


def test_condition_source_fields_skip_non_sources_and_self():
    fields = [
        {"id": "a", "type": "text"},
        {"id": "s", "type": "section"},
        {"id": "sig", "type": "signature"},
        {"id": "b", "type": "number"},
    ]
    assert [f["id"] for f in condition_source_fields(fields, exclude_field_id="b")] == ["a"]
