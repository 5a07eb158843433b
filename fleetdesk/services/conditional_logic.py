# fleetdesk/services/conditional_logic.py
"""
Conditional visibility / required-ness for custom form fields.

A field may carry:
  - ``conditional_visibility``: legacy single condition
    ``{"field_id", "operator", "value"}``
  - ``conditional_visibility_advanced``: ``{"enabled", "logic", "groups"}``
  - ``conditional_required``: same shape as the advanced block

Groups reduce their conditions with the group operator, then the groups are
reduced with the top-level operator. Everything here works on the plain dicts
stored in ``CustomForm.fields`` / ``CustomFormVersion.fields``.
"""
from __future__ import annotations

import math
from typing import Any, Mapping, Optional

OPERATORS = (
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "greater_than",
    "less_than",
    "greater_than_or_equals",
    "less_than_or_equals",
    "is_empty",
    "is_not_empty",
    "starts_with",
    "ends_with",
    "in",
    "not_in",
)

OPERATOR_LABELS = {
    "equals": "equals",
    "not_equals": "does not equal",
    "contains": "contains",
    "not_contains": "does not contain",
    "greater_than": "is greater than",
    "less_than": "is less than",
    "greater_than_or_equals": "is greater than or equal to",
    "less_than_or_equals": "is less than or equal to",
    "is_empty": "is empty",
    "is_not_empty": "is not empty",
    "starts_with": "starts with",
    "ends_with": "ends with",
    "in": "is one of",
    "not_in": "is not one of",
}

TEXT_OPERATORS = [
    "equals", "not_equals", "contains", "not_contains",
    "starts_with", "ends_with", "is_empty", "is_not_empty",
]
NUMBER_OPERATORS = [
    "equals", "not_equals", "greater_than", "less_than",
    "greater_than_or_equals", "less_than_or_equals", "is_empty", "is_not_empty",
]
SELECTION_OPERATORS = ["equals", "not_equals", "in", "not_in", "is_empty", "is_not_empty"]
MULTI_SELECT_OPERATORS = ["contains", "not_contains", "is_empty", "is_not_empty"]
BOOLEAN_OPERATORS = ["equals", "not_equals"]

# Field types that cannot drive a condition
NON_SOURCE_FIELD_TYPES = frozenset({"section", "calculated", "signature", "file", "photo"})


def operator_label(operator: str) -> str:
    return OPERATOR_LABELS.get(operator, operator)


def operators_for_field_type(field_type: str) -> list[str]:
    if field_type in ("number", "calculated"):
        return list(NUMBER_OPERATORS)
    if field_type in ("dropdown", "radio"):
        return list(SELECTION_OPERATORS)
    if field_type == "multi_select":
        return list(MULTI_SELECT_OPERATORS)
    if field_type == "checkbox":
        return list(BOOLEAN_OPERATORS)
    return list(TEXT_OPERATORS)


def condition_source_fields(fields: list[Mapping[str, Any]], exclude_field_id: Optional[str] = None):
    """Fields another field's conditions may reference."""
    return [
        f for f in fields
        if f.get("type") not in NON_SOURCE_FIELD_TYPES and f.get("id") != exclude_field_id
    ]


# -----------------------------
# Value helpers
# -----------------------------
def is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, list) and len(value) == 0)


def to_number(value: Any) -> Optional[float]:
    """Numeric coercion; None when the value is not a usable number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def strict_equals(left: Any, right: Any) -> bool:
    # True == 1 in Python; a checkbox answer must never match a number
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if type(left) is not type(right):
        if isinstance(left, (int, float)) and isinstance(right, (int, float)):
            return left == right
        return False
    return left == right


def _contains(field_value: Any, condition_value: Any) -> Optional[bool]:
    if isinstance(field_value, str) and isinstance(condition_value, str):
        return condition_value.lower() in field_value.lower()
    if isinstance(field_value, list):
        return any(strict_equals(item, condition_value) for item in field_value)
    return None


def _compare(field_value: Any, condition_value: Any, op) -> bool:
    left = to_number(field_value)
    right = to_number(condition_value)
    if left is None or right is None:
        return False
    return op(left, right)


# -----------------------------
# Evaluation
# -----------------------------
def evaluate_condition(condition: Mapping[str, Any], values: Mapping[str, Any]) -> bool:
    operator = condition.get("operator")
    field_value = values.get(condition.get("field_id"))
    expected = condition.get("value")

    if operator == "equals":
        return strict_equals(field_value, expected)
    if operator == "not_equals":
        return not strict_equals(field_value, expected)
    if operator == "contains":
        result = _contains(field_value, expected)
        return bool(result)
    if operator == "not_contains":
        result = _contains(field_value, expected)
        return True if result is None else not result
    if operator == "greater_than":
        return _compare(field_value, expected, lambda a, b: a > b)
    if operator == "less_than":
        return _compare(field_value, expected, lambda a, b: a < b)
    if operator == "greater_than_or_equals":
        return _compare(field_value, expected, lambda a, b: a >= b)
    if operator == "less_than_or_equals":
        return _compare(field_value, expected, lambda a, b: a <= b)
    if operator == "is_empty":
        return is_empty(field_value)
    if operator == "is_not_empty":
        return not is_empty(field_value)
    if operator == "starts_with":
        if isinstance(field_value, str) and isinstance(expected, str):
            return field_value.lower().startswith(expected.lower())
        return False
    if operator == "ends_with":
        if isinstance(field_value, str) and isinstance(expected, str):
            return field_value.lower().endswith(expected.lower())
        return False
    if operator == "in":
        if isinstance(expected, list):
            return any(strict_equals(field_value, item) for item in expected)
        return False
    if operator == "not_in":
        if isinstance(expected, list):
            return not any(strict_equals(field_value, item) for item in expected)
        return True
    return False


def _reduce(logic: Optional[str], results) -> bool:
    if logic == "or":
        return any(results)
    return all(results)


def evaluate_group(group: Mapping[str, Any], values: Mapping[str, Any]) -> bool:
    conditions = group.get("conditions") or []
    if not conditions:
        return True
    return _reduce(group.get("logic"), (evaluate_condition(c, values) for c in conditions))


def evaluate_logic(logic: Optional[Mapping[str, Any]], values: Mapping[str, Any]) -> bool:
    if not logic or not logic.get("enabled"):
        return True
    groups = logic.get("groups") or []
    if not groups:
        return True
    return _reduce(logic.get("logic"), (evaluate_group(g, values) for g in groups))


def convert_legacy_condition(legacy: Mapping[str, Any]) -> dict:
    return {
        "enabled": True,
        "logic": "and",
        "groups": [
            {
                "id": "legacy",
                "logic": "and",
                "conditions": [
                    {
                        "id": "legacy",
                        "field_id": legacy.get("field_id"),
                        "operator": legacy.get("operator"),
                        "value": legacy.get("value"),
                    }
                ],
            }
        ],
    }


def is_field_visible(field: Mapping[str, Any], values: Mapping[str, Any]) -> bool:
    advanced = field.get("conditional_visibility_advanced")
    if advanced:
        return evaluate_logic(advanced, values)
    legacy = field.get("conditional_visibility")
    if legacy:
        return evaluate_logic(convert_legacy_condition(legacy), values)
    return True


def is_field_required(field: Mapping[str, Any], values: Mapping[str, Any]) -> bool:
    if not is_field_visible(field, values):
        return False
    conditional = field.get("conditional_required")
    # a disabled block defers to the static flag rather than forcing required
    if conditional and conditional.get("enabled"):
        return evaluate_logic(conditional, values)
    return bool(field.get("required"))


def evaluate_form(fields: list[Mapping[str, Any]], values: Mapping[str, Any]) -> dict[str, dict]:
    """Per-field ``{"visible": bool, "required": bool}`` keyed by field id."""
    state = {}
    for field in fields:
        visible = is_field_visible(field, values)
        state[field["id"]] = {
            "visible": visible,
            "required": is_field_required(field, values) if visible else False,
        }
    return state
