# fleetdesk/services/form_validation.py
from __future__ import annotations

import re
from typing import Any, Mapping
from urllib.parse import urlparse

from fleetdesk.services.conditional_logic import (
    is_empty,
    is_field_required,
    is_field_visible,
    to_number,
)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SKIPPED_FIELD_TYPES = ("section", "calculated")
TEXT_FIELD_TYPES = ("text", "textarea")


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_responses(fields: list[Mapping[str, Any]], responses: Mapping[str, Any]) -> list[str]:
    """
    Check submitted answers against a form version's fields.

    Hidden fields are skipped entirely, so a field that is hidden by its
    conditions is neither required nor format-checked. Required-ness comes
    from ``conditional_required`` when enabled, otherwise the static flag.
    Returns human-readable messages; an empty list means the answers pass.
    """
    errors: list[str] = []
    responses = responses or {}

    for field in fields or []:
        field_type = field.get("type")
        if field_type in SKIPPED_FIELD_TYPES:
            continue
        if not is_field_visible(field, responses):
            continue

        label = field.get("label") or field.get("id")
        value = responses.get(field.get("id"))

        if is_empty(value):
            if is_field_required(field, responses):
                errors.append(f"{label} is required")
            continue

        rules = field.get("validation") or {}

        if field_type == "email":
            if not isinstance(value, str) or not EMAIL_RE.match(value):
                errors.append(f"{label} must be a valid email address")
                continue

        if field_type == "url":
            if not isinstance(value, str) or not _is_url(value):
                errors.append(f"{label} must be a valid URL")
                continue

        if field_type == "number":
            number = to_number(value)
            if number is None:
                errors.append(f"{label} must be a number")
                continue
            if rules.get("min") is not None and number < rules["min"]:
                errors.append(f"{label} must be at least {rules['min']:g}")
            if rules.get("max") is not None and number > rules["max"]:
                errors.append(f"{label} must be at most {rules['max']:g}")

        if field_type in TEXT_FIELD_TYPES and isinstance(value, str):
            if rules.get("min_length") is not None and len(value) < rules["min_length"]:
                errors.append(f"{label} must be at least {rules['min_length']} characters")
            if rules.get("max_length") is not None and len(value) > rules["max_length"]:
                errors.append(f"{label} must be at most {rules['max_length']} characters")

        if rules.get("pattern") and isinstance(value, str):
            if not re.fullmatch(rules["pattern"], value):
                errors.append(rules.get("pattern_message") or f"{label} has an invalid format")

        if field_type in ("dropdown", "radio") and field.get("options"):
            allowed = {o.get("value") for o in field["options"]}
            if not isinstance(value, str) or value not in allowed:
                errors.append(f"{label} has an invalid option")
        if field_type == "multi_select" and field.get("options"):
            allowed = {o.get("value") for o in field["options"]}
            if not isinstance(value, list) or any(not isinstance(v, str) or v not in allowed for v in value):
                errors.append(f"{label} has an invalid option")

    return errors
