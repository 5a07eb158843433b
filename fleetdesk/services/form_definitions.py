# fleetdesk/services/form_definitions.py
"""
Schema for custom form definitions.

Fields arrive as JSON from the form builder and are stored as plain dicts;
these models validate them on the way in and ``dump_fields`` normalises them
for storage.
"""
from __future__ import annotations

import re
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fleetdesk.services.conditional_logic import NON_SOURCE_FIELD_TYPES

FieldType = Literal[
    "text", "number", "date", "time", "datetime", "dropdown", "multi_select",
    "checkbox", "radio", "file", "photo", "signature", "location", "barcode",
    "calculated", "lookup", "section", "textarea", "email", "phone", "url",
]
Operator = Literal[
    "equals", "not_equals", "contains", "not_contains",
    "greater_than", "less_than", "greater_than_or_equals", "less_than_or_equals",
    "is_empty", "is_not_empty", "starts_with", "ends_with", "in", "not_in",
]
LegacyOperator = Literal[
    "equals", "not_equals", "contains", "greater_than", "less_than", "is_empty", "is_not_empty",
]

FORM_STATUSES = ("draft", "active", "archived")
CHOICE_FIELD_TYPES = ("dropdown", "radio", "multi_select")


class FieldOption(BaseModel):
    label: str = Field(min_length=1, max_length=255)
    value: str = Field(min_length=1, max_length=255)


class FieldValidation(BaseModel):
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = Field(default=None, max_length=500)
    pattern_message: Optional[str] = Field(default=None, max_length=255)

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, v):
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"invalid regular expression: {e}")
        return v


class CalculatedConfig(BaseModel):
    formula: str = Field(min_length=1, max_length=1000)
    decimal_places: Optional[int] = Field(default=None, ge=0, le=10)
    prefix: Optional[str] = None
    suffix: Optional[str] = None


class LookupConfig(BaseModel):
    source: Literal["assets", "parts", "users", "work_orders"]
    display_field: str = Field(min_length=1)
    value_field: str = Field(min_length=1)
    filter: Optional[dict[str, Any]] = None


class LegacyCondition(BaseModel):
    field_id: str = Field(min_length=1)
    operator: LegacyOperator
    value: Any = None


class FieldCondition(BaseModel):
    id: str = Field(min_length=1)
    field_id: str = Field(min_length=1)
    operator: Operator
    value: Any = None


class ConditionGroup(BaseModel):
    id: str = Field(min_length=1)
    logic: Literal["and", "or"] = "and"
    conditions: list[FieldCondition] = Field(default_factory=list)


class ConditionalLogic(BaseModel):
    enabled: bool = False
    logic: Literal["and", "or"] = "and"
    groups: list[ConditionGroup] = Field(default_factory=list)


class FormField(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1, max_length=100)
    type: FieldType
    label: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    placeholder: Optional[str] = Field(default=None, max_length=255)
    required: bool = False
    position: int = Field(default=0, ge=0)
    width: Literal["full", "half", "third"] = "full"
    default_value: Any = None
    options: Optional[list[FieldOption]] = None
    validation: Optional[FieldValidation] = None
    calculated_config: Optional[CalculatedConfig] = None
    lookup_config: Optional[LookupConfig] = None
    settings: Optional[dict[str, Any]] = None
    conditional_visibility: Optional[LegacyCondition] = None
    conditional_visibility_advanced: Optional[ConditionalLogic] = None
    conditional_required: Optional[ConditionalLogic] = None


class FormDefinitionError(ValueError):
    def __init__(self, problems):
        super().__init__("; ".join(p["message"] for p in problems))
        self.problems = problems


def _condition_refs(field: FormField):
    if field.conditional_visibility:
        yield field.conditional_visibility.field_id
    for block in (field.conditional_visibility_advanced, field.conditional_required):
        if block is None:
            continue
        for group in block.groups:
            for condition in group.conditions:
                yield condition.field_id


def check_field_references(fields: list[FormField]) -> None:
    """Field ids are unique, choice fields have options, conditions point at real source fields."""
    problems = []
    by_id = {}
    for index, field in enumerate(fields):
        if field.id in by_id:
            problems.append({"field": f"fields.{index}.id", "message": f"Duplicate field id '{field.id}'"})
        by_id[field.id] = field

    for index, field in enumerate(fields):
        if field.type in CHOICE_FIELD_TYPES and not field.options:
            problems.append({
                "field": f"fields.{index}.options",
                "message": f"Field '{field.id}' of type {field.type} needs at least one option",
            })
        if field.type == "calculated" and field.calculated_config is None:
            problems.append({
                "field": f"fields.{index}.calculated_config",
                "message": f"Calculated field '{field.id}' needs a formula",
            })
        for ref in _condition_refs(field):
            if ref == field.id:
                problems.append({
                    "field": f"fields.{index}",
                    "message": f"Field '{field.id}' cannot depend on itself",
                })
            elif ref not in by_id:
                problems.append({
                    "field": f"fields.{index}",
                    "message": f"Field '{field.id}' references unknown field '{ref}'",
                })
            elif by_id[ref].type in NON_SOURCE_FIELD_TYPES:
                problems.append({
                    "field": f"fields.{index}",
                    "message": f"Field '{field.id}' cannot use {by_id[ref].type} field '{ref}' in a condition",
                })

    if problems:
        raise FormDefinitionError(problems)


def dump_fields(fields: list[FormField]) -> list[dict]:
    """Storage shape, ordered by position (ties keep submitted order)."""
    ordered = sorted(enumerate(fields), key=lambda pair: (pair[1].position, pair[0]))
    return [f.model_dump(exclude_none=True) for _, f in ordered]
