# fleetdesk/schemas.py
"""Request bodies. Update schemas are all-optional and applied with exclude_unset."""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from fleetdesk.services.form_definitions import FormField
from fleetdesk.services.geofence_utils import validate_circle, validate_polygon
from fleetdesk.services.inventory import ADJUSTMENT_TYPES, UNITS

Priority = Literal["low", "medium", "high", "critical"]
AssetStatus = Literal["active", "inactive", "maintenance", "disposed"]
Role = Literal["admin", "manager", "technician", "operator"]
Unit = Literal[UNITS]
AdjustmentType = Literal[ADJUSTMENT_TYPES]
FuelType = Literal["diesel", "petrol", "electric", "lpg", "other"]
ContextType = Literal["asset", "work_order", "inspection", "operator"]
IntervalType = Literal["daily", "weekly", "monthly", "quarterly", "annually", "custom"]
DocumentEntityType = Literal["asset", "work_order", "part", "inspection", "operator"]
DocumentCategory = Literal["registration", "insurance", "inspection", "certification", "manual",
                           "warranty", "invoice", "other"]

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


# -----------------------------
# Auth / users
# -----------------------------
class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1)


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    name: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8, max_length=128)
    role: Role = "technician"


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=8, max_length=128)


# -----------------------------
# Assets
# -----------------------------
class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    parent_id: Optional[int] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    parent_id: Optional[int] = None


class AssetCreate(BaseModel):
    asset_number: Optional[str] = Field(default=None, min_length=1, max_length=50)
    vin: Optional[str] = Field(default=None, min_length=17, max_length=17)
    make: Optional[str] = Field(default=None, max_length=100)
    model: Optional[str] = Field(default=None, max_length=100)
    year: Optional[int] = Field(default=None, ge=1900, le=2100)
    license_plate: Optional[str] = Field(default=None, max_length=20)
    status: AssetStatus = "active"
    category_id: Optional[int] = None
    mileage: Optional[float] = Field(default=None, ge=0)
    operational_hours: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None


class AssetUpdate(BaseModel):
    asset_number: Optional[str] = Field(default=None, min_length=1, max_length=50)
    vin: Optional[str] = Field(default=None, min_length=17, max_length=17)
    make: Optional[str] = Field(default=None, max_length=100)
    model: Optional[str] = Field(default=None, max_length=100)
    year: Optional[int] = Field(default=None, ge=1900, le=2100)
    license_plate: Optional[str] = Field(default=None, max_length=20)
    status: Optional[AssetStatus] = None
    category_id: Optional[int] = None
    mileage: Optional[float] = Field(default=None, ge=0)
    operational_hours: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None


class LocationReport(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    speed: Optional[float] = Field(default=None, ge=0)
    heading: Optional[float] = Field(default=None, ge=0, lt=360)
    accuracy: Optional[float] = Field(default=None, ge=0)
    recorded_at: Optional[datetime] = None
    source: Optional[str] = Field(default=None, max_length=32)


# -----------------------------
# Task templates / work orders
# -----------------------------
class ChecklistItem(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    is_required: bool = False
    order: int = Field(default=0, ge=0)


def _unique_checklist_ids(items):
    ids = [i.id for i in items]
    if len(ids) != len(set(ids)):
        raise ValueError("checklist item ids must be unique")
    return items


class TaskTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    estimated_duration_minutes: Optional[int] = Field(default=None, ge=0)
    checklist_items: list[ChecklistItem] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("checklist_items")
    @classmethod
    def _unique_ids(cls, v):
        return _unique_checklist_ids(v)


class TaskTemplateUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    estimated_duration_minutes: Optional[int] = Field(default=None, ge=0)
    checklist_items: Optional[list[ChecklistItem]] = None
    is_active: Optional[bool] = None

    @field_validator("checklist_items")
    @classmethod
    def _unique_ids(cls, v):
        return _unique_checklist_ids(v) if v is not None else v


class WorkOrderCreate(BaseModel):
    asset_id: int
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Priority = "medium"
    status: Literal["draft", "open"] = "open"
    assigned_to_id: Optional[int] = None
    template_id: Optional[int] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)


class WorkOrderUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    assigned_to_id: Optional[int] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_hours: Optional[float] = Field(default=None, ge=0)


class StatusChange(BaseModel):
    status: Literal["draft", "open", "in_progress", "pending_parts", "completed", "closed"]
    notes: Optional[str] = Field(default=None, max_length=2000)


class ChecklistItemUpdate(BaseModel):
    is_completed: bool
    notes: Optional[str] = None


class WorkOrderPartAdd(BaseModel):
    part_id: int
    quantity: float = Field(gt=0)
    notes: Optional[str] = None


# -----------------------------
# Parts
# -----------------------------
class PartCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    unit: Unit = "each"
    quantity_in_stock: float = Field(default=0, ge=0)
    minimum_stock: float = Field(default=0, ge=0)
    reorder_threshold: Optional[float] = Field(default=None, ge=0)
    reorder_quantity: Optional[float] = Field(default=None, ge=0)
    unit_cost: Optional[float] = Field(default=None, ge=0)
    supplier: Optional[str] = Field(default=None, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)


class PartUpdate(BaseModel):
    sku: Optional[str] = Field(default=None, min_length=1, max_length=64)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    unit: Optional[Unit] = None
    minimum_stock: Optional[float] = Field(default=None, ge=0)
    reorder_threshold: Optional[float] = Field(default=None, ge=0)
    reorder_quantity: Optional[float] = Field(default=None, ge=0)
    unit_cost: Optional[float] = Field(default=None, ge=0)
    supplier: Optional[str] = Field(default=None, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)


class StockAdjust(BaseModel):
    quantity_change: float
    usage_type: AdjustmentType = "adjustment"
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("quantity_change")
    @classmethod
    def _non_zero(cls, v):
        if v == 0:
            raise ValueError("quantity_change cannot be zero")
        return v


class StockReceive(BaseModel):
    quantity: float = Field(gt=0)
    unit_cost: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=1000)


# -----------------------------
# Inspections
# -----------------------------
class InspectionStart(BaseModel):
    asset_id: int
    template_id: int
    initiation_method: Literal["nfc", "qr_code", "manual"] = "manual"
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class InspectionItemResult(BaseModel):
    result: Literal["pass", "fail", "na"]
    value_numeric: Optional[float] = None
    value_text: Optional[str] = None
    notes: Optional[str] = None


class InspectionSignOff(BaseModel):
    signature_data: str
    declaration_accepted: bool
    notes: Optional[str] = None

    @field_validator("signature_data")
    @classmethod
    def _is_image(cls, v):
        if not v.startswith("data:image/"):
            raise ValueError("signature_data must be an image data URL")
        return v

    @field_validator("declaration_accepted")
    @classmethod
    def _accepted(cls, v):
        if v is not True:
            raise ValueError("declaration must be accepted")
        return v


# -----------------------------
# Custom forms
# -----------------------------
class FormCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    fields: list[FormField] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)


class FormUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    fields: Optional[list[FormField]] = None
    settings: Optional[dict[str, Any]] = None
    status: Optional[Literal["draft", "active", "archived"]] = None


class PublishRequest(BaseModel):
    changelog: Optional[str] = Field(default=None, max_length=1000)


class RollbackRequest(BaseModel):
    target_version: int = Field(ge=1)


class EvaluateRequest(BaseModel):
    values: dict[str, Any] = Field(default_factory=dict)
    version: Optional[int] = Field(default=None, ge=1)


class SubmissionCreate(BaseModel):
    form_id: int
    version_id: Optional[int] = None
    responses: dict[str, Any]
    status: Literal["draft", "submitted"] = "submitted"
    context_type: Optional[ContextType] = None
    context_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class SubmissionUpdate(BaseModel):
    responses: dict[str, Any]
    status: Literal["draft", "submitted"] = "draft"
    notes: Optional[str] = Field(default=None, max_length=2000)


class SubmissionReview(BaseModel):
    status: Literal["approved", "rejected"]
    review_notes: Optional[str] = Field(default=None, max_length=2000)


class AssignmentCreate(BaseModel):
    form_id: int
    target_type: ContextType
    asset_category_id: Optional[int] = None
    is_required: bool = False
    position: int = Field(default=0, ge=0)


class AssignmentUpdate(BaseModel):
    asset_category_id: Optional[int] = None
    is_required: Optional[bool] = None
    position: Optional[int] = Field(default=None, ge=0)


# -----------------------------
# Maintenance schedules
# -----------------------------
class _ScheduleTiming(BaseModel):
    interval_type: Optional[IntervalType] = None
    interval_value: int = Field(default=1, ge=1, le=1000)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    month_of_year: Optional[int] = Field(default=None, ge=1, le=12)
    lead_time_days: int = Field(default=0, ge=0, le=365)


class ScheduleCreate(_ScheduleTiming):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    asset_id: Optional[int] = None
    category_id: Optional[int] = None
    template_id: Optional[int] = None
    schedule_type: Literal["time_based", "usage_based", "combined"] = "time_based"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    mileage_interval: Optional[float] = Field(default=None, gt=0)
    hours_interval: Optional[float] = Field(default=None, gt=0)
    default_priority: Priority = "medium"
    assigned_to_id: Optional[int] = None
    is_active: bool = True

    @model_validator(mode="after")
    def _check(self):
        if bool(self.asset_id) == bool(self.category_id):
            raise ValueError("Provide exactly one of asset_id or category_id")
        if self.schedule_type in ("time_based", "combined"):
            if not self.interval_type or not self.start_date:
                raise ValueError("Time-based schedules need interval_type and start_date")
        if self.schedule_type in ("usage_based", "combined"):
            if not self.mileage_interval and not self.hours_interval:
                raise ValueError("Usage-based schedules need mileage_interval or hours_interval")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class ScheduleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    template_id: Optional[int] = None
    interval_type: Optional[IntervalType] = None
    interval_value: Optional[int] = Field(default=None, ge=1, le=1000)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    month_of_year: Optional[int] = Field(default=None, ge=1, le=12)
    lead_time_days: Optional[int] = Field(default=None, ge=0, le=365)
    end_date: Optional[date] = None
    next_due_date: Optional[date] = None
    mileage_interval: Optional[float] = Field(default=None, gt=0)
    hours_interval: Optional[float] = Field(default=None, gt=0)
    default_priority: Optional[Priority] = None
    assigned_to_id: Optional[int] = None
    is_active: Optional[bool] = None


class SchedulePreview(_ScheduleTiming):
    interval_type: IntervalType
    start_date: date
    end_date: Optional[date] = None
    count: int = Field(default=10, ge=1, le=50)


# -----------------------------
# Diagnostics
# -----------------------------
class DetectedDtcIn(BaseModel):
    code: str = Field(min_length=5, max_length=8)
    description: Optional[str] = Field(default=None, max_length=255)
    severity: Optional[Literal["critical", "severe", "moderate", "minor", "unknown"]] = None
    is_pending: bool = False
    is_confirmed: bool = False


class DtcReadRequest(BaseModel):
    raw_response: Optional[str] = Field(default=None, max_length=4000)
    codes: Optional[list[str]] = None
    mileage: Optional[float] = Field(default=None, ge=0)
    auto_process: bool = False

    @model_validator(mode="after")
    def _one_source(self):
        if not self.raw_response and not self.codes:
            raise ValueError("Provide raw_response or codes")
        return self


class DtcProcessRequest(BaseModel):
    dtcs: list[DetectedDtcIn] = Field(min_length=1)


class DtcClearRequest(BaseModel):
    codes: Optional[list[str]] = None


class DtcRuleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    dtc_pattern: str = Field(min_length=1, max_length=64)
    is_regex: bool = False
    should_create_work_order: bool = True
    priority_mapping: Literal["use_severity", "fixed"] = "use_severity"
    fixed_priority: Optional[Priority] = None
    title_template: Optional[str] = Field(default=None, max_length=255)
    description_template: Optional[str] = None
    template_id: Optional[int] = None
    auto_assign_to_id: Optional[int] = None
    position: int = Field(default=0, ge=0)
    is_active: bool = True

    @model_validator(mode="after")
    def _check(self):
        if self.is_regex:
            try:
                re.compile(self.dtc_pattern)
            except re.error as e:
                raise ValueError(f"dtc_pattern is not a valid regular expression: {e}")
        if self.priority_mapping == "fixed" and not self.fixed_priority:
            raise ValueError("fixed_priority is required when priority_mapping is 'fixed'")
        return self


class DtcRuleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    dtc_pattern: Optional[str] = Field(default=None, min_length=1, max_length=64)
    is_regex: Optional[bool] = None
    should_create_work_order: Optional[bool] = None
    priority_mapping: Optional[Literal["use_severity", "fixed"]] = None
    fixed_priority: Optional[Priority] = None
    title_template: Optional[str] = Field(default=None, max_length=255)
    description_template: Optional[str] = None
    template_id: Optional[int] = None
    auto_assign_to_id: Optional[int] = None
    position: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


# -----------------------------
# Geofences
# -----------------------------
class LatLng(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class GeofenceBase(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    geofence_type: Optional[Literal["circle", "polygon"]] = None
    center_latitude: Optional[float] = None
    center_longitude: Optional[float] = None
    radius_meters: Optional[float] = None
    polygon_coordinates: Optional[list[LatLng]] = None
    active_days: Optional[list[int]] = None
    active_start_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    active_end_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    color: Optional[str] = Field(default=None, max_length=16)
    is_active: Optional[bool] = None

    @field_validator("active_days")
    @classmethod
    def _days(cls, v):
        if v is not None:
            if any(d < 0 or d > 6 for d in v):
                raise ValueError("active_days must be 0 (Sunday) to 6 (Saturday)")
            return sorted(set(v))
        return v


class GeofenceCreate(GeofenceBase):
    name: str = Field(min_length=1, max_length=255)
    geofence_type: Literal["circle", "polygon"]

    @model_validator(mode="after")
    def _shape(self):
        check_geofence_shape(self.geofence_type, self.center_latitude, self.center_longitude,
                             self.radius_meters,
                             [p.model_dump() for p in self.polygon_coordinates or []])
        if bool(self.active_start_time) != bool(self.active_end_time):
            raise ValueError("active_start_time and active_end_time must be set together")
        return self


class GeofenceUpdate(GeofenceBase):
    pass


def check_geofence_shape(geofence_type, center_lat, center_lng, radius, coordinates):
    if geofence_type == "circle":
        if not validate_circle(center_lat, center_lng, radius):
            raise ValueError("Circle geofences need a valid centre and a radius between 0 and 100000 metres")
    elif not validate_polygon(coordinates):
        raise ValueError("Polygon geofences need at least 3 valid coordinates")


class AlertSettingsUpdate(BaseModel):
    alert_on_entry: Optional[bool] = None
    alert_on_exit: Optional[bool] = None
    alert_on_after_hours: Optional[bool] = None
    notify_push: Optional[bool] = None
    notify_email: Optional[bool] = None
    notify_user_ids: Optional[list[int]] = None


class LocationCheck(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


# -----------------------------
# Fuel / documents
# -----------------------------
class FuelCreate(BaseModel):
    asset_id: int
    fuel_type: FuelType = "diesel"
    quantity: float = Field(gt=0)
    unit_cost: Optional[float] = Field(default=None, ge=0)
    total_cost: Optional[float] = Field(default=None, ge=0)
    odometer: Optional[float] = Field(default=None, ge=0)
    engine_hours: Optional[float] = Field(default=None, ge=0)
    vendor: Optional[str] = Field(default=None, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None
    transaction_date: date = Field(default_factory=date.today)


class FuelUpdate(BaseModel):
    fuel_type: Optional[FuelType] = None
    quantity: Optional[float] = Field(default=None, gt=0)
    unit_cost: Optional[float] = Field(default=None, ge=0)
    total_cost: Optional[float] = Field(default=None, ge=0)
    odometer: Optional[float] = Field(default=None, ge=0)
    engine_hours: Optional[float] = Field(default=None, ge=0)
    vendor: Optional[str] = Field(default=None, max_length=255)
    location: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None
    transaction_date: Optional[date] = None


class DocumentMeta(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category: DocumentCategory = "other"
    expiry_date: Optional[date] = None
    entity_type: Optional[DocumentEntityType] = None
    entity_id: Optional[int] = None

    @model_validator(mode="after")
    def _entity_pair(self):
        if bool(self.entity_type) != bool(self.entity_id):
            raise ValueError("entity_type and entity_id must be provided together")
        return self


class DocumentUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[DocumentCategory] = None
    expiry_date: Optional[date] = None
