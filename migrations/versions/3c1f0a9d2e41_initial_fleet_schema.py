"""initial fleet schema

Revision ID: 3c1f0a9d2e41
Revises:
Create Date: 2026-10-18 09:12:44.103261

"""
from alembic import op
import sqlalchemy as sa

revision = "3c1f0a9d2e41"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, **kw):
    return sa.Column(name, sa.DateTime(timezone=True), **kw)


def _org_fk(nullable=False):
    return sa.Column("organisation_id", sa.Integer(), sa.ForeignKey("organisations.id"), nullable=nullable)


def _user_fk(name):
    return sa.Column(name, sa.Integer(), sa.ForeignKey("users.id"), nullable=True)


def upgrade():
    # ---- tenancy / users / audit
    op.create_table(
        "organisations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        _ts("created_at"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("failed_login_attempts", sa.Integer(), nullable=False),
        _ts("locked_until"),
        _ts("last_login_at"),
        _ts("created_at"),
    )
    op.create_index("ix_users_organisation_id", "users", ["organisation_id"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        _user_fk("user_id"),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Integer()),
        sa.Column("old_values", sa.JSON()),
        sa.Column("new_values", sa.JSON()),
        sa.Column("ip_address", sa.String(length=64)),
        sa.Column("user_agent", sa.String(length=512)),
        _ts("created_at"),
    )
    op.create_index("ix_audit_log_organisation_id", "audit_log", ["organisation_id"])
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])

    # ---- assets
    op.create_table(
        "asset_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("asset_categories.id"), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_asset_categories_organisation_id", "asset_categories", ["organisation_id"])

    op.create_table(
        "assets",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("asset_number", sa.String(length=50), nullable=False),
        sa.Column("vin", sa.String(length=17)),
        sa.Column("make", sa.String(length=100)),
        sa.Column("model", sa.String(length=100)),
        sa.Column("year", sa.Integer()),
        sa.Column("license_plate", sa.String(length=20)),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("asset_categories.id"), nullable=True),
        sa.Column("mileage", sa.Float()),
        sa.Column("operational_hours", sa.Float()),
        sa.Column("description", sa.Text()),
        sa.Column("is_archived", sa.Boolean(), nullable=False),
        _ts("archived_at"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("organisation_id", "asset_number", name="uq_asset_number"),
    )
    op.create_index("ix_assets_organisation_id", "assets", ["organisation_id"])

    op.create_table(
        "asset_locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("speed", sa.Float()),
        sa.Column("heading", sa.Float()),
        sa.Column("accuracy", sa.Float()),
        sa.Column("source", sa.String(length=32)),
        _ts("recorded_at"),
    )
    op.create_index("ix_asset_locations_asset_id", "asset_locations", ["asset_id"])
    op.create_index("ix_asset_locations_recorded_at", "asset_locations", ["recorded_at"])

    # ---- task templates / work orders / parts
    op.create_table(
        "task_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.String(length=100)),
        sa.Column("estimated_duration_minutes", sa.Integer()),
        sa.Column("checklist_items", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_task_templates_organisation_id", "task_templates", ["organisation_id"])

    op.create_table(
        "work_orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("work_order_number", sa.String(length=32), nullable=False),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("template_id", sa.Integer(), sa.ForeignKey("task_templates.id"), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("priority", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        _user_fk("assigned_to_id"),
        _user_fk("created_by_id"),
        sa.Column("due_date", sa.Date()),
        _ts("started_at"),
        _ts("completed_at"),
        _ts("closed_at"),
        sa.Column("completion_notes", sa.Text()),
        sa.Column("estimated_hours", sa.Float()),
        sa.Column("actual_hours", sa.Float()),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("organisation_id", "work_order_number", name="uq_work_order_number"),
    )
    op.create_index("ix_work_orders_organisation_id", "work_orders", ["organisation_id"])
    op.create_index("ix_work_orders_asset_id", "work_orders", ["asset_id"])

    op.create_table(
        "work_order_status_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("work_order_id", sa.Integer(), sa.ForeignKey("work_orders.id"), nullable=False),
        sa.Column("from_status", sa.String(length=32)),
        sa.Column("to_status", sa.String(length=32), nullable=False),
        _user_fk("changed_by_id"),
        sa.Column("notes", sa.Text()),
        _ts("changed_at"),
    )
    op.create_index("ix_work_order_status_history_work_order_id", "work_order_status_history", ["work_order_id"])

    op.create_table(
        "work_order_checklist_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("work_order_id", sa.Integer(), sa.ForeignKey("work_orders.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("is_required", sa.Boolean(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False),
        _ts("completed_at"),
        _user_fk("completed_by_id"),
        sa.Column("notes", sa.Text()),
    )
    op.create_index("ix_work_order_checklist_items_work_order_id", "work_order_checklist_items", ["work_order_id"])

    op.create_table(
        "parts",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("sku", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.String(length=100)),
        sa.Column("unit", sa.String(length=16), nullable=False),
        sa.Column("quantity_in_stock", sa.Float(), nullable=False),
        sa.Column("minimum_stock", sa.Float(), nullable=False),
        sa.Column("reorder_threshold", sa.Float()),
        sa.Column("reorder_quantity", sa.Float()),
        sa.Column("unit_cost", sa.Float()),
        sa.Column("supplier", sa.String(length=255)),
        sa.Column("location", sa.String(length=255)),
        sa.Column("is_archived", sa.Boolean(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("organisation_id", "sku", name="uq_part_sku"),
    )
    op.create_index("ix_parts_organisation_id", "parts", ["organisation_id"])

    op.create_table(
        "work_order_parts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("work_order_id", sa.Integer(), sa.ForeignKey("work_orders.id"), nullable=False),
        sa.Column("part_id", sa.Integer(), sa.ForeignKey("parts.id"), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit_cost", sa.Float()),
        _user_fk("added_by_id"),
        _ts("created_at"),
    )
    op.create_index("ix_work_order_parts_work_order_id", "work_order_parts", ["work_order_id"])

    op.create_table(
        "part_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("part_id", sa.Integer(), sa.ForeignKey("parts.id"), nullable=False),
        sa.Column("work_order_id", sa.Integer(), sa.ForeignKey("work_orders.id"), nullable=True),
        sa.Column("movement_type", sa.String(length=32), nullable=False),
        sa.Column("quantity_change", sa.Float(), nullable=False),
        sa.Column("previous_quantity", sa.Float(), nullable=False),
        sa.Column("new_quantity", sa.Float(), nullable=False),
        sa.Column("unit_cost", sa.Float()),
        sa.Column("notes", sa.Text()),
        _user_fk("user_id"),
        _ts("created_at"),
    )
    op.create_index("ix_part_movements_part_id", "part_movements", ["part_id"])
    op.create_index("ix_part_movements_created_at", "part_movements", ["created_at"])

    # ---- inspections
    op.create_table(
        "inspections",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("template_id", sa.Integer(), sa.ForeignKey("task_templates.id"), nullable=False),
        sa.Column("inspector_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("initiation_method", sa.String(length=16), nullable=False),
        sa.Column("overall_result", sa.String(length=16)),
        sa.Column("latitude", sa.Float()),
        sa.Column("longitude", sa.Float()),
        sa.Column("notes", sa.Text()),
        sa.Column("signature_data", sa.Text()),
        sa.Column("declaration_accepted", sa.Boolean(), nullable=False),
        _ts("started_at"),
        _ts("completed_at"),
    )
    op.create_index("ix_inspections_organisation_id", "inspections", ["organisation_id"])
    op.create_index("ix_inspections_asset_id", "inspections", ["asset_id"])

    op.create_table(
        "inspection_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("inspection_id", sa.Integer(), sa.ForeignKey("inspections.id"), nullable=False),
        sa.Column("checklist_item_id", sa.String(length=64)),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("is_required", sa.Boolean(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("result", sa.String(length=16), nullable=False),
        sa.Column("value_numeric", sa.Float()),
        sa.Column("value_text", sa.Text()),
        sa.Column("notes", sa.Text()),
        _ts("checked_at"),
    )
    op.create_index("ix_inspection_items_inspection_id", "inspection_items", ["inspection_id"])

    # ---- custom forms
    op.create_table(
        "custom_forms",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.String(length=100)),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("fields", sa.JSON(), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("current_version", sa.Integer(), nullable=False),
        _user_fk("created_by_id"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_custom_forms_organisation_id", "custom_forms", ["organisation_id"])

    op.create_table(
        "custom_form_versions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("form_id", sa.Integer(), sa.ForeignKey("custom_forms.id"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("fields", sa.JSON(), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("changelog", sa.Text()),
        _user_fk("published_by_id"),
        _ts("published_at"),
        sa.UniqueConstraint("form_id", "version", name="uq_form_version"),
    )
    op.create_index("ix_custom_form_versions_form_id", "custom_form_versions", ["form_id"])

    op.create_table(
        "custom_form_submissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("form_id", sa.Integer(), sa.ForeignKey("custom_forms.id"), nullable=False),
        sa.Column("version_id", sa.Integer(), sa.ForeignKey("custom_form_versions.id"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("responses", sa.JSON(), nullable=False),
        sa.Column("context_type", sa.String(length=32)),
        sa.Column("context_id", sa.Integer()),
        sa.Column("notes", sa.Text()),
        _user_fk("submitted_by_id"),
        _ts("started_at"),
        _ts("submitted_at"),
        _user_fk("reviewed_by_id"),
        _ts("reviewed_at"),
        sa.Column("review_notes", sa.Text()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_custom_form_submissions_organisation_id", "custom_form_submissions", ["organisation_id"])
    op.create_index("ix_custom_form_submissions_form_id", "custom_form_submissions", ["form_id"])
    op.create_index("ix_custom_form_submissions_created_at", "custom_form_submissions", ["created_at"])

    op.create_table(
        "custom_form_assignments",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("form_id", sa.Integer(), sa.ForeignKey("custom_forms.id"), nullable=False),
        sa.Column("target_type", sa.String(length=32), nullable=False),
        sa.Column("asset_category_id", sa.Integer(), sa.ForeignKey("asset_categories.id"), nullable=True),
        sa.Column("is_required", sa.Boolean(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint("organisation_id", "form_id", "target_type", "asset_category_id",
                            name="uq_form_assignment"),
    )
    op.create_index("ix_custom_form_assignments_organisation_id", "custom_form_assignments", ["organisation_id"])

    # ---- maintenance schedules
    op.create_table(
        "maintenance_schedules",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("asset_categories.id"), nullable=True),
        sa.Column("template_id", sa.Integer(), sa.ForeignKey("task_templates.id"), nullable=True),
        sa.Column("schedule_type", sa.String(length=16), nullable=False),
        sa.Column("interval_type", sa.String(length=16)),
        sa.Column("interval_value", sa.Integer(), nullable=False),
        sa.Column("day_of_week", sa.Integer()),
        sa.Column("day_of_month", sa.Integer()),
        sa.Column("month_of_year", sa.Integer()),
        sa.Column("start_date", sa.Date()),
        sa.Column("end_date", sa.Date()),
        sa.Column("next_due_date", sa.Date()),
        sa.Column("lead_time_days", sa.Integer(), nullable=False),
        sa.Column("mileage_interval", sa.Float()),
        sa.Column("hours_interval", sa.Float()),
        sa.Column("default_priority", sa.String(length=16), nullable=False),
        _user_fk("assigned_to_id"),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False),
        _ts("last_generated_at"),
        _user_fk("created_by_id"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_maintenance_schedules_organisation_id", "maintenance_schedules", ["organisation_id"])

    op.create_table(
        "maintenance_schedule_work_orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("schedule_id", sa.Integer(), sa.ForeignKey("maintenance_schedules.id"), nullable=False),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("work_order_id", sa.Integer(), sa.ForeignKey("work_orders.id"), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("trigger", sa.String(length=16), nullable=False),
        sa.Column("mileage_at_generation", sa.Float()),
        sa.Column("hours_at_generation", sa.Float()),
        _ts("created_at"),
        sa.UniqueConstraint("schedule_id", "asset_id", "scheduled_date", name="uq_schedule_asset_date"),
    )
    op.create_index("ix_maintenance_schedule_work_orders_schedule_id",
                    "maintenance_schedule_work_orders", ["schedule_id"])

    # ---- OBD-II diagnostics
    op.create_table(
        "diagnostic_codes",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("code", sa.String(length=8), nullable=False),
        sa.Column("description", sa.String(length=255)),
        sa.Column("system", sa.String(length=32)),
        sa.Column("severity", sa.String(length=16)),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("occurrence_count", sa.Integer(), nullable=False),
        sa.Column("raw_response", sa.Text()),
        sa.Column("mileage_at_read", sa.Float()),
        _ts("first_seen_at"),
        _ts("last_seen_at"),
        _ts("cleared_at"),
        _user_fk("cleared_by_id"),
    )
    op.create_index("ix_diagnostic_codes_asset_id", "diagnostic_codes", ["asset_id"])

    op.create_table(
        "dtc_work_order_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("dtc_pattern", sa.String(length=64), nullable=False),
        sa.Column("is_regex", sa.Boolean(), nullable=False),
        sa.Column("should_create_work_order", sa.Boolean(), nullable=False),
        sa.Column("priority_mapping", sa.String(length=16), nullable=False),
        sa.Column("fixed_priority", sa.String(length=16)),
        sa.Column("title_template", sa.String(length=255)),
        sa.Column("description_template", sa.Text()),
        sa.Column("template_id", sa.Integer(), sa.ForeignKey("task_templates.id"), nullable=True),
        _user_fk("auto_assign_to_id"),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_dtc_work_order_rules_organisation_id", "dtc_work_order_rules", ["organisation_id"])

    op.create_table(
        "dtc_work_order_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("dtc_code", sa.String(length=8), nullable=False),
        sa.Column("rule_id", sa.Integer(), sa.ForeignKey("dtc_work_order_rules.id"), nullable=True),
        sa.Column("work_order_id", sa.Integer(), sa.ForeignKey("work_orders.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _ts("resolved_at"),
        _ts("created_at"),
    )
    op.create_index("ix_dtc_work_order_history_asset_id", "dtc_work_order_history", ["asset_id"])

    # ---- geofencing
    op.create_table(
        "geofences",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("geofence_type", sa.String(length=16), nullable=False),
        sa.Column("center_latitude", sa.Float()),
        sa.Column("center_longitude", sa.Float()),
        sa.Column("radius_meters", sa.Float()),
        sa.Column("polygon_coordinates", sa.JSON()),
        sa.Column("active_days", sa.JSON()),
        sa.Column("active_start_time", sa.String(length=5)),
        sa.Column("active_end_time", sa.String(length=5)),
        sa.Column("color", sa.String(length=16)),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _user_fk("created_by_id"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_geofences_organisation_id", "geofences", ["organisation_id"])

    op.create_table(
        "geofence_alert_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("geofence_id", sa.Integer(), sa.ForeignKey("geofences.id"), nullable=False, unique=True),
        sa.Column("alert_on_entry", sa.Boolean(), nullable=False),
        sa.Column("alert_on_exit", sa.Boolean(), nullable=False),
        sa.Column("alert_on_after_hours", sa.Boolean(), nullable=False),
        sa.Column("notify_push", sa.Boolean(), nullable=False),
        sa.Column("notify_email", sa.Boolean(), nullable=False),
        sa.Column("notify_user_ids", sa.JSON(), nullable=False),
        _ts("updated_at"),
    )

    op.create_table(
        "geofence_alerts",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("geofence_id", sa.Integer(), sa.ForeignKey("geofences.id"), nullable=False),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("alert_type", sa.String(length=32), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("is_acknowledged", sa.Boolean(), nullable=False),
        _user_fk("acknowledged_by_id"),
        _ts("acknowledged_at"),
        _ts("created_at"),
    )
    op.create_index("ix_geofence_alerts_organisation_id", "geofence_alerts", ["organisation_id"])
    op.create_index("ix_geofence_alerts_created_at", "geofence_alerts", ["created_at"])

    op.create_table(
        "asset_geofence_state",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("geofence_id", sa.Integer(), sa.ForeignKey("geofences.id"), nullable=False),
        sa.Column("is_inside", sa.Boolean(), nullable=False),
        _ts("updated_at"),
        sa.UniqueConstraint("asset_id", "geofence_id", name="uq_asset_geofence_state"),
    )

    # ---- fuel / documents
    op.create_table(
        "fuel_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("asset_id", sa.Integer(), sa.ForeignKey("assets.id"), nullable=False),
        sa.Column("fuel_type", sa.String(length=16), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit_cost", sa.Float()),
        sa.Column("total_cost", sa.Float()),
        sa.Column("odometer", sa.Float()),
        sa.Column("engine_hours", sa.Float()),
        sa.Column("vendor", sa.String(length=255)),
        sa.Column("location", sa.String(length=255)),
        sa.Column("notes", sa.Text()),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        _user_fk("recorded_by_id"),
        _ts("created_at"),
    )
    op.create_index("ix_fuel_transactions_organisation_id", "fuel_transactions", ["organisation_id"])
    op.create_index("ix_fuel_transactions_asset_id", "fuel_transactions", ["asset_id"])

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        _org_fk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("category", sa.String(length=64), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("stored_name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("mime_type", sa.String(length=128)),
        sa.Column("file_size", sa.Integer()),
        sa.Column("expiry_date", sa.Date()),
        sa.Column("entity_type", sa.String(length=32)),
        sa.Column("entity_id", sa.Integer()),
        _user_fk("uploaded_by_id"),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_documents_organisation_id", "documents", ["organisation_id"])


def downgrade():
    for table in (
        "documents", "fuel_transactions",
        "asset_geofence_state", "geofence_alerts", "geofence_alert_settings", "geofences",
        "dtc_work_order_history", "dtc_work_order_rules", "diagnostic_codes",
        "maintenance_schedule_work_orders", "maintenance_schedules",
        "custom_form_assignments", "custom_form_submissions", "custom_form_versions", "custom_forms",
        "inspection_items", "inspections",
        "part_movements", "work_order_parts", "parts",
        "work_order_checklist_items", "work_order_status_history", "work_orders", "task_templates",
        "asset_locations", "assets", "asset_categories",
        "audit_log", "users", "organisations",
    ):
        op.drop_table(table)
