from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import UniqueConstraint, event
from werkzeug.security import generate_password_hash, check_password_hash


db = SQLAlchemy()


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def isoformat(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return value.isoformat()


# -----------------------------
# Tenancy / users / audit
# -----------------------------
class Organisation(db.Model):
    __tablename__ = 'organisations'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f'<Organisation {self.name}>'


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False, default='technician')
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    failed_login_attempts = db.Column(db.Integer, nullable=False, default=0)
    locked_until = db.Column(db.DateTime(timezone=True), nullable=True)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    organisation = db.relationship('Organisation')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def is_locked(self, now=None):
        if self.locked_until is None:
            return False
        return as_utc(self.locked_until) > (now or utcnow())

    def __repr__(self):
        return f'<User {self.email} ({self.role})>'


class AuditLog(db.Model):
    __tablename__ = 'audit_log'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    action = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    old_values = db.Column(db.JSON)
    new_values = db.Column(db.JSON)
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(512))
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, index=True)

    user = db.relationship('User')


# -----------------------------
# Assets
# -----------------------------
class AssetCategory(db.Model):
    __tablename__ = 'asset_categories'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    parent_id = db.Column(db.Integer, db.ForeignKey('asset_categories.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    parent = db.relationship('AssetCategory', remote_side=[id], backref='children')


class Asset(db.Model):
    __tablename__ = 'assets'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    asset_number = db.Column(db.String(50), nullable=False)
    vin = db.Column(db.String(17))
    make = db.Column(db.String(100))
    model = db.Column(db.String(100))
    year = db.Column(db.Integer)
    license_plate = db.Column(db.String(20))
    status = db.Column(db.String(32), nullable=False, default='active')
    category_id = db.Column(db.Integer, db.ForeignKey('asset_categories.id'), nullable=True)
    mileage = db.Column(db.Float)
    operational_hours = db.Column(db.Float)
    description = db.Column(db.Text)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    archived_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    category = db.relationship('AssetCategory')

    __table_args__ = (UniqueConstraint('organisation_id', 'asset_number', name='uq_asset_number'),)

    def __repr__(self):
        return f'<Asset {self.asset_number}>'


class LocationRecord(db.Model):
    __tablename__ = 'asset_locations'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False)
    asset_id = db.Column(db.Integer, db.ForeignKey('assets.id'), nullable=False, index=True)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    speed = db.Column(db.Float)
    heading = db.Column(db.Float)
    accuracy = db.Column(db.Float)
    source = db.Column(db.String(32), default='gps')
    recorded_at = db.Column(db.DateTime(timezone=True), default=utcnow, index=True)


# -----------------------------
# Task templates / work orders
# -----------------------------
class TaskTemplate(db.Model):
    __tablename__ = 'task_templates'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(100))
    estimated_duration_minutes = db.Column(db.Integer)
    checklist_items = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class WorkOrder(db.Model):
    __tablename__ = 'work_orders'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    work_order_number = db.Column(db.String(32), nullable=False)
    asset_id = db.Column(db.Integer, db.ForeignKey('assets.id'), nullable=False, index=True)
    template_id = db.Column(db.Integer, db.ForeignKey('task_templates.id'), nullable=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    priority = db.Column(db.String(16), nullable=False, default='medium')
    status = db.Column(db.String(32), nullable=False, default='draft')
    source = db.Column(db.String(32), nullable=False, default='manual')
    assigned_to_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    due_date = db.Column(db.Date)
    started_at = db.Column(db.DateTime(timezone=True))
    completed_at = db.Column(db.DateTime(timezone=True))
    closed_at = db.Column(db.DateTime(timezone=True))
    completion_notes = db.Column(db.Text)
    estimated_hours = db.Column(db.Float)
    actual_hours = db.Column(db.Float)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    asset = db.relationship('Asset')
    assigned_to = db.relationship('User', foreign_keys=[assigned_to_id])
    checklist_items = db.relationship(
        'WorkOrderChecklistItem', backref='work_order', cascade='all, delete-orphan',
        order_by='WorkOrderChecklistItem.position',
    )
    status_history = db.relationship(
        'WorkOrderStatusHistory', backref='work_order', cascade='all, delete-orphan',
        order_by='WorkOrderStatusHistory.id',
    )
    parts = db.relationship('WorkOrderPart', backref='work_order', cascade='all, delete-orphan')

    __table_args__ = (UniqueConstraint('organisation_id', 'work_order_number', name='uq_work_order_number'),)

    def __repr__(self):
        return f'<WorkOrder {self.work_order_number} {self.status}>'


class WorkOrderStatusHistory(db.Model):
    __tablename__ = 'work_order_status_history'

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(db.Integer, db.ForeignKey('work_orders.id'), nullable=False, index=True)
    from_status = db.Column(db.String(32))
    to_status = db.Column(db.String(32), nullable=False)
    changed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    notes = db.Column(db.Text)
    changed_at = db.Column(db.DateTime(timezone=True), default=utcnow)


class WorkOrderChecklistItem(db.Model):
    __tablename__ = 'work_order_checklist_items'

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(db.Integer, db.ForeignKey('work_orders.id'), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True))
    completed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    notes = db.Column(db.Text)


class WorkOrderPart(db.Model):
    __tablename__ = 'work_order_parts'

    id = db.Column(db.Integer, primary_key=True)
    work_order_id = db.Column(db.Integer, db.ForeignKey('work_orders.id'), nullable=False, index=True)
    part_id = db.Column(db.Integer, db.ForeignKey('parts.id'), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    unit_cost = db.Column(db.Float)
    added_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    part = db.relationship('Part')


# -----------------------------
# Parts inventory
# -----------------------------
class Part(db.Model):
    __tablename__ = 'parts'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(100))
    unit = db.Column(db.String(16), nullable=False, default='each')
    quantity_in_stock = db.Column(db.Float, nullable=False, default=0)
    minimum_stock = db.Column(db.Float, nullable=False, default=0)
    reorder_threshold = db.Column(db.Float)
    reorder_quantity = db.Column(db.Float)
    unit_cost = db.Column(db.Float)
    supplier = db.Column(db.String(255))
    location = db.Column(db.String(255))
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (UniqueConstraint('organisation_id', 'sku', name='uq_part_sku'),)

    def __repr__(self):
        return f'<Part {self.sku} qty={self.quantity_in_stock}>'


class PartMovement(db.Model):
    __tablename__ = 'part_movements'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False)
    part_id = db.Column(db.Integer, db.ForeignKey('parts.id'), nullable=False, index=True)
    work_order_id = db.Column(db.Integer, db.ForeignKey('work_orders.id'), nullable=True)
    movement_type = db.Column(db.String(32), nullable=False)
    quantity_change = db.Column(db.Float, nullable=False)
    previous_quantity = db.Column(db.Float, nullable=False)
    new_quantity = db.Column(db.Float, nullable=False)
    unit_cost = db.Column(db.Float)
    notes = db.Column(db.Text)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, index=True)


# -----------------------------
# Inspections
# -----------------------------
class Inspection(db.Model):
    __tablename__ = 'inspections'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    asset_id = db.Column(db.Integer, db.ForeignKey('assets.id'), nullable=False, index=True)
    template_id = db.Column(db.Integer, db.ForeignKey('task_templates.id'), nullable=False)
    inspector_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    status = db.Column(db.String(32), nullable=False, default='in_progress')
    initiation_method = db.Column(db.String(16), nullable=False, default='manual')
    overall_result = db.Column(db.String(16))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    notes = db.Column(db.Text)
    signature_data = db.Column(db.Text)
    declaration_accepted = db.Column(db.Boolean, nullable=False, default=False)
    started_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True))

    asset = db.relationship('Asset')
    template = db.relationship('TaskTemplate')
    inspector = db.relationship('User')
    items = db.relationship(
        'InspectionItem', backref='inspection', cascade='all, delete-orphan',
        order_by='InspectionItem.position',
    )


class InspectionItem(db.Model):
    __tablename__ = 'inspection_items'

    id = db.Column(db.Integer, primary_key=True)
    inspection_id = db.Column(db.Integer, db.ForeignKey('inspections.id'), nullable=False, index=True)
    checklist_item_id = db.Column(db.String(64))
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    result = db.Column(db.String(16), nullable=False, default='pending')
    value_numeric = db.Column(db.Float)
    value_text = db.Column(db.Text)
    notes = db.Column(db.Text)
    checked_at = db.Column(db.DateTime(timezone=True))


# -----------------------------
# Custom forms
# -----------------------------
class CustomForm(db.Model):
    __tablename__ = 'custom_forms'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(100))
    status = db.Column(db.String(16), nullable=False, default='draft')
    fields = db.Column(db.JSON, nullable=False, default=list)
    settings = db.Column(db.JSON, nullable=False, default=dict)
    current_version = db.Column(db.Integer, nullable=False, default=0)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    versions = db.relationship(
        'CustomFormVersion', backref='form', order_by='CustomFormVersion.version',
        passive_deletes=True,
    )

    def __repr__(self):
        return f'<CustomForm {self.name} v{self.current_version}>'


class CustomFormVersion(db.Model):
    """Frozen snapshot of a form; rows are never updated once written."""
    __tablename__ = 'custom_form_versions'

    id = db.Column(db.Integer, primary_key=True)
    form_id = db.Column(db.Integer, db.ForeignKey('custom_forms.id'), nullable=False, index=True)
    version = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    fields = db.Column(db.JSON, nullable=False)
    settings = db.Column(db.JSON, nullable=False)
    changelog = db.Column(db.Text)
    published_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    published_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    __table_args__ = (UniqueConstraint('form_id', 'version', name='uq_form_version'),)


class ImmutableVersionError(RuntimeError):
    pass


@event.listens_for(CustomFormVersion, 'before_update')
def _block_version_update(mapper, connection, target):
    raise ImmutableVersionError(
        f"Form version {target.form_id}/{target.version} is published and cannot be modified"
    )


@event.listens_for(CustomFormVersion, 'before_delete')
def _block_version_delete(mapper, connection, target):
    raise ImmutableVersionError(
        f"Form version {target.form_id}/{target.version} is published and cannot be deleted"
    )


class CustomFormSubmission(db.Model):
    __tablename__ = 'custom_form_submissions'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    form_id = db.Column(db.Integer, db.ForeignKey('custom_forms.id'), nullable=False, index=True)
    version_id = db.Column(db.Integer, db.ForeignKey('custom_form_versions.id'), nullable=False)
    status = db.Column(db.String(16), nullable=False, default='draft')
    responses = db.Column(db.JSON, nullable=False, default=dict)
    context_type = db.Column(db.String(32))
    context_id = db.Column(db.Integer)
    notes = db.Column(db.Text)
    submitted_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    submitted_at = db.Column(db.DateTime(timezone=True))
    reviewed_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True))
    review_notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    form = db.relationship('CustomForm')
    version = db.relationship('CustomFormVersion')
    submitted_by = db.relationship('User', foreign_keys=[submitted_by_id])


class CustomFormAssignment(db.Model):
    __tablename__ = 'custom_form_assignments'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    form_id = db.Column(db.Integer, db.ForeignKey('custom_forms.id'), nullable=False)
    target_type = db.Column(db.String(32), nullable=False)
    asset_category_id = db.Column(db.Integer, db.ForeignKey('asset_categories.id'), nullable=True)
    is_required = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    form = db.relationship('CustomForm')

    __table_args__ = (
        UniqueConstraint('organisation_id', 'form_id', 'target_type', 'asset_category_id',
                         name='uq_form_assignment'),
    )


# -----------------------------
# Maintenance schedules
# -----------------------------
class MaintenanceSchedule(db.Model):
    __tablename__ = 'maintenance_schedules'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    asset_id = db.Column(db.Integer, db.ForeignKey('assets.id'), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey('asset_categories.id'), nullable=True)
    template_id = db.Column(db.Integer, db.ForeignKey('task_templates.id'), nullable=True)
    schedule_type = db.Column(db.String(16), nullable=False, default='time_based')
    interval_type = db.Column(db.String(16), nullable=True)
    interval_value = db.Column(db.Integer, nullable=False, default=1)
    day_of_week = db.Column(db.Integer)
    day_of_month = db.Column(db.Integer)
    month_of_year = db.Column(db.Integer)
    start_date = db.Column(db.Date)
    end_date = db.Column(db.Date)
    next_due_date = db.Column(db.Date)
    lead_time_days = db.Column(db.Integer, nullable=False, default=0)
    mileage_interval = db.Column(db.Float)
    hours_interval = db.Column(db.Float)
    default_priority = db.Column(db.String(16), nullable=False, default='medium')
    assigned_to_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    last_generated_at = db.Column(db.DateTime(timezone=True))
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    template = db.relationship('TaskTemplate')


class MaintenanceScheduleWorkOrder(db.Model):
    """One row per work order a schedule produced for an asset."""
    __tablename__ = 'maintenance_schedule_work_orders'

    id = db.Column(db.Integer, primary_key=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey('maintenance_schedules.id'), nullable=False, index=True)
    asset_id = db.Column(db.Integer, db.ForeignKey('assets.id'), nullable=False)
    work_order_id = db.Column(db.Integer, db.ForeignKey('work_orders.id'), nullable=False)
    scheduled_date = db.Column(db.Date, nullable=False)
    trigger = db.Column(db.String(16), nullable=False, default='time')
    mileage_at_generation = db.Column(db.Float)
    hours_at_generation = db.Column(db.Float)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint('schedule_id', 'asset_id', 'scheduled_date', name='uq_schedule_asset_date'),
    )


# -----------------------------
# OBD-II diagnostics
# -----------------------------
class DiagnosticCode(db.Model):
    __tablename__ = 'diagnostic_codes'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False)
    asset_id = db.Column(db.Integer, db.ForeignKey('assets.id'), nullable=False, index=True)
    code = db.Column(db.String(8), nullable=False)
    description = db.Column(db.String(255))
    system = db.Column(db.String(32))
    severity = db.Column(db.String(16))
    status = db.Column(db.String(16), nullable=False, default='active')
    occurrence_count = db.Column(db.Integer, nullable=False, default=1)
    raw_response = db.Column(db.Text)
    mileage_at_read = db.Column(db.Float)
    first_seen_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    last_seen_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    cleared_at = db.Column(db.DateTime(timezone=True))
    cleared_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)


class DtcWorkOrderRule(db.Model):
    __tablename__ = 'dtc_work_order_rules'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    dtc_pattern = db.Column(db.String(64), nullable=False)
    is_regex = db.Column(db.Boolean, nullable=False, default=False)
    should_create_work_order = db.Column(db.Boolean, nullable=False, default=True)
    priority_mapping = db.Column(db.String(16), nullable=False, default='use_severity')
    fixed_priority = db.Column(db.String(16))
    title_template = db.Column(db.String(255))
    description_template = db.Column(db.Text)
    template_id = db.Column(db.Integer, db.ForeignKey('task_templates.id'), nullable=True)
    auto_assign_to_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    template = db.relationship('TaskTemplate')


class DtcWorkOrderHistory(db.Model):
    __tablename__ = 'dtc_work_order_history'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False)
    asset_id = db.Column(db.Integer, db.ForeignKey('assets.id'), nullable=False, index=True)
    dtc_code = db.Column(db.String(8), nullable=False)
    rule_id = db.Column(db.Integer, db.ForeignKey('dtc_work_order_rules.id'), nullable=True)
    work_order_id = db.Column(db.Integer, db.ForeignKey('work_orders.id'), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    resolved_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)


# -----------------------------
# Geofencing
# -----------------------------
class Geofence(db.Model):
    __tablename__ = 'geofences'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    geofence_type = db.Column(db.String(16), nullable=False)
    center_latitude = db.Column(db.Float)
    center_longitude = db.Column(db.Float)
    radius_meters = db.Column(db.Float)
    polygon_coordinates = db.Column(db.JSON)
    active_days = db.Column(db.JSON)
    active_start_time = db.Column(db.String(5))
    active_end_time = db.Column(db.String(5))
    color = db.Column(db.String(16))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    alert_settings = db.relationship('GeofenceAlertSettings', uselist=False, backref='geofence',
                                     cascade='all, delete-orphan')


class GeofenceAlertSettings(db.Model):
    __tablename__ = 'geofence_alert_settings'

    id = db.Column(db.Integer, primary_key=True)
    geofence_id = db.Column(db.Integer, db.ForeignKey('geofences.id'), nullable=False, unique=True)
    alert_on_entry = db.Column(db.Boolean, nullable=False, default=True)
    alert_on_exit = db.Column(db.Boolean, nullable=False, default=True)
    alert_on_after_hours = db.Column(db.Boolean, nullable=False, default=False)
    notify_push = db.Column(db.Boolean, nullable=False, default=True)
    notify_email = db.Column(db.Boolean, nullable=False, default=False)
    notify_user_ids = db.Column(db.JSON, nullable=False, default=list)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class GeofenceAlert(db.Model):
    __tablename__ = 'geofence_alerts'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    geofence_id = db.Column(db.Integer, db.ForeignKey('geofences.id'), nullable=False)
    asset_id = db.Column(db.Integer, db.ForeignKey('assets.id'), nullable=False)
    alert_type = db.Column(db.String(32), nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    is_acknowledged = db.Column(db.Boolean, nullable=False, default=False)
    acknowledged_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    acknowledged_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, index=True)

    geofence = db.relationship('Geofence')
    asset = db.relationship('Asset')


class AssetGeofenceState(db.Model):
    __tablename__ = 'asset_geofence_state'

    id = db.Column(db.Integer, primary_key=True)
    asset_id = db.Column(db.Integer, db.ForeignKey('assets.id'), nullable=False)
    geofence_id = db.Column(db.Integer, db.ForeignKey('geofences.id'), nullable=False)
    is_inside = db.Column(db.Boolean, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (UniqueConstraint('asset_id', 'geofence_id', name='uq_asset_geofence_state'),)


# -----------------------------
# Fuel / documents
# -----------------------------
class FuelTransaction(db.Model):
    __tablename__ = 'fuel_transactions'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    asset_id = db.Column(db.Integer, db.ForeignKey('assets.id'), nullable=False, index=True)
    fuel_type = db.Column(db.String(16), nullable=False, default='diesel')
    quantity = db.Column(db.Float, nullable=False)
    unit_cost = db.Column(db.Float)
    total_cost = db.Column(db.Float)
    odometer = db.Column(db.Float)
    engine_hours = db.Column(db.Float)
    vendor = db.Column(db.String(255))
    location = db.Column(db.String(255))
    notes = db.Column(db.Text)
    transaction_date = db.Column(db.Date, nullable=False)
    recorded_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    asset = db.relationship('Asset')


class Document(db.Model):
    __tablename__ = 'documents'

    id = db.Column(db.Integer, primary_key=True)
    organisation_id = db.Column(db.Integer, db.ForeignKey('organisations.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(64), nullable=False, default='other')
    file_name = db.Column(db.String(255), nullable=False)
    stored_name = db.Column(db.String(255), nullable=False, unique=True)
    mime_type = db.Column(db.String(128))
    file_size = db.Column(db.Integer)
    expiry_date = db.Column(db.Date)
    entity_type = db.Column(db.String(32))
    entity_id = db.Column(db.Integer)
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)
