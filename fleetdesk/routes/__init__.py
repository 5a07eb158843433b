# fleetdesk/routes/__init__.py
from .auth import auth_bp
from .admin import admin_bp
from .asset_categories import asset_categories_bp, init_cache
from .assets import assets_bp
from .task_templates import task_templates_bp
from .work_orders import work_orders_bp
from .parts import parts_bp
from .inspections import inspections_bp
from .custom_forms import custom_forms_bp
from .form_submissions import form_submissions_bp
from .form_assignments import form_assignments_bp
from .maintenance import maintenance_bp
from .obd import obd_bp
from .geofences import geofences_bp
from .fuel import fuel_bp
from .documents import documents_bp


def register_blueprints(app):
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(asset_categories_bp)
    app.register_blueprint(assets_bp)
    app.register_blueprint(task_templates_bp)
    app.register_blueprint(work_orders_bp)
    app.register_blueprint(parts_bp)
    app.register_blueprint(inspections_bp)
    app.register_blueprint(custom_forms_bp)
    app.register_blueprint(form_submissions_bp)
    app.register_blueprint(form_assignments_bp)
    app.register_blueprint(maintenance_bp)
    app.register_blueprint(obd_bp)
    app.register_blueprint(geofences_bp)
    app.register_blueprint(fuel_bp)
    app.register_blueprint(documents_bp)
    init_cache(app)
