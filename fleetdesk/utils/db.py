# fleetdesk/utils/db.py
from flask import abort, current_app, request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from fleetdesk.db_models import db


def commit_or_500(conflict_message="Record conflicts with an existing one"):
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        current_app.logger.error("Integrity error: %s", e)
        abort(409, description=conflict_message)
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error("Database error: %s", e)
        abort(500, description="Database error")


def flush_or_409(conflict_message="Record conflicts with an existing one"):
    """Flush to get ids early, turning a unique-constraint hit into a 409."""
    try:
        db.session.flush()
    except IntegrityError as e:
        db.session.rollback()
        current_app.logger.error("Integrity error: %s", e)
        abort(409, description=conflict_message)


def get_or_404(model, object_id, organisation_id, label=None):
    obj = (
        db.session.query(model)
        .filter(model.id == object_id, model.organisation_id == organisation_id)
        .first()
    )
    if obj is None:
        abort(404, description=f"{label or model.__name__} not found")
    return obj


def paginate(query, default_per_page=25, max_per_page=100):
    """Apply ?page=&per_page= and return (items, meta)."""
    page = max(request.args.get("page", 1, type=int) or 1, 1)
    per_page = request.args.get("per_page", default_per_page, type=int) or default_per_page
    per_page = min(max(per_page, 1), max_per_page)

    total = query.order_by(None).count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    meta = {
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": (total + per_page - 1) // per_page,
    }
    return items, meta


def parse_bool_arg(name, default=False):
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
