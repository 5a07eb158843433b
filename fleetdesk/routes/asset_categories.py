# fleetdesk/routes/asset_categories.py
from flask import Blueprint, abort, jsonify
from flask_caching import Cache

from fleetdesk.db_models import db, Asset, AssetCategory
from fleetdesk.schemas import CategoryCreate, CategoryUpdate
from fleetdesk.services.audit import record_audit, snapshot
from fleetdesk.utils.auth import current_org_id, current_user, require_permission
from fleetdesk.utils.db import commit_or_500, get_or_404
from fleetdesk.utils.validation import parse_body

asset_categories_bp = Blueprint('asset_categories', __name__, url_prefix='/api/asset-categories')

cache = Cache()


# CACHE_TYPE / CACHE_DEFAULT_TIMEOUT come from the app config
def init_cache(app):
    cache.init_app(app)


def _serialize_category(category):
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "parent_id": category.parent_id,
    }


@cache.memoize(timeout=300)
def category_tree(organisation_id):
    categories = (
        db.session.query(AssetCategory)
        .filter(AssetCategory.organisation_id == organisation_id)
        .order_by(AssetCategory.name)
        .all()
    )
    nodes = {c.id: {**_serialize_category(c), "children": []} for c in categories}
    roots = []
    for c in categories:
        node = nodes[c.id]
        if c.parent_id and c.parent_id in nodes:
            nodes[c.parent_id]["children"].append(node)
        else:
            roots.append(node)
    return roots


def _invalidate_tree(organisation_id):
    cache.delete_memoized(category_tree, organisation_id)


def _check_parent(category_id, parent_id, organisation_id):
    """Parent must exist in the organisation and must not sit below the category."""
    if parent_id is None:
        return
    parent = get_or_404(AssetCategory, parent_id, organisation_id, "Parent category")
    seen = set()
    node = parent
    while node is not None and node.id not in seen:
        if category_id is not None and node.id == category_id:
            abort(400, description="A category cannot be its own ancestor")
        seen.add(node.id)
        node = node.parent


@asset_categories_bp.get('')
@require_permission("assets:read")
def list_categories():
    categories = (
        db.session.query(AssetCategory)
        .filter(AssetCategory.organisation_id == current_org_id())
        .order_by(AssetCategory.name)
        .all()
    )
    return jsonify({"data": [_serialize_category(c) for c in categories]})


@asset_categories_bp.get('/tree')
@require_permission("assets:read")
def get_category_tree():
    return jsonify({"data": category_tree(current_org_id())})


@asset_categories_bp.post('')
@require_permission("assets:write")
def create_category():
    body = parse_body(CategoryCreate)
    user = current_user()
    _check_parent(None, body.parent_id, user.organisation_id)

    category = AssetCategory(organisation_id=user.organisation_id, **body.model_dump())
    db.session.add(category)
    db.session.flush()
    record_audit(user.organisation_id, user.id, "create", "asset_category", category.id,
                 new_values=snapshot(category, ("name", "description", "parent_id")))
    commit_or_500()
    _invalidate_tree(user.organisation_id)
    return jsonify({"category": _serialize_category(category)}), 201


@asset_categories_bp.put('/<int:category_id>')
@require_permission("assets:write")
def update_category(category_id: int):
    user = current_user()
    category = get_or_404(AssetCategory, category_id, user.organisation_id, "Category")
    body = parse_body(CategoryUpdate)
    changes = body.model_dump(exclude_unset=True)
    if "parent_id" in changes:
        _check_parent(category.id, changes["parent_id"], user.organisation_id)

    old_values = snapshot(category, ("name", "description", "parent_id"))
    for key, value in changes.items():
        setattr(category, key, value)
    record_audit(user.organisation_id, user.id, "update", "asset_category", category.id,
                 old_values=old_values,
                 new_values=snapshot(category, ("name", "description", "parent_id")))
    commit_or_500()
    _invalidate_tree(user.organisation_id)
    return jsonify({"category": _serialize_category(category)})


@asset_categories_bp.delete('/<int:category_id>')
@require_permission("assets:write")
def delete_category(category_id: int):
    user = current_user()
    category = get_or_404(AssetCategory, category_id, user.organisation_id, "Category")
    in_use = db.session.query(Asset.id).filter(Asset.category_id == category.id).first()
    if in_use or category.children:
        abort(409, description="Category is in use by assets or sub-categories")

    record_audit(user.organisation_id, user.id, "delete", "asset_category", category.id,
                 old_values=snapshot(category, ("name", "description", "parent_id")))
    db.session.delete(category)
    commit_or_500()
    _invalidate_tree(user.organisation_id)
    return jsonify({"success": True})
