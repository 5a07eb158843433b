import pytest

from fleetdesk import create_app
from fleetdesk.db_models import (
    db,
    Asset, AssetCategory, CustomForm, Organisation, Part, TaskTemplate, User,
)


@pytest.fixture
def test_app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SECRET_KEY": "test-secret",
        "LOG_FILE": str(tmp_path / "test.log"),
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "ALERT_WEBHOOK_URL": None,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()

        # 🛡️ Protect against real DB being wiped
        db_url = app.config["SQLALCHEMY_DATABASE_URI"]
        if "sqlite:///:memory:" not in db_url:
            raise RuntimeError(f"Refusing to drop_all() on non-test DB: {db_url}")

        db.drop_all()


@pytest.fixture
def org(test_app):
    organisation = Organisation(name="Northwind Haulage")
    db.session.add(organisation)
    db.session.commit()
    return organisation


@pytest.fixture
def make_user(org):
    def _make(role="admin", email=None, password="correct-horse", organisation=None):
        user = User(
            organisation_id=(organisation or org).id,
            email=email or f"{role}-{db.session.query(User).count() + 1}@example.com",
            name=f"{role.title()} User",
            role=role,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", email="admin@example.com")


def login_as(client, user):
    with client.session_transaction() as sess:
        sess["user_id"] = user.id
        sess["organisation_id"] = user.organisation_id
    return client


@pytest.fixture
def client(test_app, admin):
    return login_as(test_app.test_client(), admin)


@pytest.fixture
def client_for(test_app):
    def _client(user):
        return login_as(test_app.test_client(), user)
    return _client


# -----------------------------
# Model factories
# -----------------------------
@pytest.fixture
def make_category(org):
    def _make(name="Trucks", parent=None):
        category = AssetCategory(organisation_id=org.id, name=name, parent_id=parent.id if parent else None)
        db.session.add(category)
        db.session.commit()
        return category
    return _make


@pytest.fixture
def make_asset(org):
    def _make(asset_number=None, **kwargs):
        asset = Asset(
            organisation_id=org.id,
            asset_number=asset_number or f"FLT-{db.session.query(Asset).count() + 1:04d}",
            make=kwargs.pop("make", "Volvo"),
            model=kwargs.pop("model", "FH16"),
            **kwargs,
        )
        db.session.add(asset)
        db.session.commit()
        return asset
    return _make


@pytest.fixture
def make_template(org):
    def _make(name="Pre-start check", checklist_items=None):
        template = TaskTemplate(
            organisation_id=org.id,
            name=name,
            checklist_items=checklist_items if checklist_items is not None else [
                {"id": "tyres", "title": "Check tyres", "is_required": True, "order": 0},
                {"id": "lights", "title": "Check lights", "is_required": False, "order": 1},
            ],
        )
        db.session.add(template)
        db.session.commit()
        return template
    return _make


@pytest.fixture
def make_part(org):
    def _make(sku="FLT-OIL-5W30", quantity=10, **kwargs):
        part = Part(
            organisation_id=org.id,
            sku=sku,
            name=kwargs.pop("name", "Engine oil 5W-30"),
            unit=kwargs.pop("unit", "liters"),
            quantity_in_stock=quantity,
            minimum_stock=kwargs.pop("minimum_stock", 2),
            **kwargs,
        )
        db.session.add(part)
        db.session.commit()
        return part
    return _make


@pytest.fixture
def make_form(org, admin):
    def _make(fields, name="Vehicle damage report", status="draft"):
        form = CustomForm(
            organisation_id=org.id,
            name=name,
            fields=fields,
            settings={},
            status=status,
            current_version=0,
            created_by_id=admin.id,
        )
        db.session.add(form)
        db.session.commit()
        return form
    return _make
