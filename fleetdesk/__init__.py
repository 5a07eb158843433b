# fleetdesk/__init__.py
import os
from flask import Flask
from flask_migrate import Migrate
from fleetdesk.config import Config
from fleetdesk.routes import register_blueprints
from fleetdesk.utils.logger import setup_logging
from fleetdesk.errors import register_error_handlers
from fleetdesk.db_models import db
from dotenv import load_dotenv

load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), '.env'))
migrate = Migrate()


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    app.secret_key = Config.SECRET_KEY

    database_url = os.environ.get("DATABASE_URL", "sqlite:///fleetdesk.db")
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    app.config['SQLALCHEMY_DATABASE_URI'] = database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    # Overrides must land before db.init_app, which builds the engine
    if test_config:
        app.config.update(test_config)

    db.init_app(app)
    migrate.init_app(app, db)
    setup_logging(app)
    register_error_handlers(app)
    register_blueprints(app)

    return app
