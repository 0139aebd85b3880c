# backend/savdo/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate, NOTIFIERS_KEY


def _engine_options(config) -> dict:
    """Driver options derived from the ledger lock settings."""
    uri = config.get("SQLALCHEMY_DATABASE_URI", "")
    if uri.startswith("sqlite"):
        # Seconds a writer waits on the SQLite database lock before "database is locked"
        return {"connect_args": {"timeout": config["LEDGER_LOCK_TIMEOUT_MS"] / 1000.0}}
    return {"pool_pre_ping": True}


def create_app(config_object=None, config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)
    if config_overrides:
        app.config.update(config_overrides)
    app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", _engine_options(app.config))

    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if isinstance(level, int):
        app.logger.setLevel(level)
        logging.getLogger("savdo").setLevel(level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Post-commit notifiers (see services/notification_service.py)
    app.extensions.setdefault(NOTIFIERS_KEY, [])

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.dealers import dealers_bp
    from .routes.sales import sales_bp
    from .routes.purchases import purchases_bp
    from .routes.payments import payments_bp
    from .routes.ledger import ledger_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(dealers_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(ledger_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
