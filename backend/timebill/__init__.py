# backend/timebill/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.timer import timer_bp
    from .routes.time_entries import time_entries_bp
    from .routes.invoices import invoices_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(timer_bp)
    app.register_blueprint(time_entries_bp)
    app.register_blueprint(invoices_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
