"""
orderflow/__init__.py

Flask application factory for Orderflow, the order-fulfillment engine.

Architecture:
- orderflow.services: transactional engine operations (task cascade, order rollup,
  document numbering, proposal acceptance).
- orderflow.blueprints: thin JSON handlers mapping engine results to HTTP.
- PostgreSQL-ready (SQLAlchemy + migrations) but SQLite is used for dev.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify
from flask_wtf.csrf import CSRFError
from werkzeug.exceptions import BadRequest

from .extensions import csrf, db, login_manager, migrate
from .models import User
from .notifications import Notifier, init_notifier

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _configure_logging(app: Flask) -> None:
    """Package logger level/handler from LOG_LEVEL."""
    logger = logging.getLogger(__name__)
    logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)


def create_app(config_object: str | object = "config.Config", notifier: Notifier | None = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": {"code": "unauthorized", "message": "Login required."}}), 401

    @app.errorhandler(CSRFError)
    def csrf_error(exc: CSRFError):
        return jsonify({"error": {"code": "csrf", "message": exc.description}}), 400

    @app.errorhandler(BadRequest)
    def bad_request_error(exc: BadRequest):
        return jsonify({"error": {"code": "bad_request", "message": exc.description}}), 400

    # Notification delivery collaborator
    init_notifier(app, notifier)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.finance import finance_bp
    from .blueprints.orders import orders_bp
    from .blueprints.portal import portal_bp

    # Portal clients authenticate per request with a token, not a session
    csrf.exempt(portal_bp)

    app.register_blueprint(auth_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(finance_bp)
    app.register_blueprint(portal_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command():
        """Create tables (development; use `flask db upgrade` in production)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("seed-defaults")
    def seed_defaults_command():
        """Seed the settings counters and the order-status catalog."""
        from .seed import seed_defaults

        seed_defaults(currency=app.config.get("DEFAULT_CURRENCY", "TJS"))
        click.echo("Settings and order statuses seeded.")

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "app": app.config.get("APP_NAME", "Orderflow")})

    return app
