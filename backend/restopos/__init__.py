# backend/restopos/__init__.py
from flask import Flask, jsonify, request
from sqlalchemy.exc import OperationalError

from .config import Config
from .errors import OrderEngineError
from .extensions import db, migrate
from .services.event_service import NOTIFIER_EXTENSION_KEY, create_notifier


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    app.extensions[NOTIFIER_EXTENSION_KEY] = create_notifier()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.orders import orders_bp
    from .routes.kitchen import kitchen_bp
    from .routes.tables import tables_bp
    from .routes.inventory import inventory_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(kitchen_bp)
    app.register_blueprint(tables_bp)
    app.register_blueprint(inventory_bp)

    @app.errorhandler(OrderEngineError)
    def handle_engine_error(error: OrderEngineError):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(OperationalError)
    def handle_operational_error(error: OperationalError):
        db.session.rollback()
        app.logger.warning("Database operational error: %s", error)
        return jsonify({"error": "Database busy, please retry"}), 503

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
