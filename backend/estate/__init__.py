import logging

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate
from .responses import fail


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.safes import safes_bp
    from .routes.vouchers import vouchers_bp
    from .routes.transfers import transfers_bp
    from .routes.contracts import contracts_bp
    from .routes.installments import installments_bp
    from .routes.reports import reports_bp
    from .routes.export import export_bp
    from .routes.backup import backup_bp
    from .routes.audit import audit_bp
    from .routes.trash import trash_bp
    from .routes.settings import settings_bp
    from .routes.catalog import catalog_bp  # /api/<entity>; registered last

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(safes_bp)
    app.register_blueprint(vouchers_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(contracts_bp)
    app.register_blueprint(installments_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(export_bp)
    app.register_blueprint(backup_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(trash_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(catalog_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config.get("CORS_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return fail(error.description if error.code != 404 else "Not found", error.code)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return fail("Internal server error", 500)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
