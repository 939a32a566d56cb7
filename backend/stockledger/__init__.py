# backend/stockledger/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate



def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.deliveries import deliveries_bp
    from .routes.issues import issues_bp
    from .routes.transfers import transfers_bp
    from .routes.approvals import approvals_bp
    from .routes.periods import periods_bp
    from .routes.ncrs import ncrs_bp
    from .routes.reconciliations import locations_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(deliveries_bp)
    app.register_blueprint(issues_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(approvals_bp)
    app.register_blueprint(periods_bp)
    app.register_blueprint(ncrs_bp)
    app.register_blueprint(locations_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config.get("CORS_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-User-Id, X-User-Role, X-Location-Ids"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
