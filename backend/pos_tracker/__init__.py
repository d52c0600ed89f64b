# backend/pos_tracker/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate



def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.stock import stock_bp
    from .routes.payments import payments_bp
    from .routes.cloud import cloud_bp
    from .routes.reports import reports_bp
    from .routes.assignments import assignments_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(cloud_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(assignments_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
