# backend/branchpos/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def _engine_options(uri, timeout: int) -> dict:
    if str(uri).startswith("sqlite"):
        return {"connect_args": {"timeout": timeout}}
    return {"pool_pre_ping": True, "pool_timeout": timeout}


def _configure_engines(app: Flask) -> None:
    """Derive each engine's lock-wait options from its own URL."""
    timeout = app.config.get("DB_TIMEOUT_SECONDS", 15)
    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        _engine_options(app.config.get("SQLALCHEMY_DATABASE_URI", ""), timeout),
    )

    binds = {}
    for key, value in (app.config.get("SQLALCHEMY_BINDS") or {}).items():
        if isinstance(value, dict):
            binds[key] = {**_engine_options(value.get("url", ""), timeout), **value}
        else:
            binds[key] = {"url": value, **_engine_options(value, timeout)}
    app.config["SQLALCHEMY_BINDS"] = binds


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)
    _configure_engines(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.branches import branches_bp
    from .routes.branch_users import branch_users_bp
    from .routes.sync import sync_bp
    from .routes.zones import zones_bp
    from .routes.tables import tables_bp
    from .routes.sales import sales_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(branches_bp)
    app.register_blueprint(branch_users_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(zones_bp)
    app.register_blueprint(tables_bp)
    app.register_blueprint(sales_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS", []))
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
