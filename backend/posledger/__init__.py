# backend/posledger/__init__.py
from __future__ import annotations

from typing import Mapping, Optional

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: Optional[Mapping] = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # The local cache is a Flask-SQLAlchemy bind so it gets its own engine
    binds = dict(app.config.get("SQLALCHEMY_BINDS") or {})
    binds.setdefault("local_cache", app.config["LOCAL_CACHE_URL"])
    app.config["SQLALCHEMY_BINDS"] = binds

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services import EXTENSION_KEY, build_services

    with app.app_context():
        services = build_services(db.engine, db.engines["local_cache"], app.config)
    app.extensions[EXTENSION_KEY] = services

    if app.config.get("LEDGER_AUTO_INITIALIZE", True):
        services.gateway.initialize()
    if services.peers is not None:
        services.peers.connect(app.config["TERMINAL_ID"], app.config.get("TERMINAL_NAME"))

    # Register blueprints
    from .routes.system import system_bp
    from .routes.catalog import catalog_bp
    from .routes.shifts import shifts_bp
    from .routes.debts import debts_bp
    from .routes.supplier import supplier_bp
    from .routes.archives import archives_bp
    from .routes.realtime import realtime_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(shifts_bp)
    app.register_blueprint(debts_bp)
    app.register_blueprint(supplier_bp)
    app.register_blueprint(archives_bp)
    app.register_blueprint(realtime_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Actor-Id, X-Actor-Name"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
