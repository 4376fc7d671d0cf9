"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with its principal store, blueprints, middleware,
and configuration.
"""
from __future__ import annotations
from typing import Optional

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from inventory_access.config import AppConfig, load_settings
from inventory_access.core.store import Store


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[AppConfig] = None, store: Optional[Store] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        cfg: Configuration (loaded from the environment when omitted)
        store: Principal store (built from ``cfg.database_url`` when omitted)
    """
    # Load configuration
    if cfg is None:
        cfg = load_settings()
    if store is None:
        store = Store.from_url(cfg.database_url, echo=cfg.db_echo)
    store.create_all()

    # Create Flask app
    app = Flask(__name__)

    # Store config for easy access in routes
    app.config["APP_CONFIG"] = cfg
    app.config["SECRET_KEY"] = cfg.secret_key
    app.config["DEMO_MODE"] = cfg.demo_mode
    app.config["MAX_CONTENT_LENGTH"] = 1024 * 1024
    app.extensions["inventory_access.store"] = store

    # Trust X-Forwarded-* headers from proxy (nginx)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore

    # Register blueprints
    from inventory_access.api import errors, health, locations, tenants, users

    app.register_blueprint(health.bp)
    app.register_blueprint(users.bp)
    app.register_blueprint(tenants.bp)
    app.register_blueprint(locations.bp)

    # Register error handlers
    errors.register_error_handlers(app)

    # Log startup info
    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    print(f"[flask_app] Mode={mode_label}")
    print("[flask_app] Access API registered at /api")

    if cfg.demo_mode:
        print("[flask_app] WARNING: Demo mode active - do not deploy with demo credentials")

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
