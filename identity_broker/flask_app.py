"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with the broker handle, blueprints and error handlers.
"""
from __future__ import annotations
import logging
from typing import Optional

import requests
from flask import Flask, g

from identity_broker.api.envelope import CORRELATION_HEADER
from identity_broker.config import AppConfig, load_settings
from identity_broker.core.broker import build_broker

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[AppConfig] = None, session: Optional[requests.Session] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        cfg: Settings to use instead of load_settings() (tests pass their own)
        session: Optional HTTP session for the Keycloak client (tests pass a stub)
    """
    cfg = cfg or load_settings()
    _configure_logging(cfg.log_level)

    app = Flask(__name__)
    app.config["APP_CONFIG"] = cfg
    app.config["BROKER"] = build_broker(cfg, session=session)
    app.json.sort_keys = False

    from identity_broker.api import auth, errors, health, roles, users

    prefix = cfg.api_prefix
    app.register_blueprint(auth.bp, url_prefix=f"{prefix}/auth")
    app.register_blueprint(users.bp, url_prefix=f"{prefix}/users")
    app.register_blueprint(roles.bp, url_prefix=f"{prefix}/roles")
    app.register_blueprint(health.bp)

    errors.register_error_handlers(app)
    _register_middleware(app)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    logger.info(f"Identity broker started | mode={mode_label} | realm={cfg.keycloak_realm} | api_prefix={prefix or '/'}")
    if cfg.demo_mode:
        logger.warning("Demo mode active - do not deploy with demo credentials")

    return app


def _register_middleware(app: Flask):
    """Register after_request handlers."""

    @app.after_request
    def add_correlation_id(response):
        """Echo the request's correlation ID for client-side incident reports."""
        correlation_id = g.get("correlation_id")
        if correlation_id:
            response.headers[CORRELATION_HEADER] = correlation_id
        return response


def _configure_logging(level: str) -> None:
    """Root handler and format; an existing configuration (gunicorn, pytest) is kept."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("identity_broker").setLevel(level)


# ─────────────────────────────────────────────────────────────────────────────
# Application Instance (for Gunicorn)
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
