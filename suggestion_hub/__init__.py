"""
Rationalization Suggestion Workflow
Flask Application Factory.

Usage:
    from suggestion_hub import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from suggestion_hub.auth import init_auth
from suggestion_hub.config import config
from suggestion_hub.middleware.logging_config import configure_logging
from suggestion_hub.middleware.rate_limiter import init_rate_limits
from suggestion_hub.middleware.timing import init_request_timing
from suggestion_hub.models import db
from suggestion_hub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", os.getenv("REDIS_URL", "memory://")),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Derived-data cache, store and blob store ─────────────────────────
    from suggestion_hub.services import cache_service
    from suggestion_hub.services.attachment_store import AttachmentStore
    from suggestion_hub.services.suggestion_store import SuggestionStore

    cache = cache_service.init_cache(
        app.config.get("REDIS_URL"), default_ttl=app.config["CACHE_DEFAULT_TTL"],
    )
    app.extensions["suggestion_cache"] = cache
    app.extensions["suggestion_store"] = SuggestionStore(
        cache=cache,
        strict_implementation=app.config["IMPLEMENTATION_STRICT_TRANSITIONS"],
        detail_ttl=app.config["CACHE_DETAIL_TTL"],
        list_ttl=app.config["CACHE_LIST_TTL"],
    )
    app.extensions["attachment_store"] = AttachmentStore(app.config["UPLOAD_DIR"])

    # ── Principal resolution + request timing ────────────────────────────
    init_request_timing(app)
    init_auth(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from suggestion_hub.models import notification as _notification_models  # noqa: F401
    from suggestion_hub.models import suggestion as _suggestion_models      # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if not app.testing:
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except Exception as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from suggestion_hub.blueprints.health_bp import health_bp
    from suggestion_hub.blueprints.notification_bp import notification_bp
    from suggestion_hub.blueprints.statistics_bp import statistics_bp
    from suggestion_hub.blueprints.suggestion_bp import suggestion_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(suggestion_bp)
    app.register_blueprint(statistics_bp)
    app.register_blueprint(notification_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.VALIDATION, "Request body too large", status=413)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.VALIDATION, "Too many requests", status=429,
                         details={"retry_after": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Housekeeping sweep (daemon thread; off under testing) ────────────
    from suggestion_hub.services.housekeeping import HousekeepingService
    HousekeepingService.init_app(app)

    return app
