"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in suggestion_hub/__init__.py with no
default limits; this module applies granular limits per route category.

Usage:
    from suggestion_hub.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"

_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Suggestion writes:  60/minute  (POST/PUT/DELETE)
        - Reads / reporting:  200/minute (GET — generous for SPA)
        - Health check:       exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    from flask import request

    bp = app.blueprints.get("suggestion_bp")
    if bp:
        limiter.limit(WRITE_LIMIT, exempt_when=lambda: request.method not in _WRITE_METHODS)(bp)
        limiter.limit(READ_LIMIT, exempt_when=lambda: request.method in _WRITE_METHODS)(bp)

    for bp_name in ("statistics_bp", "notification_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    logger.info("Rate limiter configured — write: %s, read: %s", WRITE_LIMIT, READ_LIMIT)
