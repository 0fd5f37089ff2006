"""
Rationalization Suggestion Workflow
Principal resolution middleware.

The core performs no authentication: an external identity provider issues
the caller's identity and this module only turns it into a ``Principal``.

Sources, in priority order:
    1. ``Authorization: Bearer <JWT>`` (HS256, claims sub / role / team / name)
    2. ``X-User-Id`` / ``X-User-Role`` / ``X-User-Team`` / ``X-User-Name``
       headers, honoured only when ``AUTH_TRUST_HEADERS`` is enabled
       (development and tests, or behind a trusted gateway)

Every /api/v1/* route except the health probes requires a principal;
requests without one get 401.
"""

import logging
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app, g, request

from suggestion_hub.models.suggestion import ROLES
from suggestion_hub.services.capabilities import Principal
from suggestion_hub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
DEFAULT_TOKEN_EXPIRES = 3600

# Paths that need no principal
SKIP_PREFIXES = ("/api/v1/health",)


def _get_secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def encode_principal(principal: Principal, expires_in: int = DEFAULT_TOKEN_EXPIRES) -> str:
    """Issue a token for *principal* (development tooling and tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": principal.id,
        "role": principal.role,
        "team": principal.team,
        "name": principal.name,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def _principal_from_token(token: str) -> Principal:
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    return Principal(
        id=str(payload.get("sub") or ""),
        role=payload.get("role") or "",
        team=payload.get("team"),
        name=payload.get("name") or "",
    )


def _principal_from_headers() -> Principal | None:
    user_id = request.headers.get("X-User-Id")
    role = request.headers.get("X-User-Role")
    if not user_id or not role:
        return None
    return Principal(
        id=user_id,
        role=role,
        team=request.headers.get("X-User-Team") or None,
        name=request.headers.get("X-User-Name", ""),
    )


def resolve_principal() -> Principal | None:
    """Return the request's principal, or None when absent / invalid."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        try:
            return _principal_from_token(auth_header[7:])
        except jwt.ExpiredSignatureError:
            logger.info("Expired bearer token on %s", request.path)
            return None
        except jwt.InvalidTokenError as exc:
            logger.warning("Invalid bearer token on %s: %s", request.path, exc)
            return None
    if current_app.config.get("AUTH_TRUST_HEADERS"):
        return _principal_from_headers()
    return None


def current_principal() -> Principal:
    return g.principal


def init_auth(app):
    """Install the principal-resolution hook for API routes."""

    @app.before_request
    def _before_request_principal():
        g.principal = None
        if not request.path.startswith("/api/v1/"):
            return None
        if request.path.startswith(SKIP_PREFIXES) or request.method == "OPTIONS":
            return None

        principal = resolve_principal()
        if principal is None or not principal.id:
            return api_error(E.AUTH_REQUIRED, "Authentication required")
        if principal.role not in ROLES:
            logger.warning("Unknown role %r for principal %s", principal.role, principal.id)
            return api_error(
                E.AUTH_REQUIRED, f"Unknown role '{principal.role}'",
                details={"roles": sorted(ROLES)},
            )
        g.principal = principal
        return None

    logger.info(
        "Auth middleware installed (trust_headers=%s)", app.config.get("AUTH_TRUST_HEADERS")
    )
