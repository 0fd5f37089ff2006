"""Standardised API error responses.

Usage
-----
    from suggestion_hub.utils.errors import api_error, error_response, E

    return api_error(E.NOT_FOUND, "Suggestion not found")
    return api_error(E.AUTH_REQUIRED, "Missing principal")
    return error_response(exc)          # any SuggestionHubError
"""

from __future__ import annotations

from flask import jsonify

from suggestion_hub.core.exceptions import SuggestionHubError


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400
    VALIDATION = "ERR_VALIDATION"

    # Authentication – HTTP 401
    AUTH_REQUIRED = "ERR_AUTH_REQUIRED"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # State / concurrency – HTTP 409
    INVALID_STATE = "ERR_INVALID_STATE"
    CONFLICT = "ERR_CONFLICT"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION: 400,
    E.AUTH_REQUIRED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.INVALID_STATE: 409,
    E.CONFLICT: 409,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, current/expected state).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def error_response(exc: SuggestionHubError):
    """Render a service-layer exception with its own code and details."""
    return api_error(exc.code, str(exc), details=exc.details or None)
