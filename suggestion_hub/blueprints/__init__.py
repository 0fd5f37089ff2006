"""
Rationalization Suggestion Workflow
Blueprint registry helpers.
"""

import logging

from flask import request
from werkzeug.exceptions import HTTPException

from suggestion_hub.core.exceptions import SuggestionHubError, ValidationError
from suggestion_hub.utils.errors import E, api_error, error_response

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20


def read_page_args():
    """``?page=&pageSize=`` → (page, page_size); ValidationError on junk."""
    try:
        page = int(request.args.get("page", 1))
        page_size = int(request.args.get("pageSize", request.args.get("limit", DEFAULT_PAGE_SIZE)))
    except (TypeError, ValueError):
        raise ValidationError("page and pageSize must be integers")
    return page, page_size


def register_error_handlers(bp):
    """Map service-layer exceptions on *bp* to standard JSON error bodies."""

    @bp.errorhandler(SuggestionHubError)
    def _handle_domain_error(error: SuggestionHubError):
        if error.code == E.CONFLICT or error.code == E.INVALID_STATE:
            logger.info("%s on %s: %s", error.code, request.endpoint, error)
        return error_response(error)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
