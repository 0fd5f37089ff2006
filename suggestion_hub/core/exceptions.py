"""
Service-layer exception hierarchy.

Services raise these; blueprints register handlers against them once and get
consistent HTTP status codes and machine-readable ``code`` values everywhere.

Usage:
    from suggestion_hub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Suggestion", resource_id=sid)
    raise ValidationError("title is required", details={"title": "required"})
    raise InvalidStateTransition("submit first review", current="APPROVED",
                                 expected=["PENDING_FIRST_REVIEW"])
"""


class SuggestionHubError(Exception):
    """Base class. ``code`` is stable and safe to expose to clients."""

    code = "ERR_INTERNAL"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(SuggestionHubError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Suggestion", "Attachment").
        resource_id: The id that was looked up.
    """

    code = "ERR_NOT_FOUND"

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(SuggestionHubError):
    """Raised when input is missing or malformed.

    Always recoverable by resubmitting corrected input.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    code = "ERR_VALIDATION"


class ForbiddenError(SuggestionHubError):
    """Raised when the principal lacks the role, ownership or type eligibility."""

    code = "ERR_FORBIDDEN"


class InvalidStateTransition(SuggestionHubError):
    """Raised when an operation is not legal from the aggregate's current state.

    Carries the current and expected states so the client can refresh.

    Args:
        action: What was attempted (e.g. "submit second review").
        current: Current state code.
        expected: State codes from which the action would have been legal.
        reason: Optional extra explanation.
    """

    code = "ERR_INVALID_STATE"

    def __init__(
        self,
        action: str,
        current: str | None,
        expected: list[str] | set[str] | tuple[str, ...] | None = None,
        reason: str | None = None,
    ) -> None:
        self.action = action
        self.current = current
        self.expected = sorted(expected) if expected else []
        msg = f"Cannot {action} (status={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, details={"current": current, "expected": self.expected})


class ConflictError(SuggestionHubError):
    """Raised when an optimistic-concurrency check fails on a concurrent write.

    The caller should re-read and retry.

    Args:
        resource: Entity name.
        resource_id: Entity id.
        expected_version: Version the caller based its write on, if known.
    """

    code = "ERR_CONFLICT"

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        expected_version: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.expected_version = expected_version
        msg = f"{resource} id={resource_id} was modified concurrently; reload and retry"
        details = {}
        if expected_version is not None:
            details["expected_version"] = expected_version
        super().__init__(msg, details=details)
