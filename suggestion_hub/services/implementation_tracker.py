"""
Implementation Tracker — execution lifecycle of approved suggestions.

Every call appends exactly one entry to ``implementation.history``, even when
the status does not change: the history is an audit log of touches, not only
of transitions. EVALUATED is set by scoring alone and closes the record.

Whether the directed-edge table is a hard gate is decided by the store
(``IMPLEMENTATION_STRICT_TRANSITIONS``); this module only checks that the
requested status is a known tracker code.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from suggestion_hub.core.exceptions import (
    ForbiddenError,
    InvalidStateTransition,
    ValidationError,
)
from suggestion_hub.models.suggestion import TRACKER_STATUSES
from suggestion_hub.services.capabilities import capabilities_of
from suggestion_hub.services.suggestion_store import get_store

logger = logging.getLogger(__name__)

# request key → implementation document key
_DATE_FIELDS = {
    "startDate": "startDate",
    "plannedCompletionDate": "plannedEndDate",
    "actualCompletionDate": "actualEndDate",
}


def parse_calendar_date(value, field: str) -> date:
    """Accept ``YYYY-MM-DD`` or a full ISO-8601 timestamp."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be an ISO date", details={field: "invalid date"})
    text = value.strip()
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date", details={field: "invalid date"})


def validate_update(payload: dict) -> dict:
    """Check an update request and normalize it into implementation fields.

    Returns a dict with ``status``, ``notes`` and any supplied optional
    fields already mapped to their stored keys.
    """
    errors = {}
    status = payload.get("status")
    if status == "EVALUATED":
        errors["status"] = "EVALUATED is set by scoring"
    elif status not in TRACKER_STATUSES:
        errors["status"] = f"must be one of {sorted(TRACKER_STATUSES)}"

    notes = payload.get("notes")
    notes = notes.strip() if isinstance(notes, str) else ""
    if not notes:
        errors["notes"] = "required"

    changes = {}
    for key, stored_key in _DATE_FIELDS.items():
        value = payload.get(key, payload.get(stored_key))
        if value in (None, ""):
            continue
        try:
            changes[stored_key] = parse_calendar_date(value, key)
        except ValidationError as exc:
            errors.update(exc.details)

    rate = payload.get("completionRate")
    if rate is not None:
        if isinstance(rate, bool) or not isinstance(rate, int) or not 0 <= rate <= 100:
            errors["completionRate"] = "must be an integer between 0 and 100"
        else:
            changes["completionRate"] = rate

    cost = payload.get("timeCost")
    if cost is not None:
        if isinstance(cost, bool) or not isinstance(cost, (int, float)) or cost < 0:
            errors["timeCost"] = "must be a non-negative number"
        else:
            changes["timeCost"] = cost

    responsible = payload.get("responsiblePerson")
    if responsible is not None:
        if not isinstance(responsible, str) or not responsible.strip():
            errors["responsiblePerson"] = "must be a non-empty string"
        else:
            changes["responsiblePerson"] = responsible.strip()

    if errors:
        raise ValidationError("Invalid implementation update", details=errors)

    if status == "COMPLETED":
        actual = changes.get("actualEndDate")
        if actual is not None and actual > date.today():
            raise ValidationError(
                "actualCompletionDate cannot be in the future",
                details={"actualCompletionDate": "future date"},
            )

    for key in _DATE_FIELDS.values():
        if key in changes:
            changes[key] = changes[key].isoformat()
    changes["status"] = status
    changes["notes"] = notes
    return changes


class ImplementationTracker:

    def __init__(self, store=None):
        self.store = store or get_store()

    def update_implementation(self, suggestion_id, principal, payload, expected_version=None):
        changes = validate_update(payload or {})
        caps = capabilities_of(principal)

        def _apply(s):
            if s.review_status != "APPROVED":
                raise InvalidStateTransition(
                    "update implementation", current=s.review_status,
                    expected=["APPROVED"], reason="not yet approved",
                )
            if not caps.can_implement(s):
                raise ForbiddenError(
                    "Only an administrator or the responsible person may update implementation",
                )
            impl = s.implementation
            old_status = impl.get("status")
            if old_status == "EVALUATED":
                raise InvalidStateTransition(
                    "update implementation", current=old_status,
                    reason="implementation has been evaluated",
                )

            impl.update(changes)
            if changes["status"] == "COMPLETED":
                if not impl.get("actualEndDate"):
                    impl["actualEndDate"] = date.today().isoformat()
                elif parse_calendar_date(impl["actualEndDate"], "actualCompletionDate") > date.today():
                    raise ValidationError(
                        "actualCompletionDate cannot be in the future",
                        details={"actualCompletionDate": "future date"},
                    )
            impl.setdefault("history", []).append({
                "status": changes["status"],
                "updatedBy": principal.id,
                "date": datetime.now(timezone.utc).isoformat(),
                "notes": changes["notes"],
            })
            return old_status

        suggestion, old_status = self.store.update(suggestion_id, _apply, expected_version)
        logger.info(
            "Implementation %s → %s by %s", old_status, changes["status"], principal.id,
            extra={"suggestion_id": suggestion_id, "event_type": "implementation.updated"},
        )
        return suggestion
