"""
Scoring Subsystem — department-manager rating of completed work.

The first score advances the implementation from COMPLETED to EVALUATED.
Re-scoring an evaluated suggestion keeps every prior value in
``scoring.history`` and leaves the implementation history untouched.
"""

import logging
from datetime import datetime, timezone
from numbers import Real

from suggestion_hub.core.exceptions import (
    ForbiddenError,
    InvalidStateTransition,
    ValidationError,
)
from suggestion_hub.models.suggestion import SCORABLE_STATUSES, SCORE_MAX, SCORE_MIN
from suggestion_hub.services.capabilities import capabilities_of
from suggestion_hub.services.notification import NotificationService
from suggestion_hub.services.suggestion_store import get_store

logger = logging.getLogger(__name__)


def validate_score(score):
    """Return *score* as a number in [SCORE_MIN, SCORE_MAX] or raise ValidationError."""
    if isinstance(score, bool) or not isinstance(score, Real):
        raise ValidationError("score must be a number", details={"score": "not a number"})
    if score != score or not SCORE_MIN <= score <= SCORE_MAX:
        raise ValidationError(
            f"score must be between {SCORE_MIN} and {SCORE_MAX}",
            details={"score": f"{SCORE_MIN}..{SCORE_MAX}"},
        )
    return int(score) if float(score).is_integer() else float(score)


class ScoringService:

    def __init__(self, store=None):
        self.store = store or get_store()

    def score_suggestion(self, suggestion_id, principal, score, comment=""):
        caps = capabilities_of(principal)
        if not caps.can_score():
            raise ForbiddenError("Only a department manager may score suggestions")
        value = validate_score(score)
        comment = (comment or "").strip()

        def _apply(s):
            status = s.implementation_status
            if status not in SCORABLE_STATUSES:
                raise InvalidStateTransition(
                    "score suggestion", current=status, expected=SCORABLE_STATUSES,
                    reason="only completed suggestions may be scored",
                )
            now = datetime.now(timezone.utc).isoformat()
            entry = {
                "score": value,
                "scorer": principal.id,
                "scorerName": principal.name,
                "scorerRole": principal.role,
                "comment": comment,
                "scoredAt": now,
            }
            scoring = s.scoring or {"history": []}
            history = list(scoring.get("history") or [])
            history.append(dict(entry))
            scoring.update(entry)
            scoring["history"] = history
            s.scoring = scoring

            if status == "COMPLETED":
                impl = s.implementation
                impl["status"] = "EVALUATED"
                impl.setdefault("history", []).append({
                    "status": "EVALUATED",
                    "updatedBy": principal.id,
                    "date": now,
                    "notes": f"score: {value}/{SCORE_MAX}",
                })
            return status

        suggestion, previous = self.store.update(suggestion_id, _apply)
        logger.info(
            "Suggestion scored %s by %s", value, principal.id,
            extra={"suggestion_id": suggestion_id, "event_type": "scoring.scored"},
        )
        if previous == "COMPLETED":
            NotificationService.notify(
                "TEAM_MEMBER",
                f"Suggestion evaluated: {suggestion.title}",
                f"Scored {value}/{SCORE_MAX}.",
                team=suggestion.team,
                category="scoring",
                severity="success",
                suggestion_id=suggestion.id,
            )
        return suggestion
