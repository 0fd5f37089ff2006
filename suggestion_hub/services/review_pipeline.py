"""
Review Pipeline — two-stage approval of suggestions.

    PENDING_FIRST_REVIEW ──approve──▶ PENDING_SECOND_REVIEW ──approve──▶ APPROVED
            │                                   │
            └──reject──▶ REJECTED ◀──reject─────┘
    PENDING_FIRST_REVIEW | REJECTED ──withdraw (submitter)──▶ WITHDRAWN

The first stage belongs to the shift supervisor of the suggestion's team, the
second stage is routed by type (safety admin for SAFETY, operations admin for
everything else). A department manager may act at either stage on any type.

Second-stage approval creates the implementation record exactly once.
Notifications are sent after the write has committed.
"""

import logging
from datetime import datetime, timezone

from suggestion_hub.core.exceptions import (
    ForbiddenError,
    InvalidStateTransition,
    ValidationError,
)
from suggestion_hub.models.suggestion import DECISION_RESULTS
from suggestion_hub.services.capabilities import (
    DEPARTMENT_MANAGER,
    TEAM_MEMBER,
    capabilities_of,
    second_stage_role_for,
)
from suggestion_hub.services.notification import NotificationService
from suggestion_hub.services.suggestion_store import get_store

logger = logging.getLogger(__name__)

APPROVAL_NOTE = "approved, awaiting assignment"
WITHDRAWABLE_STATUSES = ("PENDING_FIRST_REVIEW", "REJECTED")


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _validate_result(result):
    if result not in DECISION_RESULTS:
        raise ValidationError(
            "result must be APPROVED or REJECTED",
            details={"result": sorted(DECISION_RESULTS)},
        )


def _review_record(principal, result, comment):
    return {
        "reviewer": principal.id,
        "reviewerName": principal.name,
        "reviewerRole": principal.role,
        "result": result,
        "comments": (comment or "").strip(),
        "reviewedAt": _now_iso(),
    }


class ReviewPipeline:
    """Stage operations over the suggestion store."""

    def __init__(self, store=None):
        self.store = store or get_store()

    # ── First stage ──────────────────────────────────────────────────────

    def submit_first_review(self, suggestion_id, principal, result, comment=""):
        _validate_result(result)
        caps = capabilities_of(principal)

        def _apply(s):
            if s.review_status != "PENDING_FIRST_REVIEW":
                raise InvalidStateTransition(
                    "submit first review", current=s.review_status,
                    expected=["PENDING_FIRST_REVIEW"],
                )
            if not caps.can_review_first(s.team):
                raise ForbiddenError(
                    "Only the team's shift supervisor or a department manager "
                    "may perform the first review",
                )
            s.first_review = _review_record(principal, result, comment)
            s.review_status = "PENDING_SECOND_REVIEW" if result == "APPROVED" else "REJECTED"

        suggestion, _ = self.store.update(suggestion_id, _apply)
        logger.info(
            "First review %s by %s", result, principal.id,
            extra={"suggestion_id": suggestion_id, "event_type": "review.first"},
        )

        if result == "APPROVED":
            second_role = second_stage_role_for(suggestion.type)
            NotificationService.broadcast(
                [second_role, DEPARTMENT_MANAGER],
                f"Suggestion awaiting second review: {suggestion.title}",
                f"Approved at first review by {principal.name or principal.id}.",
                suggestion_id=suggestion.id,
            )
        else:
            self._notify_rejection(suggestion, "first", comment)
        return suggestion

    # ── Second stage ─────────────────────────────────────────────────────

    def submit_second_review(self, suggestion_id, principal, result, comment=""):
        _validate_result(result)
        caps = capabilities_of(principal)

        def _apply(s):
            if s.review_status != "PENDING_SECOND_REVIEW":
                raise InvalidStateTransition(
                    "submit second review", current=s.review_status,
                    expected=["PENDING_SECOND_REVIEW"],
                )
            if not caps.can_review_second(s.type):
                raise ForbiddenError(
                    f"Role {principal.role} may not perform the second review "
                    f"of a {s.type} suggestion",
                )
            review = _review_record(principal, result, comment)
            s.second_review = review
            if result == "APPROVED":
                s.review_status = "APPROVED"
                if s.implementation is None:
                    s.implementation = {
                        "status": "NOT_STARTED",
                        "responsiblePerson": None,
                        "startDate": None,
                        "plannedEndDate": None,
                        "actualEndDate": None,
                        "notes": "",
                        "completionRate": 0,
                        "timeCost": 0,
                        "attachments": [],
                        "history": [{
                            "status": "NOT_STARTED",
                            "updatedBy": principal.id,
                            "date": review["reviewedAt"],
                            "notes": APPROVAL_NOTE,
                        }],
                    }
            else:
                s.review_status = "REJECTED"

        suggestion, _ = self.store.update(suggestion_id, _apply)
        logger.info(
            "Second review %s by %s", result, principal.id,
            extra={"suggestion_id": suggestion_id, "event_type": "review.second"},
        )

        if result == "APPROVED":
            NotificationService.notify(
                DEPARTMENT_MANAGER,
                f"Suggestion approved, awaiting assignment: {suggestion.title}",
                "Assign a responsible person to start implementation.",
                category="implementation",
                severity="success",
                suggestion_id=suggestion.id,
            )
        else:
            self._notify_rejection(suggestion, "second", comment)
        return suggestion

    # ── Withdraw ─────────────────────────────────────────────────────────

    def withdraw(self, suggestion_id, principal, reason):
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A withdrawal reason is required", details={"reason": "required"})
        caps = capabilities_of(principal)

        def _apply(s):
            if not caps.is_submitter(s):
                raise ForbiddenError("Only the submitter may withdraw a suggestion")
            if s.review_status not in WITHDRAWABLE_STATUSES:
                raise InvalidStateTransition(
                    "withdraw", current=s.review_status, expected=WITHDRAWABLE_STATUSES,
                )
            s.review_status = "WITHDRAWN"
            s.withdrawal = {"by": principal.id, "reason": reason, "withdrawnAt": _now_iso()}

        suggestion, _ = self.store.update(suggestion_id, _apply)
        logger.info(
            "Suggestion withdrawn by %s", principal.id,
            extra={"suggestion_id": suggestion_id, "event_type": "review.withdrawn"},
        )
        return suggestion

    # ── Queue ────────────────────────────────────────────────────────────

    def list_pending_reviews(self, principal, page=1, page_size=20, sort=None):
        """Review queue the principal may act on (empty page for non-reviewers)."""
        filters = capabilities_of(principal).pending_review_filter()
        if filters is None:
            return {"items": [], "total": 0, "page": int(page or 1), "pageSize": int(page_size or 20)}
        return self.store.query(filters, sort=sort or "createdAt", page=page, page_size=page_size)

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _notify_rejection(suggestion, stage, comment):
        body = f"Rejected at {stage} review."
        if comment:
            body += f" Comment: {comment}"
        NotificationService.notify(
            TEAM_MEMBER,
            f"Suggestion rejected: {suggestion.title}",
            body,
            team=suggestion.team,
            severity="warning",
            suggestion_id=suggestion.id,
        )
