"""
Rationalization Suggestion Workflow
Suggestion domain model.

Models:
    - Suggestion: aggregate root; embedded review / implementation / scoring
                  sub-documents live in JSON columns owned by the row.

Lifecycle states:
    Review:          PENDING_FIRST_REVIEW → PENDING_SECOND_REVIEW → APPROVED
                     PENDING_FIRST_REVIEW | PENDING_SECOND_REVIEW → REJECTED
                     PENDING_FIRST_REVIEW | REJECTED → WITHDRAWN
    Implementation:  NOT_STARTED → CONTACTING → IN_PROGRESS → COMPLETED → EVALUATED
                     IN_PROGRESS ↔ DELAYED,  * → CANCELLED → CONTACTING

Persisted shape (camelCase keys are the external contract):
    {_id, title, type, content, expectedBenefit, submitter, team,
     reviewStatus, implementationStatus,
     implementation: {status, responsiblePerson, startDate, plannedEndDate,
                      actualEndDate, notes, completionRate, timeCost,
                      attachments, history: [{status, updatedBy, date, notes}]},
     firstReview / secondReview: {reviewer, reviewerName, result, comments, reviewedAt},
     scoring: {score, scorer, scorerRole, comment, scoredAt, history: [...]},
     comments: [{id, author, authorName, content, createdAt}],
     attachments: [{id, filename, originalname, path, mimetype, size, uploadedAt}],
     revisionHistory, withdrawal, version, createdAt, updatedAt}

``implementationStatus`` is not stored: it is derived from
``implementation.status`` in Python and in SQL (JSON path), so the two can
never disagree.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy.ext.hybrid import hybrid_property

from suggestion_hub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

SUGGESTION_TYPES = {
    "SAFETY": "Dispatch safety",
    "ELECTRICAL": "Equipment (electrical)",
    "MECHANICAL": "Equipment (mechanical)",
    "AUTOMATION": "Automation",
    "MONITORING": "Monitoring",
    "OTHER": "Other",
}

SAFETY_TYPE = "SAFETY"

REVIEW_STATUSES = {
    "PENDING_FIRST_REVIEW": "Awaiting first-level review",
    "PENDING_SECOND_REVIEW": "Awaiting second-level review",
    "APPROVED": "Approved",
    "REJECTED": "Rejected",
    "WITHDRAWN": "Withdrawn",
}

INITIAL_REVIEW_STATUS = "PENDING_FIRST_REVIEW"

REVIEW_RESULTS = {
    "PENDING": "Pending",
    "APPROVED": "Approved",
    "REJECTED": "Rejected",
}

# Results a reviewer may submit
DECISION_RESULTS = {"APPROVED", "REJECTED"}

IMPLEMENTATION_STATUSES = {
    "NOT_STARTED": "Not started",
    "CONTACTING": "Contacting",
    "IN_PROGRESS": "In progress",
    "DELAYED": "Delayed",
    "COMPLETED": "Completed",
    "EVALUATED": "Evaluated",
    "CANCELLED": "Cancelled",
}

# Codes accepted by an implementation update; EVALUATED is set only by scoring
TRACKER_STATUSES = set(IMPLEMENTATION_STATUSES) - {"EVALUATED"}

SCORABLE_STATUSES = {"COMPLETED", "EVALUATED"}

ROLES = {
    "TEAM_MEMBER": "Team member",
    "SHIFT_SUPERVISOR": "Shift supervisor",
    "SAFETY_ADMIN": "Safety administrator",
    "OPERATIONS_ADMIN": "Operations administrator",
    "DEPARTMENT_MANAGER": "Department manager",
}

SCORE_MIN = 0
SCORE_MAX = 10

CONTENT_MIN_LENGTH = 20


# ── Transition tables ────────────────────────────────────────────────────────

REVIEW_TRANSITIONS = {
    "PENDING_FIRST_REVIEW": ["PENDING_SECOND_REVIEW", "REJECTED", "WITHDRAWN"],
    "PENDING_SECOND_REVIEW": ["APPROVED", "REJECTED"],
    "APPROVED": [],
    "REJECTED": ["WITHDRAWN"],
    "WITHDRAWN": [],
}

IMPLEMENTATION_TRANSITIONS = {
    "NOT_STARTED": ["CONTACTING", "CANCELLED"],
    "CONTACTING": ["IN_PROGRESS", "CANCELLED"],
    "IN_PROGRESS": ["COMPLETED", "DELAYED", "CANCELLED"],
    "DELAYED": ["IN_PROGRESS", "COMPLETED", "CANCELLED"],
    "COMPLETED": ["EVALUATED"],
    "EVALUATED": [],
    "CANCELLED": ["CONTACTING"],
}


def validate_review_transition(old_status, new_status):
    """Return True if old_status → new_status is a valid review transition."""
    return new_status in REVIEW_TRANSITIONS.get(old_status, [])


def validate_implementation_transition(old_status, new_status):
    """Return True if old_status → new_status is a valid implementation transition."""
    return new_status in IMPLEMENTATION_TRANSITIONS.get(old_status, [])


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# Suggestion
# ═════════════════════════════════════════════════════════════════════════════


class Suggestion(db.Model):
    """
    Improvement suggestion submitted by an employee.

    ``team`` is a snapshot of the submitter's team at creation time, not a
    live reference. ``version`` is bumped on every UPDATE and the UPDATE is
    conditional on the previously read value.
    """

    __tablename__ = "suggestions"

    # JSON columns holding embedded sub-documents
    DOCUMENT_FIELDS = (
        "first_review", "second_review", "implementation", "scoring",
        "comments", "attachments", "revision_history", "withdrawal",
    )

    id = db.Column(db.String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    title = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(20), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    expected_benefit = db.Column(db.Text, nullable=False)

    submitter_id = db.Column(db.String(64), nullable=False, index=True)
    submitter_name = db.Column(db.String(150), default="")
    team = db.Column(db.String(100), nullable=False, index=True)

    review_status = db.Column(
        db.String(30), nullable=False, default=INITIAL_REVIEW_STATUS, index=True,
    )
    first_review = db.Column(db.JSON(none_as_null=True), nullable=True)
    second_review = db.Column(db.JSON(none_as_null=True), nullable=True)
    implementation = db.Column(db.JSON(none_as_null=True), nullable=True)
    scoring = db.Column(db.JSON(none_as_null=True), nullable=True)
    comments = db.Column(db.JSON, nullable=False, default=list)
    attachments = db.Column(db.JSON, nullable=False, default=list)
    revision_history = db.Column(db.JSON, nullable=False, default=list)
    withdrawal = db.Column(db.JSON(none_as_null=True), nullable=True)

    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        db.Index("ix_suggestions_team_review_status", "team", "review_status"),
        db.Index("ix_suggestions_review_status_type", "review_status", "type"),
        db.Index("ix_suggestions_submitter_created", "submitter_id", "created_at"),
    )

    # ── Derived fields ───────────────────────────────────────────────────

    @hybrid_property
    def implementation_status(self):
        return (self.implementation or {}).get("status")

    @implementation_status.expression
    def implementation_status(cls):
        return cls.implementation["status"].as_string()

    @hybrid_property
    def responsible_person(self):
        return (self.implementation or {}).get("responsiblePerson")

    @responsible_person.expression
    def responsible_person(cls):
        return cls.implementation["responsiblePerson"].as_string()

    @hybrid_property
    def score(self):
        return (self.scoring or {}).get("score")

    @score.expression
    def score(cls):
        return cls.scoring["score"].as_float()

    @property
    def implementation_history(self):
        return list((self.implementation or {}).get("history") or [])

    def find_attachment(self, attachment_id):
        for att in self.attachments or []:
            if att.get("id") == attachment_id:
                return att
        return None

    # ── Serialization ────────────────────────────────────────────────────

    def to_list_row(self):
        """Projected fields for list views."""
        impl = self.implementation or {}
        return {
            "_id": self.id,
            "title": self.title,
            "type": self.type,
            "typeName": SUGGESTION_TYPES.get(self.type, self.type),
            "submitter": self.submitter_id,
            "submitterName": self.submitter_name,
            "team": self.team,
            "reviewStatus": self.review_status,
            "reviewStatusName": REVIEW_STATUSES.get(self.review_status, self.review_status),
            "implementationStatus": self.implementation_status,
            "implementation": {
                "status": impl.get("status"),
                "responsiblePerson": impl.get("responsiblePerson"),
                "completionRate": impl.get("completionRate"),
            } if impl else None,
            "scoring": {"score": self.score} if self.scoring else None,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def to_dict(self):
        status = self.implementation_status
        return {
            "_id": self.id,
            "title": self.title,
            "type": self.type,
            "typeName": SUGGESTION_TYPES.get(self.type, self.type),
            "content": self.content,
            "expectedBenefit": self.expected_benefit,
            "submitter": self.submitter_id,
            "submitterName": self.submitter_name,
            "team": self.team,
            "reviewStatus": self.review_status,
            "reviewStatusName": REVIEW_STATUSES.get(self.review_status, self.review_status),
            "implementationStatus": status,
            "implementationStatusName": IMPLEMENTATION_STATUSES.get(status) if status else None,
            "implementation": self.implementation,
            "firstReview": self.first_review,
            "secondReview": self.second_review,
            "scoring": self.scoring,
            "comments": list(self.comments or []),
            "attachments": list(self.attachments or []),
            "revisionHistory": list(self.revision_history or []),
            "withdrawal": self.withdrawal,
            "version": self.version,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Suggestion {self.id} [{self.review_status}] {self.title!r}>"
