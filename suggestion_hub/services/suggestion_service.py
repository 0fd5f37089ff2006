"""
Suggestion authoring — submit, edit, comment, delete and attachments.

Review, implementation and scoring transitions live in their own modules;
this service covers what a submitter (or an administrator cleaning up)
does around them.
"""

import logging
import uuid
from datetime import datetime, timezone

from flask import current_app

from suggestion_hub.core.exceptions import (
    ForbiddenError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from suggestion_hub.services.attachment_store import get_attachment_store
from suggestion_hub.services.capabilities import capabilities_of
from suggestion_hub.services.suggestion_store import (
    EDITABLE_FIELDS,
    get_store,
    validate_suggestion_fields,
)

logger = logging.getLogger(__name__)

COMMENT_MAX_LENGTH = 2000
ATTACHMENT_LOCKED_STATUSES = ("PENDING_SECOND_REVIEW", "APPROVED")


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


class SuggestionService:

    def __init__(self, store=None, attachments=None, max_attachments=None):
        self.store = store or get_store()
        self.attachments = attachments or get_attachment_store()
        self.max_attachments = (
            max_attachments if max_attachments is not None
            else current_app.config["MAX_ATTACHMENTS"]
        )

    # ── Submit ───────────────────────────────────────────────────────────

    def submit_suggestion(self, principal, draft, files=()):
        """Create a suggestion for *principal*; submitter and team are snapshotted."""
        if not capabilities_of(principal).can_submit():
            raise ForbiddenError(f"Role {principal.role} may not submit suggestions")
        if not principal.team:
            raise ValidationError("Submitter has no team", details={"team": "required"})
        files = [f for f in (files or []) if f and f.filename]
        if len(files) > self.max_attachments:
            raise ValidationError(
                f"At most {self.max_attachments} attachments per suggestion",
                details={"attachments": f"max {self.max_attachments}"},
            )
        validate_suggestion_fields(draft)

        stored = []
        try:
            for f in files:
                stored.append(self.attachments.put(f))
            suggestion = self.store.create({
                **{k: draft.get(k) for k in EDITABLE_FIELDS},
                "submitter": principal.id,
                "submitterName": principal.name,
                "team": principal.team,
                "attachments": stored,
            })
        except Exception:
            for meta in stored:
                self._discard_blob(meta)
            raise
        return suggestion

    # ── Edit ─────────────────────────────────────────────────────────────

    def edit_suggestion(self, suggestion_id, principal, changes, expected_version=None):
        """Submitter-only edit while the suggestion awaits first review."""
        changes = changes or {}
        reason = (changes.get("reason") or "").strip()
        if not reason:
            raise ValidationError("A reason for the change is required", details={"reason": "required"})
        fields = validate_suggestion_fields(changes, partial=True)
        if not fields:
            raise ValidationError(
                "Nothing to update",
                details={"fields": list(EDITABLE_FIELDS)},
            )
        caps = capabilities_of(principal)

        def _apply(s):
            if not caps.can_edit(s):
                raise ForbiddenError("Only the submitter may edit a suggestion")
            if s.review_status != "PENDING_FIRST_REVIEW":
                raise InvalidStateTransition(
                    "edit suggestion", current=s.review_status,
                    expected=["PENDING_FIRST_REVIEW"],
                )
            s.revision_history.append({
                "title": s.title,
                "type": s.type,
                "content": s.content,
                "expectedBenefit": s.expected_benefit,
                "modifiedBy": principal.id,
                "reason": reason,
                "modifiedAt": _now_iso(),
            })
            s.title = fields.get("title", s.title)
            s.type = fields.get("type", s.type)
            s.content = fields.get("content", s.content)
            s.expected_benefit = fields.get("expectedBenefit", s.expected_benefit)

        suggestion, _ = self.store.update(suggestion_id, _apply, expected_version)
        logger.info(
            "Suggestion edited by %s", principal.id,
            extra={"suggestion_id": suggestion_id, "event_type": "suggestion.edited"},
        )
        return suggestion

    # ── Comments ─────────────────────────────────────────────────────────

    def add_comment(self, suggestion_id, principal, content):
        content = (content or "").strip() if isinstance(content, str) else ""
        if not content:
            raise ValidationError("Comment content is required", details={"content": "required"})
        if len(content) > COMMENT_MAX_LENGTH:
            raise ValidationError(
                f"Comment must be at most {COMMENT_MAX_LENGTH} characters",
                details={"content": f"max {COMMENT_MAX_LENGTH}"},
            )
        comment = {
            "id": uuid.uuid4().hex,
            "author": principal.id,
            "authorName": principal.name,
            "content": content,
            "createdAt": _now_iso(),
        }

        def _apply(s):
            s.comments.append(comment)

        self.store.update(suggestion_id, _apply)
        return comment

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_suggestion(self, suggestion_id, principal):
        suggestion = self.store.find_by_id(suggestion_id)
        caps = capabilities_of(principal)
        if not caps.can_delete(suggestion):
            if caps.is_submitter(suggestion):
                raise ForbiddenError("A suggestion whose implementation has started cannot be deleted")
            raise ForbiddenError("Only the submitter or a department manager may delete a suggestion")
        blobs = list(suggestion.attachments or [])
        self.store.delete(suggestion_id)
        for meta in blobs:
            self._discard_blob(meta)

    # ── Attachments ──────────────────────────────────────────────────────

    def open_attachment(self, suggestion_id, attachment_id):
        """Return ``(metadata, bytes)`` for one attachment."""
        suggestion = self.store.find_by_id(suggestion_id)
        meta = suggestion.find_attachment(attachment_id)
        if meta is None:
            raise NotFoundError(resource="Attachment", resource_id=attachment_id)
        return meta, self.attachments.get(meta)

    def delete_attachment(self, suggestion_id, attachment_id, principal):
        caps = capabilities_of(principal)

        def _apply(s):
            if not caps.can_manage_attachments(s):
                raise ForbiddenError("Only the submitter or an administrator may delete attachments")
            if s.review_status in ATTACHMENT_LOCKED_STATUSES:
                raise InvalidStateTransition(
                    "delete attachment", current=s.review_status,
                    expected=["PENDING_FIRST_REVIEW", "REJECTED", "WITHDRAWN"],
                    reason="attachments are locked once review has advanced",
                )
            meta = s.find_attachment(attachment_id)
            if meta is None:
                raise NotFoundError(resource="Attachment", resource_id=attachment_id)
            s.attachments = [a for a in s.attachments if a.get("id") != attachment_id]
            return meta

        _, meta = self.store.update(suggestion_id, _apply)
        self._discard_blob(meta)
        return meta

    def _discard_blob(self, meta):
        try:
            self.attachments.delete(meta)
        except Exception:
            logger.warning("Could not remove attachment blob %s", meta.get("path"), exc_info=True)
