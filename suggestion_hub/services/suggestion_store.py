"""
Suggestion Store — persistence of the Suggestion aggregate.

Every write goes through ``SuggestionStore.update``: an atomic
read-modify-write guarded by the row ``version`` column. After the caller's
mutator runs, the store re-checks the structural invariants of the aggregate
before committing:

  - review status moves only along ``REVIEW_TRANSITIONS``
  - ``implementation`` exists iff ``reviewStatus == APPROVED``
  - implementation status is a known code; EVALUATED is terminal and is
    reached from COMPLETED only; with strict transitions enabled every
    change must follow ``IMPLEMENTATION_TRANSITIONS``
  - implementation history is append-only and its last entry carries the
    current status (a synchronizing entry is appended when it does not)

Any exception rolls the session back, so a failed operation leaves the
stored aggregate exactly as it was. Successful writes invalidate the
``suggestion:<id>``, ``suggestions:list`` and ``statistics`` cache tags.
"""

import copy
import json
import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.orm.exc import StaleDataError

from suggestion_hub.core.exceptions import (
    ConflictError,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from suggestion_hub.models import db
from suggestion_hub.models.suggestion import (
    CONTENT_MIN_LENGTH,
    IMPLEMENTATION_STATUSES,
    IMPLEMENTATION_TRANSITIONS,
    INITIAL_REVIEW_STATUS,
    REVIEW_TRANSITIONS,
    SUGGESTION_TYPES,
    Suggestion,
    validate_implementation_transition,
    validate_review_transition,
)
from suggestion_hub.services import cache_service
from suggestion_hub.services.cache_service import LIST_TAG, STATS_TAG, mutation_tags, suggestion_tag

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 200
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

SYNC_NOTE = "status synchronized automatically"

EDITABLE_FIELDS = ("title", "type", "content", "expectedBenefit")

# Query filter key → column / SQL expression
_FILTER_COLUMNS = {
    "reviewStatus": Suggestion.review_status,
    "type": Suggestion.type,
    "team": Suggestion.team,
    "submitter": Suggestion.submitter_id,
    "responsiblePerson": Suggestion.responsible_person,
    "implementationStatus": Suggestion.implementation_status,
}

_SORT_COLUMNS = {
    "createdAt": Suggestion.created_at,
    "updatedAt": Suggestion.updated_at,
    "title": Suggestion.title,
    "type": Suggestion.type,
    "reviewStatus": Suggestion.review_status,
    "score": Suggestion.score,
}

DEFAULT_SORT = "-createdAt"


def _utcnow_iso():
    return datetime.now(timezone.utc).isoformat()


def _normalize_values(value):
    """Coerce a filter value into a set of strings (None → no filter)."""
    if value is None:
        return None
    if isinstance(value, str):
        return {v.strip() for v in value.split(",") if v.strip()}
    return {str(v) for v in value}


def validate_suggestion_fields(values, partial=False, errors=None):
    """Clean the author-editable fields of a suggestion.

    With ``partial=True`` only the keys present in *values* are checked
    (used by edits). Raises ValidationError listing every failing field.
    """
    errors = dict(errors or {})
    fields = {}
    for key in EDITABLE_FIELDS:
        if partial and key not in values:
            continue
        value = values.get(key)
        value = value.strip() if isinstance(value, str) else value
        if not value or not isinstance(value, str):
            errors[key] = "required"
            continue
        fields[key] = value

    if fields.get("type") and fields["type"] not in SUGGESTION_TYPES:
        errors["type"] = f"must be one of {sorted(SUGGESTION_TYPES)}"
    if fields.get("title") and len(fields["title"]) > TITLE_MAX_LENGTH:
        errors["title"] = f"must be at most {TITLE_MAX_LENGTH} characters"
    if fields.get("content") and len(fields["content"]) < CONTENT_MIN_LENGTH:
        errors["content"] = f"must be at least {CONTENT_MIN_LENGTH} characters"
    if errors:
        raise ValidationError("Invalid suggestion", details=errors)
    return fields


def parse_sort(sort):
    """``"-createdAt"`` / ``"title"`` / ``"score:desc"`` → (key, descending)."""
    sort = (sort or DEFAULT_SORT).strip()
    descending = False
    if sort.startswith("-"):
        descending, sort = True, sort[1:]
    elif ":" in sort:
        sort, direction = sort.split(":", 1)
        descending = direction.lower() == "desc"
    if sort not in _SORT_COLUMNS:
        raise ValidationError(
            f"Unknown sort key '{sort}'",
            details={"sort": sorted(_SORT_COLUMNS)},
        )
    return sort, descending


class SuggestionStore:
    """Persistence + invariant gate for Suggestion aggregates.

    Args:
        cache: ``TaggedCache`` used for detail / list projections.
        strict_implementation: enforce the implementation transition table
            on every status change (same-status updates always pass).
    """

    def __init__(self, cache=None, strict_implementation=False,
                 detail_ttl=cache_service.DETAIL_TTL, list_ttl=cache_service.LIST_TTL):
        self.cache = cache or cache_service.get_cache()
        self.strict_implementation = strict_implementation
        self.detail_ttl = detail_ttl
        self.list_ttl = list_ttl

    # ── Create ───────────────────────────────────────────────────────────

    def create(self, draft):
        """Validate a draft and persist it awaiting first review.

        ``draft`` uses the external camelCase keys: title, type, content,
        expectedBenefit, submitter, submitterName, team, attachments.
        """
        errors = {}
        if not draft.get("submitter"):
            errors["submitter"] = "required"
        if not draft.get("team"):
            errors["team"] = "required"
        fields = validate_suggestion_fields(draft, errors=errors)

        suggestion = Suggestion(
            title=fields["title"],
            type=fields["type"],
            content=fields["content"],
            expected_benefit=fields["expectedBenefit"],
            submitter_id=str(draft["submitter"]),
            submitter_name=draft.get("submitterName") or "",
            team=draft["team"],
            review_status=INITIAL_REVIEW_STATUS,
            attachments=list(draft.get("attachments") or []),
            comments=[],
            revision_history=[],
        )
        try:
            db.session.add(suggestion)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        self.cache.invalidate_tags([LIST_TAG, STATS_TAG])
        logger.info(
            "Suggestion created",
            extra={"suggestion_id": suggestion.id, "event_type": "suggestion.created"},
        )
        return suggestion

    # ── Read ─────────────────────────────────────────────────────────────

    def find_by_id(self, suggestion_id):
        suggestion = db.session.get(Suggestion, suggestion_id) if suggestion_id else None
        if suggestion is None:
            raise NotFoundError(resource="Suggestion", resource_id=suggestion_id)
        return suggestion

    def get_detail(self, suggestion_id):
        """Serialized detail, cached under the suggestion's own tag."""
        return self.cache.get_or_load(
            f"suggestion:{suggestion_id}:detail",
            lambda: self.find_by_id(suggestion_id).to_dict(),
            ttl=self.detail_ttl,
            tags=[suggestion_tag(suggestion_id)],
        )

    def query(self, filters=None, sort=None, page=1, page_size=DEFAULT_PAGE_SIZE):
        """Filtered, sorted, paginated list rows.

        Each filter accepts a set of values (OR within a filter, AND across
        filters). ``excludeType`` removes types; ``search`` matches title or
        content case-insensitively.

        Returns:
            {"items": [...], "total": int, "page": int, "pageSize": int}
        """
        filters = filters or {}
        sort_key, descending = parse_sort(sort)
        try:
            page = max(int(page or 1), 1)
            page_size = min(max(int(page_size or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
        except (TypeError, ValueError):
            raise ValidationError("page and pageSize must be integers")

        normalized = {}
        for key in (*_FILTER_COLUMNS, "excludeType"):
            values = _normalize_values(filters.get(key))
            if values is not None:
                normalized[key] = sorted(values)
        search = (filters.get("search") or "").strip()

        cache_key = "suggestions:list:" + json.dumps(
            {"f": normalized, "q": search, "s": [sort_key, descending], "p": page, "n": page_size},
            sort_keys=True,
        )

        def _load():
            q = Suggestion.query
            for key, values in normalized.items():
                if key == "excludeType":
                    q = q.filter(~Suggestion.type.in_(values))
                else:
                    q = q.filter(_FILTER_COLUMNS[key].in_(values))
            if search:
                like = f"%{search}%"
                q = q.filter(or_(Suggestion.title.ilike(like), Suggestion.content.ilike(like)))

            total = q.count()
            column = _SORT_COLUMNS[sort_key]
            order = column.desc() if descending else column.asc()
            rows = (
                q.order_by(order, Suggestion.id.asc())
                .offset((page - 1) * page_size)
                .limit(page_size)
                .all()
            )
            return {
                "items": [row.to_list_row() for row in rows],
                "total": total,
                "page": page,
                "pageSize": page_size,
            }

        return self.cache.get_or_load(cache_key, _load, ttl=self.list_ttl, tags=[LIST_TAG])

    # ── Update ───────────────────────────────────────────────────────────

    def update(self, suggestion_id, mutator, expected_version=None):
        """Atomic read-modify-write of one aggregate.

        ``mutator(suggestion)`` may change any attribute in place, including
        nested JSON documents. Its return value is passed back to the caller
        together with the saved row.

        Raises:
            NotFoundError, ConflictError, ValidationError,
            InvalidStateTransition, or whatever the mutator raises.
        """
        suggestion = self.find_by_id(suggestion_id)
        if expected_version is not None and suggestion.version != expected_version:
            raise ConflictError("Suggestion", suggestion_id, expected_version)

        before_review = suggestion.review_status
        before_impl = suggestion.implementation_status
        before_history = suggestion.implementation_history

        # Work on private copies so nested edits register as changes.
        for field in Suggestion.DOCUMENT_FIELDS:
            setattr(suggestion, field, copy.deepcopy(getattr(suggestion, field)))

        try:
            result = mutator(suggestion)
            self._check_invariants(suggestion, before_review, before_impl, before_history)
            db.session.commit()
        except StaleDataError:
            db.session.rollback()
            logger.warning(
                "Concurrent write rejected",
                extra={"suggestion_id": suggestion_id, "event_type": "suggestion.conflict"},
            )
            raise ConflictError("Suggestion", suggestion_id, expected_version)
        except Exception:
            db.session.rollback()
            raise

        self.cache.invalidate_tags(mutation_tags(suggestion_id))
        return suggestion, result

    # ── Delete ───────────────────────────────────────────────────────────

    def delete(self, suggestion_id):
        suggestion = self.find_by_id(suggestion_id)
        try:
            db.session.delete(suggestion)
            db.session.commit()
        except StaleDataError:
            db.session.rollback()
            logger.warning(
                "Concurrent write rejected delete",
                extra={"suggestion_id": suggestion_id, "event_type": "suggestion.conflict"},
            )
            raise ConflictError("Suggestion", suggestion_id)
        except Exception:
            db.session.rollback()
            raise
        self.cache.invalidate_tags(mutation_tags(suggestion_id))
        logger.info(
            "Suggestion deleted",
            extra={"suggestion_id": suggestion_id, "event_type": "suggestion.deleted"},
        )

    # ── Invariants ───────────────────────────────────────────────────────

    def _check_invariants(self, suggestion, before_review, before_impl, before_history):
        after_review = suggestion.review_status
        if after_review != before_review and not validate_review_transition(before_review, after_review):
            raise InvalidStateTransition(
                f"move review to {after_review}",
                current=before_review,
                expected=[s for s, targets in REVIEW_TRANSITIONS.items() if after_review in targets],
            )

        impl = suggestion.implementation
        if after_review == "APPROVED":
            if not isinstance(impl, dict) or not impl.get("status"):
                raise ValidationError("An approved suggestion must carry an implementation record")
        elif impl is not None:
            raise ValidationError("Implementation exists only for approved suggestions")
        if impl is None:
            return

        after_impl = impl["status"]
        if after_impl not in IMPLEMENTATION_STATUSES:
            raise ValidationError(
                f"Unknown implementation status '{after_impl}'",
                details={"status": sorted(IMPLEMENTATION_STATUSES)},
            )
        if before_impl is None:
            if after_impl != "NOT_STARTED":
                raise InvalidStateTransition(
                    f"start implementation in {after_impl}", current=None, expected=["NOT_STARTED"],
                )
        elif after_impl != before_impl:
            if before_impl == "EVALUATED":
                raise InvalidStateTransition(
                    "change an evaluated implementation", current=before_impl,
                    reason="EVALUATED is terminal",
                )
            if after_impl == "EVALUATED" and before_impl != "COMPLETED":
                raise InvalidStateTransition(
                    "evaluate implementation", current=before_impl, expected=["COMPLETED"],
                )
            if self.strict_implementation and not validate_implementation_transition(before_impl, after_impl):
                raise InvalidStateTransition(
                    f"move implementation to {after_impl}",
                    current=before_impl,
                    expected=[s for s, targets in IMPLEMENTATION_TRANSITIONS.items() if after_impl in targets],
                )

        history = impl.get("history")
        if not isinstance(history, list):
            history = []
        if history[:len(before_history)] != before_history:
            raise ValidationError("Implementation history is append-only")
        if not history or history[-1].get("status") != after_impl:
            logger.warning(
                "Implementation history tail out of sync; appending %s",
                after_impl,
                extra={"suggestion_id": suggestion.id, "event_type": "implementation.sync"},
            )
            history.append({
                "status": after_impl,
                "updatedBy": "system",
                "date": _utcnow_iso(),
                "notes": SYNC_NOTE,
            })
        impl["history"] = history


def get_store():
    """Store bound to the current application (created by the app factory)."""
    return current_app.extensions["suggestion_store"]
