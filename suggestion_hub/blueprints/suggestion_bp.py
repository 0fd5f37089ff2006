"""
Suggestion Blueprint — submission, review, implementation and scoring.

Routes:
  POST   /suggestions                              – submit (JSON or multipart)
  GET    /suggestions                              – filtered list
  GET    /suggestions/pending-review               – caller's review queue
  GET    /suggestions/meta                         – enumerations + labels
  GET    /suggestions/<id>                         – detail
  PUT    /suggestions/<id>                         – edit (submitter, first stage only)
  DELETE /suggestions/<id>                         – delete
  POST   /suggestions/<id>/review/first            – first-stage review
  POST   /suggestions/<id>/review/second           – second-stage review
  PUT    /suggestions/<id>/withdraw                – withdraw
  PUT    /suggestions/<id>/implementation          – implementation update
  POST   /suggestions/<id>/score                   – score
  POST   /suggestions/<id>/comments                – comment
  GET    /suggestions/<id>/attachments/<aid>       – download attachment
  DELETE /suggestions/<id>/attachments/<aid>       – delete attachment
"""

import io

from flask import Blueprint, jsonify, request, send_file

from suggestion_hub.auth import current_principal
from suggestion_hub.blueprints import read_page_args, register_error_handlers
from suggestion_hub.core.exceptions import ValidationError
from suggestion_hub.models.suggestion import (
    IMPLEMENTATION_STATUSES,
    REVIEW_RESULTS,
    REVIEW_STATUSES,
    ROLES,
    SCORE_MAX,
    SCORE_MIN,
    SUGGESTION_TYPES,
)
from suggestion_hub.services.capabilities import capabilities_of
from suggestion_hub.services.implementation_tracker import ImplementationTracker
from suggestion_hub.services.review_pipeline import ReviewPipeline
from suggestion_hub.services.scoring_service import ScoringService
from suggestion_hub.services.suggestion_service import SuggestionService
from suggestion_hub.services.suggestion_store import get_store

suggestion_bp = Blueprint("suggestion_bp", __name__, url_prefix="/api/v1/suggestions")
register_error_handlers(suggestion_bp)

_LIST_FILTERS = (
    "reviewStatus", "type", "team", "submitter",
    "responsiblePerson", "implementationStatus",
)


# ── helpers ──────────────────────────────────────────────────────────────

def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _expected_version(data):
    value = data.get("version", request.headers.get("If-Match"))
    if value in (None, ""):
        return None
    try:
        return int(str(value).strip('"'))
    except ValueError:
        raise ValidationError("version must be an integer", details={"version": "invalid"})


def _detail(suggestion_id):
    return get_store().get_detail(suggestion_id)


# ═════════════════════════════════════════════════════════════════════════════
# COLLECTION
# ═════════════════════════════════════════════════════════════════════════════

@suggestion_bp.route("", methods=["POST"])
def submit_suggestion():
    """Submit a suggestion.

    JSON body or multipart form: { title, type, content, expectedBenefit }
    Multipart uploads go under the ``attachments`` field.
    """
    if request.mimetype == "multipart/form-data":
        draft = request.form.to_dict()
        files = request.files.getlist("attachments")
    else:
        draft = _json_body()
        files = []
    suggestion = SuggestionService().submit_suggestion(current_principal(), draft, files)
    return jsonify(_detail(suggestion.id)), 201


@suggestion_bp.route("", methods=["GET"])
def list_suggestions():
    """List suggestions visible to the caller.

    Query params: reviewStatus, type, team, submitter, responsiblePerson,
    implementationStatus (comma-separated for multi-value), search, sort,
    page, pageSize.
    """
    filters = {key: request.args.get(key) for key in _LIST_FILTERS if request.args.get(key)}
    if request.args.get("search"):
        filters["search"] = request.args["search"]
    # Visibility narrows (never widens) caller-supplied filters
    for key, allowed in capabilities_of(current_principal()).visibility_filter().items():
        requested = filters.get(key)
        if requested:
            requested = {v.strip() for v in requested.split(",")}
            filters[key] = requested & allowed
        else:
            filters[key] = allowed
    page, page_size = read_page_args()
    result = get_store().query(filters, sort=request.args.get("sort"), page=page, page_size=page_size)
    return jsonify(result)


@suggestion_bp.route("/pending-review", methods=["GET"])
def pending_review():
    page, page_size = read_page_args()
    return jsonify(ReviewPipeline().list_pending_reviews(current_principal(), page, page_size))


@suggestion_bp.route("/meta", methods=["GET"])
def meta():
    """Enumerations with display labels for the front end."""
    return jsonify({
        "types": SUGGESTION_TYPES,
        "reviewStatuses": REVIEW_STATUSES,
        "reviewResults": REVIEW_RESULTS,
        "implementationStatuses": IMPLEMENTATION_STATUSES,
        "roles": ROLES,
        "score": {"min": SCORE_MIN, "max": SCORE_MAX},
    })


# ═════════════════════════════════════════════════════════════════════════════
# SINGLE SUGGESTION
# ═════════════════════════════════════════════════════════════════════════════

@suggestion_bp.route("/<suggestion_id>", methods=["GET"])
def get_suggestion(suggestion_id):
    return jsonify(_detail(suggestion_id))


@suggestion_bp.route("/<suggestion_id>", methods=["PUT"])
def edit_suggestion(suggestion_id):
    """Edit title/type/content/expectedBenefit. Body must include ``reason``."""
    data = _json_body()
    SuggestionService().edit_suggestion(
        suggestion_id, current_principal(), data, expected_version=_expected_version(data),
    )
    return jsonify(_detail(suggestion_id))


@suggestion_bp.route("/<suggestion_id>", methods=["DELETE"])
def delete_suggestion(suggestion_id):
    SuggestionService().delete_suggestion(suggestion_id, current_principal())
    return jsonify({"deleted": True, "_id": suggestion_id})


# ── Review ───────────────────────────────────────────────────────────────

@suggestion_bp.route("/<suggestion_id>/review/first", methods=["POST"])
def first_review(suggestion_id):
    """Body: { result: APPROVED|REJECTED, comments }"""
    data = _json_body()
    ReviewPipeline().submit_first_review(
        suggestion_id, current_principal(), data.get("result"),
        data.get("comments", data.get("comment", "")),
    )
    return jsonify(_detail(suggestion_id))


@suggestion_bp.route("/<suggestion_id>/review/second", methods=["POST"])
def second_review(suggestion_id):
    """Body: { result: APPROVED|REJECTED, comments }"""
    data = _json_body()
    ReviewPipeline().submit_second_review(
        suggestion_id, current_principal(), data.get("result"),
        data.get("comments", data.get("comment", "")),
    )
    return jsonify(_detail(suggestion_id))


@suggestion_bp.route("/<suggestion_id>/withdraw", methods=["PUT"])
def withdraw(suggestion_id):
    """Body: { reason }"""
    data = _json_body()
    ReviewPipeline().withdraw(suggestion_id, current_principal(), data.get("reason"))
    return jsonify(_detail(suggestion_id))


# ── Implementation / scoring ─────────────────────────────────────────────

@suggestion_bp.route("/<suggestion_id>/implementation", methods=["PUT"])
def update_implementation(suggestion_id):
    """Body: { status, notes, responsiblePerson?, startDate?,
    plannedCompletionDate?, actualCompletionDate?, completionRate?, timeCost? }
    """
    data = _json_body()
    ImplementationTracker().update_implementation(
        suggestion_id, current_principal(), data, expected_version=_expected_version(data),
    )
    return jsonify(_detail(suggestion_id))


@suggestion_bp.route("/<suggestion_id>/score", methods=["POST"])
def score(suggestion_id):
    """Body: { score: 0..10, comment }"""
    data = _json_body()
    ScoringService().score_suggestion(
        suggestion_id, current_principal(), data.get("score"), data.get("comment", ""),
    )
    return jsonify(_detail(suggestion_id))


# ── Comments ─────────────────────────────────────────────────────────────

@suggestion_bp.route("/<suggestion_id>/comments", methods=["POST"])
def add_comment(suggestion_id):
    """Body: { content }"""
    data = _json_body()
    comment = SuggestionService().add_comment(suggestion_id, current_principal(), data.get("content"))
    return jsonify(comment), 201


# ── Attachments ──────────────────────────────────────────────────────────

@suggestion_bp.route("/<suggestion_id>/attachments/<attachment_id>", methods=["GET"])
def download_attachment(suggestion_id, attachment_id):
    meta, payload = SuggestionService().open_attachment(suggestion_id, attachment_id)
    return send_file(
        io.BytesIO(payload),
        mimetype=meta.get("mimetype") or "application/octet-stream",
        as_attachment=True,
        download_name=meta.get("originalname") or meta.get("filename"),
    )


@suggestion_bp.route("/<suggestion_id>/attachments/<attachment_id>", methods=["DELETE"])
def delete_attachment(suggestion_id, attachment_id):
    SuggestionService().delete_attachment(suggestion_id, attachment_id, current_principal())
    return jsonify(_detail(suggestion_id))
