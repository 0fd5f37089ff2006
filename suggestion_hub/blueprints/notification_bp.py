"""
Notification Blueprint.

Routes:
  GET /notifications            – notices for the caller's role (and team)
  PUT /notifications/<id>/read  – mark one read
  PUT /notifications/read-all   – mark them all read
"""

from flask import Blueprint, jsonify, request

from suggestion_hub.auth import current_principal
from suggestion_hub.blueprints import register_error_handlers
from suggestion_hub.core.exceptions import NotFoundError
from suggestion_hub.services.notification import NotificationService

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1/notifications")
register_error_handlers(notification_bp)


@notification_bp.route("", methods=["GET"])
def list_notifications():
    principal = current_principal()
    unread_only = request.args.get("unread", "false").lower() == "true"
    try:
        limit = min(int(request.args.get("limit", 50)), 200)
        offset = max(int(request.args.get("offset", 0)), 0)
    except (TypeError, ValueError):
        limit, offset = 50, 0
    items, total = NotificationService.list_for_audience(
        principal.role, principal.team, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread": NotificationService.unread_count(principal.role, principal.team),
    })


@notification_bp.route("/<int:notification_id>/read", methods=["PUT"])
def mark_read(notification_id):
    principal = current_principal()
    notif = NotificationService.mark_read(notification_id, principal.role, principal.team)
    if notif is None:
        raise NotFoundError(resource="Notification", resource_id=notification_id)
    return jsonify(notif.to_dict())


@notification_bp.route("/read-all", methods=["PUT"])
def mark_all_read():
    principal = current_principal()
    count = NotificationService.mark_all_read(principal.role, principal.team)
    return jsonify({"marked": count})
