"""
Rationalization Suggestion Workflow
Notification Service.

Fire-and-forget sink for workflow events. Notices are addressed to an
audience role (optionally one team) and persisted as ``Notification`` rows.
A failing notification never fails the operation that triggered it: errors
are logged and swallowed.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import or_

from suggestion_hub.models import db
from suggestion_hub.models.notification import (
    NOTIFICATION_CATEGORIES,
    NOTIFICATION_SEVERITIES,
    Notification,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def notify(audience_role, subject, body="", *, team=None, category="review",
               severity="info", suggestion_id=None):
        """
        Persist one notice for an audience.

        Runs after the triggering write has committed, in its own commit.

        Returns:
            The created Notification, or None when delivery failed.
        """
        if category not in NOTIFICATION_CATEGORIES:
            category = "system"
        if severity not in NOTIFICATION_SEVERITIES:
            severity = "info"
        try:
            notif = Notification(
                audience_role=audience_role,
                team=team,
                title=subject,
                message=body,
                category=category,
                severity=severity,
                entity_type="suggestion",
                entity_id=suggestion_id,
            )
            db.session.add(notif)
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception(
                "Notification to %s failed", audience_role,
                extra={"suggestion_id": suggestion_id, "event_type": "notification.failed"},
            )
            return None
        logger.info(
            "Notified %s: %s", audience_role, subject,
            extra={"suggestion_id": suggestion_id, "event_type": "notification.sent"},
        )
        return notif

    @staticmethod
    def broadcast(audience_roles, subject, body="", **kwargs):
        """Send the same notice to several audience roles."""
        sent = []
        for role in audience_roles:
            notif = NotificationService.notify(role, subject, body, **kwargs)
            if notif is not None:
                sent.append(notif)
        return sent

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def _audience_query(role, team=None):
        q = Notification.query.filter(Notification.audience_role == role)
        return q.filter(or_(Notification.team.is_(None), Notification.team == team))

    @staticmethod
    def list_for_audience(role, team=None, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a role (and team), newest first.
        """
        q = NotificationService._audience_query(role, team)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(role, team=None):
        """Return count of unread notifications."""
        return NotificationService._audience_query(role, team).filter_by(is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, role, team=None):
        """Mark one notification read. Returns None when the caller cannot see it."""
        notif = NotificationService._audience_query(role, team).filter(
            Notification.id == notification_id,
        ).first()
        if not notif:
            return None
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(role, team=None):
        """Mark all notifications for an audience as read."""
        q = NotificationService._audience_query(role, team).filter_by(is_read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count
