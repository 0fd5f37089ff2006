"""
Rationalization Suggestion Workflow
Notification domain model.

Models:
    - Notification: in-app notification addressed to an audience role
                    (optionally narrowed to one team) with read tracking
"""

from datetime import datetime, timezone

from suggestion_hub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_CATEGORIES = {"review", "implementation", "scoring", "system"}
NOTIFICATION_SEVERITIES = {"info", "warning", "error", "success"}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per audience per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    audience_role = db.Column(db.String(30), nullable=False, index=True, comment="Role code the notice is addressed to")
    team = db.Column(db.String(100), nullable=True, index=True, comment="Narrow audience to one team; NULL = every team")
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    category = db.Column(db.String(30), default="system")
    severity = db.Column(db.String(20), default="info")

    # Link to source suggestion
    entity_type = db.Column(db.String(30), default="suggestion")
    entity_id = db.Column(db.String(32), nullable=True, index=True)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "audience_role": self.audience_role,
            "team": self.team,
            "title": self.title,
            "message": self.message,
            "category": self.category,
            "severity": self.severity,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id} → {self.audience_role}: {self.title[:40]}>"
