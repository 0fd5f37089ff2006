"""initial_suggestion_workflow

Creates the suggestion workflow tables:
  - suggestions     — suggestion aggregate; review / implementation / scoring
                      sub-documents stored as JSON owned by the row
  - notifications   — in-app notices addressed to an audience role

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: 7c1e2a9b4d10
Revises:
Create Date: 2026-10-16 09:12:40.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '7c1e2a9b4d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Suggestions ───────────────────────────────────────────────────────
    if "suggestions" not in existing:
        op.create_table(
            "suggestions",
            sa.Column("id", sa.String(length=32), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("type", sa.String(length=20), nullable=False,
                      comment="SAFETY | ELECTRICAL | MECHANICAL | AUTOMATION | MONITORING | OTHER"),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("expected_benefit", sa.Text(), nullable=False),
            sa.Column("submitter_id", sa.String(length=64), nullable=False),
            sa.Column("submitter_name", sa.String(length=150), nullable=True),
            sa.Column("team", sa.String(length=100), nullable=False,
                      comment="Submitter's team, snapshotted at creation"),
            sa.Column("review_status", sa.String(length=30), nullable=False,
                      server_default="PENDING_FIRST_REVIEW"),
            sa.Column("first_review", sa.JSON(), nullable=True),
            sa.Column("second_review", sa.JSON(), nullable=True),
            sa.Column("implementation", sa.JSON(), nullable=True,
                      comment="Present only once review_status reached APPROVED"),
            sa.Column("scoring", sa.JSON(), nullable=True),
            sa.Column("comments", sa.JSON(), nullable=False),
            sa.Column("attachments", sa.JSON(), nullable=False),
            sa.Column("revision_history", sa.JSON(), nullable=False),
            sa.Column("withdrawal", sa.JSON(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False,
                      comment="Optimistic concurrency counter"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_suggestions_type", "suggestions", ["type"])
        op.create_index("ix_suggestions_submitter_id", "suggestions", ["submitter_id"])
        op.create_index("ix_suggestions_team", "suggestions", ["team"])
        op.create_index("ix_suggestions_review_status", "suggestions", ["review_status"])
        op.create_index("ix_suggestions_created_at", "suggestions", ["created_at"])
        op.create_index("ix_suggestions_team_review_status", "suggestions", ["team", "review_status"])
        op.create_index("ix_suggestions_review_status_type", "suggestions", ["review_status", "type"])
        op.create_index("ix_suggestions_submitter_created", "suggestions", ["submitter_id", "created_at"])

    # ── Notifications ─────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("audience_role", sa.String(length=30), nullable=False,
                      comment="Role code the notice is addressed to"),
            sa.Column("team", sa.String(length=100), nullable=True,
                      comment="Narrow audience to one team; NULL = every team"),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("severity", sa.String(length=20), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=True),
            sa.Column("entity_id", sa.String(length=32), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_audience_role", "notifications", ["audience_role"])
        op.create_index("ix_notifications_team", "notifications", ["team"])
        op.create_index("ix_notifications_entity_id", "notifications", ["entity_id"])


def downgrade():
    op.drop_table("notifications")
    op.drop_table("suggestions")
