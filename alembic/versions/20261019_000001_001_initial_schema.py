"""Initial schema for SciDraft.

Creates tables: users, admins, admin_manual_templates, manual_templates,
drafts, reports, payments, feedback, notifications, admin_logs.

Session-keyed tables carry a unique session_id so writes can use
INSERT ... ON CONFLICT (session_id).

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True):
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())]
    if updated:
        columns.append(sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True))
    return columns


def upgrade() -> None:
    # Accounts
    op.create_table(
        "users",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="student"),
        sa.Column("plan", sa.String(20), nullable=False, server_default="free"),
        sa.Column("email_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sign_in_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_users_plan", "users", ["plan"])

    op.create_table(
        "admins",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="admin"),
        sa.Column("password_hash", sa.String(255), nullable=False),
        *_timestamps(updated=False),
    )

    # Manuals & templates
    op.create_table(
        "admin_manual_templates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("unit_name", sa.String(255), nullable=True),
        sa.Column("unit_code", sa.String(50), nullable=True),
        sa.Column("practical_title", sa.String(500), nullable=True),
        sa.Column("practical_number", sa.Integer, nullable=True),
        sa.Column("year", sa.Integer, nullable=True),
        sa.Column("subject", sa.String(100), nullable=True),
        sa.Column("practical_content", sa.Text, nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("idx_admin_manual_templates_created_at", "admin_manual_templates", ["created_at"])
    op.create_index("idx_admin_manual_templates_year", "admin_manual_templates", ["year"])

    op.create_table(
        "manual_templates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(36), nullable=False, unique=True),
        sa.Column("manual_url", sa.Text, nullable=True),
        sa.Column("parsed_text", sa.Text, nullable=True),
        sa.Column("results", sa.Text, nullable=True),
        sa.Column("uploaded_by", sa.String(100), nullable=True),
        sa.Column("practical_title", sa.String(500), nullable=True),
        sa.Column("practical_number", sa.Integer, nullable=True),
        sa.Column("unit_code", sa.String(50), nullable=True),
        sa.Column("subject", sa.String(100), nullable=True),
        *_timestamps(),
    )

    # Drafts & reports
    op.create_table(
        "drafts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(36), nullable=False, unique=True),
        sa.Column("user_id", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="processing"),
        sa.Column("draft", postgresql.JSONB, nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_drafts_status", "drafts", ["status"])

    op.create_table(
        "reports",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(36), nullable=False, unique=True),
        sa.Column("user_id", sa.String(100), nullable=True),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("subject", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("priority", sa.String(20), nullable=True),
        sa.Column("admin_notes", sa.Text, nullable=True),
        sa.Column("draft_json", postgresql.JSONB, nullable=True),
        sa.Column("results_json", postgresql.JSONB, nullable=True),
        sa.Column("content", postgresql.JSONB, nullable=True),
        sa.Column("details", postgresql.JSONB, nullable=True),
        sa.Column("last_updated_by", sa.String(255), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_reports_user_id", "reports", ["user_id"])
    op.create_index("idx_reports_status", "reports", ["status"])
    op.create_index("idx_reports_created_at", "reports", [sa.text("created_at DESC")])

    # Payments, feedback, notifications, audit
    op.create_table(
        "payments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(100), nullable=True),
        sa.Column("session_id", sa.String(36), nullable=True),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column("method", sa.String(20), nullable=False, server_default="mpesa"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("transaction_id", sa.String(255), nullable=True),
        sa.Column("checkout_request_id", sa.String(100), nullable=True, unique=True),
        sa.Column("phone_number", sa.String(20), nullable=True),
        sa.Column("mpesa_code", sa.String(50), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("idx_payments_session_id", "payments", ["session_id"])
    op.create_index("idx_payments_status_created", "payments", ["status", "created_at"])

    op.create_table(
        "feedback",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(100), nullable=True),
        sa.Column("rating", sa.Integer, nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        *_timestamps(updated=False),
        sa.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_feedback_rating_range"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("user_id", sa.String(100), nullable=True),
        sa.Column("role", sa.String(20), nullable=True),
        sa.Column("type", sa.String(30), nullable=False, server_default="system"),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(updated=False),
    )
    op.create_index("idx_notifications_read", "notifications", ["read"])

    op.create_table(
        "admin_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("target_type", sa.String(50), nullable=True),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("details", postgresql.JSONB, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_admin_logs_timestamp", "admin_logs", [sa.text("timestamp DESC")])


def downgrade() -> None:
    op.drop_table("admin_logs")
    op.drop_table("notifications")
    op.drop_table("feedback")
    op.drop_table("payments")
    op.drop_table("reports")
    op.drop_table("drafts")
    op.drop_table("manual_templates")
    op.drop_table("admin_manual_templates")
    op.drop_table("admins")
    op.drop_table("users")
