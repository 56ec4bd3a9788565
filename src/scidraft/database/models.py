"""SQLAlchemy ORM models for SciDraft.

Tables:
- users: Student accounts mirrored from the hosted auth service
- admins: Back-office accounts with a role and a bcrypt password hash
- admin_manual_templates: Curated practical manuals students can import
- manual_templates: Per-session manual text and results (one row per session)
- drafts: Per-session draft generation status and JSON (one row per session)
- reports: Per-session report context, draft and full report content
- payments: M-Pesa unlock payments
- feedback: Ratings and comments
- notifications: Events surfaced in the admin back-office
- admin_logs: Audit trail for admin and payment actions

Session-keyed tables (manual_templates, drafts, reports) carry a unique
constraint on session_id so writes can use INSERT ... ON CONFLICT.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    String,
    Integer,
    Float,
    Boolean,
    Text,
    DateTime,
    JSON,
    Index,
    CheckConstraint,
    inspect,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> str:
    return str(uuid.uuid4())


# ============================================================================
# Constants
# ============================================================================

PLAN_FREE = "free"
PLAN_PREMIUM = "premium"

VALID_PLANS = {PLAN_FREE, PLAN_PREMIUM}

# Draft status lifecycle: processing -> completed / failed
DRAFT_STATUS_PROCESSING = "processing"
DRAFT_STATUS_COMPLETED = "completed"
DRAFT_STATUS_FAILED = "failed"

VALID_DRAFT_STATUSES = {DRAFT_STATUS_PROCESSING, DRAFT_STATUS_COMPLETED, DRAFT_STATUS_FAILED}

REPORT_STATUS_DRAFT = "draft"
REPORT_STATUS_DRAFT_LIMITED = "draft_limited"
REPORT_STATUS_PROCESSING = "processing"
REPORT_STATUS_COMPLETED = "completed"
REPORT_STATUS_FAILED = "failed"
REPORT_STATUS_DELETED = "deleted"

VALID_REPORT_STATUSES = {
    REPORT_STATUS_DRAFT,
    REPORT_STATUS_DRAFT_LIMITED,
    REPORT_STATUS_PROCESSING,
    REPORT_STATUS_COMPLETED,
    REPORT_STATUS_FAILED,
    REPORT_STATUS_DELETED,
}

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_SUCCESS = "success"
PAYMENT_STATUS_FAILED = "failed"

VALID_PAYMENT_STATUSES = {PAYMENT_STATUS_PENDING, PAYMENT_STATUS_SUCCESS, PAYMENT_STATUS_FAILED}

NOTIFICATION_TYPES = {
    "signup",
    "login",
    "draft",
    "report",
    "payment_success",
    "payment_failed",
    "password_change",
    "system",
}

TEMPLATE_IMPORT_MANUAL_URL = "template_import"


class SerializableMixin:
    """Adds a JSON-friendly to_dict() keyed by column name."""

    def to_dict(self, exclude: tuple = ()) -> dict:
        data = {}
        for attr in inspect(self).mapper.column_attrs:
            name = attr.columns[0].name
            if name in exclude:
                continue
            value = getattr(self, attr.key)
            if isinstance(value, datetime):
                value = value.isoformat()
            data[name] = value
        return data


# ============================================================================
# Accounts
# ============================================================================

class User(SerializableMixin, Base):
    """Student account mirrored from the hosted auth service.

    Rows are created on first authenticated request (see auth.get_or_create_user).
    """

    __tablename__ = "users"

    # Auth provider user id
    id = Column(String(100), primary_key=True)
    email = Column(String(255), nullable=True, unique=True)
    role = Column(String(20), nullable=False, default="student")
    plan = Column(String(20), nullable=False, default=PLAN_FREE)

    email_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    last_sign_in_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    __table_args__ = (
        Index("idx_users_plan", "plan"),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, plan={self.plan})>"

    @property
    def is_premium(self) -> bool:
        """Check if user has premium plan."""
        return self.plan == PLAN_PREMIUM

    @property
    def is_email_confirmed(self) -> bool:
        return self.email_confirmed_at is not None


class Admin(SerializableMixin, Base):
    """Back-office account. Role is one of moderator / admin / super_admin."""

    __tablename__ = "admins"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(String(20), nullable=False, default="admin")
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Admin(email={self.email}, role={self.role})>"


# ============================================================================
# Manuals & Templates
# ============================================================================

class AdminManualTemplate(SerializableMixin, Base):
    """Curated practical manual that students can import into a session."""

    __tablename__ = "admin_manual_templates"

    id = Column(String(36), primary_key=True, default=new_uuid)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    unit_name = Column(String(255), nullable=True)
    unit_code = Column(String(50), nullable=True)
    practical_title = Column(String(500), nullable=True)
    practical_number = Column(Integer, nullable=True)
    year = Column(Integer, nullable=True)
    subject = Column(String(100), nullable=True)
    practical_content = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_admin_manual_templates_created_at", "created_at"),
        Index("idx_admin_manual_templates_year", "year"),
    )

    def __repr__(self):
        return f"<AdminManualTemplate(id={self.id}, title={self.practical_title})>"


class ManualTemplate(SerializableMixin, Base):
    """Manual text and student results for one drafting session."""

    __tablename__ = "manual_templates"

    id = Column(String(36), primary_key=True, default=new_uuid)
    session_id = Column(String(36), nullable=False, unique=True)
    manual_url = Column(Text, nullable=True)
    parsed_text = Column(Text, nullable=True)
    results = Column(Text, nullable=True)
    uploaded_by = Column(String(100), nullable=True)

    practical_title = Column(String(500), nullable=True)
    practical_number = Column(Integer, nullable=True)
    unit_code = Column(String(50), nullable=True)
    subject = Column(String(100), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    def __repr__(self):
        return f"<ManualTemplate(session_id={self.session_id}, url={self.manual_url})>"


# ============================================================================
# Drafts & Reports
# ============================================================================

class Draft(SerializableMixin, Base):
    """Draft generation state for one session.

    Status lifecycle: processing -> completed / failed
    """

    __tablename__ = "drafts"

    id = Column(String(36), primary_key=True, default=new_uuid)
    session_id = Column(String(36), nullable=False, unique=True)
    user_id = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default=DRAFT_STATUS_PROCESSING)
    draft = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    __table_args__ = (
        Index("idx_drafts_status", "status"),
    )

    def __repr__(self):
        return f"<Draft(session_id={self.session_id}, status={self.status})>"


class Report(SerializableMixin, Base):
    """Report context, generated draft and full report for one session."""

    __tablename__ = "reports"

    id = Column(String(36), primary_key=True, default=new_uuid)
    session_id = Column(String(36), nullable=False, unique=True)
    user_id = Column(String(100), nullable=True)

    title = Column(String(500), nullable=True)
    subject = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default=REPORT_STATUS_DRAFT)
    priority = Column(String(20), nullable=True)
    admin_notes = Column(Text, nullable=True)

    draft_json = Column(JSON, nullable=True)
    results_json = Column(JSON, nullable=True)
    content = Column(JSON, nullable=True)
    details = Column(JSON, nullable=True)  # Generation metadata (model, cost, prompt info)

    last_updated_by = Column(String(255), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    __table_args__ = (
        Index("idx_reports_user_id", "user_id"),
        Index("idx_reports_status", "status"),
        Index("idx_reports_created_at", "created_at"),
    )

    def __repr__(self):
        return f"<Report(session_id={self.session_id}, status={self.status})>"


# ============================================================================
# Payments, Feedback, Notifications, Audit
# ============================================================================

class Payment(SerializableMixin, Base):
    """M-Pesa payment that unlocks a session's draft."""

    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(100), nullable=True)
    session_id = Column(String(36), nullable=True)
    amount = Column(Float, nullable=False)
    method = Column(String(20), nullable=False, default="mpesa")
    status = Column(String(20), nullable=False, default=PAYMENT_STATUS_PENDING)

    # "<checkoutRequestID>|<sessionId>|<accountReference>"
    transaction_id = Column(String(255), nullable=True)
    checkout_request_id = Column(String(100), nullable=True, unique=True)
    phone_number = Column(String(20), nullable=True)
    mpesa_code = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_payments_session_id", "session_id"),
        Index("idx_payments_status_created", "status", "created_at"),
    )

    def __repr__(self):
        return f"<Payment(id={self.id}, status={self.status}, amount={self.amount})>"

    @property
    def is_successful(self) -> bool:
        return self.status == PAYMENT_STATUS_SUCCESS


class Feedback(SerializableMixin, Base):
    """Star rating (1-5) with an optional comment."""

    __tablename__ = "feedback"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(100), nullable=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_feedback_rating_range"),
    )

    def __repr__(self):
        return f"<Feedback(id={self.id}, rating={self.rating})>"


class Notification(SerializableMixin, Base):
    """Back-office notification (signup, payment, draft events...)."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_uuid)
    message = Column(Text, nullable=False)
    user_id = Column(String(100), nullable=True)
    role = Column(String(20), nullable=True)
    type = Column(String(30), nullable=False, default="system")
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_notifications_read", "read"),
    )

    def __repr__(self):
        return f"<Notification(type={self.type}, read={self.read})>"


class AdminLog(SerializableMixin, Base):
    """Audit entry for admin actions and payment attempts."""

    __tablename__ = "admin_logs"

    id = Column(String(36), primary_key=True, default=new_uuid)
    action = Column(String(100), nullable=False)
    target_type = Column(String(50), nullable=True)
    target_id = Column(String(100), nullable=True)
    details = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<AdminLog(action={self.action}, target={self.target_type}:{self.target_id})>"
