"""Database package for SciDraft - hosted PostgreSQL with SQLAlchemy.

Session-keyed tables (manual_templates, drafts, reports) are written with
native upserts (see upsert.upsert_by_session_id).
"""

from .models import (
    Base,
    utcnow,
    User,
    Admin,
    AdminManualTemplate,
    ManualTemplate,
    Draft,
    Report,
    Payment,
    Feedback,
    Notification,
    AdminLog,
    # Plan constants
    PLAN_FREE,
    PLAN_PREMIUM,
    VALID_PLANS,
    # Draft status constants
    DRAFT_STATUS_PROCESSING,
    DRAFT_STATUS_COMPLETED,
    DRAFT_STATUS_FAILED,
    VALID_DRAFT_STATUSES,
    # Report status constants
    REPORT_STATUS_DRAFT,
    REPORT_STATUS_DRAFT_LIMITED,
    REPORT_STATUS_PROCESSING,
    REPORT_STATUS_COMPLETED,
    REPORT_STATUS_FAILED,
    REPORT_STATUS_DELETED,
    VALID_REPORT_STATUSES,
    # Payment status constants
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_SUCCESS,
    PAYMENT_STATUS_FAILED,
    VALID_PAYMENT_STATUSES,
    NOTIFICATION_TYPES,
    TEMPLATE_IMPORT_MANUAL_URL,
)
from .engine import (
    DatabaseConfigError,
    get_database_url,
    get_engine,
    get_session,
    get_db_session,
    init_db,
    check_db_connection,
)
from .upsert import upsert_by_session_id

__all__ = [
    # Engine
    "get_database_url",
    "get_engine",
    "DatabaseConfigError",
    # Models
    "Base",
    "utcnow",
    "User",
    "Admin",
    "AdminManualTemplate",
    "ManualTemplate",
    "Draft",
    "Report",
    "Payment",
    "Feedback",
    "Notification",
    "AdminLog",
    # Constants
    "PLAN_FREE",
    "PLAN_PREMIUM",
    "VALID_PLANS",
    "DRAFT_STATUS_PROCESSING",
    "DRAFT_STATUS_COMPLETED",
    "DRAFT_STATUS_FAILED",
    "VALID_DRAFT_STATUSES",
    "REPORT_STATUS_DRAFT",
    "REPORT_STATUS_DRAFT_LIMITED",
    "REPORT_STATUS_PROCESSING",
    "REPORT_STATUS_COMPLETED",
    "REPORT_STATUS_FAILED",
    "REPORT_STATUS_DELETED",
    "VALID_REPORT_STATUSES",
    "PAYMENT_STATUS_PENDING",
    "PAYMENT_STATUS_SUCCESS",
    "PAYMENT_STATUS_FAILED",
    "VALID_PAYMENT_STATUSES",
    "NOTIFICATION_TYPES",
    "TEMPLATE_IMPORT_MANUAL_URL",
    # Session management
    "get_session",
    "get_db_session",
    "init_db",
    "check_db_connection",
    # Writes
    "upsert_by_session_id",
]
