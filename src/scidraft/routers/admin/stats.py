"""Dashboard counters."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...admin_auth import AdminRole, AdminSession, require_admin_role
from ...database import (
    get_session,
    Draft,
    Feedback,
    Notification,
    Payment,
    Report,
    User,
    PAYMENT_STATUS_SUCCESS,
    REPORT_STATUS_DELETED,
)

router = APIRouter(prefix="/stats", tags=["Admin"])


@router.get("")
def get_stats(
    admin: AdminSession = Depends(require_admin_role(AdminRole.MODERATOR)),
    db: Session = Depends(get_session),
):
    """Row counts for the dashboard overview."""
    return {
        "success": True,
        "data": {
            "users": db.query(User).count(),
            "reports": db.query(Report).filter(Report.status != REPORT_STATUS_DELETED).count(),
            "drafts": db.query(Draft).count(),
            "payments": db.query(Payment).count(),
            "successful_payments": db.query(Payment).filter(Payment.status == PAYMENT_STATUS_SUCCESS).count(),
            "feedback": db.query(Feedback).count(),
            "unread_notifications": db.query(Notification).filter(Notification.read.is_(False)).count(),
        },
    }
