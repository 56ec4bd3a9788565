"""Admin report moderation."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from loguru import logger

from ...admin_auth import AdminRole, AdminSession, require_admin_role
from ...database import get_session, Report, REPORT_STATUS_DELETED, VALID_REPORT_STATUSES, utcnow
from ...services.notifications import record_admin_action

router = APIRouter(prefix="/reports", tags=["Admin"])


ALLOWED_UPDATE_FIELDS = {"status", "priority", "admin_notes"}


class ReportUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report_id: Optional[str] = Field(None, alias="reportId")
    updates: Dict[str, Any] = Field(default_factory=dict)


@router.get("")
def list_reports(
    status: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: AdminSession = Depends(require_admin_role(AdminRole.ADMIN)),
    db: Session = Depends(get_session),
):
    """List reports with optional status/user filters and pagination."""
    query = db.query(Report)
    if status:
        query = query.filter(Report.status == status)
    if user_id:
        query = query.filter(Report.user_id == user_id)

    total = query.count()
    reports = query.order_by(Report.created_at.desc()).offset(offset).limit(limit).all()

    return {
        "success": True,
        "data": [r.to_dict() for r in reports],
        "pagination": {"total": total, "limit": limit, "offset": offset, "has_more": offset + limit < total},
    }


@router.put("")
def update_report(
    body: ReportUpdateRequest,
    admin: AdminSession = Depends(require_admin_role(AdminRole.ADMIN)),
    db: Session = Depends(get_session),
):
    """
    Update moderation fields of a report.

    Only `status`, `priority` and `admin_notes` are accepted; other keys
    are ignored.
    """
    if not body.report_id:
        raise HTTPException(status_code=400, detail="reportId is required")

    updates = {k: v for k, v in body.updates.items() if k in ALLOWED_UPDATE_FIELDS}
    if not updates:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    if "status" in updates and updates["status"] not in VALID_REPORT_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {updates['status']}")

    report = db.query(Report).filter(Report.id == body.report_id).first()
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")

    for field, value in updates.items():
        setattr(report, field, value)
    report.last_updated_by = admin.email
    report.updated_at = utcnow()

    record_admin_action(
        db,
        "update_report",
        target_type="report",
        target_id=report.id,
        details={"by": admin.email, "fields": sorted(updates)},
    )
    db.commit()
    db.refresh(report)

    logger.info(f"Admin {admin.email} updated report {report.id}: {sorted(updates)}")

    return {"success": True, "data": report.to_dict()}


@router.delete("/{report_id}")
def delete_report(
    report_id: str,
    admin: AdminSession = Depends(require_admin_role(AdminRole.SUPER_ADMIN)),
    db: Session = Depends(get_session),
):
    """Soft-delete a report (status 'deleted'). Super admin only."""
    report = db.query(Report).filter(Report.id == report_id).first()
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")

    report.status = REPORT_STATUS_DELETED
    report.deleted_at = utcnow()
    report.deleted_by = admin.email

    record_admin_action(
        db,
        "delete_report",
        target_type="report",
        target_id=report_id,
        details={"by": admin.email},
        critical=True,
    )
    db.commit()

    return {"success": True, "message": "Report deleted"}
