"""Admin notification feed."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ...admin_auth import AdminRole, AdminSession, require_admin_role
from ...database import get_session, Notification, NOTIFICATION_TYPES
from ...services.notifications import record_admin_action

router = APIRouter(prefix="/notifications", tags=["Admin"])


class MarkReadRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)


@router.get("")
def list_notifications(
    type: Optional[str] = Query(None),
    unread_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
    admin: AdminSession = Depends(require_admin_role(AdminRole.MODERATOR)),
    db: Session = Depends(get_session),
):
    """Newest notifications first, optionally filtered by type or unread state."""
    if type and type not in NOTIFICATION_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid notification type: {type}")

    query = db.query(Notification)
    if type:
        query = query.filter(Notification.type == type)
    if unread_only:
        query = query.filter(Notification.read.is_(False))

    notifications = query.order_by(Notification.created_at.desc()).limit(limit).all()
    unread = db.query(Notification).filter(Notification.read.is_(False)).count()

    return {
        "success": True,
        "data": [n.to_dict() for n in notifications],
        "unread_count": unread,
    }


@router.put("/read")
def mark_notifications_read(
    body: MarkReadRequest,
    admin: AdminSession = Depends(require_admin_role(AdminRole.MODERATOR)),
    db: Session = Depends(get_session),
):
    if not body.ids:
        raise HTTPException(status_code=400, detail="ids are required")

    updated = (
        db.query(Notification)
        .filter(Notification.id.in_(body.ids))
        .update({Notification.read: True}, synchronize_session=False)
    )
    db.commit()

    return {"success": True, "updated": updated}


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: str,
    admin: AdminSession = Depends(require_admin_role(AdminRole.ADMIN)),
    db: Session = Depends(get_session),
):
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")

    db.delete(notification)
    record_admin_action(
        db,
        "delete_notification",
        target_type="notification",
        target_id=notification_id,
        details={"by": admin.email},
        critical=True,
    )
    db.commit()

    return {"success": True, "message": "Notification deleted"}
