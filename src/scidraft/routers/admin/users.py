"""Admin user management."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from loguru import logger

from ...admin_auth import AdminRole, AdminSession, require_admin_role
from ...database import get_session, User, utcnow
from ...services.notifications import notify, record_admin_action

router = APIRouter(prefix="/users", tags=["Admin"])


USER_ACTIONS = {"confirm_email", "reset_password"}


class UserActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(None, alias="userId")
    action: Optional[str] = None


@router.get("")
def list_users(
    search: Optional[str] = Query(None, description="Case-insensitive email match"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: AdminSession = Depends(require_admin_role(AdminRole.ADMIN)),
    db: Session = Depends(get_session),
):
    """List student accounts, newest first."""
    query = db.query(User)
    if search:
        query = query.filter(User.email.ilike(f"%{search.strip()}%"))

    total = query.count()
    users = query.order_by(User.created_at.desc()).offset(offset).limit(limit).all()

    return {
        "success": True,
        "data": [u.to_dict() for u in users],
        "pagination": {"total": total, "limit": limit, "offset": offset, "has_more": offset + limit < total},
    }


@router.put("")
def update_user(
    body: UserActionRequest,
    admin: AdminSession = Depends(require_admin_role(AdminRole.ADMIN)),
    db: Session = Depends(get_session),
):
    """
    Apply an account action.

    Actions: `confirm_email` marks the email confirmed; `reset_password`
    is recorded in the audit log.
    """
    if not body.user_id or not body.action:
        raise HTTPException(status_code=400, detail="userId and action are required")
    if body.action not in USER_ACTIONS:
        raise HTTPException(status_code=400, detail="Invalid action")

    user = db.query(User).filter(User.id == body.user_id).first()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    if body.action == "confirm_email":
        user.email_confirmed_at = utcnow()
        message = "Email confirmed"
    else:
        notify(db, "password_change", f"Password reset requested for {user.email}", user_id=user.id)
        message = "Password reset initiated"

    record_admin_action(
        db,
        body.action,
        target_type="user",
        target_id=user.id,
        details={"by": admin.email},
    )
    db.commit()

    logger.info(f"Admin {admin.email} applied {body.action} to user {user.id}")

    return {"success": True, "message": message}


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    admin: AdminSession = Depends(require_admin_role(AdminRole.SUPER_ADMIN)),
    db: Session = Depends(get_session),
):
    """Permanently delete a user account. Super admin only."""
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    db.delete(user)
    record_admin_action(
        db,
        "delete_user",
        target_type="user",
        target_id=user_id,
        details={"by": admin.email, "email": user.email},
        critical=True,
    )
    db.commit()

    return {"success": True, "message": "User deleted"}
