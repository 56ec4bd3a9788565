"""Admin login, logout and session introspection."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session
from loguru import logger

from ...admin_auth import (
    AdminSession,
    clear_admin_session_cookie,
    get_current_admin,
    is_allowed_admin_email,
    is_valid_email,
    sanitize_email,
    set_admin_session_cookie,
    verify_password,
)
from ...database import get_session, Admin, utcnow
from ...limits import limiter, ADMIN_LOGIN_RATE_LIMIT
from ...services.notifications import record_admin_action

router = APIRouter(prefix="/auth", tags=["Admin"])


INVALID_CREDENTIALS = "Invalid credentials"


class AdminLoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


@router.post("")
@limiter.limit(ADMIN_LOGIN_RATE_LIMIT)
def admin_login(
    request: Request,
    response: Response,
    body: AdminLoginRequest,
    db: Session = Depends(get_session),
):
    """
    Sign in to the back-office and receive the admin-session cookie.

    **Example:**
    ```json
    {"email": "admin@scidraft.com", "password": "..."}
    ```
    """
    if not body.email or not body.password:
        raise HTTPException(status_code=400, detail="Email and password are required")

    email = sanitize_email(body.email)
    if not is_valid_email(email):
        raise HTTPException(status_code=400, detail="Invalid email format")

    if not is_allowed_admin_email(email):
        logger.warning(f"Admin login attempt for non-allow-listed email {email}")
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

    admin = db.query(Admin).filter(Admin.email == email).first()
    if admin is None or not verify_password(body.password, admin.password_hash):
        logger.warning(f"Failed admin login for {email}")
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

    set_admin_session_cookie(response, admin.email, admin.role)

    record_admin_action(db, "admin_login", target_type="admin", target_id=admin.id, details={"by": admin.email})
    db.commit()

    logger.info(f"Admin {admin.email} ({admin.role}) logged in")

    return {
        "success": True,
        "admin": {
            "id": admin.id,
            "email": admin.email,
            "role": admin.role,
            "fullName": admin.name,
            "loginTime": utcnow().isoformat(),
        },
    }


@router.post("/logout")
async def admin_logout(response: Response):
    """Clear the admin-session cookie."""
    clear_admin_session_cookie(response)
    return {"success": True}


@router.get("/session")
async def admin_session(admin: AdminSession = Depends(get_current_admin)):
    """Return the current admin session (refreshes its timestamp)."""
    return {"success": True, "admin": admin.model_dump()}
