"""User authentication for the SciDraft API.

Student sessions are issued by the hosted auth service. Requests carry the
access token either as `Authorization: Bearer <token>` or in the
`sb-access-token` cookie. The token is resolved through the Auth REST API
(see supabase.fetch_auth_user); unconfirmed emails are rejected.

Users are mirrored into the local `users` table on first sight so reports,
payments and feedback can reference them.

Usage in endpoints:
    @router.get("/reports")
    def list_my_reports(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_session),
    ):
        ...
"""

from datetime import datetime
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session
from loguru import logger

from .database import get_session, User, PLAN_FREE, utcnow
from .supabase import fetch_auth_user, SupabaseAuthError


ACCESS_TOKEN_COOKIE = "sb-access-token"


class AuthenticationError(HTTPException):
    """Raised when authentication fails."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=401,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


def extract_access_token(request: Request) -> Optional[str]:
    """Read the access token from the Authorization header or the session cookie."""
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        token = auth_header[7:].strip()
        if token:
            return token

    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    return token.strip() if token else None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def get_or_create_user(db: Session, auth_user: dict) -> User:
    """
    Get the local mirror of an auth user, creating or refreshing it.

    Args:
        db: Database session
        auth_user: User record returned by the auth service

    Returns:
        User model instance
    """
    user_id = auth_user["id"]
    user = db.query(User).filter(User.id == user_id).first()

    if user is None:
        logger.info(f"Creating new user: {user_id}")
        user = User(
            id=user_id,
            email=auth_user.get("email"),
            plan=PLAN_FREE,
            created_at=utcnow(),
        )
        db.add(user)

    user.email_confirmed_at = _parse_timestamp(auth_user.get("email_confirmed_at")) or user.email_confirmed_at
    user.last_sign_in_at = _parse_timestamp(auth_user.get("last_sign_in_at")) or user.last_sign_in_at

    db.commit()
    db.refresh(user)

    return user


def validate_user_session(request: Request) -> dict:
    """
    Validate the caller's user session.

    Returns:
        {"is_valid": bool, "error": str | None, "user": dict | None}
    """
    token = extract_access_token(request)
    if not token:
        return {"is_valid": False, "error": "No user session found", "user": None}

    try:
        auth_user = fetch_auth_user(token)
    except SupabaseAuthError as e:
        logger.error(f"User session validation failed: {e}")
        return {"is_valid": False, "error": "Session validation failed", "user": None}

    if not auth_user or not auth_user.get("id"):
        return {"is_valid": False, "error": "Invalid or expired session", "user": None}

    if not auth_user.get("email_confirmed_at"):
        return {"is_valid": False, "error": "Email not confirmed", "user": None}

    return {"is_valid": True, "error": None, "user": auth_user}


def get_current_user(
    request: Request,
    db: Session = Depends(get_session),
) -> User:
    """
    FastAPI dependency to get the current authenticated user.

    Raises:
        HTTPException: 401 if the session is missing, invalid or unconfirmed
    """
    validation = validate_user_session(request)
    if not validation["is_valid"]:
        raise AuthenticationError(detail=validation["error"])

    user = get_or_create_user(db, validation["user"])

    logger.debug(f"Authenticated user: {user.id} (plan={user.plan})")

    return user


def get_optional_user(
    request: Request,
    db: Session = Depends(get_session),
) -> Optional[User]:
    """
    Same as get_current_user but returns None instead of 401.

    Useful for endpoints that accept anonymous sessions (drafting, feedback)
    but attach the user when one is signed in.
    """
    if extract_access_token(request) is None:
        return None

    validation = validate_user_session(request)
    if not validation["is_valid"]:
        return None

    return get_or_create_user(db, validation["user"])
