"""Admin session and role validation for the back-office API.

Admin sessions live in the `admin-session` cookie: base64 (URL-safe) of a
JSON object {email, role, timestamp, sig}, where timestamp is milliseconds
since the epoch and sig is an HMAC-SHA256 (COOKIE_SECRET) over
"email|role|timestamp". A session older than the configured timeout
(2 minutes by default) is rejected and the cookie is cleared. Each
successful validation re-issues the cookie with a fresh timestamp.

Roles are ordered: moderator < admin < super_admin. A caller below the
required role gets 403; a caller without a valid session gets 401.

Usage in endpoints:
    @router.delete("/users/{user_id}")
    def delete_user(
        user_id: str,
        admin: AdminSession = Depends(require_admin_role(AdminRole.SUPER_ADMIN)),
        db: Session = Depends(get_session),
    ):
        ...
"""

import base64
import binascii
import hashlib
import hmac
import json
import re
import time
from enum import IntEnum
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, Request, Response
from pydantic import BaseModel, ValidationError
from loguru import logger

from .config import get_config


ADMIN_SESSION_COOKIE = "admin-session"

CLEARED_ADMIN_SESSION_COOKIE = (
    f"{ADMIN_SESSION_COOKIE}=; expires=Thu, 01 Jan 1970 00:00:00 GMT; "
    "path=/; HttpOnly; Secure; SameSite=Strict"
)

BCRYPT_ROUNDS = 12

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

ERROR_NO_SESSION = "No admin session found"
ERROR_SESSION_EXPIRED = "Admin session expired"
ERROR_SESSION_INVALID = "Admin session validation failed"

ADMIN_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


# =============================================================================
# Roles
# =============================================================================

class AdminRole(IntEnum):
    """Ordered admin privilege levels."""

    MODERATOR = 1
    ADMIN = 2
    SUPER_ADMIN = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional["AdminRole"]:
        if not name:
            return None
        try:
            return cls[name.strip().upper()]
        except KeyError:
            return None


def role_level(role: Optional[str]) -> int:
    """Numeric level of a role name; unknown roles are 0."""
    parsed = AdminRole.from_name(role)
    return int(parsed) if parsed is not None else 0


def role_satisfies(role: Optional[str], required: AdminRole) -> bool:
    """True when role is at or above the required level."""
    return role_level(role) >= int(required)


# =============================================================================
# Session cookie
# =============================================================================

class AdminSession(BaseModel):
    email: str
    role: str
    timestamp: int


class AdminSessionValidation(BaseModel):
    is_valid: bool
    error: Optional[str] = None
    admin: Optional[AdminSession] = None
    expired: bool = False


def _now_ms() -> int:
    return int(time.time() * 1000)


def _sign(email: str, role: str, timestamp: int) -> str:
    secret = get_config().cookie_secret.encode("utf-8")
    message = f"{email}|{role}|{timestamp}".encode("utf-8")
    return hmac.new(secret, message, hashlib.sha256).hexdigest()


def encode_admin_session(email: str, role: str, timestamp: Optional[int] = None) -> str:
    """Build the admin-session cookie value."""
    timestamp = _now_ms() if timestamp is None else timestamp
    payload = {
        "email": email,
        "role": role,
        "timestamp": timestamp,
        "sig": _sign(email, role, timestamp),
    }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_admin_session(value: str) -> AdminSession:
    """
    Decode and verify an admin-session cookie value.

    Raises:
        ValueError: If the value is not valid base64 JSON or the signature does not match
    """
    value = value.strip().replace("+", "-").replace("/", "_")
    padded = value + "=" * (-len(value) % 4)
    try:
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        session = AdminSession.model_validate(payload)
    except (binascii.Error, UnicodeError, json.JSONDecodeError, ValidationError, TypeError) as e:
        raise ValueError("Malformed admin session cookie") from e

    signature = payload.get("sig")
    expected = _sign(session.email, session.role, session.timestamp)
    if not isinstance(signature, str) or not hmac.compare_digest(signature, expected):
        raise ValueError("Admin session signature mismatch")

    return session


def set_admin_session_cookie(response: Response, email: str, role: str) -> str:
    """Issue a fresh admin-session cookie on the response."""
    config = get_config()
    value = encode_admin_session(email, role)
    response.set_cookie(
        ADMIN_SESSION_COOKIE,
        value,
        max_age=config.sd_admin_session_timeout_seconds,
        path="/",
        httponly=True,
        secure=config.sd_cookie_secure,
        samesite="strict",
    )
    return value


def clear_admin_session_cookie(response: Response) -> None:
    response.headers.append("set-cookie", CLEARED_ADMIN_SESSION_COOKIE)


def validate_admin_session(
    request: Request,
    response: Optional[Response] = None,
    now_ms: Optional[int] = None,
) -> AdminSessionValidation:
    """
    Validate the admin-session cookie on a request.

    When the session has expired and a response is given, a cookie-clearing
    Set-Cookie header is appended to it.

    Args:
        request: Incoming request
        response: Response to receive the clearing header (optional)
        now_ms: Current time in milliseconds (defaults to wall clock)

    Returns:
        AdminSessionValidation
    """
    cookie = request.cookies.get(ADMIN_SESSION_COOKIE)
    if not cookie:
        return AdminSessionValidation(is_valid=False, error=ERROR_NO_SESSION)

    try:
        session = decode_admin_session(cookie)
    except ValueError as e:
        logger.warning(f"Rejected admin session cookie: {e}")
        return AdminSessionValidation(is_valid=False, error=ERROR_SESSION_INVALID)

    now_ms = _now_ms() if now_ms is None else now_ms
    timeout_ms = get_config().sd_admin_session_timeout_seconds * 1000

    if now_ms - session.timestamp > timeout_ms:
        logger.info(f"Admin session expired for {session.email}")
        if response is not None:
            clear_admin_session_cookie(response)
        return AdminSessionValidation(is_valid=False, error=ERROR_SESSION_EXPIRED, expired=True)

    return AdminSessionValidation(is_valid=True, admin=session)


# =============================================================================
# FastAPI dependencies
# =============================================================================

async def get_current_admin(request: Request, response: Response) -> AdminSession:
    """
    FastAPI dependency for any authenticated admin.

    Raises:
        HTTPException: 401 if the session is missing, malformed or expired
    """
    validation = validate_admin_session(request)

    if not validation.is_valid:
        headers = {"Set-Cookie": CLEARED_ADMIN_SESSION_COOKIE} if validation.expired else None
        raise HTTPException(status_code=401, detail=validation.error, headers=headers)

    admin = validation.admin
    set_admin_session_cookie(response, admin.email, admin.role)

    return admin


def require_admin_role(required: AdminRole):
    """
    Build a dependency that requires at least the given role.

    Raises:
        HTTPException: 401 without a valid session, 403 below the required role
    """

    async def dependency(admin: AdminSession = Depends(get_current_admin)) -> AdminSession:
        if not role_satisfies(admin.role, required):
            logger.warning(
                f"Admin {admin.email} ({admin.role}) denied: requires {required.label}"
            )
            raise HTTPException(
                status_code=403,
                detail=f"Insufficient permissions. Required: {required.label}, User: {admin.role}",
            )
        return admin

    return dependency


# =============================================================================
# Credentials
# =============================================================================

def sanitize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a password with bcrypt."""
    # Bcrypt has a 72 byte limit - truncate password if necessary
    password_bytes = password.encode("utf-8")[:72]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against a bcrypt hash; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:72], password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored admin password hash is not a valid bcrypt hash")
        return False


def is_allowed_admin_email(email: str) -> bool:
    """Check the optional SD_ADMIN_EMAILS allow-list."""
    allowed = get_config().admin_emails
    return not allowed or email in allowed
