"""Rate limits and payment gating for SciDraft.

This module centralizes:
- Per-client rate limits (slowapi, in-memory, per process)
- The paid_session cookie that remembers an unlocked session
- The payment gate for viewing drafts and generating full reports

Limits are enforced by raising HTTPException (403) or by slowapi (429).

Usage:
    from scidraft.limits import limiter, ensure_session_unlocked

    @router.get("/view")
    @limiter.limit(DRAFT_VIEW_RATE_LIMIT)
    def view_draft(request: Request, session_id: str, db: Session = Depends(get_session)):
        ensure_session_unlocked(request, session_id, db)
        ...
"""

import base64
import binascii
import hashlib
import hmac
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException, Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session
from loguru import logger

from .config import get_config
from .database import Payment, PAYMENT_STATUS_SUCCESS, utcnow


# =============================================================================
# Limit Constants
# =============================================================================

FIXED_UNLOCK_AMOUNT_KSH = 50

DRAFT_VIEW_RATE_LIMIT = "20 per 10 minutes"
PAYMENT_INITIATE_RATE_LIMIT = "5 per 10 minutes"
ADMIN_LOGIN_RATE_LIMIT = "10 per 10 minutes"

PAID_SESSION_COOKIE = "paid_session"


# =============================================================================
# Error Codes
# =============================================================================

ERROR_PAYMENT_REQUIRED = "Payment required"


# Process-local counters; each app instance limits independently
limiter = Limiter(key_func=get_remote_address)


# =============================================================================
# Paid session cookie
# =============================================================================

def _session_signature(session_id: str) -> str:
    secret = get_config().cookie_secret.encode("utf-8")
    return hmac.new(secret, session_id.encode("utf-8"), hashlib.sha256).hexdigest()


def sign_paid_session(session_id: str) -> str:
    """Cookie value: base64("<sessionId>.<hmac_sha256(sessionId)>")."""
    token = f"{session_id}.{_session_signature(session_id)}"
    return base64.b64encode(token.encode("utf-8")).decode("ascii")


def verify_paid_session(cookie_value: Optional[str], session_id: str) -> bool:
    """True when the cookie was issued for this exact session id."""
    if not cookie_value or not session_id:
        return False

    try:
        decoded = base64.b64decode(cookie_value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return False

    cookie_session_id, _, signature = decoded.rpartition(".")
    if cookie_session_id != session_id:
        return False

    return hmac.compare_digest(signature, _session_signature(session_id))


def set_paid_session_cookie(response: Response, session_id: str) -> None:
    config = get_config()
    response.set_cookie(
        PAID_SESSION_COOKIE,
        sign_paid_session(session_id),
        max_age=config.sd_paid_session_ttl_seconds,
        path="/",
        httponly=True,
        secure=config.sd_cookie_secure,
        samesite="strict",
    )


# =============================================================================
# Payment gate
# =============================================================================

def find_recent_successful_payment(db: Session, session_id: str) -> Optional[Payment]:
    """
    Latest successful payment for the session within the paid-session window.

    Args:
        db: Database session
        session_id: Drafting session id

    Returns:
        Payment or None
    """
    window = timedelta(seconds=get_config().sd_paid_session_ttl_seconds)
    cutoff = utcnow() - window

    return (
        db.query(Payment)
        .filter(Payment.session_id == session_id)
        .filter(Payment.status == PAYMENT_STATUS_SUCCESS)
        .filter(Payment.created_at >= cutoff)
        .order_by(Payment.created_at.desc())
        .first()
    )


def is_session_unlocked(request: Request, session_id: str, db: Session) -> bool:
    """Paid cookie for this session, or a recent successful payment."""
    if verify_paid_session(request.cookies.get(PAID_SESSION_COOKIE), session_id):
        return True

    return find_recent_successful_payment(db, session_id) is not None


def ensure_session_unlocked(request: Request, session_id: str, db: Session) -> None:
    """
    Raise 403 unless the session has been paid for.

    Raises:
        HTTPException: 403 with "Payment required"
    """
    if not is_session_unlocked(request, session_id, db):
        logger.warning(f"Payment required for session {session_id}")
        raise HTTPException(status_code=403, detail=ERROR_PAYMENT_REQUIRED)
