"""M-Pesa unlock payments.

- GET  /payments/csrf             issue a double-submit CSRF token
- POST /payments/mpesa/initiate   send an STK push for a session
- POST /payments/mpesa/callback   Daraja result callback
- GET  /payments/mpesa/status     poll; sets the paid_session cookie on success
"""

import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from loguru import logger

from ..auth import get_optional_user
from ..config import get_config
from ..database import (
    get_session,
    Payment,
    User,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_SUCCESS,
    utcnow,
)
from ..limits import (
    limiter,
    set_paid_session_cookie,
    FIXED_UNLOCK_AMOUNT_KSH,
    PAYMENT_INITIATE_RATE_LIMIT,
)
from ..services.mpesa import (
    ACCOUNT_REFERENCE,
    InvalidPhoneNumberError,
    MpesaError,
    initiate_stk_push,
    is_callback_url_valid,
    normalize_phone_number,
    parse_stk_callback,
)
from ..services.notifications import notify, record_admin_action
from ..utils import mask_phone

router = APIRouter(prefix="/payments", tags=["Payments"])


CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class InitiatePaymentRequest(BaseModel):
    """Request model for starting an STK push.

    **Example:**
    ```json
    {"sessionId": "6f1c8a8e-0d1f-4b7a-9a57-2f4d0f3c2b11", "phoneNumber": "0712345678"}
    ```
    """

    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(None, alias="sessionId")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")


@router.get("/csrf")
def issue_csrf_token(response: Response):
    """Issue a CSRF token (cookie + body) for the payment form."""
    token = secrets.token_urlsafe(32)
    response.set_cookie(
        CSRF_COOKIE,
        token,
        path="/",
        httponly=False,
        secure=get_config().sd_cookie_secure,
        samesite="strict",
    )
    return {"success": True, "csrfToken": token}


@router.post("/mpesa/initiate")
@limiter.limit(PAYMENT_INITIATE_RATE_LIMIT)
def initiate_payment(
    request: Request,
    body: InitiatePaymentRequest,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_session),
):
    """
    Send an M-Pesa STK push to unlock a session's draft.

    A pending payment created for the same session within the last two
    minutes is returned instead of sending a second prompt.
    """
    cookie_token = request.cookies.get(CSRF_COOKIE)
    header_token = request.headers.get(CSRF_HEADER)
    if not cookie_token or not header_token or not secrets.compare_digest(cookie_token, header_token):
        raise HTTPException(status_code=403, detail="CSRF token invalid")

    config = get_config()
    missing = config.missing_mpesa_settings()
    if missing:
        logger.error(f"M-Pesa configuration incomplete: {', '.join(missing)}")
        raise HTTPException(status_code=500, detail=f"Missing M-Pesa configuration: {', '.join(missing)}")
    if not is_callback_url_valid(config):
        raise HTTPException(status_code=400, detail="MPESA_CALLBACK_URL must be an https URL")

    session_id = (body.session_id or "").strip()
    if not session_id:
        raise HTTPException(status_code=400, detail="sessionId is required")

    try:
        msisdn = normalize_phone_number(body.phone_number or "")
    except InvalidPhoneNumberError as e:
        raise HTTPException(status_code=400, detail=str(e))

    reuse_window = timedelta(seconds=config.sd_pending_payment_reuse_seconds)
    existing = (
        db.query(Payment)
        .filter(Payment.session_id == session_id)
        .filter(Payment.status == PAYMENT_STATUS_PENDING)
        .filter(Payment.created_at >= utcnow() - reuse_window)
        .order_by(Payment.created_at.desc())
        .first()
    )
    if existing is not None:
        logger.info(f"Reusing pending payment {existing.id} for session {session_id}")
        return {"success": True, "checkoutRequestID": existing.checkout_request_id, "reused": True}

    try:
        stk = initiate_stk_push(msisdn, FIXED_UNLOCK_AMOUNT_KSH, config)
    except MpesaError as e:
        raise HTTPException(status_code=502, detail=str(e))

    checkout_id = stk.get("CheckoutRequestID")

    try:
        payment = Payment(
            user_id=current_user.id if current_user else None,
            session_id=session_id,
            amount=FIXED_UNLOCK_AMOUNT_KSH,
            method="mpesa",
            status=PAYMENT_STATUS_PENDING,
            transaction_id=f"{checkout_id}|{session_id}|{ACCOUNT_REFERENCE}",
            checkout_request_id=checkout_id,
            phone_number=msisdn,
        )
        db.add(payment)
        record_admin_action(
            db,
            "payment_attempt",
            target_type="payment",
            target_id=checkout_id,
            details={"session_id": session_id, "phone": mask_phone(msisdn), "amount": FIXED_UNLOCK_AMOUNT_KSH},
        )
        db.commit()

    except Exception as e:
        db.rollback()
        logger.error(f"Error recording payment for session {session_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to record payment")

    logger.info(f"STK push sent for session {session_id} to {mask_phone(msisdn)}")

    return {
        "success": True,
        "checkoutRequestID": checkout_id,
        "customerMessage": stk.get("CustomerMessage"),
    }


@router.post("/mpesa/callback")
def mpesa_callback(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_session),
):
    """Record the result Daraja posts after the payer responds to the prompt."""
    result = parse_stk_callback(payload)
    checkout_id = result["checkout_request_id"]

    if not checkout_id:
        raise HTTPException(status_code=400, detail="Invalid callback payload")

    payment = db.query(Payment).filter(Payment.checkout_request_id == checkout_id).first()
    if payment is None:
        logger.warning(f"M-Pesa callback for unknown checkout {checkout_id}")
        return {"success": True, "ResultCode": 0, "ResultDesc": "Accepted"}

    try:
        payment.status = result["status"]
        payment.mpesa_code = result["mpesa_code"]
        if result["phone_number"]:
            payment.phone_number = result["phone_number"]

        if payment.status == PAYMENT_STATUS_SUCCESS:
            notify(db, "payment_success", f"Payment of KSh {payment.amount:g} received", user_id=payment.user_id)
        else:
            notify(
                db,
                "payment_failed",
                f"Payment failed: {result['result_desc'] or 'no receipt'}",
                user_id=payment.user_id,
            )
        db.commit()

    except Exception as e:
        db.rollback()
        logger.error(f"Error updating payment {checkout_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update payment status")

    logger.info(f"M-Pesa callback: checkout {checkout_id} -> {payment.status}")

    return {"success": True, "ResultCode": 0, "ResultDesc": "Accepted"}


@router.get("/mpesa/status")
def payment_status(
    response: Response,
    session_id: Optional[str] = Query(None, alias="sessionId"),
    db: Session = Depends(get_session),
):
    """
    Latest payment state for a session.

    A successful payment with a receipt issues the paid_session cookie.
    """
    for name, value in NO_STORE_HEADERS.items():
        response.headers[name] = value

    session_id = (session_id or "").strip()
    if not session_id:
        raise HTTPException(status_code=400, detail="sessionId required")

    payment = (
        db.query(Payment)
        .filter(Payment.session_id == session_id)
        .order_by(Payment.created_at.desc())
        .first()
    )
    if payment is None:
        raise HTTPException(status_code=404, detail="No payment found")

    if payment.status == PAYMENT_STATUS_SUCCESS and payment.mpesa_code and payment.phone_number:
        set_paid_session_cookie(response, session_id)

    return {
        "success": True,
        "status": payment.status,
        "mpesa_code": payment.mpesa_code,
        "phone_number": payment.phone_number,
    }
