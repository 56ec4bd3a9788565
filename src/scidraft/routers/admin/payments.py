"""Admin payment listing and revenue analytics."""

from collections import OrderedDict
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session
from loguru import logger

from ...admin_auth import AdminRole, AdminSession, require_admin_role
from ...database import (
    get_session,
    Payment,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_SUCCESS,
    VALID_PAYMENT_STATUSES,
    utcnow,
)
from ...services.notifications import record_admin_action
from ...utils import mask_phone

router = APIRouter(prefix="/payments", tags=["Admin"])


RATE_WINDOWS_DAYS = (1, 7, 30)
MONTHLY_REVENUE_MONTHS = 12


def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


def payment_analytics(db: Session) -> dict:
    """
    Revenue and outcome statistics across all payments.

    Returns:
        Dict with total_revenue, monthly_revenue ("YYYY-MM" -> amount),
        counts by status and success/failure rates per window
    """
    total_revenue = (
        db.query(func.coalesce(func.sum(Payment.amount), 0.0))
        .filter(Payment.status == PAYMENT_STATUS_SUCCESS)
        .scalar()
    )

    counts = {status: 0 for status in sorted(VALID_PAYMENT_STATUSES)}
    for status, count in db.query(Payment.status, func.count(Payment.id)).group_by(Payment.status).all():
        counts[status] = count

    now = utcnow()

    # Month bucketing is done here; date_trunc/strftime differ per dialect
    monthly = OrderedDict()
    since = now - timedelta(days=31 * MONTHLY_REVENUE_MONTHS)
    successful = (
        db.query(Payment.created_at, Payment.amount)
        .filter(Payment.status == PAYMENT_STATUS_SUCCESS)
        .filter(Payment.created_at >= since)
        .order_by(Payment.created_at)
        .all()
    )
    for created_at, amount in successful:
        key = created_at.strftime("%Y-%m")
        monthly[key] = monthly.get(key, 0.0) + float(amount or 0)

    rates = {}
    for days in RATE_WINDOWS_DAYS:
        cutoff = now - timedelta(days=days)
        window = (
            db.query(Payment.status, func.count(Payment.id))
            .filter(Payment.created_at >= cutoff)
            .group_by(Payment.status)
            .all()
        )
        by_status = dict(window)
        total = sum(by_status.values())
        rates[f"{days}d"] = {
            "total": total,
            "success_rate": _rate(by_status.get(PAYMENT_STATUS_SUCCESS, 0), total),
            "failure_rate": _rate(by_status.get(PAYMENT_STATUS_FAILED, 0), total),
        }

    return {
        "total_revenue": float(total_revenue or 0),
        "monthly_revenue": dict(monthly),
        "counts": counts,
        "rates": rates,
    }


def _payment_row(payment: Payment) -> dict:
    data = payment.to_dict()
    data["phone_number"] = mask_phone(payment.phone_number) if payment.phone_number else None
    return data


@router.get("")
def list_payments(
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    admin: AdminSession = Depends(require_admin_role(AdminRole.ADMIN)),
    db: Session = Depends(get_session),
):
    """List payments (newest first) with revenue analytics."""
    if status and status not in VALID_PAYMENT_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")

    try:
        query = db.query(Payment)
        if status:
            query = query.filter(Payment.status == status)
        payments = query.order_by(Payment.created_at.desc()).limit(limit).all()

        return {
            "success": True,
            "data": [_payment_row(p) for p in payments],
            "analytics": payment_analytics(db),
        }

    except Exception as e:
        logger.error(f"Error loading payments: {e}")
        raise HTTPException(status_code=500, detail="Failed to load payments")


@router.delete("/{payment_id}")
def delete_payment(
    payment_id: str,
    admin: AdminSession = Depends(require_admin_role(AdminRole.SUPER_ADMIN)),
    db: Session = Depends(get_session),
):
    """Delete a payment record. Super admin only."""
    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if payment is None:
        raise HTTPException(status_code=404, detail="Payment not found")

    db.delete(payment)
    record_admin_action(
        db,
        "delete_payment",
        target_type="payment",
        target_id=payment_id,
        details={"by": admin.email, "amount": payment.amount, "status": payment.status},
        critical=True,
    )
    db.commit()

    return {"success": True, "message": "Payment deleted"}
