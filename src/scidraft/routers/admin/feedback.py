"""Admin feedback review."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...admin_auth import AdminRole, AdminSession, require_admin_role
from ...database import get_session, Feedback, User
from ...services.notifications import record_admin_action

router = APIRouter(prefix="/feedback", tags=["Admin"])


@router.get("")
def list_feedback(
    admin: AdminSession = Depends(require_admin_role(AdminRole.MODERATOR)),
    db: Session = Depends(get_session),
):
    """All feedback with the author's email, average rating and distribution."""
    rows = (
        db.query(Feedback, User.email)
        .outerjoin(User, User.id == Feedback.user_id)
        .order_by(Feedback.created_at.desc())
        .all()
    )

    data = []
    distribution = {str(star): 0 for star in range(1, 6)}
    for feedback, email in rows:
        item = feedback.to_dict()
        item["user_email"] = email
        data.append(item)
        distribution[str(feedback.rating)] = distribution.get(str(feedback.rating), 0) + 1

    average = round(sum(f.rating for f, _ in rows) / len(rows), 2) if rows else 0.0

    return {
        "success": True,
        "data": data,
        "stats": {
            "total": len(rows),
            "average_rating": average,
            "distribution": distribution,
        },
    }


@router.delete("/{feedback_id}")
def delete_feedback(
    feedback_id: str,
    admin: AdminSession = Depends(require_admin_role(AdminRole.ADMIN)),
    db: Session = Depends(get_session),
):
    feedback = db.query(Feedback).filter(Feedback.id == feedback_id).first()
    if feedback is None:
        raise HTTPException(status_code=404, detail="Feedback not found")

    db.delete(feedback)
    record_admin_action(
        db,
        "delete_feedback",
        target_type="feedback",
        target_id=feedback_id,
        details={"by": admin.email},
        critical=True,
    )
    db.commit()

    return {"success": True, "message": "Feedback deleted"}
