"""Feedback collection."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
from loguru import logger

from ..auth import get_optional_user
from ..database import get_session, Feedback, User

router = APIRouter(tags=["Feedback"])


MAX_COMMENT_LENGTH = 2000


class FeedbackRequest(BaseModel):
    rating: Any = None
    comment: Optional[str] = None


@router.post("/feedback")
def submit_feedback(
    request: FeedbackRequest,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_session),
):
    """
    Record a 1-5 star rating with an optional comment.

    **Example:**
    ```json
    {"rating": 5, "comment": "Saved me hours on my titration report"}
    ```
    """
    rating = request.rating
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise HTTPException(status_code=400, detail="Rating must be an integer between 1 and 5")

    comment = (request.comment or "").strip() or None
    if comment and len(comment) > MAX_COMMENT_LENGTH:
        raise HTTPException(status_code=400, detail=f"Comment too long (max {MAX_COMMENT_LENGTH} characters)")

    try:
        feedback = Feedback(
            user_id=current_user.id if current_user else None,
            rating=rating,
            comment=comment,
        )
        db.add(feedback)
        db.commit()
        db.refresh(feedback)

        logger.info(f"Feedback received: {rating} stars")

        return {"success": True, "data": feedback.to_dict()}

    except Exception as e:
        db.rollback()
        logger.error(f"Error saving feedback: {e}")
        raise HTTPException(status_code=500, detail="Failed to save feedback")
