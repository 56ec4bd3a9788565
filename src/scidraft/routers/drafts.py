"""Draft generation, status polling and the paid draft view.

Draft lifecycle per session: processing -> completed / failed. The draft
row, the report context row and the manual row are all keyed by
session_id and written with native upserts.
"""

from typing import Any, Dict, List, Optional

import openai
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.orm import Session
from loguru import logger

from ..auth import get_optional_user
from ..database import (
    get_session,
    Draft,
    ManualTemplate,
    Report,
    User,
    DRAFT_STATUS_PROCESSING,
    DRAFT_STATUS_COMPLETED,
    DRAFT_STATUS_FAILED,
    REPORT_STATUS_DRAFT,
    REPORT_STATUS_PROCESSING,
    upsert_by_session_id,
)
from ..limits import limiter, ensure_session_unlocked, DRAFT_VIEW_RATE_LIMIT
from ..llm import LLMError, classify_llm_error, generate_draft_with_llm
from ..responses import error_response, first_validation_message
from ..schemas import DraftValidationError
from ..services.notifications import notify
from ..utils import is_valid_uuid

router = APIRouter(tags=["Drafts"])


MAX_PARSED_TEXT_LENGTH = 50000
MAX_RESULTS_LENGTH = 20000
MAX_IMAGES = 10

RESULTS_PLACEHOLDER = "No specific results provided - please add your experimental observations and data"


# ============================================================================
# Pydantic Models
# ============================================================================

class GenerateDraftRequest(BaseModel):
    """Request model for draft generation.

    The body may also be wrapped as {"aiData": {...}}.

    **Example:**
    ```json
    {"sessionId": "6f1c8a8e-0d1f-4b7a-9a57-2f4d0f3c2b11", "images": [{"name": "setup.png"}]}
    ```
    """

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    parsed_text: str = Field("", alias="parsedText", max_length=MAX_PARSED_TEXT_LENGTH)
    results: str = Field(RESULTS_PLACEHOLDER, max_length=MAX_RESULTS_LENGTH)
    images: List[Dict[str, Any]] = Field(default_factory=list, max_length=MAX_IMAGES)
    user_id: Optional[str] = None

    @field_validator("session_id")
    @classmethod
    def session_id_is_uuid(cls, value: str) -> str:
        if not is_valid_uuid(value, v4_only=False):
            raise ValueError("must be a valid UUID")
        return value.strip()

    @field_validator("results", mode="before")
    @classmethod
    def default_results(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return RESULTS_PLACEHOLDER
        return value

    @field_validator("parsed_text", mode="before")
    @classmethod
    def default_parsed_text(cls, value):
        return "" if value is None else value


def _mark_draft_failed(db: Session, session_id: str) -> None:
    try:
        upsert_by_session_id(db, Draft, session_id, {"status": DRAFT_STATUS_FAILED}, update_columns=["status"])
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Could not mark draft {session_id} as failed: {e}")


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/generate-draft")
def generate_draft(
    payload: Dict[str, Any] = Body(...),
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_session),
):
    """
    Generate a lab report draft for a session.

    The manual text and results stored for the session are authoritative;
    the request only identifies the session and carries image names.
    Errors are returned as {success: false, error, errorType}.
    """
    data = payload.get("aiData") if isinstance(payload.get("aiData"), dict) else payload

    try:
        request = GenerateDraftRequest.model_validate(data)
    except ValidationError as e:
        return error_response(400, first_validation_message(e.errors()), "validation_error")

    session_id = request.session_id
    user_id = current_user.id if current_user else request.user_id

    try:
        values = {"status": DRAFT_STATUS_PROCESSING}
        update_columns = ["status"]
        if user_id:
            values["user_id"] = user_id
            update_columns.append("user_id")
        upsert_by_session_id(db, Draft, session_id, values, update_columns=update_columns)
        db.commit()

        manual = db.query(ManualTemplate).filter(ManualTemplate.session_id == session_id).first()
        if manual is None:
            _mark_draft_failed(db, session_id)
            return error_response(400, "Manual template not found for this session", "validation_error")
        if not manual.parsed_text or not manual.results:
            _mark_draft_failed(db, session_id)
            return error_response(
                400,
                "Required manual content or results missing. Please complete previous steps.",
                "validation_error",
            )

        image_names = [img.get("name") for img in request.images if isinstance(img, dict)]
        report_values = {
            "status": REPORT_STATUS_PROCESSING,
            "subject": manual.subject,
            "results_json": {"results": manual.results, "images": image_names},
        }
        if user_id:
            report_values["user_id"] = user_id
        upsert_by_session_id(db, Report, session_id, report_values)
        db.commit()

        logger.info(f"Generating draft for session {session_id}")

        generation = generate_draft_with_llm(manual.parsed_text, manual.results, request.images)
        draft = generation["draft"]

        upsert_by_session_id(
            db,
            Draft,
            session_id,
            {"status": DRAFT_STATUS_COMPLETED, "draft": draft},
            update_columns=["status", "draft"],
        )
        upsert_by_session_id(
            db,
            Report,
            session_id,
            {
                "status": REPORT_STATUS_DRAFT,
                "title": draft["title"],
                "draft_json": draft,
                "details": {
                    "model": generation["model_used"],
                    "cost_usd": generation["cost_usd"],
                    "variation_key": generation["variation_key"],
                    "prompt_used": generation["prompt_preview"],
                },
            },
        )
        notify(db, "draft", f"Draft generated: {draft['title']}", user_id=user_id)
        db.commit()

        logger.info(f"Draft completed for session {session_id} (${generation['cost_usd']:.4f})")

        return {"success": True, "sessionId": session_id, "data": {"status": DRAFT_STATUS_COMPLETED}}

    except (LLMError, DraftValidationError, openai.OpenAIError) as e:
        db.rollback()
        _mark_draft_failed(db, session_id)
        status_code, error_type, message = classify_llm_error(e)
        logger.error(f"Draft generation failed for session {session_id} ({error_type}): {e}")
        return error_response(status_code, message, error_type)
    except Exception as e:
        db.rollback()
        _mark_draft_failed(db, session_id)
        logger.error(f"Error generating draft for session {session_id}: {e}")
        return error_response(500, "Internal server error during draft generation", "internal_error")


@router.get("/drafts/status")
def get_draft_status(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    db: Session = Depends(get_session),
):
    """
    Poll the draft for a session.

    **Example:** `GET /api/drafts/status?sessionId=6f1c8a8e-...`
    """
    session_id = (session_id or "").strip()
    if not session_id:
        raise HTTPException(status_code=400, detail="sessionId is required")

    draft = db.query(Draft).filter(Draft.session_id == session_id).first()
    if draft is None:
        raise HTTPException(status_code=404, detail="Draft not found")

    return {"success": True, "data": draft.to_dict()}


@router.get("/drafts/view")
@limiter.limit(DRAFT_VIEW_RATE_LIMIT)
def view_draft(
    request: Request,
    session_id: Optional[str] = Query(None, alias="sessionId"),
    db: Session = Depends(get_session),
):
    """
    Return the generated draft once the session has been paid for.

    A missing draft is reported before payment is checked. Access is granted
    by a valid paid_session cookie for this session or a successful payment
    in the last 30 minutes. Rate limited per client.
    """
    session_id = (session_id or "").strip()
    if not session_id:
        raise HTTPException(status_code=400, detail="sessionId is required")

    draft = db.query(Draft).filter(Draft.session_id == session_id).first()
    if draft is None:
        raise HTTPException(status_code=404, detail="Draft not found")

    ensure_session_unlocked(request, session_id, db)

    return {
        "success": True,
        "data": {
            "session_id": draft.session_id,
            "status": draft.status,
            "draft": draft.draft,
        },
    }
