"""Full report generation and the signed-in user's report list."""

from typing import Any, Dict, List, Optional

import openai
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from loguru import logger

from ..auth import get_current_user
from ..database import (
    get_session,
    ManualTemplate,
    Report,
    User,
    REPORT_STATUS_COMPLETED,
    REPORT_STATUS_DELETED,
    upsert_by_session_id,
    utcnow,
)
from ..limits import ensure_session_unlocked
from ..llm import LLMError, classify_llm_error, generate_full_report_with_llm
from ..responses import error_response
from ..services.notifications import notify

router = APIRouter(tags=["Reports"])


FALLBACK_WARNING = (
    "AI service temporarily unavailable - using template-based generation. "
    "Please verify and customize the content."
)


class FullReportRequest(BaseModel):
    """Request model for full report generation.

    **Example:**
    ```json
    {"sessionId": "6f1c8a8e-0d1f-4b7a-9a57-2f4d0f3c2b11", "subject": "Chemistry"}
    ```
    """

    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(None, alias="sessionId")
    subject: Optional[str] = None
    prompt: Optional[str] = None
    images: List[Dict[str, Any]] = Field(default_factory=list, max_length=10)


@router.post("/generate-full-report")
def generate_full_report(
    request: Request,
    body: FullReportRequest,
    db: Session = Depends(get_session),
):
    """
    Generate the complete report for a paid session.

    Without a configured AI key a template-based report is returned with a
    `warning`. Output that fails validation is replaced by a placeholder
    report the student completes by hand.
    """
    session_id = (body.session_id or "").strip()
    if not session_id:
        raise HTTPException(status_code=400, detail="Session ID is required for tracking")

    ensure_session_unlocked(request, session_id, db)

    manual = db.query(ManualTemplate).filter(ManualTemplate.session_id == session_id).first()
    if manual is None or not manual.parsed_text or not manual.results:
        raise HTTPException(status_code=400, detail="Missing manual content or results for this session")

    subject = (body.subject or manual.subject or "Biology").strip()

    try:
        generation = generate_full_report_with_llm(
            manual.parsed_text,
            manual.results,
            subject,
            images=body.images,
            instructions=body.prompt,
        )
        content = generation["content"]

        details = {
            "generatedAt": utcnow().isoformat(),
            "aiService": generation["ai_service"],
            "model": generation["model_used"],
            "cost_usd": generation["cost_usd"],
            "parsedTextLength": len(manual.parsed_text),
            "resultsLength": len(manual.results),
            "imagesCount": len(body.images),
            "variation_key": generation["variation_key"],
        }

        upsert_by_session_id(
            db,
            Report,
            session_id,
            {
                "status": REPORT_STATUS_COMPLETED,
                "title": content["title"],
                "subject": subject,
                "content": content,
                "details": details,
            },
        )
        notify(db, "report", f"Full report generated: {content['title']}")
        db.commit()

        logger.info(f"Full report generated for session {session_id} via {generation['ai_service']}")

        response = {
            "success": True,
            "content": content,
            "metadata": {
                "subject": subject,
                "generatedAt": details["generatedAt"],
                "aiService": generation["ai_service"],
                "inputSummary": {
                    "parsedTextLength": details["parsedTextLength"],
                    "resultsLength": details["resultsLength"],
                    "imagesCount": details["imagesCount"],
                },
            },
        }
        if generation["ai_service"] == "fallback":
            response["warning"] = FALLBACK_WARNING

        return response

    except (LLMError, openai.OpenAIError) as e:
        db.rollback()
        status_code, error_type, message = classify_llm_error(e)
        logger.error(f"Full report generation failed for session {session_id} ({error_type}): {e}")
        return error_response(status_code, message, error_type)
    except Exception as e:
        db.rollback()
        logger.error(f"Error generating full report for session {session_id}: {e}")
        return error_response(500, "Internal server error during full report generation", "internal_error")


@router.get("/reports")
def list_my_reports(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    """List the signed-in user's reports, newest first."""
    reports = (
        db.query(Report)
        .filter(Report.user_id == current_user.id)
        .filter(Report.status != REPORT_STATUS_DELETED)
        .order_by(Report.created_at.desc())
        .all()
    )

    return {"success": True, "data": [r.to_dict(exclude=("admin_notes", "details")) for r in reports]}
