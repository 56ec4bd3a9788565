"""Manual upload, results capture and template import.

Every drafting flow is keyed by a session id (UUID v4). The manual row for
a session lives in manual_templates and is written with a native upsert,
so repeated imports for the same session converge on a single row.
"""

import uuid
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from loguru import logger

from ..database import (
    get_session,
    AdminManualTemplate,
    ManualTemplate,
    TEMPLATE_IMPORT_MANUAL_URL,
    upsert_by_session_id,
)
from ..supabase import (
    MANUALS_BUCKET,
    StorageError,
    build_object_path,
    decode_base64_file,
    upload_file,
)
from ..utils import normalize_text, resolve_session_id

router = APIRouter(prefix="/manuals", tags=["Manuals"])


MIN_TEMPLATE_CONTENT_LENGTH = 10


# ============================================================================
# Pydantic Models
# ============================================================================

class FilePayload(BaseModel):
    base64: str
    name: str = "manual"
    type: str = "application/octet-stream"


class UploadManualRequest(BaseModel):
    """Request model for uploading a manual."""

    model_config = ConfigDict(populate_by_name=True)

    unit_name: Optional[str] = Field(None, alias="unitName")
    practical_title: Optional[str] = Field(None, alias="practicalTitle")
    practical_number: Optional[Union[int, str]] = Field(None, alias="practicalNumber")
    unit_code: Optional[str] = Field(None, alias="unitCode")
    subject: Optional[str] = None
    manual_content: Optional[str] = Field(None, alias="manualContent")
    file: Optional[FilePayload] = None


class SaveResultsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(None, alias="sessionId")
    results: Optional[str] = None


class ImportTemplateRequest(BaseModel):
    """Request model for importing an admin template into a session.

    **Example:**
    ```json
    {"templateId": "abc123", "sessionId": "6f1c8a8e-0d1f-4b7a-9a57-2f4d0f3c2b11"}
    ```
    """

    model_config = ConfigDict(populate_by_name=True)

    template_id: Optional[str] = Field(None, alias="templateId")
    session_id: Optional[str] = Field(None, alias="sessionId")


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/upload")
def upload_manual(request: UploadManualRequest, db: Session = Depends(get_session)):
    """
    Create a drafting session from a manual.

    The optional file (base64) is stored in the `manuals` bucket; the
    manual text is normalized and saved for draft generation.
    """
    if not (request.unit_name or "").strip() or not (request.practical_title or "").strip() \
            or request.practical_number in (None, ""):
        raise HTTPException(status_code=400, detail="Missing required fields")

    try:
        practical_number = int(request.practical_number)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="practicalNumber must be an integer")

    try:
        manual_url = None
        if request.file is not None:
            try:
                content = decode_base64_file(request.file.base64)
            except ValueError:
                raise HTTPException(status_code=400, detail="Invalid file encoding")

            stored = upload_file(
                MANUALS_BUCKET,
                build_object_path(request.file.name),
                content,
                request.file.type,
            )
            manual_url = stored["url"]

        session_id = str(uuid.uuid4())
        manual = ManualTemplate(
            session_id=session_id,
            manual_url=manual_url,
            parsed_text=normalize_text(request.manual_content) or None,
            practical_title=request.practical_title.strip(),
            practical_number=practical_number,
            unit_code=(request.unit_code or request.unit_name).strip(),
            subject=request.subject,
        )
        db.add(manual)
        db.commit()
        db.refresh(manual)

        logger.info(f"Manual uploaded for session {session_id}")

        return {
            "success": True,
            "data": manual.to_dict(),
            "manualUrl": manual_url,
            "sessionId": session_id,
        }

    except HTTPException:
        raise
    except StorageError as e:
        db.rollback()
        logger.error(f"Manual upload failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to upload file")
    except Exception as e:
        db.rollback()
        logger.error(f"Error saving manual: {e}")
        raise HTTPException(status_code=500, detail="Failed to save manual")


@router.post("/results")
def save_results(request: SaveResultsRequest, db: Session = Depends(get_session)):
    """Attach the student's results/observations to a session."""
    session_id = (request.session_id or "").strip()
    results = (request.results or "").strip()

    if not session_id or not results:
        raise HTTPException(status_code=400, detail="sessionId and results are required")

    manual = db.query(ManualTemplate).filter(ManualTemplate.session_id == session_id).first()
    if manual is None:
        raise HTTPException(status_code=404, detail="Manual not found for this session")

    try:
        manual.results = results
        db.commit()
        db.refresh(manual)

        logger.info(f"Results saved for session {session_id} ({len(results)} chars)")

        return {"success": True, "data": manual.to_dict()}

    except Exception as e:
        db.rollback()
        logger.error(f"Error saving results for session {session_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to save results")


@router.post("/import-template")
def import_template(request: ImportTemplateRequest, db: Session = Depends(get_session)):
    """
    Copy an admin template into a drafting session.

    A session id that is not a UUID v4 is replaced with a fresh one. The
    template text is normalized; content shorter than 10 characters is
    rejected.

    **Example:**
    ```json
    {"templateId": "abc123"}
    ```
    """
    template_id = (request.template_id or "").strip()
    if not template_id:
        raise HTTPException(status_code=400, detail="templateId is required")

    template = db.query(AdminManualTemplate).filter(AdminManualTemplate.id == template_id).first()
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")

    session_id = resolve_session_id(request.session_id)

    parsed_text = normalize_text(template.practical_content)
    if len(parsed_text) < MIN_TEMPLATE_CONTENT_LENGTH:
        raise HTTPException(status_code=400, detail="Template content is empty or invalid")

    try:
        manual = upsert_by_session_id(
            db,
            ManualTemplate,
            session_id,
            {
                "manual_url": TEMPLATE_IMPORT_MANUAL_URL,
                "parsed_text": parsed_text,
                "practical_title": template.practical_title,
                "practical_number": template.practical_number,
                "unit_code": template.unit_code,
                "subject": template.subject,
            },
        )
        db.commit()

        logger.info(f"Template {template_id} imported into session {session_id}")

        return {
            "success": True,
            "data": {
                "id": manual.id,
                "session_id": manual.session_id,
                "parsed_text": manual.parsed_text,
            },
            "sessionId": manual.session_id,
        }

    except Exception as e:
        db.rollback()
        logger.error(f"Error importing template {template_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to import template")
