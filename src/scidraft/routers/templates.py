"""Public template catalog."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from loguru import logger

from ..database import get_session
from ..services.cache import search_templates

router = APIRouter(prefix="/templates", tags=["Templates"])


@router.get("")
def list_templates(
    q: Optional[str] = Query(None, description="Matches practical title, unit name or unit code"),
    year: Optional[int] = Query(None, description="Exact year"),
    page: int = Query(1, ge=1),
    page_size: int = Query(12, alias="pageSize", ge=1, le=100),
    db: Session = Depends(get_session),
):
    """
    Search admin-curated manual templates, newest first.

    **Example:** `GET /api/templates?q=titration&year=2&page=1&pageSize=12`
    """
    try:
        rows, total = search_templates(db, q=q, year=year, page=page, page_size=page_size)
        return {"success": True, "data": rows, "total": total}

    except Exception as e:
        logger.error(f"Error listing templates: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch templates")
