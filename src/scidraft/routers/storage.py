"""Drawing uploads (diagrams students attach to their reports)."""

from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from loguru import logger

from ..supabase import (
    DRAWINGS_BUCKET,
    StorageError,
    build_object_path,
    decode_base64_file,
    upload_file,
)

router = APIRouter(prefix="/storage", tags=["Storage"])


MAX_DRAWING_BYTES = 10 * 1024 * 1024


class DrawingFile(BaseModel):
    base64: Optional[str] = None
    name: Optional[str] = None
    type: str = "image/png"


class UploadDrawingRequest(BaseModel):
    file: Optional[DrawingFile] = None


@router.post("/upload")
def upload_drawing(request: UploadDrawingRequest):
    """Store a drawing in the `drawings` bucket and return its public URL."""
    if request.file is None or not request.file.base64 or not request.file.name:
        raise HTTPException(status_code=400, detail="Missing file payload")

    try:
        content = decode_base64_file(request.file.base64)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid file encoding")

    if len(content) > MAX_DRAWING_BYTES:
        raise HTTPException(status_code=400, detail="File too large (max 10 MB)")

    try:
        stored = upload_file(
            DRAWINGS_BUCKET,
            build_object_path(request.file.name, prefix="drawings"),
            content,
            request.file.type,
        )
    except StorageError as e:
        logger.error(f"Drawing upload failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to upload drawing")

    return {"success": True, "url": stored["url"], "path": stored["path"]}
