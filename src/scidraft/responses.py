"""JSON envelope helpers: {success, data|error}."""

from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse


def error_response(
    status_code: int,
    message: str,
    error_type: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    """Build a {success: false, error} response."""
    content: Dict[str, Any] = {"success": False, "error": message}
    if error_type:
        content["errorType"] = error_type
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def first_validation_message(errors: list) -> str:
    """Human-readable message for the first pydantic/FastAPI validation error."""
    if not errors:
        return "Invalid request"
    error = errors[0]
    location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query"))
    message = error.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message
