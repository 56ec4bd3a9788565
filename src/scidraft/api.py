"""FastAPI backend for SciDraft.

Student flow
============
- POST /api/manuals/upload or /api/manuals/import-template: start a session
- POST /api/manuals/results: attach observations
- POST /api/generate-draft, GET /api/drafts/status: draft generation
- POST /api/payments/mpesa/initiate, GET /api/payments/mpesa/status: unlock
- GET /api/drafts/view, POST /api/generate-full-report: paid content

Back-office
===========
- /api/admin/*: cookie-authenticated admin routes (see routers.admin)

Every JSON response uses the {success, data|error} envelope.
"""

from datetime import datetime
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from loguru import logger

from . import __version__
from .admin_auth import ADMIN_SECURITY_HEADERS
from .config import get_config
from .limits import limiter
from .llm import is_llm_configured
from .responses import error_response, first_validation_message
from .routers import (
    auth,
    templates,
    manuals,
    storage,
    drafts,
    reports,
    payments,
    feedback,
    admin_router,
)
from .utils import setup_logger


API_PREFIX = "/api"
ADMIN_PATH_PREFIX = f"{API_PREFIX}/admin"


# Initialize FastAPI app
app = FastAPI(
    title="SciDraft API",
    description="Lab report drafting with M-Pesa unlocks and an admin back-office",
    version=__version__,
)

app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def admin_security_headers(request: Request, call_next):
    """Attach hardening headers to every admin response."""
    response = await call_next(request)
    if request.url.path.startswith(ADMIN_PATH_PREFIX):
        for name, value in ADMIN_SECURITY_HEADERS.items():
            response.headers[name] = value
    return response


for module in (auth, templates, manuals, storage, drafts, reports, payments, feedback):
    app.include_router(module.router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=API_PREFIX)


# ============================================================================
# Startup
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Configure logging and report missing integrations."""
    config = get_config()
    setup_logger(Path(config.sd_log_file) if config.sd_log_file else None)

    logger.info("Starting SciDraft API...")
    if not is_llm_configured():
        logger.warning("OPENAI_API_KEY not set - full reports will use the template fallback")
    missing = config.missing_mpesa_settings()
    if missing:
        logger.warning(f"M-Pesa payments disabled until configured: {', '.join(missing)}")


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/", tags=["General"])
async def root():
    """API root endpoint."""
    return {
        "name": "SciDraft API",
        "version": __version__,
        "status": "running",
        "endpoints": {
            "POST /api/manuals/upload": "Upload a lab manual",
            "POST /api/manuals/import-template": "Start a session from an admin template",
            "POST /api/generate-draft": "Generate a draft for a session",
            "GET /api/drafts/status": "Poll draft status",
            "GET /api/drafts/view": "View a paid draft",
            "POST /api/payments/mpesa/initiate": "Pay to unlock a session",
            "POST /api/generate-full-report": "Generate the full report",
        },
    }


@app.get(f"{API_PREFIX}/health", tags=["General"])
async def health_check():
    """Health check endpoint."""
    from .database import check_db_connection

    db_healthy = False
    try:
        db_healthy = check_db_connection()
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")

    return {
        "success": True,
        "status": "healthy" if db_healthy else "degraded",
        "database": "connected" if db_healthy else "disconnected",
        "ai": "configured" if is_llm_configured() else "fallback",
        "timestamp": datetime.now().isoformat(),
    }


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors in the {success: false, error} envelope."""
    detail = exc.detail
    extra = {}

    if isinstance(detail, dict):
        extra = {k: v for k, v in detail.items() if k not in ("success", "error")}
        message = detail.get("error") or detail.get("message") or "Request failed"
    elif exc.status_code == 404 and detail == "Not Found":
        message = "API not found"
    elif exc.status_code == 405:
        message = "Method not allowed"
    else:
        message = str(detail)

    return error_response(exc.status_code, message, headers=getattr(exc, "headers", None), **extra)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(400, first_validation_message(exc.errors()), "validation_error")


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded on {request.url.path}: {exc.detail}")
    return error_response(429, "Too many requests. Please try again later.", "rate_limit")


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    """Custom 500 handler."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(500, "Server internal error")
