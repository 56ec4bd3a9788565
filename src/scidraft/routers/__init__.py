"""HTTP routers, one per resource. Mounted under /api by scidraft.api."""

from . import auth, templates, manuals, storage, drafts, reports, payments, feedback
from .admin import admin_router

__all__ = [
    "auth",
    "templates",
    "manuals",
    "storage",
    "drafts",
    "reports",
    "payments",
    "feedback",
    "admin_router",
]
