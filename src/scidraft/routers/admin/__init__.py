"""Admin back-office routers, mounted under /api/admin.

Every route except login requires a valid admin-session cookie; minimum
roles are declared per route with require_admin_role().
"""

from fastapi import APIRouter

from . import auth, users, reports, payments, feedback, notifications, stats

admin_router = APIRouter(prefix="/admin")

admin_router.include_router(auth.router)
admin_router.include_router(users.router)
admin_router.include_router(reports.router)
admin_router.include_router(payments.router)
admin_router.include_router(feedback.router)
admin_router.include_router(notifications.router)
admin_router.include_router(stats.router)

__all__ = ["admin_router"]
