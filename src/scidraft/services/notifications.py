"""Back-office notifications and the admin audit log."""

from typing import Optional

from sqlalchemy.orm import Session
from loguru import logger

from ..database import Notification, AdminLog, NOTIFICATION_TYPES


def notify(
    db: Session,
    type: str,
    message: str,
    user_id: Optional[str] = None,
    role: Optional[str] = None,
) -> Notification:
    """
    Queue a notification for the admin dashboard.

    The row is added and flushed; the caller's commit persists it.

    Raises:
        ValueError: If type is not a known notification type
    """
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type}")

    notification = Notification(message=message, type=type, user_id=user_id, role=role)
    db.add(notification)
    db.flush()

    logger.debug(f"Notification [{type}]: {message}")
    return notification


def record_admin_action(
    db: Session,
    action: str,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    details: Optional[dict] = None,
    critical: bool = False,
) -> AdminLog:
    """
    Append an entry to admin_logs.

    Destructive actions pass critical=True and are also logged with a
    CRITICAL: prefix.
    """
    entry = AdminLog(action=action, target_type=target_type, target_id=target_id, details=details or {})
    db.add(entry)
    db.flush()

    line = f"{action} {target_type or ''}:{target_id or ''} by {(details or {}).get('by', 'system')}"
    if critical:
        logger.warning(f"CRITICAL: {line}")
    else:
        logger.info(f"Admin log: {line}")

    return entry
