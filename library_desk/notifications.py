# Best-effort in-app notifications
import logging
from typing import Optional

from library_desk import models
from library_desk.errors import NotFoundError

logger = logging.getLogger(__name__)

REQUEST_CREATED = "request_created"
REQUEST_APPROVED = "request_approved"
REQUEST_REJECTED = "request_rejected"
BORROW_OVERDUE = "borrow_overdue"
ADMIN_REQUEST_APPROVED = "admin_request_approved"
ADMIN_REQUEST_REJECTED = "admin_request_rejected"


def notify(db, user_id: int, type: str, title: str, message: str, payload: Optional[dict] = None) -> bool:
    """Record a notification for ``user_id``. Returns False if it could not be stored."""
    try:
        db.add(models.Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            payload=payload or {},
        ))
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.warning("Failed to create %s notification for user %s: %s", type, user_id, exc)
        return False
    return True


def get_notifications_for_user(db, user_id: int, unread_only: bool = False):
    query = db.query(models.Notification).filter(models.Notification.user_id == user_id)
    if unread_only:
        query = query.filter(models.Notification.is_read.is_(False))
    return query.order_by(models.Notification.created_at.desc(), models.Notification.id.desc()).all()


def mark_read(db, notification_id: int, user_id: int):
    notification = (
        db.query(models.Notification)
        .filter(models.Notification.id == notification_id, models.Notification.user_id == user_id)
        .first()
    )
    if notification is None:
        raise NotFoundError("Notification not found")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification
