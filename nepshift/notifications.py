"""In-app notifications for verification and bid decisions."""

import logging

from nepshift.database import Database
from nepshift.errors import AuthorizationError, NotFoundError
from nepshift.models import Notification, NotificationType, Role, User

logger = logging.getLogger(__name__)


def notify(
    db: Database,
    recipient_id: str,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
    related_id: str | None = None,
) -> Notification:
    notification = Notification(
        recipient_id=recipient_id,
        type=type,
        title=title,
        message=message,
        related_id=related_id,
    )
    db.notifications.put(notification.id, notification)
    logger.debug("Notification created | recipient=%s | title=%s", recipient_id, title)
    return notification


def notify_admins(
    db: Database, title: str, message: str, related_id: str | None = None
) -> list[Notification]:
    return [
        notify(db, admin.id, title, message, related_id=related_id)
        for admin in db.get_users_by_role(Role.ADMIN)
    ]


def list_notifications(db: Database, user: User) -> list[Notification]:
    """Notifications for a user, newest first."""
    notifications = [n for n in db.notifications.all() if n.recipient_id == user.id]
    return sorted(notifications, key=lambda n: n.created_at, reverse=True)


def mark_as_read(db: Database, user: User, notification_id: str) -> Notification:
    notification = db.notifications.get(notification_id)
    if notification is None:
        raise NotFoundError(f"Notification {notification_id} not found")
    if notification.recipient_id != user.id:
        raise AuthorizationError("You can only update your own notifications")
    notification.is_read = True
    db.notifications.put(notification.id, notification)
    return notification


def mark_all_as_read(db: Database, user: User) -> int:
    unread = [
        n for n in db.notifications.all() if n.recipient_id == user.id and not n.is_read
    ]
    for notification in unread:
        notification.is_read = True
        db.notifications.put(notification.id, notification)
    return len(unread)


def delete_notification(db: Database, user: User, notification_id: str) -> None:
    notification = db.notifications.get(notification_id)
    if notification is None:
        raise NotFoundError(f"Notification {notification_id} not found")
    if notification.recipient_id != user.id:
        raise AuthorizationError("You can only delete your own notifications")
    db.notifications.delete(notification_id)
