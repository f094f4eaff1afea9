import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.notification import Notification, NotificationType
from app.models.user import User
from app.services.email_service import render_email, send_email_sync

logger = logging.getLogger(__name__)


def notify_user(
    db: Session,
    user: User,
    type: NotificationType,
    title: str,
    content: str,
    link: str | None = None,
) -> Notification:
    """Add an in-app notification to the session (caller commits)."""
    notification = Notification(user_id=user.id, type=type, title=title, content=content, link=link)
    db.add(notification)
    return notification


def email_user(user: User, title: str, content: str, link: str | None = None) -> bool:
    """Best-effort email copy of a notification; call after commit."""
    if not user.email:
        return False
    full_link = f"{settings.frontend_url.rstrip('/')}{link}" if link else None
    html_content = render_email(title, content, user.full_name, full_link)
    sent = send_email_sync(user.email, f"{settings.app_name}: {title}", html_content)
    if not sent:
        logger.info(f"Notification email not sent to user {user.id}")
    return sent
