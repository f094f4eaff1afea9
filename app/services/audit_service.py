import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Request
from sqlalchemy.orm import Query, Session

from app.core.config import settings
from app.core.utils import escape_like
from app.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def client_ip(request: Request | None) -> str | None:
    if request is None or request.client is None:
        return None
    return request.client.host


def log_action(
    db: Session,
    *,
    user_id: int | None,
    action: str,
    resource_type: str,
    resource_id: int | None = None,
    details: dict[str, Any] | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """Insert an audit log entry.

    Uses a SAVEPOINT so that failures in audit logging never corrupt
    the caller's transaction.  If the insert fails the savepoint is
    rolled back and the outer transaction remains healthy.
    """
    if not settings.audit_log_enabled:
        return
    try:
        with db.begin_nested():
            db.add(AuditLog(
                user_id=user_id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                details=json.dumps(details, default=str) if details else None,
                ip_address=ip_address,
                user_agent=user_agent[:500] if user_agent else None,
            ))
            db.flush()
    except Exception:
        logger.warning("Failed to write audit log", exc_info=True)


def purge_expired_audit_logs(db: Session) -> int:
    """Delete audit entries older than the configured retention window."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=settings.audit_log_retention_days)
    deleted = db.query(AuditLog).filter(AuditLog.created_at < cutoff).delete(synchronize_session=False)
    db.commit()
    return deleted


def search_audit_logs(
    db: Session,
    *,
    user_id: int | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
) -> Query:
    """Audit entries matching every given filter; ``search`` looks inside the JSON details."""
    query = db.query(AuditLog)
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if action:
        query = query.filter(AuditLog.action == action)
    if resource_type:
        query = query.filter(AuditLog.resource_type == resource_type)
    if date_from:
        query = query.filter(AuditLog.created_at >= date_from)
    if date_to:
        query = query.filter(AuditLog.created_at <= date_to)
    if search:
        query = query.filter(AuditLog.details.ilike(f"%{escape_like(search)}%", escape="\\"))
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
