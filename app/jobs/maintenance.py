import logging
from datetime import datetime, timezone

from app.db.database import SessionLocal
from app.models.token_blacklist import TokenBlacklist
from app.services.audit_service import purge_expired_audit_logs
from app.services.reconciliation import find_orphans
from app.services.storage import StorageError, get_storage

logger = logging.getLogger(__name__)


def cleanup_token_blacklist() -> int:
    """Delete blacklist entries whose tokens have expired anyway."""
    db = SessionLocal()
    try:
        deleted = (
            db.query(TokenBlacklist)
            .filter(TokenBlacklist.expires_at < datetime.now(timezone.utc))
            .delete(synchronize_session=False)
        )
        db.commit()
        if deleted:
            logger.info(f"Cleaned up {deleted} expired token blacklist entries")
        return deleted
    except Exception as e:
        db.rollback()
        logger.warning(f"Token blacklist cleanup failed: {e}")
        return 0
    finally:
        db.close()


def cleanup_audit_logs() -> int:
    db = SessionLocal()
    try:
        deleted = purge_expired_audit_logs(db)
        if deleted:
            logger.info(f"Purged {deleted} audit log entries past retention")
        return deleted
    except Exception as e:
        db.rollback()
        logger.warning(f"Audit log retention purge failed: {e}")
        return 0
    finally:
        db.close()


def report_orphaned_uploads() -> int | None:
    """Log how many stored uploads have no resource row, so admins know to reconcile.

    Returns the count, or None when storage could not be listed.
    """
    logger.info("Running orphaned upload scan...")
    db = SessionLocal()
    try:
        orphans = find_orphans(db, get_storage())
    except StorageError as e:
        logger.error(f"Orphaned upload scan failed: {e}")
        return None
    finally:
        db.close()

    if orphans:
        total_bytes = sum(o.object.size for o in orphans)
        logger.warning(f"{len(orphans)} orphaned upload(s) awaiting reconciliation | bytes={total_bytes}")
    else:
        logger.info("No orphaned uploads found")
    return len(orphans)
