import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def schedule_maintenance_jobs():
    """Register the daily housekeeping jobs (idempotent)."""
    from app.jobs.maintenance import cleanup_audit_logs, cleanup_token_blacklist, report_orphaned_uploads

    scheduler.add_job(
        cleanup_token_blacklist,
        CronTrigger(hour=3, minute=0),
        id="token_blacklist_cleanup",
        replace_existing=True,
    )
    scheduler.add_job(
        cleanup_audit_logs,
        CronTrigger(hour=3, minute=30),
        id="audit_log_retention",
        replace_existing=True,
    )
    scheduler.add_job(
        report_orphaned_uploads,
        CronTrigger(hour=6, minute=0),
        id="orphaned_upload_report",
        replace_existing=True,
    )
    logger.info(f"Scheduled {len(scheduler.get_jobs())} maintenance job(s)")


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        scheduler.start()
        logger.info("Background scheduler started")


def stop_scheduler():
    """Stop the background job scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
