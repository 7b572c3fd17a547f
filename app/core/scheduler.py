"""APScheduler configuration for background jobs."""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.services.cbt import auto_submit_expired

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: BackgroundScheduler | None = None


def get_db_session() -> Session:
    """Get a database session for scheduler jobs."""
    return SessionLocal()


def auto_submit_attempts_job():
    """
    Job to auto-submit CBT attempts whose time has run out.
    Each submission completes the attempt and syncs its result.
    """
    db = get_db_session()
    try:
        count = auto_submit_expired(db)
        db.commit()
        if count:
            logger.info(f"Auto-submitted {count} expired exam attempts")
    except Exception as e:
        logger.exception(f"Error auto-submitting exam attempts: {e}")
        db.rollback()
    finally:
        db.close()


def init_scheduler() -> BackgroundScheduler:
    """Initialize and configure the scheduler."""
    global scheduler

    scheduler = BackgroundScheduler(
        timezone=settings.SCHEDULER_TIMEZONE,
        job_defaults={
            "coalesce": True,  # Combine missed runs
            "max_instances": 1,
            "misfire_grace_time": 60,
        },
    )

    scheduler.add_job(
        auto_submit_attempts_job,
        trigger=IntervalTrigger(minutes=settings.AUTO_SUBMIT_INTERVAL_MINUTES),
        id="auto_submit_attempts",
        name="Auto-submit expired exam attempts",
        replace_existing=True,
    )

    logger.info(
        f"Scheduler initialized with auto-submit job every "
        f"{settings.AUTO_SUBMIT_INTERVAL_MINUTES} minute(s)"
    )
    return scheduler


def start_scheduler():
    """Start the scheduler."""
    global scheduler
    if scheduler is None:
        scheduler = init_scheduler()

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")
