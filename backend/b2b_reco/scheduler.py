"""
Background scheduler for periodic recommendation work.

Uses APScheduler to run two jobs in the background:
- batch regeneration of every user's recommendations on a fixed interval
- a daily purge of behavioral events past the retention window
"""
import logging
import time
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from b2b_reco.core.config import settings
from b2b_reco.database import SessionLocal
from b2b_reco.services.recommendation_engine import generate_for_user
from b2b_reco.services.signals import list_user_ids
from b2b_reco.utils.instrumentation import purge_expired_events
from b2b_reco.utils.timing import StepTimer

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None


def run_recommendation_job(
    session_factory: Callable[[], Session] = SessionLocal,
    delay_seconds: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict:
    """
    Regenerate recommendations for every known user, one at a time.

    Users are processed sequentially with a pause between them to bound load
    on the shared catalog and order store. A failure for one user is logged
    and the run moves on to the next.
    """
    if delay_seconds is None:
        delay_seconds = settings.job_user_delay_seconds

    logger.info("Running scheduled recommendation generation job")
    timer = StepTimer("recommendation_job")

    db: Session = session_factory()
    try:
        user_ids = list_user_ids(db)
    except Exception:
        logger.exception("Recommendation job could not list users")
        return {"processed": 0, "failed": 0, "users": 0}
    finally:
        db.close()

    processed = 0
    failed = 0
    for index, user_id in enumerate(user_ids):
        db = session_factory()
        try:
            generate_for_user(db, user_id)
            processed += 1
        except Exception:
            failed += 1
            logger.exception("Recommendation generation failed for user %s", user_id)
        finally:
            db.close()

        if delay_seconds > 0 and index < len(user_ids) - 1:
            sleep(delay_seconds)

    summary = {"processed": processed, "failed": failed, "users": len(user_ids)}
    logger.info(
        "Recommendation job completed: %s in %.0fms",
        summary,
        timer.total_ms,
    )
    return summary


def purge_events_job(session_factory: Callable[[], Session] = SessionLocal) -> None:
    """Scheduled job removing behavioral events older than EVENT_RETENTION_DAYS."""
    db: Session = session_factory()
    try:
        purge_expired_events(db)
    except Exception as e:
        db.rollback()
        logger.exception(f"Event purge job failed: {e}")
    finally:
        db.close()


def start_scheduler():
    """
    Start the background scheduler with all configured jobs.
    Call this from the FastAPI startup event.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return

    logger.info("Starting background scheduler")
    scheduler = BackgroundScheduler(timezone=settings.SCHEDULER_TIMEZONE)

    scheduler.add_job(
        run_recommendation_job,
        trigger=IntervalTrigger(minutes=settings.RECOMMENDATION_JOB_INTERVAL_MINUTES),
        id="recommendation_generation",
        name="Regenerate recommendations for all users",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    # Daily at 03:00 scheduler time
    scheduler.add_job(
        purge_events_job,
        trigger=CronTrigger(hour=3, minute=0),
        id="purge_expired_events",
        name="Purge expired behavioral events",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(
        "Background scheduler started: recommendations every %d min",
        settings.RECOMMENDATION_JOB_INTERVAL_MINUTES,
    )


def stop_scheduler():
    """
    Stop the background scheduler.
    Call this from the FastAPI shutdown event.
    """
    global scheduler

    if scheduler is not None:
        logger.info("Stopping background scheduler")
        scheduler.shutdown()
        scheduler = None
