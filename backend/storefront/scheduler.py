"""
In-process job scheduler

Runs the janitors on fixed intervals while the API is up. The cron HTTP
endpoints call the same functions for external triggering.
"""
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from storefront.core.config import settings
from storefront.db.session import session_scope
from storefront.services import jobs
from storefront.logging_config import get_logger

logger = get_logger(__name__)

_scheduler: Optional[BackgroundScheduler] = None


def _run(name: str, job: Callable) -> None:
    """Run one janitor in its own session; errors are logged, never raised."""
    try:
        with session_scope() as db:
            result = job(db)
        logger.info(f"Scheduled job {name} finished: {result}", extra={"job": name})
    except Exception as e:
        logger.error(f"Scheduled job {name} failed: {e}", exc_info=True, extra={"job": name})


def build_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone=settings.SCHEDULER_TIMEZONE)
    scheduler.add_job(
        _run, 'interval',
        minutes=settings.AUTO_CANCEL_INTERVAL_MINUTES,
        args=("auto_cancel", jobs.auto_cancel_stale_orders),
        id="auto_cancel", max_instances=1, coalesce=True,
    )
    scheduler.add_job(
        _run, 'interval',
        minutes=settings.AUTO_TRACKING_INTERVAL_MINUTES,
        args=("auto_tracking", jobs.auto_track_deliveries),
        id="auto_tracking", max_instances=1, coalesce=True,
    )
    scheduler.add_job(
        _run, 'interval',
        hours=settings.CLEANUP_INTERVAL_HOURS,
        args=("cleanup_carts", jobs.cleanup_stale_carts),
        id="cleanup_carts", max_instances=1, coalesce=True,
    )
    scheduler.add_job(
        _run, 'interval',
        hours=settings.CLEANUP_INTERVAL_HOURS,
        args=("cleanup_tokens", jobs.cleanup_expired_tokens),
        id="cleanup_tokens", max_instances=1, coalesce=True,
    )
    scheduler.add_job(
        _run, 'interval',
        seconds=settings.NOTIFICATION_DISPATCH_INTERVAL_SECONDS,
        args=("dispatch_notifications", jobs.dispatch_notifications),
        id="dispatch_notifications", max_instances=1, coalesce=True,
    )
    return scheduler


def start_scheduler() -> BackgroundScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = build_scheduler()
        _scheduler.start()
        logger.info("Job scheduler started", extra={"jobs": [job.id for job in _scheduler.get_jobs()]})
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Job scheduler stopped")
