"""
APScheduler job runner that polls the inbox for vendor replies.
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from rfp_service.config import settings
from rfp_service.core.logging import get_logger

log = get_logger(__name__)

# Global scheduler instance
_scheduler: BackgroundScheduler | None = None


def check_inbox_job() -> dict | None:
    """Scheduled job: fetch new vendor replies and turn them into proposals."""
    from rfp_service.processors.ingestion import ProposalIngestionProcessor

    log.info("scheduled_job_starting", job="check_inbox")
    try:
        processor = ProposalIngestionProcessor()
        stats = processor.process()
        log.info("scheduled_job_complete", job="check_inbox", **stats)
        return stats
    except Exception as e:
        log.error("scheduled_job_error", job="check_inbox", error=str(e))
        return None


def start_listener(interval_seconds: int | None = None) -> BackgroundScheduler:
    """
    Start polling the inbox in the background.

    Args:
        interval_seconds: Poll interval, defaults to settings.listener_interval_seconds

    Returns:
        The scheduler instance
    """
    global _scheduler

    if _scheduler is not None:
        log.warning("scheduler_already_running")
        return _scheduler

    interval = interval_seconds or settings.listener_interval_seconds

    _scheduler = BackgroundScheduler()
    _scheduler.add_job(
        check_inbox_job,
        trigger=IntervalTrigger(seconds=interval),
        id="check_inbox",
        name="Check inbox for vendor replies",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    _scheduler.start()
    log.info("listener_started", interval_seconds=interval, folder=settings.imap_folder)

    return _scheduler


def stop_listener():
    """Stop the background scheduler."""
    global _scheduler

    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        log.info("listener_stopped")


def get_scheduler() -> BackgroundScheduler | None:
    """Get the current scheduler instance."""
    return _scheduler


def run_now() -> dict | None:
    """Manually trigger the inbox check."""
    return check_inbox_job()
