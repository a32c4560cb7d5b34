# linkedbud/services/scheduler.py
import logging
from typing import Any, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from linkedbud.config import settings
from linkedbud.errors import InvalidRequestError
from linkedbud.services.metrics import update_metrics_for_recent_posts

logger = logging.getLogger(__name__)

JOB_ID = "metrics_batch"

scheduler: Optional[BackgroundScheduler] = None


def run_once() -> Dict[str, Any]:
    return update_metrics_for_recent_posts()


def start(cron: Optional[str] = None) -> Dict[str, Any]:
    """Run the metrics batch on a 5-field crontab (m h dom mon dow, UTC)."""
    global scheduler
    if scheduler and scheduler.running:
        return {"status": "already-running"}

    cron = cron or settings.metrics_cron
    try:
        trigger = CronTrigger.from_crontab(cron, timezone="UTC")
    except ValueError as e:
        raise InvalidRequestError(f"Invalid cron expression: {e}")

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(run_once, trigger, id=JOB_ID, replace_existing=True, max_instances=1, coalesce=True)
    scheduler.start()
    logger.info("Metrics scheduler started with cron %s", cron)
    return {"status": "started", "cron": cron}


def stop() -> Dict[str, Any]:
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Metrics scheduler stopped")
        return {"status": "stopped"}
    return {"status": "not-running"}


def status() -> Dict[str, Any]:
    running = bool(scheduler and scheduler.running)
    next_run = None
    if running:
        job = scheduler.get_job(JOB_ID)
        if job and job.next_run_time:
            next_run = job.next_run_time.isoformat()
    return {"running": running, "next_run_time": next_run}
