# linkedbud/services/metrics.py
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from linkedbud.db import crud
from linkedbud.db.base import SessionLocal, utcnow
from linkedbud.db.models import LinkedInPostMetrics
from linkedbud.services import tokens
from linkedbud.services.linkedin_api import LinkedInAPIError, LinkedInClient

logger = logging.getLogger(__name__)

RECENT_DAYS = 30
MAX_WORKERS = 8


def utc_midnight(now: Optional[datetime] = None) -> datetime:
    now = now or utcnow()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def fetch_and_store(
    db: Session,
    linkedin_post_id: str,
    user_id: str,
    access_token: str,
    organization_id: Optional[str] = None,
) -> Optional[LinkedInPostMetrics]:
    """Fetch counters for one post and upsert today's snapshot. None on any failure."""
    try:
        metrics = LinkedInClient(access_token).get_post_metrics(linkedin_post_id, organization_id)
    except (LinkedInAPIError, httpx.HTTPError, ValueError) as e:
        logger.error("Error fetching LinkedIn metrics for %s: %s", linkedin_post_id, e)
        return None

    today = utc_midnight()
    try:
        row = crud.get_snapshot_for_day(db, linkedin_post_id, user_id, today)
        if row is None:
            row = LinkedInPostMetrics(linkedin_post_id=linkedin_post_id, user_id=user_id, fetched_at=today)
        row.impressions = metrics.impressions
        row.likes = metrics.likes
        row.comments = metrics.comments
        row.shares = metrics.shares
        row.clicks = metrics.clicks
        row.engagement_rate = metrics.engagement_rate
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error storing LinkedIn metrics for %s: %s", linkedin_post_id, e)
        return None


def latest(db: Session, linkedin_post_id: str, user_id: str) -> Optional[LinkedInPostMetrics]:
    return crud.get_latest_snapshot(db, linkedin_post_id, user_id)


def history(db: Session, linkedin_post_id: str, user_id: str, days: Optional[int] = None) -> List[LinkedInPostMetrics]:
    since = utcnow() - timedelta(days=days) if days else None
    return crud.get_snapshot_history(db, linkedin_post_id, user_id, since=since)


def _update_one(session_factory: Callable[[], Session], linkedin_post_id: str, user_id: str, organization_id: Optional[str]) -> str:
    db = session_factory()
    try:
        tok = tokens.get_token(db, user_id, "community")
        if tok is None:
            logger.warning("No community token available for user %s", user_id)
            return "skipped"
        row = fetch_and_store(db, linkedin_post_id, user_id, tok.access_token, organization_id)
        return "updated" if row is not None else "failed"
    except Exception:
        logger.exception("Error updating metrics for post %s", linkedin_post_id)
        return "failed"
    finally:
        db.close()


def update_metrics_for_recent_posts(
    session_factory: Callable[[], Session] = SessionLocal,
    max_workers: int = MAX_WORKERS,
) -> Dict[str, Any]:
    """Refresh snapshots for every post published in the last 30 days.

    Each post is handled on its own worker with its own session; one post
    failing never stops the others.
    """
    db = session_factory()
    try:
        records = crud.recent_published_records(db, utcnow() - timedelta(days=RECENT_DAYS))
        jobs = [(r.linkedin_post_id, r.user_id, r.organization_id) for r in records]
    finally:
        db.close()

    summary = {"total": len(jobs), "updated": 0, "skipped": 0, "failed": 0}
    if not jobs:
        logger.info("No recent posts to update metrics for")
        return summary

    logger.info("Updating metrics for %d recent posts", len(jobs))
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        results = list(pool.map(lambda job: _update_one(session_factory, *job), jobs))
    for outcome in results:
        summary[outcome] += 1
    logger.info("Completed metrics update: %s", summary)
    return summary
