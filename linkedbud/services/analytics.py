# linkedbud/services/analytics.py
"""Engagement analytics over stored metric snapshots.

Everything here is plain aggregation: sums, ratios and deltas over rows the
metrics job already wrote. `aggregate` loads the rows for one user and hands
them to the pure helpers below, which also work on any objects exposing the
same attributes as the ORM models.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from linkedbud.db import crud
from linkedbud.db.base import utcnow
from linkedbud.errors import InvalidRequestError

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1)
PRESET_DAYS = {"7d": 7, "30d": 30, "90d": 90}
SORT_COLUMNS = ("impressions", "likes", "comments", "shares", "engagement_rate")
SORT_DIRECTIONS = ("asc", "desc")
TOP_POSTS_LIMIT = 10
EXCERPT_LENGTH = 150


@dataclass
class Window:
    start: datetime
    end: datetime  # exclusive
    previous_start: datetime
    previous_end: datetime

    def contains(self, ts: Optional[datetime]) -> bool:
        return ts is not None and self.start <= ts < self.end


def resolve_period(
    period: str = "30d",
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Window:
    """Turn a period name into the current window and the equal-length one before it.

    Unknown periods raise a 400; there is no fallback to 30d.
    """
    now = now or utcnow()
    if period == "custom":
        try:
            start = datetime.strptime(start_date or "", "%Y-%m-%d")
            # the end day is inclusive
            end = datetime.strptime(end_date or "", "%Y-%m-%d") + timedelta(days=1)
        except ValueError:
            raise InvalidRequestError("Invalid date format")
        if start >= end:
            raise InvalidRequestError("Start date must be before end date")
    elif period == "all":
        # nothing precedes "all time"; the previous window is empty
        return Window(EPOCH, now, EPOCH, EPOCH)
    elif period in PRESET_DAYS:
        end = now
        start = now - timedelta(days=PRESET_DAYS[period])
    else:
        raise InvalidRequestError(f"Invalid period: {period}")
    length = end - start
    return Window(start, end, start - length, start)


def record_matches_context(record, context: str) -> bool:
    if context == "all":
        return True
    if context == "personal":
        return record.organization_id is None
    return record.organization_id == context


def post_matches_context(post, context: str, records: Optional[Iterable[Any]] = None) -> bool:
    if context == "all":
        return True
    records = list(post.linkedin_posts if records is None else records)
    if post.publish_target == context:
        return True
    if context == "personal" and not post.publish_target and not records:
        return True
    return bool(records) and all(record_matches_context(r, context) for r in records)


def excerpt(content: Optional[str], length: int = EXCERPT_LENGTH) -> str:
    if not content:
        return ""
    if len(content) <= length:
        return content
    truncated = content[:length]
    cut = truncated.rfind(" ")
    if cut > 0:
        truncated = truncated[:cut]
    return truncated.strip() + "..."


def engagement_rate(likes: int, comments: int, shares: int, impressions: int) -> float:
    return (likes + comments + shares) / impressions if impressions > 0 else 0.0


def latest_per_post(snapshots: Iterable[Any]) -> Dict[str, Any]:
    latest: Dict[str, Any] = {}
    for s in snapshots:
        cur = latest.get(s.linkedin_post_id)
        if cur is None or s.fetched_at >= cur.fetched_at:
            latest[s.linkedin_post_id] = s
    return latest


def totals(snapshots: Iterable[Any]) -> Dict[str, Any]:
    """Sum the latest snapshot of each post."""
    latest = latest_per_post(snapshots)
    impressions = sum(s.impressions or 0 for s in latest.values())
    likes = sum(s.likes or 0 for s in latest.values())
    comments = sum(s.comments or 0 for s in latest.values())
    shares = sum(s.shares or 0 for s in latest.values())
    return {
        "impressions": impressions,
        "engagement": likes + comments + shares,
        "engagement_rate": engagement_rate(likes, comments, shares, impressions),
        "post_count": len(latest),
    }


def _baseline(history: List[Any], window: Window, published_at: Optional[datetime], all_time: bool):
    if all_time or (published_at is not None and published_at > window.start):
        return None
    before = [s for s in history if s.fetched_at <= window.start]
    if before:
        return max(before, key=lambda s: s.fetched_at)
    inside = [s for s in history if window.contains(s.fetched_at)]
    return min(inside, key=lambda s: s.fetched_at) if inside else None


def top_posts(
    posts: Iterable[Any],
    snapshots_by_post: Dict[str, List[Any]],
    window: Window,
    context: str,
    org_names: Dict[str, str],
    sort_column: str = "impressions",
    sort_direction: str = "desc",
    all_time: bool = False,
    limit: int = TOP_POSTS_LIMIT,
) -> List[Dict[str, Any]]:
    entries = []
    for post in posts:
        if post.status != "PUBLISHED":
            continue
        for record in post.linkedin_posts:
            if record.status != "PUBLISHED" or not record.linkedin_post_id:
                continue
            if not record_matches_context(record, context):
                continue
            history = snapshots_by_post.get(record.linkedin_post_id, [])
            in_window = [s for s in history if window.contains(s.fetched_at)]
            if not in_window:
                continue
            latest = max(in_window, key=lambda s: s.fetched_at)
            base = _baseline(history, window, post.published_at, all_time)

            def delta(name: str) -> int:
                start_value = (getattr(base, name) or 0) if base is not None else 0
                return max(0, (getattr(latest, name) or 0) - start_value)

            impressions, likes, comments, shares = (delta(n) for n in ("impressions", "likes", "comments", "shares"))
            entries.append({
                "post_id": post.id,
                "linkedin_post_id": record.linkedin_post_id,
                "excerpt": excerpt(post.content),
                "published_at": post.published_at.isoformat() if post.published_at else None,
                "impressions": impressions,
                "likes": likes,
                "comments": comments,
                "shares": shares,
                "engagement_rate": engagement_rate(likes, comments, shares, impressions),
                "organization_id": record.organization_id,
                "organization_name": org_names.get(record.organization_id) if record.organization_id else None,
            })

    # newest first, then a stable sort on the metric keeps that order for ties
    entries.sort(key=lambda e: e["published_at"] or "", reverse=True)
    reverse = sort_direction == "desc"
    entries.sort(key=lambda e: e[sort_column], reverse=reverse)
    return entries[:limit]


def time_series(snapshots: Iterable[Any]) -> List[Dict[str, Any]]:
    days: Dict[str, Dict[str, Any]] = {}
    for s in snapshots:
        day = s.fetched_at.date().isoformat()
        per_post = days.setdefault(day, {})
        cur = per_post.get(s.linkedin_post_id)
        if cur is None or s.fetched_at > cur.fetched_at:
            per_post[s.linkedin_post_id] = s
    series = []
    for day in sorted(days):
        rows = days[day].values()
        series.append({
            "date": day,
            "impressions": sum(r.impressions or 0 for r in rows),
            "likes": sum(r.likes or 0 for r in rows),
            "comments": sum(r.comments or 0 for r in rows),
            "shares": sum(r.shares or 0 for r in rows),
        })
    return series


def publishing_patterns(posts: Iterable[Any]) -> List[Dict[str, int]]:
    counts: Dict[int, int] = {}
    for post in posts:
        if post.published_at:
            weekday = post.published_at.weekday()
            counts[weekday] = counts.get(weekday, 0) + 1
    return [{"day_of_week": d, "count": counts[d]} for d in sorted(counts)]


def posts_by_status(posts: Iterable[Any], window: Window, context: str) -> Dict[str, int]:
    result = {"published": 0, "scheduled": 0, "draft": 0, "archived": 0}
    for post in posts:
        if not post_matches_context(post, context):
            continue
        if post.status == "PUBLISHED" and window.contains(post.published_at):
            result["published"] += 1
        elif post.status == "SCHEDULED" and window.contains(post.scheduled_publish_date):
            result["scheduled"] += 1
        elif post.status == "DRAFT" and window.contains(post.created_at):
            result["draft"] += 1
        elif post.status == "ARCHIVED" and window.contains(post.created_at):
            result["archived"] += 1
    return result


def aggregate(
    db: Session,
    user_id: str,
    period: str = "30d",
    context: str = "all",
    sort_column: str = "impressions",
    sort_direction: str = "desc",
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    if sort_column not in SORT_COLUMNS:
        raise InvalidRequestError(f"Invalid sort column: {sort_column}")
    if sort_direction not in SORT_DIRECTIONS:
        raise InvalidRequestError(f"Invalid sort direction: {sort_direction}")
    window = resolve_period(period, start_date, end_date, now)
    context = context or "all"

    posts = crud.posts_for_analytics(db, user_id)
    records = [
        r for p in posts if p.status == "PUBLISHED"
        for r in p.linkedin_posts
        if r.status == "PUBLISHED" and r.linkedin_post_id and record_matches_context(r, context)
    ]
    post_ids = {r.linkedin_post_id for r in records}

    snapshots_by_post: Dict[str, List[Any]] = {}
    for s in crud.snapshots_for_user(db, user_id, until=window.end):
        if s.linkedin_post_id in post_ids:
            snapshots_by_post.setdefault(s.linkedin_post_id, []).append(s)
    all_snapshots = [s for rows in snapshots_by_post.values() for s in rows]

    current = [s for s in all_snapshots if window.contains(s.fetched_at)]
    previous = [s for s in all_snapshots if window.previous_start <= s.fetched_at < window.previous_end]
    with_metrics = {s.linkedin_post_id for s in current}
    posts_with_metrics = [p for p in posts if any(r.linkedin_post_id in with_metrics for r in p.linkedin_posts)]

    org_names = crud.organization_names(db, user_id, [r.organization_id for r in records if r.organization_id])

    current_totals = totals(current)
    current_totals["previous_period"] = totals(previous)
    current_totals["top_posts"] = top_posts(
        posts_with_metrics, snapshots_by_post, window, context, org_names,
        sort_column=sort_column,
        sort_direction=sort_direction,
        all_time=period == "all",
    )
    logger.info("Analytics for %s: period=%s context=%s posts=%d", user_id, period, context, current_totals["post_count"])
    return {
        "period": {"start": window.start.isoformat(), "end": window.end.isoformat()},
        "current_period": current_totals,
        "time_series": time_series(current),
        "publishing_patterns": publishing_patterns(posts_with_metrics),
        "posts_by_status": posts_by_status(posts, window, context),
    }
