import logging
from datetime import datetime, timezone
from calendar import timegm
from typing import Any, Dict, List, Optional

import feedparser

logger = logging.getLogger(__name__)

def _parse_time(entry) -> Optional[str]:
    # feedparser normalizes published/updated to UTC struct_time
    parsed = getattr(entry, "published_parsed", None) or getattr(entry, "updated_parsed", None)
    if not parsed:
        return None
    try:
        return datetime.fromtimestamp(timegm(parsed), tz=timezone.utc).isoformat()
    except (OverflowError, ValueError):
        return None

def fetch_rss(feed_url: str, keywords: Optional[List[str]] = None, limit: int = 10) -> List[Dict[str, Any]]:
    """Entries of one feed whose title or summary mentions any keyword."""
    feed = feedparser.parse(feed_url)
    if getattr(feed, "bozo", False) and not getattr(feed, "entries", None):
        logger.warning("Could not parse feed %s: %s", feed_url, getattr(feed, "bozo_exception", ""))
        return []

    kws = [k.lower() for k in (keywords or []) if k]
    source = feed.feed.get("title") if getattr(feed, "feed", None) else None
    results: List[Dict[str, Any]] = []
    for entry in feed.entries:
        if len(results) >= limit:
            break
        title = entry.get("title", "")
        summary = entry.get("summary", "") or entry.get("description", "")
        if kws:
            text = f"{title} {summary}".lower()
            if not any(k in text for k in kws):
                continue
        results.append({
            "title": title,
            "summary": summary,
            "url": entry.get("link", ""),
            "published": _parse_time(entry),
            "source": source or feed_url,
        })
    return results
