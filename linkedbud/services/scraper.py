# linkedbud/services/scraper.py
import html
import json
import logging
import re
import time
from typing import Dict

import httpx

from linkedbud.config import settings
from linkedbud.errors import ConfigurationError, InvalidRequestError, UpstreamError

logger = logging.getLogger(__name__)

SCRAPINGBEE_URL = "https://app.scrapingbee.com/api/v1/"
MAX_ATTEMPTS = 3
RETRY_DELAY = 1.0
MIN_FALLBACK_LENGTH = 100
EXTRACT_RULES = {
    "title": "the article headline",
    "content": "the main article text only, without navigation, footer, or ads",
}

ARTICLE_PATTERNS = [
    re.compile(r"<article[^>]*>([\s\S]*?)</article>", re.I),
    re.compile(r'<div[^>]*class="[^"]*article[^"]*"[^>]*>([\s\S]*?)</div>', re.I),
    re.compile(r'<div[^>]*class="[^"]*content[^"]*"[^>]*>([\s\S]*?)</div>', re.I),
    re.compile(r'<div[^>]*class="[^"]*post[^"]*"[^>]*>([\s\S]*?)</div>', re.I),
    re.compile(r"<main[^>]*>([\s\S]*?)</main>", re.I),
]


class ScrapeError(UpstreamError):
    pass


def strip_html(markup: str) -> str:
    text = re.sub(r"<script[^>]*>[\s\S]*?</script>", "", markup, flags=re.I)
    text = re.sub(r"<style[^>]*>[\s\S]*?</style>", "", text, flags=re.I)
    text = re.sub(r"<[^>]*>", "", text)
    text = html.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


def extract_article_text(markup: str) -> str:
    for pattern in ARTICLE_PATTERNS:
        m = pattern.search(markup)
        if m and m.group(1):
            return strip_html(m.group(1))
    return strip_html(markup)


def _is_google_news(url: str) -> bool:
    return "news.google.com" in url or "google.com/news" in url


def _attempt(url: str) -> Dict[str, str]:
    params = {
        "api_key": settings.scrapingbee_api_key,
        "url": url,
        "ai_extract_rules": json.dumps(EXTRACT_RULES),
    }
    if _is_google_news(url):
        params["custom_google"] = "True"

    with httpx.Client(timeout=httpx.Timeout(60, connect=10)) as c:
        r = c.get(SCRAPINGBEE_URL, params=params, headers={"User-Agent": "Linkedbud/1.0"})
    if r.status_code != 200:
        logger.error("ScrapingBee error %s: %s", r.status_code, r.text[:300])
        raise ScrapeError("Failed to scrape article content")
    body = r.text
    if not body.strip():
        raise ScrapeError("Failed to scrape article content")

    title = ""
    try:
        data = json.loads(body)
    except ValueError:
        data = None

    if isinstance(data, dict):
        if data.get("error"):
            raise ScrapeError("Failed to scrape article content")
        title = (data.get("title") or "").strip()
        content = data.get("content") or ""
        if title and content:
            return {"title": title, "content": content}
        body = data.get("html") or body

    text = extract_article_text(body)
    if len(text) < MIN_FALLBACK_LENGTH:
        raise ScrapeError("Failed to scrape article content")
    return {"title": title or "Article", "content": text}


def scrape_article_content(url: str) -> Dict[str, str]:
    """Title and main text of an article, retried up to three times."""
    if not url or not url.startswith("http"):
        raise InvalidRequestError("Valid URL is required")
    if not settings.scrapingbee_api_key:
        raise ConfigurationError("ScrapingBee API key not configured")

    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            return _attempt(url)
        except (ScrapeError, httpx.HTTPError) as e:
            logger.warning("Scraping attempt %d for %s failed: %s", attempt, url, e)
            if attempt < MAX_ATTEMPTS:
                time.sleep(RETRY_DELAY)
    raise ScrapeError("Failed to scrape article content")
