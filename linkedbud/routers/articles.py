from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from linkedbud.auth.session import get_current_user_id
from linkedbud.services.rss_fetcher import fetch_rss
from linkedbud.services.scraper import scrape_article_content

router = APIRouter(prefix="/api", tags=["articles"])

class ScrapeIn(BaseModel):
    url: str = ""

@router.post("/scrape-article")
def scrape_article(body: ScrapeIn, user_id: str = Depends(get_current_user_id)) -> Dict[str, Any]:
    article = scrape_article_content(body.url)
    return {"success": True, **article}

@router.get("/articles/rss")
def rss(
    url: str = Query(..., description="RSS feed URL, e.g. https://techcrunch.com/feed/"),
    keywords: Optional[List[str]] = Query(None, description="Optional keyword filters"),
    limit: int = Query(10, ge=1, le=50),
    user_id: str = Depends(get_current_user_id),
) -> Dict[str, Any]:
    items = fetch_rss(url, keywords=keywords, limit=limit)
    return {"count": len(items), "items": items}
