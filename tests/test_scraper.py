import json

import httpx
import pytest

from linkedbud.config import settings
from linkedbud.errors import InvalidRequestError
from linkedbud.services import scraper
from linkedbud.services.scraper import ScrapeError

ARTICLE_HTML = "<html><nav>menu</nav><article><h1>Title</h1>\n<p>" + ("Lots of words &amp; more. " * 10) + "</p><script>x()</script></article></html>"


@pytest.fixture
def bee(monkeypatch):
    monkeypatch.setattr(settings, "scrapingbee_api_key", "bee-key")
    monkeypatch.setattr(scraper.time, "sleep", lambda s: None)
    state = {"requests": [], "answers": []}

    def handle(self, request):
        state["requests"].append(request)
        return state["answers"].pop(0)

    monkeypatch.setattr(httpx.HTTPTransport, "handle_request", handle)
    return state


def test_structured_answer(bee):
    bee["answers"] = [httpx.Response(200, json={"title": " Big News ", "content": "Body text"})]

    assert scraper.scrape_article_content("https://news.example/a") == {"title": "Big News", "content": "Body text"}
    params = bee["requests"][0].url.params
    assert params["api_key"] == "bee-key"
    assert json.loads(params["ai_extract_rules"]) == scraper.EXTRACT_RULES
    assert "custom_google" not in params


def test_google_news_flag(bee):
    bee["answers"] = [httpx.Response(200, json={"title": "t", "content": "c"})]
    scraper.scrape_article_content("https://news.google.com/articles/xyz")
    assert bee["requests"][0].url.params["custom_google"] == "True"


def test_html_fallback(bee):
    bee["answers"] = [httpx.Response(200, text=ARTICLE_HTML)]

    result = scraper.scrape_article_content("https://news.example/a")

    assert result["title"] == "Article"
    assert result["content"].startswith("Title Lots of words & more.")
    assert "x()" not in result["content"]
    assert "menu" not in result["content"]


def test_retries_then_succeeds(bee):
    bee["answers"] = [
        httpx.Response(500),
        httpx.Response(200, text="<p>too short</p>"),
        httpx.Response(200, json={"title": "t", "content": "c"}),
    ]
    assert scraper.scrape_article_content("https://news.example/a")["title"] == "t"
    assert len(bee["requests"]) == 3


def test_terminal_error_after_three_attempts(bee):
    bee["answers"] = [httpx.Response(500) for _ in range(3)]
    with pytest.raises(ScrapeError) as exc:
        scraper.scrape_article_content("https://news.example/a")
    assert exc.value.message == "Failed to scrape article content"
    assert len(bee["requests"]) == 3


def test_invalid_url_rejected():
    with pytest.raises(InvalidRequestError):
        scraper.scrape_article_content("ftp://nope")


def test_scrape_route_maps_failure_to_500(client, monkeypatch):
    def fail(url):
        raise ScrapeError("Failed to scrape article content")
    monkeypatch.setattr("linkedbud.routers.articles.scrape_article_content", fail)

    resp = client.post("/api/scrape-article", json={"url": "https://news.example/a"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to scrape article content"}


def test_scrape_route_success(client, monkeypatch):
    monkeypatch.setattr("linkedbud.routers.articles.scrape_article_content", lambda url: {"title": "T", "content": "C"})
    resp = client.post("/api/scrape-article", json={"url": "https://news.example/a"})
    assert resp.json() == {"success": True, "title": "T", "content": "C"}
