from datetime import timedelta

import httpx
import pytest

from linkedbud.db import crud
from linkedbud.db.base import utcnow
from linkedbud.db.models import LinkedInPostMetrics
from linkedbud.services import metrics
from linkedbud.services.linkedin_api import LinkedInAPIError, LinkedInClient, PostMetrics

from conftest import USER_ID, TestSessionLocal


class FakeLinkedIn:
    results = []
    calls = []

    def __init__(self, access_token):
        self.access_token = access_token

    def get_post_metrics(self, post_id, organization_id=None):
        FakeLinkedIn.calls.append((self.access_token, post_id, organization_id))
        result = FakeLinkedIn.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture(autouse=True)
def fake_linkedin(monkeypatch):
    FakeLinkedIn.results = []
    FakeLinkedIn.calls = []
    monkeypatch.setattr(metrics, "LinkedInClient", FakeLinkedIn)
    return FakeLinkedIn


def _published(db, make_post, linkedin_post_id="urn:li:share:1", user_id=USER_ID, organization_id=None, days_ago=0):
    post = make_post(user_id=user_id)
    record = crud.create_linkedin_post_record(
        db, user_id, post.id, post.content, "PUBLISHED",
        linkedin_post_id=linkedin_post_id, organization_id=organization_id,
    )
    if days_ago:
        record.published_at = utcnow() - timedelta(days=days_ago)
        db.commit()
    return record


def test_same_day_fetch_overwrites_single_row(db_session):
    FakeLinkedIn.results = [
        PostMetrics(impressions=100, likes=5, comments=2, shares=1, clicks=3),
        PostMetrics(impressions=150, likes=9, comments=2, shares=1, clicks=4),
    ]

    first = metrics.fetch_and_store(db_session, "urn:li:share:1", USER_ID, "tok")
    second = metrics.fetch_and_store(db_session, "urn:li:share:1", USER_ID, "tok")

    rows = db_session.query(LinkedInPostMetrics).all()
    assert len(rows) == 1
    assert first.id == second.id
    assert rows[0].impressions == 150
    assert rows[0].likes == 9
    assert rows[0].engagement_rate == pytest.approx(12 / 150)
    assert rows[0].fetched_at == metrics.utc_midnight()


def test_new_day_adds_row(db_session):
    old = LinkedInPostMetrics(
        linkedin_post_id="urn:li:share:1", user_id=USER_ID, impressions=10,
        fetched_at=metrics.utc_midnight() - timedelta(days=1),
    )
    db_session.add(old)
    db_session.commit()
    FakeLinkedIn.results = [PostMetrics(impressions=20)]

    metrics.fetch_and_store(db_session, "urn:li:share:1", USER_ID, "tok")

    history = metrics.history(db_session, "urn:li:share:1", USER_ID)
    assert [h.impressions for h in history] == [10, 20]
    assert metrics.latest(db_session, "urn:li:share:1", USER_ID).impressions == 20


def test_provider_error_returns_none(db_session):
    FakeLinkedIn.results = [LinkedInAPIError(403, "not allowed")]
    assert metrics.fetch_and_store(db_session, "urn:li:share:1", USER_ID, "tok") is None
    assert db_session.query(LinkedInPostMetrics).count() == 0


def test_engagement_rate_zero_impressions():
    assert PostMetrics().engagement_rate is None
    assert PostMetrics(impressions=10, likes=1, comments=1, shares=0).engagement_rate == pytest.approx(0.2)


def test_batch_updates_recent_posts_independently(db_session, make_post, make_token):
    make_token("community")
    make_token("community", user_id="user-2")
    _published(db_session, make_post, "urn:li:share:1", organization_id="42")
    _published(db_session, make_post, "urn:li:share:2", user_id="user-2")
    _published(db_session, make_post, "urn:li:share:3", user_id="user-3")  # no token
    _published(db_session, make_post, "urn:li:share:old", days_ago=45)
    FakeLinkedIn.results = [PostMetrics(impressions=1), LinkedInAPIError(500, "down")]

    summary = metrics.update_metrics_for_recent_posts(session_factory=TestSessionLocal, max_workers=1)

    assert summary == {"total": 3, "updated": 1, "skipped": 1, "failed": 1}
    assert ("community-access", "urn:li:share:1", "42") in FakeLinkedIn.calls
    assert all(c[1] != "urn:li:share:old" for c in FakeLinkedIn.calls)


def test_batch_with_nothing_to_do(db_session):
    summary = metrics.update_metrics_for_recent_posts(session_factory=TestSessionLocal, max_workers=1)
    assert summary == {"total": 0, "updated": 0, "skipped": 0, "failed": 0}


def test_get_metrics_route_with_history(client, db_session, make_post):
    _published(db_session, make_post, "urn:li:share:1")
    today = metrics.utc_midnight()
    for days_back, impressions in ((2, 5), (1, 8), (0, 13)):
        db_session.add(LinkedInPostMetrics(
            linkedin_post_id="urn:li:share:1", user_id=USER_ID,
            impressions=impressions, fetched_at=today - timedelta(days=days_back),
        ))
    db_session.commit()

    resp = client.get("/api/linkedin/metrics", params={"linkedinPostId": "urn:li:share:1", "includeHistory": "true"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["latest"]["impressions"] == 13
    assert [h["impressions"] for h in body["history"]] == [5, 8, 13]


def test_get_metrics_for_someone_elses_post_is_404(client, db_session, make_post):
    _published(db_session, make_post, "urn:li:share:9", user_id="user-2")
    resp = client.get("/api/linkedin/metrics", params={"linkedinPostId": "urn:li:share:9"})
    assert resp.status_code == 404


def test_get_metrics_requires_post_id(client):
    resp = client.get("/api/linkedin/metrics")
    assert resp.status_code == 400


def test_on_demand_fetch_uses_community_token(client, db_session, make_post, make_token):
    make_token("community")
    _published(db_session, make_post, "urn:li:share:1", organization_id="42")
    FakeLinkedIn.results = [PostMetrics(impressions=40, likes=4)]

    resp = client.post("/api/linkedin/metrics", json={"linkedinPostId": "urn:li:share:1"})

    assert resp.status_code == 200
    assert resp.json()["metrics"]["impressions"] == 40
    assert FakeLinkedIn.calls == [("community-access", "urn:li:share:1", "42")]


def test_batch_route_requires_cron_secret(client, monkeypatch):
    monkeypatch.setattr(metrics, "update_metrics_for_recent_posts", lambda: {"total": 0, "updated": 0, "skipped": 0, "failed": 0})

    assert client.post("/api/linkedin/metrics/update-batch").status_code == 401
    resp = client.post("/api/linkedin/metrics/update-batch", headers={"Authorization": "Bearer cron-secret"})
    assert resp.status_code == 200
    assert resp.json()["success"] is True


def test_unreadable_provider_body_returns_none(db_session, monkeypatch):
    monkeypatch.setattr(metrics, "LinkedInClient", LinkedInClient)
    monkeypatch.setattr(
        httpx.HTTPTransport, "handle_request",
        lambda self, request: httpx.Response(200, text="<html>gateway</html>"),
    )

    assert metrics.fetch_and_store(db_session, "urn:li:share:1", USER_ID, "tok", organization_id="42") is None
    assert db_session.query(LinkedInPostMetrics).count() == 0


def test_on_demand_fetch_provider_failure_is_500(client, db_session, make_post, make_token):
    make_token("community")
    _published(db_session, make_post, "urn:li:share:1", organization_id="42")
    FakeLinkedIn.results = [LinkedInAPIError(502, "bad gateway")]

    resp = client.post("/api/linkedin/metrics", json={"linkedinPostId": "urn:li:share:1"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to fetch metrics"}
