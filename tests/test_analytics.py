from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from linkedbud.db import crud
from linkedbud.db.models import LinkedInPostMetrics
from linkedbud.errors import InvalidRequestError
from linkedbud.services import analytics

from conftest import USER_ID

NOW = datetime(2025, 6, 15, 12, 0, 0)


def _published_post(db, make_post, linkedin_post_id, published_at, content="Post body", organization_id=None):
    post = make_post(
        content=content,
        status="PUBLISHED",
        published_at=published_at,
        publish_target=organization_id or "personal",
    )
    record = crud.create_linkedin_post_record(
        db, USER_ID, post.id, content, "PUBLISHED",
        linkedin_post_id=linkedin_post_id, organization_id=organization_id,
    )
    record.published_at = published_at
    db.commit()
    return post


def _snapshot(db, linkedin_post_id, fetched_at, impressions, likes=0, comments=0, shares=0):
    db.add(LinkedInPostMetrics(
        linkedin_post_id=linkedin_post_id, user_id=USER_ID, impressions=impressions,
        likes=likes, comments=comments, shares=shares, fetched_at=fetched_at,
    ))
    db.commit()


def test_empty_week_returns_zeros(client):
    resp = client.get("/api/analytics", params={"period": "7d", "context": "all"})

    assert resp.status_code == 200
    current = resp.json()["current_period"]
    assert current["impressions"] == 0
    assert current["engagement"] == 0
    assert current["engagement_rate"] == 0
    assert current["post_count"] == 0
    assert current["top_posts"] == []
    assert current["previous_period"]["impressions"] == 0
    assert resp.json()["time_series"] == []


def test_resolve_presets_use_equal_previous_window():
    w = analytics.resolve_period("7d", now=NOW)
    assert w.end == NOW
    assert w.start == NOW - timedelta(days=7)
    assert w.previous_end == w.start
    assert w.previous_start == NOW - timedelta(days=14)


def test_resolve_custom_is_end_inclusive():
    w = analytics.resolve_period("custom", "2025-01-01", "2025-01-10", now=NOW)
    assert w.start == datetime(2025, 1, 1)
    assert w.end == datetime(2025, 1, 11)
    assert w.previous_start == datetime(2024, 12, 22)
    assert w.previous_end == datetime(2025, 1, 1)


def test_resolve_all_has_empty_previous_window():
    w = analytics.resolve_period("all", now=NOW)
    assert w.start == analytics.EPOCH
    assert w.previous_start == w.previous_end


@pytest.mark.parametrize("period,start,end", [
    ("custom", "2025-13-01", "2025-01-10"),
    ("custom", None, "2025-01-10"),
    ("custom", "2025-02-01", "2025-01-10"),
    ("14d", None, None),
])
def test_resolve_rejects_bad_input(period, start, end):
    with pytest.raises(InvalidRequestError):
        analytics.resolve_period(period, start, end, now=NOW)


def test_invalid_sort_column_is_400(client):
    resp = client.get("/api/analytics", params={"sortColumn": "followers"})
    assert resp.status_code == 400
    assert "sort column" in resp.json()["error"]


def test_excerpt_cuts_on_word_boundary():
    assert analytics.excerpt("short") == "short"
    assert analytics.excerpt(None) == ""
    text = "word " * 40
    out = analytics.excerpt(text)
    assert out.endswith("word...")
    assert len(out) <= 153


def test_top_post_delta_against_baseline_before_window(db_session, make_post):
    _published_post(db_session, make_post, "urn:li:share:1", NOW - timedelta(days=40))
    _snapshot(db_session, "urn:li:share:1", NOW - timedelta(days=35), 100, likes=10)
    _snapshot(db_session, "urn:li:share:1", NOW - timedelta(days=20), 150, likes=12)
    _snapshot(db_session, "urn:li:share:1", NOW - timedelta(days=1), 300, likes=25)

    result = analytics.aggregate(db_session, USER_ID, period="30d", now=NOW)

    top = result["current_period"]["top_posts"]
    assert len(top) == 1
    assert top[0]["impressions"] == 200
    assert top[0]["likes"] == 15
    assert top[0]["engagement_rate"] == pytest.approx(15 / 200)
    # totals use the latest snapshot in the window
    assert result["current_period"]["impressions"] == 300
    assert result["current_period"]["previous_period"]["impressions"] == 100


def test_new_post_uses_zero_baseline_and_deltas_never_negative(db_session, make_post):
    _published_post(db_session, make_post, "urn:li:share:new", NOW - timedelta(days=3))
    _snapshot(db_session, "urn:li:share:new", NOW - timedelta(days=2), 80, likes=8)
    _published_post(db_session, make_post, "urn:li:share:old", NOW - timedelta(days=60))
    _snapshot(db_session, "urn:li:share:old", NOW - timedelta(days=40), 500, likes=50)
    _snapshot(db_session, "urn:li:share:old", NOW - timedelta(days=5), 450, likes=40)

    top = analytics.aggregate(db_session, USER_ID, period="30d", now=NOW)["current_period"]["top_posts"]

    by_id = {t["linkedin_post_id"]: t for t in top}
    assert by_id["urn:li:share:new"]["impressions"] == 80
    assert by_id["urn:li:share:old"]["impressions"] == 0
    assert by_id["urn:li:share:old"]["likes"] == 0


def test_sorting_and_tie_break_newest_first(db_session, make_post):
    for i, (impressions, days_ago) in enumerate([(50, 10), (50, 2), (90, 5)]):
        lpid = f"urn:li:share:{i}"
        _published_post(db_session, make_post, lpid, NOW - timedelta(days=days_ago))
        _snapshot(db_session, lpid, NOW - timedelta(hours=1), impressions)

    desc = analytics.aggregate(db_session, USER_ID, period="30d", now=NOW)["current_period"]["top_posts"]
    assert [t["linkedin_post_id"] for t in desc] == ["urn:li:share:2", "urn:li:share:1", "urn:li:share:0"]

    asc = analytics.aggregate(db_session, USER_ID, period="30d", sort_direction="asc", now=NOW)["current_period"]["top_posts"]
    assert [t["linkedin_post_id"] for t in asc] == ["urn:li:share:1", "urn:li:share:0", "urn:li:share:2"]


def test_context_filters_personal_and_organization(db_session, make_post):
    crud.upsert_organizations(db_session, USER_ID, [{"id": "42", "name": "Acme"}])
    _published_post(db_session, make_post, "urn:li:share:p", NOW - timedelta(days=2))
    _published_post(db_session, make_post, "urn:li:share:o", NOW - timedelta(days=2), organization_id="42")
    _snapshot(db_session, "urn:li:share:p", NOW - timedelta(days=1), 10)
    _snapshot(db_session, "urn:li:share:o", NOW - timedelta(days=1), 30)

    personal = analytics.aggregate(db_session, USER_ID, period="7d", context="personal", now=NOW)
    org = analytics.aggregate(db_session, USER_ID, period="7d", context="42", now=NOW)
    everything = analytics.aggregate(db_session, USER_ID, period="7d", context="all", now=NOW)

    assert personal["current_period"]["impressions"] == 10
    assert org["current_period"]["impressions"] == 30
    assert org["current_period"]["top_posts"][0]["organization_name"] == "Acme"
    assert everything["current_period"]["impressions"] == 40
    assert everything["posts_by_status"]["published"] == 2
    assert personal["posts_by_status"]["published"] == 1


def test_time_series_keeps_latest_per_post_per_day():
    day = datetime(2025, 6, 1)
    rows = [
        SimpleNamespace(linkedin_post_id="a", fetched_at=day, impressions=5, likes=1, comments=0, shares=0),
        SimpleNamespace(linkedin_post_id="a", fetched_at=day + timedelta(hours=5), impressions=7, likes=1, comments=0, shares=0),
        SimpleNamespace(linkedin_post_id="b", fetched_at=day, impressions=3, likes=0, comments=1, shares=0),
        SimpleNamespace(linkedin_post_id="a", fetched_at=day + timedelta(days=1), impressions=9, likes=2, comments=0, shares=1),
    ]
    assert analytics.time_series(rows) == [
        {"date": "2025-06-01", "impressions": 10, "likes": 1, "comments": 1, "shares": 0},
        {"date": "2025-06-02", "impressions": 9, "likes": 2, "comments": 0, "shares": 1},
    ]


def test_publishing_patterns_monday_is_zero():
    posts = [
        SimpleNamespace(published_at=datetime(2025, 6, 2)),   # Monday
        SimpleNamespace(published_at=datetime(2025, 6, 9)),   # Monday
        SimpleNamespace(published_at=datetime(2025, 6, 8)),   # Sunday
        SimpleNamespace(published_at=None),
    ]
    assert analytics.publishing_patterns(posts) == [
        {"day_of_week": 0, "count": 2},
        {"day_of_week": 6, "count": 1},
    ]


def test_posts_by_status_uses_status_specific_dates():
    window = analytics.resolve_period("7d", now=NOW)
    inside, outside = NOW - timedelta(days=1), NOW - timedelta(days=20)

    def post(status, **dates):
        fields = {"published_at": None, "scheduled_publish_date": None, "created_at": outside}
        fields.update(dates)
        return SimpleNamespace(status=status, publish_target="personal", linkedin_posts=[], **fields)

    posts = [
        post("PUBLISHED", published_at=inside),
        post("PUBLISHED", published_at=outside, created_at=inside),
        post("SCHEDULED", scheduled_publish_date=inside),
        post("DRAFT", created_at=inside),
        post("DRAFT"),
        post("ARCHIVED", created_at=inside),
    ]
    assert analytics.posts_by_status(posts, window, "all") == {
        "published": 1, "scheduled": 1, "draft": 1, "archived": 1,
    }
