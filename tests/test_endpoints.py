"""
Integration tests for the read / control endpoints using a SQLite DB.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import CollaboratorUnavailableError
from app.services import feed as feed_service

# Break timing runs far in the future so GET /breaks never sees a finished break.
T0 = datetime(2099, 6, 1, 21, 0, tzinfo=timezone.utc)


def _at(minutes: float = 0) -> str:
    return (T0 + timedelta(minutes=minutes)).isoformat()


def _event(user_id: str, minutes: float = 0, **overrides) -> dict:
    payload = {
        "user_id": user_id,
        "video_id": "vid-1",
        "watch_time": 50,
        "video_duration": 60,
        "session_watch_time": 300,
        "video_name": "",
        "hashtags": [],
        "hour_of_day": 21,
        "occurred_at": _at(minutes),
    }
    payload.update(overrides)
    return payload


def _arm(client, user_id: str, minutes: float = 0, hour: int = 21) -> None:
    r = client.post("/events", json=_event(user_id, minutes, session_watch_time=1300, hour_of_day=hour))
    assert r.json()["break_status"] == "armed"


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


# ---------------------------------------------------------------------------
# Breaks
# ---------------------------------------------------------------------------

class TestBreaks:
    def test_unknown_user_is_active(self, client, user_id):
        r = client.get(f"/breaks/{user_id}")
        assert r.status_code == 200
        assert r.json()["status"] == "active"
        assert r.json()["armed_reason"] is None

    def test_full_break_cycle(self, client, user_id):
        _arm(client, user_id)
        state = client.get(f"/breaks/{user_id}").json()
        assert state["status"] == "armed"
        assert state["armed_reason"] == "duration_rule"

        r = client.post(f"/breaks/{user_id}/video-end", json={"ended_at": _at(1), "hour_of_day": 23})
        assert r.status_code == 200
        body = r.json()
        assert body["transitioned"] is True
        assert body["state"]["status"] == "on_break"
        assert body["notification"]["reason"] == "duration_rule"
        assert body["notification"]["break_length_minutes"] == 10.0

        r = client.post(f"/breaks/{user_id}/elapsed", json={"at": _at(5)})
        assert r.json()["status"] == "on_break"
        r = client.post(f"/breaks/{user_id}/elapsed", json={"at": _at(11)})
        assert r.json()["status"] == "active"

    def test_video_end_without_arm_is_noop(self, client, user_id):
        r = client.post(f"/breaks/{user_id}/video-end", json={"ended_at": _at(1)})
        assert r.status_code == 200
        assert r.json()["transitioned"] is False
        assert r.json()["notification"] is None
        assert r.json()["state"]["status"] == "active"

    def test_video_end_without_body(self, client, user_id):
        r = client.post(f"/breaks/{user_id}/video-end")
        assert r.status_code == 200
        assert r.json()["transitioned"] is False

    def test_stale_video_end_ignored(self, client, user_id):
        _arm(client, user_id, minutes=10)
        r = client.post(f"/breaks/{user_id}/video-end", json={"ended_at": _at(9)})
        assert r.json()["transitioned"] is False
        assert r.json()["state"]["status"] == "armed"

    def test_break_starts_at_video_end(self, client, user_id):
        _arm(client, user_id)
        body = client.post(f"/breaks/{user_id}/video-end", json={"ended_at": _at(2)}).json()
        started = datetime.fromisoformat(body["state"]["break_started_at"])
        armed = datetime.fromisoformat(body["state"]["armed_at"])
        assert started >= armed
        assert body["state"]["break_ends_at"] is not None

    def test_notifications_listed(self, client, user_id):
        _arm(client, user_id)
        client.post(f"/breaks/{user_id}/video-end", json={"ended_at": _at(1)})
        r = client.get(f"/breaks/{user_id}/notifications")
        assert r.status_code == 200
        body = r.json()
        assert body["total"] == 1
        assert body["items"][0]["user_id"] == user_id

    def test_notifications_pagination_validated(self, client, user_id):
        r = client.get(f"/breaks/{user_id}/notifications", params={"limit": 0})
        assert r.status_code == 422


# ---------------------------------------------------------------------------
# Parental controls
# ---------------------------------------------------------------------------

class TestParentalControls:
    def test_defaults(self, client, user_id):
        body = client.get(f"/viewers/{user_id}/parental-controls").json()
        assert body["overridden"] is False
        assert (body["break_length_short"], body["break_length_medium"], body["break_length_long"]) == (3.0, 6.5, 10.0)

    def test_override_applies_to_next_break(self, client, user_id):
        r = client.put(f"/viewers/{user_id}/parental-controls", json={
            "break_length_short": 10, "break_length_medium": 30, "break_length_long": 60,
        })
        assert r.status_code == 200
        assert r.json()["overridden"] is True
        assert client.get(f"/viewers/{user_id}/parental-controls").json()["break_length_long"] == 60

        _arm(client, user_id, hour=0)
        body = client.post(f"/breaks/{user_id}/video-end", json={"ended_at": _at(1), "hour_of_day": 0}).json()
        assert body["notification"]["break_length_minutes"] == 10.0

    def test_unordered_rejected(self, client, user_id):
        r = client.put(f"/viewers/{user_id}/parental-controls", json={
            "break_length_short": 5, "break_length_medium": 4, "break_length_long": 12,
        })
        assert r.status_code == 422
        assert r.json()["code"] == "INVALID_PARENTAL_CONFIG"

    def test_below_defaults_rejected(self, client, user_id):
        r = client.put(f"/viewers/{user_id}/parental-controls", json={
            "break_length_short": 1, "break_length_medium": 2, "break_length_long": 3,
        })
        assert r.status_code == 422
        assert r.json()["code"] == "INVALID_PARENTAL_CONFIG"

    def test_non_positive_rejected(self, client, user_id):
        r = client.put(f"/viewers/{user_id}/parental-controls", json={
            "break_length_short": 0, "break_length_medium": 6.5, "break_length_long": 10,
        })
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"


# ---------------------------------------------------------------------------
# Profile & feed
# ---------------------------------------------------------------------------

class TestProfileAndFeed:
    def test_profile_terms(self, client, user_id):
        client.post("/events", json=_event(user_id, video_name="Quick Carbonara", hashtags=["#Pasta"]))
        body = client.get(f"/viewers/{user_id}/profile").json()
        assert body["entries"] == 1
        assert {t["term"] for t in body["terms"]} == {"quick", "carbonara", "pasta"}

    def test_dislike_removes_hashtag_from_ranking(self, client, user_id):
        client.post("/events", json=_event(user_id, 0, video_name="Kitten", hashtags=["#cats"]))
        client.post("/events", json=_event(user_id, 1, video_id="vid-2", hashtags=["#cats"], disliked=True))
        terms = client.get(f"/feed/{user_id}/terms").json()["terms"]
        assert "cats" not in terms
        assert "kitten" in terms
        assert "cats" in client.get(f"/viewers/{user_id}/profile").json()["purged_tokens"]

        client.post("/events", json=_event(user_id, 2, video_id="vid-3", hashtags=["#cats"]))
        assert "cats" in client.get(f"/feed/{user_id}/terms").json()["terms"]

    def test_terms_empty_for_unknown_user(self, client, user_id):
        body = client.get(f"/feed/{user_id}/terms").json()
        assert body["empty"] is True
        assert body["terms"] == []

    def test_terms_capped_at_eight(self, client, user_id):
        words = " ".join(f"w{i}{uuid.uuid4().hex[:4]}" for i in range(15))
        client.post("/events", json=_event(user_id, video_name=words))
        body = client.get(f"/feed/{user_id}/terms").json()
        assert len(body["terms"]) == 8
        assert len(set(body["terms"])) == 8
        assert len(body["scores"]) == 8

    def test_unknown_user_gets_trending(self, client, user_id):
        r = client.get(f"/feed/{user_id}")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "trending"
        assert body["source"] == "trending"
        assert body["terms"] == []

    def test_personalized_feed_from_local_catalog(self, client, user_id):
        tag = f"tag{uuid.uuid4().hex[:8]}"
        client.post("/events", json=_event(user_id, video_id=f"{tag}-video", hashtags=[tag]))
        body = client.get(f"/feed/{user_id}").json()
        assert body["status"] == "personalized"
        assert body["source"] == "search"
        assert body["strategy"] == "combined"
        assert tag in body["terms"]
        assert f"{tag}-video" in [i["video_id"] for i in body["items"]]

    def test_per_term_strategy(self, client, user_id):
        client.post("/events", json=_event(user_id, video_name="Sourdough Basics"))
        body = client.get(f"/feed/{user_id}", params={"strategy": "per_term"}).json()
        assert body["strategy"] == "per_term"

    def test_unknown_strategy_rejected(self, client, user_id):
        r = client.get(f"/feed/{user_id}", params={"strategy": "round_robin"})
        assert r.status_code == 422

    def test_degraded_when_search_down(self, client, user_id, monkeypatch):
        class DownSearch:
            def query(self, terms):
                raise CollaboratorUnavailableError("search", "connection refused")

        class StaticTrending:
            def fetch(self):
                return ["trend-1", "trend-2"]

        monkeypatch.setattr(feed_service, "build_collaborators", lambda db, s: (DownSearch(), StaticTrending()))
        client.post("/events", json=_event(user_id, video_name="Sourdough"))
        body = client.get(f"/feed/{user_id}").json()
        assert body["status"] == "degraded"
        assert body["error"] == "COLLABORATOR_UNAVAILABLE"
        assert [i["video_id"] for i in body["items"]] == ["trend-1", "trend-2"]

    def test_503_when_everything_down(self, client, user_id, monkeypatch):
        class Down:
            def query(self, terms):
                raise CollaboratorUnavailableError("search")

            def fetch(self):
                raise CollaboratorUnavailableError("trending")

        monkeypatch.setattr(feed_service, "build_collaborators", lambda db, s: (Down(), Down()))
        r = client.get(f"/feed/{user_id}")
        assert r.status_code == 503
        assert r.json()["code"] == "COLLABORATOR_UNAVAILABLE"


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

class TestStats:
    def test_daily_stats(self, client, user_id):
        client.post("/events", json=_event(user_id, watch_time=180, video_duration=600))
        body = client.get(f"/stats/{user_id}/daily", params={"day": "2099-06-01"}).json()
        assert body["counted_events"] == 1
        assert body["attention_span_percent"] == pytest.approx(30.0)
        assert body["is_closed"] is False

    def test_default_day_follows_viewer_clock(self, client, user_id):
        # 23:30 on 1 June at UTC-7 is already 2 June in UTC.
        local = datetime(2099, 6, 1, 23, 30, tzinfo=timezone(timedelta(hours=-7)))
        client.post("/events", json=_event(user_id, occurred_at=local.isoformat(), hour_of_day=23))
        body = client.get(f"/stats/{user_id}/daily").json()
        assert body["day"] == "2099-06-01"
        assert body["counted_events"] == 1

    def test_default_day_for_unknown_viewer_is_utc_today(self, client, user_id):
        before = datetime.now(tz=timezone.utc).date().isoformat()
        body = client.get(f"/stats/{user_id}/daily").json()
        after = datetime.now(tz=timezone.utc).date().isoformat()
        assert body["day"] in {before, after}
        assert body["counted_events"] == 0

    def test_unknown_day_is_empty(self, client, user_id):
        body = client.get(f"/stats/{user_id}/daily", params={"day": "2099-06-02"}).json()
        assert body["counted_events"] == 0
        assert body["attention_span_percent"] == 100.0

    def test_invalid_day_rejected(self, client, user_id):
        r = client.get(f"/stats/{user_id}/daily", params={"day": "not-a-date"})
        assert r.status_code == 422

    def test_rollover(self, client, user_id):
        client.post("/events", json=_event(user_id, occurred_at="2002-01-01T12:00:00+00:00"))
        first = client.post("/stats/rollover", json={"before": "2002-01-02"}).json()
        second = client.post("/stats/rollover", json={"before": "2002-01-02"}).json()
        assert first["closed_buckets"] >= 1
        assert second["closed_buckets"] == 0
        assert second["before"] == "2002-01-02"
        daily = client.get(f"/stats/{user_id}/daily", params={"day": "2002-01-01"}).json()
        assert daily["is_closed"] is True
