"""
Unit tests for the ingest pipeline and per-user locking (no HTTP layer).
"""
import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import MalformedWatchEventError, OutOfOrderEventError
from app.models.viewer import Viewer
from app.models.watch_event import WatchEventRecord
from app.services.daily_stats import get_daily_stats
from app.services.events import WatchEvent
from app.services.ingest import ingest_batch, ingest_event
from app.services.profile_aggregator import load_snapshot
from app.services.user_locks import user_lock, user_locks

T0 = datetime(2026, 7, 1, 8, 0, tzinfo=timezone.utc)


def _event(user_id: str, minutes: float = 0, **overrides) -> WatchEvent:
    fields = dict(
        user_id=user_id,
        video_id="vid-1",
        watch_time=30.0,
        video_duration=60.0,
        session_watch_time=120.0,
        video_name="Morning Stretch",
        hashtags=("#yoga",),
        hour_of_day=8,
        occurred_at=T0 + timedelta(minutes=minutes),
    )
    fields.update(overrides)
    return WatchEvent(**fields)


class TestIngestEvent:
    def test_event_is_recorded(self, db, user_id):
        result = ingest_event(db, _event(user_id))
        assert result.record.id is not None
        assert result.record.hashtags == '["#yoga"]'
        assert result.discarded is False
        assert result.profile.appended_seq == 1
        assert db.get(Viewer, user_id).last_event_at is not None

    def test_hashtags_stored_as_received(self, db, user_id):
        result = ingest_event(db, _event(user_id, hashtags=(" #Yoga", "#yoga", "stretch")))
        assert json.loads(result.record.hashtags) == [" #Yoga", "#yoga", "stretch"]
        snapshot = load_snapshot(db, user_id)
        assert snapshot.entries[-1].tokens[-2:] == ("stretch", "yoga")

    def test_non_finite_event_writes_nothing(self, db, user_id):
        with pytest.raises(MalformedWatchEventError):
            ingest_event(db, _event(user_id, watch_time=float("inf"), video_duration=float("inf")))
        assert get_daily_stats(db, user_id, T0.date()).exists is False
        assert db.query(WatchEventRecord).filter(WatchEventRecord.user_id == user_id).count() == 0

    def test_missing_timestamp_defaults_to_now(self, db, user_id):
        result = ingest_event(db, _event(user_id, occurred_at=None))
        assert result.record.occurred_at is not None
        assert result.record.day == datetime.now(tz=timezone.utc).date()

    def test_discarded_event_touches_no_aggregate(self, db, user_id):
        result = ingest_event(db, _event(user_id, watch_time=1.0))
        assert result.discarded is True
        assert result.decision.counted is False
        assert result.profile.counted is False
        assert get_daily_stats(db, user_id, T0.date()).exists is False

    def test_both_reasons_arm_once(self, db, user_id):
        result = ingest_event(db, _event(user_id, watch_time=5.0, video_duration=100.0, session_watch_time=1300))
        assert [r.value for r in result.decision.reasons] == ["attention_rule", "duration_rule"]
        assert result.armed is True
        assert result.break_state.armed_reason == "attention_rule"

    def test_malformed_event_writes_nothing(self, db, user_id):
        with pytest.raises(MalformedWatchEventError):
            ingest_event(db, _event(user_id, watch_time=-1.0))
        assert db.query(WatchEventRecord).filter(WatchEventRecord.user_id == user_id).count() == 0

    def test_out_of_order_rolls_back(self, db, user_id):
        ingest_event(db, _event(user_id, 10))
        with pytest.raises(OutOfOrderEventError):
            ingest_event(db, _event(user_id, 5))
        assert db.query(WatchEventRecord).filter(WatchEventRecord.user_id == user_id).count() == 1
        assert get_daily_stats(db, user_id, T0.date()).counted_events == 1


class TestIngestBatch:
    def test_results_in_request_order(self, db, user_id):
        results = ingest_batch(db, [_event(user_id, 3), _event(user_id, 1), _event(user_id, 2)])
        assert [r["index"] for r in results] == [0, 1, 2]
        assert all(r["ok"] for r in results)
        seqs = [r["result"].profile.appended_seq for r in results]
        assert seqs == [3, 1, 2]

    def test_failed_item_keeps_others(self, db, user_id):
        ingest_event(db, _event(user_id, 30))
        results = ingest_batch(db, [_event(user_id, 10), _event(user_id, 40)])
        assert results[0]["ok"] is False
        assert results[0]["code"] == "OUT_OF_ORDER_EVENT"
        assert results[1]["ok"] is True


class TestUserLocks:
    def test_lock_is_reentrant(self):
        with user_lock("reentrant"):
            with user_lock("reentrant"):
                pass

    def test_same_user_is_serialised(self):
        order = []
        entered = threading.Event()

        def worker():
            entered.set()
            with user_lock("shared"):
                order.append("worker")

        with user_lock("shared"):
            t = threading.Thread(target=worker)
            t.start()
            entered.wait(timeout=2)
            order.append("main")
        t.join(timeout=2)
        assert order == ["main", "worker"]

    def test_different_users_do_not_block(self):
        done = threading.Event()

        def worker():
            with user_lock("user-b"):
                done.set()

        with user_lock("user-a"):
            t = threading.Thread(target=worker)
            t.start()
            assert done.wait(timeout=2)
        t.join(timeout=2)

    def test_multi_user_lock(self):
        with user_locks(["b", "a", "b"]):
            with user_lock("a"):
                pass
