"""
Daily attention buckets.

Each (user_id, day) pair is its own DailyStats row, so the day boundary is
a key change rather than a counter reset: an event lands in the bucket of
its own timestamp's date no matter when it is processed.

Public API
----------
attention_span_percent(numerator, denominator) -> float
bucket_for_update(db, user_id, day)           -> DailyStats   (flush only)
get_daily_stats(db, user_id, day)             -> DailyStatsView
current_day(db, user_id)                      -> date
rollover_daily_stats(db, before)              -> RolloverResult
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.daily_stats import DailyStats
from app.models.watch_event import WatchEventRecord

logger = logging.getLogger(__name__)


@dataclass
class DailyStatsView:
    user_id: str
    day: date
    watch_time_total: float
    duration_total: float
    counted_events: int
    attention_span_percent: float
    is_closed: bool
    exists: bool


@dataclass
class RolloverResult:
    before: date
    closed_buckets: int


def _today() -> date:
    return datetime.now(tz=timezone.utc).date()


def current_day(db: Session, user_id: str) -> date:
    """The viewer's "today": the day bucket of their latest recorded event.

    Buckets follow the offset each event carries, so UTC today can be a
    different date for viewers far from UTC. Unknown viewers fall back to it.
    """
    latest = (
        db.query(WatchEventRecord.day)
        .filter(WatchEventRecord.user_id == user_id)
        .order_by(WatchEventRecord.occurred_at.desc(), WatchEventRecord.id.desc())
        .first()
    )
    return latest[0] if latest is not None else _today()


def attention_span_percent(numerator: float, denominator: float) -> float:
    """100 x watched / duration; an empty day counts as fully attentive."""
    if denominator <= 0:
        return 100.0
    return numerator / denominator * 100.0


def bucket_for_update(db: Session, user_id: str, day: date) -> DailyStats:
    """
    Return the (user_id, day) bucket, creating it on first use.
    Insert races are settled by the unique constraint: the loser re-reads.
    """
    bucket = (
        db.query(DailyStats)
        .filter(DailyStats.user_id == user_id, DailyStats.day == day)
        .with_for_update()
        .first()
    )
    if bucket is not None:
        return bucket

    savepoint = db.begin_nested()
    try:
        bucket = DailyStats(
            user_id=user_id,
            day=day,
            watch_time_total=0.0,
            duration_total=0.0,
            counted_events=0,
            is_closed=False,
        )
        db.add(bucket)
        db.flush()
        savepoint.commit()
    except IntegrityError:
        savepoint.rollback()
        bucket = (
            db.query(DailyStats)
            .filter(DailyStats.user_id == user_id, DailyStats.day == day)
            .with_for_update()
            .one()
        )
    return bucket


def get_daily_stats(db: Session, user_id: str, day: Optional[date] = None) -> DailyStatsView:
    """Read-only view; a missing bucket is reported as an empty day."""
    target = day or current_day(db, user_id)
    bucket = (
        db.query(DailyStats)
        .filter(DailyStats.user_id == user_id, DailyStats.day == target)
        .first()
    )
    if bucket is None:
        return DailyStatsView(
            user_id=user_id,
            day=target,
            watch_time_total=0.0,
            duration_total=0.0,
            counted_events=0,
            attention_span_percent=100.0,
            is_closed=False,
            exists=False,
        )
    return DailyStatsView(
        user_id=user_id,
        day=bucket.day,
        watch_time_total=bucket.watch_time_total,
        duration_total=bucket.duration_total,
        counted_events=bucket.counted_events,
        attention_span_percent=attention_span_percent(
            bucket.watch_time_total, bucket.duration_total
        ),
        is_closed=bucket.is_closed,
        exists=True,
    )


def rollover_daily_stats(db: Session, before: Optional[date] = None) -> RolloverResult:
    """
    Close every open bucket whose day is earlier than `before` (default: today UTC).
    Idempotent: already-closed buckets are left untouched, so a second run
    closes nothing. Late events still land in their own (closed) bucket.
    """
    cutoff = before or _today()
    now = datetime.now(tz=timezone.utc)
    buckets = (
        db.query(DailyStats)
        .filter(DailyStats.day < cutoff, DailyStats.is_closed == False)  # noqa: E712
        .all()
    )
    for bucket in buckets:
        bucket.is_closed = True
        bucket.closed_at = now
    db.commit()

    logger.info("[daily-stats] rollover before=%s closed=%d", cutoff, len(buckets))
    return RolloverResult(before=cutoff, closed_buckets=len(buckets))
