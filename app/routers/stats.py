"""
Stats router.

GET  /stats/{user_id}/daily   - one day's attention bucket
POST /stats/rollover          - close buckets before a day (idempotent)
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.schemas.viewer import DailyStatsResponse, RolloverRequest, RolloverResponse
from app.services.daily_stats import get_daily_stats, rollover_daily_stats

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get(
    "/{user_id}/daily",
    response_model=DailyStatsResponse,
    summary="Daily attention span",
)
def daily_stats(
    user_id: str,
    day: Optional[date] = Query(
        default=None,
        description="ISO date (YYYY-MM-DD). Defaults to the day of the viewer's latest event, or today UTC.",
        examples=["2026-10-19"],
    ),
    db: Session = Depends(get_db),
):
    """
    Attention span % = 100 × Σ watch_time / Σ video_duration over the day's
    counted (≥ 5 s) watches. A day with no counted watches reports 100.
    """
    view = get_daily_stats(db, user_id, day)
    return DailyStatsResponse(
        user_id=view.user_id,
        day=str(view.day),
        watch_time_total=view.watch_time_total,
        duration_total=view.duration_total,
        counted_events=view.counted_events,
        attention_span_percent=round(view.attention_span_percent, 4),
        is_closed=view.is_closed,
    )


@router.post(
    "/rollover",
    response_model=RolloverResponse,
    summary="Close daily buckets before a date",
)
def rollover(payload: Optional[RolloverRequest] = None, db: Session = Depends(get_db)):
    """
    Day-boundary job. Safe to run repeatedly: a second run closes nothing.
    Events that arrive late are still counted in their own day's bucket.
    """
    payload = payload or RolloverRequest()
    result = rollover_daily_stats(db, payload.before)
    return RolloverResponse(before=str(result.before), closed_buckets=result.closed_buckets)
