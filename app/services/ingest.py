"""
Ingest service: validates, orders, persists and fans out watch events.

Pipeline for one event
----------------------
  1. validate (malformed → MalformedWatchEventError, nothing written)
  2. lock the viewer row; reject events older than its watermark
  3. persist the WatchEventRecord (discarded ones too, flagged)
  4. guardrail monitor → break scheduler arm requests
  5. profile aggregator
  6. advance the watermark

Public API
----------
ingest_event(db, event)     → IngestResult   (single, transactional)
ingest_batch(db, events)    → list[dict]     (re-sequenced, per-item savepoints)

Internal
--------
_ingest_one(db, event)      → IngestResult   (flush only, no commit)
"""
from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings as default_settings
from app.core.errors import OutOfOrderEventError
from app.models.viewer import Viewer
from app.models.watch_event import WatchEventRecord
from app.services import guardrail, profile_aggregator
from app.services.break_scheduler import BreakScheduler, BreakSnapshot
from app.services.events import WatchEvent, as_utc, validate_watch_event
from app.services.guardrail import GuardrailDecision, GuardrailThresholds
from app.services.profile_aggregator import ProfileUpdate
from app.services.user_locks import user_lock, user_locks

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class IngestResult:
    """The stored record plus what each downstream component did with it."""
    record: WatchEventRecord
    decision: GuardrailDecision
    profile: ProfileUpdate
    armed: bool
    break_state: BreakSnapshot

    @property
    def discarded(self) -> bool:
        return self.record.discarded


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _resolve_timestamp(event: WatchEvent) -> WatchEvent:
    """Pin the event time once so every component sees the same instant."""
    if event.occurred_at is not None:
        return event
    return dataclasses.replace(event, occurred_at=datetime.now(tz=timezone.utc))


def _lock_viewer(db: Session, user_id: str) -> Viewer:
    viewer = (
        db.query(Viewer)
        .filter(Viewer.user_id == user_id)
        .with_for_update()
        .first()
    )
    if viewer is not None:
        return viewer

    savepoint = db.begin_nested()
    try:
        viewer = Viewer(user_id=user_id)
        db.add(viewer)
        db.flush()
        savepoint.commit()
    except IntegrityError:
        savepoint.rollback()
        viewer = (
            db.query(Viewer)
            .filter(Viewer.user_id == user_id)
            .with_for_update()
            .one()
        )
    return viewer


# ---------------------------------------------------------------------------
# Core: flush only (used by both single and batch paths)
# ---------------------------------------------------------------------------

def _ingest_one(db: Session, event: WatchEvent) -> IngestResult:
    """
    Validate → order-check → persist → fan-out.
    Flushes but does NOT commit. The caller is responsible for commit / rollback.
    """
    event = _resolve_timestamp(validate_watch_event(event))
    occurred = as_utc(event.occurred_at)
    thresholds = GuardrailThresholds.from_settings(default_settings)

    viewer = _lock_viewer(db, event.user_id)
    if viewer.last_event_at is not None:
        watermark = as_utc(viewer.last_event_at)
        if occurred < watermark:
            raise OutOfOrderEventError(event.user_id, occurred, watermark)

    record = WatchEventRecord(
        user_id=event.user_id,
        video_id=event.video_id,
        watch_time=event.watch_time,
        video_duration=event.video_duration,
        session_watch_time=event.session_watch_time,
        video_name=event.video_name,
        hashtags=json.dumps(list(event.hashtags)),
        liked=event.liked,
        disliked=event.disliked,
        hour_of_day=event.hour_of_day,
        occurred_at=occurred,
        day=event.day,
        discarded=guardrail.is_discarded(event, thresholds),
    )
    db.add(record)
    db.flush()

    decision = guardrail.on_watch_event(db, event, thresholds)
    scheduler = BreakScheduler(db, event.user_id)
    armed = False
    for reason in decision.reasons:
        armed = scheduler.arm(reason, at=occurred, hour_of_day=event.hour_of_day) or armed

    profile = profile_aggregator.on_watch_event(
        db, event, discard_below_seconds=thresholds.discard_below_seconds
    )

    viewer.last_event_at = occurred
    db.flush()

    if record.discarded:
        logger.debug("[ingest] user=%s video=%s discarded", event.user_id, event.video_id)

    return IngestResult(
        record=record,
        decision=decision,
        profile=profile,
        armed=armed,
        break_state=scheduler.current(),
    )


# ---------------------------------------------------------------------------
# Public: single event
# ---------------------------------------------------------------------------

def ingest_event(db: Session, event: WatchEvent) -> IngestResult:
    """Process and commit a single event. Errors leave no trace."""
    with user_lock(event.user_id):
        try:
            result = _ingest_one(db, event)
            db.commit()
        except Exception:
            db.rollback()
            raise
    db.refresh(result.record)
    return result


# ---------------------------------------------------------------------------
# Public: batch
# ---------------------------------------------------------------------------

def ingest_batch(db: Session, events: list[WatchEvent]) -> list[dict]:
    """
    Ingest a list of events, one savepoint each.

    Items are re-sequenced by event time (stable, so equal timestamps keep
    request order) before aggregation; results come back in request order.
    A failure on one item does not cancel the others.
    """
    pinned = [_resolve_timestamp(e) for e in events]
    order = sorted(range(len(pinned)), key=lambda i: as_utc(pinned[i].occurred_at))
    results: dict[int, dict] = {}

    with user_locks(e.user_id for e in pinned):
        for i in order:
            savepoint = db.begin_nested()
            try:
                ir = _ingest_one(db, pinned[i])
                savepoint.commit()
                results[i] = {"index": i, "ok": True, "result": ir, "error": None, "code": None}
            except Exception as exc:
                savepoint.rollback()
                code: Optional[str] = getattr(exc, "code", None)
                logger.warning("[ingest] batch item %d rejected: %s", i, exc)
                results[i] = {"index": i, "ok": False, "result": None, "error": str(exc), "code": code}
        db.commit()

    for r in results.values():
        if r["ok"]:
            db.refresh(r["result"].record)
    return [results[i] for i in range(len(pinned))]
