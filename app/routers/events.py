"""
Watch event router.

POST /events          - single event
POST /events/batch    - batch of up to 100 events
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.schemas.events import (
    BatchIngestRequest,
    BatchIngestResponse,
    BatchItemResult,
    IngestResponse,
    WatchEventIn,
    BATCH_MAX_ITEMS,
)
from app.services.events import WatchEvent
from app.services.ingest import IngestResult, ingest_event, ingest_batch
from app.schemas.common import ErrorResponse
from app.core.errors import BatchTooLargeError, EventIngestionError, WatchguardException

router = APIRouter(prefix="/events", tags=["events"])


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _ev(v) -> str:
    """Extract bare string value from a str-enum or plain str."""
    return v.value if hasattr(v, "value") else str(v)


def _to_domain(payload: WatchEventIn) -> WatchEvent:
    return WatchEvent(
        user_id=payload.user_id,
        video_id=payload.video_id,
        watch_time=payload.watch_time,
        video_duration=payload.video_duration,
        session_watch_time=payload.session_watch_time,
        video_name=payload.video_name,
        hashtags=tuple(payload.hashtags),
        liked=payload.liked,
        disliked=payload.disliked,
        hour_of_day=payload.hour_of_day,
        occurred_at=payload.occurred_at,
    )


def _ir_to_response(ir: IngestResult) -> IngestResponse:
    record = ir.record
    return IngestResponse(
        id=record.id,
        user_id=record.user_id,
        video_id=record.video_id,
        day=str(record.day),
        occurred_at=record.occurred_at.isoformat(),
        discarded=record.discarded,
        attention_span_percent=ir.decision.attention_span_percent,
        rules_fired=[_ev(r) for r in ir.decision.reasons],
        break_armed=ir.armed,
        break_status=ir.break_state.status,
    )


# ---------------------------------------------------------------------------
# POST /events  - single
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=IngestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Ingest a single watch event",
    responses={
        409: {"model": ErrorResponse, "description": "Event is older than the user's last accepted event."},
        422: {"model": ErrorResponse, "description": "Malformed event (negative durations, missing ids, etc.)"},
        500: {"model": ErrorResponse, "description": "Internal persistence error"},
    },
)
def ingest(payload: WatchEventIn, db: Session = Depends(get_db)):
    """
    Record a watch event and run it through the guardrail and the profile.

    Watches under 5 s are stored but flagged `discarded` and change nothing.
    A counted event updates the day's attention span and may arm a break;
    the break itself only starts on the next `POST /breaks/{user_id}/video-end`.
    """
    try:
        ir = ingest_event(db, _to_domain(payload))
    except WatchguardException:
        raise
    except Exception as exc:
        raise EventIngestionError(message=str(exc), video_id=payload.video_id) from exc

    return _ir_to_response(ir)


# ---------------------------------------------------------------------------
# POST /events/batch
# ---------------------------------------------------------------------------

@router.post(
    "/batch",
    response_model=BatchIngestResponse,
    status_code=status.HTTP_207_MULTI_STATUS,
    summary="Ingest a batch of watch events (up to 100)",
    responses={
        207: {"description": "Multi-status: check each item's `ok` field."},
        422: {"model": ErrorResponse, "description": "Batch-level validation error (empty list, too many items)."},
    },
)
def ingest_batch_endpoint(
    payload: BatchIngestRequest,
    db: Session = Depends(get_db),
):
    """
    Ingest up to **100 events** in a single request.

    Events are re-sequenced by `occurred_at` before aggregation, so a client
    that buffered events out of order still gets them counted in order.
    Each item is processed independently using a database savepoint.
    Response HTTP status is **207 Multi-Status**; always inspect each `item.ok`.
    """
    if len(payload.items) > BATCH_MAX_ITEMS:
        raise BatchTooLargeError(max_items=BATCH_MAX_ITEMS, received=len(payload.items))

    raw_results = ingest_batch(db, [_to_domain(item) for item in payload.items])

    item_results: list[BatchItemResult] = [
        BatchItemResult(
            index=r["index"],
            ok=r["ok"],
            event=_ir_to_response(r["result"]) if r["ok"] and r["result"] else None,
            error=r["error"],
            code=r["code"],
        )
        for r in raw_results
    ]

    succeeded = sum(1 for r in item_results if r.ok)
    return BatchIngestResponse(
        total=len(item_results),
        succeeded=succeeded,
        failed=len(item_results) - succeeded,
        items=item_results,
    )
