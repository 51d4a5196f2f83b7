"""
Break router.

GET  /breaks/{user_id}                - current break state
POST /breaks/{user_id}/video-end      - playback client: the current video finished
POST /breaks/{user_id}/elapsed        - break timer fired
GET  /breaks/{user_id}/notifications  - break notifications (paginated, newest first)
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.models.break_state import BreakNotification
from app.schemas.breaks import (
    BreakElapsedRequest,
    BreakNotificationListResponse,
    BreakNotificationResponse,
    BreakStateResponse,
    VideoEndRequest,
    VideoEndResponse,
)
from app.services.break_scheduler import (
    BreakSnapshot,
    get_break_state,
    handle_break_elapsed,
    handle_video_end,
    list_notifications,
)

router = APIRouter(prefix="/breaks", tags=["breaks"])


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _ev(v) -> str:
    return v.value if hasattr(v, "value") else str(v)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _snapshot_to_response(s: BreakSnapshot) -> BreakStateResponse:
    return BreakStateResponse(
        user_id=s.user_id,
        status=s.status,
        armed_reason=s.armed_reason,
        armed_at=_iso(s.armed_at),
        break_started_at=_iso(s.break_started_at),
        break_length_minutes=s.break_length_minutes,
        break_ends_at=_iso(s.break_ends_at),
    )


def _notification_to_response(n: BreakNotification) -> BreakNotificationResponse:
    return BreakNotificationResponse(
        id=n.id,
        user_id=n.user_id,
        reason=_ev(n.reason),
        break_length_minutes=n.break_length_minutes,
        started_at=n.started_at.isoformat(),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/{user_id}",
    response_model=BreakStateResponse,
    summary="Current break state",
)
def break_state(user_id: str, db: Session = Depends(get_db)):
    """Unknown users are `active`. A break whose time is up is closed on read."""
    return _snapshot_to_response(get_break_state(db, user_id))


@router.post(
    "/{user_id}/video-end",
    response_model=VideoEndResponse,
    summary="Signal that the current video finished",
    responses={200: {"description": "Break started, or no-op when nothing was armed."}},
)
def video_end(
    user_id: str,
    payload: Optional[VideoEndRequest] = None,
    db: Session = Depends(get_db),
):
    """
    If a break is **armed**, it starts now and a notification is returned for
    the playback client. Otherwise this is a no-op (`transitioned=false`),
    never an error.
    """
    payload = payload or VideoEndRequest()
    result = handle_video_end(
        db, user_id, ended_at=payload.ended_at, hour_of_day=payload.hour_of_day
    )
    return VideoEndResponse(
        transitioned=result.transitioned,
        state=_snapshot_to_response(result.snapshot),
        notification=(
            _notification_to_response(result.notification) if result.notification else None
        ),
    )


@router.post(
    "/{user_id}/elapsed",
    response_model=BreakStateResponse,
    summary="Signal that the break timer fired",
)
def break_elapsed(
    user_id: str,
    payload: Optional[BreakElapsedRequest] = None,
    db: Session = Depends(get_db),
):
    """Returns to `active` once the break length has passed; earlier calls change nothing."""
    payload = payload or BreakElapsedRequest()
    _, snapshot = handle_break_elapsed(db, user_id, at=payload.at)
    return _snapshot_to_response(snapshot)


@router.get(
    "/{user_id}/notifications",
    response_model=BreakNotificationListResponse,
    summary="List break notifications (newest first)",
)
def notifications(
    user_id: str,
    limit: int = Query(default=50, ge=1, le=200, description="Page size."),
    offset: int = Query(default=0, ge=0, description="Skip N items."),
    db: Session = Depends(get_db),
):
    total, items = list_notifications(db, user_id, limit=limit, offset=offset)
    return BreakNotificationListResponse(
        total=total,
        items=[_notification_to_response(n) for n in items],
    )
