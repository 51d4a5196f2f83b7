"""
Viewer router.

GET /viewers/{user_id}/profile            - aggregate term profile
GET /viewers/{user_id}/parental-controls  - break lengths in effect
PUT /viewers/{user_id}/parental-controls  - override break lengths
"""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.schemas.common import ErrorResponse
from app.models.profile import ParentalSettings
from app.schemas.viewer import (
    ParentalControls,
    ParentalControlsResponse,
    ProfileResponse,
    TermWeight,
)
from app.services.break_scheduler import BreakLengths, break_lengths_for, set_parental_lengths
from app.services.profile_aggregator import load_snapshot

router = APIRouter(prefix="/viewers", tags=["viewers"])


def _lengths_to_response(user_id: str, lengths: BreakLengths, overridden: bool) -> ParentalControlsResponse:
    return ParentalControlsResponse(
        user_id=user_id,
        overridden=overridden,
        break_length_short=lengths.short,
        break_length_medium=lengths.medium,
        break_length_long=lengths.long,
    )


@router.get(
    "/{user_id}/profile",
    response_model=ProfileResponse,
    summary="Aggregate term profile",
)
def profile(user_id: str, db: Session = Depends(get_db)):
    """Decayed term weights after like boosts and dislike purges. Unknown users are empty."""
    snapshot = load_snapshot(db, user_id)
    terms = sorted(snapshot.term_weights.items(), key=lambda kv: (-kv[1], kv[0]))
    return ProfileResponse(
        user_id=user_id,
        entries=len(snapshot.entries),
        terms=[TermWeight(term=t, weight=round(w, 6)) for t, w in terms],
        purged_tokens=sorted(snapshot.purged_tokens),
    )


@router.get(
    "/{user_id}/parental-controls",
    response_model=ParentalControlsResponse,
    summary="Break lengths in effect",
)
def get_parental_controls(user_id: str, db: Session = Depends(get_db)):
    overridden = db.get(ParentalSettings, user_id) is not None
    return _lengths_to_response(user_id, break_lengths_for(db, user_id), overridden)


@router.put(
    "/{user_id}/parental-controls",
    response_model=ParentalControlsResponse,
    summary="Override break lengths",
    responses={422: {"model": ErrorResponse, "description": "Lengths out of order or below the defaults."}},
)
def put_parental_controls(
    user_id: str,
    payload: ParentalControls,
    db: Session = Depends(get_db),
):
    """
    Set the (short, medium, long) break lengths in minutes. They must be
    ordered and may only raise the defaults, e.g. `10 / 30 / 60`.
    Applies to breaks that start after the change.
    """
    lengths = set_parental_lengths(
        db,
        user_id,
        BreakLengths(
            short=payload.break_length_short,
            medium=payload.break_length_medium,
            long=payload.break_length_long,
        ),
    )
    return _lengths_to_response(user_id, lengths, True)
