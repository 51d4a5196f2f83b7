"""
Feed router.

GET /feed/{user_id}         - personalised feed (trending fall-back)
GET /feed/{user_id}/terms   - ranked query terms with per-model scores
"""
from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.schemas.common import ErrorResponse
from app.schemas.feed import (
    FeedItemResponse,
    FeedResponse,
    RankedTermsResponse,
    TermScoreResponse,
)
from app.services.feed import get_feed_for_user, rank_terms_for_user

router = APIRouter(prefix="/feed", tags=["feed"])


@router.get(
    "/{user_id}",
    response_model=FeedResponse,
    summary="Personalised feed",
    responses={
        200: {"description": "Feed items; check `status` for trending / degraded fall-backs."},
        503: {"model": ErrorResponse, "description": "Neither search nor trending is reachable."},
    },
)
def feed(
    user_id: str,
    strategy: Optional[Literal["combined", "per_term"]] = Query(
        default=None,
        description="How ranked terms become search queries. Defaults to QUERY_STRATEGY.",
    ),
    db: Session = Depends(get_db),
):
    """
    Rank the viewer's top terms and resolve them through the search collaborator.

    | status | meaning |
    |---|---|
    | `personalized` | search results for the ranked terms |
    | `trending`     | empty profile, trending served instead |
    | `degraded`     | search unavailable, trending served instead |
    """
    result = get_feed_for_user(db, user_id, strategy_name=strategy)
    return FeedResponse(
        user_id=user_id,
        status=result.status.value,
        source=result.source,
        strategy=result.strategy,
        terms=result.terms,
        items=[FeedItemResponse(video_id=i.video_id, score=i.score) for i in result.items],
        error=result.error,
    )


@router.get(
    "/{user_id}/terms",
    response_model=RankedTermsResponse,
    summary="Ranked query terms",
)
def ranked_terms(user_id: str, db: Session = Depends(get_db)):
    """The hybrid ranker's output for the viewer, with the score behind each term."""
    ranked = rank_terms_for_user(db, user_id)
    return RankedTermsResponse(
        user_id=user_id,
        empty=ranked.is_empty,
        terms=list(ranked.terms),
        scores=[
            TermScoreResponse(
                term=s.term,
                sequence=round(s.sequence, 6),
                frequency=round(s.frequency, 6),
                blended=round(s.blended, 6),
            )
            for s in ranked.scores
        ],
    )
