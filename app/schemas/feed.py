"""
Feed schemas.

GET /feed/{user_id}         → FeedResponse
GET /feed/{user_id}/terms   → RankedTermsResponse
"""
from typing import Optional
from pydantic import BaseModel, Field


class FeedItemResponse(BaseModel):
    video_id: str
    score: Optional[float] = Field(default=None, description="Search relevance; null for trending items.")


class FeedResponse(BaseModel):
    user_id: str
    status: str = Field(description='"personalized" | "trending" | "degraded"')
    source: str = Field(description='"search" | "trending"')
    strategy: Optional[str] = Field(default=None, description='"combined" | "per_term"')
    terms: list[str] = Field(default_factory=list, description="Ranked query terms (at most 8).")
    items: list[FeedItemResponse]
    error: Optional[str] = Field(default=None, description="Soft-failure code when status is degraded.")


class TermScoreResponse(BaseModel):
    term: str
    sequence: float
    frequency: float
    blended: float


class RankedTermsResponse(BaseModel):
    user_id: str
    empty: bool = Field(description="True when the profile has no usable history.")
    terms: list[str]
    scores: list[TermScoreResponse]
