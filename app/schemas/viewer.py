"""
Viewer schemas: parental controls, profile and daily stats.

GET/PUT /viewers/{user_id}/parental-controls → ParentalControls
GET     /viewers/{user_id}/profile           → ProfileResponse
GET     /stats/{user_id}/daily               → DailyStatsResponse
POST    /stats/rollover                      → RolloverRequest → RolloverResponse
"""
from datetime import date
from typing import Optional
from pydantic import BaseModel, Field


class ParentalControls(BaseModel):
    """Break lengths in minutes; short at midnight, medium at noon, long at 23h."""
    break_length_short: float = Field(gt=0, examples=[10])
    break_length_medium: float = Field(gt=0, examples=[30])
    break_length_long: float = Field(gt=0, examples=[60])


class ParentalControlsResponse(ParentalControls):
    user_id: str
    overridden: bool = Field(description="False when the defaults apply.")


class TermWeight(BaseModel):
    term: str
    weight: float


class ProfileResponse(BaseModel):
    user_id: str
    entries: int = Field(description="History entries (counted, non-disliked watches).")
    terms: list[TermWeight] = Field(description="Aggregate term weights, heaviest first.")
    purged_tokens: list[str] = Field(description="Tokens currently removed by a dislike.")


class DailyStatsResponse(BaseModel):
    user_id: str
    day: str
    watch_time_total: float
    duration_total: float
    counted_events: int
    attention_span_percent: float
    is_closed: bool


class RolloverRequest(BaseModel):
    before: Optional[date] = Field(
        default=None,
        description="Close buckets for days strictly before this date. Defaults to today (UTC).",
    )


class RolloverResponse(BaseModel):
    before: str
    closed_buckets: int
