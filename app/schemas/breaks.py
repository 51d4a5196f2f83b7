"""
Break scheduler schemas.

GET  /breaks/{user_id}                 → BreakStateResponse
POST /breaks/{user_id}/video-end       → VideoEndRequest → VideoEndResponse
POST /breaks/{user_id}/elapsed         → BreakElapsedRequest → BreakStateResponse
GET  /breaks/{user_id}/notifications   → BreakNotificationListResponse
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class BreakStateResponse(BaseModel):
    user_id: str
    status: str = Field(description='"active" | "armed" | "on_break"')
    armed_reason: Optional[str] = Field(default=None, description='"attention_rule" | "duration_rule"')
    armed_at: Optional[str] = None
    break_started_at: Optional[str] = None
    break_length_minutes: Optional[float] = None
    break_ends_at: Optional[str] = None


class VideoEndRequest(BaseModel):
    ended_at: Optional[datetime] = Field(
        default=None,
        description="When the video finished. Defaults to server time (UTC).",
    )
    hour_of_day: Optional[int] = Field(
        default=None,
        ge=0,
        le=23,
        description="Local hour used for the break length. Defaults to the hour the break was armed.",
    )


class BreakNotificationResponse(BaseModel):
    id: int
    user_id: str
    reason: str
    break_length_minutes: float
    started_at: str


class VideoEndResponse(BaseModel):
    transitioned: bool = Field(description="True if this signal started a break.")
    state: BreakStateResponse
    notification: Optional[BreakNotificationResponse] = Field(
        default=None,
        description="Break notification pushed to the playback client, when a break started.",
    )


class BreakElapsedRequest(BaseModel):
    at: Optional[datetime] = Field(default=None, description="Defaults to server time (UTC).")


class BreakNotificationListResponse(BaseModel):
    total: int
    items: list[BreakNotificationResponse]
