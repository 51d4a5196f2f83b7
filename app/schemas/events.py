"""
Watch event request / response schemas.

Single event:  POST /events          → WatchEventIn  → IngestResponse
Batch:         POST /events/batch    → BatchIngestRequest → BatchIngestResponse
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.services.events import HASHTAG_MAX_LENGTH

BATCH_MAX_ITEMS = 100


# ---------------------------------------------------------------------------
# Single-event schemas
# ---------------------------------------------------------------------------

class WatchEventIn(BaseModel):
    """One watch, as reported by the playback client."""

    user_id: Annotated[str, Field(
        min_length=1,
        max_length=128,
        description="Viewer identifier. Required.",
        examples=["viewer-42"],
    )]
    video_id: Annotated[str, Field(
        min_length=1,
        max_length=128,
        description="Video identifier. Required.",
        examples=["vid-carbonara"],
    )]
    watch_time: float = Field(ge=0, allow_inf_nan=False, description="Seconds spent on this video (A). May exceed the duration on loops.")
    video_duration: float = Field(ge=0, allow_inf_nan=False, description="Total video length in seconds (B).")
    session_watch_time: float = Field(
        ge=0,
        allow_inf_nan=False,
        description="Continuous watching in the current unbroken session, in seconds (C).",
    )
    video_name: str = Field(default="", max_length=512, description="Video title (D).")
    hashtags: list[Annotated[str, Field(max_length=HASHTAG_MAX_LENGTH)]] = Field(
        default_factory=list,
        max_length=64,
        description="Hashtags (E), stored as received.",
    )
    liked: bool = Field(default=False, description="Viewer liked the video (F).")
    disliked: bool = Field(default=False, description="Viewer disliked the video (G).")
    hour_of_day: int = Field(ge=0, le=23, description="Local hour of the event, 0-23 (H).")
    occurred_at: Optional[datetime] = Field(
        default=None,
        description=(
            "Event timestamp with the viewer's UTC offset. Decides the day bucket and the "
            "ordering check. Defaults to server time (UTC)."
        ),
        examples=["2026-10-19T21:15:00+02:00"],
    )

    @field_validator("user_id", "video_id", mode="before")
    @classmethod
    def strip_and_check_empty(cls, v: str) -> str:
        stripped = v.strip() if isinstance(v, str) else v
        if not stripped:
            raise ValueError("identifier must not be empty after stripping whitespace")
        return stripped

    @model_validator(mode="after")
    def check_like_dislike(self) -> "WatchEventIn":
        if self.liked and self.disliked:
            raise ValueError("an event cannot be both liked and disliked")
        return self


class IngestResponse(BaseModel):
    """What happened to one event."""
    id: int = Field(description="ID in the watch_events table.")
    user_id: str
    video_id: str
    day: str = Field(description="Day bucket (ISO date) the event was assigned to.")
    occurred_at: str
    discarded: bool = Field(description="True when watch_time was under the discard threshold.")
    attention_span_percent: Optional[float] = Field(
        default=None,
        description="Day's attention span after this event; null for discarded events.",
    )
    rules_fired: list[str] = Field(
        default_factory=list,
        description='Guardrail rules that fired: "attention_rule", "duration_rule".',
    )
    break_armed: bool = Field(description="True if this event moved the break state to armed.")
    break_status: str = Field(description='"active" | "armed" | "on_break"')


# ---------------------------------------------------------------------------
# Batch schemas
# ---------------------------------------------------------------------------

class BatchIngestRequest(BaseModel):
    """A batch of watch events.

    - Items are re-sequenced by `occurred_at` before aggregation.
    - Each item is independent: a failure on one does not cancel the others.
    """
    items: Annotated[list[WatchEventIn], Field(
        min_length=1,
        description=f"Events to ingest (1–{BATCH_MAX_ITEMS} items; larger batches get BATCH_TOO_LARGE).",
    )]


class BatchItemResult(BaseModel):
    """Outcome for a single item in a batch request."""
    index: int = Field(description="Zero-based position in the request items list.")
    ok: bool = Field(description="True if the event was ingested.")
    event: Optional[IngestResponse] = Field(default=None, description="Populated when ok=True.")
    error: Optional[str] = Field(default=None, description="Error message when ok=False.")
    code: Optional[str] = Field(default=None, description="Machine-readable error code when ok=False.")


class BatchIngestResponse(BaseModel):
    """Summary of a batch ingest operation."""
    total: int = Field(description="Total items received.")
    succeeded: int = Field(description="Items ingested successfully.")
    failed: int = Field(description="Items that failed.")
    items: list[BatchItemResult] = Field(description="Per-item results in input order.")
