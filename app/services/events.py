"""
WatchEvent - the service-layer view of one watch, plus the token helpers
shared by the guardrail and the profile aggregator.

Schemas validate HTTP payloads; `validate_watch_event` applies the same
rules to events built in-process so no path can skip the boundary check.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from app.core.errors import MalformedWatchEventError

_WORD_RE = re.compile(r"\S+")
# Matches the width of profile_purges.token.
HASHTAG_MAX_LENGTH = 256


@dataclass(frozen=True)
class WatchEvent:
    user_id: str
    video_id: str
    watch_time: float           # A - seconds spent on this video
    video_duration: float       # B - total length
    session_watch_time: float   # C - continuous session watching so far
    video_name: str = ""        # D
    hashtags: tuple[str, ...] = field(default_factory=tuple)  # E
    liked: bool = False         # F
    disliked: bool = False      # G
    hour_of_day: int = 0        # H - local hour, 0-23
    occurred_at: Optional[datetime] = None

    @property
    def timestamp(self) -> datetime:
        """Event time; falls back to now (UTC) for clients that omit it."""
        return self.occurred_at or datetime.now(tz=timezone.utc)

    @property
    def day(self) -> date:
        """Calendar day of the event in its own offset (the viewer's clock)."""
        return self.timestamp.date()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def as_utc(value: datetime) -> datetime:
    """Normalise to aware UTC. Naive values (SQLite round-trips) are UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_hashtag(tag: str) -> str:
    return tag.strip().lstrip("#").lower()


def title_tokens(video_name: str) -> list[str]:
    return [w.lower() for w in _WORD_RE.findall(video_name or "")]


def hashtag_tokens(hashtags) -> list[str]:
    """Normalised, de-duplicated hashtags in a stable (sorted) order."""
    return sorted({t for t in (normalize_hashtag(h) for h in hashtags) if t})


def event_tokens(event: WatchEvent) -> list[str]:
    """Title words in order, then hashtags."""
    return title_tokens(event.video_name) + hashtag_tokens(event.hashtags)


def validate_watch_event(event: WatchEvent) -> WatchEvent:
    """Raise MalformedWatchEventError for events that must not reach aggregation."""
    if not event.user_id or not event.user_id.strip():
        raise MalformedWatchEventError("user_id is required", video_id=event.video_id or None)
    if not event.video_id or not event.video_id.strip():
        raise MalformedWatchEventError("video_id is required")
    for name in ("watch_time", "video_duration", "session_watch_time"):
        value = getattr(event, name)
        if not math.isfinite(value):
            raise MalformedWatchEventError(f"{name} must be a finite number", video_id=event.video_id)
        if value < 0:
            raise MalformedWatchEventError(f"{name} must not be negative", video_id=event.video_id)
    if any(len(tag) > HASHTAG_MAX_LENGTH for tag in event.hashtags):
        raise MalformedWatchEventError(
            f"hashtags must be at most {HASHTAG_MAX_LENGTH} characters", video_id=event.video_id
        )
    if not 0 <= event.hour_of_day <= 23:
        raise MalformedWatchEventError("hour_of_day must be within 0-23", video_id=event.video_id)
    if event.liked and event.disliked:
        raise MalformedWatchEventError("an event cannot be both liked and disliked", video_id=event.video_id)
    return event
