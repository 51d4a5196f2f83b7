"""
Profile aggregator: a decayed, weighted term profile per user.

Storage
-------
Every counted, non-disliked watch appends one ProfileEntry (title words in
order, then hashtags). A disliked watch appends nothing; instead each of its
hashtags gets a ProfilePurge marker at the user's current sequence number.
A purged token contributes nothing from entries at or before the marker; a
later entry carrying the token brings it back.

Weighting
---------
    weight(entry) = decay(entry) x (LIKE_BOOST if liked else 1)

`decay` is a DecayPolicy. It must be nondecreasing in recency, so a later
copy of the same contribution never weighs less than an earlier one:

  linear_rank  : i-th of n entries (oldest = 0) gets (i + 1) / n
  exponential  : 0.5 ** (age / half_life), age measured from the newest entry

Readers get a frozen ProfileSnapshot; nothing downstream mutates it.

Public API
----------
on_watch_event(db, event, ...)      -> ProfileUpdate        (flush only)
load_snapshot(db, user_id, ...)     -> ProfileSnapshot      (read only)
build_snapshot(user_id, rows, ...)  -> ProfileSnapshot      (pure)
load_global_documents(db)           -> list[list[str]]
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Mapping, Optional, Protocol, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import Settings, settings as default_settings
from app.models.profile import ProfileEntry, ProfilePurge
from app.services.events import (
    WatchEvent,
    as_utc,
    event_tokens,
    hashtag_tokens,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Decay policies
# ---------------------------------------------------------------------------

class DecayPolicy(Protocol):
    name: str

    def weights(self, timestamps: Sequence[datetime]) -> list[float]:
        """One multiplier per entry, oldest first."""
        ...


class LinearRankDecay:
    """Newest entry weighs 1.0, the oldest 1/n."""
    name = "linear_rank"

    def weights(self, timestamps: Sequence[datetime]) -> list[float]:
        n = len(timestamps)
        return [(i + 1) / n for i in range(n)]


class ExponentialDecay:
    name = "exponential"

    def __init__(self, half_life: timedelta):
        if half_life.total_seconds() <= 0:
            raise ValueError("half_life must be positive")
        self.half_life = half_life

    def weights(self, timestamps: Sequence[datetime]) -> list[float]:
        if not timestamps:
            return []
        stamps = [as_utc(t) for t in timestamps]
        newest = max(stamps)
        hl = self.half_life.total_seconds()
        return [0.5 ** ((newest - t).total_seconds() / hl) for t in stamps]


def decay_policy_from_settings(s: Settings) -> DecayPolicy:
    if s.DECAY_POLICY == "exponential":
        if not s.DECAY_HALF_LIFE_HOURS:
            raise ValueError("DECAY_HALF_LIFE_HOURS must be set when DECAY_POLICY=exponential")
        return ExponentialDecay(timedelta(hours=s.DECAY_HALF_LIFE_HOURS))
    return LinearRankDecay()


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HistoryEntry:
    """One weighted history entry; `tokens` holds only its live contributions."""
    seq: int
    video_id: str
    tokens: tuple[str, ...]
    liked: bool
    occurred_at: datetime
    weight: float


@dataclass(frozen=True)
class ProfileSnapshot:
    user_id: str
    entries: tuple[HistoryEntry, ...] = ()
    term_weights: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))
    purged_tokens: frozenset[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.term_weights

    def last_seen(self) -> dict[str, int]:
        """Most recent entry seq at which each live term occurs."""
        seen: dict[str, int] = {}
        for entry in self.entries:
            for token in entry.tokens:
                seen[token] = entry.seq
        return seen


@dataclass
class ProfileUpdate:
    counted: bool
    appended_seq: Optional[int] = None
    purged: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _EntryRow:
    seq: int
    video_id: str
    tokens: tuple[str, ...]
    liked: bool
    occurred_at: datetime


# ---------------------------------------------------------------------------
# Pure snapshot construction
# ---------------------------------------------------------------------------

def build_snapshot(
    user_id: str,
    rows: Sequence[_EntryRow],
    purges: Mapping[str, int],
    decay: DecayPolicy,
    like_boost: float,
) -> ProfileSnapshot:
    ordered = sorted(rows, key=lambda r: r.seq)
    if not ordered:
        return ProfileSnapshot(user_id=user_id, purged_tokens=frozenset(purges))

    multipliers = decay.weights([r.occurred_at for r in ordered])
    entries: list[HistoryEntry] = []
    totals: dict[str, float] = {}
    reintroduced: set[str] = set()

    for row, multiplier in zip(ordered, multipliers):
        weight = multiplier * (like_boost if row.liked else 1.0)
        live = tuple(t for t in row.tokens if purges.get(t, -1) < row.seq)
        for token in live:
            totals[token] = totals.get(token, 0.0) + weight
            if token in purges:
                reintroduced.add(token)
        entries.append(HistoryEntry(
            seq=row.seq,
            video_id=row.video_id,
            tokens=live,
            liked=row.liked,
            occurred_at=row.occurred_at,
            weight=weight,
        ))

    return ProfileSnapshot(
        user_id=user_id,
        entries=tuple(entries),
        term_weights=MappingProxyType(dict(sorted(totals.items()))),
        purged_tokens=frozenset(t for t in purges if t not in reintroduced),
    )


# ---------------------------------------------------------------------------
# Storage helpers
# ---------------------------------------------------------------------------

def _current_seq(db: Session, user_id: str) -> int:
    return (
        db.query(func.max(ProfileEntry.seq))
        .filter(ProfileEntry.user_id == user_id)
        .scalar()
        or 0
    )


def _purge(db: Session, user_id: str, token: str, seq: int) -> None:
    marker = (
        db.query(ProfilePurge)
        .filter(ProfilePurge.user_id == user_id, ProfilePurge.token == token)
        .first()
    )
    if marker is None:
        db.add(ProfilePurge(user_id=user_id, token=token, purged_at_seq=seq))
    else:
        marker.purged_at_seq = max(marker.purged_at_seq, seq)


def _load_rows(db: Session, user_id: str) -> list[_EntryRow]:
    rows = (
        db.query(ProfileEntry)
        .filter(ProfileEntry.user_id == user_id)
        .order_by(ProfileEntry.seq.asc())
        .all()
    )
    return [
        _EntryRow(
            seq=r.seq,
            video_id=r.video_id,
            tokens=tuple(json.loads(r.tokens or "[]")),
            liked=r.liked,
            occurred_at=as_utc(r.occurred_at),
        )
        for r in rows
    ]


def _load_purges(db: Session, user_id: str) -> dict[str, int]:
    return {
        p.token: p.purged_at_seq
        for p in db.query(ProfilePurge).filter(ProfilePurge.user_id == user_id).all()
    }


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def on_watch_event(
    db: Session,
    event: WatchEvent,
    discard_below_seconds: Optional[float] = None,
) -> ProfileUpdate:
    """Fold one event into the user's profile. Flushes, never commits."""
    threshold = (
        discard_below_seconds
        if discard_below_seconds is not None
        else default_settings.DISCARD_BELOW_SECONDS
    )
    if event.watch_time < threshold:
        return ProfileUpdate(counted=False)

    seq = _current_seq(db, event.user_id)

    if event.disliked:
        purged = hashtag_tokens(event.hashtags)
        for token in purged:
            _purge(db, event.user_id, token, seq)
        db.flush()
        logger.info("[profile] user=%s purged=%s", event.user_id, purged)
        return ProfileUpdate(counted=True, purged=purged)

    tokens = event_tokens(event)
    db.add(ProfileEntry(
        user_id=event.user_id,
        seq=seq + 1,
        video_id=event.video_id,
        tokens=json.dumps(tokens),
        liked=event.liked,
        occurred_at=as_utc(event.timestamp),
    ))
    db.flush()
    return ProfileUpdate(counted=True, appended_seq=seq + 1)


def load_snapshot(
    db: Session,
    user_id: str,
    decay: Optional[DecayPolicy] = None,
    like_boost: Optional[float] = None,
) -> ProfileSnapshot:
    """Read the user's profile in one pass; unknown users get an empty snapshot."""
    decay = decay or decay_policy_from_settings(default_settings)
    boost = like_boost if like_boost is not None else default_settings.LIKE_BOOST
    return build_snapshot(
        user_id,
        _load_rows(db, user_id),
        _load_purges(db, user_id),
        decay,
        boost,
    )


def load_global_documents(db: Session) -> list[list[str]]:
    """Every user's entries as token documents, for a cross-user IDF."""
    return [json.loads(tokens or "[]") for (tokens,) in db.query(ProfileEntry.tokens).all()]
