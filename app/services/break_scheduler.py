"""
Break scheduler - the only writer of BreakState.

State machine
-------------
    ACTIVE ──arm(reason)──▶ ARMED ──video end──▶ ON_BREAK ──length elapsed──▶ ACTIVE

  arm             : no-op unless ACTIVE; the first reason wins.
  on_video_end    : ARMED → ON_BREAK. The break starts at the end signal's
                    timestamp, so the video that was playing when the break
                    was armed always finishes. End signals timestamped before
                    the arm belong to an earlier video and are ignored.
                    Without a pending arm the signal is a no-op.
  on_break_elapsed: ON_BREAK → ACTIVE once started + length has passed.

Break length
------------
    length = clamp(short + scale(hour), min=short, max=long)

`scale` interpolates linearly through (0h → short, 12h → medium,
23h → long) and subtracts `short`, so later hours never get shorter breaks.
Defaults are 3 / 6.5 / 10 minutes; parental controls may raise them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import Settings, settings as default_settings
from app.core.errors import InvalidParentalConfigError
from app.models.break_state import BreakNotification, BreakReason, BreakState, BreakStatus
from app.models.profile import ParentalSettings
from app.services.events import as_utc
from app.services.user_locks import user_lock

logger = logging.getLogger(__name__)

_MIDDAY_HOUR = 12
_LAST_HOUR = 23


# ---------------------------------------------------------------------------
# Break lengths
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BreakLengths:
    short: float
    medium: float
    long: float

    @classmethod
    def from_settings(cls, s: Settings) -> "BreakLengths":
        return cls(
            short=s.BREAK_SHORT_MINUTES,
            medium=s.BREAK_MEDIUM_MINUTES,
            long=s.BREAK_LONG_MINUTES,
        )


def _ev(v) -> str:
    return v.value if hasattr(v, "value") else str(v)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def compute_break_length(hour_of_day: int, lengths: BreakLengths) -> float:
    """Minutes of break for an end signal at `hour_of_day` (0-23)."""
    hour = min(max(int(hour_of_day), 0), _LAST_HOUR)
    if hour <= _MIDDAY_HOUR:
        curve = lengths.short + (lengths.medium - lengths.short) * hour / _MIDDAY_HOUR
    else:
        span = _LAST_HOUR - _MIDDAY_HOUR
        curve = lengths.medium + (lengths.long - lengths.medium) * (hour - _MIDDAY_HOUR) / span
    scale = curve - lengths.short
    length = min(max(lengths.short + scale, lengths.short), lengths.long)
    return round(length, 2)


def validate_parental_lengths(lengths: BreakLengths, defaults: BreakLengths) -> BreakLengths:
    """Parental overrides must be ordered and may only lengthen the defaults."""
    if not lengths.short <= lengths.medium <= lengths.long:
        raise InvalidParentalConfigError(
            "lengths must satisfy short <= medium <= long",
            lengths.short, lengths.medium, lengths.long,
        )
    if lengths.short < defaults.short or lengths.long < defaults.long:
        raise InvalidParentalConfigError(
            f"overrides may not go below the defaults ({defaults.short}/{defaults.long} minutes)",
            lengths.short, lengths.medium, lengths.long,
        )
    return lengths


def break_lengths_for(db: Session, user_id: str, defaults: Optional[BreakLengths] = None) -> BreakLengths:
    defaults = defaults or BreakLengths.from_settings(default_settings)
    row = db.get(ParentalSettings, user_id)
    if row is None:
        return defaults
    return BreakLengths(
        short=row.break_short_minutes,
        medium=row.break_medium_minutes,
        long=row.break_long_minutes,
    )


def set_parental_lengths(db: Session, user_id: str, lengths: BreakLengths) -> BreakLengths:
    validate_parental_lengths(lengths, BreakLengths.from_settings(default_settings))
    row = db.get(ParentalSettings, user_id)
    if row is None:
        row = ParentalSettings(user_id=user_id)
        db.add(row)
    row.break_short_minutes = lengths.short
    row.break_medium_minutes = lengths.medium
    row.break_long_minutes = lengths.long
    db.commit()
    logger.info(
        "[breaks] parental override user=%s lengths=%s/%s/%s",
        user_id, lengths.short, lengths.medium, lengths.long,
    )
    return lengths


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class BreakSnapshot:
    user_id: str
    status: str
    armed_reason: Optional[str] = None
    armed_at: Optional[datetime] = None
    break_started_at: Optional[datetime] = None
    break_length_minutes: Optional[float] = None

    @property
    def break_ends_at(self) -> Optional[datetime]:
        if self.break_started_at is None or self.break_length_minutes is None:
            return None
        return self.break_started_at + timedelta(minutes=self.break_length_minutes)


@dataclass
class VideoEndResult:
    transitioned: bool
    snapshot: BreakSnapshot
    notification: Optional[BreakNotification] = None


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class BreakScheduler:
    """Drives one user's BreakState. Methods flush; callers commit."""

    def __init__(self, db: Session, user_id: str, lengths: Optional[BreakLengths] = None):
        self.db = db
        self.user_id = user_id
        self._lengths = lengths

    @property
    def lengths(self) -> BreakLengths:
        if self._lengths is None:
            self._lengths = break_lengths_for(self.db, self.user_id)
        return self._lengths

    def _load(self, create: bool) -> Optional[BreakState]:
        state = (
            self.db.query(BreakState)
            .filter(BreakState.user_id == self.user_id)
            .with_for_update()
            .first()
        )
        if state is not None or not create:
            return state

        savepoint = self.db.begin_nested()
        try:
            state = BreakState(user_id=self.user_id, status=BreakStatus.active)
            self.db.add(state)
            self.db.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            state = (
                self.db.query(BreakState)
                .filter(BreakState.user_id == self.user_id)
                .with_for_update()
                .one()
            )
        return state

    def _snapshot(self, state: Optional[BreakState]) -> BreakSnapshot:
        if state is None:
            return BreakSnapshot(user_id=self.user_id, status=BreakStatus.active.value)
        return BreakSnapshot(
            user_id=self.user_id,
            status=_ev(state.status),
            armed_reason=_ev(state.armed_reason) if state.armed_reason else None,
            armed_at=as_utc(state.armed_at) if state.armed_at else None,
            break_started_at=as_utc(state.break_started_at) if state.break_started_at else None,
            break_length_minutes=state.break_length_minutes,
        )

    def current(self) -> BreakSnapshot:
        return self._snapshot(self._load(create=False))

    def arm(self, reason: BreakReason, at: datetime, hour_of_day: int) -> bool:
        """Arm a break. Returns True only when this call moved ACTIVE → ARMED."""
        state = self._load(create=True)
        if _ev(state.status) != BreakStatus.active.value:
            logger.debug(
                "[breaks] arm ignored user=%s status=%s reason=%s",
                self.user_id, _ev(state.status), _ev(reason),
            )
            return False
        state.status = BreakStatus.armed
        state.armed_reason = reason
        state.armed_at = as_utc(at)
        state.armed_hour = hour_of_day
        state.break_started_at = None
        state.break_length_minutes = None
        self.db.flush()
        logger.info("[breaks] armed user=%s reason=%s", self.user_id, _ev(reason))
        return True

    def on_video_end(
        self,
        ended_at: datetime,
        hour_of_day: Optional[int] = None,
    ) -> VideoEndResult:
        state = self._load(create=False)
        if state is None or _ev(state.status) != BreakStatus.armed.value:
            return VideoEndResult(transitioned=False, snapshot=self._snapshot(state))

        ended = as_utc(ended_at)
        armed_at = as_utc(state.armed_at) if state.armed_at else None
        if armed_at is not None and ended < armed_at:
            logger.info(
                "[breaks] stale video end user=%s ended_at=%s armed_at=%s",
                self.user_id, ended.isoformat(), armed_at.isoformat(),
            )
            return VideoEndResult(transitioned=False, snapshot=self._snapshot(state))

        hour = hour_of_day if hour_of_day is not None else (state.armed_hour or 0)
        length = compute_break_length(hour, self.lengths)
        state.status = BreakStatus.on_break
        state.break_started_at = ended
        state.break_length_minutes = length

        notification = BreakNotification(
            user_id=self.user_id,
            reason=state.armed_reason,
            break_length_minutes=length,
            started_at=ended,
        )
        self.db.add(notification)
        self.db.flush()
        logger.info(
            "[breaks] break started user=%s reason=%s length=%.2fmin",
            self.user_id, _ev(state.armed_reason), length,
        )
        return VideoEndResult(
            transitioned=True,
            snapshot=self._snapshot(state),
            notification=notification,
        )

    def on_break_elapsed(self, at: datetime) -> bool:
        """Return to ACTIVE if the break is over at `at`; otherwise do nothing."""
        state = self._load(create=False)
        if state is None or _ev(state.status) != BreakStatus.on_break.value:
            return False
        ends_at = self._snapshot(state).break_ends_at
        if ends_at is not None and as_utc(at) < ends_at:
            return False
        state.status = BreakStatus.active
        state.armed_reason = None
        state.armed_at = None
        state.armed_hour = None
        state.break_started_at = None
        state.break_length_minutes = None
        self.db.flush()
        logger.info("[breaks] break over user=%s", self.user_id)
        return True


# ---------------------------------------------------------------------------
# Public: transactional helpers used by the routers
# ---------------------------------------------------------------------------

def handle_video_end(
    db: Session,
    user_id: str,
    ended_at: Optional[datetime] = None,
    hour_of_day: Optional[int] = None,
) -> VideoEndResult:
    with user_lock(user_id):
        result = BreakScheduler(db, user_id).on_video_end(ended_at or _now(), hour_of_day)
        db.commit()
        if result.notification is not None:
            db.refresh(result.notification)
        return result


def handle_break_elapsed(
    db: Session,
    user_id: str,
    at: Optional[datetime] = None,
) -> tuple[bool, BreakSnapshot]:
    with user_lock(user_id):
        scheduler = BreakScheduler(db, user_id)
        changed = scheduler.on_break_elapsed(at or _now())
        db.commit()
        return changed, scheduler.current()


def get_break_state(db: Session, user_id: str, now: Optional[datetime] = None) -> BreakSnapshot:
    """Current state; a finished break is closed on read."""
    with user_lock(user_id):
        scheduler = BreakScheduler(db, user_id)
        if scheduler.on_break_elapsed(now or _now()):
            db.commit()
        return scheduler.current()


def list_notifications(
    db: Session,
    user_id: str,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[BreakNotification]]:
    """Return (total, page) of a user's break notifications, newest first."""
    q = db.query(BreakNotification).filter(BreakNotification.user_id == user_id)
    total = q.count()
    items = (
        q.order_by(BreakNotification.started_at.desc(), BreakNotification.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return total, items
