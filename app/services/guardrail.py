"""
Guardrail monitor - daily attention tracking and break-trigger rules.

Rules (evaluated on every counted watch event, in this order)
-------------------------------------------------------------
  A. ATTENTION_RULE
     Trigger : attention_span_percent < 25  AND  session_watch_time > 8 min
     Action  : request a break (reason="attention_rule")

  B. DURATION_RULE
     Trigger : session_watch_time > 20 min  (percent is irrelevant)
     Action  : request a break (reason="duration_rule")

Both rules may fire on the same event; the scheduler keeps the first reason.

Discard policy
--------------
Watches shorter than 5 s are scroll-pasts: they touch no statistics and can
never trigger a rule.

The monitor never activates a break. It only returns the reasons; arming is
the break scheduler's job.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import Settings, settings as default_settings
from app.models.break_state import BreakReason
from app.services.daily_stats import attention_span_percent, bucket_for_update
from app.services.events import WatchEvent

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GuardrailThresholds:
    discard_below_seconds: float = 5.0
    attention_threshold_percent: float = 25.0
    attention_session_seconds: float = 8 * 60
    duration_session_seconds: float = 20 * 60

    @classmethod
    def from_settings(cls, s: Settings) -> "GuardrailThresholds":
        return cls(
            discard_below_seconds=s.DISCARD_BELOW_SECONDS,
            attention_threshold_percent=s.ATTENTION_THRESHOLD_PERCENT,
            attention_session_seconds=s.ATTENTION_RULE_SESSION_MINUTES * 60,
            duration_session_seconds=s.DURATION_RULE_SESSION_MINUTES * 60,
        )


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class GuardrailDecision:
    """What the monitor concluded for one event."""
    counted: bool
    attention_span_percent: Optional[float] = None
    reasons: list[BreakReason] = field(default_factory=list)

    @property
    def should_arm(self) -> bool:
        return bool(self.reasons)

    @property
    def reason(self) -> Optional[BreakReason]:
        return self.reasons[0] if self.reasons else None


# ---------------------------------------------------------------------------
# Pure rule evaluation
# ---------------------------------------------------------------------------

def is_discarded(event: WatchEvent, thresholds: GuardrailThresholds) -> bool:
    return event.watch_time < thresholds.discard_below_seconds


def evaluate_rules(
    percent: float,
    session_watch_time: float,
    thresholds: GuardrailThresholds,
) -> list[BreakReason]:
    """Return the reasons that fire, attention rule first."""
    reasons: list[BreakReason] = []
    if (
        percent < thresholds.attention_threshold_percent
        and session_watch_time > thresholds.attention_session_seconds
    ):
        reasons.append(BreakReason.attention_rule)
    if session_watch_time > thresholds.duration_session_seconds:
        reasons.append(BreakReason.duration_rule)
    return reasons


# ---------------------------------------------------------------------------
# Public: main entry point
# ---------------------------------------------------------------------------

def on_watch_event(
    db: Session,
    event: WatchEvent,
    thresholds: Optional[GuardrailThresholds] = None,
) -> GuardrailDecision:
    """
    Fold one event into its day bucket and evaluate both rules.
    Flushes but does not commit; the caller owns the transaction.
    """
    thresholds = thresholds or GuardrailThresholds.from_settings(default_settings)
    if is_discarded(event, thresholds):
        return GuardrailDecision(counted=False)

    bucket = bucket_for_update(db, event.user_id, event.day)
    if bucket.is_closed:
        logger.info(
            "[guardrail] late event user=%s day=%s lands in closed bucket",
            event.user_id, event.day,
        )
    bucket.watch_time_total += event.watch_time
    bucket.duration_total += event.video_duration
    bucket.counted_events += 1
    db.flush()

    percent = attention_span_percent(bucket.watch_time_total, bucket.duration_total)
    reasons = evaluate_rules(percent, event.session_watch_time, thresholds)
    if reasons:
        logger.info(
            "[guardrail] user=%s percent=%.1f session=%.0fs rules=%s",
            event.user_id, percent, event.session_watch_time,
            ",".join(r.value for r in reasons),
        )
    return GuardrailDecision(counted=True, attention_span_percent=percent, reasons=reasons)
