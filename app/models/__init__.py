from .viewer import Viewer
from .watch_event import WatchEventRecord
from .daily_stats import DailyStats
from .break_state import BreakState, BreakNotification, BreakStatus, BreakReason
from .profile import ProfileEntry, ProfilePurge, ParentalSettings

__all__ = [
    "Viewer",
    "WatchEventRecord",
    "DailyStats",
    "BreakState",
    "BreakNotification",
    "BreakStatus",
    "BreakReason",
    "ProfileEntry",
    "ProfilePurge",
    "ParentalSettings",
]
