"""
WatchEventRecord - every accepted watch event, as received.

Discarded events (watch_time below the threshold) are stored with
`discarded=True` and never feed stats or profile weighting.

hashtags: JSON-encoded list stored as Text (no external deps).
"""
from datetime import datetime, date
from sqlalchemy import Integer, String, Text, Boolean, Float, DateTime, Date, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class WatchEventRecord(Base):
    __tablename__ = "watch_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    video_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    watch_time: Mapped[float] = mapped_column(Float, nullable=False)
    video_duration: Mapped[float] = mapped_column(Float, nullable=False)
    session_watch_time: Mapped[float] = mapped_column(Float, nullable=False)
    video_name: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    hashtags: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    liked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    disliked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hour_of_day: Mapped[int] = mapped_column(Integer, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    discarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
