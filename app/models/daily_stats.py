from datetime import datetime, date
from sqlalchemy import Integer, String, Boolean, Float, DateTime, Date, func, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class DailyStats(Base):
    """Per-user, per-day attention aggregate. The (user_id, day) key is the day bucket."""

    __tablename__ = "daily_stats"
    __table_args__ = (
        UniqueConstraint("user_id", "day", name="uq_daily_stats_user_day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    day: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    watch_time_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    duration_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    counted_events: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
