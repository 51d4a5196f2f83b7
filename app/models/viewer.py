"""
Viewer - one row per user, created on the first event.

`last_event_at` is the per-user ordering watermark: ingestion locks this row
(SELECT ... FOR UPDATE) and rejects events older than it.
"""
from datetime import datetime
from sqlalchemy import String, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Viewer(Base):
    __tablename__ = "viewers"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    last_event_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
