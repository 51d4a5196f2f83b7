"""
BreakState - one row per user, written only by the break scheduler.

BreakNotification - append-only record of every ARMED → ON_BREAK transition,
i.e. what was pushed to the playback client.
"""
from datetime import datetime
import enum

from sqlalchemy import Integer, String, Float, DateTime, Enum, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class BreakStatus(str, enum.Enum):
    active = "active"
    armed = "armed"
    on_break = "on_break"


class BreakReason(str, enum.Enum):
    attention_rule = "attention_rule"
    duration_rule = "duration_rule"


class BreakState(Base):
    __tablename__ = "break_states"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    status: Mapped[str] = mapped_column(
        Enum(BreakStatus, name="break_status_enum"),
        nullable=False,
        default=BreakStatus.active,
    )
    armed_reason: Mapped[str | None] = mapped_column(
        Enum(BreakReason, name="break_reason_enum"), nullable=True
    )
    armed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    armed_hour: Mapped[int | None] = mapped_column(Integer, nullable=True)
    break_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    break_length_minutes: Mapped[float | None] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class BreakNotification(Base):
    __tablename__ = "break_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(
        Enum(BreakReason, name="break_reason_enum"), nullable=False
    )
    break_length_minutes: Mapped[float] = mapped_column(Float, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
